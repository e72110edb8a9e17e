"""
Configuration module for orahproof.

Centralizes configuration with environment variable support and validation.
Configuration problems are detected when the service starts, never in the
middle of a verification request.
"""

import math
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from .exceptions import ConfigurationError

# ============================================================
# Fixed rule constants
# ============================================================

PASSING_SCORE = 60
MAX_SCORE = 100
READING_ERROR_PENALTY = 10
READING_WARNING_PENALTY = 5
CONSISTENCY_WARNING_PENALTY = 3

# Agricultural comfort band; warnings only, not configurable
COMFORT_TEMP_MIN = 0.0
COMFORT_TEMP_MAX = 40.0

GEO_LAT_MIN, GEO_LAT_MAX = -90.0, 90.0
GEO_LON_MIN, GEO_LON_MAX = -180.0, 180.0

STALE_AFTER_YEARS = 1
MAX_TEMPERATURE_SPREAD = 30.0
DRIFT_DISTANCE_KM = 100.0
EARTH_RADIUS_KM = 6371.0


# ============================================================
# Environment Configuration
# ============================================================

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class ValidationConfig:
    """
    Configurable validation bounds.

    Temperature and humidity bounds produce errors; the regional GPS window
    produces warnings and defaults to the full geodetic range.
    """
    temp_min: float = -10.0
    temp_max: float = 50.0
    humidity_min: float = 0.0
    humidity_max: float = 100.0
    lat_min: float = GEO_LAT_MIN
    lat_max: float = GEO_LAT_MAX
    lon_min: float = GEO_LON_MIN
    lon_max: float = GEO_LON_MAX
    # Comfort band warnings are reported but cost no points unless enabled
    penalize_comfort_band: bool = False

    @classmethod
    def from_env(cls) -> "ValidationConfig":
        """
        Read bounds from TEMP_MIN, TEMP_MAX, HUMIDITY_MIN, HUMIDITY_MAX, LAT_*,
        LNG_* and the comfort band switch from COMFORT_BAND_PENALTY.
        """
        defaults = cls()
        return cls(
            temp_min=_env_float("TEMP_MIN", defaults.temp_min),
            temp_max=_env_float("TEMP_MAX", defaults.temp_max),
            humidity_min=_env_float("HUMIDITY_MIN", defaults.humidity_min),
            humidity_max=_env_float("HUMIDITY_MAX", defaults.humidity_max),
            lat_min=_env_float("LAT_MIN", defaults.lat_min),
            lat_max=_env_float("LAT_MAX", defaults.lat_max),
            lon_min=_env_float("LNG_MIN", defaults.lon_min),
            lon_max=_env_float("LNG_MAX", defaults.lon_max),
            penalize_comfort_band=_env_bool("COMFORT_BAND_PENALTY", defaults.penalize_comfort_band),
        )

    def check(self) -> "ValidationConfig":
        """Raise ConfigurationError if any bound is unusable. Returns self."""
        pairs = {
            "temperature": (self.temp_min, self.temp_max),
            "humidity": (self.humidity_min, self.humidity_max),
            "latitude": (self.lat_min, self.lat_max),
            "longitude": (self.lon_min, self.lon_max),
        }
        for name, (low, high) in pairs.items():
            if not (math.isfinite(low) and math.isfinite(high)):
                raise ConfigurationError(f"{name} bounds must be finite, got [{low}, {high}]")
            if low > high:
                raise ConfigurationError(f"{name} lower bound {low} exceeds upper bound {high}")

        if self.lat_min < GEO_LAT_MIN or self.lat_max > GEO_LAT_MAX:
            raise ConfigurationError(
                f"latitude region [{self.lat_min}, {self.lat_max}] is outside [-90, 90]"
            )
        if self.lon_min < GEO_LON_MIN or self.lon_max > GEO_LON_MAX:
            raise ConfigurationError(
                f"longitude region [{self.lon_min}, {self.lon_max}] is outside [-180, 180]"
            )
        if self.humidity_min < 0 or self.humidity_max > 100:
            raise ConfigurationError(
                f"humidity bounds [{self.humidity_min}, {self.humidity_max}] are outside [0, 100]"
            )
        return self


# ============================================================
# Ledger networks
# ============================================================

@dataclass(frozen=True)
class NetworkInfo:
    name: str
    chain_id: int
    rpc_url: str
    explorer_url: str


NETWORKS: Dict[str, NetworkInfo] = {
    "sepolia": NetworkInfo(
        "Celo Sepolia Testnet", 11142220,
        "https://forno.celo-sepolia.celo-testnet.org", "https://celo-sepolia.blockscout.com",
    ),
    "alfajores": NetworkInfo(
        "Celo Alfajores", 44787,
        "https://alfajores-forno.celo-testnet.org", "https://alfajores.celoscan.io",
    ),
    "mainnet": NetworkInfo("Celo", 42220, "https://forno.celo.org", "https://celoscan.io"),
}
NETWORKS["celo"] = NETWORKS["mainnet"]

LEDGER_BACKENDS = ("memory", "web3")
ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
PRIVATE_KEY_PATTERN = re.compile(r'^0x[a-fA-F0-9]{64}$')


@dataclass(frozen=True)
class Settings:
    """Service settings. Build with ``Settings.from_env()``, then ``check()``."""
    env: str = "dev"
    network: str = "sepolia"
    ledger_backend: str = "memory"
    rpc_url: Optional[str] = None
    registry_address: Optional[str] = None
    backend_private_key: Optional[str] = field(default=None, repr=False)
    receipt_timeout_seconds: float = 120.0
    log_level: str = "INFO"
    log_json: bool = True
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            env=os.getenv("ORAHPROOF_ENV", "dev"),
            network=os.getenv("NETWORK", "sepolia").lower(),
            ledger_backend=os.getenv("LEDGER_BACKEND", "memory").lower(),
            rpc_url=os.getenv("ORAHPROOF_RPC_URL") or None,
            registry_address=os.getenv("ORAH_REGISTRY_ADDRESS") or None,
            backend_private_key=os.getenv("BACKEND_PRIVATE_KEY") or None,
            receipt_timeout_seconds=_env_float("LEDGER_RECEIPT_TIMEOUT", 120.0),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON", True),
            validation=ValidationConfig.from_env(),
        )

    @property
    def network_info(self) -> NetworkInfo:
        try:
            return NETWORKS[self.network]
        except KeyError:
            raise ConfigurationError(f"Unknown network: {self.network}") from None

    @property
    def effective_rpc_url(self) -> str:
        return self.rpc_url or self.network_info.rpc_url

    def check(self) -> "Settings":
        """Raise ConfigurationError if the service cannot start with these settings."""
        self.validation.check()
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid LOG_LEVEL: {self.log_level}")
        if self.ledger_backend not in LEDGER_BACKENDS:
            raise ConfigurationError(
                f"LEDGER_BACKEND must be one of {LEDGER_BACKENDS}, got {self.ledger_backend!r}"
            )
        if self.receipt_timeout_seconds <= 0:
            raise ConfigurationError("LEDGER_RECEIPT_TIMEOUT must be positive")
        if self.ledger_backend == "web3":
            _ = self.network_info
            if not self.registry_address or not ADDRESS_PATTERN.match(self.registry_address):
                raise ConfigurationError(
                    f"ORAH_REGISTRY_ADDRESS not configured for network: {self.network}"
                )
            if not self.backend_private_key:
                raise ConfigurationError(
                    "BACKEND_PRIVATE_KEY not configured. Set it to enable ledger transactions."
                )
            if not PRIVATE_KEY_PATTERN.match(self.backend_private_key):
                raise ConfigurationError("BACKEND_PRIVATE_KEY must be 0x followed by 64 hex characters")
        return self


def validate_config(settings: Settings) -> Dict[str, bool]:
    """
    Report which parts of the configuration are usable without raising.
    Returns dict of section -> ok.
    """
    report = {}
    try:
        settings.validation.check()
        report["validation_bounds"] = True
    except ConfigurationError:
        report["validation_bounds"] = False
    try:
        settings.check()
        report["ledger"] = True
    except ConfigurationError:
        report["ledger"] = False
    return report


def is_production(settings: Settings) -> bool:
    """Check if running in production mode."""
    return settings.env == "prod"
