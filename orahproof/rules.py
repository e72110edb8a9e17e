"""
Validation rules for IoT sensor readings.

Two rule families:
- ReadingRule: checks one reading in isolation
- ConsistencyRule: checks relationships across a batch of two or more readings

Rules are pure. They receive the evaluation instant explicitly, never read a
clock, and never raise for bad data: every problem becomes a ValidationIssue.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Sequence, Type

from .config import (
    COMFORT_TEMP_MAX,
    COMFORT_TEMP_MIN,
    DRIFT_DISTANCE_KM,
    EARTH_RADIUS_KM,
    GEO_LAT_MAX,
    GEO_LAT_MIN,
    GEO_LON_MAX,
    GEO_LON_MIN,
    MAX_TEMPERATURE_SPREAD,
    STALE_AFTER_YEARS,
    ValidationConfig,
)
from .readings import Location, SensorReading
from .util import is_finite_number, parse_instant, years_before

BATCH_FIELD = "readings"


class Severity(str, Enum):
    """Issue severity."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationIssue:
    """
    One problem found in a batch.

    ``value`` is the offending value for diagnostics only; it never enters
    a hash. Issues with ``scored`` unset are reported but deduct nothing.
    """
    severity: Severity
    field: str
    message: str
    value: Any = None
    scored: bool = True

    def to_dict(self) -> Dict[str, Any]:
        d = {"severity": self.severity.value, "field": self.field, "message": self.message}
        if self.value is not None:
            d["value"] = self.value
        return d


def reading_path(index: int, *parts: str) -> str:
    """Field path for a reading, e.g. readings[2].location.latitude."""
    path = f"{BATCH_FIELD}[{index}]"
    for part in parts:
        path += f".{part}"
    return path


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two GPS coordinates in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def _fmt(value: float) -> str:
    """Render a bound without a trailing .0 for whole numbers."""
    return f"{value:g}"


# ============================================================
# Per-reading rules
# ============================================================

class ReadingRule(ABC):
    """Abstract base class for rules applied to each reading."""

    rule_id: str = ""

    def __init__(self, config: ValidationConfig):
        self.config = config

    @abstractmethod
    def check(self, reading: SensorReading, index: int, now: datetime) -> List[ValidationIssue]:
        """Return the issues for one reading. Must not raise."""
        pass

    def _error(self, field: str, message: str, value: Any = None) -> ValidationIssue:
        return ValidationIssue(Severity.ERROR, field, message, value)

    def _warning(self, field: str, message: str, value: Any = None, scored: bool = True) -> ValidationIssue:
        return ValidationIssue(Severity.WARNING, field, message, value, scored)


class TimestampRule(ReadingRule):
    """
    The timestamp must parse as an instant and must not lie in the future.
    Readings older than one year are suspicious but accepted.
    """
    rule_id = "timestamp"

    def check(self, reading, index, now):
        field = reading_path(index, "timestamp")
        instant = parse_instant(reading.timestamp)
        if instant is None:
            return [self._error(field, "Invalid timestamp format. Use ISO 8601 format", reading.timestamp)]

        issues = []
        if instant > now:
            issues.append(self._error(field, "Timestamp cannot be in the future", reading.timestamp))
        if instant < years_before(now, STALE_AFTER_YEARS):
            issues.append(self._warning(field, "Timestamp is more than 1 year old", reading.timestamp))
        return issues


class TemperatureRule(ReadingRule):
    """
    Temperature must be a finite number inside the configured bounds.

    The agricultural comfort band warning is evaluated independently of the
    configured bound check, so one reading can carry both. It only affects
    the score when ``penalize_comfort_band`` is set.
    """
    rule_id = "temperature"

    def check(self, reading, index, now):
        if reading.temperature is None:
            return []
        field = reading_path(index, "temperature")
        value = reading.temperature
        if not is_finite_number(value):
            return [self._error(field, "Temperature must be a valid number", value)]

        issues = []
        cfg = self.config
        if value < cfg.temp_min or value > cfg.temp_max:
            issues.append(self._error(
                field,
                f"Temperature must be between {_fmt(cfg.temp_min)}°C and {_fmt(cfg.temp_max)}°C",
                value,
            ))
        if value < COMFORT_TEMP_MIN or value > COMFORT_TEMP_MAX:
            issues.append(self._warning(
                field,
                f"Temperature is outside typical agricultural range "
                f"({_fmt(COMFORT_TEMP_MIN)}-{_fmt(COMFORT_TEMP_MAX)}°C)",
                value,
                scored=cfg.penalize_comfort_band,
            ))
        return issues


class HumidityRule(ReadingRule):
    """Humidity must be a finite number inside the configured bounds."""
    rule_id = "humidity"

    def check(self, reading, index, now):
        if reading.humidity is None:
            return []
        field = reading_path(index, "humidity")
        value = reading.humidity
        if not is_finite_number(value):
            return [self._error(field, "Humidity must be a valid number", value)]

        cfg = self.config
        if value < cfg.humidity_min or value > cfg.humidity_max:
            return [self._error(
                field,
                f"Humidity must be between {_fmt(cfg.humidity_min)}% and {_fmt(cfg.humidity_max)}%",
                value,
            )]
        return []


class LocationRule(ReadingRule):
    """
    Latitude and longitude are checked independently.

    Per coordinate, the first failing check wins: not a number, then outside
    the geodetic range (error), then outside the configured region (warning).
    """
    rule_id = "location"

    def check(self, reading, index, now):
        if reading.location is None:
            return []
        cfg = self.config
        issues = []
        self._check_axis(
            issues, reading_path(index, "location", "latitude"), "Latitude",
            reading.location.latitude, (GEO_LAT_MIN, GEO_LAT_MAX), (cfg.lat_min, cfg.lat_max),
        )
        self._check_axis(
            issues, reading_path(index, "location", "longitude"), "Longitude",
            reading.location.longitude, (GEO_LON_MIN, GEO_LON_MAX), (cfg.lon_min, cfg.lon_max),
        )
        return issues

    def _check_axis(self, issues, field, label, value, absolute, region):
        if not is_finite_number(value):
            issues.append(self._error(field, f"{label} must be a valid number", value))
        elif value < absolute[0] or value > absolute[1]:
            issues.append(self._error(
                field, f"{label} must be between {_fmt(absolute[0])} and {_fmt(absolute[1])}", value,
            ))
        elif value < region[0] or value > region[1]:
            issues.append(self._warning(
                field,
                f"{label} is outside configured region ({_fmt(region[0])} to {_fmt(region[1])})",
                value,
            ))


# ============================================================
# Cross-reading consistency rules
# ============================================================

class ConsistencyRule(ABC):
    """Abstract base class for rules over a whole batch (two or more readings)."""

    rule_id: str = ""

    def __init__(self, config: ValidationConfig):
        self.config = config

    @abstractmethod
    def check(self, readings: Sequence[SensorReading], now: datetime) -> List[ValidationIssue]:
        pass

    def _warning(self, message: str) -> ValidationIssue:
        return ValidationIssue(Severity.WARNING, BATCH_FIELD, message)


class ChronologicalOrderRule(ConsistencyRule):
    """One warning per adjacent pair whose timestamps go backwards."""
    rule_id = "chronological_order"

    def check(self, readings, now):
        issues = []
        instants = [parse_instant(r.timestamp) for r in readings]
        for i in range(1, len(instants)):
            prev, curr = instants[i - 1], instants[i]
            if prev is None or curr is None:
                continue
            if curr < prev:
                issues.append(self._warning(f"Readings are not in chronological order (index {i})"))
        return issues


class DuplicateTimestampRule(ConsistencyRule):
    """A single warning if any timestamp value repeats."""
    rule_id = "duplicate_timestamps"

    def check(self, readings, now):
        seen = set()
        for reading in readings:
            key = repr(reading.timestamp)
            if key in seen:
                return [self._warning("Duplicate timestamps detected")]
            seen.add(key)
        return []


class TemperatureSpreadRule(ConsistencyRule):
    """A single warning when max - min temperature exceeds the allowed spread."""
    rule_id = "temperature_spread"

    def check(self, readings, now):
        temperatures = [r.temperature for r in readings if is_finite_number(r.temperature)]
        if len(temperatures) < 2:
            return []
        spread = max(temperatures) - min(temperatures)
        if spread > MAX_TEMPERATURE_SPREAD:
            return [self._warning(f"Large temperature variation detected ({spread:.1f}°C)")]
        return []


class LocationDriftRule(ConsistencyRule):
    """
    Compares every later location with the first one and reports only the
    first that lies further than the drift distance. The first location
    present is the anchor; when its coordinates are not numbers there is
    nothing to measure from and the rule stays silent. Later locations
    without numeric coordinates are skipped.
    """
    rule_id = "location_drift"

    def check(self, readings, now):
        locations = [r.location for r in readings if r.location is not None]
        if len(locations) < 2 or not _has_coordinates(locations[0]):
            return []
        first_lat, first_lon = locations[0].latitude, locations[0].longitude
        for location in locations[1:]:
            if not _has_coordinates(location):
                continue
            lat, lon = location.latitude, location.longitude
            distance = haversine_km(first_lat, first_lon, lat, lon)
            if distance > DRIFT_DISTANCE_KM:
                return [self._warning(
                    f"Locations are more than {_fmt(DRIFT_DISTANCE_KM)}km apart ({distance:.1f}km)"
                )]
        return []


def _has_coordinates(location: Location) -> bool:
    return is_finite_number(location.latitude) and is_finite_number(location.longitude)


# ============================================================
# Rule registry
# ============================================================

READING_RULE_TYPES: Dict[str, Type[ReadingRule]] = {
    TimestampRule.rule_id: TimestampRule,
    TemperatureRule.rule_id: TemperatureRule,
    HumidityRule.rule_id: HumidityRule,
    LocationRule.rule_id: LocationRule,
}

CONSISTENCY_RULE_TYPES: Dict[str, Type[ConsistencyRule]] = {
    ChronologicalOrderRule.rule_id: ChronologicalOrderRule,
    DuplicateTimestampRule.rule_id: DuplicateTimestampRule,
    TemperatureSpreadRule.rule_id: TemperatureSpreadRule,
    LocationDriftRule.rule_id: LocationDriftRule,
}


def default_reading_rules(config: ValidationConfig) -> List[ReadingRule]:
    """Per-reading rules in evaluation order."""
    return [rule_type(config) for rule_type in READING_RULE_TYPES.values()]


def default_consistency_rules(config: ValidationConfig) -> List[ConsistencyRule]:
    """Cross-reading rules in evaluation order."""
    return [rule_type(config) for rule_type in CONSISTENCY_RULE_TYPES.values()]