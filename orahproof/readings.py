"""
Sensor reading model.

A reading has a fixed set of typed, optional fields plus an open mapping of
producer-supplied extensions. Values are stored exactly as received so the
validator can report a malformed field instead of the parser rejecting the
whole batch.
"""

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

KNOWN_FIELDS = ("timestamp", "temperature", "humidity", "location")


@dataclass(frozen=True)
class Location:
    """
    GPS position. latitude in [-90, 90], longitude in [-180, 180].

    ``raw`` keeps the value as received so hashing covers extra keys and
    malformed locations exactly.
    """
    latitude: Any
    longitude: Any
    raw: Any = None

    @classmethod
    def from_value(cls, value: Any) -> "Location":
        if isinstance(value, Location):
            return value
        if isinstance(value, Mapping):
            return cls(
                latitude=value.get("latitude"),
                longitude=value.get("longitude"),
                raw=MappingProxyType(copy.deepcopy(dict(value))),
            )
        # Not an object: both coordinates are reported as invalid.
        return cls(latitude=None, longitude=None, raw=copy.deepcopy(value))

    def to_dict(self) -> Any:
        if self.raw is None:
            return {"latitude": self.latitude, "longitude": self.longitude}
        if isinstance(self.raw, Mapping):
            return dict(self.raw)
        return self.raw


@dataclass(frozen=True)
class SensorReading:
    """
    One timestamped sample from a batch's sensors.

    Fields:
    - timestamp: ISO-8601 instant string (required)
    - temperature: degrees Celsius (optional)
    - humidity: percent relative humidity (optional)
    - location: GPS position (optional)
    - extra: additional named fields, ignored by validation, included in hashing
    - present: known fields the producer sent, including explicit nulls

    Readings are immutable once received; ``extra`` is a read-only view.
    """
    timestamp: Any = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    location: Optional[Location] = None
    extra: Mapping[str, Any] = field(default_factory=dict)
    present: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not isinstance(self.extra, MappingProxyType):
            object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SensorReading":
        """Split a producer payload into typed fields and extras. No coercion."""
        location = data.get("location")
        return cls(
            timestamp=data.get("timestamp"),
            temperature=data.get("temperature"),
            humidity=data.get("humidity"),
            location=Location.from_value(location) if location is not None else None,
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in KNOWN_FIELDS},
            present=frozenset(k for k in KNOWN_FIELDS if k in data),
        )

    @classmethod
    def coerce(cls, value: Any) -> Optional["SensorReading"]:
        """A SensorReading for a reading or mapping; None for anything else."""
        if isinstance(value, SensorReading):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        return None

    def to_dict(self) -> Dict[str, Any]:
        """
        Flat producer shape: known fields that were sent or are set, then
        extras. An explicit null stays null, so it hashes differently from
        an absent field.
        """
        d: Dict[str, Any] = {}
        for name in KNOWN_FIELDS:
            value = getattr(self, name)
            if value is None and name not in self.present:
                continue
            d[name] = value.to_dict() if isinstance(value, Location) else value
        for key, value in self.extra.items():
            d.setdefault(key, value)
        return d


def reading_payload(value: Any) -> Any:
    """
    The hashed form of one batch entry. Readings and mappings use the
    producer shape; any other value is hashed as received.
    """
    reading = SensorReading.coerce(value)
    return reading.to_dict() if reading is not None else value


def as_batch(value: Any) -> Optional[List[Any]]:
    """
    The entries of a batch as a list. None counts as an empty batch; a
    string, mapping or non-iterable is not a batch and gives None.
    """
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        return None
    return list(value)
