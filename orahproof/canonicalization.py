"""
Canonical JSON encoding for proof inputs.

Structurally equal values must produce identical bytes regardless of the
order in which a producer inserted object keys, or whether a whole number
arrived as ``22`` or ``22.0``.

Rules:
- Object keys sorted lexicographically (Unicode code point order), recursively
- No whitespace between tokens
- UTF-8 encoding, no ASCII escaping
- Arrays preserve order
- Floats with an integral value are encoded as integers
- Non-finite floats are encoded as the JSON extension tokens NaN/Infinity
- Decimals are encoded as the equal int or float
- Datetimes are encoded as ISO-8601 UTC strings with millisecond precision
"""

import json
import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Union

from .util import format_instant


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Raises:
        ValueError: if the object contains a value that has no JSON form
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    """Recursively canonicalize a value."""
    if value is None:
        return None
    elif isinstance(value, bool):
        return value
    elif isinstance(value, int):
        return value
    elif isinstance(value, float):
        return _canonicalize_number(value)
    elif isinstance(value, Decimal):
        return _canonicalize_decimal(value)
    elif isinstance(value, str):
        return value
    elif isinstance(value, Mapping):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    elif isinstance(value, datetime):
        return format_instant(value)
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_number(value: float) -> Union[int, float]:
    if math.isfinite(value) and value.is_integer():
        return int(value)
    return value


def _canonicalize_decimal(value: Decimal) -> Union[int, float]:
    # Same encoding as the float a JSON parser would have produced.
    if value.is_finite() and value == value.to_integral_value():
        return int(value)
    return _canonicalize_number(float(value))


def _canonicalize_object(obj: Mapping) -> Dict[str, Any]:
    """Canonicalize an object by sorting keys lexicographically."""
    for key in obj:
        if not isinstance(key, str):
            raise ValueError(f"Object keys must be strings, got {type(key)}")
    return {k: _canonicalize_value(obj[k]) for k in sorted(obj.keys())}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    """Canonicalize an array, preserving order."""
    return [_canonicalize_value(item) for item in arr]
