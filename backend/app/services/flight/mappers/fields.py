"""
Tolerant readers for raw Amadeus offer fields.

Upstream payloads are not schema-checked, so a field can hold any JSON
type. These helpers return a usable default for the wrong type and
never raise, so one bad field degrades only itself.
"""
import math
from typing import Any, List, Optional


def as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def dicts(value: Any) -> List[dict]:
    """Dict items of a list; anything else is an empty list."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def first_dict(value: Any) -> dict:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return {}


def first_value(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def to_float(value: Any) -> Optional[float]:
    # bools are ints in Python but never a price
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_count(value: Any) -> int:
    """Non-negative int for counters such as numberOfStops, else 0."""
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


def code(value: Any) -> Optional[str]:
    """IATA-style code as a non-empty string, else None."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def fee_total(price: Any) -> float:
    return sum(to_float(fee.get("amount")) or 0.0 for fee in dicts(as_dict(price).get("fees")))
