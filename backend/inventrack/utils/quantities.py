"""
Numeric helpers for quantities read from the database or from CSV cells.
"""
import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID


def to_float(value, default: float = 0.0) -> float:
    """Numeric/Decimal/str -> float; None, unparseable, NaN or infinite -> default."""
    if value is None:
        return default
    try:
        result = float(value) if isinstance(value, (int, float)) else float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return default
    return result if math.isfinite(result) else default


def parse_quantity(value):
    """Parse a CSV quantity cell. Returns float, or None when not a finite number."""
    if value is None:
        return None
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        result = float(text)
    except ValueError:
        return None
    return result if math.isfinite(result) else None


def json_safe(value):
    """Make a row value storable in a JSON column."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value
