"""Shared utility helpers used across services and routers."""

from decimal import Decimal, InvalidOperation


def safe_int(v):
    """Safely convert a value to int, returning None on failure."""
    if v is None:
        return None
    try:
        return int(v)
    except (ValueError, TypeError):
        return None


def safe_decimal(v):
    """Convert a DB/JSON number to Decimal, returning None on failure.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    NaN and Infinity are rejected.
    """
    if v is None:
        return None
    if isinstance(v, Decimal):
        d = v
    else:
        try:
            d = Decimal(str(v))
        except (InvalidOperation, ValueError, TypeError):
            return None
    if not d.is_finite():
        return None
    return d


def money(v) -> float:
    """Serialise a Decimal amount for JSON output (2 decimals)."""
    if v is None:
        return 0.0
    return float(Decimal(v).quantize(Decimal("0.01")))
