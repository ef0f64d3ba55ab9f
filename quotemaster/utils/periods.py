"""Period token helpers.

A period identifies a procurement cycle as ``YYYY-MM-XX`` where the last
segment is the cycle number within the month (e.g. ``2024-01-01``), not a
day of month. Tokens sort lexically in chronological order.
"""

import re

PERIOD_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidPeriodError(ValueError):
    """Raised when a period token does not match YYYY-MM-XX."""


def is_valid_period(value) -> bool:
    return isinstance(value, str) and bool(PERIOD_RE.match(value))


def validate_period(value: str) -> str:
    """Return the stripped period token or raise InvalidPeriodError."""
    if isinstance(value, str):
        value = value.strip()
    if not is_valid_period(value):
        raise InvalidPeriodError(f"Period must match YYYY-MM-XX, got: {value!r}")
    return value
