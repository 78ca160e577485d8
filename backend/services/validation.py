from __future__ import annotations

from services.errors import InvalidInputError


def whole_number(value, field: str, *, low: int | None = None, high: int | None = None) -> int:
    """Accept only real ints; ``7.9``, ``7.0``, ``"7"`` and ``True`` are all rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be a whole number")
    if low is not None and high is not None and not low <= value <= high:
        raise InvalidInputError(f"{field} must be between {low} and {high}")
    if low is not None and value < low:
        raise InvalidInputError(f"{field} must be at least {low}")
    if high is not None and value > high:
        raise InvalidInputError(f"{field} must be at most {high}")
    return value
