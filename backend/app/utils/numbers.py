"""Numeric helpers shared by the scoring engines."""


def round_half_up(value: float) -> int:
    """Round .5 away from zero (the builtin ``round`` uses banker's rounding)."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
