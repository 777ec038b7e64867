"""Reconciliation interval parsing.

An interval is either a sum of unit terms ("30s", "5m", "1h30m") or an
ISO-8601 duration ("PT30S", "PT5M", "P1D"). Both resolve to whole seconds.
"""

import re

MIN_RECONCILIATION_SECONDS = 10
MAX_RECONCILIATION_SECONDS = 86400

_UNIT_SECONDS = {"d": 86400, "h": 3600, "m": 60, "s": 1}
_UNIT_TERMS = re.compile(r"^(?:\d+[dhms])+$")
_UNIT_TERM = re.compile(r"(\d+)([dhms])")
_ISO_8601 = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")


class IntervalError(ValueError):
    """Raised when a reconciliation interval is malformed or out of range."""


def parse_interval(value: str) -> int:
    """
    Convert an interval string to seconds.

    Raises:
        IntervalError: If the string is empty, malformed or zero
    """
    compact = re.sub(r"\s+", "", value or "")
    if not compact:
        raise IntervalError("Interval cannot be empty")

    iso = _ISO_8601.match(compact.upper())
    if iso and any(iso.groups()):
        days, hours, minutes, seconds = (int(part or 0) for part in iso.groups())
        total = days * 86400 + hours * 3600 + minutes * 60 + seconds
    elif _UNIT_TERMS.match(compact.lower()):
        total = sum(
            int(amount) * _UNIT_SECONDS[unit]
            for amount, unit in _UNIT_TERM.findall(compact.lower())
        )
    else:
        raise IntervalError(
            f"Invalid interval '{value}': use unit terms like '30s', '5m', '1h30m' "
            "or an ISO-8601 duration like 'PT30S'"
        )

    if total == 0:
        raise IntervalError(f"Interval cannot be zero: '{value}'")
    return total


def check_interval_bounds(
    seconds: int,
    minimum: int = MIN_RECONCILIATION_SECONDS,
    maximum: int = MAX_RECONCILIATION_SECONDS,
) -> None:
    """Raise IntervalError unless minimum <= seconds <= maximum."""
    if seconds < minimum:
        raise IntervalError(f"Interval too short: {seconds}s (minimum is {minimum}s)")
    if seconds > maximum:
        raise IntervalError(f"Interval too long: {seconds}s (maximum is {maximum}s)")
