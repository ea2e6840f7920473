"""Parsing for interval settings such as the EOI expiry sweep period."""

import re


class DurationParseError(ValueError):
    """Raised when an interval string cannot be parsed."""

    pass


_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_HUMAN_TOKEN = re.compile(r"(\d+)([smhd])")
_ISO_PATTERN = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")


def parse_duration(value: str) -> int:
    """Convert ``"1h"``, ``"1h30m"``, ``"2d"`` or ISO-8601 ``"PT1H"`` to seconds.

    Raises:
        DurationParseError: On empty, malformed or zero-length input

    Examples:
        >>> parse_duration("15m")
        900
        >>> parse_duration("PT1H")
        3600
    """
    text = (value or "").strip()
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text.upper().startswith("P"):
        seconds = _parse_iso(text.upper())
    else:
        seconds = _parse_human(text.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{value}'")
    return seconds


def _parse_iso(text: str) -> int:
    match = _ISO_PATTERN.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{text}'. Expected something like 'PT1H' or 'P1D'"
        )
    days, hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def _parse_human(text: str) -> int:
    compact = re.sub(r"\s+", "", text)
    tokens = _HUMAN_TOKEN.findall(compact)
    if not tokens or "".join(num + unit for num, unit in tokens) != compact:
        raise DurationParseError(
            f"Invalid duration: '{text}'. Use digits followed by s, m, h or d (e.g. '30m', '1h30m')"
        )
    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in tokens)


def validate_duration_range(seconds: int, min_seconds: int = 60, max_seconds: int = 86400) -> None:
    """Reject intervals outside [min_seconds, max_seconds].

    Raises:
        DurationParseError: If the interval is out of range
    """
    if seconds < min_seconds:
        raise DurationParseError(
            f"Interval too short: {seconds}s. Minimum is {min_seconds}s."
        )
    if seconds > max_seconds:
        raise DurationParseError(
            f"Interval too long: {seconds}s. Maximum is {max_seconds}s."
        )
