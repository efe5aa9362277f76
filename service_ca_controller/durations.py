"""Conversion between ``timedelta`` and the Go duration strings cert-manager stores."""

import re
from datetime import timedelta

_UNIT_SECONDS = {
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 1e-3,
    "us": 1e-6,
    "µs": 1e-6,
    "ns": 1e-9,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d+)?)(ms|us|µs|ns|h|m|s)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go duration string such as ``2160h`` or ``1h30m0s``.

    Raises:
        ValueError: if the string is not a valid Go duration
    """
    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    if text == "0":
        return timedelta(0)

    position = 0
    total = 0.0
    for match in _COMPONENT.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=sign * total)


def format_duration(value: timedelta) -> str:
    """
    Render a ``timedelta`` the way Go's ``time.Duration.String`` does.

    The API server normalises ``metav1.Duration`` fields to this form, so
    writing it verbatim keeps stored and computed values comparable.
    """
    seconds = int(value.total_seconds())
    if seconds == 0:
        return "0s"

    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)

    if hours:
        return f"{sign}{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{sign}{minutes}m{secs}s"
    return f"{sign}{secs}s"


def same_duration(left: str | None, right: str | None) -> bool:
    """Compare two Go duration strings by value, tolerating unparsable input."""
    if left is None or right is None:
        return left == right
    try:
        return parse_duration(left) == parse_duration(right)
    except ValueError:
        return left == right
