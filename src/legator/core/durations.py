"""
Duration strings in the "24h" / "1h30m" / "500ms" form used by event
TTLs and configuration values.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}  # seconds per unit

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration string such as ``"24h"`` or ``"1h30m"``.

    Raises ValueError for empty or malformed input. Sub-microsecond
    parts are rounded to the nearest microsecond.
    """
    raw = text.strip()
    if not raw:
        raise ValueError("empty duration")

    sign = 1
    if raw[0] in "+-":
        sign = -1 if raw[0] == "-" else 1
        raw = raw[1:]
    if raw == "0":
        return timedelta(0)

    seconds = 0.0
    pos = 0
    while pos < len(raw):
        match = _COMPONENT.match(raw, pos)
        if not match:
            raise ValueError(f"invalid duration {text!r}")
        seconds += _UNITS[match.group(2)] * float(match.group(1))
        pos = match.end()
    return timedelta(seconds=seconds * sign)


def format_duration(value: timedelta) -> str:
    """Render a timedelta in the same compact form parse_duration accepts."""
    seconds = value.total_seconds()
    if seconds == 0:
        return "0s"
    sign = "-" if seconds < 0 else ""
    seconds = abs(seconds)

    hours, rem = divmod(int(seconds), 3600)
    minutes, secs = divmod(rem, 60)
    frac = seconds - int(seconds)

    out = ""
    if hours:
        out += f"{hours}h"
    if minutes:
        out += f"{minutes}m"
    if secs or frac:
        if frac:
            out += f"{secs + frac:g}s"
        else:
            out += f"{secs}s"
    return sign + out


def coerce_duration(value: object) -> object:
    """pydantic before-validator: accept duration strings and bare seconds."""
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    return value


# Config field type: "30m" / 1800 in, "30m" out when dumped as JSON
Duration = Annotated[
    timedelta,
    BeforeValidator(coerce_duration),
    PlainSerializer(format_duration, return_type=str, when_used="json"),
]
