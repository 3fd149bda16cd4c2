"""Lifetime codec -- human-readable durations stored as integer nanoseconds.

The wire form is the compact ``<n><unit>`` notation (``1h1m0s``, ``15s``,
``1.5ms``). Decoding also accepts a bare number, read as nanoseconds.
Units: ns, us (also µs / μs), ms, s, m, h.
"""

from __future__ import annotations

import math
import re
from datetime import timedelta
from typing import Annotated, Any

from pydantic import BeforeValidator, PlainSerializer

from src.bissy.core.errors import InvalidDurationError

NANOSECOND = 1
MICROSECOND = 1_000 * NANOSECOND
MILLISECOND = 1_000 * MICROSECOND
SECOND = 1_000 * MILLISECOND
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

_UNITS: dict[str, int] = {
    "ns": NANOSECOND,
    "us": MICROSECOND,
    "µs": MICROSECOND,  # micro sign
    "μs": MICROSECOND,  # greek small letter mu
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "h": HOUR,
}

_MAX_NANOSECONDS = (1 << 63) - 1

_COMPONENT = re.compile(r"(?P<int>[0-9]*)(?:\.(?P<frac>[0-9]*))?(?P<unit>[^0-9.]*)")


# ── Parsing ─────────────────────────────────────────────────────────────────


def parse_duration(text: str) -> int:
    """Parse a duration string into nanoseconds.

    Raises:
        InvalidDurationError: on empty input, a component without digits or
            unit, an unknown unit, or overflow.
    """
    original = text
    sign = 1
    if text[:1] in ("-", "+"):
        if text[0] == "-":
            sign = -1
        text = text[1:]

    if text == "0":
        return 0
    if not text:
        raise InvalidDurationError(f"invalid duration {original!r}")

    total = 0
    pos = 0
    while pos < len(text):
        match = _COMPONENT.match(text, pos)
        whole, frac, unit = match.group("int"), match.group("frac"), match.group("unit")
        if not whole and not frac:
            raise InvalidDurationError(f"invalid duration {original!r}")
        if not unit:
            raise InvalidDurationError(f"missing unit in duration {original!r}")
        if unit not in _UNITS:
            raise InvalidDurationError(f"unknown unit {unit!r} in duration {original!r}")

        scale = _UNITS[unit]
        value = int(whole or "0") * scale
        if frac:
            value += int(frac) * scale // 10 ** len(frac)
        total += value
        if total > _MAX_NANOSECONDS:
            raise InvalidDurationError(f"invalid duration {original!r}")
        pos = match.end()

    return sign * total


# ── Formatting ──────────────────────────────────────────────────────────────


def _with_fraction(value: int, precision: int) -> str:
    whole, rest = divmod(value, 10**precision)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(precision, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(nanoseconds: int) -> str:
    """Render nanoseconds in the canonical compact form.

    Durations under one second use the largest sub-second unit that keeps
    the integer part non-zero (``1.5ms``, ``100ns``); longer ones are written
    as hours, minutes and seconds with the leading zero components omitted
    (``1h0m0s``, ``2m30s``, ``1.5s``). Zero is ``0s``.
    """
    if nanoseconds == 0:
        return "0s"

    prefix = "-" if nanoseconds < 0 else ""
    remaining = abs(nanoseconds)

    if remaining < SECOND:
        if remaining < MICROSECOND:
            return f"{prefix}{remaining}ns"
        if remaining < MILLISECOND:
            return f"{prefix}{_with_fraction(remaining, 3)}µs"
        return f"{prefix}{_with_fraction(remaining, 6)}ms"

    total_seconds, _ = divmod(remaining, SECOND)
    minutes, _ = divmod(total_seconds, 60)
    hours, minutes = divmod(minutes, 60)
    seconds = _with_fraction(remaining % MINUTE, 9)

    text = f"{seconds}s"
    if hours or minutes:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return prefix + text


# ── Conversions ─────────────────────────────────────────────────────────────


def timedelta_to_nanoseconds(delta: timedelta) -> int:
    return ((delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds) * 1_000


def decode_duration(value: Any) -> int:
    """Accept a duration string or a numeric nanosecond count."""
    if isinstance(value, bool):
        raise InvalidDurationError("invalid duration")
    if isinstance(value, str):
        return parse_duration(value)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidDurationError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if abs(value) > _MAX_NANOSECONDS:
            raise InvalidDurationError(f"duration {value!r} out of range")
        return int(value)
    raise InvalidDurationError("invalid duration")


def _decode_lifetime(value: Any) -> int:
    nanoseconds = decode_duration(value)
    if nanoseconds < 0:
        raise InvalidDurationError(f"lifetime must not be negative, got {format_duration(nanoseconds)}")
    return nanoseconds


Lifetime = Annotated[
    int,
    BeforeValidator(_decode_lifetime),
    PlainSerializer(format_duration, return_type=str, when_used="json"),
]
"""Non-negative nanosecond count that travels as a duration string."""
