"""Parsing and formatting of duration strings such as ``1h30m`` or ``250ms``."""

from __future__ import annotations

import re
from datetime import timedelta

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_MAX_NANOS = (1 << 63) - 1
_COMPONENT_RE = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")


def parse_duration(text: str) -> timedelta:
    """Parse a signed sequence of decimal numbers with units into a timedelta.

    Valid units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m`` and ``h``.
    Raises ValueError for malformed input.
    """
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f'invalid duration "{text}"')

    total = 0
    pos = 0
    while pos < len(rest):
        match = _COMPONENT_RE.match(rest, pos)
        whole, frac, unit = match.groups()
        if not whole and not frac:
            raise ValueError(f'invalid duration "{text}"')
        if not unit:
            raise ValueError(f'missing unit in duration "{text}"')
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f'unknown unit "{unit}" in duration "{text}"')
        nanos = int(whole or "0") * scale
        if frac:
            nanos += int(frac) * scale // 10 ** len(frac)
        total += nanos
        limit = _MAX_NANOS + 1 if negative else _MAX_NANOS
        if total > limit:
            raise ValueError(f'invalid duration "{text}"')
        pos = match.end()

    result = timedelta(microseconds=total // 1000)
    return -result if negative else result


def _with_fraction(value: int, scale: int) -> str:
    whole, remainder = divmod(value, scale)
    if not remainder:
        return str(whole)
    width = len(str(scale)) - 1
    digits = str(remainder).rjust(width, "0").rstrip("0")
    return f"{whole}.{digits}"


def format_duration(value: timedelta) -> str:
    """Format a timedelta the way ``parse_duration`` reads it, e.g. ``1h0m0s``."""
    nanos = (value // timedelta(microseconds=1)) * 1000
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)

    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        return f"{sign}{_with_fraction(nanos, 1_000)}\u00b5s"
    if nanos < 1_000_000_000:
        return f"{sign}{_with_fraction(nanos, 1_000_000)}ms"

    seconds, frac_nanos = divmod(nanos, 1_000_000_000)
    text = _with_fraction((seconds % 60) * 1_000_000_000 + frac_nanos, 1_000_000_000) + "s"
    minutes = seconds // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text