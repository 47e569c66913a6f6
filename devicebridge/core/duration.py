"""Duration strings in the "1h2m3.5s" form used by driver parameters."""

from __future__ import annotations

import re

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

# Longest units first so "ms" wins over "m"
_TERM = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


class DurationError(ValueError):
    pass


def parse_duration(text: str) -> float:
    """Parse a duration string and return seconds.

    Accepts an optional sign followed by one or more ``<number><unit>``
    terms, e.g. ``"30s"``, ``"1m30s"``, ``"250ms"``, ``"-1.5h"``. The bare
    string ``"0"`` is also accepted.
    """
    if not isinstance(text, str):
        raise DurationError(f"invalid duration {text!r}")

    s = text.strip()
    orig = s
    sign = 1.0
    if s[:1] in ("+", "-"):
        if s[0] == "-":
            sign = -1.0
        s = s[1:]

    if s == "0":
        return 0.0
    if not s:
        raise DurationError(f"invalid duration {orig!r}")

    total = 0.0
    pos = 0
    while pos < len(s):
        m = _TERM.match(s, pos)
        if m is None:
            raise DurationError(f"invalid duration {orig!r}")
        number, unit = m.groups()
        total += float(number) * _UNITS[unit]
        pos = m.end()

    return sign * total
