"""Formatting helpers for measure values and dimension labels."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from typing import Any

import pandas as pd

_FORMAT_PATTERN = re.compile(r"^(?P<comma>,)?(?:\.(?P<precision>\d+))?(?P<type>[fsd%])?$")

_SI_PREFIXES = {
    -24: "y",
    -21: "z",
    -18: "a",
    -15: "f",
    -12: "p",
    -9: "n",
    -6: "µ",
    -3: "m",
    0: "",
    3: "k",
    6: "M",
    9: "G",
    12: "T",
    15: "P",
    18: "E",
    21: "Z",
    24: "Y",
}

# Offsets used to turn a bucketed date id into a half-open range
_DATE_OFFSETS = {
    "year": pd.DateOffset(years=1),
    "quarter": pd.DateOffset(months=3),
    "month": pd.DateOffset(months=1),
    "week": pd.DateOffset(weeks=1),
    "day": pd.DateOffset(days=1),
}


class FormatError(ValueError):
    """Raised for number format strings outside the supported subset."""


def _format_si(value: float, precision: int | None) -> str:
    if value == 0:
        return "0"
    if precision is not None:
        # Round to significant digits first so 999.9 becomes 1.0k, not 1000
        value = float(f"{value:.{precision}g}")
    exponent = int(math.floor(math.log10(abs(value)) / 3)) * 3
    exponent = max(-24, min(24, exponent))
    scaled = value / 10**exponent
    if precision is None:
        text = f"{scaled:.12g}"
    else:
        integer_digits = len(str(int(abs(scaled))))
        text = f"{scaled:.{max(0, precision - integer_digits)}f}"
    return text + _SI_PREFIXES[exponent]


def number_formatter(spec: str) -> Callable[[Any], str]:
    """Build a formatter from a d3-style format string.

    Supported: optional ``,`` grouping, optional ``.N`` precision and one of
    ``f`` (fixed, 0 decimals by default), ``d`` (integer), ``%`` (percentage)
    and ``s`` (SI prefix, N significant digits).

    Raises:
        FormatError: if ``spec`` is outside the supported subset.
    """
    match = _FORMAT_PATTERN.match(spec)
    if match is None:
        raise FormatError(f"Unsupported number format: {spec!r}")

    comma = "," if match["comma"] else ""
    precision = int(match["precision"]) if match["precision"] is not None else None
    kind = match["type"]

    def fmt(value: Any) -> str:
        value = float(value)
        if kind == "s":
            return _format_si(value, precision)
        if kind == "%":
            return format(value, f"{comma}.{precision or 0}%")
        if kind == "d":
            return format(round(value), f"{comma}d")
        if kind == "f" or precision is not None:
            return format(value, f"{comma}.{precision or 0}f")
        return format(value, f"{comma}g")

    return fmt


def format_number(value: Any) -> str:
    """Format a number for labels: grouped thousands, at most two decimals."""
    value = float(value)
    if value.is_integer():
        return format(int(value), ",d")
    return format(value, ",.2f").rstrip("0").rstrip(".")


def date_long(value: Any, interval: str | None = None) -> str:
    ts = pd.Timestamp(value)
    if interval == "year":
        return f"{ts.year}"
    if interval == "quarter":
        return f"Q{ts.quarter} {ts.year}"
    if interval == "month":
        return ts.strftime("%B %Y")
    if interval == "week":
        iso = ts.isocalendar()
        return f"Week {iso.week}, {iso.year}"
    return f"{ts.day} {ts.strftime('%B %Y')}"


def date_short(value: Any, interval: str | None = None) -> str:
    ts = pd.Timestamp(value)
    if interval == "year":
        return f"{ts.year}"
    if interval == "quarter":
        return f"Q{ts.quarter} {ts.strftime('%y')}"
    if interval == "month":
        return ts.strftime("%b %y")
    if interval == "week":
        iso = ts.isocalendar()
        return f"W{iso.week} {str(iso.year)[-2:]}"
    return f"{ts.day} {ts.strftime('%b %y')}"


def date_range(value: Any, interval: str | None = None) -> tuple[str, str]:
    """Return the half-open ``[start, end)`` ISO date range of a date bucket."""
    start = pd.Timestamp(value).normalize()
    end = start + _DATE_OFFSETS.get(interval or "day", _DATE_OFFSETS["day"])
    return start.date().isoformat(), end.date().isoformat()


def format_range(low: Any, high: Any) -> str:
    """Serialize a range cut value."""
    return f"{low}..{high}"


def parse_range(value: Any) -> tuple[str, str] | None:
    """Inverse of ``format_range``; ``None`` for plain values."""
    if isinstance(value, str) and ".." in value:
        low, high = value.split("..", 1)
        return low, high
    return None
