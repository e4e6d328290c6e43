"""
Canonical decimal strings for prices and sizes.

The venue rejects exponential notation, so every numeric input is rendered
positionally before it enters an action:

- str: passed through unchanged (treated as already validated)
- int: plain base-10
- Decimal: positional, trailing zeros dropped
- float: shortest round-trip repr, exponent re-expanded by hand
"""

from __future__ import annotations

import math
import re
from decimal import Decimal
from typing import Union

from hlexchange.core.errors import InvalidIntent, NonFiniteValue

DecimalLike = Union[str, int, float, Decimal]

_EXP_RE = re.compile(r"[eE]")


def to_api_decimal(value: DecimalLike) -> str:
    """Convert a decimal-like value to the canonical string the venue accepts."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        raise InvalidIntent(f"Boolean is not a decimal value: {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise NonFiniteValue(value)
        return _strip_fraction(format(value, "f"))
    if isinstance(value, float):
        if not math.isfinite(value):
            raise NonFiniteValue(value)
        return _float_to_decimal(value)
    raise InvalidIntent(f"Unsupported numeric type {type(value).__name__}")


def _strip_fraction(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def _float_to_decimal(value: float) -> str:
    if value == 0:
        return "0"
    text = repr(value)
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]

    if not _EXP_RE.search(text):
        # repr always keeps one fractional digit ("100000.0")
        return sign + _strip_fraction(text)

    mantissa, exponent_part = _EXP_RE.split(text)
    exponent = int(exponent_part)
    integer_part, _, fractional_part = mantissa.partition(".")

    if exponent >= 0:
        if len(fractional_part) <= exponent:
            return sign + integer_part + fractional_part.ljust(exponent, "0")
        # more digits than the exponent shifts: keep a fractional tail
        whole = integer_part + fractional_part[:exponent]
        return sign + _strip_fraction(f"{whole}.{fractional_part[exponent:]}")

    zeros = "0" * (abs(exponent) - 1)
    return sign + _strip_fraction(f"0.{zeros}{integer_part}{fractional_part}")
