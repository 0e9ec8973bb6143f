"""Normalisation of human-formatted price strings"""

import re
from typing import Optional

from config import CURRENCY_SYMBOLS, DEFAULT_CURRENCY

_GLYPHS = re.compile("[" + re.escape("".join(CURRENCY_SYMBOLS)) + r"\s]")

# Thousands-grouped or plain integer part, optional decimal part, optional magnitude suffix.
# Examples: "150", "1.6K", "1,2K", "1.234,50", "1,234.50", "2M"
_NUMBER = re.compile(r"^(\d{1,3}(?:[.,]\d{3})+|\d+)(?:[.,](\d+))?([KM])?$")

_MAGNITUDE = {"K": 1_000, "M": 1_000_000}


def parse_price(raw: Optional[str]) -> float:
    """
    Convert a formatted price such as "€1.6K" into a number.

    Unparseable or empty input yields 0.0; callers treat zero as "price unknown".
    """
    if not raw or not isinstance(raw, str):
        return 0.0

    cleaned = _GLYPHS.sub("", raw)
    match = _NUMBER.match(cleaned)
    if not match:
        return 0.0

    int_part, dec_part, suffix = match.groups()

    # A single separator followed by exactly three digits is ambiguous ("1.600");
    # with a magnitude suffix it can only be a decimal mantissa.
    if suffix and dec_part is None and len(int_part) > 3 and not int_part.isdigit():
        head, _, tail = re.split(r"([.,])", int_part, maxsplit=1)
        if not re.search(r"[.,]", tail):
            int_part, dec_part = head, tail

    digits = re.sub(r"[.,]", "", int_part)
    number = float(f"{digits}.{dec_part}" if dec_part else digits)

    if suffix:
        number *= _MAGNITUDE[suffix]
    return number


def extract_currency(raw: Optional[str], default: str = DEFAULT_CURRENCY) -> str:
    """Map the leading currency glyph of a price string to its ISO code."""
    if raw and isinstance(raw, str):
        stripped = raw.strip()
        if stripped and stripped[0] in CURRENCY_SYMBOLS:
            return CURRENCY_SYMBOLS[stripped[0]]
    return default
