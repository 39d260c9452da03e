"""Parse localized (Indonesian-style) listing prices into a number.

Examples handled::

    "Rp. 10 Milyar"          -> 10_000_000_000
    "Rp. 1,4 Milyar (nego)"  -> 1_400_000_000
    "Rp. 360 Juta/tahun"     -> 360_000_000
    "Rp 850 M"               -> 850_000_000
    "Rp. 7.750.000.000"      -> 7_750_000_000
    "Rp 1,400,000,000"       -> 1_400_000_000
    "Contact for price"      -> None

A bare "M" is read as million (juta), not milyar.

``None`` means UNPARSEABLE. Price filters treat it as "do not exclude".
"""

import re
from typing import Optional

_BILLION_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:milyar|miliar|billion)\b")
_MILLION_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:juta|jt|million|m)\b")
_CURRENCY_PREFIX = re.compile(r"(?:rp\.?|idr|usd|\$)\s*")
_NUMERAL = re.compile(r"\d[\d.,]*")


def _unit_amount(match: re.Match, multiplier: float) -> float:
    # Rupiah amounts are whole numbers; round away float noise (1.4 * 1e9).
    return float(round(float(match.group(1).replace(",", ".")) * multiplier))


def parse_price(price_text: Optional[str]) -> Optional[float]:
    """Return the numeric amount of a price string, or None when unparseable."""
    if not price_text:
        return None
    text = price_text.lower()

    match = _BILLION_PATTERN.search(text)
    if match:
        return _unit_amount(match, 1e9)
    match = _MILLION_PATTERN.search(text)
    if match:
        return _unit_amount(match, 1e6)

    cleaned = re.sub(r"\s", "", _CURRENCY_PREFIX.sub("", text))
    numeral = _NUMERAL.search(cleaned)
    if not numeral:
        return None
    digits = numeral.group(0).rstrip(".,")

    for separator in (".", ","):
        if digits.count(separator) >= 2:
            digits = digits.replace(separator, "")
    # A lone remaining separator is a thousands separator, not a decimal point.
    digits = digits.replace(".", "").replace(",", "")

    if not digits.isdigit():
        return None
    value = float(digits)
    return value or None


def price_within(price_text: Optional[str], max_price: Optional[float]) -> bool:
    """Inclusive price test: unparseable prices never exclude a listing."""
    if max_price is None:
        return True
    value = parse_price(price_text)
    if value is None:
        return True
    return value <= max_price
