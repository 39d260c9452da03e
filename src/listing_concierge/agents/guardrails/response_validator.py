"""Response validator: heuristic anti-hallucination checks on model replies.

All checks are non-blocking: findings are returned (and logged/audited by
the caller) but the reply text is never altered.

Checks:
1. COUNT_MISMATCH       "found N properties" where N != number of results
2. FAKE_PRICE           currency amount that matches no result price
3. HALLUCINATED_FEATURE amenity word absent from every result description
4. UNVERIFIED_CLAIM     "available now"-class phrase absent from every description
5. NO_TOOL_USAGE        property-shaped answer although no search ran
"""

import logging
import re
from typing import Sequence

from listing_concierge.domain.enums import WarningKind
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.services.price_parser import parse_price

from .contracts import ValidationWarning

logger = logging.getLogger(__name__)

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "satu": 1, "dua": 2, "tiga": 3, "empat": 4, "lima": 5,
    "enam": 6, "tujuh": 7, "delapan": 8, "sembilan": 9, "sepuluh": 10,
}

_COUNT_NUMBER = r"(\d+|" + "|".join(NUMBER_WORDS) + r")"
COUNT_PATTERN = re.compile(
    r"\b(?:found|have|got|menemukan|ditemukan|ada|terdapat|mendapatkan)\s+"
    + _COUNT_NUMBER
    + r"\s+(?:matching\s+|available\s+|great\s+|buah\s+)?"
    r"(?:properti(?:es)?|property|listings?|homes?|houses?|units?|options?|pilihan|rumah|apartemen|ruko)\b",
    re.IGNORECASE,
)

PRICE_MENTION_PATTERN = re.compile(
    r"(?:rp\.?|idr)\s*\d[\d.,]*(?:\s*(?:milyar|miliar|juta|jt|billion|million)\b)?",
    re.IGNORECASE,
)

# amenity word -> alternative spellings that count as evidence in a description
AMENITY_LEXICON: dict[str, tuple[str, ...]] = {
    "pool": ("pool", "kolam renang"),
    "kolam renang": ("kolam renang", "pool"),
    "garden": ("garden", "taman", "halaman"),
    "taman": ("taman", "garden"),
    "rooftop": ("rooftop", "roof top", "atap"),
    "gym": ("gym", "fitness", "pusat kebugaran"),
    "basement parking": ("basement",),
    "parkir basement": ("basement",),
    "sauna": ("sauna",),
    "jacuzzi": ("jacuzzi",),
    "tennis court": ("tennis", "tenis"),
    "lapangan tenis": ("tennis", "tenis"),
    "playground": ("playground", "taman bermain"),
    "lift": ("lift", "elevator"),
    "private lift": ("private lift",),
    "smart home": ("smart home",),
}

AVAILABILITY_PHRASES = (
    "available now", "available immediately", "ready to move in", "move-in ready",
    "siap huni", "langsung huni", "tersedia sekarang", "bisa langsung ditempati",
)

PROPERTY_FACT_PATTERNS = [
    PRICE_MENTION_PATTERN,
    re.compile(r"\b(?:id|listing)\s*[:#]\s*\w+", re.IGNORECASE),
    re.compile(r"\b\d+\s*(?:kt|km|kamar tidur|bedrooms?|m2|m²|sqm)\b", re.IGNORECASE),
]


def _word_present(word: str, text: str) -> bool:
    return re.search(r"\b" + re.escape(word) + r"\b", text) is not None


def _count_value(token: str) -> int:
    token = token.lower()
    if token.isdigit():
        return int(token)
    return NUMBER_WORDS[token]


def has_property_facts(text: str) -> bool:
    """True when the text states listing-shaped facts (price, id, room counts)."""
    return any(p.search(text or "") for p in PROPERTY_FACT_PATTERNS)


class ResponseValidator:
    """Flags facts in a reply that the tool results do not support."""

    def __init__(self, price_tolerance: float = 0.01):
        self.price_tolerance = price_tolerance

    def validate(
        self,
        response_text: str,
        actual_results: Sequence[PropertyListing],
        searched: bool = True,
        tenant_id: str | None = None,
    ) -> list[ValidationWarning]:
        text = response_text or ""
        lowered = text.lower()

        if not searched:
            if has_property_facts(text):
                return [ValidationWarning(
                    kind=WarningKind.NO_TOOL_USAGE,
                    evidence=[m.group(0) for m in PRICE_MENTION_PATTERN.finditer(text)][:5],
                    tenant_id=tenant_id,
                )]
            return []

        warnings = []
        for check in (self._check_count, self._check_prices, self._check_features, self._check_claims):
            warning = check(text, lowered, actual_results)
            if warning is not None:
                warning.tenant_id = tenant_id
                warnings.append(warning)

        if warnings:
            logger.warning(
                "Validator flagged %s",
                ", ".join(f"{w.kind.value}{w.evidence}" for w in warnings),
            )
        return warnings

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _check_count(self, text, lowered, results):
        mismatched = []
        for match in COUNT_PATTERN.finditer(text):
            claimed = _count_value(match.group(1))
            if claimed != len(results):
                mismatched.append(f"{match.group(0)} (actual {len(results)})")
        if mismatched:
            return ValidationWarning(kind=WarningKind.COUNT_MISMATCH, evidence=mismatched)
        return None

    def _check_prices(self, text, lowered, results):
        known = [v for v in (parse_price(p.price) for p in results) if v is not None]
        fake = []
        for match in PRICE_MENTION_PATTERN.finditer(text):
            value = parse_price(match.group(0))
            if value is None:
                continue
            if not any(abs(value - k) <= k * self.price_tolerance for k in known):
                fake.append(match.group(0).strip())
        if fake:
            return ValidationWarning(kind=WarningKind.FAKE_PRICE, evidence=fake)
        return None

    def _check_features(self, text, lowered, results):
        descriptions = [f"{p.title} {p.description}".lower() for p in results]
        missing = []
        for amenity, evidence_words in AMENITY_LEXICON.items():
            if not _word_present(amenity, lowered):
                continue
            supported = any(
                any(word in desc for word in evidence_words) for desc in descriptions
            )
            if not supported:
                missing.append(amenity)
        if missing:
            return ValidationWarning(kind=WarningKind.HALLUCINATED_FEATURE, evidence=missing)
        return None

    def _check_claims(self, text, lowered, results):
        descriptions = [p.description.lower() for p in results]
        claims = [
            phrase for phrase in AVAILABILITY_PHRASES
            if phrase in lowered and not any(phrase in desc for desc in descriptions)
        ]
        if claims:
            return ValidationWarning(kind=WarningKind.UNVERIFIED_CLAIM, evidence=claims)
        return None
