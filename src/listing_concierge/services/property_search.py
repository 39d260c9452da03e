"""Filter and rank a tenant catalog for the search tools.

Filter order: location -> type -> category -> keyword -> bedrooms -> price.
When the primary result is empty the fallback ladder runs once:

1. a location was given: location is re-matched in OR mode over its
   significant tokens ("broadened search");
2. for category house: apartment, then shophouse.

The location ladder is tried first when both apply; the first step that
finds anything ends the ladder, so a result carries at most one note.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.domain.enums import PropertyCategory
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.services.price_parser import price_within

logger = logging.getLogger(__name__)

PERSONAL_DISPLAY_CAP = 3
NETWORK_DISPLAY_CAP = 5

# Region name variants; both sides of a comparison are expanded to the long form.
LOCATION_SYNONYMS = {
    "jaksel": "jakarta selatan",
    "jakbar": "jakarta barat",
    "jaktim": "jakarta timur",
    "jakut": "jakarta utara",
    "jakpus": "jakarta pusat",
    "tangsel": "tangerang selatan",
    "bsd": "bumi serpong damai",
    "south jakarta": "jakarta selatan",
    "west jakarta": "jakarta barat",
    "east jakarta": "jakarta timur",
    "north jakarta": "jakarta utara",
    "central jakarta": "jakarta pusat",
}

STOP_WORDS = frozenset({
    "di", "ke", "dan", "atau", "yang", "daerah", "kawasan", "area", "sekitar", "dekat",
    "kota", "jalan", "jl", "in", "at", "the", "of", "and", "or", "near", "around", "city",
})

CATEGORY_KEYWORDS: dict[PropertyCategory, tuple[str, ...]] = {
    PropertyCategory.HOUSE: ("rumah", "house", "townhouse", "villa"),
    PropertyCategory.APARTMENT: ("apartemen", "apartment", "apartement", "kondominium", "condominium"),
    PropertyCategory.SHOPHOUSE: ("ruko", "rukan", "shophouse"),
    PropertyCategory.LAND: ("tanah", "land", "kavling"),
    PropertyCategory.BUILDING: ("gedung", "building"),
}

# A house sold at land value still counts as a house.
VALUED_FOR_LAND_PHRASES = ("hitung tanah", "harga tanah", "valued for land", "land value")

_SYNONYM_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in sorted(LOCATION_SYNONYMS, key=len, reverse=True)) + r")\b"
)
_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def normalize_location(text: str) -> str:
    return _SYNONYM_PATTERN.sub(lambda m: LOCATION_SYNONYMS[m.group(1)], (text or "").lower())


def location_tokens(location: str) -> list[str]:
    """Tokens of a location query, synonyms expanded, stop-words removed."""
    return [t for t in _TOKEN_PATTERN.findall(normalize_location(location)) if t not in STOP_WORDS]


def significant_tokens(location: str) -> list[str]:
    return [t for t in location_tokens(location) if len(t) >= 3 and not t.isdigit()]


def _has_word(text: str, word: str) -> bool:
    return re.search(r"\b" + re.escape(word) + r"\b", text) is not None


def matches_category(listing: PropertyListing, category: PropertyCategory) -> bool:
    """Inclusive keyword test plus exclusive tests against sibling categories."""
    text = listing.category_text
    if not any(_has_word(text, word) for word in CATEGORY_KEYWORDS[category]):
        return False
    for sibling, words in CATEGORY_KEYWORDS.items():
        if sibling == category:
            continue
        if (
            category == PropertyCategory.HOUSE
            and sibling == PropertyCategory.LAND
            and any(phrase in text for phrase in VALUED_FOR_LAND_PHRASES)
        ):
            continue
        if any(_has_word(text, word) for word in words):
            return False
    return True


@dataclass(frozen=True)
class SearchCriteria:
    """Normalized search arguments shared by both search tools."""

    location: Optional[str] = None
    max_price: Optional[float] = None
    type: Optional[str] = None
    min_bedrooms: Optional[int] = None
    category: Optional[PropertyCategory] = None
    keyword: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "SearchCriteria":
        listing_type = getattr(args, "type", None)
        return cls(
            location=args.location,
            max_price=args.max_price,
            type=listing_type.value if listing_type is not None else None,
            min_bedrooms=args.min_bedrooms,
            category=args.property_category,
            keyword=getattr(args, "keyword", None),
        )

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "max_price": self.max_price,
            "type": self.type,
            "min_bedrooms": self.min_bedrooms,
            "property_category": self.category.value if self.category else None,
            "keyword": self.keyword,
        }


@dataclass
class SearchOutcome:
    results: list[PropertyListing] = field(default_factory=list)
    total_matches: int = 0
    fallback_note: str = ""
    fallback_kind: Optional[str] = None  # location | apartment | shophouse


class PropertySearchEngine:
    """Stateless filter pipeline over an immutable catalog snapshot."""

    def filter(
        self,
        catalog: Sequence[PropertyListing],
        criteria: SearchCriteria,
        location_mode: str = "all",
    ) -> list[PropertyListing]:
        results = list(catalog)

        if criteria.location:
            tokens = (
                location_tokens(criteria.location)
                if location_mode == "all"
                else significant_tokens(criteria.location)
            )
            if tokens:
                results = [p for p in results if self._location_match(p, tokens, location_mode)]

        if criteria.type:
            wanted = criteria.type.lower()
            results = [p for p in results if p.type.lower() == wanted]

        if criteria.category:
            results = [p for p in results if matches_category(p, criteria.category)]

        if criteria.keyword:
            keyword = criteria.keyword.lower()
            results = [p for p in results if keyword in f"{p.title} {p.description}".lower()]

        if criteria.min_bedrooms:
            # Unknown bedroom counts are kept.
            results = [p for p in results if p.bedrooms is None or p.bedrooms >= criteria.min_bedrooms]

        if criteria.max_price is not None:
            results = [p for p in results if price_within(p.price, criteria.max_price)]

        return results

    @staticmethod
    def _location_match(listing: PropertyListing, tokens: list[str], mode: str) -> bool:
        haystack = set(_TOKEN_PATTERN.findall(normalize_location(listing.searchable_text)))
        if mode == "any":
            return any(t in haystack for t in tokens)
        return all(t in haystack for t in tokens)

    def search(
        self,
        catalog: Sequence[PropertyListing],
        criteria: SearchCriteria,
        limit: int = PERSONAL_DISPLAY_CAP,
        allow_fallback: bool = True,
        language: str = "id",
    ) -> SearchOutcome:
        matches = self.filter(catalog, criteria)
        if matches or not allow_fallback:
            logger.info("Search %s: %d matches", criteria.to_dict(), len(matches))
            return SearchOutcome(results=matches[:limit], total_matches=len(matches))

        if criteria.location and significant_tokens(criteria.location):
            broadened = self.filter(catalog, criteria, location_mode="any")
            if broadened:
                logger.info("Search broadened location %r: %d matches", criteria.location, len(broadened))
                return SearchOutcome(
                    results=broadened[:limit],
                    total_matches=len(broadened),
                    fallback_note=get_text("fallback_location", language, location=criteria.location),
                    fallback_kind="location",
                )

        if criteria.category == PropertyCategory.HOUSE:
            for substitute, note_key in (
                (PropertyCategory.APARTMENT, "fallback_apartment"),
                (PropertyCategory.SHOPHOUSE, "fallback_shophouse"),
            ):
                alternatives = self.filter(catalog, replace(criteria, category=substitute))
                if alternatives:
                    logger.info("No houses found; showing %d %s listings", len(alternatives), substitute.value)
                    return SearchOutcome(
                        results=alternatives[:limit],
                        total_matches=len(alternatives),
                        fallback_note=get_text(note_key, language),
                        fallback_kind=substitute.value,
                    )

        logger.info("Search %s: no matches after fallbacks", criteria.to_dict())
        return SearchOutcome()
