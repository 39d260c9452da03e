"""Catalog filtering and the fallback ladder."""

import pytest

from listing_concierge.domain.enums import PropertyCategory
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.domain.schemas import SearchPropertiesArgs
from listing_concierge.services.property_search import (
    PropertySearchEngine,
    SearchCriteria,
    matches_category,
    normalize_location,
    significant_tokens,
)


@pytest.fixture
def catalog(sample_records):
    return tuple(PropertyListing.from_record(r) for r in sample_records)


@pytest.fixture
def engine():
    return PropertySearchEngine()


def _ids(listings):
    return [p.id for p in listings]


class TestFilter:
    def test_location_price_category(self, engine, catalog):
        criteria = SearchCriteria(location="Jakarta Selatan", max_price=500_000_000, category=PropertyCategory.HOUSE)
        assert _ids(engine.filter(catalog, criteria)) == ["101"]

    def test_location_synonym(self, engine, catalog):
        criteria = SearchCriteria(location="jaksel", category=PropertyCategory.HOUSE)
        assert _ids(engine.filter(catalog, criteria)) == ["101", "102"]

    def test_every_location_token_must_match(self, engine, catalog):
        # "Tangerang Selatan" shares "selatan" with Jakarta Selatan listings.
        assert _ids(engine.filter(catalog, SearchCriteria(location="Tangerang Selatan"))) == ["106"]

    def test_type(self, engine, catalog):
        assert _ids(engine.filter(catalog, SearchCriteria(type="Rent"))) == ["105"]

    def test_min_bedrooms_keeps_unknown(self, engine, catalog):
        assert _ids(engine.filter(catalog, SearchCriteria(min_bedrooms=4))) == ["102", "104", "105", "106"]

    def test_keyword(self, engine, catalog):
        assert _ids(engine.filter(catalog, SearchCriteria(keyword="kolam renang"))) == ["102"]

    def test_m_unit_price_exceeding_budget_is_excluded(self, engine, make_listing):
        catalog = (make_listing("1", title="Rumah A", price="Rp 850 M"), make_listing("2", title="Rumah B", price="Rp 450 Juta"))
        criteria = SearchCriteria(max_price=500_000_000, category=PropertyCategory.HOUSE)
        assert _ids(engine.filter(catalog, criteria)) == ["2"]

    def test_unparseable_price_is_kept(self, engine, catalog):
        criteria = SearchCriteria(max_price=1_000_000_000, category=PropertyCategory.LAND)
        assert _ids(engine.filter(catalog, criteria)) == ["106"]


class TestCategory:
    def test_house_valued_for_land_is_still_a_house(self, make_listing):
        listing = make_listing("1", title="Rumah Tua Hitung Tanah Cipete")
        assert matches_category(listing, PropertyCategory.HOUSE)
        assert matches_category(listing, PropertyCategory.LAND) is False

    def test_mixed_keywords_are_excluded(self, make_listing):
        listing = make_listing("1", title="Tanah bonus rumah tua")
        assert not matches_category(listing, PropertyCategory.HOUSE)

    def test_apartment(self, make_listing):
        assert matches_category(make_listing("1", title="Apartemen Taman Anggrek"), PropertyCategory.APARTMENT)


class TestSearch:
    def test_limit_and_total(self, engine, catalog):
        outcome = engine.search(catalog, SearchCriteria(), limit=3)
        assert len(outcome.results) == 3
        assert outcome.total_matches == 6
        assert outcome.fallback_note == ""

    def test_location_broadening(self, engine, catalog):
        outcome = engine.search(catalog, SearchCriteria(location="Kemang Raya"))
        assert _ids(outcome.results) == ["103"]
        assert outcome.fallback_kind == "location"
        assert "Kemang Raya" in outcome.fallback_note

    def test_house_falls_back_to_apartment(self, engine, catalog):
        criteria = SearchCriteria(location="Kemang", max_price=400_000_000, category=PropertyCategory.HOUSE)
        outcome = engine.search(catalog, criteria, language="en")
        assert _ids(outcome.results) == ["103"]
        assert outcome.fallback_kind == "apartment"
        assert "apartments" in outcome.fallback_note

    def test_house_falls_back_to_shophouse(self, engine, catalog):
        criteria = SearchCriteria(location="Tangerang", category=PropertyCategory.HOUSE)
        outcome = engine.search(catalog, criteria)
        assert _ids(outcome.results) == ["104"]
        assert outcome.fallback_kind == "shophouse"
        assert "ruko" in outcome.fallback_note

    def test_no_fallback_when_disabled(self, engine, catalog):
        criteria = SearchCriteria(location="Kemang Raya")
        outcome = engine.search(catalog, criteria, allow_fallback=False)
        assert outcome.results == []
        assert outcome.fallback_kind is None

    def test_nothing_anywhere(self, engine, catalog):
        outcome = engine.search(catalog, SearchCriteria(location="Surabaya", category=PropertyCategory.HOUSE))
        assert outcome.results == []
        assert outcome.total_matches == 0
        assert outcome.fallback_note == ""

    def test_empty_catalog(self, engine):
        assert engine.search((), SearchCriteria(location="Jakarta")).results == []


class TestCriteria:
    def test_from_tool_args(self):
        args = SearchPropertiesArgs.model_validate({
            "location": "Jakarta Selatan",
            "max_price": "500 juta",
            "type": "dijual",
            "min_bedrooms": 0,
            "property_category": "rumah",
            "keyword": " ",
        })
        criteria = SearchCriteria.from_args(args)
        assert criteria == SearchCriteria(
            location="Jakarta Selatan",
            max_price=500_000_000,
            type="Sale",
            min_bedrooms=None,
            category=PropertyCategory.HOUSE,
            keyword=None,
        )
        assert criteria.to_dict()["property_category"] == "house"


class TestLocationHelpers:
    def test_normalize(self):
        assert normalize_location("Rumah di Jaksel") == "rumah di jakarta selatan"

    def test_significant_tokens(self):
        assert significant_tokens("di Jl. Kemang 5 Raya") == ["kemang", "raya"]
