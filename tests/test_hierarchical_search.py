"""Co-brokerage cascade over office and national catalogs."""

import pytest

from conftest import MemorySource, listing_record
from listing_concierge.domain.enums import CatalogLevel, PropertyCategory
from listing_concierge.services.hierarchical_search import HierarchicalSearchCoordinator
from listing_concierge.services.property_search import SearchCriteria
from listing_concierge.services.property_store import TenantPropertyStore
from listing_concierge.services.tenant_directory import TenantDirectory

PERSONAL = "budi.example.co.id"
OFFICE = "office-selatan.example.co.id"
NATIONAL = "national.example.co.id"
PEER = "sari.example.co.id"


def _cobroke_record(id, title, location, price, host):
    return listing_record(
        id, title, location, price,
        url=f"https://{host}/listing/{id}",
        listingId=f"RW-{id}",
        image=f"https://cdn.{host}/{id}.jpg",
        eflyer=f"https://cdn.{host}/{id}.pdf",
    )


@pytest.fixture
def network_source():
    return MemorySource({
        OFFICE: [_cobroke_record("o1", "Rumah Depok Asri", "Depok, Jawa Barat", "Rp 800 Juta", OFFICE)],
        NATIONAL: [
            _cobroke_record("n1", "Rumah Bekasi Timur", "Bekasi, Jawa Barat", "Rp 600 Juta", NATIONAL),
            _cobroke_record("n2", "Apartemen Bogor Valley", "Bogor, Jawa Barat", "Rp 400 Juta", NATIONAL),
        ],
        PEER: [_cobroke_record("p1", "Rumah Cibubur", "Cibubur, Jakarta Timur", "Rp 900 Juta", PEER)],
    })


@pytest.fixture
async def directory(session_factory):
    directory = TenantDirectory(session_factory)
    for tenant_id in (PERSONAL, OFFICE, NATIONAL, PEER):
        await directory.register(tenant_id)
    return directory


@pytest.fixture
def coordinator(network_source, directory):
    return HierarchicalSearchCoordinator(TenantPropertyStore(network_source), directory)


async def _enable(directory, shared=()):
    await directory.set_cobrokerage(PERSONAL, True, list(shared))


class TestDisabled:
    async def test_refuses_without_cobrokerage(self, coordinator, network_source):
        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(location="Depok"))
        assert result.results == []
        assert result.note == "Pencarian di database kantor tidak tersedia untuk akun ini."
        assert network_source.loads == []


class TestHierarchy:
    async def test_office_level_wins_and_national_is_not_loaded(self, coordinator, directory, network_source):
        await _enable(directory)
        await directory.set_hierarchy(PERSONAL, OFFICE, NATIONAL)

        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(category=PropertyCategory.HOUSE))

        assert result.level_used == 2
        assert result.source_tenant == OFFICE
        assert network_source.loads == [OFFICE]
        listing = result.results[0]
        assert listing.url is None
        assert listing.source_label == "Office"
        assert listing.to_public_dict()["listingId"] == "RW-o1"
        assert listing.to_public_dict()["eflyer"] == f"https://cdn.{OFFICE}/o1.pdf"
        assert "url" not in listing.to_public_dict()

    async def test_falls_through_to_national(self, coordinator, directory):
        await _enable(directory)
        await directory.set_hierarchy(PERSONAL, OFFICE, NATIONAL)

        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(location="Bekasi"))

        assert result.level_used == 3
        assert [p.id for p in result.results] == ["n1"]
        assert result.results[0].source_label == "National"
        assert result.searched_tenants == [OFFICE, NATIONAL]

    async def test_nothing_found(self, coordinator, directory):
        await _enable(directory)
        await directory.set_hierarchy(PERSONAL, OFFICE, NATIONAL)

        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(location="Surabaya"), language="en")

        assert result.results == []
        assert result.level_used is None
        assert result.note == "No matching listings in the office or national database."

    async def test_levels_do_not_broaden(self, coordinator, directory):
        await _enable(directory)
        await directory.set_hierarchy(PERSONAL, OFFICE, None)
        # Location broadening would match "Depok"; the cascade never broadens.
        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(location="Depok Lama"))
        assert result.results == []


class TestPeers:
    async def test_all_active_peers_without_hierarchy(self, coordinator, directory):
        await _enable(directory)
        assert await coordinator.priority_list(PERSONAL) == [
            (NATIONAL, CatalogLevel.OFFICE),
            (OFFICE, CatalogLevel.OFFICE),
            (PEER, CatalogLevel.OFFICE),
        ]

    async def test_shared_tenants_narrow_the_peers(self, coordinator, directory):
        await _enable(directory, shared=[PEER])
        result = await coordinator.cascade_search(PERSONAL, SearchCriteria(location="Cibubur"))
        assert result.source_tenant == PEER
        assert result.searched_tenants == [PEER]

    async def test_deactivated_peer_is_skipped(self, coordinator, directory):
        await _enable(directory)
        await directory.deactivate(PEER)
        assert PEER not in [t for t, _ in await coordinator.priority_list(PERSONAL)]
