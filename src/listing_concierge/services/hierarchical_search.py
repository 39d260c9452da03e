"""Cascading co-brokerage search across office and national catalogs.

The priority list comes from the tenant's hierarchy entry (office = level 2,
national = level 3). Without an entry, every other active tenant is an
unordered level-2 peer, narrowed to ``shared_tenants`` when that set is
configured. Levels are resolved lazily and the cascade stops at the first
level with a match, so later catalogs are never loaded.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.domain.enums import CatalogLevel
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.services.property_search import (
    NETWORK_DISPLAY_CAP,
    PropertySearchEngine,
    SearchCriteria,
)
from listing_concierge.services.property_store import TenantPropertyStore
from listing_concierge.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

LEVEL_LABELS = {
    CatalogLevel.OFFICE: "Office",
    CatalogLevel.NATIONAL: "National",
}


@dataclass
class CascadeResult:
    results: list[PropertyListing] = field(default_factory=list)
    level_used: Optional[int] = None
    source_tenant: Optional[str] = None
    note: str = ""
    searched_tenants: list[str] = field(default_factory=list)


class HierarchicalSearchCoordinator:
    """Runs the office -> national cascade for ``search_office_database``."""

    def __init__(
        self,
        store: TenantPropertyStore,
        directory: TenantDirectory,
        engine: Optional[PropertySearchEngine] = None,
        limit: int = NETWORK_DISPLAY_CAP,
    ):
        self.store = store
        self.directory = directory
        self.engine = engine or PropertySearchEngine()
        self.limit = limit

    async def priority_list(self, tenant_id: str) -> list[tuple[str, CatalogLevel]]:
        """Ordered (tenant, level) pairs to search."""
        hierarchy = await self.directory.get_hierarchy(tenant_id)
        if hierarchy is not None:
            levels = []
            if hierarchy.office_tenant_id:
                levels.append((hierarchy.office_tenant_id, CatalogLevel.OFFICE))
            if hierarchy.national_tenant_id:
                levels.append((hierarchy.national_tenant_id, CatalogLevel.NATIONAL))
            return levels

        config = await self.directory.get_cobrokerage(tenant_id)
        peers = await self.directory.active_tenant_ids(exclude=tenant_id)
        if config.shared_tenants:
            peers = [p for p in peers if p in config.shared_tenants]
        return [(peer, CatalogLevel.OFFICE) for peer in peers]

    async def cascade_search(
        self,
        tenant_id: str,
        criteria: SearchCriteria,
        language: str = "id",
    ) -> CascadeResult:
        config = await self.directory.get_cobrokerage(tenant_id)
        if not config.enabled:
            logger.info("[%s] Co-brokerage search refused: not enabled", tenant_id)
            return CascadeResult(note=get_text("cobroke_disabled", language))

        searched = []
        for source_tenant, level in await self.priority_list(tenant_id):
            searched.append(source_tenant)
            catalog = await self.store.resolve(source_tenant)
            outcome = self.engine.search(catalog, criteria, limit=self.limit, allow_fallback=False)
            if not outcome.results:
                continue

            label = LEVEL_LABELS[level]
            results = [p.for_cobroke(source_tenant, int(level), label) for p in outcome.results]
            logger.info(
                "[%s] Co-brokerage hit at level %d (%s): %d listings",
                tenant_id,
                int(level),
                source_tenant,
                len(results),
            )
            return CascadeResult(
                results=results,
                level_used=int(level),
                source_tenant=source_tenant,
                searched_tenants=searched,
            )

        logger.info("[%s] Co-brokerage search empty across %s", tenant_id, searched)
        return CascadeResult(note=get_text("cobroke_empty", language), searched_tenants=searched)
