"""Per-tenant cached property catalogs.

``resolve`` returns an immutable snapshot (a tuple of frozen listings). On a
miss or after the TTL the pluggable source is read, descriptions are
truncated and the cache entry is replaced by reference, so concurrent readers
never see a half-built list. A push notification can invalidate one tenant
early via ``invalidate``.
"""

import asyncio
import logging
from typing import Optional

from listing_concierge.domain.listing import PropertyListing
from listing_concierge.infra.cache import Cache, TTLCache
from listing_concierge.services.property_sources import PropertySource, PropertySourceNotFound

logger = logging.getLogger(__name__)

Catalog = tuple[PropertyListing, ...]


class TenantPropertyStore:
    """Resolves tenant ids to cached catalog snapshots."""

    def __init__(
        self,
        source: PropertySource,
        ttl_seconds: float = 3600,
        cache: Optional[Cache[Catalog]] = None,
        single_tenant: Optional[str] = None,
    ):
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.cache: Cache[Catalog] = cache if cache is not None else TTLCache(ttl_seconds)
        # When set, every tenant id collapses onto this one implicit tenant.
        self.single_tenant = single_tenant
        self._locks: dict[str, asyncio.Lock] = {}

    def _key(self, tenant_id: str) -> str:
        return self.single_tenant or tenant_id

    async def resolve(self, tenant_id: str) -> Catalog:
        key = self._key(tenant_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # Another request may have refreshed while we waited.
            cached = self.cache.get(key)
            if cached is not None:
                return cached
            catalog = await self._load(key)
            self.cache.put(key, catalog, self.ttl_seconds)
            return catalog

    async def _load(self, tenant_id: str) -> Catalog:
        try:
            records = await self.source.load(tenant_id)
        except PropertySourceNotFound:
            logger.warning("No property catalog found for tenant %s", tenant_id)
            return ()

        listings = []
        for record in records:
            listing = PropertyListing.from_record(record)
            if not listing.id:
                logger.debug("Skipping record without id for %s: %.80s", tenant_id, record)
                continue
            listings.append(listing)
        logger.info("Catalog refreshed for %s: %d listings", tenant_id, len(listings))
        return tuple(listings)

    def invalidate(self, tenant_id: str) -> bool:
        """Drop one tenant's snapshot so the next resolve reloads it."""
        dropped = self.cache.invalidate(self._key(tenant_id))
        logger.info("Catalog invalidated for %s (was cached: %s)", tenant_id, dropped)
        return dropped

    async def find(self, tenant_id: str, property_id: str) -> Optional[PropertyListing]:
        """Look up one listing by id or co-brokerage listing id."""
        wanted = str(property_id).strip().lower()
        for listing in await self.resolve(tenant_id):
            if listing.id.lower() == wanted or (listing.listing_id or "").lower() == wanted:
                return listing
        return None
