"""Tenant registry: plans, activation, office hierarchy and co-brokerage config.

Each call opens its own short session from the injected factory so the chat
path never holds a transaction across model round trips.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select

from listing_concierge.domain.enums import Plan
from listing_concierge.domain.models import CoBrokerageConfig, OfficeHierarchy, Tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyEntry:
    office_tenant_id: Optional[str] = None
    national_tenant_id: Optional[str] = None


@dataclass(frozen=True)
class CoBrokerageSettings:
    enabled: bool = False
    shared_tenants: frozenset = frozenset()


class TenantDirectory:
    """Reads and writes tenant configuration."""

    def __init__(self, session_factory, default_plan: str = Plan.FREE.value):
        self.session_factory = session_factory
        self.default_plan = default_plan

    # ------------------------------------------------------------------
    # Tenants
    # ------------------------------------------------------------------

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        async with self.session_factory() as session:
            return await session.get(Tenant, tenant_id)

    async def ensure_tenant(self, tenant_id: str) -> Tenant:
        """Return the tenant, creating it on first reference."""
        async with self.session_factory() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is not None:
                return tenant
            tenant = Tenant(id=tenant_id, plan=self.default_plan, is_active=True)
            session.add(tenant)
            await session.commit()
            await session.refresh(tenant)
            logger.info("Tenant %s created on first reference", tenant_id)
            return tenant

    async def register(
        self,
        tenant_id: str,
        display_name: Optional[str] = None,
        plan: str = Plan.FREE.value,
        agent_email: Optional[str] = None,
    ) -> Tenant:
        """Create or update a tenant explicitly. Re-registering reactivates it."""
        async with self.session_factory() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                tenant = Tenant(id=tenant_id)
                session.add(tenant)
            tenant.display_name = display_name
            tenant.plan = plan
            tenant.agent_email = agent_email
            tenant.is_active = True
            tenant.deactivated_at = None
            await session.commit()
            await session.refresh(tenant)
            logger.info("Tenant %s registered (plan=%s)", tenant_id, plan)
            return tenant

    async def deactivate(self, tenant_id: str) -> Optional[Tenant]:
        """Mark a tenant inactive. Tenants are never deleted."""
        async with self.session_factory() as session:
            tenant = await session.get(Tenant, tenant_id)
            if tenant is None:
                return None
            tenant.is_active = False
            tenant.deactivated_at = datetime.now(timezone.utc)
            await session.commit()
            logger.info("Tenant %s deactivated", tenant_id)
            return tenant

    async def active_tenant_ids(self, exclude: Optional[str] = None) -> list[str]:
        async with self.session_factory() as session:
            stmt = select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.id)
            if exclude:
                stmt = stmt.where(Tenant.id != exclude)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Hierarchy / co-brokerage
    # ------------------------------------------------------------------

    async def get_hierarchy(self, tenant_id: str) -> Optional[HierarchyEntry]:
        async with self.session_factory() as session:
            row = await session.get(OfficeHierarchy, tenant_id)
            if row is None:
                return None
            return HierarchyEntry(row.office_tenant_id, row.national_tenant_id)

    async def set_hierarchy(
        self,
        tenant_id: str,
        office_tenant_id: Optional[str],
        national_tenant_id: Optional[str],
    ) -> HierarchyEntry:
        async with self.session_factory() as session:
            row = await session.get(OfficeHierarchy, tenant_id)
            if row is None:
                row = OfficeHierarchy(tenant_id=tenant_id)
                session.add(row)
            row.office_tenant_id = office_tenant_id
            row.national_tenant_id = national_tenant_id
            await session.commit()
        return HierarchyEntry(office_tenant_id, national_tenant_id)

    async def get_cobrokerage(self, tenant_id: str) -> CoBrokerageSettings:
        async with self.session_factory() as session:
            row = await session.get(CoBrokerageConfig, tenant_id)
            if row is None:
                return CoBrokerageSettings()
            return CoBrokerageSettings(bool(row.enabled), frozenset(row.shared_tenants or ()))

    async def set_cobrokerage(self, tenant_id: str, enabled: bool, shared_tenants: list[str]) -> CoBrokerageSettings:
        async with self.session_factory() as session:
            row = await session.get(CoBrokerageConfig, tenant_id)
            if row is None:
                row = CoBrokerageConfig(tenant_id=tenant_id)
                session.add(row)
            row.enabled = enabled
            row.shared_tenants = sorted(set(shared_tenants))
            await session.commit()
        return CoBrokerageSettings(enabled, frozenset(shared_tenants))
