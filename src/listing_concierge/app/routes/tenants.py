"""Tenant administration routes.

POST /api/tenants                       register (or reactivate) a tenant
POST /api/tenants/{tenant_id}/deactivate
PUT  /api/tenants/{tenant_id}/hierarchy office/national parents
PUT  /api/tenants/{tenant_id}/cobroke   co-brokerage switch and partners
GET  /api/tenants/{tenant_id}/usage     quota figures for the current window
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from listing_concierge.app.dependencies import Services, get_services
from listing_concierge.domain.schemas import (
    CoBrokerageUpdate,
    HierarchyUpdate,
    TenantCreate,
    TenantResponse,
    UsageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


async def _require_tenant(services: Services, tenant_id: str):
    tenant = await services.directory.get(tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=f"Tenant {tenant_id} not found")
    return tenant


@router.post("", response_model=TenantResponse, status_code=201)
async def register_tenant(body: TenantCreate, services: Services = Depends(get_services)):
    tenant = await services.directory.register(
        body.id.strip().lower(),
        display_name=body.display_name,
        plan=body.plan.value,
        agent_email=body.agent_email,
    )
    return TenantResponse.model_validate(tenant)


@router.post("/{tenant_id}/deactivate", response_model=TenantResponse)
async def deactivate_tenant(tenant_id: str, services: Services = Depends(get_services)):
    tenant = await services.directory.deactivate(tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail=f"Tenant {tenant_id} not found")
    return TenantResponse.model_validate(tenant)


@router.put("/{tenant_id}/hierarchy")
async def update_hierarchy(tenant_id: str, body: HierarchyUpdate, services: Services = Depends(get_services)):
    await _require_tenant(services, tenant_id)
    entry = await services.directory.set_hierarchy(tenant_id, body.office_tenant_id, body.national_tenant_id)
    return {
        "tenant_id": tenant_id,
        "office_tenant_id": entry.office_tenant_id,
        "national_tenant_id": entry.national_tenant_id,
    }


@router.put("/{tenant_id}/cobroke")
async def update_cobrokerage(tenant_id: str, body: CoBrokerageUpdate, services: Services = Depends(get_services)):
    await _require_tenant(services, tenant_id)
    config = await services.directory.set_cobrokerage(tenant_id, body.enabled, body.shared_tenants)
    return {
        "tenant_id": tenant_id,
        "enabled": config.enabled,
        "shared_tenants": sorted(config.shared_tenants),
    }


@router.get("/{tenant_id}/usage", response_model=UsageResponse)
async def tenant_usage(tenant_id: str, services: Services = Depends(get_services)):
    tenant = await _require_tenant(services, tenant_id)
    status = await services.usage.check(tenant_id, tenant.plan)
    return UsageResponse(
        tenant_id=tenant_id,
        plan=status.plan,
        used=status.used,
        limit=status.limit,
        percentage=status.percentage,
        exceeded=status.exceeded,
        warning=status.warning,
        request_count=status.request_count,
        window_start=status.window_start,
    )
