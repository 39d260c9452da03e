"""Chat route: POST /api/chat.

The tenant is taken from the ``X-Tenant-ID`` header, then the body's
``tenant`` field, then the ``?tenant=`` query parameter, then the configured
default. In single-tenant deployments every request maps to the default.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from listing_concierge.app.dependencies import Services, get_services
from listing_concierge.domain.schemas import ChatRequest, ChatResponse, ErrorResponse
from listing_concierge.services.conversation_orchestrator import ChatInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def resolve_tenant(
    settings,
    header_tenant: Optional[str],
    body_tenant: Optional[str],
    query_tenant: Optional[str],
) -> str:
    if not settings.multi_tenant:
        return settings.default_tenant
    for candidate in (header_tenant, body_tenant, query_tenant):
        if candidate and candidate.strip():
            return candidate.strip().lower()
    return settings.default_tenant


@router.post(
    "/chat",
    response_model=ChatResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def chat(
    req: ChatRequest,
    tenant: Optional[str] = Query(default=None),
    x_tenant_id: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
):
    """Answer one visitor message for a tenant."""
    tenant_id = resolve_tenant(services.settings, x_tenant_id, req.tenant, tenant)
    result = await services.orchestrator.handle(
        ChatInput(
            tenant_id=tenant_id,
            message=req.message,
            history=req.history,
            current_url=req.current_url,
            current_property_id=req.current_property_id,
        )
    )
    return result.to_response()
