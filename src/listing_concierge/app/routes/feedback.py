"""Feedback route: POST /api/feedback.

Free-text feedback goes through the same security screen as chat messages
(a HIGH/CRITICAL match is refused). Each stored rating gives the model
gateway a chance to step back up the fallback chain.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header

from listing_concierge.agents.guardrails import should_block
from listing_concierge.app.dependencies import Services, get_services
from listing_concierge.app.routes.chat import resolve_tenant
from listing_concierge.domain.schemas import FeedbackRequest, FeedbackResponse
from listing_concierge.services.conversation_context import detect_language
from listing_concierge.services.errors import SecurityBlocked
from listing_concierge.services.incident_log import SECURITY_INCIDENTS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["feedback"])


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    req: FeedbackRequest,
    x_tenant_id: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
):
    tenant_id = resolve_tenant(services.settings, x_tenant_id, req.tenant_id, None)

    free_text = "\n".join(t for t in (req.feedback, req.user_message) if t)
    threats = services.screen.classify(free_text, allowed_domains=[tenant_id])
    if threats:
        blocked = should_block(threats)
        await services.incident_log.append(
            SECURITY_INCIDENTS,
            {
                "tenant_id": tenant_id,
                "source": "feedback",
                "message": free_text[:1000],
                "threats": [t.to_dict() for t in threats],
                "blocked": blocked,
            },
        )
        if blocked:
            raise SecurityBlocked(
                "feedback blocked by security screen",
                language=detect_language(free_text, default=services.settings.default_language),
            )

    await services.feedback.record(
        tenant_id,
        req.rating,
        message_id=req.message_id,
        conversation_id=req.conversation_id,
        user_message=req.user_message,
        ai_response=req.ai_response,
        comment=req.feedback,
    )
    ratings = await services.feedback.recent_ratings(tenant_id, services.gateway.feedback_window)
    upgraded = services.gateway.upgrade_for(tenant_id, ratings)
    return FeedbackResponse(status="recorded", model_upgraded=upgraded)
