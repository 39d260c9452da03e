"""Process-wide service singletons, built once from settings.

Routes depend on ``get_services``; tests swap it out through
``app.dependency_overrides``.
"""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from listing_concierge.agents.guardrails import (
    ResponseSanitizer,
    ResponseValidator,
    SecurityScreen,
    build_security_screen,
)
from listing_concierge.agents.model_gateway import ModelGateway, build_model_gateway
from listing_concierge.agents.prompts.concierge import build_system_prompt
from listing_concierge.app.config import Settings, get_settings
from listing_concierge.domain.enums import Plan
from listing_concierge.infra.database import async_session
from listing_concierge.services.conversation_context import ConversationContextBuilder
from listing_concierge.services.conversation_orchestrator import ConversationOrchestrator
from listing_concierge.services.feedback_service import FeedbackService
from listing_concierge.services.hierarchical_search import HierarchicalSearchCoordinator
from listing_concierge.services.incident_log import IncidentLog
from listing_concierge.services.property_sources import build_property_source
from listing_concierge.services.property_store import TenantPropertyStore
from listing_concierge.services.tenant_directory import TenantDirectory
from listing_concierge.services.token_usage import TokenUsageTracker
from listing_concierge.services.tool_dispatcher import ToolDispatcher


@dataclass
class Services:
    settings: Settings
    screen: SecurityScreen
    store: TenantPropertyStore
    directory: TenantDirectory
    usage: TokenUsageTracker
    gateway: ModelGateway
    feedback: FeedbackService
    incident_log: IncidentLog
    orchestrator: ConversationOrchestrator


def build_services(settings: Settings, session_factory=async_session, gateway: Optional[ModelGateway] = None) -> Services:
    """Wire every component; ``gateway`` may be injected (tests, alternate clients)."""
    screen = build_security_screen(settings)
    store = TenantPropertyStore(
        build_property_source(settings),
        ttl_seconds=settings.property_cache_ttl_seconds,
        single_tenant=None if settings.multi_tenant else settings.default_tenant,
    )
    directory = TenantDirectory(session_factory)
    usage = TokenUsageTracker(
        {plan.value: settings.plan_limit(plan.value) for plan in Plan},
        window=timedelta(days=settings.quota_window_days),
        warning_ratio=settings.quota_warning_ratio,
        serialize_per_tenant=settings.usage_serialize_per_tenant,
    )
    gateway = gateway or build_model_gateway(settings)
    feedback = FeedbackService(session_factory)
    incident_log = IncidentLog(session_factory)
    dispatcher = ToolDispatcher(
        store,
        HierarchicalSearchCoordinator(store, directory),
        incident_log,
        fallback_agent_email=settings.agent_notification_email,
    )
    orchestrator = ConversationOrchestrator(
        screen=screen,
        directory=directory,
        usage=usage,
        gateway=gateway,
        context_builder=ConversationContextBuilder(
            feedback,
            timezone=settings.timezone,
            default_language=settings.default_language,
        ),
        dispatcher=dispatcher,
        incident_log=incident_log,
        system_prompt=build_system_prompt(),
        validator=ResponseValidator(),
        sanitizer=ResponseSanitizer(settings.allowed_link_domains_list),
        default_language=settings.default_language,
    )
    return Services(
        settings=settings,
        screen=screen,
        store=store,
        directory=directory,
        usage=usage,
        gateway=gateway,
        feedback=feedback,
        incident_log=incident_log,
        orchestrator=orchestrator,
    )


@lru_cache
def get_services() -> Services:
    """FastAPI dependency: the shared service container."""
    return build_services(get_settings())
