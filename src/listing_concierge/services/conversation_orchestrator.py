"""Conversation orchestrator: one inbound chat message -> one safe reply.

Runs the turn as a linear sequence of awaited steps:

    RECEIVED -> SCREENED -> (BLOCKED) -> QUOTA_CHECKED -> (QUOTA_EXCEEDED)
    -> MODEL_INVOKED -> DIRECT_TEXT | TOOL_CALL
    -> [GUARD_RETRY] -> [TOOL_EXECUTED -> MODEL_CONTINUED]
    -> VALIDATED -> SANITIZED -> RETURNED

Security and quota checks run strictly before any model or catalog call.
Terminal failures raise a ``ConciergeError`` subclass; audit and email side
effects never fail the turn.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from listing_concierge.agents.guardrails import (
    ResponseSanitizer,
    ResponseValidator,
    SecurityScreen,
    ValidationWarning,
    has_property_facts,
    should_block,
)
from listing_concierge.agents.guardrails.contracts import Threat
from listing_concierge.agents.guardrails.security_screen import extract_host
from listing_concierge.agents.model_gateway import ChatSession, ModelGateway, ModelReply
from listing_concierge.agents.prompts.concierge import CORRECTIVE_SEARCH_PROMPT
from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.services.conversation_context import (
    ConversationContextBuilder,
    detect_language,
    prune_history,
)
from listing_concierge.services.errors import (
    ChatValidationError,
    ConciergeError,
    QuotaExceeded,
    SecurityBlocked,
)
from listing_concierge.services.incident_log import SECURITY_INCIDENTS, VALIDATION_WARNINGS, IncidentLog
from listing_concierge.services.tenant_directory import TenantDirectory
from listing_concierge.services.token_usage import TokenUsageTracker, UsageStatus
from listing_concierge.services.tool_dispatcher import ToolDispatcher, ToolResult, ToolTurn

logger = logging.getLogger(__name__)

QUERY_VERB_PATTERN = re.compile(
    r"\b(?:cari\w*|mencari|ada|punya|tersedia|rekomendasi\w*|butuh|mau|ingin|tunjukkan|"
    r"looking|find|search|show|recommend\w*|available|any|need|want)\b",
    re.IGNORECASE,
)
PROPERTY_NOUN_PATTERN = re.compile(
    r"\b(?:rumah|apartemen|ruko|tanah|gedung|properti|villa|unit|listing|"
    r"house|houses|apartments?|shophouses?|land|buildings?|propert(?:y|ies)|homes?)\b",
    re.IGNORECASE,
)


def looks_like_unsearched_answer(message: str, reply_text: str) -> bool:
    """Property query phrasing (in the message or the reply) plus listing-shaped facts."""
    if not has_property_facts(reply_text):
        return False
    for text in (message, reply_text):
        if QUERY_VERB_PATTERN.search(text or "") and PROPERTY_NOUN_PATTERN.search(text or ""):
            return True
    return False


@dataclass
class ChatInput:
    tenant_id: str
    message: str
    history: list = field(default_factory=list)
    current_url: Optional[str] = None
    current_property_id: Optional[str] = None


@dataclass
class TurnResult:
    text: str
    properties: Optional[list[dict]] = None
    warning: Optional[str] = None
    language: str = "id"
    tool_name: Optional[str] = None
    threats: list[Threat] = field(default_factory=list)
    validation_warnings: list[ValidationWarning] = field(default_factory=list)
    redactions: list[str] = field(default_factory=list)
    states: list[str] = field(default_factory=list)
    model_name: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    def to_response(self) -> dict:
        body = {"text": self.text}
        if self.properties:
            body["properties"] = self.properties
        if self.warning:
            body["warning"] = self.warning
        return body


class ConversationOrchestrator:
    """Composes the guardrails, quota, model and tools for one chat turn."""

    def __init__(
        self,
        screen: SecurityScreen,
        directory: TenantDirectory,
        usage: TokenUsageTracker,
        gateway: ModelGateway,
        context_builder: ConversationContextBuilder,
        dispatcher: ToolDispatcher,
        incident_log: IncidentLog,
        system_prompt: str,
        validator: Optional[ResponseValidator] = None,
        sanitizer: Optional[ResponseSanitizer] = None,
        default_language: str = "id",
    ):
        self.screen = screen
        self.directory = directory
        self.usage = usage
        self.gateway = gateway
        self.context_builder = context_builder
        self.dispatcher = dispatcher
        self.incident_log = incident_log
        self.system_prompt = system_prompt
        self.validator = validator or ResponseValidator()
        self.sanitizer = sanitizer or ResponseSanitizer()
        self.default_language = default_language

    async def handle(self, chat: ChatInput) -> TurnResult:
        """Run one turn. Every error raised carries the visitor's language."""
        language = detect_language(chat.message, prune_history(chat.history), self.default_language)
        try:
            return await self._turn(chat, language)
        except ConciergeError as exc:
            exc.language = language
            raise
        except Exception as exc:
            logger.exception("[%s] Chat turn failed", chat.tenant_id)
            raise ConciergeError(str(exc), language=language) from exc

    async def _turn(self, chat: ChatInput, language: str) -> TurnResult:
        states = ["RECEIVED"]
        tenant_id = chat.tenant_id

        # --- Security screen --------------------------------------------
        threats = self.screen.classify(chat.message, allowed_domains=[tenant_id])
        states.append("SCREENED")
        if threats:
            blocked = should_block(threats)
            await self._log_incident(tenant_id, chat.message, threats, blocked)
            if blocked:
                states.append("BLOCKED")
                logger.warning(
                    "[%s] Blocked message: %s",
                    tenant_id,
                    ", ".join(f"{t.type.value}/{t.severity.value}" for t in threats),
                )
                raise SecurityBlocked("blocked by security screen", language=language)

        # --- Tenant + quota ----------------------------------------------
        tenant = await self.directory.ensure_tenant(tenant_id)
        if not tenant.is_active:
            raise ChatValidationError("tenant inactive", language=language, text_key="tenant_inactive")

        status = await self.usage.check(tenant_id, tenant.plan)
        states.append("QUOTA_CHECKED")
        if status.exceeded:
            states.append("QUOTA_EXCEEDED")
            raise QuotaExceeded(
                "token quota exceeded",
                language=language,
                used=status.used,
                limit=status.limit,
                percentage=status.percentage,
            )

        # --- Model ---------------------------------------------------------
        context = await self.context_builder.build(
            tenant_id,
            chat.message,
            chat.history,
            current_url=chat.current_url,
            current_property_id=chat.current_property_id,
        )
        language = context.language
        session = self.gateway.open_session(tenant_id, context.history, self.system_prompt)

        try:
            reply = await self.gateway.invoke(session, context.prompt)
            states.append("MODEL_INVOKED")

            if reply.tool_call is None and looks_like_unsearched_answer(chat.message, reply.text):
                states.append("GUARD_RETRY")
                logger.warning("[%s] Reply stated listing facts without a search; asking for a tool call", tenant_id)
                reply = await self.gateway.invoke(session, CORRECTIVE_SEARCH_PROMPT)

            tool_result: Optional[ToolResult] = None
            if reply.tool_call is not None:
                states.append("TOOL_CALL")
                tool_result = await self.dispatcher.dispatch(
                    reply.tool_call,
                    ToolTurn(
                        tenant_id=tenant_id,
                        language=language,
                        message=chat.message,
                        today=context.today,
                        agent_email=tenant.agent_email,
                    ),
                )
                states.append("TOOL_EXECUTED")
                reply = await self._continue(session, tool_result)
                states.append("MODEL_CONTINUED")
                text = reply.text or tool_result.fallback_text or get_text("error", language)
                if tool_result.fallback_note and tool_result.fallback_note.strip() not in text:
                    text += tool_result.fallback_note
            else:
                states.append("DIRECT_TEXT")
                text = reply.text or get_text("error", language)
        except Exception:
            await self._record_usage(session, tenant.plan)
            raise

        # --- Guardrails on the way out ---------------------------------------
        evidence = (tool_result.properties + tool_result.evidence) if tool_result else []
        warnings = self.validator.validate(
            text,
            evidence,
            searched=tool_result is not None,
            tenant_id=tenant_id,
        )
        states.append("VALIDATED")
        for warning in warnings:
            await self.incident_log.append(
                VALIDATION_WARNINGS,
                {**warning.to_dict(), "tenant_id": tenant_id, "response_excerpt": text[:500]},
            )

        allowed_hosts = self._result_hosts(tool_result)
        sanitized = self.sanitizer.sanitize(text, tenant_domain=tenant_id, allowed_domains=allowed_hosts)
        states.append("SANITIZED")

        post_status = await self._record_usage(session, tenant.plan) or status
        states.append("RETURNED")

        result = TurnResult(
            text=sanitized.sanitized,
            properties=[p.to_public_dict() for p in tool_result.properties] if tool_result else None,
            warning=self._quota_warning(post_status, language),
            language=language,
            tool_name=tool_result.name if tool_result else None,
            threats=threats,
            validation_warnings=warnings,
            redactions=sanitized.redactions,
            states=states,
            model_name=reply.model_name,
            input_tokens=session.input_tokens,
            output_tokens=session.output_tokens,
        )
        logger.info(
            "[%s] Turn complete: %s, tool=%s, tokens=%d",
            tenant_id,
            " > ".join(states),
            result.tool_name,
            session.total_tokens,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _continue(self, session: ChatSession, tool_result: ToolResult) -> ModelReply:
        reply = await self.gateway.continue_with(session, tool_result.name, tool_result.payload)
        if reply.tool_call is not None:
            # Only one tool call is honored per turn.
            logger.info("[%s] Ignoring follow-up tool call %s", session.tenant_id, reply.tool_call.name)
        return reply

    async def _log_incident(self, tenant_id: str, message: str, threats: list[Threat], blocked: bool) -> None:
        await self.incident_log.append(
            SECURITY_INCIDENTS,
            {
                "tenant_id": tenant_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "message": message[:1000],
                "threats": [t.to_dict() for t in threats],
                "blocked": blocked,
            },
        )

    async def _record_usage(self, session: ChatSession, plan: str) -> Optional[UsageStatus]:
        if not session.calls:
            return None
        return await self.usage.record(session.tenant_id, session.input_tokens, session.output_tokens, plan)

    @staticmethod
    def _result_hosts(tool_result: Optional[ToolResult]) -> list[str]:
        if tool_result is None:
            return []
        hosts = {extract_host(link) for link in tool_result.link_values()}
        return sorted(h for h in hosts if h)

    @staticmethod
    def _quota_warning(status: UsageStatus, language: str) -> Optional[str]:
        if not status.warning:
            return None
        return get_text("quota_warning", language, percentage=int(status.percentage))
