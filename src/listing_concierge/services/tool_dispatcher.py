"""Executes the single tool call the model requested in a turn.

Every outcome is a ``ToolResult`` whose ``payload`` goes back to the model.
Argument validation errors and side-effect failures (catalog source down,
email not sent, unknown property) degrade to soft results; they never fail
the turn.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from listing_concierge.agents.model_gateway import ToolCall
from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.agents.tool_schemas import TOOL_ARGS
from listing_concierge.domain.enums import ToolName
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.domain.schemas import (
    InquiryEmailArgs,
    ScheduleViewingArgs,
    SearchOfficeDatabaseArgs,
    SearchPropertiesArgs,
    VisitorInfoArgs,
)
from listing_concierge.services import email_service
from listing_concierge.services.email_service import EmailMessage
from listing_concierge.services.errors import ToolExecutionError
from listing_concierge.services.hierarchical_search import HierarchicalSearchCoordinator
from listing_concierge.services.incident_log import VISITOR_LEADS, IncidentLog
from listing_concierge.services.property_search import (
    PERSONAL_DISPLAY_CAP,
    PropertySearchEngine,
    SearchCriteria,
)
from listing_concierge.services.property_store import TenantPropertyStore

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, str], Awaitable[bool]]


# ---------------------------------------------------------------------------
# Viewing dates
# ---------------------------------------------------------------------------

# Checked in order: "lusa" must win over "besok", "day after tomorrow" over "tomorrow".
_RELATIVE_DATES: list[tuple[re.Pattern, Callable[[date], date]]] = [
    (re.compile(r"\b(?:lusa|day after tomorrow)\b", re.I), lambda d: d + timedelta(days=2)),
    (re.compile(r"\b(?:besok|tomorrow)\b", re.I), lambda d: d + timedelta(days=1)),
    (re.compile(r"\b(?:minggu depan|next week)\b", re.I), lambda d: d + timedelta(days=7)),
    (re.compile(r"\b(?:hari ini|today)\b", re.I), lambda d: d),
    (re.compile(r"\b(?:akhir pekan|this weekend|weekend)\b", re.I),
     lambda d: d if d.weekday() >= 5 else d + timedelta(days=5 - d.weekday())),
]

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d %B %Y", "%B %d, %Y", "%d %b %Y")


def relative_date(text: str, today: date) -> Optional[date]:
    for pattern, resolve in _RELATIVE_DATES:
        if pattern.search(text or ""):
            return resolve(today)
    return None


def resolve_viewing_date(preferred_date: str, message: str, today: date) -> date:
    """Pick the viewing date.

    A relative phrase in the visitor's message or in ``preferred_date``
    overrides the model's date. An unparseable or past date becomes tomorrow.
    """
    for text in (message, preferred_date):
        resolved = relative_date(text, today)
        if resolved is not None:
            return resolved

    raw = (preferred_date or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
        if parsed < today:
            logger.info("Viewing date %s is in the past; using tomorrow", parsed)
            return today + timedelta(days=1)
        return parsed

    logger.info("Unparseable viewing date %r; using tomorrow", preferred_date)
    return today + timedelta(days=1)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ToolTurn:
    """What the dispatcher needs to know about the current turn."""

    tenant_id: str
    language: str
    message: str
    today: date
    agent_email: Optional[str] = None


@dataclass
class ToolResult:
    name: str
    payload: dict
    properties: list[PropertyListing] = field(default_factory=list)
    evidence: list[PropertyListing] = field(default_factory=list)
    fallback_note: str = ""
    fallback_text: str = ""
    ok: bool = True

    def link_values(self) -> list[str]:
        links = []
        for listing in self.properties + self.evidence:
            links.extend(listing.link_values())
        return links


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class ToolDispatcher:
    def __init__(
        self,
        store: TenantPropertyStore,
        coordinator: HierarchicalSearchCoordinator,
        incident_log: IncidentLog,
        engine: Optional[PropertySearchEngine] = None,
        send_email: EmailSender = email_service.send_email,
        fallback_agent_email: str = "",
    ):
        self.store = store
        self.coordinator = coordinator
        self.incident_log = incident_log
        self.engine = engine or PropertySearchEngine()
        self.send_email = send_email
        self.fallback_agent_email = fallback_agent_email
        self._handlers = {
            ToolName.SEARCH_PROPERTIES: self._search_properties,
            ToolName.SEARCH_OFFICE_DATABASE: self._search_office_database,
            ToolName.COLLECT_VISITOR_INFO: self._collect_visitor_info,
            ToolName.SEND_INQUIRY_EMAIL: self._send_inquiry_email,
            ToolName.SCHEDULE_VIEWING: self._schedule_viewing,
        }

    async def dispatch(self, call: ToolCall, turn: ToolTurn) -> ToolResult:
        try:
            tool = ToolName(call.name)
        except ValueError:
            logger.warning("[%s] Model called unknown tool %r", turn.tenant_id, call.name)
            return ToolResult(
                name=call.name,
                payload={"status": "error", "error": "unknown_tool"},
                fallback_text=get_text("error", turn.language),
                ok=False,
            )

        try:
            args = TOOL_ARGS[tool].model_validate(call.args)
        except ValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
            logger.warning("[%s] Invalid %s arguments: %s", turn.tenant_id, tool.value, fields)
            return ToolResult(
                name=tool.value,
                payload={
                    "status": "error",
                    "error": "invalid_arguments",
                    "fields": fields,
                    "instruction": "Ask the visitor for the missing or invalid details.",
                },
                ok=False,
            )

        logger.info("[%s] Dispatching %s", turn.tenant_id, tool.value)
        try:
            return await self._handlers[tool](args, turn)
        except ToolExecutionError as exc:
            logger.warning("[%s] Tool %s failed softly: %s", turn.tenant_id, tool.value, exc.message)
            return ToolResult(
                name=tool.value,
                payload={"status": "error", "error": exc.message},
                fallback_text=get_text("search_empty", turn.language),
                ok=False,
            )

    # ------------------------------------------------------------------
    # Search tools
    # ------------------------------------------------------------------

    async def _search_properties(self, args: SearchPropertiesArgs, turn: ToolTurn) -> ToolResult:
        try:
            catalog = await self.store.resolve(turn.tenant_id)
        except Exception as exc:
            raise ToolExecutionError(ToolName.SEARCH_PROPERTIES.value, f"catalog unavailable: {exc}") from exc

        outcome = self.engine.search(
            catalog,
            SearchCriteria.from_args(args),
            limit=PERSONAL_DISPLAY_CAP,
            language=turn.language,
        )
        payload = {
            "status": "ok",
            "count": len(outcome.results),
            "total_matches": outcome.total_matches,
            "properties": [p.to_public_dict() for p in outcome.results],
        }
        if outcome.fallback_kind:
            payload["fallback"] = outcome.fallback_kind
            payload["note"] = outcome.fallback_note.strip()
        if not outcome.results:
            payload["message"] = get_text("search_empty", turn.language)
        return ToolResult(
            name=ToolName.SEARCH_PROPERTIES.value,
            payload=payload,
            properties=outcome.results,
            fallback_note=outcome.fallback_note,
            fallback_text=get_text("search_empty", turn.language) if not outcome.results else "",
        )

    async def _search_office_database(self, args: SearchOfficeDatabaseArgs, turn: ToolTurn) -> ToolResult:
        try:
            cascade = await self.coordinator.cascade_search(
                turn.tenant_id, SearchCriteria.from_args(args), turn.language
            )
        except Exception as exc:
            raise ToolExecutionError(ToolName.SEARCH_OFFICE_DATABASE.value, f"cascade failed: {exc}") from exc

        payload = {
            "status": "ok",
            "count": len(cascade.results),
            "level": cascade.level_used,
            "source_tenant": cascade.source_tenant,
            "properties": [p.to_public_dict() for p in cascade.results],
        }
        if cascade.note:
            payload["message"] = cascade.note
        return ToolResult(
            name=ToolName.SEARCH_OFFICE_DATABASE.value,
            payload=payload,
            properties=cascade.results,
            fallback_text=cascade.note,
        )

    # ------------------------------------------------------------------
    # Lead tools
    # ------------------------------------------------------------------

    def _agent_email(self, turn: ToolTurn) -> str:
        return turn.agent_email or self.fallback_agent_email

    async def _deliver(self, message: EmailMessage, turn: ToolTurn) -> bool:
        try:
            sent = await self.send_email(message.to, message.subject, message.text)
        except Exception:
            logger.exception("[%s] Email %r raised", turn.tenant_id, message.subject)
            return False
        if not sent:
            logger.warning("[%s] Email %r to %s not sent", turn.tenant_id, message.subject, message.to)
        return bool(sent)

    async def _record_lead(self, turn: ToolTurn, kind: str, details: dict) -> bool:
        record = {
            "tenant_id": turn.tenant_id,
            "kind": kind,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **details,
        }
        return await self.incident_log.append(VISITOR_LEADS, record)

    async def _collect_visitor_info(self, args: VisitorInfoArgs, turn: ToolTurn) -> ToolResult:
        saved = await self._record_lead(
            turn,
            "contact",
            {"name": args.visitor_name, "phone": args.visitor_phone, "email": args.visitor_email},
        )
        emailed = await self._deliver(
            email_service.visitor_lead_message(
                self._agent_email(turn), turn.tenant_id,
                args.visitor_name, args.visitor_phone, args.visitor_email,
            ),
            turn,
        )
        text = get_text("contact_recorded", turn.language)
        return ToolResult(
            name=ToolName.COLLECT_VISITOR_INFO.value,
            payload={"status": "recorded", "saved": saved, "agent_notified": emailed, "message": text},
            fallback_text=text,
        )

    async def _send_inquiry_email(self, args: InquiryEmailArgs, turn: ToolTurn) -> ToolResult:
        await self._record_lead(
            turn,
            "inquiry",
            {
                "name": args.visitor_name,
                "phone": args.visitor_phone,
                "email": args.visitor_email,
                "inquiry": args.inquiry_summary,
            },
        )
        emailed = await self._deliver(
            email_service.inquiry_message(
                self._agent_email(turn), turn.tenant_id,
                args.visitor_name, args.visitor_phone, args.visitor_email,
                args.inquiry_summary, args.conversation_history,
            ),
            turn,
        )
        text = get_text("inquiry_recorded", turn.language)
        return ToolResult(
            name=ToolName.SEND_INQUIRY_EMAIL.value,
            payload={"status": "sent" if emailed else "pending", "message": text},
            fallback_text=text,
        )

    async def _schedule_viewing(self, args: ScheduleViewingArgs, turn: ToolTurn) -> ToolResult:
        viewing_date = resolve_viewing_date(args.preferred_date, turn.message, turn.today)

        try:
            listing = await self.store.find(turn.tenant_id, args.property_id)
        except Exception:
            logger.exception("[%s] Property lookup failed for %s", turn.tenant_id, args.property_id)
            listing = None
        if listing is None:
            logger.warning("[%s] Viewing requested for unknown property %s", turn.tenant_id, args.property_id)

        title = listing.title if listing else f"Property {args.property_id}"
        url = listing.url if listing else None
        date_label = viewing_date.isoformat()

        await self._record_lead(
            turn,
            "viewing",
            {
                "name": args.visitor_name,
                "phone": args.visitor_phone,
                "email": args.visitor_email,
                "property_id": args.property_id,
                "property_found": listing is not None,
                "date": date_label,
                "time": args.preferred_time,
            },
        )

        visitor_emailed = await self._deliver(
            email_service.viewing_confirmation_message(
                args.visitor_email, args.visitor_name, title, date_label, args.preferred_time, turn.language,
            ),
            turn,
        )
        agent_emailed = await self._deliver(
            email_service.viewing_agent_message(
                self._agent_email(turn), turn.tenant_id,
                args.visitor_name, args.visitor_phone, args.visitor_email,
                args.property_id, title, url, date_label, args.preferred_time, args.message,
            ),
            turn,
        )

        text = get_text("viewing_recorded", turn.language)
        payload = {
            "status": "scheduled" if listing is not None else "pending_confirmation",
            "property_id": args.property_id,
            "property_title": title,
            "date": date_label,
            "time": args.preferred_time,
            "confirmation_email_sent": visitor_emailed,
            "agent_notified": agent_emailed,
            "message": text,
        }
        if listing is not None:
            payload["property"] = listing.to_public_dict()
        return ToolResult(
            name=ToolName.SCHEDULE_VIEWING.value,
            payload=payload,
            evidence=[listing] if listing is not None else [],
            fallback_text=text,
        )
