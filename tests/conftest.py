"""Shared test infrastructure for the listing concierge test suite.

Provides:
- session_factory: async SQLite in-memory database with all tables created
- sample_records / make_listing: Indonesian-style catalog fixtures
- MemorySource: in-memory property source counting loads
- email_outbox: recording replacement for the SendGrid sender
- genai_script / FakeGenaiClient: scripted ``client.aio.models.generate_content``
- services: the full component graph wired against the fakes
- client: httpx AsyncClient over the FastAPI app with ``services`` injected
"""

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Optional
from zoneinfo import ZoneInfo

import pytest
from google.genai import types
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base first, then models to register all tables
from listing_concierge.infra.database import Base

import listing_concierge.domain.models  # noqa: F401

from listing_concierge.agents.guardrails import ResponseSanitizer, ResponseValidator, SecurityScreen
from listing_concierge.agents.model_gateway import ModelGateway
from listing_concierge.agents.prompts.concierge import build_system_prompt
from listing_concierge.app.config import Settings
from listing_concierge.app.dependencies import Services, get_services
from listing_concierge.domain.listing import PropertyListing
from listing_concierge.services.conversation_context import ConversationContextBuilder
from listing_concierge.services.conversation_orchestrator import ConversationOrchestrator
from listing_concierge.services.feedback_service import FeedbackService
from listing_concierge.services.hierarchical_search import HierarchicalSearchCoordinator
from listing_concierge.services.incident_log import IncidentLog
from listing_concierge.services.property_sources import PropertySourceNotFound
from listing_concierge.services.property_store import TenantPropertyStore
from listing_concierge.services.tenant_directory import TenantDirectory
from listing_concierge.services.token_usage import TokenUsageTracker
from listing_concierge.services.tool_dispatcher import ToolDispatcher

TENANT = "agent.example.co.id"
JAKARTA = ZoneInfo("Asia/Jakarta")
# Friday
NOW = datetime(2025, 3, 14, 10, 0, tzinfo=JAKARTA)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory():
    """Session factory over one shared in-memory SQLite connection.

    StaticPool keeps every session on the same connection so rows written by
    one service are visible to the next.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

def listing_record(
    id: str,
    title: str,
    location: str,
    price: str,
    type: str = "Sale",
    description: str = "",
    url: Optional[str] = None,
    **extra,
) -> dict:
    record = {
        "id": id,
        "title": title,
        "location": location,
        "price": price,
        "type": type,
        "description": description,
        "url": url if url is not None else f"https://{TENANT}/listing/{id}",
    }
    record.update(extra)
    return record


SAMPLE_RECORDS = [
    listing_record(
        "101", "Rumah Modern Kebayoran Baru", "Kebayoran Baru, Jakarta Selatan", "Rp. 450 Juta",
        description="Rumah 3 kamar tidur dengan taman luas, dekat sekolah internasional.",
        poi="Dekat Pondok Indah Mall",
    ),
    listing_record(
        "102", "Rumah Minimalis Cilandak", "Cilandak, Jakarta Selatan", "Rp. 1,4 Milyar (nego)",
        description="4 KT, kolam renang pribadi, carport 2 mobil.",
    ),
    listing_record(
        "103", "Apartemen Kemang Village", "Kemang, Jakarta Selatan", "Rp. 380 Juta",
        description="2 bedroom unit with gym and pool access.",
    ),
    listing_record(
        "104", "Ruko Gading Serpong", "Gading Serpong, Tangerang", "Rp 7.750.000.000",
        description="Ruko 3 lantai di jalan utama.",
    ),
    listing_record(
        "105", "Rumah Sewa Menteng", "Menteng, Jakarta Pusat", "Rp. 360 Juta/tahun", type="Rent",
        description="Rumah klasik 5 kamar tidur, siap huni.",
    ),
    listing_record(
        "106", "Tanah Kavling BSD", "BSD City, Tangerang Selatan", "Contact for price",
        description="Kavling hoek 300 m2.",
    ),
]


@pytest.fixture
def sample_records() -> list[dict]:
    return [dict(r) for r in SAMPLE_RECORDS]


@pytest.fixture
def make_listing():
    """Factory for a single ``PropertyListing``.

    Usage:
        listing = make_listing("7", title="Rumah Depok", price="Rp 900 Juta")
    """
    def _factory(id: str = "1", **fields) -> PropertyListing:
        record = listing_record(
            id,
            fields.pop("title", f"Rumah {id}"),
            fields.pop("location", "Jakarta Selatan"),
            fields.pop("price", "Rp 1 Milyar"),
            **fields,
        )
        return PropertyListing.from_record(record)

    return _factory


class MemorySource:
    """Property source backed by a dict; counts loads per tenant."""

    def __init__(self, catalogs: dict[str, list[dict]]):
        self.catalogs = catalogs
        self.loads: list[str] = []
        self.fail_with: Optional[Exception] = None

    async def load(self, tenant_id: str) -> list[dict]:
        self.loads.append(tenant_id)
        if self.fail_with is not None:
            raise self.fail_with
        if tenant_id not in self.catalogs:
            raise PropertySourceNotFound(tenant_id)
        return self.catalogs[tenant_id]


@pytest.fixture
def memory_source(sample_records) -> MemorySource:
    return MemorySource({TENANT: sample_records})


@pytest.fixture
def store(memory_source) -> TenantPropertyStore:
    return TenantPropertyStore(memory_source, ttl_seconds=3600)


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

@pytest.fixture
def email_outbox():
    """Async stand-in for ``email_service.send_email`` that records messages.

    Set ``email_outbox.succeed = False`` to simulate a SendGrid failure.
    """
    outbox = SimpleNamespace(sent=[], succeed=True)

    async def _send(to: str, subject: str, text: str) -> bool:
        outbox.sent.append({"to": to, "subject": subject, "text": text})
        return outbox.succeed

    outbox.send = _send
    return outbox


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class FakeAPIError(Exception):
    """Shaped like ``google.genai.errors.APIError`` (code / status / message)."""

    def __init__(self, code: int, status: str, message: str = ""):
        super().__init__(f"{code} {status}. {message}")
        self.code = code
        self.status = status
        self.message = message


QUOTA_ERROR = FakeAPIError(429, "RESOURCE_EXHAUSTED", "Quota exceeded")


def text_response(text: str, prompt_tokens: int = 100, output_tokens: int = 20) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(content=types.Content(role="model", parts=[types.Part.from_text(text=text)]))
        ],
        usage_metadata=types.GenerateContentResponseUsageMetadata(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
        ),
    )


def call_response(name: str, args: dict, prompt_tokens: int = 100, output_tokens: int = 20) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(
                    role="model",
                    parts=[types.Part(function_call=types.FunctionCall(name=name, args=args))],
                )
            )
        ],
        usage_metadata=types.GenerateContentResponseUsageMetadata(
            prompt_token_count=prompt_tokens,
            candidates_token_count=output_tokens,
        ),
    )


class ScriptedModels:
    """Plays back responses (or raises errors) in order and records each call."""

    def __init__(self, script):
        self.script = list(script)
        self.calls: list[dict] = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": list(contents), "config": config})
        if not self.script:
            raise AssertionError("generate_content called more often than scripted")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class FakeGenaiClient:
    def __init__(self, script=()):
        self.models = ScriptedModels(script)
        self.aio = SimpleNamespace(models=self.models)

    def queue(self, *steps) -> None:
        self.models.script.extend(steps)

    @property
    def calls(self) -> list[dict]:
        return self.models.calls


def last_user_text(call: dict) -> str:
    """Text of the last content sent in a recorded generate_content call."""
    content = call["contents"][-1]
    return "".join(part.text or "" for part in content.parts)


def simple_config(system_instruction, tools=None) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(system_instruction=system_instruction, tools=tools)


MODEL_CHAIN = ["gemini-primary", "gemini-secondary", "gemini-tertiary"]


@pytest.fixture
def genai_client() -> FakeGenaiClient:
    return FakeGenaiClient()


@pytest.fixture
def gateway(genai_client) -> ModelGateway:
    return ModelGateway(genai_client, MODEL_CHAIN, simple_config, scope="tenant", timeout_seconds=5)


# ---------------------------------------------------------------------------
# Full component graph
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        multi_tenant=True,
        default_tenant=TENANT,
        debug=True,
        gemini_api_key="test-key",
        sendgrid_api_key="",
        agent_notification_email="office@example.co.id",
    )


@pytest.fixture
def plan_limits() -> dict[str, int]:
    return {"free": 10_000, "pro": 100_000}


@pytest.fixture
def services(settings, session_factory, store, gateway, email_outbox, plan_limits) -> Services:
    screen = SecurityScreen()
    directory = TenantDirectory(session_factory)
    usage = TokenUsageTracker(plan_limits, window=timedelta(days=30), warning_ratio=0.8)
    feedback = FeedbackService(session_factory)
    incident_log = IncidentLog(session_factory)
    dispatcher = ToolDispatcher(
        store,
        HierarchicalSearchCoordinator(store, directory),
        incident_log,
        send_email=email_outbox.send,
        fallback_agent_email=settings.agent_notification_email,
    )
    orchestrator = ConversationOrchestrator(
        screen=screen,
        directory=directory,
        usage=usage,
        gateway=gateway,
        context_builder=ConversationContextBuilder(feedback, clock=lambda: NOW),
        dispatcher=dispatcher,
        incident_log=incident_log,
        system_prompt=build_system_prompt("Example Realty"),
        validator=ResponseValidator(),
        sanitizer=ResponseSanitizer(),
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


@pytest.fixture
async def client(services):
    """HTTP client against the FastAPI app with ``services`` injected."""
    from listing_concierge.app.main import app

    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
