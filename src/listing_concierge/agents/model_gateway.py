"""Generative model access with an ordered fallback chain.

Every chat turn opens a ``ChatSession`` that holds the explicit content list
and the index into the model chain used for that request. On a retryable
error (quota exhausted, model not found, invalid argument about the model)
the session advances to the next model and the same call is retried, trying
each model at most once. When every model failed, ``ModelUnavailable`` is
raised.

Where the index lives between requests is configurable:

- ``request``  every request starts from the most preferred model
- ``tenant``   the last working index is remembered per tenant (default)
- ``global``   one process-wide index shared by every tenant
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence

from google.genai import types

from listing_concierge.domain.enums import FeedbackRating
from listing_concierge.services.errors import ModelUnavailable

logger = logging.getLogger(__name__)

SCOPES = ("request", "tenant", "global")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    """A function call requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelReply:
    """One model response, reduced to what the orchestrator needs."""

    text: str = ""
    tool_call: Optional[ToolCall] = None
    input_tokens: int = 0
    output_tokens: int = 0
    model_name: str = ""
    latency_ms: int = 0


@dataclass
class ChatSession:
    """Conversation state for a single request."""

    tenant_id: str
    system_instruction: str
    contents: list[types.Content] = field(default_factory=list)
    model_index: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def is_retryable(exc: BaseException) -> bool:
    """True for errors that another model in the chain might not hit.

    Works on ``google.genai.errors.APIError`` (``code``/``status``/``message``)
    and on anything shaped like it.
    """
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "").upper()
    message = str(getattr(exc, "message", "") or exc).lower()

    if code == 429 or status == "RESOURCE_EXHAUSTED" or "resource_exhausted" in message:
        return True
    if code == 404 or status == "NOT_FOUND":
        return True
    if (code == 400 or status == "INVALID_ARGUMENT") and "model" in message:
        return True
    return False


def _text_of(content: Optional[types.Content]) -> str:
    if content is None or not content.parts:
        return ""
    texts = []
    for part in content.parts:
        if getattr(part, "thought", False):
            continue
        if getattr(part, "text", None):
            texts.append(part.text)
    return "".join(texts)


def _first_call(content: Optional[types.Content]) -> Optional[ToolCall]:
    if content is None or not content.parts:
        return None
    for part in content.parts:
        call = getattr(part, "function_call", None)
        if call is not None and call.name:
            return ToolCall(name=call.name, args=dict(call.args or {}))
    return None


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ModelGateway:
    """Wraps ``client.aio.models.generate_content`` with the fallback chain."""

    def __init__(
        self,
        client,
        model_chain: Sequence[str],
        config_factory: Callable[[str, Optional[list]], types.GenerateContentConfig],
        tools: Optional[list[types.Tool]] = None,
        scope: str = "tenant",
        timeout_seconds: float = 60,
        feedback_window: int = 20,
        feedback_min_ratings: int = 5,
        feedback_negative_threshold: float = 0.4,
    ):
        if not model_chain:
            raise ValueError("model_chain must name at least one model")
        if scope not in SCOPES:
            raise ValueError(f"unknown model fallback scope: {scope}")
        self.client = client
        self.model_chain = list(model_chain)
        self.config_factory = config_factory
        self.tools = tools
        self.scope = scope
        self.timeout_seconds = timeout_seconds
        self.feedback_window = feedback_window
        self.feedback_min_ratings = feedback_min_ratings
        self.feedback_negative_threshold = feedback_negative_threshold
        self._tenant_index: dict[str, int] = {}
        self._global_index = 0

    # ------------------------------------------------------------------
    # Index bookkeeping
    # ------------------------------------------------------------------

    def current_index(self, tenant_id: str) -> int:
        if self.scope == "global":
            return self._global_index
        if self.scope == "tenant":
            return self._tenant_index.get(tenant_id, 0)
        return 0

    def current_model(self, tenant_id: str) -> str:
        return self.model_chain[self.current_index(tenant_id)]

    def _remember(self, tenant_id: str, index: int) -> None:
        if self.scope == "global":
            self._global_index = index
        elif self.scope == "tenant":
            self._tenant_index[tenant_id] = index

    # ------------------------------------------------------------------
    # Session API
    # ------------------------------------------------------------------

    def open_session(
        self,
        tenant_id: str,
        history: Iterable[tuple[str, str]],
        system_instruction: str,
    ) -> ChatSession:
        """Start a request-scoped session seeded with replayed (role, text) turns."""
        contents = [
            types.Content(role=role, parts=[types.Part.from_text(text=text)])
            for role, text in history
        ]
        return ChatSession(
            tenant_id=tenant_id,
            system_instruction=system_instruction,
            contents=contents,
            model_index=self.current_index(tenant_id),
        )

    async def invoke(self, session: ChatSession, message: str) -> ModelReply:
        """Send a user message and return the model's reply."""
        session.contents.append(
            types.Content(role="user", parts=[types.Part.from_text(text=message)])
        )
        return await self._generate(session)

    async def continue_with(self, session: ChatSession, tool_name: str, payload: dict) -> ModelReply:
        """Send a tool result back to the model and return its follow-up reply."""
        session.contents.append(
            types.Content(
                role="user",
                parts=[types.Part.from_function_response(name=tool_name, response=payload)],
            )
        )
        return await self._generate(session)

    async def _generate(self, session: ChatSession) -> ModelReply:
        config = self.config_factory(session.system_instruction, self.tools)
        chain_length = len(self.model_chain)
        last_error: Optional[BaseException] = None

        for _ in range(chain_length):
            model_name = self.model_chain[session.model_index]
            start_time = time.time()
            try:
                response = await asyncio.wait_for(
                    self.client.aio.models.generate_content(
                        model=model_name,
                        contents=session.contents,
                        config=config,
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                logger.error("[%s] %s timed out after %ss", session.tenant_id, model_name, self.timeout_seconds)
                raise ModelUnavailable(f"{model_name} timed out") from exc
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                last_error = exc
                next_index = (session.model_index + 1) % chain_length
                logger.warning(
                    "[%s] %s failed (%s); falling back to %s",
                    session.tenant_id,
                    model_name,
                    exc,
                    self.model_chain[next_index],
                )
                session.model_index = next_index
                continue

            latency_ms = int((time.time() - start_time) * 1000)
            reply = self._to_reply(session, response, model_name, latency_ms)
            session.calls += 1
            session.input_tokens += reply.input_tokens
            session.output_tokens += reply.output_tokens
            self._remember(session.tenant_id, session.model_index)

            logger.info(
                "[%s] %s replied: tool=%s, tokens=%d, latency=%dms",
                session.tenant_id,
                model_name,
                reply.tool_call.name if reply.tool_call else None,
                reply.input_tokens + reply.output_tokens,
                latency_ms,
            )
            return reply

        logger.error("[%s] Every model in the chain failed: %s", session.tenant_id, last_error)
        raise ModelUnavailable(str(last_error))

    def _to_reply(self, session: ChatSession, response, model_name: str, latency_ms: int) -> ModelReply:
        content = None
        if response.candidates:
            content = response.candidates[0].content

        # Keep the model turn so a tool result can be paired with its call.
        if content is not None:
            if not content.role:
                content.role = "model"
            session.contents.append(content)

        input_tokens = output_tokens = 0
        if getattr(response, "usage_metadata", None):
            input_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
            output_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        return ModelReply(
            text=_text_of(content),
            tool_call=_first_call(content),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model_name=model_name,
            latency_ms=latency_ms,
        )

    # ------------------------------------------------------------------
    # Feedback-driven upgrade
    # ------------------------------------------------------------------

    def upgrade_for(self, tenant_id: str, ratings: Sequence[str]) -> bool:
        """Move one step toward the preferred model when recent feedback is poor.

        ``ratings`` is newest last. Only the last ``feedback_window`` ratings
        count, and nothing happens below ``feedback_min_ratings``.
        """
        recent = list(ratings)[-self.feedback_window:]
        if len(recent) < self.feedback_min_ratings:
            return False
        negatives = sum(1 for r in recent if str(getattr(r, "value", r)) == FeedbackRating.THUMBS_DOWN.value)
        ratio = negatives / len(recent)
        if ratio <= self.feedback_negative_threshold:
            return False

        current = self.current_index(tenant_id)
        if self.scope == "request" or current == 0:
            return False
        self._remember(tenant_id, current - 1)
        logger.info(
            "[%s] Negative feedback %.0f%% over %d ratings; upgrading %s -> %s",
            tenant_id,
            ratio * 100,
            len(recent),
            self.model_chain[current],
            self.model_chain[current - 1],
        )
        return True


def build_model_gateway(settings) -> ModelGateway:
    """Gateway wired to the shared genai client, the declared tools and settings."""
    from listing_concierge.agents.tool_schemas import build_tools
    from listing_concierge.infra.gemini_client import generation_config, get_client

    return ModelGateway(
        client=get_client(),
        model_chain=settings.model_chain_list,
        config_factory=generation_config,
        tools=build_tools(),
        scope=settings.model_fallback_scope,
        timeout_seconds=settings.model_timeout_seconds,
        feedback_window=settings.feedback_window,
        feedback_min_ratings=settings.feedback_min_ratings,
        feedback_negative_threshold=settings.feedback_negative_threshold,
    )
