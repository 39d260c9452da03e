"""Model fallback chain, session bookkeeping and feedback-driven upgrades."""

import asyncio

import pytest
from google.genai import types

from conftest import (
    MODEL_CHAIN,
    FakeAPIError,
    FakeGenaiClient,
    call_response,
    last_user_text,
    simple_config,
    text_response,
)
from listing_concierge.agents.model_gateway import ModelGateway, is_retryable
from listing_concierge.agents.tool_schemas import build_tools, required_fields
from listing_concierge.domain.enums import ToolName
from listing_concierge.services.errors import ModelUnavailable

QUOTA = FakeAPIError(429, "RESOURCE_EXHAUSTED", "Quota exceeded")
NOT_FOUND = FakeAPIError(404, "NOT_FOUND", "models/gemini-x is not found")


def _gateway(client, scope="tenant", **kwargs):
    return ModelGateway(client, MODEL_CHAIN, simple_config, scope=scope, timeout_seconds=5, **kwargs)


class TestRetryable:
    @pytest.mark.parametrize("exc,expected", [
        (QUOTA, True),
        (NOT_FOUND, True),
        (FakeAPIError(400, "INVALID_ARGUMENT", "model does not support tools"), True),
        (FakeAPIError(400, "INVALID_ARGUMENT", "contents must not be empty"), False),
        (FakeAPIError(500, "INTERNAL", "boom"), False),
        (ValueError("bad"), False),
    ])
    def test_classification(self, exc, expected):
        assert is_retryable(exc) is expected


class TestInvoke:
    async def test_text_reply(self, gateway, genai_client):
        genai_client.queue(text_response("Halo!", prompt_tokens=12, output_tokens=3))
        session = gateway.open_session("t1", [("user", "hai"), ("model", "halo")], "SYSTEM")

        reply = await gateway.invoke(session, "apa kabar?")

        assert reply.text == "Halo!"
        assert reply.tool_call is None
        assert reply.model_name == "gemini-primary"
        assert (session.input_tokens, session.output_tokens, session.calls) == (12, 3, 1)
        call = genai_client.calls[0]
        assert [c.role for c in call["contents"]] == ["user", "model", "user"]
        assert last_user_text(call) == "apa kabar?"
        assert call["config"].system_instruction == "SYSTEM"

    async def test_tool_call_and_continuation(self, gateway, genai_client):
        genai_client.queue(
            call_response("search_properties", {"location": "Jakarta Selatan"}),
            text_response("Ada 1 rumah."),
        )
        session = gateway.open_session("t1", [], "SYSTEM")

        reply = await gateway.invoke(session, "cari rumah")
        assert reply.tool_call.name == "search_properties"
        assert reply.tool_call.args == {"location": "Jakarta Selatan"}

        follow_up = await gateway.continue_with(session, "search_properties", {"count": 1})
        assert follow_up.text == "Ada 1 rumah."
        sent = genai_client.calls[1]["contents"]
        # user message, model function call, function response
        assert sent[1].parts[0].function_call.name == "search_properties"
        assert sent[2].parts[0].function_response.name == "search_properties"
        assert session.total_tokens == 240


class TestFallback:
    async def test_advances_to_next_model(self, gateway, genai_client):
        genai_client.queue(QUOTA, text_response("ok"))
        session = gateway.open_session("t1", [], "SYSTEM")

        reply = await gateway.invoke(session, "hai")

        assert reply.model_name == "gemini-secondary"
        assert [c["model"] for c in genai_client.calls] == ["gemini-primary", "gemini-secondary"]
        assert gateway.current_model("t1") == "gemini-secondary"

    async def test_each_model_tried_once(self, gateway, genai_client):
        genai_client.queue(QUOTA, NOT_FOUND, QUOTA)
        session = gateway.open_session("t1", [], "SYSTEM")

        with pytest.raises(ModelUnavailable) as exc_info:
            await gateway.invoke(session, "hai")

        assert exc_info.value.status_code == 503
        assert [c["model"] for c in genai_client.calls] == MODEL_CHAIN
        assert session.calls == 0

    async def test_wraps_around_from_remembered_index(self, genai_client):
        gateway = _gateway(genai_client)
        genai_client.queue(QUOTA, QUOTA, text_response("ok"))
        await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert gateway.current_model("t1") == "gemini-tertiary"

        genai_client.queue(QUOTA, text_response("ok again"))
        reply = await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert reply.model_name == "gemini-primary"

    async def test_non_retryable_error_propagates(self, gateway, genai_client):
        genai_client.queue(FakeAPIError(500, "INTERNAL", "boom"))
        with pytest.raises(FakeAPIError):
            await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert len(genai_client.calls) == 1

    async def test_timeout_is_unavailable_without_retry(self):
        class SlowModels:
            calls = 0

            async def generate_content(self, model, contents, config=None):
                SlowModels.calls += 1
                await asyncio.sleep(1)

        client = FakeGenaiClient()
        client.aio.models = SlowModels()
        gateway = ModelGateway(client, MODEL_CHAIN, simple_config, timeout_seconds=0.01)

        with pytest.raises(ModelUnavailable):
            await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert SlowModels.calls == 1


class TestScopes:
    async def test_tenant_scope_is_per_tenant(self, genai_client):
        gateway = _gateway(genai_client, scope="tenant")
        genai_client.queue(QUOTA, text_response("ok"))
        await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert gateway.current_index("t1") == 1
        assert gateway.current_index("t2") == 0

    async def test_global_scope_is_shared(self, genai_client):
        gateway = _gateway(genai_client, scope="global")
        genai_client.queue(QUOTA, text_response("ok"))
        await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert gateway.current_index("t2") == 1

    async def test_request_scope_always_starts_at_preferred(self, genai_client):
        gateway = _gateway(genai_client, scope="request")
        genai_client.queue(QUOTA, text_response("ok"))
        await gateway.invoke(gateway.open_session("t1", [], "S"), "hai")
        assert gateway.current_index("t1") == 0

    def test_rejects_unknown_scope(self, genai_client):
        with pytest.raises(ValueError):
            _gateway(genai_client, scope="planet")

    def test_rejects_empty_chain(self, genai_client):
        with pytest.raises(ValueError):
            ModelGateway(genai_client, [], simple_config)


class TestFeedbackUpgrade:
    async def _degrade(self, gateway, genai_client, tenant="t1"):
        genai_client.queue(QUOTA, text_response("ok"))
        await gateway.invoke(gateway.open_session(tenant, [], "S"), "hai")

    async def test_upgrades_one_step_on_negative_feedback(self, gateway, genai_client):
        await self._degrade(gateway, genai_client)
        ratings = ["thumbs_down"] * 3 + ["thumbs_up"] * 2
        assert gateway.upgrade_for("t1", ratings) is True
        assert gateway.current_index("t1") == 0

    async def test_needs_minimum_ratings(self, gateway, genai_client):
        await self._degrade(gateway, genai_client)
        assert gateway.upgrade_for("t1", ["thumbs_down"] * 4) is False

    async def test_threshold_is_strict(self, gateway, genai_client):
        await self._degrade(gateway, genai_client)
        ratings = ["thumbs_down"] * 2 + ["thumbs_up"] * 3
        assert gateway.upgrade_for("t1", ratings) is False

    def test_already_on_preferred_model(self, gateway):
        assert gateway.upgrade_for("t1", ["thumbs_down"] * 10) is False

    async def test_only_recent_window_counts(self, genai_client):
        gateway = _gateway(genai_client, feedback_window=5)
        await self._degrade(gateway, genai_client)
        ratings = ["thumbs_down"] * 10 + ["thumbs_up"] * 5
        assert gateway.upgrade_for("t1", ratings) is False


class TestToolDeclarations:
    def test_every_tool_is_declared(self):
        tools = build_tools()
        assert isinstance(tools[0], types.Tool)
        names = [d.name for d in tools[0].function_declarations]
        assert names == [tool.value for tool in ToolName]

    def test_required_fields(self):
        assert required_fields(ToolName.SCHEDULE_VIEWING) == [
            "property_id", "visitor_name", "visitor_email", "visitor_phone", "preferred_date", "preferred_time",
        ]
        assert required_fields(ToolName.SEARCH_PROPERTIES) == []

    def test_declared_schema_has_no_nulls(self):
        declaration = build_tools()[0].function_declarations[0]
        schema = declaration.parameters_json_schema
        assert schema["properties"]["location"]["type"] == "string"
        assert "anyOf" not in schema["properties"]["max_price"]

    def test_enum_refs_are_inlined(self):
        declaration = build_tools()[0].function_declarations[0]
        listing_type = declaration.parameters_json_schema["properties"]["type"]
        assert listing_type["enum"] == ["Sale", "Rent"]
        assert "$ref" not in listing_type
