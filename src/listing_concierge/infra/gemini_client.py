"""Gemini client factory and function-declaration helpers."""

import copy
from functools import lru_cache
from typing import Optional

from google import genai
from google.genai import types
from pydantic import BaseModel

from listing_concierge.app.config import get_settings


# Fields that Pydantic v2 adds to JSON Schema but Gemini's API rejects
_UNSUPPORTED_KEYS = {
    "$defs", "definitions", "title", "default", "examples",
    "additionalProperties", "maximum", "minimum", "exclusiveMaximum",
    "exclusiveMinimum", "maxLength", "minLength", "pattern",
    "maxItems", "minItems", "uniqueItems",
}


def _inline_defs(schema: dict) -> dict:
    """Clean a Pydantic JSON Schema for Gemini consumption.

    Resolves $defs/$ref references (inlines them), collapses
    ``anyOf: [X, null]`` produced by Optional fields, and strips fields
    the Google genai SDK doesn't support (title, default, etc.).
    """
    schema = copy.deepcopy(schema)
    defs = schema.pop("$defs", None) or schema.pop("definitions", None)

    def _resolve(node):
        if isinstance(node, dict):
            if "$ref" in node:
                ref_name = node["$ref"].rsplit("/", 1)[-1]
                if defs and ref_name in defs:
                    resolved = {k: v for k, v in node.items() if k != "$ref"}
                    resolved.update(copy.deepcopy(defs[ref_name]))
                    return _resolve(resolved)
                return node
            # Optional[X] -> X (Gemini has no null type)
            if "anyOf" in node:
                options = [o for o in node["anyOf"] if o.get("type") != "null"]
                if len(options) == 1:
                    merged = {k: v for k, v in node.items() if k != "anyOf"}
                    merged.update(options[0])
                    return _resolve(merged)
            for key in _UNSUPPORTED_KEYS:
                node.pop(key, None)
            for key, value in list(node.items()):
                node[key] = _resolve(value)
        elif isinstance(node, list):
            for i, item in enumerate(node):
                node[i] = _resolve(item)
        return node

    return _resolve(schema)


def function_declaration(name: str, description: str, args_model: type[BaseModel]) -> types.FunctionDeclaration:
    """Build a Gemini function declaration from a Pydantic argument model."""
    return types.FunctionDeclaration(
        name=name,
        description=description,
        parameters_json_schema=_inline_defs(args_model.model_json_schema()),
    )


@lru_cache
def get_client(api_key: Optional[str] = None) -> genai.Client:
    """Return a shared ``genai.Client`` (one per API key)."""
    settings = get_settings()
    return genai.Client(api_key=api_key or settings.gemini_api_key)


def generation_config(
    system_instruction: Optional[str],
    tools: Optional[list[types.Tool]] = None,
) -> types.GenerateContentConfig:
    """Generation parameters for chat turns, taken from settings."""
    settings = get_settings()
    return types.GenerateContentConfig(
        system_instruction=system_instruction,
        tools=tools,
        temperature=settings.model_temperature,
        top_p=settings.model_top_p,
        top_k=settings.model_top_k,
        max_output_tokens=settings.model_max_output_tokens,
        # Tool calls are dispatched by the orchestrator, one per turn.
        automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
    )
