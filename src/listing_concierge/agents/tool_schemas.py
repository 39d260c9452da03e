"""Function tools declared to the model.

The declarations are generated from the Pydantic argument models so the
schema the model sees and the validation the dispatcher applies never drift.
"""

from google.genai import types
from pydantic import BaseModel

from listing_concierge.domain.enums import ToolName
from listing_concierge.domain.schemas import (
    InquiryEmailArgs,
    ScheduleViewingArgs,
    SearchOfficeDatabaseArgs,
    SearchPropertiesArgs,
    VisitorInfoArgs,
)
from listing_concierge.infra.gemini_client import function_declaration

TOOL_ARGS: dict[ToolName, type[BaseModel]] = {
    ToolName.SEARCH_PROPERTIES: SearchPropertiesArgs,
    ToolName.SEARCH_OFFICE_DATABASE: SearchOfficeDatabaseArgs,
    ToolName.COLLECT_VISITOR_INFO: VisitorInfoArgs,
    ToolName.SEND_INQUIRY_EMAIL: InquiryEmailArgs,
    ToolName.SCHEDULE_VIEWING: ScheduleViewingArgs,
}

TOOL_DESCRIPTIONS: dict[ToolName, str] = {
    ToolName.SEARCH_PROPERTIES: (
        "Search our property listings by location, maximum price, type (Sale/Rent), "
        "minimum bedrooms, category and feature keyword."
    ),
    ToolName.SEARCH_OFFICE_DATABASE: (
        "Search the office and national co-brokerage listings when our own listings "
        "have no match."
    ),
    ToolName.COLLECT_VISITOR_INFO: (
        "Save the visitor's contact details so an agent can follow up."
    ),
    ToolName.SEND_INQUIRY_EMAIL: (
        "Forward a visitor question that the listings cannot answer to the agent."
    ),
    ToolName.SCHEDULE_VIEWING: (
        "Schedule a property viewing for the visitor and notify the agent."
    ),
}


def required_fields(tool: ToolName) -> list[str]:
    return list(TOOL_ARGS[tool].model_json_schema().get("required", []))


def build_tools() -> list[types.Tool]:
    """The single Tool bundle attached to every chat turn."""
    declarations = [
        function_declaration(tool.value, TOOL_DESCRIPTIONS[tool], args_model)
        for tool, args_model in TOOL_ARGS.items()
    ]
    return [types.Tool(function_declarations=declarations)]
