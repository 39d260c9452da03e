"""Pydantic v2 schemas for API request/response validation and tool arguments."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from listing_concierge.domain.enums import FeedbackRating, ListingType, Plan, PropertyCategory
from listing_concierge.services.price_parser import parse_price


class _CamelModel(BaseModel):
    """Accepts the widget's camelCase keys as well as snake_case."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class HistoryTurn(BaseModel):
    """One replayed conversation turn as sent by the widget."""

    role: str
    parts: str = ""

    @field_validator("parts", mode="before")
    @classmethod
    def _flatten_parts(cls, value: Any) -> str:
        # Older widget builds send Gemini-shaped parts: [{"text": "..."}]
        if isinstance(value, list):
            texts = []
            for part in value:
                if isinstance(part, dict):
                    if "text" in part and isinstance(part["text"], str):
                        texts.append(part["text"])
                elif isinstance(part, str):
                    texts.append(part)
            return "\n".join(texts)
        if value is None:
            return ""
        return value


class ChatRequest(_CamelModel):
    """Schema for an inbound chat message."""

    message: str = Field(min_length=1, max_length=4000)
    history: list[HistoryTurn] = Field(default_factory=list)
    current_url: str | None = Field(default=None, alias="currentUrl")
    current_property_id: str | None = Field(default=None, alias="currentPropertyId")
    tenant: str | None = None

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value


class ChatResponse(BaseModel):
    """Schema for a successful chat reply."""

    text: str
    properties: list[dict] | None = None
    warning: str | None = None


class ErrorResponse(BaseModel):
    """Every failure still carries a presentable ``text``."""

    error: str
    text: str


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class FeedbackRequest(_CamelModel):
    """Thumbs up/down rating sent by the widget."""

    rating: FeedbackRating
    message_id: str | None = Field(default=None, alias="messageId")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    user_message: str | None = Field(default=None, alias="userMessage", max_length=4000)
    ai_response: str | None = Field(default=None, alias="aiResponse", max_length=8000)
    tenant_id: str | None = Field(default=None, alias="tenantId")
    feedback: str | None = Field(default=None, max_length=2000)


class FeedbackResponse(BaseModel):
    status: str
    model_upgraded: bool = False


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantCreate(BaseModel):
    """Schema for registering a tenant."""

    id: str = Field(min_length=1, max_length=255)
    display_name: str | None = None
    plan: Plan = Plan.FREE
    agent_email: str | None = None


class TenantResponse(BaseModel):
    """Schema for tenant API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str | None = None
    plan: str
    agent_email: str | None = None
    is_active: bool
    created_at: datetime | None = None
    deactivated_at: datetime | None = None


class HierarchyUpdate(BaseModel):
    office_tenant_id: str | None = None
    national_tenant_id: str | None = None


class CoBrokerageUpdate(BaseModel):
    enabled: bool
    shared_tenants: list[str] = Field(default_factory=list)


class UsageResponse(BaseModel):
    """Current quota figures for one tenant."""

    tenant_id: str
    plan: str
    used: int
    limit: int
    percentage: float
    exceeded: bool
    warning: bool
    request_count: int
    window_start: datetime | None = None


# ---------------------------------------------------------------------------
# Tool arguments (also the source of the declared function schemas)
# ---------------------------------------------------------------------------

_CATEGORY_SYNONYMS = {
    "rumah": PropertyCategory.HOUSE,
    "house": PropertyCategory.HOUSE,
    "home": PropertyCategory.HOUSE,
    "apartemen": PropertyCategory.APARTMENT,
    "apartment": PropertyCategory.APARTMENT,
    "apartement": PropertyCategory.APARTMENT,
    "ruko": PropertyCategory.SHOPHOUSE,
    "shophouse": PropertyCategory.SHOPHOUSE,
    "tanah": PropertyCategory.LAND,
    "land": PropertyCategory.LAND,
    "kavling": PropertyCategory.LAND,
    "gedung": PropertyCategory.BUILDING,
    "building": PropertyCategory.BUILDING,
}

_TYPE_SYNONYMS = {
    "sale": ListingType.SALE,
    "sell": ListingType.SALE,
    "dijual": ListingType.SALE,
    "jual": ListingType.SALE,
    "rent": ListingType.RENT,
    "sewa": ListingType.RENT,
    "disewa": ListingType.RENT,
    "disewakan": ListingType.RENT,
}


class SearchOfficeDatabaseArgs(BaseModel):
    """Arguments for ``search_office_database``."""

    location: str | None = Field(default=None, description="Area, city or street, e.g. 'Jakarta Selatan'")
    max_price: float | None = Field(default=None, description="Maximum price in Rupiah")
    type: ListingType | None = Field(default=None, description="Sale or Rent")
    min_bedrooms: int | None = Field(default=None, description="Minimum number of bedrooms")
    property_category: PropertyCategory | None = Field(
        default=None, description="house, apartment, shophouse, land or building"
    )

    @field_validator("max_price", mode="before")
    @classmethod
    def _parse_max_price(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_price(value)
        return value or None

    @field_validator("min_bedrooms", mode="before")
    @classmethod
    def _parse_bedrooms(cls, value: Any) -> Any:
        if value in ("", 0):
            return None
        return value

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            return _TYPE_SYNONYMS.get(value.strip().lower(), value)
        return value

    @field_validator("property_category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            return _CATEGORY_SYNONYMS.get(value.strip().lower(), value)
        return value

    @field_validator("location", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SearchPropertiesArgs(SearchOfficeDatabaseArgs):
    """Arguments for ``search_properties``."""

    keyword: str | None = Field(default=None, description="Feature keyword such as 'pool' or 'garden'")

    @field_validator("keyword", mode="before")
    @classmethod
    def _blank_keyword(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class VisitorInfoArgs(BaseModel):
    """Arguments for ``collect_visitor_info``."""

    visitor_name: str = Field(min_length=1)
    visitor_phone: str = Field(min_length=1)
    visitor_email: str = Field(min_length=3)


class InquiryEmailArgs(VisitorInfoArgs):
    """Arguments for ``send_inquiry_email``."""

    inquiry_summary: str = Field(min_length=1, description="Short summary of what the visitor is asking")
    conversation_history: str | None = Field(default=None, description="Relevant excerpt of the conversation")


class ScheduleViewingArgs(BaseModel):
    """Arguments for ``schedule_viewing``."""

    property_id: str = Field(min_length=1)
    visitor_name: str = Field(min_length=1)
    visitor_email: str = Field(min_length=3)
    visitor_phone: str = Field(min_length=1)
    preferred_date: str = Field(min_length=1, description="YYYY-MM-DD or a phrase like 'besok' / 'tomorrow'")
    preferred_time: str = Field(min_length=1, description="e.g. '10:00' or 'siang'")
    message: str | None = None

    @field_validator("property_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(int(value))
        return value
