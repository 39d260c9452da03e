"""Domain enumerations for the listing concierge.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class ListingType(str, Enum):
    """Transaction type of a listing."""

    SALE = "Sale"
    RENT = "Rent"


class PropertyCategory(str, Enum):
    """Property category hinted in a listing's location/title text."""

    HOUSE = "house"
    APARTMENT = "apartment"
    SHOPHOUSE = "shophouse"
    LAND = "land"
    BUILDING = "building"


class Plan(str, Enum):
    """Tenant subscription plan (drives the monthly token ceiling)."""

    FREE = "free"
    PRO = "pro"


class ThreatType(str, Enum):
    """Kinds of threat the security screen can detect in an inbound message."""

    PROMPT_INJECTION = "PROMPT_INJECTION"
    PII_EXTRACTION_ATTEMPT = "PII_EXTRACTION_ATTEMPT"
    SYSTEM_QUERY_ATTEMPT = "SYSTEM_QUERY_ATTEMPT"
    COMPETITOR_LINK = "COMPETITOR_LINK"
    FEEDBACK_MANIPULATION = "FEEDBACK_MANIPULATION"
    COMMAND_INJECTION = "COMMAND_INJECTION"


class Severity(str, Enum):
    """Threat severity. HIGH and CRITICAL block the request."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class WarningKind(str, Enum):
    """Kinds of hallucination the response validator can flag."""

    COUNT_MISMATCH = "COUNT_MISMATCH"
    FAKE_PRICE = "FAKE_PRICE"
    HALLUCINATED_FEATURE = "HALLUCINATED_FEATURE"
    UNVERIFIED_CLAIM = "UNVERIFIED_CLAIM"
    NO_TOOL_USAGE = "NO_TOOL_USAGE"


class ToolName(str, Enum):
    """Function tools declared to the model."""

    SEARCH_PROPERTIES = "search_properties"
    SEARCH_OFFICE_DATABASE = "search_office_database"
    COLLECT_VISITOR_INFO = "collect_visitor_info"
    SEND_INQUIRY_EMAIL = "send_inquiry_email"
    SCHEDULE_VIEWING = "schedule_viewing"


class FeedbackRating(str, Enum):
    """Rating values sent by the chat widget."""

    THUMBS_UP = "thumbs_up"
    THUMBS_DOWN = "thumbs_down"


class CatalogLevel(int, Enum):
    """Tier of a catalog in the cascading priority search."""

    PERSONAL = 1
    OFFICE = 2
    NATIONAL = 3
