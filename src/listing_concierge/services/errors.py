"""Error taxonomy for a chat turn.

Each error carries its HTTP status and a localized, user-presentable text so
the route can always answer with something the widget can show.
"""

from typing import Optional

from listing_concierge.agents.prompts.fallback_templates import get_text


class ConciergeError(Exception):
    """Base class for errors that map to a chat error response."""

    status_code = 500
    error_code = "internal_error"
    text_key = "error"

    def __init__(self, message: str = "", language: str = "id", **details):
        super().__init__(message or self.error_code)
        self.language = language
        self.details = details

    @property
    def text(self) -> str:
        return get_text(self.text_key, self.language)

    def to_body(self) -> dict:
        body = {"error": self.error_code, "text": self.text}
        body.update(self.details)
        return body


class ChatValidationError(ConciergeError):
    """Malformed request shape or unusable tenant. No side effects."""

    status_code = 400
    error_code = "invalid_request"
    text_key = "invalid_request"

    def __init__(self, message: str = "", language: str = "id", text_key: Optional[str] = None, **details):
        super().__init__(message, language, **details)
        if text_key:
            self.text_key = text_key


class SecurityBlocked(ConciergeError):
    """A CRITICAL/HIGH threat was detected; the request was refused."""

    status_code = 400
    error_code = "security_blocked"
    text_key = "security_blocked"


class QuotaExceeded(ConciergeError):
    """Tenant token quota exhausted; no model call was made."""

    status_code = 429
    error_code = "quota_exceeded"
    text_key = "quota_exceeded"


class ModelUnavailable(ConciergeError):
    """Every model in the fallback chain failed with a retryable error."""

    status_code = 503
    error_code = "model_unavailable"
    text_key = "model_unavailable"


class ToolExecutionError(Exception):
    """A tool side effect failed. Caught at dispatch and degraded to a soft result."""

    def __init__(self, tool: str, message: str):
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.message = message
