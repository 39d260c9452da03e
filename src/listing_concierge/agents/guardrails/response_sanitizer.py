"""Response sanitizer: redacts leaked contact details and secrets from replies.

Each redaction class runs independently:
- credentials (``api_key=``, ``token:``, ``password=``, ``secret=`` + long token)
- email addresses not on the tenant's domain
- URLs not on the tenant's domain (or a domain present in tool results)
- Indonesian phone numbers (mobile and landline shapes)

Placeholders contain no digits, ``@`` or dots so they can never re-match.
"""

import logging
import re
from typing import Iterable

from .contracts import SanitizeResult
from .security_screen import URL_PATTERN, extract_host, host_allowed

logger = logging.getLogger(__name__)

EMAIL_PLACEHOLDER = "[email removed]"
URL_PLACEHOLDER = "[link removed]"
PHONE_PLACEHOLDER = "[phone removed]"
CREDENTIAL_PLACEHOLDER = "[credential removed]"

CREDENTIAL_PATTERN = re.compile(
    r"\b(?:api[_-]?key|access[_-]?token|token|password|passwd|secret|client[_-]?secret)\s*[:=]\s*[\"']?[A-Za-z0-9_\-./+]{12,}[\"']?",
    re.IGNORECASE,
)
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")
# +62 / 62 / 0 prefixed mobile (08xx) and landline (021 etc.) numbers.
# Dots are not separators here so "Rp 1.062.500.000" is left alone.
PHONE_PATTERN = re.compile(
    r"(?<![\d.,])(?:\+62|62|0)[\s-]?(?:8\d{1,3}|\(?\d{2,3}\)?)(?:[\s-]?\d{3,4}){2}\d{0,3}(?!\d|[.,]\d)"
)

_MAX_PASSES = 3


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" + ("" if count == 1 else "s")


class ResponseSanitizer:
    """Redacts PII, foreign links and credentials from outbound text."""

    def __init__(self, allowed_domains: Iterable[str] = ()):
        self.allowed_domains = tuple(d.lower() for d in allowed_domains)

    def sanitize(
        self,
        text: str,
        tenant_domain: str | None = None,
        allowed_domains: Iterable[str] = (),
    ) -> SanitizeResult:
        """Return the sanitized text and a human-readable list of redactions."""
        if not text:
            return SanitizeResult(sanitized=text or "")

        domains = list(self.allowed_domains) + [d.lower() for d in allowed_domains]
        if tenant_domain:
            domains.append(tenant_domain.lower())

        counts = {"credential": 0, "email address": 0, "link": 0, "phone number": 0}

        def _credential(match: re.Match) -> str:
            counts["credential"] += 1
            return CREDENTIAL_PLACEHOLDER

        def _email(match: re.Match) -> str:
            if host_allowed(match.group(1).lower(), domains):
                return match.group(0)
            counts["email address"] += 1
            return EMAIL_PLACEHOLDER

        def _url(match: re.Match) -> str:
            host = extract_host(match.group(0))
            if host and host_allowed(host, domains):
                return match.group(0)
            counts["link"] += 1
            return URL_PLACEHOLDER

        def _phone(match: re.Match) -> str:
            counts["phone number"] += 1
            return PHONE_PLACEHOLDER

        sanitized = CREDENTIAL_PATTERN.sub(_credential, text)
        sanitized = EMAIL_PATTERN.sub(_email, sanitized)
        sanitized = URL_PATTERN.sub(_url, sanitized)
        # Repeat until stable: a removal can make neighbouring digits adjacent.
        for _ in range(_MAX_PASSES):
            updated = PHONE_PATTERN.sub(_phone, sanitized)
            if updated == sanitized:
                break
            sanitized = updated

        redactions = [_plural(count, noun) for noun, count in counts.items() if count]
        if redactions:
            logger.warning("Sanitizer redacted %s", ", ".join(redactions))
        return SanitizeResult(sanitized=sanitized, redactions=redactions)
