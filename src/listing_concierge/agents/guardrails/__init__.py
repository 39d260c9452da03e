"""Deterministic guardrails around the model.

- SecurityScreen (inbound threat classification)
- ResponseValidator (anti-hallucination checks, non-blocking)
- ResponseSanitizer (PII / link / credential redaction)
"""

from .contracts import SanitizeResult, Threat, ThreatRule, ValidationWarning
from .response_sanitizer import ResponseSanitizer
from .response_validator import ResponseValidator, has_property_facts
from .security_screen import (
    SecurityScreen,
    build_security_screen,
    load_rules_file,
    pattern_rule,
    should_block,
)

__all__ = [
    "SanitizeResult",
    "Threat",
    "ThreatRule",
    "ValidationWarning",
    "ResponseSanitizer",
    "ResponseValidator",
    "has_property_facts",
    "SecurityScreen",
    "build_security_screen",
    "load_rules_file",
    "pattern_rule",
    "should_block",
]
