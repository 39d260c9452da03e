"""Typed dataclasses for guardrail I/O contracts."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from listing_concierge.domain.enums import Severity, ThreatType, WarningKind


@dataclass(frozen=True)
class Threat:
    """One threat detected in an inbound message."""
    type: ThreatType
    severity: Severity
    rule: str = ""

    @property
    def blocks(self) -> bool:
        """HIGH and CRITICAL threats block the request."""
        return self.severity.rank >= Severity.HIGH.rank

    def to_dict(self) -> dict:
        return {"type": self.type.value, "severity": self.severity.value, "rule": self.rule}


@dataclass(frozen=True)
class ThreatRule:
    """Named predicate over raw message text.

    ``test`` receives the original text and the set of domains the tenant
    allows; it returns True when the rule matches.
    """
    name: str
    kind: ThreatType
    severity: Severity
    test: Callable[[str, frozenset], bool]


@dataclass
class SanitizeResult:
    """Output of the response sanitizer."""
    sanitized: str
    redactions: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.redactions)


@dataclass
class ValidationWarning:
    """Non-blocking finding of the response validator."""
    kind: WarningKind
    evidence: list[str] = field(default_factory=list)
    tenant_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "evidence": self.evidence,
            "tenant": self.tenant_id,
            "timestamp": self.timestamp.isoformat(),
        }
