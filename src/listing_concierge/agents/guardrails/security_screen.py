"""Security screen: deterministic, pattern-based threat classification.

Classifies an inbound chat message into zero or more threats. Rules are an
ordered list of named predicates so the rule set can be extended (e.g. from a
JSON file named in settings) without touching call sites.

Severity policy (enforced by the orchestrator):
- CRITICAL / HIGH -> block, localized refusal, incident logged (blocked=True)
- MEDIUM / LOW    -> incident logged (blocked=False), processing continues
"""

import json
import logging
import re
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlsplit

from listing_concierge.domain.enums import Severity, ThreatType

from .contracts import Threat, ThreatRule

logger = logging.getLogger(__name__)

_FLAGS = re.IGNORECASE | re.DOTALL

URL_PATTERN = re.compile(
    r"(?:https?://[^\s<>\"')\]]+|www\.[^\s<>\"')\]]+"
    # Bare domains, but not the domain half of an email address
    r"|(?<![@.\w-])[a-z0-9][a-z0-9-]*(?:\.[a-z0-9-]+)*\.(?:com|net|org|io|id|co\.id|web\.id)\b(?![@\w-])(?:/[^\s<>\"')\]]*)?)",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Default pattern sets
# ---------------------------------------------------------------------------

PROMPT_INJECTION_PATTERNS = [
    r"\bignore\s+(?:all\s+)?(?:the\s+|your\s+)?(?:previous|prior|above|earlier)\s+(?:instructions|prompts|rules|messages)",
    r"\bdisregard\s+(?:all\s+)?(?:the\s+|your\s+)?(?:prior|previous|above)\s+(?:instructions|context|rules)",
    r"\bforget\s+(?:all\s+)?(?:your\s+|the\s+)?(?:rules|instructions|previous instructions)",
    r"\byou\s+are\s+now\s+(?:a|an|my|the)\b",
    r"\bnew\s+system\s+prompt\b",
    r"\boverride\s+(?:your|the)\s+(?:instructions|system|rules)",
    r"\bsystem\s+override\b",
    r"\bpretend\s+(?:to\s+be|you\s+are)\b",
    r"\babaikan\s+(?:semua\s+)?(?:instruksi|perintah|aturan)",
    r"\blupakan\s+(?:semua\s+)?(?:instruksi|perintah|aturan)",
    r"\bkamu\s+sekarang\s+adalah\b",
]

JAILBREAK_PATTERNS = [
    r"\bjailbreak\b",
    r"\bDAN\s+mode\b",
    r"\bdeveloper\s+mode\b",
    r"\bbypass\s+(?:safety|guardrails|filters|restrictions)",
]

PII_EXTRACTION_PATTERNS = [
    r"\b(?:show|list|give|send|export|dump|reveal|leak|tampilkan|berikan|kasih|kirim|bocorkan|minta)\b.{0,40}"
    r"\b(?:all\s+(?:the\s+)?(?:emails?|phone\s+numbers?|contacts|customers|clients|users|visitors|leads)"
    r"|customer\s+data|client\s+data|user\s+data|visitor\s+data|personal\s+data|database"
    r"|data\s+(?:pelanggan|klien|pengunjung|pribadi)|semua\s+(?:email|nomor|kontak)"
    r"|(?:owner|seller|pemilik)(?:'s)?\s+(?:phone|number|contact|email|nomor|kontak)"
    r"|(?:nomor|kontak|email)\s+(?:hp\s+|telepon\s+|wa\s+)?(?:semua\s+)?(?:pemilik|penjual|pelanggan|klien))",
]

SYSTEM_PROMPT_PATTERNS = [
    r"\b(?:show|reveal|print|repeat|tell\s+me|what\s+(?:is|are))\b.{0,20}\b(?:system\s+prompt|system\s+instructions?|initial\s+instructions|hidden\s+instructions|your\s+instructions|your\s+prompt)",
    r"\b(?:prompt|instruksi)\s+sistem\b",
]

SYSTEM_MODEL_PATTERNS = [
    r"\bwhat\s+(?:ai\s+)?model\s+are\s+you\b",
    r"\bwhich\s+(?:ai|llm|model|language\s+model)\b",
    r"\bare\s+you\s+(?:gpt|chatgpt|gemini|claude)\b",
    r"\bmodel\s+(?:ai\s+)?apa\b",
]

COMMAND_INJECTION_PATTERNS = [
    r"\b(?:drop|truncate)\s+table\b",
    r"\bunion\s+(?:all\s+)?select\b",
    r"'\s*or\s+'?1'?\s*=\s*'?1",
    r";\s*--",
    r"\brm\s+-rf\b",
    r"\$\([^)]*\)",
    r"/etc/passwd",
    r"<\s*script\b",
    r"\bjavascript\s*:",
    r"&&\s*(?:cat|ls|rm|wget|curl)\b",
    r"\b(?:exec|eval)\s*\(",
    r"__import__",
]

FEEDBACK_MANIPULATION_PATTERNS = [
    r"\b(?:give|rate|leave|kasih|beri)\b.{0,20}\b(?:5|five|lima)[\s-]*(?:stars?|bintang)",
    r"\b(?:change|delete|remove|edit|erase|hapus|ubah)\s+(?:the\s+|all\s+|semua\s+)?(?:feedback|ratings?|reviews?|ulasan)",
    r"\bmark\s+(?:this|all|every)\s+(?:\w+\s+)?(?:as\s+)?(?:positive|helpful|thumbs\s+up)",
    r"\bspam\s+(?:the\s+)?(?:thumbs\s+up|likes?|feedback)",
]


# ---------------------------------------------------------------------------
# Rule builders
# ---------------------------------------------------------------------------

def pattern_rule(name: str, kind: ThreatType, severity: Severity, patterns: Iterable[str]) -> ThreatRule:
    """Build a rule that matches when any of ``patterns`` is found."""
    compiled = [re.compile(p, _FLAGS) for p in patterns]

    def _test(text: str, allowed_domains: frozenset) -> bool:
        return any(p.search(text) for p in compiled)

    return ThreatRule(name=name, kind=kind, severity=severity, test=_test)


def extract_host(link: str) -> str:
    """Lower-cased host of a URL-ish string, without a leading ``www.``."""
    candidate = link if "://" in link else f"http://{link}"
    host = (urlsplit(candidate).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def host_allowed(host: str, allowed_domains: Iterable[str]) -> bool:
    """True when ``host`` is one of ``allowed_domains`` or a subdomain of one."""
    for domain in allowed_domains:
        domain = domain.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        if host == domain or host.endswith("." + domain):
            return True
    return False


def _foreign_link(text: str, allowed_domains: frozenset) -> bool:
    for match in URL_PATTERN.finditer(text):
        host = extract_host(match.group(0))
        if host and not host_allowed(host, allowed_domains):
            return True
    return False


DEFAULT_RULES: list[ThreatRule] = [
    pattern_rule("command_injection", ThreatType.COMMAND_INJECTION, Severity.CRITICAL, COMMAND_INJECTION_PATTERNS),
    pattern_rule("jailbreak", ThreatType.PROMPT_INJECTION, Severity.CRITICAL, JAILBREAK_PATTERNS),
    pattern_rule("role_override", ThreatType.PROMPT_INJECTION, Severity.HIGH, PROMPT_INJECTION_PATTERNS),
    pattern_rule("pii_exfiltration", ThreatType.PII_EXTRACTION_ATTEMPT, Severity.HIGH, PII_EXTRACTION_PATTERNS),
    pattern_rule("system_prompt", ThreatType.SYSTEM_QUERY_ATTEMPT, Severity.HIGH, SYSTEM_PROMPT_PATTERNS),
    pattern_rule("system_model", ThreatType.SYSTEM_QUERY_ATTEMPT, Severity.MEDIUM, SYSTEM_MODEL_PATTERNS),
    pattern_rule("feedback_tampering", ThreatType.FEEDBACK_MANIPULATION, Severity.MEDIUM, FEEDBACK_MANIPULATION_PATTERNS),
    ThreatRule(
        name="competitor_link",
        kind=ThreatType.COMPETITOR_LINK,
        severity=Severity.MEDIUM,
        test=_foreign_link,
    ),
]


def load_rules_file(path: str) -> list[ThreatRule]:
    """Load extra pattern rules from a JSON file.

    Format: ``[{"name": ..., "kind": "PROMPT_INJECTION", "severity": "HIGH",
    "patterns": ["regex", ...]}, ...]``
    """
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    rules = []
    for entry in raw:
        rules.append(
            pattern_rule(
                entry["name"],
                ThreatType(entry["kind"]),
                Severity(entry["severity"]),
                entry["patterns"],
            )
        )
    logger.info("Loaded %d security rules from %s", len(rules), path)
    return rules


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class SecurityScreen:
    """Runs every rule over a message and reports one threat per kind."""

    def __init__(
        self,
        rules: Optional[list[ThreatRule]] = None,
        allowed_domains: Iterable[str] = (),
    ):
        self.rules = list(DEFAULT_RULES if rules is None else rules)
        self.allowed_domains = frozenset(d.lower() for d in allowed_domains)

    def add_rules(self, rules: Iterable[ThreatRule]) -> None:
        self.rules.extend(rules)

    def classify(self, message: str, allowed_domains: Iterable[str] = ()) -> list[Threat]:
        """Return the threats found in ``message``, highest severity per kind."""
        if not message:
            return []
        domains = self.allowed_domains | frozenset(d.lower() for d in allowed_domains)

        found: dict[ThreatType, Threat] = {}
        for rule in self.rules:
            current = found.get(rule.kind)
            if current is not None and current.severity.rank >= rule.severity.rank:
                continue
            if rule.test(message, domains):
                found[rule.kind] = Threat(type=rule.kind, severity=rule.severity, rule=rule.name)

        threats = sorted(found.values(), key=lambda t: t.severity.rank, reverse=True)
        if threats:
            logger.info(
                "Security screen matched: %s",
                ", ".join(f"{t.type.value}/{t.severity.value}" for t in threats),
            )
        return threats


def should_block(threats: Iterable[Threat]) -> bool:
    return any(t.blocks for t in threats)


def build_security_screen(settings) -> SecurityScreen:
    """Default rules plus any rules file configured in settings."""
    screen = SecurityScreen(allowed_domains=settings.allowed_link_domains_list)
    if settings.security_rules_path:
        screen.add_rules(load_rules_file(settings.security_rules_path))
    return screen
