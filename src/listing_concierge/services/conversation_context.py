"""Per-turn conversation context.

Builds what the model sees for one request:

- the replayed history, pruned to plain user/model text turns
- the reply language, detected from a small lexicon
- context blocks prepended to the visitor's message: page/property context,
  a date anchor when scheduling vocabulary appears, the reply-language
  instruction, and up to 3 excerpts of past negative feedback
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from listing_concierge.agents.prompts.fallback_templates import get_text
from listing_concierge.services.feedback_service import FeedbackExcerpt, FeedbackService

logger = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 20
MAX_FEEDBACK_EXCERPTS = 3
REPLAYABLE_ROLES = ("user", "model")

ID_LEXICON = frozenset({
    "saya", "aku", "anda", "kamu", "yang", "dan", "di", "ke", "dari", "untuk", "dengan", "ini", "itu",
    "ada", "apa", "apakah", "berapa", "bisa", "mau", "ingin", "cari", "carikan", "mencari", "tolong",
    "rumah", "harga", "juta", "milyar", "miliar", "dijual", "disewa", "sewa", "kamar", "tidur", "dekat",
    "murah", "besok", "lusa", "terima", "kasih", "halo", "selamat", "pagi", "siang", "sore", "malam",
    "tidak", "belum", "sudah", "jadwal", "kunjungan", "lihat", "tanah", "ruko", "apartemen", "daerah",
})

EN_LEXICON = frozenset({
    "i", "me", "my", "you", "your", "the", "a", "an", "and", "or", "of", "to", "for", "with", "in", "is",
    "are", "do", "does", "can", "could", "would", "want", "looking", "find", "search", "show", "any",
    "house", "home", "apartment", "price", "bedroom", "bedrooms", "near", "cheap", "rent", "sale", "buy",
    "tomorrow", "today", "thanks", "thank", "hello", "hi", "please", "what", "how", "much", "where",
    "schedule", "visit", "viewing", "land", "shophouse", "property", "properties", "budget", "under",
})

SCHEDULING_PATTERN = re.compile(
    r"\b(?:jadwal\w*|kunjung\w*|survei|survey|lihat\s+(?:rumah|properti|unit|lokasi)|besok|lusa|"
    r"minggu\s+depan|hari\s+ini|akhir\s+pekan|schedule\w*|visit\w*|viewing|appointment|tomorrow|"
    r"next\s+week|today|weekend|day\s+after\s+tomorrow)\b",
    re.IGNORECASE,
)

_WORD_PATTERN = re.compile(r"[a-zA-Z]+")
_OVERLAP_STOP_WORDS = frozenset({
    "yang", "dan", "dari", "untuk", "dengan", "ini", "itu", "ada",
    "the", "and", "for", "with", "you", "your", "are",
})


def _words(text: str) -> list[str]:
    return [w.lower() for w in _WORD_PATTERN.findall(text or "")]


def _lexicon_language(text: str) -> Optional[str]:
    words = _words(text)
    if not words:
        return None
    id_hits = sum(1 for w in words if w in ID_LEXICON)
    en_hits = sum(1 for w in words if w in EN_LEXICON)
    if id_hits == en_hits:
        return None
    return "id" if id_hits > en_hits else "en"


def prune_history(turns: Iterable) -> list[tuple[str, str]]:
    """Keep only user/model text turns (tool-call turns are never replayed)."""
    pruned = []
    for turn in turns:
        role = getattr(turn, "role", None) if not isinstance(turn, dict) else turn.get("role")
        text = getattr(turn, "parts", None) if not isinstance(turn, dict) else turn.get("parts")
        if role not in REPLAYABLE_ROLES or not isinstance(text, str) or not text.strip():
            continue
        pruned.append((role, text))
    return pruned[-MAX_HISTORY_TURNS:]


def detect_language(message: str, history: Sequence[tuple[str, str]] = (), default: str = "id") -> str:
    """Current message first, then the most recent user turn, then ``default``."""
    detected = _lexicon_language(message)
    if detected:
        return detected
    for role, text in reversed(history):
        if role != "user":
            continue
        detected = _lexicon_language(text)
        if detected:
            return detected
        break
    return default


def needs_date_anchor(message: str) -> bool:
    return SCHEDULING_PATTERN.search(message or "") is not None


def relevant_feedback(
    message: str,
    excerpts: Sequence[FeedbackExcerpt],
    limit: int = MAX_FEEDBACK_EXCERPTS,
) -> list[FeedbackExcerpt]:
    """Excerpts ranked by word overlap with the message; zero-overlap ones are dropped."""
    wanted = {w for w in _words(message) if len(w) >= 3 and w not in _OVERLAP_STOP_WORDS}
    if not wanted:
        return []
    scored = []
    for index, excerpt in enumerate(excerpts):
        words = set(_words(f"{excerpt.user_message} {excerpt.comment}"))
        score = len(wanted & words)
        if score:
            scored.append((score, -index, excerpt))
    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [excerpt for _, _, excerpt in scored[:limit]]


@dataclass
class ConversationContext:
    tenant_id: str
    message: str
    prompt: str
    history: list[tuple[str, str]] = field(default_factory=list)
    language: str = "id"
    today: Optional[date] = None
    blocks: list[str] = field(default_factory=list)
    current_url: Optional[str] = None
    current_property_id: Optional[str] = None


class ConversationContextBuilder:
    def __init__(
        self,
        feedback: Optional[FeedbackService] = None,
        timezone: str = "Asia/Jakarta",
        default_language: str = "id",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.feedback = feedback
        self.tz = ZoneInfo(timezone)
        self.default_language = default_language
        self.clock = clock or (lambda: datetime.now(self.tz))

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    async def build(
        self,
        tenant_id: str,
        message: str,
        history: Iterable = (),
        current_url: Optional[str] = None,
        current_property_id: Optional[str] = None,
    ) -> ConversationContext:
        pruned = prune_history(history)
        language = detect_language(message, pruned, self.default_language)
        today = self.today()

        blocks = []
        if current_property_id or current_url:
            page = f"[Page context] The visitor is viewing property ID {current_property_id or '-'}"
            if current_url:
                page += f" ({current_url})"
            blocks.append(page + ".")

        if needs_date_anchor(message):
            tomorrow = today + timedelta(days=1)
            blocks.append(
                f"[Date] Today is {today.strftime('%A')}, {today.isoformat()} ({self.tz.key}). "
                f"Tomorrow is {tomorrow.isoformat()}. Use YYYY-MM-DD for preferred_date."
            )

        blocks.append(f"[Language] {get_text('language_instruction', language)}")

        for excerpt in await self._feedback_excerpts(tenant_id, message):
            line = f'[Past negative feedback] Visitor asked: "{excerpt.user_message[:200]}"'
            if excerpt.comment:
                line += f' Complaint: "{excerpt.comment[:200]}"'
            blocks.append(line + " Avoid repeating that mistake.")

        prompt = "\n".join(blocks) + f"\n\nVisitor message: {message}"
        return ConversationContext(
            tenant_id=tenant_id,
            message=message,
            prompt=prompt,
            history=pruned,
            language=language,
            today=today,
            blocks=blocks,
            current_url=current_url,
            current_property_id=current_property_id,
        )

    async def _feedback_excerpts(self, tenant_id: str, message: str) -> list[FeedbackExcerpt]:
        if self.feedback is None:
            return []
        try:
            excerpts = await self.feedback.negative_excerpts(tenant_id)
        except Exception:
            logger.exception("[%s] Could not load feedback excerpts", tenant_id)
            return []
        return relevant_feedback(message, excerpts)
