"""Thumbs up/down feedback storage.

Feeds two consumers: the model gateway's upgrade hook (recent ratings) and
the per-turn context builder (excerpts of past negative feedback).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select

from listing_concierge.domain.enums import FeedbackRating
from listing_concierge.domain.models import Feedback

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackExcerpt:
    user_message: str
    ai_response: str
    comment: str = ""


class FeedbackService:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def record(
        self,
        tenant_id: str,
        rating: FeedbackRating,
        message_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        user_message: Optional[str] = None,
        ai_response: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> Feedback:
        async with self.session_factory() as session:
            row = Feedback(
                tenant_id=tenant_id,
                rating=rating.value,
                message_id=message_id,
                conversation_id=conversation_id,
                user_message=user_message,
                ai_response=ai_response,
                comment=comment,
            )
            session.add(row)
            await session.commit()
        logger.info("[%s] Feedback %s recorded for message %s", tenant_id, rating.value, message_id)
        return row

    async def recent_ratings(self, tenant_id: str, limit: int = 20) -> list[str]:
        """The tenant's last ``limit`` ratings, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Feedback.rating)
                .where(Feedback.tenant_id == tenant_id)
                .order_by(Feedback.created_at.desc())
                .limit(limit)
            )
            return list(reversed(result.scalars().all()))

    async def negative_excerpts(self, tenant_id: str, limit: int = 50) -> list[FeedbackExcerpt]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Feedback)
                .where(
                    Feedback.tenant_id == tenant_id,
                    Feedback.rating == FeedbackRating.THUMBS_DOWN.value,
                )
                .order_by(Feedback.created_at.desc())
                .limit(limit)
            )
            return [
                FeedbackExcerpt(
                    user_message=row.user_message or "",
                    ai_response=row.ai_response or "",
                    comment=row.comment or "",
                )
                for row in result.scalars().all()
            ]
