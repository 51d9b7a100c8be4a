"""
Notification Repository
Persists validated notification variants
"""

from typing import Optional, Sequence
import logging
import uuid

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import Notification, NotificationType
from engagement_core.domain.notifications import NotificationVariant

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Notification)

    async def add(self, variant: NotificationVariant) -> Notification:
        """Stage one notification built from a validated variant"""
        row = variant.to_row()
        row["type"] = NotificationType(row["type"])
        return await self.create(id=uuid.uuid4().hex, **row)

    def add_many(self, variants: Sequence[NotificationVariant]) -> int:
        """Stage a chunk of notifications without flushing"""
        for variant in variants:
            row = variant.to_row()
            row["type"] = NotificationType(row["type"])
            self.session.add(Notification(id=uuid.uuid4().hex, **row))
        return len(variants)

    async def delete_referencing_comments(self, comment_ids: Sequence[str]) -> int:
        """Drop every notification pointing at any of the comments"""
        if not comment_ids:
            return 0
        return await self.delete_where(Notification.comment_id.in_(list(comment_ids)))

    async def delete_comment_like(self, video_id: str, comment_id: str, source_user_id: str) -> int:
        return await self.delete_where(
            type=NotificationType.COMMENT_LIKE,
            video_id=video_id,
            comment_id=comment_id,
            source_user_id=source_user_id,
        )

    async def delete_video_like(self, video_id: str, source_user_id: str) -> int:
        return await self.delete_where(
            type=NotificationType.LIKE,
            video_id=video_id,
            source_user_id=source_user_id,
        )

    async def backfill_thumbnails(self, video_id: str, thumbnail_url: Optional[str]) -> int:
        """Set the thumbnail on this video's comment notifications that lack one"""
        if not thumbnail_url:
            return 0
        result = await self.session.execute(
            update(Notification)
            .where(
                Notification.video_id == video_id,
                Notification.video_thumbnail_url.is_(None),
                or_(
                    Notification.type == NotificationType.COMMENT,
                    Notification.type == NotificationType.COMMENT_REPLY,
                ),
            )
            .values(video_thumbnail_url=thumbnail_url)
        )
        return int(result.rowcount or 0)
