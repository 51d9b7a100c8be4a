"""
Comment Repository
Handles comment threads and comment likes
"""

from typing import List, Sequence
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import Comment, CommentLike

logger = logging.getLogger(__name__)


class CommentRepository(BaseRepository[Comment]):
    """
    Repository for Comment operations
    Provides thread-aware queries used by the fan-out engine
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, Comment)

    async def reply_ids(self, parent_id: str) -> List[str]:
        """Ids of every depth-1 reply to a comment"""
        result = await self.session.execute(
            select(Comment.id).where(Comment.parent_id == parent_id)
        )
        return list(result.scalars().all())

    async def count_top_level(self, video_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(Comment)
            .where(Comment.video_id == video_id, Comment.depth == 0)
        )
        return int(result.scalar_one() or 0)

    async def count_replies(self, parent_id: str) -> int:
        return await self.count(parent_id=parent_id, depth=1)


class CommentLikeRepository(BaseRepository[CommentLike]):
    """Per-user likes on comments"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CommentLike)

    async def count_for_comment(self, comment_id: str) -> int:
        return await self.count(comment_id=comment_id)

    async def delete_for_comments(self, comment_ids: Sequence[str]) -> int:
        if not comment_ids:
            return 0
        return await self.delete_where(CommentLike.comment_id.in_(list(comment_ids)))
