"""
Follow Repository
Follow edges and the follower queries used by fan-out
"""

from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import FollowEdge, follow_edge_id

logger = logging.getLogger(__name__)


class FollowRepository(BaseRepository[FollowEdge]):
    """Repository for FollowEdge operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FollowEdge)

    async def get_edge(self, follower_id: str, following_id: str) -> Optional[FollowEdge]:
        return await self.get_by_id(follow_edge_id(follower_id, following_id))

    async def follower_ids_page(
        self, following_id: str, after: Optional[str] = None, limit: int = 500
    ) -> List[str]:
        """
        Keyset page of a user's follower ids

        Args:
            following_id: User being followed
            after: Last follower id of the previous page
            limit: Page size
        """
        query = select(FollowEdge.follower_id).where(FollowEdge.following_id == following_id)
        if after is not None:
            query = query.where(FollowEdge.follower_id > after)
        query = query.order_by(FollowEdge.follower_id).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_followers(self, user_id: str) -> int:
        return await self.count(following_id=user_id)

    async def count_following(self, user_id: str) -> int:
        return await self.count(follower_id=user_id)
