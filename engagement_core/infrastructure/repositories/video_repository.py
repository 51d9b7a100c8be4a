"""
Video Repository
Videos, video likes and liked-video back-references
"""

from typing import List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import LikedVideo, Video, VideoLike, VideoStatus

logger = logging.getLogger(__name__)


class VideoRepository(BaseRepository[Video]):
    """Repository for Video operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Video)

    async def sum_active_likes(self, owner_id: str) -> int:
        """
        Source-of-truth total likes for an owner

        Sums likes_count over the owner's active videos only.
        """
        result = await self.session.execute(
            select(func.coalesce(func.sum(Video.likes_count), 0)).where(
                Video.owner_id == owner_id, Video.status == VideoStatus.ACTIVE
            )
        )
        return int(result.scalar_one() or 0)

    async def count_owned(self, owner_id: str) -> int:
        """Videos owned by a user that are not deleted"""
        result = await self.session.execute(
            select(func.count())
            .select_from(Video)
            .where(Video.owner_id == owner_id, Video.status != VideoStatus.DELETED)
        )
        return int(result.scalar_one() or 0)

    async def legacy_owner_page(self, limit: int = 500) -> List[Video]:
        """Videos whose canonical owner field is still empty"""
        result = await self.session.execute(
            select(Video)
            .where(Video.owner_id.is_(None), Video.legacy_uploader_id.is_not(None))
            .order_by(Video.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def orphaned_owner_count(self) -> int:
        """Videos with no owner in either field"""
        result = await self.session.execute(
            select(func.count())
            .select_from(Video)
            .where(Video.owner_id.is_(None), Video.legacy_uploader_id.is_(None))
        )
        return int(result.scalar_one() or 0)


class VideoLikeRepository(BaseRepository[VideoLike]):
    """Per-user likes on videos"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, VideoLike)

    async def count_for_video(self, video_id: str) -> int:
        return await self.count(video_id=video_id)

    async def get(self, video_id: str, user_id: str) -> Optional[VideoLike]:
        return await self.get_by_id((video_id, user_id))


class LikedVideoRepository(BaseRepository[LikedVideo]):
    """Back-references from users to the videos they liked"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LikedVideo)

    async def ensure(self, user_id: str, video_id: str) -> bool:
        """Create the back-reference if missing; True when created"""
        if await self.get_by_id((user_id, video_id)) is not None:
            return False
        await self.create(user_id=user_id, video_id=video_id)
        return True

    async def remove(self, user_id: str, video_id: str) -> int:
        return await self.delete_where(user_id=user_id, video_id=video_id)

    async def user_ids_page(self, video_id: str, limit: int = 500) -> List[str]:
        """Users still holding a back-reference to the video"""
        result = await self.session.execute(
            select(LikedVideo.user_id)
            .where(LikedVideo.video_id == video_id)
            .order_by(LikedVideo.user_id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_for_users(self, video_id: str, user_ids: List[str]) -> int:
        if not user_ids:
            return 0
        return await self.delete_where(
            LikedVideo.user_id.in_(user_ids), video_id=video_id
        )
