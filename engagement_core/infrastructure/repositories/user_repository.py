"""
User Repository
Profiles, credentials and counter source-of-truth helpers for users
"""

from typing import Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import Credential, UserAccount

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[UserAccount]):
    """Repository for UserAccount operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UserAccount)

    async def create_profile(self, uid: str, email: str, display_name: str) -> UserAccount:
        """Profile with every aggregate at zero"""
        return await self.create(
            id=uid,
            email=email,
            display_name=display_name,
            display_name_lower=display_name.lower(),
            total_videos=0,
            total_likes=0,
            followers_count=0,
            following_count=0,
        )

    async def display_name_taken(self, display_name: str) -> bool:
        """Case-insensitive display name lookup"""
        lowered = display_name.lower()
        result = await self.session.execute(
            select(func.count())
            .select_from(UserAccount)
            .where(
                (UserAccount.display_name_lower == lowered)
                | (func.lower(UserAccount.display_name) == lowered)
            )
        )
        return int(result.scalar_one() or 0) > 0

    async def users_missing_lower_name(self, limit: int = 500):
        """Users written before display_name_lower existed"""
        result = await self.session.execute(
            select(UserAccount)
            .where(UserAccount.display_name_lower.is_(None))
            .order_by(UserAccount.id)
            .limit(limit)
        )
        return list(result.scalars().all())


class CredentialRepository(BaseRepository[Credential]):
    """Credential storage for the local identity provider"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Credential)

    async def get_by_email(self, email: str) -> Optional[Credential]:
        return await self.find_one_by(email=email.lower())
