"""
User Service
Account creation with zeroed aggregate counters
"""

from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.domain.interfaces import IdentityProvider
from engagement_core.infrastructure.repositories import UserRepository
from engagement_core.services.base_service import BaseService
from engagement_core.services.exceptions import ConflictError, NotFoundError, ValidationError

DISPLAY_NAME_MAX_LENGTH = 100


class UserService(BaseService):
    """Creates users through the identity provider and stores their profile"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity_provider: IdentityProvider,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        self.identity_provider = identity_provider

    def get_service_name(self) -> str:
        return "UserService"

    async def create_user(self, email: str, password: str, display_name: str) -> Dict[str, Any]:
        """
        Create a login identity and its profile

        Display names are unique ignoring case.

        Raises:
            ValidationError: Missing fields, bad email, weak password
            ConflictError: Display name or email already taken
        """
        for value, name in ((email, "email"), (password, "password"), (display_name, "displayName")):
            self.validate_required(value, name)
        display_name = display_name.strip()
        if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
            raise ValidationError("Display name is too long.", field="displayName")

        async with self.session_factory() as session:
            if await UserRepository(session).display_name_taken(display_name):
                raise ConflictError("This display name is already taken.")

        uid = await self.identity_provider.create_account(email, password, display_name)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await UserRepository(session).create_profile(
                        uid, email.strip().lower(), display_name
                    )
        except IntegrityError as e:
            self.log_error("❌ Profile insert failed after identity creation", error=e, uid=uid)
            raise ConflictError("This display name or email is already taken.") from e
        except Exception as e:
            raise self.handle_error(e, "create_user", {"uid": uid}) from e

        self.log_info("👤 User created", uid=uid)
        return {"success": True, "uid": uid, "message": "User created successfully"}

    async def get_profile(self, uid: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            user = await UserRepository(session).get_by_id(uid)
        if user is None:
            raise NotFoundError("user", uid)
        return user.to_dict()

    async def migrate_display_names(self, page_size: int = 500) -> int:
        """Fill display_name_lower for users written before it existed"""
        updated = 0
        while True:
            async with self.session_factory() as session:
                async with session.begin():
                    users = await UserRepository(session).users_missing_lower_name(limit=page_size)
                    for user in users:
                        user.display_name_lower = (user.display_name or "").lower()
            updated += len(users)
            if len(users) < page_size:
                break
        if updated:
            self.log_info(f"🔤 Lower-cased {updated} display names")
        return updated
