"""
Local Identity Provider
Stores email/password credentials in the engagement database

Stands in for a hosted identity service; any object with the same
`create_account` coroutine can replace it.
"""

import logging
import uuid
from typing import Optional

import bcrypt
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.app.config import get_config
from engagement_core.infrastructure.repositories import CredentialRepository
from engagement_core.services.exceptions import ConflictError, ValidationError

logger = logging.getLogger(__name__)

EMAIL_ADAPTER = TypeAdapter(EmailStr)

# bcrypt only reads the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its bcrypt hash

    Returns:
        True if password matches; False for a mismatch or a malformed hash
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


def normalize_email(email: str) -> str:
    """
    Validated, lower-cased email address

    Raises:
        ValidationError: Not a syntactically valid address
    """
    try:
        return EMAIL_ADAPTER.validate_python((email or "").strip()).lower()
    except PydanticValidationError as e:
        raise ValidationError("The email address is not valid.", field="email") from e


class LocalIdentityProvider:
    """
    Identity provider backed by the credentials table

    Usage:
        provider = LocalIdentityProvider(db_manager.session_factory)
        uid = await provider.create_account("a@b.co", "secret1", "Ann")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        min_password_length: Optional[int] = None,
        rounds: Optional[int] = None,
    ):
        auth = get_config().auth
        self.session_factory = session_factory
        self.min_password_length = min_password_length or auth.min_password_length
        self.rounds = rounds or auth.bcrypt_rounds

    async def create_account(self, email: str, password: str, display_name: str) -> str:
        """
        Register a login identity

        Raises:
            ValidationError: Invalid email or weak password
            ConflictError: Email already registered
        """
        email = normalize_email(email)
        if len(password or "") < self.min_password_length:
            raise ValidationError(
                f"The password must be at least {self.min_password_length} characters long.",
                field="password",
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"The password must be at most {MAX_PASSWORD_BYTES} bytes long.",
                field="password",
            )

        uid = uuid.uuid4().hex
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    credentials = CredentialRepository(session)
                    if await credentials.get_by_email(email) is not None:
                        raise ConflictError("The email address is already in use.")
                    await credentials.create(
                        uid=uid,
                        email=email,
                        password_hash=hash_password(password, self.rounds),
                    )
        except IntegrityError as e:
            raise ConflictError("The email address is already in use.") from e

        logger.info(f"🔑 Identity created: {uid}")
        return uid

    async def verify(self, email: str, password: str) -> Optional[str]:
        """uid for valid credentials, otherwise None"""
        async with self.session_factory() as session:
            credential = await CredentialRepository(session).get_by_email(email)
        if credential is None or not verify_password(password, credential.password_hash):
            return None
        return credential.uid
