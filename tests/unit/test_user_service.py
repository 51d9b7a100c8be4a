"""
Unit Tests for UserService and the local identity provider
"""

from unittest.mock import AsyncMock

import pytest

from engagement_core.app.models import UserAccount
from engagement_core.infrastructure.clients import LocalIdentityProvider
from engagement_core.infrastructure.clients.identity_provider import (
    hash_password,
    normalize_email,
    verify_password,
)
from engagement_core.services import ConflictError, NotFoundError, UserService, ValidationError
from tests.factories import fetch, make_user


@pytest.mark.asyncio
class TestCreateUser:
    async def test_creates_profile_with_zero_counters(self, services, session_factory):
        result = await services.users.create_user("Cook@Example.com", "secret123", "Chef Ana")

        assert result["success"] is True
        assert result["message"] == "User created successfully"
        user = await fetch(session_factory, UserAccount, result["uid"])
        assert user.email == "cook@example.com"
        assert user.display_name == "Chef Ana"
        assert user.display_name_lower == "chef ana"
        assert (user.total_videos, user.total_likes, user.followers_count, user.following_count) == (0, 0, 0, 0)

    async def test_display_name_unique_ignoring_case(self, services, seed):
        await seed(make_user("chef"))

        with pytest.raises(ConflictError, match="display name is already taken"):
            await services.users.create_user("new@example.com", "secret123", "CHEF")

    @pytest.mark.parametrize(
        "email,password,display_name",
        [("", "secret123", "Ana"), ("a@example.com", "", "Ana"), ("a@example.com", "secret123", "  ")],
    )
    async def test_required_fields(self, services, email, password, display_name):
        with pytest.raises(ValidationError):
            await services.users.create_user(email, password, display_name)

    async def test_display_name_too_long(self, services):
        with pytest.raises(ValidationError):
            await services.users.create_user("a@example.com", "secret123", "x" * 101)

    async def test_identity_provider_errors_propagate(self, services):
        with pytest.raises(ValidationError, match="email address is not valid"):
            await services.users.create_user("not-an-email", "secret123", "Ana")
        with pytest.raises(ValidationError, match="at least 6 characters"):
            await services.users.create_user("a@example.com", "123", "Ana")

    async def test_duplicate_email(self, services):
        await services.users.create_user("a@example.com", "secret123", "Ana")
        with pytest.raises(ConflictError):
            await services.users.create_user("A@example.com", "secret123", "Someone Else")

    async def test_identity_not_called_when_name_taken(self, session_factory, seed):
        await seed(make_user("chef"))
        provider = AsyncMock()
        users = UserService(session_factory, provider)

        with pytest.raises(ConflictError):
            await users.create_user("a@example.com", "secret123", "Chef")
        provider.create_account.assert_not_called()


@pytest.mark.asyncio
class TestProfiles:
    async def test_get_profile(self, services, seed):
        await seed(make_user("alice", total_likes=3))
        profile = await services.users.get_profile("alice")
        assert profile["total_likes"] == 3

    async def test_missing_profile(self, services):
        with pytest.raises(NotFoundError):
            await services.users.get_profile("ghost")

    async def test_migrate_display_names(self, services, session_factory, seed):
        await seed(
            UserAccount(id="a", email="a@example.com", display_name="Ana Maria"),
            UserAccount(id="b", email="b@example.com", display_name="BOB"),
            make_user("carol"),
        )

        assert await services.users.migrate_display_names(page_size=1) == 2
        assert (await fetch(session_factory, UserAccount, "a")).display_name_lower == "ana maria"
        assert (await fetch(session_factory, UserAccount, "b")).display_name_lower == "bob"


def test_password_hash_round_trip():
    encoded = hash_password("secret123", rounds=4)
    assert encoded.startswith("$2b$04$")
    assert verify_password("secret123", encoded)
    assert not verify_password("wrong", encoded)


def test_malformed_hash_does_not_verify():
    assert verify_password("secret123", "not-a-bcrypt-hash") is False


@pytest.mark.parametrize("email", ["Cook@Example.com", "  cook@example.com "])
def test_normalize_email(email):
    assert normalize_email(email) == "cook@example.com"


@pytest.mark.parametrize("email", ["", "not-an-email", "a@", "@example.com", "a b@example.com"])
def test_normalize_email_rejects(email):
    with pytest.raises(ValidationError, match="email address is not valid"):
        normalize_email(email)


@pytest.mark.asyncio
async def test_password_longer_than_bcrypt_limit(session_factory):
    provider = LocalIdentityProvider(session_factory, rounds=4)

    with pytest.raises(ValidationError, match="at most 72 bytes"):
        await provider.create_account("cook@example.com", "x" * 73, "Cook")


@pytest.mark.asyncio
async def test_identity_provider_verify(session_factory):
    provider = LocalIdentityProvider(session_factory, rounds=4)
    uid = await provider.create_account("cook@example.com", "secret123", "Cook")

    assert await provider.verify("Cook@example.com", "secret123") == uid
    assert await provider.verify("cook@example.com", "nope") is None
