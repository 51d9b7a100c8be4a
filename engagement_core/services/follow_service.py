"""
Follow Service
Follow/unfollow operations and follow-edge self-healing
"""

from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from engagement_core.app.models import FollowEdge, UserAccount, follow_edge_id
from engagement_core.domain.events import ChangeEvent, EventKind
from engagement_core.domain.notifications import FollowNotification
from engagement_core.domain.snapshots import FollowSnapshot
from engagement_core.infrastructure.repositories import FollowRepository, NotificationRepository
from engagement_core.services.base_service import BaseService
from engagement_core.services.counter_service import CounterService
from engagement_core.services.exceptions import ConflictError, NotFoundError, ValidationError

FOLLOW_PATH = "follows/{follow_id}"


class FollowService(BaseService):
    """
    Follow graph operations

    follow and unfollow each run as one optimistic transaction covering the
    edge, both users' counters and (for follow) the notification.
    """

    def __init__(self, counters: CounterService, config=None):
        super().__init__(config)
        self.counters = counters

    def get_service_name(self) -> str:
        return "FollowService"

    def register_handlers(self, dispatcher) -> None:
        dispatcher.register(FOLLOW_PATH, (EventKind.CREATED, EventKind.UPDATED), self.on_follow_written)

    def _validate_pair(self, follower_id: str, following_id: str) -> None:
        self.validate_required(following_id, "followingId")
        if follower_id == following_id:
            raise ValidationError("Cannot follow yourself", field="followingId")

    # ========================================================================
    # Callable Operations
    # ========================================================================

    async def follow_user(self, follower_id: str, following_id: str) -> Dict[str, Any]:
        """
        Create the edge follower -> following

        Raises:
            ValidationError: Missing id or self-follow
            NotFoundError: Either user is missing
            ConflictError: Already following
        """
        self._validate_pair(follower_id, following_id)

        async def work(session: AsyncSession) -> None:
            follower = await session.get(UserAccount, follower_id)
            following = await session.get(UserAccount, following_id)
            if follower is None or following is None:
                raise NotFoundError("user", following_id if follower else follower_id,
                                    "One or both users do not exist")

            edges = FollowRepository(session)
            if await edges.get_edge(follower_id, following_id) is not None:
                raise ConflictError("Already following this user")

            try:
                await edges.create(
                    id=follow_edge_id(follower_id, following_id),
                    follower_id=follower_id,
                    following_id=following_id,
                )
            except IntegrityError as e:
                # A concurrent follow committed the same edge after the check
                raise ConflictError("Already following this user") from e
            follower.following_count = (follower.following_count or 0) + 1
            following.followers_count = (following.followers_count or 0) + 1
            await NotificationRepository(session).add(
                FollowNotification(recipient_id=following_id, source_user_id=follower_id)
            )

        await self.counters.run_in_transaction(work, f"follow {follower_id} -> {following_id}")
        self.log_info("➕ Follow created", follower=follower_id, following=following_id)
        return {"success": True}

    async def unfollow_user(self, follower_id: str, following_id: str) -> Dict[str, Any]:
        """
        Remove the edge follower -> following

        The earlier follow notification is left in place.

        Raises:
            NotFoundError: No such edge
        """
        self._validate_pair(follower_id, following_id)

        async def work(session: AsyncSession) -> None:
            edges = FollowRepository(session)
            edge = await edges.get_edge(follower_id, following_id)
            if edge is None:
                raise NotFoundError(
                    "follow", follow_edge_id(follower_id, following_id),
                    "Follow relationship does not exist",
                )
            await edges.delete(edge)

            follower = await session.get(UserAccount, follower_id)
            following = await session.get(UserAccount, following_id)
            if follower is not None:
                follower.following_count = max(0, (follower.following_count or 0) - 1)
            if following is not None:
                following.followers_count = max(0, (following.followers_count or 0) - 1)

        await self.counters.run_in_transaction(work, f"unfollow {follower_id} -> {following_id}")
        self.log_info("➖ Follow removed", follower=follower_id, following=following_id)
        return {"success": True}

    # ========================================================================
    # Self-healing
    # ========================================================================

    async def on_follow_written(self, event: ChangeEvent, params: Dict[str, str]) -> bool:
        """
        Replace a follow document stored under the wrong id

        Only runs when both users exist. If the canonical edge is already
        present the stray document is simply removed. Returns True when
        anything was repaired.
        """
        follow_id = params["follow_id"]
        snapshot = FollowSnapshot.model_validate(event.after)
        expected = follow_edge_id(snapshot.follower_id, snapshot.following_id)
        if follow_id == expected:
            return False

        async def work(session: AsyncSession) -> str:
            if (
                await session.get(UserAccount, snapshot.follower_id) is None
                or await session.get(UserAccount, snapshot.following_id) is None
            ):
                return "skipped"

            edges = FollowRepository(session)
            stray = await edges.get_by_id(follow_id)
            if stray is None:
                return "gone"

            if await edges.get_by_id(expected) is None:
                session.add(
                    FollowEdge(
                        id=expected,
                        follower_id=snapshot.follower_id,
                        following_id=snapshot.following_id,
                        created_at=stray.created_at,
                    )
                )
                outcome = "recreated"
            else:
                outcome = "removed"
            await edges.delete(stray)
            return outcome

        outcome = await self.counters.run_in_transaction(work, f"heal follow {follow_id}")
        if outcome == "skipped":
            self.log_warning("⚠️  Mismatched follow id but a user is missing, leaving as is", follow_id=follow_id)
            return False
        self.log_info(f"🩹 Follow edge {outcome}", stray_id=follow_id, expected_id=expected)
        return outcome in ("recreated", "removed")
