"""
Unit Tests for repositories
"""

from datetime import timedelta

import pytest

from engagement_core.app.models import (
    CommentLike,
    NotificationType,
    UserAccount,
    VideoStatus,
    utcnow,
)
from engagement_core.domain.notifications import CommentNotification, LikeNotification
from engagement_core.infrastructure.repositories import (
    CommentLikeRepository,
    CommentRepository,
    FollowRepository,
    LikedVideoRepository,
    NotificationRepository,
    ProcessedEventRepository,
    ReconciliationRepository,
    UserRepository,
    VideoRepository,
)
from tests.factories import make_comment, make_follow, make_user, make_video


@pytest.mark.asyncio
class TestUserRepository:
    async def test_create_profile_zeroes_counters(self, db_session):
        async with db_session.begin():
            user = await UserRepository(db_session).create_profile("u1", "a@example.com", "Alice")

        assert user.display_name_lower == "alice"
        assert (user.total_videos, user.total_likes, user.followers_count, user.following_count) == (0, 0, 0, 0)

    async def test_display_name_taken_ignores_case(self, db_session, seed):
        await seed(make_user("alice"))
        repo = UserRepository(db_session)

        assert await repo.display_name_taken("ALICE")
        assert not await repo.display_name_taken("bob")

    async def test_users_missing_lower_name(self, db_session, seed):
        await seed(
            make_user("alice"),
            UserAccount(id="legacy", email="legacy@example.com", display_name="Legacy"),
        )
        users = await UserRepository(db_session).users_missing_lower_name()
        assert [u.id for u in users] == ["legacy"]


@pytest.mark.asyncio
class TestVideoRepository:
    async def test_sum_active_likes_skips_inactive_videos(self, db_session, seed):
        await seed(
            make_video("v1", "owner", likes_count=3),
            make_video("v2", "owner", likes_count=4),
            make_video("v3", "owner", likes_count=10, status=VideoStatus.DELETED),
            make_video("v4", "someone", likes_count=7),
        )
        assert await VideoRepository(db_session).sum_active_likes("owner") == 7
        assert await VideoRepository(db_session).sum_active_likes("nobody") == 0

    async def test_count_owned_excludes_deleted(self, db_session, seed):
        await seed(
            make_video("v1", "owner"),
            make_video("v2", "owner", status=VideoStatus.PROCESSING),
            make_video("v3", "owner", status=VideoStatus.DELETED),
        )
        assert await VideoRepository(db_session).count_owned("owner") == 2

    async def test_legacy_owner_queries(self, db_session, seed):
        await seed(
            make_video("v1", None, legacy_uploader_id="old"),
            make_video("v2", None),
            make_video("v3", "owner"),
        )
        repo = VideoRepository(db_session)
        assert [v.id for v in await repo.legacy_owner_page()] == ["v1"]
        assert await repo.orphaned_owner_count() == 1

    async def test_liked_video_ensure_is_idempotent(self, db_session):
        async with db_session.begin():
            repo = LikedVideoRepository(db_session)
            assert await repo.ensure("u1", "v1") is True
            assert await repo.ensure("u1", "v1") is False
            await repo.ensure("u2", "v1")
            assert await repo.user_ids_page("v1") == ["u1", "u2"]
            assert await repo.delete_for_users("v1", ["u1", "u2"]) == 2
            assert await repo.count() == 0


@pytest.mark.asyncio
class TestCommentRepository:
    async def test_thread_queries(self, session_factory, db_session, seed):
        await seed(
            make_comment("c1", "v1", "u1"),
            make_comment("c2", "v1", "u2"),
            make_comment("r1", "v1", "u2", parent_id="c1"),
            make_comment("r2", "v1", "u3", parent_id="c1"),
            CommentLike(comment_id="c1", user_id="u2", video_id="v1"),
            CommentLike(comment_id="r1", user_id="u1", video_id="v1"),
        )
        comments = CommentRepository(db_session)
        assert sorted(await comments.reply_ids("c1")) == ["r1", "r2"]
        assert await comments.count_top_level("v1") == 2
        assert await comments.count_replies("c1") == 2

        async with session_factory() as session:
            async with session.begin():
                assert await CommentLikeRepository(session).delete_for_comments(["c1", "r1"]) == 2


@pytest.mark.asyncio
class TestFollowRepository:
    async def test_follower_pages(self, db_session, seed):
        await seed(*[make_follow(f"f{i}", "star") for i in range(5)], make_follow("star", "f0"))
        repo = FollowRepository(db_session)

        first = await repo.follower_ids_page("star", limit=3)
        second = await repo.follower_ids_page("star", after=first[-1], limit=3)

        assert first == ["f0", "f1", "f2"]
        assert second == ["f3", "f4"]
        assert await repo.count_followers("star") == 5
        assert await repo.count_following("star") == 1
        assert await repo.get_edge("f1", "star") is not None
        assert await repo.get_edge("star", "f1") is None


@pytest.mark.asyncio
class TestNotificationRepository:
    async def test_add_and_targeted_deletes(self, db_session):
        async with db_session.begin():
            repo = NotificationRepository(db_session)
            await repo.add(LikeNotification(recipient_id="owner", source_user_id="fan", video_id="v1"))
            repo.add_many(
                [
                    CommentNotification(
                        recipient_id="owner", source_user_id="fan", video_id="v1", comment_id="c1"
                    )
                ]
            )
            await db_session.flush()

            assert await repo.backfill_thumbnails("v1", "http://thumb") == 1
            assert await repo.delete_video_like("v1", "fan") == 1
            assert await repo.delete_referencing_comments(["c1"]) == 1
            assert await repo.count() == 0

    async def test_type_is_stored_as_enum(self, db_session):
        async with db_session.begin():
            row = await NotificationRepository(db_session).add(
                LikeNotification(recipient_id="owner", source_user_id="fan", video_id="v1")
            )
        assert row.type == NotificationType.LIKE
        assert row.read is False


@pytest.mark.asyncio
class TestReconciliationRepository:
    async def test_pending_since_watermark(self, db_session):
        async with db_session.begin():
            repo = ReconciliationRepository(db_session)
            old = await repo.enqueue("users", "u1", "counter_delta", field="total_likes")
            old.enqueued_at = utcnow() - timedelta(days=2)
            await repo.enqueue("videos", "v1", "video_deletion", context={"owner_id": "u1"})

        repo = ReconciliationRepository(db_session)
        pending = await repo.pending_since(utcnow() - timedelta(days=1))
        assert [t.kind for t in pending] == ["video_deletion"]
        assert len(await repo.pending_since(None)) == 2

    async def test_last_run(self, db_session):
        async with db_session.begin():
            repo = ReconciliationRepository(db_session)
            await repo.record_run("queue", utcnow() - timedelta(hours=1), examined=1, changed=0)
            latest = await repo.record_run("queue", utcnow(), examined=2, changed=1)
            await repo.record_run("full_sweep", utcnow(), examined=9, changed=9)

        run = await ReconciliationRepository(db_session).last_run("queue")
        assert run.id == latest.id

    async def test_processed_event_ledger(self, db_session):
        async with db_session.begin():
            ledger = ProcessedEventRepository(db_session)
            assert not await ledger.is_processed("e1:h")
            await ledger.mark_processed("e1:h", "videos/v1", "created")
            await ledger.mark_processed("e1:h", "videos/v1", "created")
            assert await ledger.is_processed("e1:h")
            assert await ledger.count() == 1
