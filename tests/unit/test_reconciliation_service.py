"""
Unit Tests for ReconciliationService
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from engagement_core.app.models import (
    Comment,
    CommentLike,
    LikedVideo,
    ReconciliationRun,
    ReconciliationTask,
    UserAccount,
    Video,
    VideoLike,
    VideoStatus,
    utcnow,
)
from engagement_core.infrastructure.repositories import ReconciliationRepository
from engagement_core.services import ConflictError, NotFoundError, TransientInfraError
from engagement_core.services.reconciliation_service import FULL_SWEEP, QUEUE_PASS, RECOMPUTERS
from tests.factories import fetch, make_comment, make_follow, make_user, make_video


@pytest.mark.asyncio
class TestRecompute:
    async def test_user_total_likes_counts_active_videos_only(self, services, session_factory, seed):
        await seed(
            make_user("owner", total_likes=99),
            make_video("v1", "owner", likes_count=4),
            make_video("v2", "owner", likes_count=6, status=VideoStatus.DELETED),
        )

        total = await services.reconciliation.recalculate_user_total_likes("owner")

        assert total == 4
        assert (await fetch(session_factory, UserAccount, "owner")).total_likes == 4

    async def test_missing_user(self, services):
        with pytest.raises(NotFoundError):
            await services.reconciliation.force_reconcile("ghost")

    @pytest.mark.parametrize(
        "collection,target,field,expected",
        [
            ("users", "alice", "followers_count", 2),
            ("users", "alice", "following_count", 1),
            ("users", "alice", "total_videos", 1),
            ("videos", "v1", "likes_count", 1),
            ("videos", "v1", "comments_count", 1),
            ("comments", "c1", "likes_count", 1),
            ("comments", "c1", "reply_count", 1),
        ],
    )
    async def test_every_counter_has_a_source(self, services, seed, collection, target, field, expected):
        await seed(
            make_user("alice", followers_count=50, following_count=50, total_videos=50),
            make_follow("bob", "alice"),
            make_follow("carol", "alice"),
            make_follow("alice", "bob"),
            make_video("v1", "alice", likes_count=50, comments_count=50),
            make_video("v2", "alice", status=VideoStatus.DELETED),
            VideoLike(video_id="v1", user_id="bob"),
            make_comment("c1", "v1", "bob", likes_count=50, reply_count=50),
            make_comment("r1", "v1", "alice", parent_id="c1"),
            CommentLike(comment_id="c1", user_id="alice", video_id="v1"),
        )

        outcome = await services.reconciliation.recompute(collection, target, field)

        assert outcome["new_value"] == expected
        assert outcome["changed"] is True


@pytest.mark.asyncio
class TestFullSweep:
    async def test_sweep_corrects_drift_and_reports_per_user(self, services, session_factory, seed):
        await seed(
            make_user("alice", total_likes=10),
            make_user("bob", total_likes=3),
            make_video("v1", "alice", likes_count=2),
            make_video("v2", "bob", likes_count=3),
        )

        results = await services.reconciliation.force_reconcile_all()

        assert results["alice"] == {"success": True, "old_count": 10, "new_count": 2}
        assert results["bob"] == {"success": True, "unchanged": True}
        assert (await fetch(session_factory, UserAccount, "alice")).total_likes == 2

    async def test_second_sweep_is_a_fixed_point(self, services, session_factory, seed):
        await seed(
            *[make_user(f"u{i}", total_likes=i * 7) for i in range(7)],
            *[make_video(f"v{i}", f"u{i % 3}", likes_count=i) for i in range(9)],
        )
        services.reconciliation.page_size = 3

        first = await services.reconciliation.force_reconcile_all()
        second = await services.reconciliation.force_reconcile_all()

        assert len(first) == 7
        assert any("old_count" in r for r in first.values())
        assert all(r == {"success": True, "unchanged": True} for r in second.values())

        async with session_factory() as session:
            runs = (await session.execute(select(ReconciliationRun))).scalars().all()
        assert [r.scope for r in runs] == [FULL_SWEEP, FULL_SWEEP]
        assert runs[1].changed == 0

    async def test_failing_user_does_not_stop_sweep(self, services, seed, monkeypatch):
        await seed(make_user("alice", total_likes=1), make_user("bob", total_likes=1))
        reconcile = services.reconciliation.force_reconcile

        async def flaky(user_id):
            if user_id == "alice":
                raise NotFoundError("user", user_id)
            return await reconcile(user_id)

        monkeypatch.setattr(services.reconciliation, "force_reconcile", flaky)

        results = await services.reconciliation.force_reconcile_all()

        assert results["alice"]["success"] is False
        assert results["bob"] == {"success": True, "old_count": 1, "new_count": 0}

    async def test_database_error_on_one_user_does_not_stop_sweep(self, services, seed, monkeypatch):
        await seed(make_user("alice", total_likes=1), make_user("bob", total_likes=1))
        recompute = RECOMPUTERS[("users", "total_likes")]

        async def failing_for_alice(session, user_id):
            if user_id == "alice":
                raise OperationalError("SELECT sum(likes_count)", {}, Exception("database is locked"))
            return await recompute(session, user_id)

        monkeypatch.setitem(RECOMPUTERS, ("users", "total_likes"), failing_for_alice)

        results = await services.reconciliation.force_reconcile_all()

        assert results["alice"] == {
            "success": False,
            "error": "Recompute of users/alice.total_likes failed",
        }
        assert results["bob"] == {"success": True, "old_count": 1, "new_count": 0}


@pytest.mark.asyncio
class TestQueuePass:
    async def test_queued_video_likes_also_fix_owner_total(self, services, session_factory, seed):
        await seed(
            make_user("owner", total_likes=0),
            make_video("v1", "owner", likes_count=5),
            VideoLike(video_id="v1", user_id="a"),
            VideoLike(video_id="v1", user_id="b"),
        )
        await services.reconciliation.enqueue("videos", "v1", "like_count_change", field="likes_count")

        summary = await services.reconciliation.process_pending()

        assert summary["examined"] == 2
        assert summary["changed"] == 2
        assert (await fetch(session_factory, Video, "v1")).likes_count == 2
        assert (await fetch(session_factory, UserAccount, "owner")).total_likes == 2

    async def test_video_deletion_entry(self, services, session_factory, seed):
        await seed(
            make_user("owner", total_likes=8, total_videos=2),
            make_video("v2", "owner", likes_count=3),
            LikedVideo(user_id="a", video_id="v1"),
            LikedVideo(user_id="a", video_id="v2"),
        )
        await services.reconciliation.enqueue("videos", "v1", "video_deletion", context={"owner_id": "owner"})

        await services.reconciliation.process_pending()

        owner = await fetch(session_factory, UserAccount, "owner")
        assert (owner.total_likes, owner.total_videos) == (3, 1)
        assert await fetch(session_factory, LikedVideo, ("a", "v1")) is None
        assert await fetch(session_factory, LikedVideo, ("a", "v2")) is not None

    async def test_entries_before_last_pass_are_ignored(self, services, session_factory, seed):
        await seed(make_user("owner", total_likes=4))
        await services.reconciliation.enqueue("users", "owner", "counter_delta", field="total_likes")
        async with session_factory() as session:
            async with session.begin():
                task = (await session.execute(select(ReconciliationTask))).scalars().one()
                task.enqueued_at = utcnow() - timedelta(hours=1)
                session.add(ReconciliationRun(scope=QUEUE_PASS, started_at=utcnow() - timedelta(minutes=5)))

        summary = await services.reconciliation.process_pending()

        assert summary["examined"] == 0
        assert (await fetch(session_factory, UserAccount, "owner")).total_likes == 4

    async def test_vanished_targets_are_skipped(self, services, session_factory):
        await services.reconciliation.enqueue("comments", "gone", "reply_deleted", field="reply_count")

        summary = await services.reconciliation.process_pending()

        assert summary == {"examined": 1, "changed": 0, "failed": 0, "results": []}

    async def test_failed_recompute_is_retried_next_pass(self, services, session_factory, seed, monkeypatch):
        await seed(
            make_user("author"),
            make_video("v1", "author"),
            make_comment("c1", "v1", "author", reply_count=7),
        )
        await services.reconciliation.enqueue("comments", "c1", "reply_deleted", field="reply_count")
        set_value = services.counters.set_value
        contended = {"active": True}

        async def conflicting(target, field_name, value):
            if contended["active"]:
                raise ConflictError("set comments/c1.reply_count could not commit due to contention")
            return await set_value(target, field_name, value)

        monkeypatch.setattr(services.counters, "set_value", conflicting)

        first = await services.reconciliation.process_pending()
        assert first["failed"] == 1
        assert (await fetch(session_factory, Comment, "c1")).reply_count == 7

        async with session_factory() as session:
            kinds = (await session.execute(select(ReconciliationTask.kind))).scalars().all()
        assert sorted(kinds) == ["recompute_retry", "reply_deleted"]

        contended["active"] = False
        second = await services.reconciliation.process_pending()

        assert second["examined"] == 1
        assert second["failed"] == 0
        assert (await fetch(session_factory, Comment, "c1")).reply_count == 0

    async def test_run_not_recorded_when_requeue_fails(self, services, session_factory, seed, monkeypatch):
        await seed(make_user("owner", total_likes=4))
        await services.reconciliation.enqueue("users", "owner", "counter_delta", field="total_likes")

        async def conflicting(target, field_name, value):
            raise ConflictError("contention")

        async def broken_enqueue(self, *args, **kwargs):
            raise OperationalError("INSERT INTO reconciliation_tasks", {}, Exception("disk I/O error"))

        monkeypatch.setattr(services.counters, "set_value", conflicting)
        monkeypatch.setattr(ReconciliationRepository, "enqueue", broken_enqueue)

        with pytest.raises(TransientInfraError):
            await services.reconciliation.process_pending()

        async with session_factory() as session:
            runs = (await session.execute(select(ReconciliationRun))).scalars().all()
        assert runs == []

        monkeypatch.undo()
        summary = await services.reconciliation.process_pending()

        assert summary["changed"] == 1
        assert (await fetch(session_factory, UserAccount, "owner")).total_likes == 0
