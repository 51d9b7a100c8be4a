"""
Unit Tests for comment and comment-like fan-out
"""

from typing import List

import pytest
import pytest_asyncio
from sqlalchemy import select

from engagement_core.app.models import (
    Comment,
    CommentLike,
    Notification,
    NotificationType,
    Video,
)
from engagement_core.domain.events import ChangeEvent
from engagement_core.services import DispatchStatus
from tests.factories import fetch, make_comment, make_user, make_video


async def notifications(session_factory) -> List[Notification]:
    async with session_factory() as session:
        result = await session.execute(select(Notification).order_by(Notification.created_at))
        return list(result.scalars().all())


async def all_rows(session_factory, model) -> list:
    async with session_factory() as session:
        result = await session.execute(select(model))
        return list(result.scalars().all())


def comment_doc(user_id: str, parent_id=None, text: str = "looks tasty") -> dict:
    doc = {"userId": user_id, "text": text, "depth": 1 if parent_id else 0}
    if parent_id:
        doc["parentId"] = parent_id
    return doc


@pytest_asyncio.fixture
async def thread(seed):
    """owner's video v1 with a top-level comment c1 by author"""
    await seed(
        make_user("owner"),
        make_user("author"),
        make_user("fan"),
        make_video("v1", "owner", comments_count=1, thumbnail_url="http://thumb/v1"),
        make_comment("c1", "v1", "author"),
    )


@pytest.mark.asyncio
class TestCommentCreated:
    async def test_top_level_comment_counts_and_notifies_owner(self, services, session_factory, seed):
        await seed(make_user("owner"), make_user("fan"), make_video("v1", "owner"), make_comment("c1", "v1", "fan"))

        result = await services.dispatcher.dispatch(
            ChangeEvent.created("videos/v1/comments/c1", comment_doc("fan", text="x" * 150))
        )

        assert result.status == DispatchStatus.HANDLED
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1
        [note] = await notifications(session_factory)
        assert note.type == NotificationType.COMMENT
        assert (note.recipient_id, note.source_user_id, note.comment_id) == ("owner", "fan", "c1")
        assert len(note.comment_text) == 100

    async def test_owner_commenting_is_not_notified(self, services, session_factory, seed):
        await seed(make_user("owner"), make_video("v1", "owner"), make_comment("c1", "v1", "owner"))

        await services.dispatcher.dispatch(ChangeEvent.created("videos/v1/comments/c1", comment_doc("owner")))

        assert (await fetch(session_factory, Video, "v1")).comments_count == 1
        assert await notifications(session_factory) == []

    async def test_reply_counts_on_parent_and_notifies_author(self, services, session_factory, thread, seed):
        await seed(make_comment("r1", "v1", "fan", parent_id="c1"))

        result = await services.dispatcher.dispatch(
            ChangeEvent.created("videos/v1/comments/r1", comment_doc("fan", parent_id="c1"))
        )

        assert result.status == DispatchStatus.HANDLED
        assert (await fetch(session_factory, Comment, "c1")).reply_count == 1
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1
        [note] = await notifications(session_factory)
        assert note.type == NotificationType.COMMENT_REPLY
        assert note.recipient_id == "author"
        assert note.video_thumbnail_url == "http://thumb/v1"

    async def test_reply_to_reply_aborts_without_writes(self, services, session_factory, thread, seed):
        await seed(make_comment("r1", "v1", "fan", parent_id="c1", reply_count=0))

        result = await services.dispatcher.dispatch(
            ChangeEvent.created("videos/v1/comments/r2", comment_doc("owner", parent_id="r1"))
        )

        assert result.status == DispatchStatus.ABORTED
        assert (await fetch(session_factory, Comment, "r1")).reply_count == 0
        assert (await fetch(session_factory, Comment, "c1")).reply_count == 0
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1
        assert await notifications(session_factory) == []

    async def test_reply_to_missing_parent_aborts(self, services, session_factory, thread):
        result = await services.dispatcher.dispatch(
            ChangeEvent.created("videos/v1/comments/r1", comment_doc("fan", parent_id="gone"))
        )

        assert result.status == DispatchStatus.ABORTED
        assert await notifications(session_factory) == []

    async def test_malformed_comment_is_invalid(self, services, session_factory, thread):
        result = await services.dispatcher.dispatch(
            ChangeEvent.created("videos/v1/comments/c2", {"userId": "fan", "depth": 1})
        )

        assert result.status == DispatchStatus.INVALID
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1

    async def test_redelivered_comment_counts_once(self, services, session_factory, seed):
        await seed(make_user("owner"), make_video("v1", "owner"), make_comment("c1", "v1", "fan"))
        event = ChangeEvent.created("videos/v1/comments/c1", comment_doc("fan"))

        await services.dispatcher.dispatch(event)
        await services.dispatcher.dispatch(event)

        assert (await fetch(session_factory, Video, "v1")).comments_count == 1
        assert len(await notifications(session_factory)) == 1


@pytest.mark.asyncio
class TestCommentDeleted:
    async def test_cascade_leaves_no_orphans(self, services, session_factory, seed):
        await seed(
            make_user("owner"),
            make_video("v1", "owner", comments_count=2),
            make_comment("c1", "v1", "author", reply_count=2),
            make_comment("c2", "v1", "fan"),
            make_comment("r1", "v1", "fan", parent_id="c1"),
            make_comment("r2", "v1", "owner", parent_id="c1"),
            CommentLike(comment_id="c1", user_id="fan", video_id="v1"),
            CommentLike(comment_id="r1", user_id="author", video_id="v1"),
            CommentLike(comment_id="c2", user_id="author", video_id="v1"),
            Notification(id="n1", recipient_id="owner", source_user_id="author", type=NotificationType.COMMENT, video_id="v1", comment_id="c1"),
            Notification(id="n2", recipient_id="author", source_user_id="fan", type=NotificationType.COMMENT_REPLY, video_id="v1", comment_id="r1"),
            Notification(id="n3", recipient_id="fan", source_user_id="author", type=NotificationType.COMMENT_LIKE, video_id="v1", comment_id="r1"),
            Notification(id="n4", recipient_id="owner", source_user_id="fan", type=NotificationType.COMMENT, video_id="v1", comment_id="c2"),
        )

        result = await services.dispatcher.dispatch(
            ChangeEvent.deleted("videos/v1/comments/c1", comment_doc("author"))
        )

        assert result.status == DispatchStatus.HANDLED
        assert [c.id for c in await all_rows(session_factory, Comment)] == ["c2"]
        assert [like.comment_id for like in await all_rows(session_factory, CommentLike)] == ["c2"]
        assert [n.id for n in await notifications(session_factory)] == ["n4"]
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1

    async def test_reply_deletion_decrements_parent(self, services, session_factory, thread, seed):
        await seed(make_comment("r1", "v1", "fan", parent_id="c1"))

        async with session_factory() as session:
            async with session.begin():
                (await session.get(Comment, "c1")).reply_count = 1

        result = await services.dispatcher.dispatch(
            ChangeEvent.deleted("videos/v1/comments/r1", comment_doc("fan", parent_id="c1"))
        )

        assert result.status == DispatchStatus.HANDLED
        parent = await fetch(session_factory, Comment, "c1")
        assert parent.reply_count == 0
        assert (await fetch(session_factory, Video, "v1")).comments_count == 1

    async def test_reply_deleted_after_parent_is_skipped(self, services, session_factory, thread):
        result = await services.dispatcher.dispatch(
            ChangeEvent.deleted("videos/v1/comments/r9", comment_doc("fan", parent_id="gone"))
        )

        assert result.status == DispatchStatus.HANDLED


@pytest.mark.asyncio
class TestCommentLikes:
    async def test_like_then_unlike(self, services, session_factory, thread):
        path = "videos/v1/comments/c1/likes/fan"

        await services.dispatcher.dispatch(ChangeEvent.created(path, {"userId": "fan"}))
        assert (await fetch(session_factory, Comment, "c1")).likes_count == 1
        [note] = await notifications(session_factory)
        assert note.type == NotificationType.COMMENT_LIKE
        assert note.recipient_id == "author"

        await services.dispatcher.dispatch(ChangeEvent.deleted(path, {"userId": "fan"}))
        assert (await fetch(session_factory, Comment, "c1")).likes_count == 0
        assert await notifications(session_factory) == []

    async def test_author_liking_own_comment(self, services, session_factory, thread):
        await services.dispatcher.dispatch(ChangeEvent.created("videos/v1/comments/c1/likes/author", {}))

        assert (await fetch(session_factory, Comment, "c1")).likes_count == 1
        assert await notifications(session_factory) == []

    async def test_unlike_of_deleted_comment_is_ignored(self, services, session_factory, thread):
        result = await services.dispatcher.dispatch(
            ChangeEvent.deleted("videos/v1/comments/gone/likes/fan", {})
        )

        assert result.status == DispatchStatus.HANDLED
