"""
Fan-out Service
Derives counter deltas and notifications from comment, like and video events

Counter writes go through CounterService. Notification writes are
best-effort: a failed notification is logged and never rolls back a
counter that already landed.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.app.config import get_config
from engagement_core.app.models import Comment, Video, VideoStatus
from engagement_core.domain.events import ChangeEvent, EventKind
from engagement_core.domain.interfaces import EventPublisher
from engagement_core.domain.notifications import (
    CommentLikeNotification,
    CommentNotification,
    CommentReplyNotification,
    LikeNotification,
    NotificationVariant,
    VideoPostNotification,
)
from engagement_core.domain.snapshots import CommentSnapshot, LikeSnapshot, VideoSnapshot
from engagement_core.infrastructure.repositories import (
    CommentLikeRepository,
    CommentRepository,
    FollowRepository,
    LikedVideoRepository,
    NotificationRepository,
    ReconciliationRepository,
)
from engagement_core.services.base_service import BaseService
from engagement_core.services.counter_service import (
    CounterResult,
    CounterService,
    CounterStatus,
    CounterTarget,
    FieldEquals,
)
from engagement_core.services.exceptions import InvariantViolation, NotFoundError, TransientInfraError

COMMENT_PATH = "videos/{video_id}/comments/{comment_id}"
COMMENT_LIKE_PATH = "videos/{video_id}/comments/{comment_id}/likes/{user_id}"
VIDEO_LIKE_PATH = "videos/{video_id}/likes/{user_id}"
VIDEO_PATH = "videos/{video_id}"


def video_document(video: Video) -> Dict[str, Any]:
    """camelCase snapshot of a video row, as carried by change events"""
    return {
        "ownerId": video.owner_id,
        "status": video.status.value if video.status else VideoStatus.ACTIVE.value,
        "privacy": video.privacy.value if video.privacy else None,
        "likesCount": video.likes_count,
        "commentsCount": video.comments_count,
        "budget": video.budget,
        "calories": video.calories,
        "prepTimeMinutes": video.prep_time_minutes,
        "spiciness": video.spiciness,
        "hashtags": list(video.hashtags or []),
        "tags": list(video.tags or []),
        "description": video.description,
        "aiDescription": video.ai_description,
        "thumbnailURL": video.thumbnail_url,
    }


class FanoutService(BaseService):
    """
    Notification fan-out engine

    Handlers take (event, params) and are wired to a TriggerDispatcher by
    `register_handlers()`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        counters: CounterService,
        chunk_size: Optional[int] = None,
        publisher: Optional[EventPublisher] = None,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        self.counters = counters
        self.chunk_size = chunk_size or get_config().fanout.chunk_size
        self.publisher = publisher

    def get_service_name(self) -> str:
        return "FanoutService"

    def register_handlers(self, dispatcher) -> None:
        dispatcher.register(COMMENT_PATH, EventKind.CREATED, self.on_comment_created)
        dispatcher.register(COMMENT_PATH, EventKind.DELETED, self.on_comment_deleted)
        dispatcher.register(
            COMMENT_LIKE_PATH, (EventKind.CREATED, EventKind.DELETED), self.on_comment_like_changed
        )
        dispatcher.register(
            VIDEO_LIKE_PATH, (EventKind.CREATED, EventKind.DELETED), self.on_video_like_changed
        )
        dispatcher.register(VIDEO_PATH, EventKind.CREATED, self.on_video_created)
        dispatcher.register(VIDEO_PATH, EventKind.UPDATED, self.on_video_likes_changed)
        dispatcher.register(VIDEO_PATH, EventKind.DELETED, self.on_video_deleted)

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _get(self, model, id: str):
        async with self.session_factory() as session:
            return await session.get(model, id)

    async def _notify(self, variants: List[NotificationVariant]) -> int:
        """Write notifications in one transaction; failures are logged"""
        if not variants:
            return 0
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return NotificationRepository(session).add_many(variants)
        except Exception as e:
            self.log_error("❌ Failed to write notifications", error=e, count=len(variants))
            return 0

    async def _backfill_thumbnails(self, video: Video) -> None:
        if not video.thumbnail_url:
            return
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    updated = await NotificationRepository(session).backfill_thumbnails(
                        video.id, video.thumbnail_url
                    )
            if updated:
                self.log_info(f"🖼️  Back-filled thumbnail on {updated} notifications", video_id=video.id)
        except Exception as e:
            self.log_warning(f"Thumbnail back-fill failed: {e}", video_id=video.id)

    # ========================================================================
    # Comments
    # ========================================================================

    async def on_comment_created(self, event: ChangeEvent, params: Dict[str, str]) -> CounterResult:
        """
        Count a new comment and notify the video owner or parent author

        A reply whose parent is missing or is itself a reply aborts before
        anything is written.
        """
        video_id, comment_id = params["video_id"], params["comment_id"]
        comment = CommentSnapshot.model_validate(event.after)

        video = await self._get(Video, video_id)
        if video is None:
            raise NotFoundError("video", video_id)

        if comment.depth == 0:
            result = await self.counters.apply_delta(
                CounterTarget("videos", video_id), "comments_count", 1, kind="comment_created"
            )
            recipient = video.owner_id
            variant_cls = CommentNotification
        else:
            parent = await self._get(Comment, comment.parent_id)
            if parent is None:
                raise NotFoundError("comment", comment.parent_id, "Parent comment does not exist")
            if parent.depth != 0 or parent.video_id != video_id:
                raise InvariantViolation(
                    "Replies may only target top-level comments on the same video",
                    details={"comment_id": comment_id, "parent_id": parent.id, "parent_depth": parent.depth},
                )
            result = await self.counters.apply_delta(
                CounterTarget("comments", parent.id), "reply_count", 1, kind="reply_created"
            )
            recipient = parent.user_id
            variant_cls = CommentReplyNotification

        if recipient and recipient != comment.user_id:
            await self._notify(
                [
                    variant_cls(
                        recipient_id=recipient,
                        source_user_id=comment.user_id,
                        video_id=video_id,
                        comment_id=comment_id,
                        comment_text=comment.text,
                        video_thumbnail_url=video.thumbnail_url,
                    )
                ]
            )

        await self._backfill_thumbnails(video)
        self.log_info(
            f"💬 Comment {comment_id} counted ({result.status.value})", video_id=video_id, depth=comment.depth
        )
        return result

    async def on_comment_deleted(self, event: ChangeEvent, params: Dict[str, str]) -> Optional[CounterResult]:
        """
        Cascade a comment deletion, then decrement the owning counter

        The likes on the comment, its replies, their likes, and every
        notification referencing any of them go in one transaction.
        """
        video_id, comment_id = params["video_id"], params["comment_id"]
        comment = CommentSnapshot.model_validate(event.before)

        async with self.session_factory() as session:
            async with session.begin():
                comments = CommentRepository(session)
                doomed = [comment_id]
                if comment.depth == 0:
                    doomed.extend(await comments.reply_ids(comment_id))

                likes_removed = await CommentLikeRepository(session).delete_for_comments(doomed)
                notifications_removed = await NotificationRepository(
                    session
                ).delete_referencing_comments(doomed)
                comments_removed = await comments.delete_many(doomed)

        self.log_info(
            "🧹 Comment cascade complete",
            comment_id=comment_id,
            comments=comments_removed,
            likes=likes_removed,
            notifications=notifications_removed,
        )

        if comment.depth == 0:
            return await self.counters.apply_delta(
                CounterTarget("videos", video_id), "comments_count", -1, kind="comment_deleted"
            )

        parent_target = CounterTarget("comments", comment.parent_id)
        return await self.counters.apply_delta(
            parent_target,
            "reply_count",
            -1,
            precondition=FieldEquals(parent_target, "depth", 0),
            kind="reply_deleted",
        )

    async def on_comment_like_changed(self, event: ChangeEvent, params: Dict[str, str]) -> Optional[CounterResult]:
        video_id, comment_id, user_id = params["video_id"], params["comment_id"], params["user_id"]
        LikeSnapshot.model_validate(event.data)
        added = event.kind == EventKind.CREATED

        comment = await self._get(Comment, comment_id)
        if comment is None:
            if added:
                raise NotFoundError("comment", comment_id)
            # Removed together with its comment; the cascade owns cleanup
            self.log_debug("Comment gone, ignoring unlike", comment_id=comment_id)
            return None

        result = await self.counters.apply_delta(
            CounterTarget("comments", comment_id),
            "likes_count",
            1 if added else -1,
            kind="comment_like_change",
        )

        if comment.user_id != user_id:
            if added:
                await self._notify(
                    [
                        CommentLikeNotification(
                            recipient_id=comment.user_id,
                            source_user_id=user_id,
                            video_id=video_id,
                            comment_id=comment_id,
                        )
                    ]
                )
            else:
                try:
                    async with self.session_factory() as session:
                        async with session.begin():
                            await NotificationRepository(session).delete_comment_like(
                                video_id, comment_id, user_id
                            )
                except Exception as e:
                    self.log_error("❌ Failed to remove comment-like notification", error=e)

        return result

    # ========================================================================
    # Video Likes
    # ========================================================================

    async def on_video_like_changed(self, event: ChangeEvent, params: Dict[str, str]) -> CounterResult:
        """
        Adjust a video's likes_count and the liker's back-reference

        Publishes an updated-video event so the owner's total follows.
        """
        video_id, user_id = params["video_id"], params["user_id"]
        LikeSnapshot.model_validate(event.data)
        added = event.kind == EventKind.CREATED

        video = await self._get(Video, video_id)
        if video is None:
            raise NotFoundError("video", video_id)

        result = await self.counters.apply_delta(
            CounterTarget("videos", video_id),
            "likes_count",
            1 if added else -1,
            kind="video_like_change",
        )

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    liked = LikedVideoRepository(session)
                    if added:
                        await liked.ensure(user_id, video_id)
                    else:
                        await liked.remove(user_id, video_id)
                    if video.owner_id and video.owner_id != user_id:
                        notifications = NotificationRepository(session)
                        if added:
                            notifications.add_many(
                                [LikeNotification(recipient_id=video.owner_id, source_user_id=user_id, video_id=video_id)]
                            )
                        else:
                            await notifications.delete_video_like(video_id, user_id)
        except Exception as e:
            self.log_error("❌ Failed to update like back-reference", error=e, video_id=video_id)

        if result.status == CounterStatus.APPLIED and result.old_value != result.new_value:
            await self._publish_likes_change(video, result.old_value, result.new_value)
        return result

    async def _publish_likes_change(self, video: Video, old: int, new: int) -> None:
        if self.publisher is None:
            return
        before = video_document(video)
        after = dict(before)
        before["likesCount"] = old
        after["likesCount"] = new
        try:
            await self.publisher(ChangeEvent.updated(f"videos/{video.id}", before=before, after=after))
        except Exception as e:
            # The queue pass recomputes the owner's total from this video
            self.log_error("❌ Failed to publish likes change, queueing", error=e, video_id=video.id)
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        await ReconciliationRepository(session).enqueue(
                            "videos",
                            video.id,
                            "like_count_change",
                            field="likes_count",
                            expected_value=new,
                            context={"owner_id": video.owner_id, "error": str(e)},
                        )
            except Exception as queue_error:
                # likes_count has already moved; the full sweep repairs total_likes
                self.log_error(
                    "❌ Could not queue likes change, owner total left to the repair sweep",
                    error=queue_error,
                    video_id=video.id,
                    owner_id=video.owner_id,
                )

    # ========================================================================
    # Videos
    # ========================================================================

    async def on_video_likes_changed(self, event: ChangeEvent, params: Dict[str, str]) -> Optional[CounterResult]:
        """
        Move the owner's total_likes by the change in a video's likes_count

        The delta is only applied while the video still shows the observed
        likes_count; repeated races end in the reconciliation queue.
        """
        video_id = params["video_id"]
        before = VideoSnapshot.model_validate(event.before)
        after = VideoSnapshot.model_validate(event.after)

        delta = after.likes_count - before.likes_count
        if delta == 0 or after.status != VideoStatus.ACTIVE:
            return None

        video_target = CounterTarget("videos", video_id)
        result = await self.counters.apply_delta(
            CounterTarget("users", after.owner_id),
            "total_likes",
            delta,
            precondition=FieldEquals(video_target, "likes_count", after.likes_count),
            kind="like_count_change",
        )
        self.log_info(
            f"❤️  Owner total_likes {delta:+d} ({result.status.value})",
            video_id=video_id,
            owner_id=after.owner_id,
        )
        return result

    async def on_video_created(self, event: ChangeEvent, params: Dict[str, str]) -> int:
        """
        Count the video for its owner and notify every follower

        Followers are paged and written in chunks of `chunk_size`. Returns
        the number of notifications written.
        """
        video_id = params["video_id"]
        video = VideoSnapshot.model_validate(event.after)

        await self.counters.apply_delta(
            CounterTarget("users", video.owner_id), "total_videos", 1, kind="video_created"
        )

        written = 0
        after: Optional[str] = None
        while True:
            async with self.session_factory() as session:
                followers = await FollowRepository(session).follower_ids_page(
                    video.owner_id, after=after, limit=self.chunk_size
                )
            if not followers:
                break
            after = followers[-1]

            written += await self._notify(
                [
                    VideoPostNotification(
                        recipient_id=follower_id,
                        source_user_id=video.owner_id,
                        video_id=video_id,
                        video_thumbnail_url=video.thumbnail_url,
                        video_description=video.description,
                    )
                    for follower_id in followers
                    if follower_id != video.owner_id
                ]
            )
            if len(followers) < self.chunk_size:
                break

        self.log_info(f"📣 Notified {written} followers of new video", video_id=video_id, owner_id=video.owner_id)
        return written

    async def on_video_deleted(self, event: ChangeEvent, params: Dict[str, str]) -> int:
        """
        Remove a deleted video's likes and count from its owner, then drop
        every liked back-reference

        Failures in the collection-wide cleanup are queued for repair.
        Counter deltas run last so a redelivery never applies them twice.
        Returns the number of back-references removed.
        """
        video_id = params["video_id"]
        video = VideoSnapshot.model_validate(event.before)
        owner = CounterTarget("users", video.owner_id)

        removed = 0
        try:
            while True:
                async with self.session_factory() as session:
                    async with session.begin():
                        liked = LikedVideoRepository(session)
                        user_ids = await liked.user_ids_page(video_id, limit=self.chunk_size)
                        if not user_ids:
                            break
                        removed += await liked.delete_for_users(video_id, user_ids)
        except Exception as e:
            self.log_error("❌ Liked back-reference cleanup failed, queueing", error=e, video_id=video_id)
            await self._enqueue_video_deletion(video_id, video.owner_id, str(e))

        if video.likes_count and video.status == VideoStatus.ACTIVE:
            await self.counters.apply_delta(owner, "total_likes", -video.likes_count, kind="video_deletion")
        await self.counters.apply_delta(owner, "total_videos", -1, kind="video_deletion")

        self.log_info(f"🗑️  Video deleted, removed {removed} liked references", video_id=video_id)
        return removed

    async def _enqueue_video_deletion(self, video_id: str, owner_id: str, error: str) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await ReconciliationRepository(session).enqueue(
                        "videos",
                        video_id,
                        "video_deletion",
                        context={"owner_id": owner_id, "error": error},
                    )
        except Exception as e:
            raise TransientInfraError(f"Could not queue cleanup for video {video_id}") from e
