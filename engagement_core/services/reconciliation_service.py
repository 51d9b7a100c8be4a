"""
Reconciliation Service
Source-of-truth recompute for derived counters

Two entry points:
- the full sweep (`force_reconcile_all`) recomputes every user's
  total_likes, paged;
- the queue pass (`process_pending`) recomputes each counter named by a
  queue entry enqueued since the previous pass.

Both only write when the stored value differs, so running either twice in
a row with no writes in between changes nothing the second time.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.app.config import get_config
from engagement_core.app.models import Video, utcnow
from engagement_core.infrastructure.repositories import (
    CommentLikeRepository,
    CommentRepository,
    FollowRepository,
    LikedVideoRepository,
    ReconciliationRepository,
    UserRepository,
    VideoLikeRepository,
    VideoRepository,
)
from engagement_core.services.base_service import BaseService
from engagement_core.services.counter_service import CounterService, CounterStatus, CounterTarget
from engagement_core.services.exceptions import (
    NotFoundError,
    ServiceError,
    TransientInfraError,
)

FULL_SWEEP = "full_sweep"
QUEUE_PASS = "queue"
RETRY_KIND = "recompute_retry"

CounterKey = Tuple[str, str, str]
Recompute = Callable[[AsyncSession, str], Awaitable[int]]


async def _user_total_likes(session: AsyncSession, user_id: str) -> int:
    return await VideoRepository(session).sum_active_likes(user_id)


async def _user_total_videos(session: AsyncSession, user_id: str) -> int:
    return await VideoRepository(session).count_owned(user_id)


async def _user_followers(session: AsyncSession, user_id: str) -> int:
    return await FollowRepository(session).count_followers(user_id)


async def _user_following(session: AsyncSession, user_id: str) -> int:
    return await FollowRepository(session).count_following(user_id)


async def _video_likes(session: AsyncSession, video_id: str) -> int:
    return await VideoLikeRepository(session).count_for_video(video_id)


async def _video_comments(session: AsyncSession, video_id: str) -> int:
    return await CommentRepository(session).count_top_level(video_id)


async def _comment_likes(session: AsyncSession, comment_id: str) -> int:
    return await CommentLikeRepository(session).count_for_comment(comment_id)


async def _comment_replies(session: AsyncSession, comment_id: str) -> int:
    return await CommentRepository(session).count_replies(comment_id)


RECOMPUTERS: Dict[Tuple[str, str], Recompute] = {
    ("users", "total_likes"): _user_total_likes,
    ("users", "total_videos"): _user_total_videos,
    ("users", "followers_count"): _user_followers,
    ("users", "following_count"): _user_following,
    ("videos", "likes_count"): _video_likes,
    ("videos", "comments_count"): _video_comments,
    ("comments", "likes_count"): _comment_likes,
    ("comments", "reply_count"): _comment_replies,
}

# Users aggregate video counters, so videos are recomputed first
RECOMPUTE_ORDER = {"comments": 0, "videos": 1, "users": 2}


class ReconciliationService(BaseService):
    """Repair sweep and reconciliation queue processing"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        counters: CounterService,
        page_size: Optional[int] = None,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        self.counters = counters
        self.page_size = page_size or get_config().reconciliation.page_size

    def get_service_name(self) -> str:
        return "ReconciliationService"

    # ========================================================================
    # Queue
    # ========================================================================

    async def enqueue(
        self,
        target_collection: str,
        target_id: str,
        kind: str,
        field: Optional[str] = None,
        expected_value: Optional[float] = None,
        actual_value: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Append a queue entry; returns its id"""
        async with self.session_factory() as session:
            async with session.begin():
                task = await ReconciliationRepository(session).enqueue(
                    target_collection,
                    target_id,
                    kind,
                    field=field,
                    expected_value=expected_value,
                    actual_value=actual_value,
                    context=context,
                )
            return task.id

    # ========================================================================
    # Recompute
    # ========================================================================

    async def recompute(self, collection: str, target_id: str, field: str) -> Dict[str, Any]:
        """
        Recompute one counter from source of truth and store it if different

        Returns:
            {"target", "field", "old_value", "new_value", "changed"}
        """
        recompute = RECOMPUTERS.get((collection, field))
        if recompute is None:
            raise ServiceError(f"No recompute defined for {collection}.{field}")

        try:
            async with self.session_factory() as session:
                value = await recompute(session, target_id)
            result = await self.counters.set_value(
                CounterTarget(collection, target_id), field, value
            )
        except SQLAlchemyError as e:
            raise TransientInfraError(
                f"Recompute of {collection}/{target_id}.{field} failed",
                details={"error": str(e)},
            ) from e

        changed = result.status == CounterStatus.APPLIED
        if changed:
            self.log_info(
                f"🔧 {collection}/{target_id}.{field}: {result.old_value} -> {result.new_value}"
            )
        return {
            "target": f"{collection}/{target_id}",
            "field": field,
            "old_value": result.old_value,
            "new_value": result.new_value,
            "changed": changed,
        }

    async def force_reconcile(self, user_id: str) -> Dict[str, Any]:
        """
        Recompute a user's total_likes from their active videos

        Raises:
            NotFoundError: User does not exist
        """
        self.validate_required(user_id, "userId")
        return await self.recompute("users", user_id, "total_likes")

    async def recalculate_user_total_likes(self, user_id: str) -> int:
        """Callable form of force_reconcile; returns the recomputed total"""
        result = await self.force_reconcile(user_id)
        return int(result["new_value"])

    async def force_reconcile_all(self) -> Dict[str, Dict[str, Any]]:
        """
        Full repair sweep over every user, page by page

        A failure on one user is recorded in its result and the sweep
        continues.

        Returns:
            Mapping of user id to {"success", "old_count", "new_count",
            "unchanged"} or {"success": False, "error"}
        """
        started = utcnow()
        results: Dict[str, Dict[str, Any]] = {}
        after: Optional[str] = None
        changed = 0

        self.log_info("🔁 Starting full reconciliation sweep")
        while True:
            async with self.session_factory() as session:
                users = await UserRepository(session).page_after(after_id=after, limit=self.page_size)
            if not users:
                break
            after = users[-1].id

            for user in users:
                try:
                    outcome = await self.force_reconcile(user.id)
                except ServiceError as e:
                    self.log_error("❌ Failed to reconcile user", error=e, user_id=user.id)
                    results[user.id] = {"success": False, "error": e.message}
                    continue

                if outcome["changed"]:
                    changed += 1
                    results[user.id] = {
                        "success": True,
                        "old_count": outcome["old_value"],
                        "new_count": outcome["new_value"],
                    }
                else:
                    results[user.id] = {"success": True, "unchanged": True}

            if len(users) < self.page_size:
                break

        await self._record_run(FULL_SWEEP, started, len(results), changed)
        self.log_info(f"✅ Sweep finished: {len(results)} users examined, {changed} corrected")
        return results

    # ========================================================================
    # Queue Pass
    # ========================================================================

    async def _keys_for(self, session: AsyncSession, task) -> Set[CounterKey]:
        """Counters a queue entry asks to recompute, plus dependents"""
        keys: Set[CounterKey] = set()
        context = task.context or {}

        if task.field and (task.target_collection, task.field) in RECOMPUTERS:
            keys.add((task.target_collection, task.target_id, task.field))

        if task.target_collection == "videos" and task.field == "likes_count":
            # Owner's total depends on the video's likes_count
            video = await session.get(Video, task.target_id)
            if video is not None and video.owner_id:
                keys.add(("users", video.owner_id, "total_likes"))

        if task.kind == "video_deletion" and context.get("owner_id"):
            keys.add(("users", context["owner_id"], "total_likes"))
            keys.add(("users", context["owner_id"], "total_videos"))

        return keys

    async def _clear_liked_references(self, video_id: str) -> int:
        removed = 0
        while True:
            async with self.session_factory() as session:
                async with session.begin():
                    liked = LikedVideoRepository(session)
                    user_ids = await liked.user_ids_page(video_id, limit=self.page_size)
                    if not user_ids:
                        return removed
                    removed += await liked.delete_for_users(video_id, user_ids)

    async def process_pending(self) -> Dict[str, Any]:
        """
        Recompute every counter named by queue entries since the last pass

        Returns:
            {"examined", "changed", "failed", "results"}
        """
        started = utcnow()
        async with self.session_factory() as session:
            repo = ReconciliationRepository(session)
            last = await repo.last_run(QUEUE_PASS)
            watermark = last.started_at if last else None

        keys: List[CounterKey] = []
        seen: Set[CounterKey] = set()
        deleted_videos: Set[str] = set()
        examined_tasks = 0
        after_id: Optional[int] = None

        while True:
            async with self.session_factory() as session:
                repo = ReconciliationRepository(session)
                tasks = await repo.pending_since(watermark, limit=self.page_size, after_id=after_id)
                if not tasks:
                    break
                after_id = tasks[-1].id
                examined_tasks += len(tasks)
                for task in tasks:
                    if task.kind == "video_deletion":
                        deleted_videos.add(task.target_id)
                    for key in sorted(await self._keys_for(session, task)):
                        if key not in seen:
                            seen.add(key)
                            keys.append(key)
            if len(tasks) < self.page_size:
                break

        keys.sort(key=lambda key: RECOMPUTE_ORDER[key[0]])

        for video_id in sorted(deleted_videos):
            removed = await self._clear_liked_references(video_id)
            if removed:
                self.log_info(f"🧹 Removed {removed} liked references", video_id=video_id)

        results = []
        failed_keys: List[CounterKey] = []
        changed = 0
        for collection, target_id, field in keys:
            try:
                outcome = await self.recompute(collection, target_id, field)
            except NotFoundError:
                self.log_debug("Queued target no longer exists", target=f"{collection}/{target_id}")
                continue
            except ServiceError as e:
                failed_keys.append((collection, target_id, field))
                self.log_error("❌ Recompute failed", error=e, target=f"{collection}/{target_id}")
                continue
            results.append(outcome)
            changed += int(outcome["changed"])

        # Recording the run moves the watermark past every entry read above
        await self._requeue(failed_keys)
        await self._record_run(QUEUE_PASS, started, len(keys), changed)
        failed = len(failed_keys)
        self.log_info(
            f"✅ Queue pass finished: {examined_tasks} entries, {len(keys)} counters, {changed} corrected"
        )
        return {"examined": len(keys), "changed": changed, "failed": failed, "results": results}

    async def _requeue(self, keys: List[CounterKey]) -> None:
        """
        Queue failed recomputes again so the next pass picks them up

        Raises:
            TransientInfraError: Queue write failed; the run is not recorded
        """
        if not keys:
            return
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    repo = ReconciliationRepository(session)
                    for collection, target_id, field in keys:
                        await repo.enqueue(collection, target_id, RETRY_KIND, field=field)
        except SQLAlchemyError as e:
            self.log_error("❌ Could not requeue failed recomputes", error=e, count=len(keys))
            raise TransientInfraError(
                "Failed recomputes could not be requeued", details={"count": len(keys)}
            ) from e
        self.log_warning(f"🔁 Requeued {len(keys)} failed recomputes")

    async def _record_run(self, scope: str, started, examined: int, changed: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await ReconciliationRepository(session).record_run(scope, started, examined, changed)
