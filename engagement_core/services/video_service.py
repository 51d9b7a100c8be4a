"""
Video Service
Derived tags, search metadata and one-time video migrations
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.app.config import get_config
from engagement_core.app.models import Video, utcnow
from engagement_core.domain.events import ChangeEvent, EventKind
from engagement_core.domain.interfaces import VectorIndex
from engagement_core.domain.snapshots import VideoSnapshot
from engagement_core.domain.tags import generate_tags
from engagement_core.infrastructure.repositories import VideoRepository
from engagement_core.services.base_service import BaseService
from engagement_core.services.counter_service import CounterService

VIDEO_PATH = "videos/{video_id}"

# Fields whose change requires a metadata push
SEARCH_FIELDS = ("owner_id", "status", "privacy", "tags", "description", "ai_description")


def tags_for(video) -> list:
    """Tags for a Video row or VideoSnapshot"""
    return generate_tags(
        video.budget,
        video.calories,
        video.prep_time_minutes,
        video.spiciness,
        video.hashtags,
    )


def build_search_metadata(snapshot: VideoSnapshot, tags: Optional[list] = None) -> Dict[str, Any]:
    """
    Metadata payload for the vector index

    Flags are strings because the index filters on string equality.
    """
    tags = sorted(tags if tags is not None else snapshot.tags)
    description = snapshot.description or ""
    ai_description = snapshot.ai_description or ""
    return {
        "userId": snapshot.owner_id,
        "status": snapshot.status.value,
        "privacy": snapshot.privacy.value,
        "tags": tags,
        "aiDescription": ai_description,
        "contentLength": len(description) + len(ai_description),
        "hasDescription": str(bool(description)).lower(),
        "hasAiDescription": str(bool(ai_description)).lower(),
        "hasTags": str(bool(tags)).lower(),
        "updatedAt": utcnow().isoformat(),
    }


class VideoService(BaseService):
    """
    Keeps derived video fields current

    Tags are rewritten only when they differ from what the generator
    produces, so redelivered events write nothing.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        counters: CounterService,
        vector_index: Optional[VectorIndex] = None,
        page_size: Optional[int] = None,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        self.counters = counters
        self.vector_index = vector_index
        self.page_size = page_size or get_config().reconciliation.page_size

    def get_service_name(self) -> str:
        return "VideoService"

    def register_handlers(self, dispatcher) -> None:
        dispatcher.register(VIDEO_PATH, (EventKind.CREATED, EventKind.UPDATED), self.on_video_written)

    # ========================================================================
    # Triggers
    # ========================================================================

    async def on_video_written(self, event: ChangeEvent, params: Dict[str, str]) -> bool:
        """
        Regenerate tags and push search metadata after a create or update

        Returns True when the stored tags were rewritten.
        """
        video_id = params["video_id"]
        after = VideoSnapshot.model_validate(event.after)
        before = VideoSnapshot.model_validate(event.before) if event.before is not None else None

        tags = tags_for(after)
        rewritten = False
        if sorted(after.tags) != tags:
            rewritten = await self.write_tags(video_id, tags)

        if self.vector_index is not None and self._search_fields_changed(before, after, tags):
            await self.vector_index.upsert_metadata(video_id, build_search_metadata(after, tags))
            self.log_debug("Search metadata pushed", video_id=video_id)

        return rewritten

    @staticmethod
    def _search_fields_changed(before: Optional[VideoSnapshot], after: VideoSnapshot, tags: list) -> bool:
        if before is None:
            return True
        if sorted(before.tags) != tags:
            return True
        return any(getattr(before, f) != getattr(after, f) for f in SEARCH_FIELDS if f != "tags")

    async def write_tags(self, video_id: str, tags: list) -> bool:
        """Store tags if the row's current tags differ"""

        async def work(session: AsyncSession) -> bool:
            video = await session.get(Video, video_id)
            if video is None or sorted(video.tags or []) == tags:
                return False
            video.tags = tags
            return True

        changed = await self.counters.run_in_transaction(work, f"write tags {video_id}")
        if changed:
            self.log_info(f"🏷️  Tags updated: {tags}", video_id=video_id)
        return changed

    # ========================================================================
    # Migrations
    # ========================================================================

    async def backfill_tags(self) -> Dict[str, int]:
        """
        Regenerate tags on every video, committing one page at a time

        Returns:
            {"examined", "updated"}
        """
        examined = updated = 0
        after: Optional[str] = None
        while True:
            async with self.session_factory() as session:
                async with session.begin():
                    videos = await VideoRepository(session).page_after(after_id=after, limit=self.page_size)
                    for video in videos:
                        tags = tags_for(video)
                        if sorted(video.tags or []) != tags:
                            video.tags = tags
                            updated += 1
            examined += len(videos)
            if len(videos) < self.page_size:
                break
            after = videos[-1].id

        self.log_info(f"🏷️  Tag backfill complete: {updated}/{examined} videos updated")
        return {"examined": examined, "updated": updated}

    async def migrate_owner_field(self) -> Dict[str, int]:
        """
        Copy legacy_uploader_id into owner_id where owner_id is empty

        Logs every migrated video; videos with neither field are counted
        as orphaned and left alone.
        """
        migrated = 0
        while True:
            async with self.session_factory() as session:
                async with session.begin():
                    videos = await VideoRepository(session).legacy_owner_page(limit=self.page_size)
                    for video in videos:
                        video.owner_id = video.legacy_uploader_id
                        self.log_info("🔀 Owner migrated", video_id=video.id, owner_id=video.owner_id)
            migrated += len(videos)
            if len(videos) < self.page_size:
                break

        async with self.session_factory() as session:
            orphaned = await VideoRepository(session).orphaned_owner_count()
        if orphaned:
            self.log_warning(f"⚠️  {orphaned} videos have no owner in either field")

        self.log_info(f"✅ Owner migration complete: {migrated} migrated")
        return {"migrated": migrated, "orphaned": orphaned}
