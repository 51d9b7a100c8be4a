"""
Reconciliation Repository
Append-only queue, sweep log and processed-event ledger
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .base import BaseRepository
from engagement_core.app.models import (
    ProcessedEvent,
    ReconciliationRun,
    ReconciliationTask,
    utcnow,
)

logger = logging.getLogger(__name__)


class ReconciliationRepository(BaseRepository[ReconciliationTask]):
    """Queue of counter updates awaiting a source-of-truth recompute"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ReconciliationTask)

    async def enqueue(
        self,
        target_collection: str,
        target_id: str,
        kind: str,
        field: Optional[str] = None,
        expected_value: Optional[float] = None,
        actual_value: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> ReconciliationTask:
        task = await self.create(
            target_collection=target_collection,
            target_id=target_id,
            kind=kind,
            field=field,
            expected_value=expected_value,
            actual_value=actual_value,
            context=context or {},
            enqueued_at=utcnow(),
        )
        logger.warning(
            f"🧾 Queued reconciliation: {kind} {target_collection}/{target_id} field={field}"
        )
        return task

    async def pending_since(
        self, watermark: Optional[datetime], limit: int = 500, after_id: Optional[int] = None
    ) -> List[ReconciliationTask]:
        """Queue entries enqueued at or after the watermark"""
        query = select(ReconciliationTask)
        if watermark is not None:
            query = query.where(ReconciliationTask.enqueued_at >= watermark)
        if after_id is not None:
            query = query.where(ReconciliationTask.id > after_id)
        query = query.order_by(ReconciliationTask.id).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def last_run(self, scope: str) -> Optional[ReconciliationRun]:
        result = await self.session.execute(
            select(ReconciliationRun)
            .where(ReconciliationRun.scope == scope)
            .order_by(ReconciliationRun.started_at.desc(), ReconciliationRun.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def record_run(
        self, scope: str, started_at: datetime, examined: int, changed: int
    ) -> ReconciliationRun:
        run = ReconciliationRun(
            scope=scope,
            started_at=started_at,
            finished_at=utcnow(),
            examined=examined,
            changed=changed,
        )
        self.session.add(run)
        await self.session.flush()
        return run


class ProcessedEventRepository(BaseRepository[ProcessedEvent]):
    """Ledger of event ids already handled"""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProcessedEvent)

    async def is_processed(self, event_id: str) -> bool:
        return await self.get_by_id(event_id) is not None

    async def mark_processed(self, event_id: str, path: str, kind: str) -> None:
        if await self.is_processed(event_id):
            return
        await self.create(event_id=event_id, path=path, kind=kind)
