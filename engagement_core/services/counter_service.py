"""
Counter Service
Transactional increment/decrement of derived aggregate counters

Every write runs in its own optimistic transaction. A concurrent writer
bumps the row's version and the flush raises StaleDataError; the attempt
is retried under the injected BackoffPolicy. When attempts run out the
update is appended to the reconciliation queue instead of being dropped.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from engagement_core.app.config import get_counter_settings
from engagement_core.app.models import Comment, UserAccount, Video
from engagement_core.infrastructure.repositories import ReconciliationRepository
from engagement_core.services.base_service import BaseService
from engagement_core.services.exceptions import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    TransientInfraError,
    ValidationError,
)
from engagement_core.services.retry import BackoffPolicy, Sleep, default_sleep

T = TypeVar("T")

# collection -> (model, writable counter fields)
COUNTER_FIELDS: Dict[str, Tuple[Type[Any], frozenset]] = {
    "users": (
        UserAccount,
        frozenset({"total_videos", "total_likes", "followers_count", "following_count"}),
    ),
    "videos": (
        Video,
        frozenset({"likes_count", "comments_count", "share_count", "bookmark_count"}),
    ),
    "comments": (Comment, frozenset({"likes_count", "reply_count"})),
}

# Failures worth another optimistic attempt
CONTENTION_ERRORS = (StaleDataError, OperationalError, PreconditionFailedError, TransientInfraError)


@dataclass(frozen=True)
class CounterTarget:
    """Identity of a counter-bearing document"""

    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass(frozen=True)
class FieldEquals:
    """Precondition: `target.field` still equals `expected` at write time"""

    target: CounterTarget
    field: str
    expected: Any


class CounterStatus(str, enum.Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    QUEUED = "queued"
    SKIPPED = "skipped"


@dataclass
class CounterResult:
    status: CounterStatus
    target: CounterTarget
    field: str
    old_value: Optional[int] = None
    new_value: Optional[int] = None
    attempts: int = 0
    queue_task_id: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def landed(self) -> bool:
        return self.status in (CounterStatus.APPLIED, CounterStatus.UNCHANGED)


class _Skip(Exception):
    """Precondition document is gone; its own handler owns the adjustment"""


class CounterService(BaseService):
    """
    Counter updater with optimistic retry

    Usage:
        counters = CounterService(db_manager.session_factory)
        await counters.apply_delta(CounterTarget("videos", video_id), "likes_count", 1)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: Optional[BackoffPolicy] = None,
        sleep: Optional[Sleep] = None,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        if policy is None:
            policy = BackoffPolicy.from_settings(get_counter_settings())
        self.policy = policy
        self.sleep = sleep or default_sleep

    def get_service_name(self) -> str:
        return "CounterService"

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def resolve(target: CounterTarget, field_name: str) -> Type[Any]:
        """Model class for a target, checking the field is a known counter"""
        entry = COUNTER_FIELDS.get(target.collection)
        if entry is None:
            raise ValidationError(
                f"Unknown counter collection: {target.collection}", field="collection"
            )
        model, fields = entry
        if field_name not in fields:
            raise ValidationError(
                f"{field_name} is not a counter on {target.collection}", field="field"
            )
        return model

    @staticmethod
    def _model_for(collection: str) -> Type[Any]:
        entry = COUNTER_FIELDS.get(collection)
        if entry is None:
            raise ValidationError(f"Unknown collection: {collection}", field="collection")
        return entry[0]

    async def _check_precondition(self, session: AsyncSession, precondition: FieldEquals) -> None:
        model = self._model_for(precondition.target.collection)
        doc = await session.get(model, precondition.target.id)
        if doc is None:
            raise _Skip()
        observed = getattr(doc, precondition.field)
        if observed != precondition.expected:
            raise PreconditionFailedError(
                f"{precondition.target.path}.{precondition.field} changed",
                details={"expected": precondition.expected, "observed": observed},
            )

    # ========================================================================
    # Counter Operations
    # ========================================================================

    async def apply_delta(
        self,
        target: CounterTarget,
        field_name: str,
        delta: int,
        precondition: Optional[FieldEquals] = None,
        kind: str = "counter_delta",
    ) -> CounterResult:
        """
        Add a signed delta to a counter, clamping at zero

        Args:
            target: Document holding the counter
            field_name: Counter field (must be allow-listed)
            delta: Signed change
            precondition: Optional check re-validated inside the transaction
            kind: Label recorded on the queue entry if attempts run out

        Returns:
            CounterResult (APPLIED, SKIPPED or QUEUED)

        Raises:
            NotFoundError: Target document does not exist
            TransientInfraError: Attempts exhausted and the queue write failed
        """
        model = self.resolve(target, field_name)
        attempt = 0
        last_error: Optional[Exception] = None
        observed: Optional[int] = None

        while True:
            attempt += 1
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        if precondition is not None:
                            await self._check_precondition(session, precondition)
                        doc = await session.get(model, target.id)
                        if doc is None:
                            raise NotFoundError(target.collection, target.id)

                        observed = int(getattr(doc, field_name) or 0)
                        new_value = max(0, observed + delta)
                        if new_value != observed:
                            setattr(doc, field_name, new_value)

                if observed + delta < 0:
                    self.log_warning(
                        "⚠️  Counter clamped at zero",
                        target=target.path,
                        field=field_name,
                        delta=delta,
                    )
                self.log_debug(
                    f"Counter {target.path}.{field_name}: {observed} -> {new_value}",
                    attempt=attempt,
                )
                return CounterResult(
                    CounterStatus.APPLIED, target, field_name, observed, new_value, attempt
                )

            except _Skip:
                self.log_info(
                    "⏭️  Precondition document missing, skipping",
                    target=target.path,
                    precondition=precondition.target.path if precondition else None,
                )
                return CounterResult(CounterStatus.SKIPPED, target, field_name, attempts=attempt)

            except CONTENTION_ERRORS as e:
                last_error = e
                if not self.policy.should_retry(attempt):
                    break
                delay = self.policy.delay_for(attempt)
                self.log_warning(
                    f"🔄 Counter write conflicted, retrying in {delay:.1f}s",
                    target=target.path,
                    field=field_name,
                    attempt=attempt,
                )
                await self.sleep(delay)

        expected = precondition.expected if precondition is not None else None
        self.log_error(
            "❌ Counter update exhausted retries, queueing reconciliation",
            error=last_error,
            target=target.path,
            field=field_name,
            attempts=attempt,
        )
        task_id = await self._enqueue(
            target,
            kind,
            field_name,
            expected_value=expected,
            actual_value=observed,
            context={"delta": delta, "attempts": attempt, "error": str(last_error)},
        )
        return CounterResult(
            CounterStatus.QUEUED,
            target,
            field_name,
            old_value=observed,
            attempts=attempt,
            queue_task_id=task_id,
        )

    async def set_value(self, target: CounterTarget, field_name: str, value: int) -> CounterResult:
        """
        Overwrite a counter with a recomputed value, only if it differs

        Used by the repair sweep. Contention exhausting the policy raises
        ConflictError; the next sweep picks the target up again.
        """
        model = self.resolve(target, field_name)
        value = max(0, int(value))

        async def work(session: AsyncSession) -> Tuple[int, bool]:
            doc = await session.get(model, target.id)
            if doc is None:
                raise NotFoundError(target.collection, target.id)
            current = int(getattr(doc, field_name) or 0)
            if current == value:
                return current, False
            setattr(doc, field_name, value)
            return current, True

        old, changed = await self.run_in_transaction(
            work, f"set {target.path}.{field_name}"
        )
        status = CounterStatus.APPLIED if changed else CounterStatus.UNCHANGED
        return CounterResult(status, target, field_name, old, value)

    async def run_in_transaction(
        self, work: Callable[[AsyncSession], Awaitable[T]], description: str = "transaction"
    ) -> T:
        """
        Run `work` inside a fresh optimistic transaction, retrying on conflict

        Args:
            work: Coroutine function receiving the session; must not commit
            description: Used in log lines

        Raises:
            ConflictError: Attempts exhausted
            Any non-contention exception raised by `work`
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        result = await work(session)
                return result
            except CONTENTION_ERRORS as e:
                if not self.policy.should_retry(attempt):
                    self.log_error(
                        f"❌ {description} failed after {attempt} attempts", error=e
                    )
                    raise ConflictError(
                        f"{description} could not commit due to contention",
                        details={"attempts": attempt},
                    ) from e
                delay = self.policy.delay_for(attempt)
                self.log_warning(
                    f"🔄 {description} conflicted, retrying in {delay:.1f}s", attempt=attempt
                )
                await self.sleep(delay)

    # ========================================================================
    # Reconciliation Queue
    # ========================================================================

    async def _enqueue(
        self,
        target: CounterTarget,
        kind: str,
        field_name: Optional[str],
        expected_value: Optional[float] = None,
        actual_value: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> int:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    task = await ReconciliationRepository(session).enqueue(
                        target.collection,
                        target.id,
                        kind,
                        field=field_name,
                        expected_value=expected_value,
                        actual_value=actual_value,
                        context=context,
                    )
                return task.id
        except Exception as e:
            self.log_error("❌ Reconciliation queue write failed", error=e, target=target.path)
            raise TransientInfraError(
                f"Could not queue reconciliation for {target.path}",
                details={"field": field_name, "kind": kind},
            ) from e
