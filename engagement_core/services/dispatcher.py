"""
Trigger Dispatcher
Routes document change events to registered handlers

Handlers register against path templates such as
"videos/{video_id}/comments/{comment_id}" and one or more event kinds.
Delivery is at-least-once, so each (event, handler) pair is recorded in
the processed-events ledger once it has run; a redelivery skips handlers
that already ran.

Nothing raised by a handler escapes `dispatch()`. The outcome is reported
in a DispatchResult and logged.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.domain.events import ChangeEvent, EventKind
from engagement_core.infrastructure.repositories import ProcessedEventRepository
from engagement_core.services.base_service import BaseService
from engagement_core.services.exceptions import (
    InvariantViolation,
    NotFoundError,
    ServiceError,
    TransientInfraError,
    ValidationError,
)

Handler = Callable[[ChangeEvent, Dict[str, str]], Awaitable[Any]]

_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class DispatchStatus(str, enum.Enum):
    HANDLED = "handled"
    UNMATCHED = "unmatched"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    ABORTED = "aborted"
    RETRY = "retry"


@dataclass
class DispatchResult:
    status: DispatchStatus
    handlers: Tuple[str, ...] = ()
    detail: Optional[str] = None
    outcomes: Dict[str, str] = field(default_factory=dict)

    @property
    def handler(self) -> Optional[str]:
        return self.handlers[0] if self.handlers else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "handlers": list(self.handlers),
            "detail": self.detail,
            "outcomes": dict(self.outcomes),
        }


def compile_template(template: str) -> Pattern[str]:
    """Turn "videos/{video_id}" into an anchored regex with named groups"""
    parts = []
    position = 0
    for match in _PARAM.finditer(template):
        parts.append(re.escape(template[position : match.start()]))
        parts.append(f"(?P<{match.group(1)}>[^/]+)")
        position = match.end()
    parts.append(re.escape(template[position:]))
    return re.compile("^" + "".join(parts) + "$")


@dataclass
class Route:
    template: str
    kinds: frozenset
    handler: Handler
    name: str
    regex: Pattern[str]

    def match(self, path: str, kind: EventKind) -> Optional[Dict[str, str]]:
        if kind not in self.kinds:
            return None
        found = self.regex.match(path)
        return found.groupdict() if found else None


class TriggerDispatcher(BaseService):
    """
    Dispatches ChangeEvents to handlers

    Usage:
        dispatcher = TriggerDispatcher(db_manager.session_factory)

        @dispatcher.on("videos/{video_id}", EventKind.CREATED)
        async def on_video_created(event, params):
            ...

        result = await dispatcher.dispatch(event)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ledger_enabled: bool = True,
        config=None,
    ):
        super().__init__(config)
        self.session_factory = session_factory
        self.ledger_enabled = ledger_enabled and session_factory is not None
        self._routes: List[Route] = []

    def get_service_name(self) -> str:
        return "TriggerDispatcher"

    # ========================================================================
    # Registration
    # ========================================================================

    def register(
        self,
        pattern: str,
        kinds: Union[EventKind, Iterable[EventKind]],
        handler: Handler,
        name: Optional[str] = None,
    ) -> Route:
        """
        Register a handler for a path template and event kinds

        Args:
            pattern: Path template with {param} placeholders
            kinds: One kind or several
            handler: Coroutine function (event, params)
            name: Ledger key for the handler (defaults to its __name__)
        """
        if isinstance(kinds, EventKind):
            kinds = [kinds]
        route_name = name or getattr(handler, "__name__", repr(handler))
        if any(r.name == route_name for r in self._routes):
            raise ValueError(f"Handler already registered: {route_name}")

        route = Route(
            template=pattern,
            kinds=frozenset(kinds),
            handler=handler,
            name=route_name,
            regex=compile_template(pattern),
        )
        self._routes.append(route)
        self.log_debug(f"Registered {route_name} for {pattern}", kinds=sorted(k.value for k in route.kinds))
        return route

    def on(self, pattern: str, *kinds: EventKind, name: Optional[str] = None):
        """Decorator form of register()"""

        def decorator(func: Handler) -> Handler:
            self.register(pattern, kinds or tuple(EventKind), func, name=name)
            return func

        return decorator

    @property
    def routes(self) -> List[Route]:
        return list(self._routes)

    def match(self, path: str, kind: EventKind) -> List[Tuple[Route, Dict[str, str]]]:
        """Routes matching a path and kind, in registration order"""
        matched = []
        for route in self._routes:
            params = route.match(path, kind)
            if params is not None:
                matched.append((route, params))
        return matched

    # ========================================================================
    # Ledger
    # ========================================================================

    @staticmethod
    def ledger_key(event: ChangeEvent, route: Route) -> str:
        return f"{event.event_id}:{route.name}"

    async def _already_processed(self, key: str) -> bool:
        if not self.ledger_enabled:
            return False
        async with self.session_factory() as session:
            return await ProcessedEventRepository(session).is_processed(key)

    async def _record(self, key: str, event: ChangeEvent) -> None:
        if not self.ledger_enabled:
            return
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await ProcessedEventRepository(session).mark_processed(
                        key, event.path, event.kind.value
                    )
        except Exception as e:
            # A lost ledger row means a redelivery runs the handler again
            self.log_error("Failed to record processed event", error=e, key=key)

    # ========================================================================
    # Dispatch
    # ========================================================================

    async def dispatch(self, event: Union[ChangeEvent, Dict[str, Any]]) -> DispatchResult:
        """
        Route one event to every matching handler

        Returns:
            DispatchResult; status is RETRY only when a handler raised
            TransientInfraError, so the delivery layer should redeliver.
        """
        if not isinstance(event, ChangeEvent):
            try:
                event = ChangeEvent.model_validate(event)
            except PydanticValidationError as e:
                self.log_warning("⚠️  Malformed event payload, ignoring", error=e.error_count())
                return DispatchResult(DispatchStatus.INVALID, detail=str(e))

        kind = event.kind
        if kind is None:
            self.log_warning("⚠️  Event carries neither before nor after, ignoring", path=event.path)
            return DispatchResult(DispatchStatus.INVALID, detail="empty event")

        matched = self.match(event.path, kind)
        if not matched:
            self.log_debug("No handler for event", path=event.path, kind=kind.value)
            return DispatchResult(DispatchStatus.UNMATCHED)

        names = tuple(route.name for route, _ in matched)
        outcomes: Dict[str, str] = {}

        for route, params in matched:
            key = self.ledger_key(event, route)
            try:
                seen = await self._already_processed(key)
            except Exception as e:
                self.log_error("Ledger lookup failed", error=e, key=key)
                outcomes[route.name] = DispatchStatus.RETRY.value
                continue
            if seen:
                self.log_info("⏭️  Duplicate delivery skipped", handler=route.name, event_id=event.event_id)
                outcomes[route.name] = DispatchStatus.DUPLICATE.value
                continue

            outcome = await self._run(route, event, params)
            outcomes[route.name] = outcome.value
            if outcome != DispatchStatus.RETRY:
                await self._record(key, event)

        return DispatchResult(self._overall(outcomes), handlers=names, outcomes=outcomes)

    async def _run(self, route: Route, event: ChangeEvent, params: Dict[str, str]) -> DispatchStatus:
        context = {"handler": route.name, "path": event.path, "event_id": event.event_id}
        try:
            await route.handler(event, params)
            self.log_debug("Handled event", **context)
            return DispatchStatus.HANDLED
        except TransientInfraError as e:
            self.log_warning(f"🔄 Transient failure, event will be redelivered: {e}", **context)
            return DispatchStatus.RETRY
        except (PydanticValidationError, ValidationError) as e:
            self.log_warning(f"⚠️  Invalid snapshot, nothing written: {e}", **context)
            return DispatchStatus.INVALID
        except (NotFoundError, InvariantViolation) as e:
            self.log_error("❌ Handler aborted", error=e, **context)
            return DispatchStatus.ABORTED
        except ServiceError as e:
            self.log_error("❌ Handler failed", error=e, **context)
            return DispatchStatus.ABORTED
        except Exception:
            self.logger.exception(f"[{self.get_service_name()}] Unexpected handler error ({context})")
            return DispatchStatus.ABORTED

    @staticmethod
    def _overall(outcomes: Dict[str, str]) -> DispatchStatus:
        values = set(outcomes.values())
        for status in (
            DispatchStatus.RETRY,
            DispatchStatus.ABORTED,
            DispatchStatus.INVALID,
            DispatchStatus.HANDLED,
        ):
            if status.value in values:
                return status
        return DispatchStatus.DUPLICATE
