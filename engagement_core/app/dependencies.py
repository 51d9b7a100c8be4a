"""
Service Dependency Injection
Builds the service graph and exposes FastAPI dependency providers
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from engagement_core.app.config import Config, get_config
from engagement_core.app.database import db_manager
from engagement_core.domain.events import ChangeEvent
from engagement_core.domain.interfaces import IdentityProvider, VectorIndex
from engagement_core.infrastructure.clients import LocalIdentityProvider, create_vector_index
from engagement_core.services import (
    BackoffPolicy,
    CounterService,
    DispatchStatus,
    FanoutService,
    FollowService,
    ReconciliationService,
    TransientInfraError,
    TriggerDispatcher,
    UnauthenticatedError,
    UserService,
    VideoService,
)
from engagement_core.services.retry import Sleep


@dataclass
class ServiceContainer:
    """Every service sharing one session factory"""

    counters: CounterService
    dispatcher: TriggerDispatcher
    fanout: FanoutService
    follows: FollowService
    reconciliation: ReconciliationService
    users: UserService
    videos: VideoService


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    config: Optional[Config] = None,
    identity_provider: Optional[IdentityProvider] = None,
    vector_index: Optional[VectorIndex] = None,
    policy: Optional[BackoffPolicy] = None,
    sleep: Optional[Sleep] = None,
) -> ServiceContainer:
    """
    Wire services and register every trigger handler

    Derived events (e.g. a video's likes_count changing) are dispatched
    in-process through the same dispatcher.
    """
    config = config or get_config()
    policy = policy or BackoffPolicy.from_settings(config.counters)

    counters = CounterService(session_factory, policy=policy, sleep=sleep, config=config)
    dispatcher = TriggerDispatcher(
        session_factory, ledger_enabled=config.events.ledger_enabled, config=config
    )

    async def publish(event: ChangeEvent) -> None:
        result = await dispatcher.dispatch(event)
        if result.status == DispatchStatus.RETRY:
            raise TransientInfraError(f"Derived event for {event.path} needs redelivery")

    fanout = FanoutService(
        session_factory,
        counters,
        chunk_size=config.fanout.chunk_size,
        publisher=publish,
        config=config,
    )
    follows = FollowService(counters, config=config)
    reconciliation = ReconciliationService(
        session_factory, counters, page_size=config.reconciliation.page_size, config=config
    )
    users = UserService(
        session_factory,
        identity_provider or LocalIdentityProvider(session_factory),
        config=config,
    )
    videos = VideoService(
        session_factory,
        counters,
        vector_index=vector_index,
        page_size=config.reconciliation.page_size,
        config=config,
    )

    fanout.register_handlers(dispatcher)
    follows.register_handlers(dispatcher)
    videos.register_handlers(dispatcher)

    return ServiceContainer(
        counters=counters,
        dispatcher=dispatcher,
        fanout=fanout,
        follows=follows,
        reconciliation=reconciliation,
        users=users,
        videos=videos,
    )


@lru_cache()
def get_services() -> ServiceContainer:
    """
    Process-wide service container (Singleton)

    Returns:
        ServiceContainer bound to the global database manager
    """
    return build_services(db_manager.session_factory, vector_index=create_vector_index())


# ============================================================================
# FastAPI Dependency Providers
# ============================================================================


def get_current_uid(request: Request) -> str:
    """
    Caller uid from the trusted identity header

    Raises:
        UnauthenticatedError: Header missing or blank
    """
    header = get_config().auth.uid_header
    uid = (request.headers.get(header) or "").strip()
    if not uid:
        raise UnauthenticatedError("Must be logged in")
    return uid


def get_follow_service(services: ServiceContainer = Depends(get_services)) -> FollowService:
    return services.follows


def get_user_service(services: ServiceContainer = Depends(get_services)) -> UserService:
    return services.users


def get_reconciliation_service(
    services: ServiceContainer = Depends(get_services),
) -> ReconciliationService:
    return services.reconciliation


def get_dispatcher(services: ServiceContainer = Depends(get_services)) -> TriggerDispatcher:
    return services.dispatcher
