"""
Celery Application Factory
Creates and configures the Celery app that delivers trigger events and
runs maintenance jobs
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from celery import Celery, Task
from celery.signals import task_failure, task_postrun, task_prerun, task_retry
from kombu import Exchange, Queue

from engagement_core.app.config import get_config

logger = logging.getLogger(__name__)

T = TypeVar("T")

TASK_MODULES = [
    "engagement_core.infrastructure.tasks.trigger_tasks",
    "engagement_core.infrastructure.tasks.scheduled_tasks",
]


class DatabaseTask(Task):
    """
    Base task class owning a database manager per invocation

    Each run gets its own event loop, so the engine is created inside that
    loop and disposed before it closes.
    """

    def run_with_services(self, work: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run `work(services)` on a fresh event loop

        Args:
            work: Coroutine function receiving a ServiceContainer
        """
        from engagement_core.app.database import DatabaseManager
        from engagement_core.app.dependencies import build_services
        from engagement_core.infrastructure.clients import create_vector_index

        async def _run() -> T:
            manager = DatabaseManager()
            vector_index = create_vector_index()
            try:
                services = build_services(manager.session_factory, vector_index=vector_index)
                return await work(services)
            finally:
                if vector_index is not None:
                    await vector_index.close()
                await manager.close()

        return asyncio.run(_run())


def create_celery_app(app_name: str = "engagement_core") -> Celery:
    """
    Create and configure Celery application

    Args:
        app_name: Application name for Celery

    Returns:
        Configured Celery instance
    """
    config = get_config()
    celery_config = config.celery

    celery_app = Celery(
        app_name,
        broker=celery_config.broker_url,
        backend=celery_config.result_backend,
        task_cls=DatabaseTask,
        include=TASK_MODULES,
    )

    celery_app.conf.update(
        # Serialization
        task_serializer=celery_config.task_serializer,
        result_serializer=celery_config.result_serializer,
        accept_content=celery_config.accept_content,
        # Task execution
        task_time_limit=celery_config.task_time_limit,
        task_soft_time_limit=celery_config.task_soft_time_limit,
        task_acks_late=celery_config.task_acks_late,
        task_reject_on_worker_lost=celery_config.task_reject_on_worker_lost,
        # Retry settings
        task_default_retry_delay=celery_config.task_default_retry_delay,
        # Result backend
        result_expires=celery_config.result_expires,
        # Worker settings
        worker_concurrency=celery_config.worker_concurrency,
        worker_prefetch_multiplier=celery_config.worker_prefetch_multiplier,
        worker_max_tasks_per_child=celery_config.worker_max_tasks_per_child,
        # Logging
        worker_hijack_root_logger=celery_config.worker_hijack_root_logger,
        worker_log_format=celery_config.worker_log_format,
        # Timezone
        timezone="UTC",
        enable_utc=True,
        # Task routing
        task_default_queue=celery_config.task_default_queue,
        task_routes=celery_config.task_routes,
        # Beat scheduler
        beat_scheduler=celery_config.beat_scheduler,
        beat_schedule_filename=celery_config.beat_schedule_filename,
        # Performance
        task_compression=(
            celery_config.task_compression if celery_config.task_compression else None
        ),
    )

    default_exchange = Exchange("default", type="direct")

    celery_app.conf.task_queues = (
        Queue("default", exchange=default_exchange, routing_key="default"),
        Queue("triggers", exchange=default_exchange, routing_key="triggers"),
        Queue("maintenance", exchange=default_exchange, routing_key="maintenance"),
    )

    logger.info(f"✅ Celery app initialized: {app_name}")
    logger.info(f"📡 Broker: {celery_config.broker_url}")

    return celery_app


# Create global Celery instance
celery_app = create_celery_app()


# ============================================================================
# Signal Handlers
# ============================================================================


@task_prerun.connect
def task_prerun_handler(sender=None, task_id=None, task=None, **extra):
    logger.info(f"🚀 Task started: {task.name} [ID: {task_id}]")


@task_postrun.connect
def task_postrun_handler(sender=None, task_id=None, task=None, state=None, **extra):
    logger.info(f"✅ Task finished: {task.name} [ID: {task_id}] state={state}")


@task_retry.connect
def task_retry_handler(sender=None, request=None, reason=None, **extra):
    logger.warning(f"🔄 Task retry: {sender.name} [ID: {request.id}] reason={reason}")


@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwargs):
    logger.error(f"❌ Task failed: {sender.name} [ID: {task_id}] error={exception}")
