"""
Trigger Delivery Tasks
At-least-once delivery of document change events to the dispatcher
"""

import logging
from typing import Any, Dict

from engagement_core.app.config import get_config
from engagement_core.infrastructure.tasks.celery_app import celery_app
from engagement_core.services import DispatchStatus, TransientInfraError

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="tasks.triggers.deliver_event",
    acks_late=True,
    max_retries=get_config().celery.task_max_retries,
)
def deliver_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Dispatch one change event

    Args:
        payload: ChangeEvent.to_payload() output

    Returns:
        DispatchResult as a dictionary
    """

    async def _deliver(services):
        return await services.dispatcher.dispatch(payload)

    result = self.run_with_services(_deliver)

    if result.status == DispatchStatus.RETRY:
        countdown = get_config().celery.task_default_retry_delay * (2**self.request.retries)
        logger.warning(
            f"🔄 Redelivering {payload.get('path')} in {countdown}s "
            f"(attempt {self.request.retries + 1})"
        )
        raise self.retry(
            exc=TransientInfraError(f"Transient failure handling {payload.get('path')}"),
            countdown=countdown,
        )

    return result.to_dict()


def enqueue_event(payload: Dict[str, Any]) -> str:
    """Queue a change event for delivery; returns the Celery task id"""
    async_result = deliver_event.apply_async(args=[payload])
    logger.debug(f"📨 Event queued: {payload.get('path')} [task {async_result.id}]")
    return async_result.id
