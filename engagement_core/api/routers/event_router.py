"""
Event Ingestion Router
Accepts document change events and hands them to the dispatcher
"""

import logging

from fastapi import APIRouter, Depends, status

from engagement_core.api.schemas import EventAccepted, EventSubmission
from engagement_core.app.config import get_config
from engagement_core.app.dependencies import get_dispatcher
from engagement_core.domain.events import ChangeEvent
from engagement_core.services import TriggerDispatcher, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Events"])


@router.post("/events", response_model=EventAccepted, status_code=status.HTTP_202_ACCEPTED)
async def submit_event(
    submission: EventSubmission,
    dispatcher: TriggerDispatcher = Depends(get_dispatcher),
):
    """
    Queue a change event for at-least-once delivery

    With inline dispatch enabled the event is dispatched in this request
    and the DispatchResult is returned.
    """
    data = submission.model_dump(exclude_none=True)
    event = ChangeEvent.model_validate(data)
    if event.kind is None:
        raise ValidationError("Event needs a before or an after snapshot", field="after")

    if get_config().events.inline_dispatch:
        result = await dispatcher.dispatch(event)
        return EventAccepted(event_id=event.event_id, mode="inline", result=result.to_dict())

    from engagement_core.infrastructure.tasks.trigger_tasks import enqueue_event

    task_id = enqueue_event(event.to_payload())
    logger.info(f"📨 Event accepted: {event.path} [{event.kind.value}]")
    return EventAccepted(event_id=event.event_id, mode="queued", task_id=task_id)
