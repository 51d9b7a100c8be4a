"""
Unit Tests for Celery tasks
Tasks are called directly; no broker is needed
"""

import pytest

from engagement_core.infrastructure.tasks import scheduled_tasks, trigger_tasks
from engagement_core.infrastructure.tasks.celery_app import TASK_MODULES, DatabaseTask, celery_app
from engagement_core.services import DispatchResult, DispatchStatus, TransientInfraError

PAYLOAD = {"event_id": "evt-1", "path": "videos/v1/likes/fan", "after": {"userId": "fan"}}


@pytest.fixture
def returns(monkeypatch):
    """Make run_with_services return a canned value"""

    def install(value):
        def fake(self, work):
            return value

        monkeypatch.setattr(DatabaseTask, "run_with_services", fake)

    return install


def test_deliver_event_returns_dispatch_result(returns):
    returns(DispatchResult(DispatchStatus.HANDLED, handlers=("on_video_like_changed",)))

    result = trigger_tasks.deliver_event(PAYLOAD)

    assert result["status"] == "handled"
    assert result["handlers"] == ["on_video_like_changed"]


def test_deliver_event_retries_transient_failures(returns):
    returns(DispatchResult(DispatchStatus.RETRY, outcomes={"on_video_like_changed": "retry"}))

    with pytest.raises(TransientInfraError):
        trigger_tasks.deliver_event(PAYLOAD)


def test_aborted_events_are_not_retried(returns):
    returns(DispatchResult(DispatchStatus.ABORTED))

    assert trigger_tasks.deliver_event(PAYLOAD)["status"] == "aborted"


def test_enqueue_event(monkeypatch):
    calls = []

    class FakeResult:
        id = "task-42"

    def apply_async(args=None, **kwargs):
        calls.append(args)
        return FakeResult()

    monkeypatch.setattr(trigger_tasks.deliver_event, "apply_async", apply_async)

    assert trigger_tasks.enqueue_event(PAYLOAD) == "task-42"
    assert calls == [[PAYLOAD]]


def test_repair_sweep_summary(returns):
    returns(
        {
            "alice": {"success": True, "old_count": 4, "new_count": 2},
            "bob": {"success": True, "unchanged": True},
            "carol": {"success": False, "error": "boom"},
        }
    )

    assert scheduled_tasks.repair_sweep() == {"users": 3, "corrected": 1, "failed": 1}


def test_queue_pass_summary(returns):
    returns({"examined": 4, "changed": 1, "failed": 0, "results": []})

    assert scheduled_tasks.process_reconciliation_queue() == {"examined": 4, "changed": 1, "failed": 0}


def test_beat_schedule():
    schedule = celery_app.conf.beat_schedule

    assert schedule["repair-sweep"]["task"] == "tasks.scheduled.repair_sweep"
    assert schedule["process-reconciliation-queue"]["task"] == "tasks.scheduled.process_reconciliation_queue"


def test_task_modules_registered():
    assert "engagement_core.infrastructure.tasks.trigger_tasks" in TASK_MODULES
    assert {q.name for q in celery_app.conf.task_queues} == {"default", "triggers", "maintenance"}
