"""
Reconciliation Queue, Sweep Log and Event Ledger Models
All three tables are append-only.
"""

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String

from .base import Base, utcnow


class ReconciliationTask(Base):
    """
    A counter update that could not be applied transactionally

    Never mutated; superseded by the next recompute of its target.
    """

    __tablename__ = "reconciliation_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    target_collection = Column(String(50), nullable=False, comment="users/videos/comments")
    target_id = Column(String(128), nullable=False, index=True)
    kind = Column(String(50), nullable=False, index=True, comment="e.g. like_count_change")
    field = Column(String(50), comment="Counter field to recompute")
    expected_value = Column(Float, comment="Value the caller expected to observe")
    actual_value = Column(Float, comment="Value observed at failure time")
    context = Column(JSON, comment="Free-form diagnostic context")
    enqueued_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return (
            f"<ReconciliationTask(kind={self.kind}, "
            f"target={self.target_collection}/{self.target_id})>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_collection": self.target_collection,
            "target_id": self.target_id,
            "kind": self.kind,
            "field": self.field,
            "expected_value": self.expected_value,
            "actual_value": self.actual_value,
            "context": self.context,
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
        }


class ReconciliationRun(Base):
    """One execution of the repair sweep or the queue pass"""

    __tablename__ = "reconciliation_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scope = Column(String(50), nullable=False, comment="full_sweep or queue")
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    finished_at = Column(DateTime, nullable=False, default=utcnow)
    examined = Column(Integer, nullable=False, default=0)
    changed = Column(Integer, nullable=False, default=0)


class ProcessedEvent(Base):
    """Idempotency ledger for at-least-once trigger delivery"""

    __tablename__ = "processed_events"

    event_id = Column(String(128), primary_key=True)
    path = Column(String(500), nullable=False)
    kind = Column(String(20), nullable=False)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
