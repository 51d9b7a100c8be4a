"""
Change events delivered by the document store triggers
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventKind(str, enum.Enum):
    """What happened to the document"""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """
    Before/after pair of document snapshots for one document path

    `before` is absent on create and `after` is absent on delete. The
    event_id is stable across redeliveries of the same logical change.
    """

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex, min_length=1)
    path: str = Field(..., min_length=1, description="e.g. videos/v1/comments/c1")
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> Optional[EventKind]:
        """Derived event kind; None when both snapshots are missing"""
        if self.before is None and self.after is None:
            return None
        if self.before is None:
            return EventKind.CREATED
        if self.after is None:
            return EventKind.DELETED
        return EventKind.UPDATED

    @property
    def data(self) -> Optional[Dict[str, Any]]:
        """Most recent snapshot available"""
        return self.after if self.after is not None else self.before

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe form used by the Celery delivery task"""
        return self.model_dump(mode="json")

    @classmethod
    def created(cls, path: str, after: Dict[str, Any], **kwargs: Any) -> "ChangeEvent":
        return cls(path=path, before=None, after=after, **kwargs)

    @classmethod
    def updated(
        cls, path: str, before: Dict[str, Any], after: Dict[str, Any], **kwargs: Any
    ) -> "ChangeEvent":
        return cls(path=path, before=before, after=after, **kwargs)

    @classmethod
    def deleted(cls, path: str, before: Dict[str, Any], **kwargs: Any) -> "ChangeEvent":
        return cls(path=path, before=before, after=None, **kwargs)
