"""
Notification Model
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    String,
    Text,
)

from .base import Base, utcnow


class NotificationType(str, enum.Enum):
    """Kinds of notification the fan-out engine writes"""

    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    VIDEO_POST = "video_post"
    COMMENT_REPLY = "comment_reply"
    COMMENT_LIKE = "commentLike"


class Notification(Base):
    """Advisory notification for one recipient"""

    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint("recipient_id <> source_user_id", name="ck_notifications_no_self"),
    )

    id = Column(String(64), primary_key=True)
    recipient_id = Column(String(128), nullable=False, index=True)
    type = Column(
        SQLEnum(NotificationType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )
    source_user_id = Column(String(128), nullable=False, index=True)

    # Optional references
    video_id = Column(String(128), index=True)
    comment_id = Column(String(128), index=True)
    comment_text = Column(String(100), comment="Preview, at most 100 chars")
    video_thumbnail_url = Column(String(1000))
    video_description = Column(Text)

    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Notification(id={self.id}, type={self.type}, to={self.recipient_id})>"

    def to_dict(self) -> dict:
        """Convert model to dictionary"""
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "type": self.type.value,
            "source_user_id": self.source_user_id,
            "video_id": self.video_id,
            "comment_id": self.comment_id,
            "comment_text": self.comment_text,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
