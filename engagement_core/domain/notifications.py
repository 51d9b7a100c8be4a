"""
Notification variants

Each notification type has a fixed set of required and optional fields.
Variants are validated before anything is written; a recipient never
receives a notification about their own action.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

PREVIEW_LENGTH = 100


def truncate_preview(text: Optional[str], limit: int = PREVIEW_LENGTH) -> str:
    """Comment preview stored on notifications"""
    return (text or "")[:limit]


class _NotificationBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    recipient_id: str = Field(..., min_length=1)
    source_user_id: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def no_self_notification(self):
        if self.recipient_id == self.source_user_id:
            raise ValueError("self-notifications are suppressed")
        return self

    def to_row(self) -> Dict[str, Any]:
        """Column values for the notifications table"""
        return self.model_dump()


class _CommentPreviewMixin(BaseModel):
    comment_text: str = ""

    @field_validator("comment_text", mode="before")
    @classmethod
    def clip(cls, v: Any) -> str:
        return truncate_preview(v)


class LikeNotification(_NotificationBase):
    type: Literal["like"] = "like"
    video_id: str


class CommentNotification(_CommentPreviewMixin, _NotificationBase):
    type: Literal["comment"] = "comment"
    video_id: str
    comment_id: str
    video_thumbnail_url: Optional[str] = None


class CommentReplyNotification(_CommentPreviewMixin, _NotificationBase):
    type: Literal["comment_reply"] = "comment_reply"
    video_id: str
    comment_id: str
    video_thumbnail_url: Optional[str] = None


class CommentLikeNotification(_NotificationBase):
    type: Literal["commentLike"] = "commentLike"
    video_id: str
    comment_id: str


class FollowNotification(_NotificationBase):
    type: Literal["follow"] = "follow"


class VideoPostNotification(_NotificationBase):
    type: Literal["video_post"] = "video_post"
    video_id: str
    video_thumbnail_url: Optional[str] = None
    video_description: Optional[str] = None


NotificationVariant = Annotated[
    Union[
        LikeNotification,
        CommentNotification,
        CommentReplyNotification,
        CommentLikeNotification,
        FollowNotification,
        VideoPostNotification,
    ],
    Field(discriminator="type"),
]

_adapter = TypeAdapter(NotificationVariant)


def parse_notification(data: Dict[str, Any]) -> NotificationVariant:
    """Validate a raw notification payload into its variant"""
    return _adapter.validate_python(data)
