"""
ORM models for the engagement store
"""

from .base import Base, utcnow
from .user import UserAccount, Credential
from .video import Video, VideoLike, LikedVideo, VideoStatus, VideoPrivacy
from .comment import Comment, CommentLike
from .follow import FollowEdge, follow_edge_id
from .notification import Notification, NotificationType
from .reconciliation import ReconciliationTask, ReconciliationRun, ProcessedEvent

__all__ = [
    "Base",
    "utcnow",
    "UserAccount",
    "Credential",
    "Video",
    "VideoLike",
    "LikedVideo",
    "VideoStatus",
    "VideoPrivacy",
    "Comment",
    "CommentLike",
    "FollowEdge",
    "follow_edge_id",
    "Notification",
    "NotificationType",
    "ReconciliationTask",
    "ReconciliationRun",
    "ProcessedEvent",
]
