"""
Repository Layer
Data access patterns for all entities
"""

from .base import BaseRepository
from .user_repository import UserRepository, CredentialRepository
from .video_repository import VideoRepository, VideoLikeRepository, LikedVideoRepository
from .comment_repository import CommentRepository, CommentLikeRepository
from .follow_repository import FollowRepository
from .notification_repository import NotificationRepository
from .reconciliation_repository import ReconciliationRepository, ProcessedEventRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "CredentialRepository",
    "VideoRepository",
    "VideoLikeRepository",
    "LikedVideoRepository",
    "CommentRepository",
    "CommentLikeRepository",
    "FollowRepository",
    "NotificationRepository",
    "ReconciliationRepository",
    "ProcessedEventRepository",
]
