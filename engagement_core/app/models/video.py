"""
Video Model
A posted cooking video with engagement counters and derived tags
"""

import enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    Integer,
    String,
    Text,
)

from .base import Base, utcnow


class VideoStatus(str, enum.Enum):
    """Video lifecycle status"""

    ACTIVE = "active"
    DELETED = "deleted"
    PROCESSING = "processing"


class VideoPrivacy(str, enum.Enum):
    """Audience allowed to see a video"""

    EVERYONE = "everyone"
    FOLLOWERS = "followers"
    PRIVATE = "private"


class Video(Base):
    """
    Video entity

    `owner_id` is the only owner field read at runtime. `legacy_uploader_id`
    exists so the owner migration can back-fill rows written before the
    field was unified.
    """

    __tablename__ = "videos"
    __table_args__ = (
        CheckConstraint("likes_count >= 0", name="ck_videos_likes"),
        CheckConstraint("comments_count >= 0", name="ck_videos_comments"),
        CheckConstraint("share_count >= 0", name="ck_videos_shares"),
        CheckConstraint("bookmark_count >= 0", name="ck_videos_bookmarks"),
    )

    id = Column(String(128), primary_key=True)
    owner_id = Column(String(128), index=True, comment="Canonical owner uid")
    legacy_uploader_id = Column(
        String(128), comment="Pre-migration owner field, read only by the migration"
    )

    status = Column(
        SQLEnum(VideoStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VideoStatus.ACTIVE,
        index=True,
    )
    privacy = Column(
        SQLEnum(VideoPrivacy, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=VideoPrivacy.EVERYONE,
    )

    # Engagement counters
    likes_count = Column(Integer, nullable=False, default=0)
    comments_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)
    bookmark_count = Column(Integer, nullable=False, default=0)

    # Recipe attributes feeding the tag generator
    budget = Column(Float, default=0)
    calories = Column(Float, default=0)
    prep_time_minutes = Column(Float, default=0)
    spiciness = Column(Integer, default=0)
    hashtags = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list, comment="Derived bucket tags")

    # Content produced by collaborators
    description = Column(Text)
    ai_description = Column(Text, comment="Written by the AI description generator")
    thumbnail_url = Column(String(1000))

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Video(id={self.id}, owner_id={self.owner_id})>"


class VideoLike(Base):
    """A user's like on a video (source of truth for likes_count)"""

    __tablename__ = "video_likes"

    video_id = Column(String(128), primary_key=True)
    user_id = Column(String(128), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class LikedVideo(Base):
    """Per-user back-reference to a liked video"""

    __tablename__ = "liked_videos"

    user_id = Column(String(128), primary_key=True)
    video_id = Column(String(128), primary_key=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
