"""
Typed document snapshots

Trigger payloads arrive as loosely shaped dictionaries (camelCase keys as
written by the clients). Handlers parse them into these models before any
write, so a malformed payload fails at the boundary.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from engagement_core.app.models import VideoPrivacy, VideoStatus


class Snapshot(BaseModel):
    """Base for every snapshot model"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class VideoSnapshot(Snapshot):
    owner_id: str = Field(..., min_length=1)
    status: VideoStatus = VideoStatus.ACTIVE
    privacy: VideoPrivacy = VideoPrivacy.EVERYONE
    likes_count: int = Field(default=0, ge=0)
    comments_count: int = Field(default=0, ge=0)
    budget: Optional[float] = None
    calories: Optional[float] = None
    prep_time_minutes: Optional[float] = None
    spiciness: Optional[int] = None
    hashtags: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    ai_description: Optional[str] = None
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailURL")

    def tag_inputs(self) -> tuple:
        """Fields the tag generator depends on"""
        return (
            self.budget,
            self.calories,
            self.prep_time_minutes,
            self.spiciness,
            tuple(self.hashtags),
        )


class CommentSnapshot(Snapshot):
    user_id: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    depth: int = 0
    text: str = ""

    @model_validator(mode="after")
    def check_depth(self) -> "CommentSnapshot":
        if self.depth not in (0, 1):
            raise ValueError(f"comment depth must be 0 or 1, got {self.depth}")
        if (self.depth == 1) != bool(self.parent_id):
            raise ValueError("parentId must be set if and only if depth == 1")
        return self


class LikeSnapshot(Snapshot):
    """Like documents carry no required fields; presence is the signal"""

    user_id: Optional[str] = None


class FollowSnapshot(Snapshot):
    follower_id: str = Field(..., min_length=1)
    following_id: str = Field(..., min_length=1)
