"""
Comment Models
Two-level comment threads and comment likes
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text

from .base import Base, utcnow


class Comment(Base):
    """
    Comment on a video

    depth 0 is top-level; depth 1 is a reply and must carry parent_id.
    """

    __tablename__ = "comments"
    __table_args__ = (
        CheckConstraint(
            "(depth = 0 AND parent_id IS NULL) OR (depth = 1 AND parent_id IS NOT NULL)",
            name="ck_comments_depth_parent",
        ),
        CheckConstraint("likes_count >= 0", name="ck_comments_likes"),
        CheckConstraint("reply_count >= 0", name="ck_comments_replies"),
    )

    id = Column(String(128), primary_key=True)
    video_id = Column(String(128), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    parent_id = Column(String(128), index=True, comment="Top-level comment replied to")
    depth = Column(Integer, nullable=False, default=0)
    text = Column(Text, nullable=False, default="")

    likes_count = Column(Integer, nullable=False, default=0)
    reply_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Comment(id={self.id}, depth={self.depth})>"

    @property
    def is_reply(self) -> bool:
        return self.depth == 1


class CommentLike(Base):
    """A user's like on a comment (source of truth for likes_count)"""

    __tablename__ = "comment_likes"

    comment_id = Column(String(128), primary_key=True)
    user_id = Column(String(128), primary_key=True)
    video_id = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
