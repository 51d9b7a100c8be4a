"""
Follow Edge Model
"""

from sqlalchemy import Column, DateTime, String

from .base import Base, utcnow


def follow_edge_id(follower_id: str, following_id: str) -> str:
    """Composite identity of a follow edge"""
    return f"{follower_id}_{following_id}"


class FollowEdge(Base):
    """follower_id follows following_id"""

    __tablename__ = "follows"

    id = Column(String(300), primary_key=True, comment="follower_following")
    follower_id = Column(String(128), nullable=False, index=True)
    following_id = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<FollowEdge({self.follower_id} -> {self.following_id})>"

    @property
    def expected_id(self) -> str:
        return follow_edge_id(self.follower_id, self.following_id)
