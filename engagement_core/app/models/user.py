"""
User Account Model
Profile plus derived aggregate counters
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from .base import Base, utcnow


class UserAccount(Base):
    """
    Platform user

    Every counter is a cache of a recomputable value. Only the counter
    service and the repair sweep write them.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("total_videos >= 0", name="ck_users_total_videos"),
        CheckConstraint("total_likes >= 0", name="ck_users_total_likes"),
        CheckConstraint("followers_count >= 0", name="ck_users_followers"),
        CheckConstraint("following_count >= 0", name="ck_users_following"),
    )

    id = Column(String(128), primary_key=True, comment="Identity provider uid")
    email = Column(String(320), nullable=False, unique=True, comment="Login email")
    display_name = Column(String(100), nullable=False, comment="Public display name")
    display_name_lower = Column(
        String(100), index=True, comment="Lower-cased display name for lookups"
    )

    # Derived aggregates
    total_videos = Column(Integer, nullable=False, default=0)
    total_likes = Column(Integer, nullable=False, default=0)
    followers_count = Column(Integer, nullable=False, default=0)
    following_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Optimistic concurrency token
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<UserAccount(id={self.id}, display_name={self.display_name})>"

    def to_dict(self) -> dict:
        """Convert model to dictionary"""
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "total_videos": self.total_videos,
            "total_likes": self.total_likes,
            "followers_count": self.followers_count,
            "following_count": self.following_count,
        }


class Credential(Base):
    """Password credential owned by the local identity provider"""

    __tablename__ = "credentials"

    uid = Column(String(128), primary_key=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(256), nullable=False, comment="bcrypt hash")
    created_at = Column(DateTime, nullable=False, default=utcnow)
