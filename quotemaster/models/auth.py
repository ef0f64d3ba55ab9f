"""Auth & membership models."""

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    status = Column(String(20), default="active")  # active | inactive
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(UTCDateTime)

    memberships = relationship("TeamMember", back_populates="user", order_by="TeamMember.id")

    @property
    def is_active(self) -> bool:
        return self.status == "active" and self.deleted_at is None


class TeamMember(Base):
    """A user's role within one team.

    ``role`` is either a DEPARTMENT_LEVEL code (e.g. ``KITCHEN_STAFF``) or a
    template role (``owner`` / ``member``). The first membership by id is the
    user's primary team.
    """

    __tablename__ = "team_members"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(50), nullable=False)
    joined_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    left_at = Column(UTCDateTime)

    user = relationship("User", back_populates="memberships")
    team = relationship("Team")

    __table_args__ = (
        UniqueConstraint("user_id", "team_id", name="uq_team_members_user_team"),
        Index("ix_team_members_user", "user_id"),
        Index("ix_team_members_team", "team_id"),
    )
