"""Team (kitchen / office) model."""

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Team(Base):
    """A kitchen or office. Kitchens carry a team_code and a region."""

    __tablename__ = "teams"
    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    team_code = Column(String(50), unique=True)  # mandatory for KITCHEN
    region = Column(String(100))
    address = Column(Text)
    manager_id = Column(Integer, ForeignKey("users.id"))
    team_type = Column(String(20), nullable=False, default="KITCHEN")  # KITCHEN | OFFICE
    status = Column(String(20), default="active")
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(UTCDateTime)

    manager = relationship("User", foreign_keys=[manager_id])

    __table_args__ = (
        Index("ix_teams_region", "region"),
        Index("ix_teams_type", "team_type"),
    )
