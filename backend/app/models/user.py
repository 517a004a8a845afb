"""User account model."""
import uuid

from sqlalchemy import Boolean, Column, String, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.services.clock import to_iso, utcnow


def _now_iso() -> str:
    return to_iso(utcnow())


class User(Base):
    """Account identity record; owns its refresh sessions."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=False)
    show_email = Column(Boolean, nullable=False, default=False)
    bio = Column(Text, nullable=False, default="")
    created_at = Column(String(32), default=_now_iso)
    updated_at = Column(String(32), default=_now_iso, onupdate=_now_iso)

    # Relationships
    refresh_sessions = relationship(
        "RefreshSession",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="RefreshSession.created_at",
    )
