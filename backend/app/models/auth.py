"""Authentication/session models."""
import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class RefreshSession(Base):
    """One login instance; stores only the HMAC of its current refresh secret."""

    __tablename__ = "refresh_sessions"
    __table_args__ = (
        Index("ix_refresh_sessions_user_active", "user_id", "revoked"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(String(32), nullable=False)
    last_used_at = Column(String(32), nullable=False)
    expires_at = Column(String(32))  # NULL: no fixed expiry
    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(String(32))

    # Metadata; device_id is a weak reference to devices.id
    device_id = Column(String(64), index=True)
    user_agent = Column(String(255))
    ip_address = Column(String(45))

    user = relationship("User", back_populates="refresh_sessions")


class Device(Base):
    """Long-lived browser/device context, independent of any login."""

    __tablename__ = "devices"

    id = Column(String(64), primary_key=True)
    created_at = Column(String(32), nullable=False)
    last_activity = Column(String(32), nullable=False)

    links = relationship(
        "DeviceSessionLink",
        back_populates="device",
        cascade="all, delete-orphan",
        order_by="DeviceSessionLink.linked_at",
    )


class DeviceSessionLink(Base):
    """A (user, session) pair riding on a device; accounts may differ per device."""

    __tablename__ = "device_session_links"
    __table_args__ = (
        UniqueConstraint("device_id", "user_id", "session_id", name="uq_device_session_link"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    device_id = Column(String(64), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(36), nullable=False)
    linked_at = Column(String(32), nullable=False)

    device = relationship("Device", back_populates="links")
