"""SQLAlchemy models package."""
from app.models.user import User
from app.models.auth import Device, DeviceSessionLink, RefreshSession

__all__ = [
    "User",
    "RefreshSession",
    "Device",
    "DeviceSessionLink",
]
