"""Device registry: device ids, activity tracking and device-wide revocation."""
from dataclasses import dataclass
from datetime import timedelta
import logging
import re
import secrets

from sqlalchemy.orm import Session

from app.database import atomic, persistence_guard
from app.models.auth import Device, DeviceSessionLink
from app.services.clock import Clock, from_iso, to_iso, utcnow
from app.services.locks import device_locks
from app.services.sessions import SessionStore

logger = logging.getLogger(__name__)

DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,64}$")


def is_valid_device_id(device_id: str | None) -> bool:
    return bool(device_id) and DEVICE_ID_PATTERN.match(device_id) is not None


@dataclass(frozen=True)
class DeviceRevocation:
    """Per-link audit record of a device revocation."""

    user_id: str
    session_id: str
    found: bool
    revoked: bool


class DeviceRegistry:
    """Tracks devices and which (account, session) pairs ride on each."""

    def __init__(self, db: Session, sessions: SessionStore, clock: Clock = utcnow) -> None:
        self.db = db
        self.sessions = sessions
        self._clock = clock

    def ensure_device(self, device_id: str | None = None) -> str:
        """Return a registered device id, minting one when none (or garbage) is given."""
        if not is_valid_device_id(device_id):
            device_id = secrets.token_urlsafe(24)
        with device_locks.hold(device_id), atomic(self.db):
            self._get_or_create(device_id)
        return device_id

    def get_device(self, device_id: str) -> Device | None:
        if not is_valid_device_id(device_id):
            return None
        with persistence_guard(self.db):
            return self.db.get(Device, device_id)

    def device_ids(self) -> list[str]:
        with persistence_guard(self.db):
            return [row.id for row in self.db.query(Device.id).order_by(Device.created_at).all()]

    def link_session(self, device_id: str, user_id: str, session_id: str) -> None:
        """Attach a session to the device; linking twice is a no-op."""
        with device_locks.hold(device_id), atomic(self.db):
            device = self._get_or_create(device_id)
            if self._find_link(device_id, user_id, session_id) is None:
                self.db.add(DeviceSessionLink(
                    device_id=device_id,
                    user_id=user_id,
                    session_id=session_id,
                    linked_at=to_iso(self._clock()),
                ))
            device.last_activity = to_iso(self._clock())

    def unlink_session(self, device_id: str, user_id: str, session_id: str) -> bool:
        """Detach a session from the device; returns whether a link was removed."""
        with device_locks.hold(device_id), atomic(self.db):
            link = self._find_link(device_id, user_id, session_id)
            if link is None:
                return False
            self.db.delete(link)
        return True

    def linked_sessions(self, device_id: str, user_id: str | None = None) -> list[tuple[str, str]]:
        """(user_id, session_id) pairs on the device, oldest link first."""
        with persistence_guard(self.db):
            query = self.db.query(DeviceSessionLink).filter(DeviceSessionLink.device_id == device_id)
            if user_id is not None:
                query = query.filter(DeviceSessionLink.user_id == user_id)
            return [(link.user_id, link.session_id) for link in query.order_by(DeviceSessionLink.linked_at).all()]

    def record_activity(self, device_id: str) -> bool:
        """Stamp the device as active now; unknown well-formed ids get registered."""
        if not is_valid_device_id(device_id):
            return False
        with device_locks.hold(device_id), atomic(self.db):
            device = self._get_or_create(device_id)
            device.last_activity = to_iso(self._clock())
        return True

    def is_inactive(self, device_id: str, threshold: timedelta) -> bool:
        """True iff the device's last activity is older than threshold.

        Unknown devices (and unreadable timestamps) report False.
        """
        device = self.get_device(device_id)
        if device is None:
            return False
        last_activity = from_iso(device.last_activity)
        if last_activity is None:
            return False
        return self._clock() - last_activity > threshold

    def revoke_device(self, device_id: str, only_user_id: str | None = None) -> list[DeviceRevocation]:
        """Revoke every session linked to the device and clear those links.

        With only_user_id, only that account's links are revoked and cleared.
        """
        results = []
        with device_locks.hold(device_id):
            for user_id, session_id in self.linked_sessions(device_id, user_id=only_user_id):
                outcome = self.sessions.revoke_by_id(user_id, session_id)
                results.append(DeviceRevocation(
                    user_id=user_id,
                    session_id=session_id,
                    found=outcome.found,
                    revoked=outcome.changed,
                ))

            with atomic(self.db):
                query = self.db.query(DeviceSessionLink).filter(DeviceSessionLink.device_id == device_id)
                if only_user_id is not None:
                    query = query.filter(DeviceSessionLink.user_id == only_user_id)
                query.delete(synchronize_session=False)
                device = self.db.get(Device, device_id)
                if device is not None:
                    device.last_activity = to_iso(self._clock())

        revoked_count = sum(1 for result in results if result.revoked)
        logger.info(f"Revoked {revoked_count} of {len(results)} linked session(s) on device {device_id}")
        return results

    def revoke_if_inactive(self, device_id: str, threshold: timedelta) -> list[DeviceRevocation] | None:
        """Revoke the device if it is inactive, deciding under the device lock.

        Returns None when the device is still active (nothing changes).
        """
        with device_locks.hold(device_id):
            if not self.is_inactive(device_id, threshold):
                return None
            logger.warning(f"Device {device_id} inactive beyond {threshold}; revoking its sessions")
            return self.revoke_device(device_id)

    def _get_or_create(self, device_id: str) -> Device:
        device = self.db.get(Device, device_id)
        if device is None:
            now = to_iso(self._clock())
            device = Device(id=device_id, created_at=now, last_activity=now)
            self.db.add(device)
        return device

    def _find_link(self, device_id: str, user_id: str, session_id: str) -> DeviceSessionLink | None:
        return self.db.query(DeviceSessionLink).filter(
            DeviceSessionLink.device_id == device_id,
            DeviceSessionLink.user_id == user_id,
            DeviceSessionLink.session_id == session_id,
        ).first()
