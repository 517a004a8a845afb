"""Per-request authentication gate."""
from dataclasses import dataclass
from datetime import timedelta
import logging

from app.services.devices import DeviceRegistry
from app.services.errors import AuthError, DeviceInactive, NotAuthenticated
from app.services.tokens import Identity, TokenCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateOutcome:
    """Terminal result of the gate: an identity, or the failure to answer with."""

    identity: Identity | None = None
    failure: AuthError | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


class RequestGate:
    """Validates the access token and the device's liveness for one request.

    Outcomes, in order:
    no token or a bad/expired token -> unauthenticated;
    inactive device -> its sessions are revoked, unauthenticated (cookies cleared);
    active device -> activity recorded, authenticated;
    no device id -> authenticated without device checks.
    """

    def __init__(
        self,
        codec: TokenCodec,
        devices: DeviceRegistry,
        inactivity_threshold: timedelta,
        fail_closed_unknown_device: bool = False,
    ) -> None:
        self.codec = codec
        self.devices = devices
        self.inactivity_threshold = inactivity_threshold
        self.fail_closed_unknown_device = fail_closed_unknown_device

    def check(self, access_token: str | None, device_id: str | None) -> GateOutcome:
        if not access_token:
            return GateOutcome(failure=NotAuthenticated())

        result = self.codec.verify_access(access_token)
        if not result.ok:
            return GateOutcome(failure=result.failure)

        if not device_id:
            return GateOutcome(identity=result.identity)

        if self.fail_closed_unknown_device and self.devices.get_device(device_id) is None:
            logger.warning(f"Rejected request from unregistered device for account {result.identity.user_id}")
            return GateOutcome(failure=DeviceInactive("Device could not be verified, please sign in again"))

        if self.devices.revoke_if_inactive(device_id, self.inactivity_threshold) is not None:
            return GateOutcome(failure=DeviceInactive())

        self.devices.record_activity(device_id)
        return GateOutcome(identity=result.identity)
