"""Background revocation of sessions on inactive devices."""
import asyncio
from collections.abc import Callable
from datetime import timedelta
import logging

from sqlalchemy.orm import Session

from app.config import Settings
from app.services.clock import Clock, utcnow
from app.services.devices import DeviceRegistry
from app.services.sessions import SessionStore
from app.services.tokens import TokenCodec

logger = logging.getLogger(__name__)


class InactivityReaper:
    """Periodically revokes every session linked to a device idle past the threshold.

    One pass runs immediately on start, then one per interval. The pass itself
    is synchronous and is pushed to a worker thread so it shares the per-key
    locks with request handlers.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Settings,
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.threshold = settings.inactivity_threshold
        self.interval = settings.reaper_interval
        self._clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> list[str]:
        """Revoke inactive devices; returns their ids. Active devices are not touched."""
        db = self.session_factory()
        try:
            codec = TokenCodec(self.settings, clock=self._clock)
            sessions = SessionStore(db, codec, clock=self._clock, refresh_ttl=self.settings.refresh_token_ttl)
            registry = DeviceRegistry(db, sessions, clock=self._clock)

            revoked_devices = []
            for device_id in registry.device_ids():
                if not registry.is_inactive(device_id, self.threshold):
                    continue
                if registry.revoke_if_inactive(device_id, self.threshold) is not None:
                    revoked_devices.append(device_id)
            return revoked_devices
        finally:
            db.close()

    async def start(self, interval: timedelta | None = None) -> None:
        """Start the periodic loop; a second call while running does nothing."""
        if self.running:
            logger.warning("Inactivity reaper already running")
            return
        if interval is not None:
            self.interval = interval
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Inactivity reaper started (threshold={self.threshold}, interval={self.interval})")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Inactivity reaper stopped")

    async def _run_loop(self) -> None:
        while True:
            try:
                revoked = await asyncio.to_thread(self.run_once)
                if revoked:
                    logger.info(f"Revoked {len(revoked)} device(s) due to inactivity")
            except Exception:
                logger.exception("Inactivity reaper pass failed")
            await asyncio.sleep(self.interval.total_seconds())
