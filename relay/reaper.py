import asyncio
import logging
import time
from typing import List, Optional

from relay.pairing import Outbox, PairingCoordinator
from relay.session_manager import SessionRegistry

logger = logging.getLogger(__name__)


class Reaper:
    """Periodically evicts sessions that stayed disconnected past the grace period."""

    def __init__(
        self,
        coordinator: PairingCoordinator,
        sessions: SessionRegistry,
        interval: float = 60,
        grace_period: float = 300,
        clock=time.monotonic,
    ):
        self.coordinator = coordinator
        self.sessions = sessions
        self.interval = interval
        self.grace_period = grace_period
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._periodic_sweep())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _periodic_sweep(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Reaper sweep failed")

    async def sweep(self) -> List[str]:
        """Run one pass. Returns the ids of evicted sessions."""
        reaped = []
        outbox: Outbox = []
        async with self.coordinator.lock:
            now = self.clock()
            for session in self.sessions:
                if session.is_live:
                    continue
                if session.disconnected_at is None:
                    # Closed without going through disconnect; start the clock now
                    session.disconnected_at = now
                    continue
                if now - session.disconnected_at >= self.grace_period:
                    # The peer was already told at disconnect time
                    self.coordinator.teardown_locked(session, outbox, notify=False, reason="peer_timeout")
                    reaped.append(session.session_id)
        await self.coordinator.deliver(outbox)

        for session_id in reaped:
            logger.info("Cleaned up stale client: %s", session_id)
        return reaped
