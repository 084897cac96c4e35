import random
import time
from typing import Set

from relay.codes import CodeRegistry
from relay.config import Settings
from relay.connection import Connection
from relay.packet_router import RelayDispatcher
from relay.pairing import PairingCoordinator
from relay.reaper import Reaper
from relay.session_manager import SessionRegistry


class RelayHub:
    """Owns the registries and the services that operate on them."""

    def __init__(self, settings: Settings, clock=time.monotonic, rng: random.Random = None):
        self.settings = settings
        self.sessions = SessionRegistry()
        self.codes = CodeRegistry(rng=rng, max_attempts=settings.CODE_MAX_ATTEMPTS)
        self.coordinator = PairingCoordinator(self.sessions, self.codes, settings, clock=clock)
        self.dispatcher = RelayDispatcher(self.sessions)
        self.reaper = Reaper(
            self.coordinator,
            self.sessions,
            interval=settings.REAP_INTERVAL_SECONDS,
            grace_period=settings.GRACE_PERIOD_SECONDS,
            clock=clock,
        )
        self.connections: Set[Connection] = set()

    def status(self) -> dict:
        return {
            "status": "ok",
            "connections": sum(1 for c in self.connections if c.is_open),
            "sessions": len(self.sessions),
            "active_codes": len(self.codes),
            "pairings": self.sessions.pairing_count(),
        }
