import logging
from typing import Any, Dict, Optional

from relay import protocol
from relay.connection import Connection
from relay.session_manager import SessionRegistry

logger = logging.getLogger(__name__)


class RelayDispatcher:
    """Forwards telemetry between paired sessions. Lossy, never buffers."""

    def __init__(self, sessions: SessionRegistry):
        self.sessions = sessions
        self.forwarded = 0
        self.dropped = 0

    async def forward(
        self,
        sender_id: str,
        payload: Dict[str, Any],
        connection: Optional[Connection] = None,
    ) -> bool:
        # Lookup is synchronous, so it sees a consistent registry snapshot
        sender = self.sessions.get(sender_id)
        if sender is None or sender.paired_with is None:
            return self._drop(sender_id, "not paired")
        if connection is not None and sender.connection is not connection:
            return self._drop(sender_id, "superseded connection")

        peer = self.sessions.get(sender.paired_with)
        if peer is None or peer.paired_with != sender_id or not peer.is_live:
            return self._drop(sender_id, "peer offline")

        if not await peer.connection.send(protocol.telemetry_message(payload)):
            return self._drop(sender_id, "send failed")

        self.forwarded += 1
        # Throttled logging for telemetry
        if self.forwarded % 500 == 0:
            logger.debug("Relayed %d telemetry frames", self.forwarded)
        return True

    def _drop(self, sender_id: str, reason: str) -> bool:
        self.dropped += 1
        logger.debug("Dropped telemetry from %s: %s", sender_id, reason)
        return False
