"""Per-connection message dispatch."""

import logging
from typing import Any, Dict, Optional

from relay import protocol
from relay.connection import Connection
from relay.errors import InternalError, MalformedMessage, RelayError
from relay.hub import RelayHub

logger = logging.getLogger(__name__)


class ConnectionHandler:
    """Processes the frames of one connection, strictly in arrival order."""

    def __init__(self, hub: RelayHub, connection: Connection):
        self.hub = hub
        self.connection = connection
        self.session_id: Optional[str] = None

    async def handle_text(self, raw: Optional[str]):
        try:
            message = protocol.parse_frame(raw)
        except RelayError as exc:
            logger.warning("Bad frame on connection %s: %s", self.connection.id, exc.message)
            await self._send_error(exc)
            return
        await self.handle(message)

    async def handle(self, message: Dict[str, Any]):
        msg_type = message.get("type")
        try:
            if msg_type == "register":
                await self._register(message)
            elif msg_type == "pair":
                await self._pair(message)
            elif msg_type == "telemetry":
                await self._telemetry(message)
            elif msg_type == "ping":
                await self.connection.send({"type": "pong"})
            elif msg_type == "pong":
                pass  # keepalive acknowledged
            else:
                logger.info("Unknown message type: %s", msg_type)
        except RelayError as exc:
            logger.warning("%s failed for %s: %s", msg_type, self.session_id or self.connection.id, exc.message)
            await self._send_error(exc)
        except Exception:
            logger.exception("Error handling %s message", msg_type)
            await self._send_error(InternalError())

    async def close(self):
        self.connection.mark_closed()
        if self.session_id is not None:
            await self.hub.coordinator.disconnect(self.session_id, self.connection)

    async def _register(self, message: Dict[str, Any]):
        request = protocol.parse_register(message)
        if self.session_id is not None and self.session_id != request.session_id:
            raise MalformedMessage(f"Connection is already registered as {self.session_id}")
        session = await self.hub.coordinator.register(self.connection, request)
        self.session_id = session.session_id
        logger.info(
            "Client registered: %s (%s)",
            session.session_id, "coach" if session.is_sharer else "student",
        )

    async def _pair(self, message: Dict[str, Any]):
        if self.session_id is None:
            raise MalformedMessage("Register before pairing")
        code = protocol.parse_pair(message)
        await self.hub.coordinator.pair(self.session_id, code, connection=self.connection)

    async def _telemetry(self, message: Dict[str, Any]):
        if self.session_id is None:
            return  # Not registered, ignore telemetry
        await self.hub.dispatcher.forward(self.session_id, message, connection=self.connection)

    async def _send_error(self, exc: RelayError):
        await self.connection.send(protocol.error_message(exc))
