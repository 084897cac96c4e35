"""Transport handles. Everything above this module only asks ``is_open`` and ``send``."""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class Connection(ABC):
    """One duplex, message-oriented client connection."""

    def __init__(self):
        self.id = uuid.uuid4().hex[:8]
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def mark_closed(self):
        self._closed = True

    @abstractmethod
    async def send(self, message: dict) -> bool:
        """Best-effort send. Returns False when the message could not be delivered."""


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket):
        super().__init__()
        self.websocket = websocket
        # Serializes sends from different connection tasks onto this socket
        self._send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: dict) -> bool:
        if not self.is_open:
            return False
        async with self._send_lock:
            try:
                await self.websocket.send_json(message)
                return True
            except Exception as e:
                logger.warning("Send failed on connection %s: %s", self.id, e)
                self.mark_closed()
                return False

    async def receive_text(self) -> Optional[str]:
        """Next text frame, or None for a binary frame."""
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            self.mark_closed()
            raise WebSocketDisconnect(message.get("code", 1000))
        return message.get("text")
