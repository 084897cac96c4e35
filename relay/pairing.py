"""Registration, pairing and teardown state machine.

Every mutation of the session and code registries happens while holding
``PairingCoordinator.lock``. Notifications produced by a mutation are
collected in an outbox and sent after the lock is released, so a slow peer
socket never stalls other connections.
"""

import asyncio
import logging
import time
from typing import List, Optional, Tuple

from relay import protocol
from relay.codes import CodeRegistry, normalize_code
from relay.config import CodeMode, ReconnectPolicy, Settings, SharerReconnectCode
from relay.connection import Connection
from relay.errors import CodeNotFound, MalformedMessage, PeerOffline, RelayError, SharerBusy
from relay.models import Role, Session
from relay.protocol import RegisterRequest
from relay.session_manager import SessionRegistry

logger = logging.getLogger(__name__)

Outbox = List[Tuple[Connection, dict]]


class PairingCoordinator:
    def __init__(
        self,
        sessions: SessionRegistry,
        codes: CodeRegistry,
        settings: Settings,
        clock=time.monotonic,
    ):
        self.sessions = sessions
        self.codes = codes
        self.settings = settings
        self.clock = clock
        self.lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def register(self, connection: Connection, request: RegisterRequest) -> Session:
        outbox: Outbox = []
        async with self.lock:
            session = self._register(connection, request, outbox)
        await self.deliver(outbox)
        return session

    async def pair(self, viewer_id: str, code: str, connection: Optional[Connection] = None) -> Session:
        """Explicit two-step pairing. Returns the sharer session."""
        if not self.settings.explicit_pairing:
            raise MalformedMessage("Send the pairing code with register")
        outbox: Outbox = []
        async with self.lock:
            viewer = self.sessions.get(viewer_id)
            if viewer is None:
                raise MalformedMessage("Register before pairing")
            if connection is not None and viewer.connection is not connection:
                raise MalformedMessage("Connection no longer owns this session")
            sharer = self._pair(viewer, code, outbox)
        await self.deliver(outbox)
        return sharer

    async def disconnect(self, session_id: str, connection: Connection):
        """React to ``connection`` closing according to the reconnect policy."""
        outbox: Outbox = []
        async with self.lock:
            session = self.sessions.get(session_id)
            if session is None or session.connection is not connection:
                # Superseded by a newer connection for the same session
                logger.debug("Ignoring close of stale connection %s for %s", connection.id, session_id)
                return

            if self.settings.RECONNECT_POLICY is ReconnectPolicy.IMMEDIATE:
                self.teardown_locked(session, outbox, notify=True, reason="peer_disconnected")
            else:
                session.disconnected_at = self.clock()
                peer = self._linked_peer(session)
                if peer is not None and peer.is_live:
                    outbox.append((peer.connection, protocol.peer_disconnected_message(session_id)))
                logger.info("Session %s disconnected, holding for reconnection", session_id)
        await self.deliver(outbox)

    async def teardown(self, session_id: str, notify: bool = True, reason: str = "peer_disconnected") -> bool:
        outbox: Outbox = []
        async with self.lock:
            session = self.sessions.get(session_id)
            if session is None:
                return False
            self.teardown_locked(session, outbox, notify=notify, reason=reason)
        await self.deliver(outbox)
        return True

    def teardown_locked(self, session: Session, outbox: Outbox, notify: bool, reason: str):
        """Unwind pairing, code and session record. Caller must hold ``lock``."""
        peer = self._linked_peer(session)
        if peer is not None:
            peer.paired_with = None
            if notify and peer.is_live:
                outbox.append((peer.connection, protocol.unpaired_message(reason)))
        session.paired_with = None

        if session.code is not None:
            self.codes.release(session.code, session.session_id)
            logger.info("Released pairing code %s from %s", session.code, session.session_id)
            session.code = None

        self.sessions.remove(session.session_id)
        logger.info("Session removed: %s", session.session_id)

    async def deliver(self, outbox: Outbox):
        for connection, message in outbox:
            await connection.send(message)

    # ------------------------------------------------------------------
    # Locked internals
    # ------------------------------------------------------------------

    def _register(self, connection: Connection, request: RegisterRequest, outbox: Outbox) -> Session:
        existing = self.sessions.get(request.session_id)
        if existing is not None and existing.role is not request.role:
            raise MalformedMessage(
                f"Session {request.session_id} is already registered as {existing.role.value}"
            )
        if existing is not None and existing.connection is not connection and existing.is_live:
            logger.info("Session %s registered from a new connection, replacing old one", request.session_id)

        if request.role is Role.SHARER:
            code = self._assign_code(request, existing)
            session = self.sessions.upsert(request.session_id, request.role, connection)
            session.code = code
            outbox.append((connection, protocol.pairing_code_message(code)))
            logger.info("Assigned pairing code %s to coach %s", code, session.session_id)
            if existing is not None:
                self._resume(session, outbox)
            return session

        session = self.sessions.upsert(request.session_id, request.role, connection)
        if request.code and self.settings.eager_pairing:
            try:
                self._pair(session, request.code, outbox)
            except RelayError as exc:
                # Registration stands; the viewer can retry with another code
                logger.warning("Pairing during register failed for %s: %s", session.session_id, exc.message)
                outbox.append((connection, protocol.error_message(exc)))
        elif existing is not None:
            if request.code:
                logger.debug("Ignoring code in register from %s (two-step flow)", session.session_id)
            self._resume(session, outbox)
        return session

    def _assign_code(self, request: RegisterRequest, existing: Optional[Session]) -> str:
        session_id = request.session_id
        held = existing.code if existing is not None else None

        if self.settings.CODE_MODE is CodeMode.DECLARED:
            if not request.code:
                if held is None:
                    raise MalformedMessage("Pairing code is required")
                return held
            code = normalize_code(request.code)
            if code == held:
                return held
            # CodeInUse leaves the previously held code untouched
            self.codes.claim(code, session_id)
            if held is not None:
                self.codes.release(held, session_id)
            return code

        if held is not None and self.settings.SHARER_RECONNECT_CODE is SharerReconnectCode.KEEP:
            if self.codes.resolve(held) == session_id:
                return held
        if held is not None:
            self.codes.release(held, session_id)
            existing.code = None
        return self.codes.generate_unique(session_id)

    def _pair(self, viewer: Session, code: str, outbox: Outbox) -> Session:
        if viewer.role is not Role.VIEWER:
            raise MalformedMessage("Only students can pair with a code")

        code = normalize_code(code)
        sharer_id = self.codes.resolve(code)
        if sharer_id is None:
            raise CodeNotFound()
        sharer = self.sessions.get(sharer_id)
        if sharer is None or not sharer.is_live:
            raise PeerOffline()

        if sharer.paired_with is not None and sharer.paired_with != viewer.session_id:
            current = self.sessions.get(sharer.paired_with)
            if current is not None and current.is_live and current.paired_with == sharer_id:
                raise SharerBusy()
            # Displace a stale viewer that never came back
            if current is not None and current.paired_with == sharer_id:
                current.paired_with = None
            sharer.paired_with = None

        if viewer.paired_with is not None and viewer.paired_with != sharer_id:
            previous = self._linked_peer(viewer)
            if previous is not None:
                previous.paired_with = None
                if previous.is_live:
                    outbox.append((previous.connection, protocol.unpaired_message("peer_left")))
            viewer.paired_with = None

        viewer.paired_with = sharer_id
        sharer.paired_with = viewer.session_id
        self._notify_paired(viewer, sharer, outbox)
        logger.info("Paired student %s with coach %s", viewer.session_id, sharer_id)
        return sharer

    def _resume(self, session: Session, outbox: Outbox):
        """Re-announce a preserved pairing after reconnection."""
        if session.paired_with is None:
            return
        peer = self._linked_peer(session)
        if peer is None:
            session.paired_with = None
            return
        if peer.is_live:
            self._notify_paired(session, peer, outbox)
            logger.info("Resumed pairing %s <-> %s", session.session_id, peer.session_id)

    def _linked_peer(self, session: Session) -> Optional[Session]:
        peer = self.sessions.peer_of(session)
        if peer is not None and peer.paired_with == session.session_id:
            return peer
        return None

    def _notify_paired(self, a: Session, b: Session, outbox: Outbox):
        outbox.append((a.connection, protocol.paired_message(b.session_id, b.role)))
        outbox.append((b.connection, protocol.paired_message(a.session_id, a.role)))
