import logging
from typing import Dict, Iterator, Optional

from relay.connection import Connection
from relay.models import Role, Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Authoritative session_id -> Session store.

    Methods never await, so each call is atomic on the event loop. Composite
    operations are serialized by the PairingCoordinator lock.
    """

    def __init__(self):
        self.sessions: Dict[str, Session] = {}

    def upsert(self, session_id: str, role: Role, connection: Connection) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            session = Session(session_id, role, connection)
            self.sessions[session_id] = session
            logger.info("Session created: %s (%s)", session_id, role.value)
            return session

        # Reconnection: swap the handle, keep role, code and pairing
        session.connection = connection
        session.disconnected_at = None
        logger.info("Session reconnected: %s (%s)", session_id, session.role.value)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        return self.sessions.pop(session_id, None)

    def peer_of(self, session: Session) -> Optional[Session]:
        if session.paired_with is None:
            return None
        return self.sessions.get(session.paired_with)

    def pairing_count(self) -> int:
        count = 0
        for s in self.sessions.values():
            if not s.is_sharer or not s.is_live:
                continue
            peer = self.peer_of(s)
            if peer is not None and peer.paired_with == s.session_id and peer.is_live:
                count += 1
        return count

    def __len__(self):
        return len(self.sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self.sessions.values()))
