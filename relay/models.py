from enum import Enum
from typing import Optional

from relay.connection import Connection


class Role(str, Enum):
    SHARER = "sharer"
    VIEWER = "viewer"

    @property
    def label(self) -> str:
        return "Coach" if self is Role.SHARER else "Student"


class Session:
    def __init__(self, session_id: str, role: Role, connection: Connection):
        self.session_id = session_id
        self.role = role
        self.connection = connection
        self.code: Optional[str] = None
        self.paired_with: Optional[str] = None
        self.disconnected_at: Optional[float] = None

    @property
    def is_live(self) -> bool:
        return self.connection.is_open

    @property
    def is_sharer(self) -> bool:
        return self.role is Role.SHARER

    def __repr__(self):
        return (
            f"Session({self.session_id!r}, {self.role.value}, code={self.code!r}, "
            f"paired_with={self.paired_with!r}, live={self.is_live})"
        )
