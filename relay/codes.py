import logging
import random
from typing import Dict, Optional

from relay.errors import CodeGenerationExhausted, CodeInUse, MalformedMessage

logger = logging.getLogger(__name__)

# No confusing chars (0/O, 1/I)
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_GROUP_LENGTH = 3
MAX_CODE_LENGTH = 32


def normalize_code(code) -> str:
    if not isinstance(code, str):
        raise MalformedMessage("Pairing code must be a string")
    normalized = code.strip().upper()
    if not normalized:
        raise MalformedMessage("Pairing code is required")
    if len(normalized) > MAX_CODE_LENGTH:
        raise MalformedMessage("Pairing code is too long")
    return normalized


class CodeRegistry:
    """Pairing code -> owning sharer session_id."""

    def __init__(self, rng: random.Random = None, max_attempts: int = 100):
        self.codes: Dict[str, str] = {}
        self.rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts

    def generate_code(self) -> str:
        groups = [
            "".join(self.rng.choice(CODE_ALPHABET) for _ in range(CODE_GROUP_LENGTH))
            for _ in range(2)
        ]
        return "-".join(groups)

    def generate_unique(self, session_id: str) -> str:
        """Draw codes until a free one turns up, then claim it for ``session_id``."""
        for _ in range(self.max_attempts):
            code = self.generate_code()
            if code not in self.codes:
                self.codes[code] = session_id
                return code
        logger.error(
            "Could not generate unique pairing code after %d attempts (%d codes active)",
            self.max_attempts, len(self.codes),
        )
        raise CodeGenerationExhausted()

    def claim(self, code: str, session_id: str) -> str:
        code = normalize_code(code)
        owner = self.codes.get(code)
        if owner is not None and owner != session_id:
            raise CodeInUse(f"Pairing code {code} is already in use")
        self.codes[code] = session_id
        return code

    def resolve(self, code: str) -> Optional[str]:
        return self.codes.get(normalize_code(code))

    def release(self, code: str, session_id: str = None) -> bool:
        """Drop ``code``. With ``session_id`` given, only if that session still owns it."""
        code = normalize_code(code)
        owner = self.codes.get(code)
        if owner is None or (session_id is not None and owner != session_id):
            return False
        del self.codes[code]
        return True

    def __contains__(self, code) -> bool:
        try:
            return normalize_code(code) in self.codes
        except MalformedMessage:
            return False

    def __len__(self):
        return len(self.codes)
