"""Errors surfaced to relay clients as ``error`` messages."""


class RelayError(Exception):
    """Base class for recoverable, per-connection protocol errors."""

    code = "relay_error"
    default_message = "Relay error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedMessage(RelayError):
    code = "malformed_message"
    default_message = "Malformed message"


class CodeNotFound(RelayError):
    code = "code_not_found"
    default_message = "Invalid pairing code"


class PeerOffline(RelayError):
    code = "peer_offline"
    default_message = "Coach is not connected"


class CodeInUse(RelayError):
    code = "code_in_use"
    default_message = "Pairing code is already in use"


class SharerBusy(RelayError):
    code = "sharer_busy"
    default_message = "Coach is already paired with another student"


class InternalError(RelayError):
    code = "internal_error"
    default_message = "Internal server error"


class CodeGenerationExhausted(InternalError):
    # Registry pressure, not user error. Clients only see a retry hint.
    default_message = "Could not generate unique pairing code, try again"
