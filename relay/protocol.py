"""Wire format: inbound frame parsing and outbound message builders."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from relay.errors import MalformedMessage, RelayError
from relay.models import Role

TELEMETRY_FIELDS = (
    "throttle",
    "brake",
    "steering",
    "speed",
    "gear",
    "driver_name",
    "session_time",
)


@dataclass
class RegisterRequest:
    session_id: str
    role: Role
    code: Optional[str] = None


def parse_frame(raw: str) -> Dict[str, Any]:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        raise MalformedMessage("Payload must be JSON")
    if not isinstance(message, dict):
        raise MalformedMessage("Payload must be a JSON object")
    if not isinstance(message.get("type"), str):
        raise MalformedMessage("Message type is required")
    return message


def parse_register(message: Dict[str, Any]) -> RegisterRequest:
    session_id = message.get("session_id")
    if not isinstance(session_id, str) or not session_id.strip():
        raise MalformedMessage("session_id is required")

    is_sharer = bool(message.get("is_sharer") or message.get("is_coach"))
    code = message.get("code")
    if code is not None and not isinstance(code, str):
        raise MalformedMessage("Pairing code must be a string")

    return RegisterRequest(
        session_id=session_id.strip(),
        role=Role.SHARER if is_sharer else Role.VIEWER,
        code=code or None,
    )


def parse_pair(message: Dict[str, Any]) -> str:
    code = message.get("code")
    if not isinstance(code, str) or not code.strip():
        raise MalformedMessage("Pairing code is required")
    return code


def pairing_code_message(code: str) -> dict:
    return {"type": "pairing_code", "code": code}


def paired_message(peer_id: str, peer_role: Role) -> dict:
    return {
        "type": "paired",
        "peer_id": peer_id,
        "peer_role": peer_role.value,
        "peer_name": peer_role.label,
    }


def unpaired_message(reason: str) -> dict:
    return {"type": "unpaired", "reason": reason}


def peer_disconnected_message(peer_id: str) -> dict:
    return {"type": "peer_disconnected", "peer_id": peer_id}


def telemetry_message(payload: Dict[str, Any]) -> dict:
    message = {"type": "telemetry"}
    for field in TELEMETRY_FIELDS:
        if field in payload:
            message[field] = payload[field]
    return message


def error_message(exc: RelayError) -> dict:
    return {"type": "error", "code": exc.code, "message": exc.message}
