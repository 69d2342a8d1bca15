"""JSON text encoding of outbound commands and decoding of inbound messages."""

from __future__ import annotations

import json
import logging

from .commands import Command
from .parser import CcUpdate, DeviceResponse, MalformedMessage, StateSnapshot, parse_message

logger = logging.getLogger(__name__)

InboundMessage = StateSnapshot | DeviceResponse | CcUpdate


def encode_command(command: Command) -> str:
    """Serialize a command as a flat JSON object."""
    return json.dumps(command.to_payload())


def decode_message(raw: str | bytes) -> InboundMessage | None:
    """Decode one inbound WebSocket message.

    Malformed payloads are logged and dropped: the return value is None
    and nothing is raised.
    """
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Dropping undecodable message: %s", e)
        return None

    try:
        return parse_message(payload)
    except (MalformedMessage, ValueError, OverflowError) as e:
        logger.warning("Dropping malformed message: %s", e)
        return None
