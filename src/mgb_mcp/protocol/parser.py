"""Parsing of inbound sequencer messages.

Inbound messages carry a ``type`` discriminator:

- ``state``: full snapshot of the sequencer
- ``response``: ``{status, data?, message?}``, not tied to any request
- ``cc_update``: unsolicited CC change for one track
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..models.state import DeviceState


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class StateSnapshot:
    """Parsed ``state`` message."""

    state: DeviceState


@dataclass
class DeviceResponse:
    """Parsed ``response`` message."""

    status: ResponseStatus
    data: dict[str, Any] | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.SUCCESS


@dataclass
class CcUpdate:
    """Parsed ``cc_update`` push."""

    track: str
    cc: str | int
    value: int


@dataclass
class Response:
    """Result handed back to the caller of a bridge operation."""

    status: ResponseStatus
    data: dict[str, Any] | None = field(default=None)
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.SUCCESS

    @classmethod
    def success(cls, data: dict[str, Any] | None = None, message: str | None = None) -> Response:
        return cls(ResponseStatus.SUCCESS, data, message)

    @classmethod
    def error(cls, message: str) -> Response:
        return cls(ResponseStatus.ERROR, message=message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value}
        if self.data is not None:
            result["data"] = self.data
        if self.message is not None:
            result["message"] = self.message
        return result


class MalformedMessage(ValueError):
    """Raised when an inbound payload does not match its declared shape."""


def parse_state(payload: dict[str, Any]) -> StateSnapshot:
    try:
        return StateSnapshot(state=DeviceState.from_dict(payload))
    except (AttributeError, TypeError, ValueError) as e:
        raise MalformedMessage(f"bad state snapshot: {e}") from e


def parse_device_response(payload: dict[str, Any]) -> DeviceResponse:
    try:
        status = ResponseStatus(payload.get("status"))
    except ValueError as e:
        raise MalformedMessage(f"bad response status {payload.get('status')!r}") from e
    data = payload.get("data")
    if data is not None and not isinstance(data, dict):
        data = {"value": data}
    message = payload.get("message")
    return DeviceResponse(
        status=status,
        data=data,
        message=str(message) if message is not None else None,
    )


def parse_cc_update(payload: dict[str, Any]) -> CcUpdate:
    track = payload.get("track")
    cc = payload.get("cc")
    value = payload.get("value")
    if not isinstance(track, str):
        raise MalformedMessage(f"cc_update without track: {payload!r}")
    if isinstance(cc, bool) or not isinstance(cc, (str, int, float)):
        raise MalformedMessage(f"cc_update with bad cc {cc!r}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessage(f"cc_update with bad value {value!r}")
    if isinstance(cc, float):
        if not cc.is_integer():
            raise MalformedMessage(f"cc_update with bad cc {cc!r}")
        cc = int(cc)
    if isinstance(value, float) and not value.is_integer():
        raise MalformedMessage(f"cc_update with bad value {value!r}")
    return CcUpdate(track=track, cc=cc, value=int(value))


PARSERS = {
    "state": parse_state,
    "response": parse_device_response,
    "cc_update": parse_cc_update,
}


def parse_message(payload: Any) -> StateSnapshot | DeviceResponse | CcUpdate:
    """Dispatch a decoded JSON object to the parser for its ``type``.

    Raises:
        MalformedMessage: If the payload is not an object, has an unknown
            type, or does not match that type's shape.
    """
    if not isinstance(payload, dict):
        raise MalformedMessage(f"expected a JSON object, got {type(payload).__name__}")
    kind = payload.get("type")
    parser = PARSERS.get(kind) if isinstance(kind, str) else None
    if parser is None:
        raise MalformedMessage(f"unknown message type {payload.get('type')!r}")
    return parser(payload)
