"""Protocol layer: command builders, JSON codec, inbound parsing and validation."""

from .codec import decode_message, encode_command
from .commands import Command, CommandName, build_command
from .parser import CcUpdate, DeviceResponse, Response, ResponseStatus, StateSnapshot
from .validation import ArgumentError
