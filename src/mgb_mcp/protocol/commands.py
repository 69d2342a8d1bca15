"""Command names and high-level command builders.

Each command is a flat JSON object ``{"command": <name>, ...fields}``.
Builders take already-validated arguments and carry exactly the fields
the sequencer expects for that command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..models.batch import BatchItem


class CommandName(str, Enum):
    """Wire names of the commands understood by the sequencer."""

    GET_STATE = "get_state"
    TOGGLE_PLAY = "toggle_play"
    SET_BPM = "set_bpm"
    TOGGLE_STEP = "toggle_step"
    SET_NOTE = "set_note"
    SEND_PRESET = "send_preset"
    BATCH_UPDATE = "batch_update"
    GET_AVAILABLE_PORTS = "get_available_ports"
    CHANGE_MIDI_OUTPUT = "change_midi_output"
    CHANGE_MIDI_INPUT = "change_midi_input"
    TOGGLE_MIDI_CLOCK = "toggle_midi_clock"
    UPDATE_CC = "update_cc"


@dataclass(frozen=True)
class Command:
    """An outbound command: its name plus the fields that go with it."""

    name: CommandName
    fields: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"command": self.name.value, **self.fields}


def build_command(name: CommandName, **fields: Any) -> Command:
    return Command(name, fields)


def build_get_state() -> Command:
    """Ask the sequencer to push a full state snapshot."""
    return build_command(CommandName.GET_STATE)


def build_toggle_play() -> Command:
    return build_command(CommandName.TOGGLE_PLAY)


def build_set_bpm(bpm: int) -> Command:
    return build_command(CommandName.SET_BPM, bpm=int(bpm))


def build_toggle_step(row: int, col: int) -> Command:
    return build_command(CommandName.TOGGLE_STEP, row=int(row), col=int(col))


def build_set_note(row: int, col: int, note: int, divide: int | None = None) -> Command:
    """Build a set_note command; ``divide`` is only sent when given."""
    fields: dict[str, Any] = {"row": int(row), "col": int(col), "note": int(note)}
    if divide is not None:
        fields["divide"] = int(divide)
    return Command(CommandName.SET_NOTE, fields)


def build_send_preset(preset: str) -> Command:
    return build_command(CommandName.SEND_PRESET, preset=preset)


def build_batch_update(items: list[BatchItem]) -> Command:
    return build_command(
        CommandName.BATCH_UPDATE, updates=[item.to_dict() for item in items]
    )


def build_get_available_ports() -> Command:
    return build_command(CommandName.GET_AVAILABLE_PORTS)


def build_change_midi_output(port: str) -> Command:
    return build_command(CommandName.CHANGE_MIDI_OUTPUT, port=port)


def build_change_midi_input(port: str) -> Command:
    return build_command(CommandName.CHANGE_MIDI_INPUT, port=port)


def build_toggle_midi_clock(enabled: bool) -> Command:
    return build_command(CommandName.TOGGLE_MIDI_CLOCK, enabled=bool(enabled))


def build_update_cc(track: str, cc: str | int, value: int) -> Command:
    """Build an update_cc command.

    ``cc`` is passed through in whichever form the caller used; the
    sequencer accepts both ``"cc5"`` and ``5``.
    """
    if not isinstance(cc, str):
        cc = int(cc)
    return build_command(CommandName.UPDATE_CC, track=track, cc=cc, value=int(value))
