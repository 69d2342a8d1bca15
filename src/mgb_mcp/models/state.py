"""Device state model: the last snapshot pushed by the mGB sequencer.

Snapshot layout (``type: "state"`` message)::

    is_playing          bool
    bpm                 int, 60-300
    current_step        int
    sequence            bool[track][step]
    note_values         int[track][step], 0-127
    midi_output         str
    midi_input          str
    midi_clock_enabled  bool
    cc_values           {track: {"cc<N>": int}}
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

TRACKS = ("PU1", "PU2", "WAV", "NOISE", "POLY")

STATE_FIELDS = (
    "is_playing",
    "bpm",
    "current_step",
    "sequence",
    "note_values",
    "midi_output",
    "midi_input",
    "midi_clock_enabled",
    "cc_values",
)

DEFAULT_STATE_DOCUMENT: dict[str, Any] = {
    "is_playing": False,
    "bpm": 120,
    "current_step": 0,
    "sequence": [],
    "note_values": [],
    "midi_output": "",
    "midi_input": "",
    "midi_clock_enabled": False,
    "cc_values": {},
}


def normalize_cc_key(cc: str | int) -> str:
    """Return the ``"cc<N>"`` form of a CC identifier.

    Numbers become ``"cc<N>"``; strings are already in key form.
    """
    if isinstance(cc, str):
        return cc
    return f"cc{int(cc)}"


def grid_shape(grid: list[list[Any]]) -> tuple[int, int] | None:
    """Return ``(rows, cols)`` for a rectangular grid, or None if ragged."""
    if not grid:
        return (0, 0)
    width = len(grid[0])
    if any(len(row) != width for row in grid):
        return None
    return (len(grid), width)


def default_state_document(error: str) -> dict[str, Any]:
    """The placeholder document served when no snapshot is cached."""
    document = copy.deepcopy(DEFAULT_STATE_DOCUMENT)
    document["_error"] = error
    return document


@dataclass
class DeviceState:
    """Snapshot of the sequencer as last reported by the device."""

    is_playing: bool = False
    bpm: int = 120
    current_step: int = 0
    sequence: list[list[bool]] = field(default_factory=list)
    note_values: list[list[int]] = field(default_factory=list)
    midi_output: str = ""
    midi_input: str = ""
    midi_clock_enabled: bool = False
    cc_values: dict[str, dict[str, int]] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def set_cc(self, track: str, cc: str | int, value: int) -> str:
        """Store a CC value under its normalized key and return the key."""
        key = normalize_cc_key(cc)
        self.cc_values.setdefault(track, {})[key] = value
        return key

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "is_playing": self.is_playing,
            "bpm": self.bpm,
            "current_step": self.current_step,
            "sequence": [list(row) for row in self.sequence],
            "note_values": [list(row) for row in self.note_values],
            "midi_output": self.midi_output,
            "midi_input": self.midi_input,
            "midi_clock_enabled": self.midi_clock_enabled,
            "cc_values": {
                track: dict(values) for track, values in self.cc_values.items()
            },
        }
        data.update(copy.deepcopy(self.extra))
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeviceState:
        """Build a state from a snapshot payload.

        The ``type`` discriminator is dropped; unknown keys are kept in
        ``extra``. CC keys are normalized on the way in.

        Raises:
            ValueError: If the grids are ragged or differ in shape.
        """
        sequence = [list(row) for row in data.get("sequence") or []]
        note_values = [list(row) for row in data.get("note_values") or []]

        seq_shape = grid_shape(sequence)
        note_shape = grid_shape(note_values)
        if seq_shape is None or note_shape is None:
            raise ValueError("sequence and note_values must be rectangular")
        if sequence and note_values and seq_shape != note_shape:
            raise ValueError(
                f"sequence {seq_shape} and note_values {note_shape} differ in shape"
            )

        cc_values: dict[str, dict[str, int]] = {}
        for track, values in (data.get("cc_values") or {}).items():
            cc_values[track] = {
                normalize_cc_key(cc): value for cc, value in (values or {}).items()
            }

        extra = {
            key: copy.deepcopy(value)
            for key, value in data.items()
            if key not in STATE_FIELDS and key != "type"
        }

        return cls(
            is_playing=bool(data.get("is_playing", False)),
            bpm=data.get("bpm", 120),
            current_step=data.get("current_step", 0),
            sequence=sequence,
            note_values=note_values,
            midi_output=data.get("midi_output") or "",
            midi_input=data.get("midi_input") or "",
            midi_clock_enabled=bool(data.get("midi_clock_enabled", False)),
            cc_values=cc_values,
            extra=extra,
        )
