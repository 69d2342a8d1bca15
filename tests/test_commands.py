"""Tests for command builders and encoding."""

import json

from mgb_mcp.models.batch import Attribute, BatchItem, Granularity
from mgb_mcp.protocol.codec import encode_command
from mgb_mcp.protocol.commands import (
    CommandName,
    build_batch_update,
    build_change_midi_input,
    build_get_available_ports,
    build_get_state,
    build_set_bpm,
    build_set_note,
    build_toggle_midi_clock,
    build_toggle_play,
    build_toggle_step,
    build_update_cc,
)


def _decode(command) -> dict:
    return json.loads(encode_command(command))


def test_command_names():
    """Wire names match what the sequencer expects."""
    assert CommandName.GET_STATE.value == "get_state"
    assert CommandName.GET_AVAILABLE_PORTS.value == "get_available_ports"
    assert CommandName.UPDATE_CC.value == "update_cc"


def test_no_argument_commands():
    assert _decode(build_get_state()) == {"command": "get_state"}
    assert _decode(build_toggle_play()) == {"command": "toggle_play"}
    assert _decode(build_get_available_ports()) == {"command": "get_available_ports"}


def test_set_bpm_payload_is_flat():
    assert _decode(build_set_bpm(140)) == {"command": "set_bpm", "bpm": 140}


def test_integral_floats_sent_as_ints():
    payload = _decode(build_toggle_step(1.0, 3.0))
    assert payload == {"command": "toggle_step", "row": 1, "col": 3}
    assert isinstance(payload["row"], int)


def test_set_note_divide_only_when_given():
    assert _decode(build_set_note(0, 1, 60)) == {
        "command": "set_note", "row": 0, "col": 1, "note": 60,
    }
    assert _decode(build_set_note(0, 1, 60, 3))["divide"] == 3


def test_port_and_clock_commands():
    assert _decode(build_change_midi_input("USB MIDI")) == {
        "command": "change_midi_input", "port": "USB MIDI",
    }
    assert _decode(build_toggle_midi_clock(True)) == {
        "command": "toggle_midi_clock", "enabled": True,
    }


def test_update_cc_keeps_cc_form():
    assert _decode(build_update_cc("PU1", "cc1", 80))["cc"] == "cc1"
    assert _decode(build_update_cc("WAV", 7, 10))["cc"] == 7


def test_batch_update_serializes_items():
    items = [
        BatchItem(Granularity.CELL, Attribute.STATE, True, row=0, col=2),
        BatchItem(Granularity.ROW, Attribute.DIVIDE, [1, 2], row=3),
        BatchItem(Granularity.GRID, Attribute.NOTE, [[60, 61]]),
    ]
    assert _decode(build_batch_update(items)) == {
        "command": "batch_update",
        "updates": [
            {"type": "sequence", "row": 0, "col": 2, "state": True},
            {"type": "divide_row", "row": 3, "divides": [1, 2]},
            {"type": "note_all", "notes": [[60, 61]]},
        ],
    }
