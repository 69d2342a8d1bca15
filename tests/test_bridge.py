"""Tests for command dispatch and inbound state handling."""

import asyncio
import json

import pytest

from mgb_mcp.bridge import NOT_CONNECTED, STATE_UNAVAILABLE, Bridge
from mgb_mcp.protocol.commands import build_toggle_play
from mgb_mcp.protocol.validation import ArgumentError

URL = "ws://127.0.0.1:8765"

SNAPSHOT = {
    "type": "state",
    "is_playing": False,
    "bpm": 120,
    "current_step": 0,
    "sequence": [[False] * 4],
    "note_values": [[60] * 4],
    "midi_output": "",
    "midi_input": "",
    "midi_clock_enabled": False,
    "cc_values": {},
}


async def _connected_bridge(connector, wait_until) -> Bridge:
    """Start a bridge and wait until the initial get_state is written."""
    bridge = Bridge(URL, connector=connector, reconnect_delay=lambda: 1)
    await bridge.start()
    await wait_until(lambda: bridge.connected and connector.sockets and connector.latest.sent)
    return bridge


@pytest.mark.asyncio
async def test_send_while_disconnected_does_no_io(connector):
    bridge = Bridge(URL, connector=connector)
    response = await bridge.send(build_toggle_play())

    assert response.to_dict() == {"status": "error", "message": NOT_CONNECTED}
    assert NOT_CONNECTED.startswith("Not connected")
    assert connector.urls == []


@pytest.mark.asyncio
async def test_send_during_reconnect_gap_does_no_io(connector, wait_until):
    """After the socket drops, sends fail fast until the reconnect opens."""
    bridge = Bridge(URL, connector=connector, reconnect_delay=lambda: 60_000)
    await bridge.start()
    await wait_until(lambda: bridge.connected and connector.sockets and connector.latest.sent)
    socket = connector.latest
    sent_before = list(socket.sent)

    socket.drop()
    await wait_until(lambda: not bridge.connected)

    response = await bridge.toggle_play()

    assert response.to_dict() == {"status": "error", "message": NOT_CONNECTED}
    assert socket.sent == sent_before
    assert bridge.status()["reconnect_pending"] is True
    assert len(connector.urls) == 1
    await bridge.stop()


@pytest.mark.asyncio
async def test_open_requests_initial_state(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    assert connector.latest.sent_payloads[0] == {"command": "get_state"}
    await bridge.stop()


@pytest.mark.asyncio
async def test_toggle_step_returns_optimistic_success(connector, wait_until):
    """Success comes back without any echo from the sequencer."""
    bridge = await _connected_bridge(connector, wait_until)

    response = await bridge.toggle_step(row=0, col=3)

    assert response.to_dict() == {"status": "success", "data": {"command": "toggle_step"}}
    assert connector.latest.sent_payloads[-1] == {"command": "toggle_step", "row": 0, "col": 3}
    assert bridge.cache.state is None
    await bridge.stop()


@pytest.mark.asyncio
async def test_write_failure_becomes_error_response(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    connector.latest.send_error = OSError("broken pipe")

    response = await bridge.toggle_play()

    assert response.to_dict() == {
        "status": "error",
        "message": "Error sending command: broken pipe",
    }
    await bridge.stop()


@pytest.mark.asyncio
async def test_invalid_arguments_short_circuit(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    sent_before = len(connector.latest.sent)

    with pytest.raises(ArgumentError):
        await bridge.set_bpm(301)
    with pytest.raises(ArgumentError):
        await bridge.set_note(0, 0, 64, divide=5)
    with pytest.raises(ArgumentError):
        await bridge.toggle_midi_clock("yes")

    assert len(connector.latest.sent) == sent_before
    await bridge.stop()


@pytest.mark.asyncio
async def test_invalid_arguments_checked_before_connection(connector):
    bridge = Bridge(URL, connector=connector)
    with pytest.raises(ArgumentError):
        await bridge.set_bpm(59)


@pytest.mark.asyncio
async def test_batch_update_all_or_nothing(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    sent_before = len(connector.latest.sent)
    good = {"type": "sequence_row", "row": 0, "states": [True, False, True, False]}
    bad = {"type": "note", "row": 0, "col": 1, "note": -1}

    with pytest.raises(ArgumentError, match="entry 1"):
        await bridge.batch_update([good, bad])
    with pytest.raises(ArgumentError, match="must be a list"):
        await bridge.batch_update("sequence")
    assert len(connector.latest.sent) == sent_before

    response = await bridge.batch_update([good])
    assert response.ok
    assert connector.latest.sent_payloads[-1] == {"command": "batch_update", "updates": [good]}
    await bridge.stop()


@pytest.mark.asyncio
async def test_get_midi_ports_uses_wire_name(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    response = await bridge.get_midi_ports()
    assert response.data == {"command": "get_available_ports"}
    assert connector.latest.sent_payloads[-1] == {"command": "get_available_ports"}
    await bridge.stop()


@pytest.mark.asyncio
async def test_update_cc_acknowledges_before_push(connector, wait_until):
    """The ack is immediate; the cache changes only when the push arrives."""
    bridge = await _connected_bridge(connector, wait_until)
    socket = connector.latest
    socket.push(SNAPSHOT)
    await wait_until(lambda: bridge.cache.has_state)

    response = await bridge.update_cc(track="PU1", cc="cc1", value=80)

    assert response.ok
    assert response.data["command"] == "update_cc"
    assert bridge.cache.state.cc_values == {}

    await wait_until(lambda: socket.sent_payloads[-1]["command"] == "update_cc")
    assert socket.sent_payloads[-1] == {
        "command": "update_cc", "track": "PU1", "cc": "cc1", "value": 80,
    }

    socket.push({"type": "cc_update", "track": "PU1", "cc": "cc1", "value": 80})
    await wait_until(lambda: bridge.cache.state.cc_values.get("PU1"))
    assert bridge.cache.state.cc_values == {"PU1": {"cc1": 80}}
    await bridge.stop()


@pytest.mark.asyncio
async def test_update_cc_acknowledges_even_when_disconnected(connector):
    bridge = Bridge(URL, connector=connector)
    response = await bridge.update_cc("WAV", 7, 100)
    assert response.ok
    assert "WAV 7 = 100" in response.message
    await asyncio.sleep(0.01)
    assert connector.urls == []


@pytest.mark.asyncio
async def test_update_synth_param_sends_update_cc(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    socket = connector.latest

    response = await bridge.update_synth_param("POLY", "cc74", 20)

    assert response.ok
    await wait_until(lambda: socket.sent_payloads[-1]["command"] == "update_cc")
    assert socket.sent_payloads[-1]["cc"] == "cc74"
    await bridge.stop()


def test_inbound_messages_update_cache():
    bridge = Bridge(URL)
    bridge.handle_message(json.dumps({"type": "cc_update", "track": "PU1", "cc": 5, "value": 10}))
    assert bridge.cache.state is None

    bridge.handle_message(json.dumps(SNAPSHOT))
    bridge.handle_message(json.dumps({"type": "cc_update", "track": "PU1", "cc": 5, "value": 10}))
    bridge.handle_message(json.dumps({"type": "cc_update", "track": "PU1", "cc": "cc5", "value": 10}))
    assert bridge.cache.state.cc_values == {"PU1": {"cc5": 10}}

    bridge.handle_message("garbage")
    bridge.handle_message('{"type": "cc_update", "track": "PU1", "cc": 5, "value": NaN}')
    bridge.handle_message('{"type": "cc_update", "track": "PU1", "cc": Infinity, "value": 1}')
    assert bridge.cache.state.cc_values == {"PU1": {"cc5": 10}}


def test_device_error_is_recorded():
    bridge = Bridge(URL)
    bridge.handle_message('{"type": "response", "status": "success", "data": {"bpm": 120}}')
    assert bridge.last_device_error is None

    bridge.handle_message('{"type": "response", "status": "error", "message": "unknown preset"}')
    assert bridge.last_device_error == "unknown preset"
    assert bridge.status()["last_device_error"] == "unknown preset"


@pytest.mark.asyncio
async def test_state_document_without_connection(connector):
    bridge = Bridge(URL, connector=connector)
    document = await bridge.state_document()

    assert document["_error"] == NOT_CONNECTED
    assert document["bpm"] == 120
    assert document["is_playing"] is False
    assert document["cc_values"] == {}


@pytest.mark.asyncio
async def test_state_document_before_first_snapshot(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    sent_before = len(connector.latest.sent)

    document = await bridge.state_document()

    assert document["_error"] == STATE_UNAVAILABLE
    assert connector.latest.sent_payloads[sent_before:] == [{"command": "get_state"}]
    await bridge.stop()


@pytest.mark.asyncio
async def test_state_document_from_cache(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    connector.latest.push(SNAPSHOT)
    await wait_until(lambda: bridge.cache.has_state)

    document = await bridge.state_document()

    assert "_error" not in document
    assert document["note_values"] == [[60] * 4]
    await bridge.stop()


@pytest.mark.asyncio
async def test_status_reports_connection(connector, wait_until):
    bridge = await _connected_bridge(connector, wait_until)
    status = bridge.status()
    assert status["connected"] is True
    assert status["state"] == "connected"
    assert status["url"] == URL
    assert status["has_state"] is False
    await bridge.stop()
    assert bridge.status()["connected"] is False
