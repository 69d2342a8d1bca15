"""MCP server entry point for the mGB MIDI sequencer.

Exposes the sequencer bridge as MCP tools and resources using the
official Python MCP SDK with stdio transport. The bridge is created in the
server lifespan and connects to the sequencer over WebSocket in the
background; tools work against whatever connection exists at call time.
"""

from __future__ import annotations

import functools
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from mcp.server.fastmcp import FastMCP

from .bridge import Bridge
from .config import load_environment, log_level, resolve_websocket_url
from .models.state import TRACKS
from .protocol.validation import ArgumentError

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Lifespan state shared by all requests."""

    bridge: Bridge


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Connect to the sequencer on startup and disconnect on shutdown."""
    bridge = Bridge(resolve_websocket_url())
    await bridge.start()
    try:
        yield AppContext(bridge=bridge)
    finally:
        logger.info("Shutting down mGB bridge")
        await bridge.stop()


mcp = FastMCP(
    "mgb-mcp",
    instructions="MCP server for the mGB MIDI sequencer",
    lifespan=server_lifespan,
)


def _get_bridge() -> Bridge:
    """Get the bridge created by the server lifespan."""
    return mcp.get_context().request_context.lifespan_context.bridge


def _tool_handler(action: str):
    """Wrap a tool so failures come back as error responses.

    ArgumentError becomes ``invalid_params``; anything else is logged and
    reported as ``internal_error`` without the traceback.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ArgumentError as e:
                return {"status": "error", "error": "invalid_params", "message": str(e)}
            except Exception as e:
                logger.exception("Error %s", action)
                return {
                    "status": "error",
                    "error": "internal_error",
                    "message": f"Error calling mGB sequencer: {e}",
                }
        return wrapper
    return decorator


# ─── TRANSPORT TOOLS ─────────────────────────────────────────────────

@mcp.tool()
@_tool_handler("toggling playback")
async def toggle_play() -> dict[str, Any]:
    """Start or stop the sequencer playback."""
    response = await _get_bridge().toggle_play()
    return response.to_dict()


@mcp.tool()
@_tool_handler("setting BPM")
async def set_bpm(bpm: int) -> dict[str, Any]:
    """Set the tempo of the sequencer.

    Args:
        bpm: Tempo in beats per minute (60-300).
    """
    response = await _get_bridge().set_bpm(bpm)
    return response.to_dict()


# ─── PATTERN TOOLS ───────────────────────────────────────────────────

@mcp.tool()
@_tool_handler("toggling step")
async def toggle_step(row: int, col: int) -> dict[str, Any]:
    """Toggle a step in the sequencer pattern on or off.

    Args:
        row: Row index (track).
        col: Column index (step).
    """
    response = await _get_bridge().toggle_step(row, col)
    return response.to_dict()


@mcp.tool()
@_tool_handler("setting note")
async def set_note(row: int, col: int, note: int, divide: int | None = None) -> dict[str, Any]:
    """Set the note value for a step in the sequencer.

    Args:
        row: Row index (track).
        col: Column index (step).
        note: MIDI note value (0-127).
        divide: Optional note division: 1=normal, 2=duplet, 3=triplet.
    """
    response = await _get_bridge().set_note(row, col, note, divide)
    return response.to_dict()


@mcp.tool()
@_tool_handler("sending preset")
async def send_preset(preset: str) -> dict[str, Any]:
    """Send a preset pattern to the sequencer.

    Args:
        preset: Preset name.
    """
    response = await _get_bridge().send_preset(preset)
    return response.to_dict()


@mcp.tool()
@_tool_handler("sending batch update")
async def batch_update(updates: list[dict[str, Any]]) -> dict[str, Any]:
    """Update sequencer patterns and notes in one command.

    Each entry has a ``type`` and the fields for that type:

    - ``sequence`` (row, col, state), ``sequence_row`` (row, states),
      ``sequence_all`` (states as a 2D list)
    - ``note`` (row, col, note), ``note_row`` (row, notes),
      ``note_all`` (notes as a 2D list); notes are 0-127
    - ``divide`` (row, col, divide), ``divide_row`` (row, divides),
      ``divide_all`` (divides as a 2D list); divides are 1, 2 or 3

    If any entry is invalid nothing is sent.

    Args:
        updates: List of update entries.
    """
    response = await _get_bridge().batch_update(updates)
    return response.to_dict()


# ─── MIDI TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
@_tool_handler("requesting MIDI ports")
async def get_midi_ports() -> dict[str, Any]:
    """Request the available MIDI input and output ports.

    The port list arrives from the sequencer asynchronously and is not
    part of this result.
    """
    response = await _get_bridge().get_midi_ports()
    return response.to_dict()


@mcp.tool()
@_tool_handler("changing MIDI output")
async def change_midi_output(port: str) -> dict[str, Any]:
    """Change the MIDI output port.

    Args:
        port: MIDI output port name.
    """
    response = await _get_bridge().change_midi_output(port)
    return response.to_dict()


@mcp.tool()
@_tool_handler("changing MIDI input")
async def change_midi_input(port: str) -> dict[str, Any]:
    """Change the MIDI input port.

    Args:
        port: MIDI input port name.
    """
    response = await _get_bridge().change_midi_input(port)
    return response.to_dict()


@mcp.tool()
@_tool_handler("toggling MIDI clock")
async def toggle_midi_clock(enabled: bool) -> dict[str, Any]:
    """Enable or disable MIDI clock transmission.

    Args:
        enabled: Whether to send MIDI clock.
    """
    response = await _get_bridge().toggle_midi_clock(enabled)
    return response.to_dict()


@mcp.tool()
@_tool_handler("updating CC")
async def update_cc(track: str, cc: str | int, value: int) -> dict[str, Any]:
    """Update a control change value for a track.

    NOTE: the sequencer does not answer this command. The result only
    confirms the update was handed off; read mgb://state to see whether
    it took effect.

    Args:
        track: Track name (PU1, PU2, WAV, NOISE, POLY).
        cc: CC name like 'cc1', or CC number 0-127.
        value: Parameter value (0-127).
    """
    response = await _get_bridge().update_cc(track, cc, value)
    return response.to_dict()


@mcp.tool()
@_tool_handler("updating synth parameter")
async def update_synth_param(track: str, param: str | int, value: int) -> dict[str, Any]:
    """Older name for update_cc, kept for existing clients.

    Args:
        track: Track name (PU1, PU2, WAV, NOISE, POLY).
        param: CC name like 'cc1', or CC number 0-127.
        value: Parameter value (0-127).
    """
    response = await _get_bridge().update_synth_param(track, param, value)
    return response.to_dict()


@mcp.tool()
@_tool_handler("refreshing state")
async def refresh_state() -> dict[str, Any]:
    """Ask the sequencer to push a fresh state snapshot."""
    response = await _get_bridge().refresh_state()
    return response.to_dict()


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource(
    "mgb://state",
    name="mGB MIDI Sequencer State",
    description="Current state of the mGB MIDI sequencer including patterns, BPM, and settings",
    mime_type="application/json",
)
async def resource_state() -> str:
    """Cached sequencer state, or a default document with an ``_error``."""
    document = await _get_bridge().state_document()
    return json.dumps(document, indent=2)


@mcp.resource(
    "mgb://status",
    name="mGB Bridge Status",
    description="Connection state of the bridge and the last error reported by the sequencer",
    mime_type="application/json",
)
def resource_status() -> str:
    return json.dumps(_get_bridge().status(), indent=2)


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def compose_pattern(style: str) -> str:
    """Guide the AI to program a pattern for a musical style.

    Args:
        style: Genre or mood, e.g. "chiptune arpeggio" or "driving techno".
    """
    return f"""Program a {style} pattern on the mGB sequencer.
Read mgb://state first to see the grid size, tempo and CC values.
Consider:
- Tempo that fits the style (set_bpm, 60-300)
- Which rows to use for each of the tracks {', '.join(TRACKS)}
- Note choices per step (0-127) and where duplets or triplets help (divide 2 or 3)
- CC tweaks per track with update_cc

Write the pattern in as few batch_update calls as possible,
preferring sequence_row/note_row entries over single cells."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    load_environment()
    logging.basicConfig(level=log_level())
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
