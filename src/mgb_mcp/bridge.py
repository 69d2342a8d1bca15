"""Command dispatch between MCP tools and the mGB sequencer.

Commands are sent optimistically: ``send`` reports success as soon as the
WebSocket write completes locally. Whatever the sequencer answers later
(responses, snapshots, CC pushes) arrives through ``handle_message`` and
is never matched back to the call that caused it, since the protocol has
no request ids.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .cache import StateCache
from .models.state import default_state_document
from .protocol.codec import decode_message, encode_command
from .protocol.commands import (
    Command,
    build_batch_update,
    build_change_midi_input,
    build_change_midi_output,
    build_get_available_ports,
    build_get_state,
    build_send_preset,
    build_set_bpm,
    build_set_note,
    build_toggle_midi_clock,
    build_toggle_play,
    build_toggle_step,
    build_update_cc,
)
from .protocol.parser import CcUpdate, DeviceResponse, Response, StateSnapshot
from .protocol.validation import ArgumentError, describe, parse_batch, require
from .transport.ws_connection import Connector, ConnectionManager, reconnect_delay_ms

logger = logging.getLogger(__name__)

DEVICE_NAME = "mGB MIDI sequencer"
NOT_CONNECTED = f"Not connected to {DEVICE_NAME}"
STATE_UNAVAILABLE = "mGB state is not available"


class Bridge:
    """Owns the connection, the state cache and the operation surface.

    Args:
        url: WebSocket endpoint of the sequencer.
        connector: Optional replacement for ``websockets.connect``.
        reconnect_delay: Optional replacement for the reconnect jitter.
    """

    def __init__(
        self,
        url: str,
        connector: Connector | None = None,
        reconnect_delay: Callable[[], int] = reconnect_delay_ms,
    ) -> None:
        self.cache = StateCache()
        self.last_device_error: str | None = None
        self._pending: set[asyncio.Task] = set()
        self._connection = ConnectionManager(
            url,
            on_message=self.handle_message,
            on_open=self._request_initial_state,
            connector=connector,
            reconnect_delay=reconnect_delay,
        )

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def connected(self) -> bool:
        return self._connection.connected

    async def start(self) -> None:
        await self._connection.start()

    async def stop(self) -> None:
        """Shut down; unsent fire-and-forget commands are dropped."""
        for task in list(self._pending):
            task.cancel()
        await self._connection.stop()

    # ─── SENDING ─────────────────────────────────────────────────────

    async def send(self, command: Command) -> Response:
        """Write a command and report the local outcome.

        Returns an error response without touching the socket when not
        connected. Success means the write completed, not that the
        sequencer applied the command.
        """
        if not self._connection.connected:
            return Response.error(NOT_CONNECTED)

        text = encode_command(command)
        logger.debug("Sending command: %s", text)
        try:
            await self._connection.write(text)
        except Exception as e:
            logger.error("Error sending command %s: %s", command.name.value, e)
            return Response.error(f"Error sending command: {e}")
        return Response.success({"command": command.name.value})

    def fire(self, command: Command) -> None:
        """Send a command in the background without waiting for the write."""
        task = asyncio.create_task(self._send_logged(command))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_logged(self, command: Command) -> None:
        response = await self.send(command)
        if not response.ok:
            logger.error("Error sending %s command: %s", command.name.value, response.message)

    async def _request_initial_state(self) -> None:
        response = await self.send(build_get_state())
        if response.ok:
            logger.info("Initial state requested")
        else:
            logger.error("Failed to get initial state: %s", response.message)

    # ─── INBOUND ─────────────────────────────────────────────────────

    def handle_message(self, raw: str | bytes) -> None:
        """Apply one inbound message to the cache, or log it."""
        message = decode_message(raw)
        if message is None:
            return

        if isinstance(message, StateSnapshot):
            self.cache.apply_full_snapshot(message.state)
        elif isinstance(message, CcUpdate):
            logger.info("CC update received: %s %s = %s", message.track, message.cc, message.value)
            self.cache.apply_cc_update(message.track, message.cc, message.value)
        elif isinstance(message, DeviceResponse):
            if message.ok:
                logger.debug("Response received: %s", message.data or {})
            else:
                self.last_device_error = message.message or "Unknown error"
                logger.error("Sequencer reported an error: %s", self.last_device_error)

    # ─── OPERATIONS ──────────────────────────────────────────────────

    async def toggle_play(self) -> Response:
        return await self.send(build_toggle_play())

    async def set_bpm(self, bpm: int) -> Response:
        require("set_bpm", {"bpm": bpm})
        return await self.send(build_set_bpm(bpm))

    async def toggle_step(self, row: int, col: int) -> Response:
        require("toggle_step", {"row": row, "col": col})
        return await self.send(build_toggle_step(row, col))

    async def set_note(
        self, row: int, col: int, note: int, divide: int | None = None
    ) -> Response:
        require("set_note", {"row": row, "col": col, "note": note, "divide": divide})
        return await self.send(build_set_note(row, col, note, divide))

    async def send_preset(self, preset: str) -> Response:
        require("send_preset", {"preset": preset})
        return await self.send(build_send_preset(preset))

    async def batch_update(self, updates: list[dict[str, Any]]) -> Response:
        """Send a batch of pattern edits; any invalid entry rejects them all."""
        items = parse_batch(updates)
        if items is None:
            raise ArgumentError(describe("batch_update", {"updates": updates}))
        return await self.send(build_batch_update(items))

    async def get_midi_ports(self) -> Response:
        """Ask for the port list; the sequencer answers asynchronously."""
        return await self.send(build_get_available_ports())

    async def change_midi_output(self, port: str) -> Response:
        require("change_midi_output", {"port": port})
        return await self.send(build_change_midi_output(port))

    async def change_midi_input(self, port: str) -> Response:
        require("change_midi_input", {"port": port})
        return await self.send(build_change_midi_input(port))

    async def toggle_midi_clock(self, enabled: bool) -> Response:
        require("toggle_midi_clock", {"enabled": enabled})
        return await self.send(build_toggle_midi_clock(enabled))

    async def update_cc(self, track: str, cc: str | int, value: int) -> Response:
        """Send a CC change without waiting for any outcome.

        The sequencer never answers update_cc, so the acknowledgment is
        synthesized. The cache changes only if a cc_update push follows.
        """
        require("update_cc", {"track": track, "cc": cc, "value": value})
        self.fire(build_update_cc(track, cc, value))
        return Response.success(
            {"command": "update_cc", "track": track, "cc": cc, "value": value},
            message=f"CC update sent for {track} {cc} = {value}",
        )

    async def update_synth_param(self, track: str, param: str | int, value: int) -> Response:
        """Older name for update_cc; ``param`` is the CC."""
        require("update_cc", {"track": track, "cc": param, "value": value})
        self.fire(build_update_cc(track, param, value))
        return Response.success(
            {"command": "update_cc", "track": track, "cc": param, "value": value},
            message=f"Synth parameter update sent for {track} {param} = {value}",
        )

    async def refresh_state(self) -> Response:
        """Ask the sequencer to push a fresh snapshot."""
        return await self.send(build_get_state())

    # ─── READS ───────────────────────────────────────────────────────

    async def state_document(self) -> dict[str, Any]:
        """The cached state, or the default document with an ``_error``."""
        state = self.cache.state
        if state is None:
            response = await self.send(build_get_state())
            if not response.ok:
                return default_state_document(
                    response.message or f"Failed to connect to {DEVICE_NAME}"
                )
            state = self.cache.state
            if state is None:
                return default_state_document(STATE_UNAVAILABLE)
        return state.to_dict()

    def status(self) -> dict[str, Any]:
        connection = self._connection
        return {
            "connected": connection.connected,
            "state": connection.state.value,
            "url": connection.url,
            "reconnect_pending": connection.reconnect_pending,
            "has_state": self.cache.has_state,
            "last_device_error": self.last_device_error,
        }
