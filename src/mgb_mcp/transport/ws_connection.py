"""WebSocket connection to the mGB MIDI sequencer.

The connection is a small state machine::

    DISCONNECTED --CONNECT--> CONNECTING --OPENED--> CONNECTED
         ^                                               |
         +----------------- ERROR / CLOSED --------------+

Transport callbacks (open, message, error, close) are turned into events
on a queue. A single consumer task applies ``transition`` to each event
and runs the resulting effects, so state changes never interleave.

Every transport gets a generation number. Events raised by a transport
that has since been replaced are dropped, which keeps exactly one live
handle and at most one pending reconnect.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosedError

logger = logging.getLogger(__name__)

RECONNECT_MIN_MS = 5000
RECONNECT_JITTER_MS = 3000


class LinkState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EventKind(Enum):
    CONNECT = "connect"
    OPENED = "opened"
    MESSAGE = "message"
    ERROR = "error"
    CLOSED = "closed"


class Effect(Enum):
    TERMINATE_PREVIOUS = "terminate_previous"
    OPEN_TRANSPORT = "open_transport"
    ATTACH = "attach"
    HYDRATE = "hydrate"
    DELIVER = "deliver"
    DETACH = "detach"
    SCHEDULE_RECONNECT = "schedule_reconnect"


@dataclass(frozen=True)
class LinkEvent:
    """An event for the consumer loop.

    ``generation`` is None for requests that are not tied to a transport
    (CONNECT).
    """

    kind: EventKind
    generation: int | None = None
    payload: Any = None


# next state (None keeps the current one), effects to run
_TRANSITIONS: dict[EventKind, tuple[LinkState | None, tuple[Effect, ...]]] = {
    EventKind.CONNECT: (
        LinkState.CONNECTING,
        (Effect.TERMINATE_PREVIOUS, Effect.OPEN_TRANSPORT),
    ),
    EventKind.OPENED: (LinkState.CONNECTED, (Effect.ATTACH, Effect.HYDRATE)),
    EventKind.MESSAGE: (None, (Effect.DELIVER,)),
    EventKind.ERROR: (LinkState.DISCONNECTED, ()),
    EventKind.CLOSED: (
        LinkState.DISCONNECTED,
        (Effect.DETACH, Effect.SCHEDULE_RECONNECT),
    ),
}


def transition(state: LinkState, kind: EventKind) -> tuple[LinkState, tuple[Effect, ...]]:
    """Return the next state and the effects to run for an event."""
    next_state, effects = _TRANSITIONS[kind]
    return (next_state or state), effects


def reconnect_delay_ms(rng: random.Random | None = None) -> int:
    """Pick a reconnect delay in ``[5000, 8000)`` milliseconds."""
    return RECONNECT_MIN_MS + (rng or random).randrange(RECONNECT_JITTER_MS)


Connector = Callable[[str], Awaitable[Any]]


class ConnectionManager:
    """Owns the single WebSocket to the sequencer and keeps it alive.

    Usage::

        manager = ConnectionManager(url, on_message=handle)
        await manager.start()
        await manager.write('{"command": "toggle_play"}')
        await manager.stop()

    Args:
        url: WebSocket endpoint, e.g. ``ws://192.168.1.20:8765``.
        on_message: Called with each raw inbound message, in arrival order.
        on_open: Awaited after every successful open.
        connector: Coroutine function opening the socket; defaults to
            ``websockets.connect``.
        reconnect_delay: Returns the delay in milliseconds before the next
            connection attempt; called on every close.
    """

    def __init__(
        self,
        url: str,
        on_message: Callable[[str | bytes], None],
        on_open: Callable[[], Awaitable[None]] | None = None,
        connector: Connector | None = None,
        reconnect_delay: Callable[[], int] = reconnect_delay_ms,
    ) -> None:
        self._url = url
        self._on_message = on_message
        self._on_open = on_open
        self._connector = connector or websockets.connect
        self._reconnect_delay = reconnect_delay

        self._state = LinkState.DISCONNECTED
        self._transport: Any = None
        self._generation = 0
        self._events: asyncio.Queue[LinkEvent] | None = None
        self._consumer: asyncio.Task | None = None
        self._io_tasks: set[asyncio.Task] = set()
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._stopping = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is LinkState.CONNECTED and self._transport is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None and not self._reconnect_handle.cancelled()

    async def start(self) -> None:
        """Start the consumer loop and the first connection attempt."""
        if self._consumer is not None:
            return
        self._stopping = False
        self._events = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(self._events), name="mgb-connection")
        self.connect()

    def connect(self) -> None:
        """Request a new connection, replacing any current transport."""
        self._post(LinkEvent(EventKind.CONNECT))

    async def write(self, text: str) -> None:
        """Send one text frame on the live transport.

        Raises:
            ConnectionError: If not connected.
        """
        transport = self._transport
        if not self.connected or transport is None:
            raise ConnectionError("Not connected to mGB MIDI sequencer")
        await transport.send(text)

    async def stop(self) -> None:
        """Close the transport and stop the consumer. No reconnect follows."""
        self._stopping = True
        self._cancel_reconnect()

        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug("Error closing WebSocket: %s", e)

        tasks = list(self._io_tasks)
        if self._consumer is not None:
            tasks.append(self._consumer)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._io_tasks.clear()
        self._consumer = None
        self._events = None
        self._state = LinkState.DISCONNECTED
        logger.info("Connection to mGB MIDI sequencer stopped")

    # ─── EVENT LOOP ──────────────────────────────────────────────────

    def _post(self, event: LinkEvent) -> None:
        if self._events is None or self._stopping:
            return
        self._events.put_nowait(event)

    async def _consume(self, events: asyncio.Queue[LinkEvent]) -> None:
        while True:
            event = await events.get()
            try:
                await self._handle(event)
            except Exception:
                logger.exception("Error handling %s event", event.kind.value)

    async def _handle(self, event: LinkEvent) -> None:
        if event.generation is not None and event.generation != self._generation:
            logger.debug(
                "Ignoring %s from superseded transport #%d",
                event.kind.value,
                event.generation,
            )
            return

        previous = self._state
        self._state, effects = transition(previous, event.kind)
        if self._state is not previous:
            logger.debug("Connection %s -> %s", previous.value, self._state.value)

        for effect in effects:
            await self._run_effect(effect, event)

    async def _run_effect(self, effect: Effect, event: LinkEvent) -> None:
        if effect is Effect.TERMINATE_PREVIOUS:
            self._cancel_reconnect()
            transport, self._transport = self._transport, None
            if transport is not None:
                self._terminate(transport)

        elif effect is Effect.OPEN_TRANSPORT:
            self._generation += 1
            self._spawn(self._open(self._generation))

        elif effect is Effect.ATTACH:
            self._transport = event.payload

        elif effect is Effect.HYDRATE:
            if self._on_open is not None:
                try:
                    await self._on_open()
                except Exception as e:
                    logger.error("Error getting initial state: %s", e)

        elif effect is Effect.DELIVER:
            self._on_message(event.payload)

        elif effect is Effect.DETACH:
            self._transport = None

        elif effect is Effect.SCHEDULE_RECONNECT:
            self._schedule_reconnect()

    # ─── TRANSPORT I/O ───────────────────────────────────────────────

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._io_tasks.add(task)
        task.add_done_callback(self._io_tasks.discard)

    async def _open(self, generation: int) -> None:
        logger.info("Connecting to mGB MIDI sequencer at %s", self._url)
        try:
            transport = await self._connector(self._url)
        except Exception as e:
            logger.warning("WebSocket error: %s", e)
            self._post(LinkEvent(EventKind.ERROR, generation, e))
            self._post(LinkEvent(EventKind.CLOSED, generation))
            return

        if generation != self._generation or self._stopping:
            self._terminate(transport)
            return

        logger.info("Connected to mGB MIDI sequencer")
        self._post(LinkEvent(EventKind.OPENED, generation, transport))
        await self._read(transport, generation)

    async def _read(self, transport: Any, generation: int) -> None:
        try:
            async for raw in transport:
                self._post(LinkEvent(EventKind.MESSAGE, generation, raw))
        except (ConnectionClosedError, OSError) as e:
            logger.warning("WebSocket error: %s", e)
            self._post(LinkEvent(EventKind.ERROR, generation, e))
        if generation == self._generation and not self._stopping:
            logger.info("WebSocket connection closed")
        self._post(LinkEvent(EventKind.CLOSED, generation))

    def _terminate(self, transport: Any) -> None:
        try:
            transport.transport.abort()
        except Exception as e:
            logger.debug("Ignoring error while terminating WebSocket: %s", e)

    # ─── RECONNECT TIMER ─────────────────────────────────────────────

    def _schedule_reconnect(self) -> None:
        if self._stopping:
            return
        self._cancel_reconnect()
        delay_ms = self._reconnect_delay()
        logger.info("Will reconnect in %.1f seconds", delay_ms / 1000)
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay_ms / 1000, self.connect)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
