"""Shared fakes: an in-memory WebSocket and a connector that hands them out."""

from __future__ import annotations

import asyncio
import json

import pytest

_CLOSE = object()


class FakeTransport:
    """Stands in for the asyncio transport under a WebSocket connection."""

    def __init__(self, socket: FakeSocket) -> None:
        self._socket = socket
        self.aborted = False

    def abort(self) -> None:
        self.aborted = True
        self._socket.drop()


class FakeSocket:
    """In-memory WebSocket: records sends and yields pushed messages."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.send_error: Exception | None = None
        self.transport = FakeTransport(self)
        self._inbox: asyncio.Queue = asyncio.Queue()

    @property
    def sent_payloads(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]

    async def send(self, text: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(text)

    def push(self, message) -> None:
        """Deliver a message from the sequencer (dicts are JSON-encoded)."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._inbox.put_nowait(message)

    def fail(self, error: Exception) -> None:
        """Make the next read raise, as on an abnormal close."""
        self._inbox.put_nowait(error)

    def drop(self) -> None:
        """Close from the remote side."""
        self._inbox.put_nowait(_CLOSE)

    async def close(self) -> None:
        self.closed = True
        self.drop()

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item


class FakeConnector:
    """Replacement for ``websockets.connect``."""

    def __init__(self) -> None:
        self.urls: list[str] = []
        self.sockets: list[FakeSocket] = []
        self.failures = 0

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError(f"connection to {url} refused")
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def wait_until():
    return _wait_until
