"""Transport layer: the persistent WebSocket link to the sequencer."""

from .ws_connection import ConnectionManager, LinkState
