"""MCP bridge to the mGB MIDI sequencer."""

__version__ = "0.1.0"
