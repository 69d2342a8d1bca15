"""In-memory cache of the last known sequencer state."""

from __future__ import annotations

import logging

from .models.state import DeviceState

logger = logging.getLogger(__name__)


class StateCache:
    """Read-through cache of the device state.

    Empty until the first full snapshot arrives. The sequencer stays the
    source of truth: after a reconnect the cache may be stale until the
    next snapshot replaces it.
    """

    def __init__(self) -> None:
        self._state: DeviceState | None = None

    @property
    def state(self) -> DeviceState | None:
        return self._state

    @property
    def has_state(self) -> bool:
        return self._state is not None

    def apply_full_snapshot(self, state: DeviceState) -> None:
        """Replace the cached state."""
        self._state = state
        logger.debug("State updated (bpm=%s, playing=%s)", state.bpm, state.is_playing)

    def apply_cc_update(self, track: str, cc: str | int, value: int) -> bool:
        """Merge a single CC change into the cached state.

        Returns:
            False if ignored because no snapshot has been received yet.
        """
        if self._state is None:
            logger.info("Ignoring CC update %s %s=%s: no state cached yet", track, cc, value)
            return False
        key = self._state.set_cc(track, cc, value)
        logger.debug("CC update applied: %s %s = %s", track, key, value)
        return True
