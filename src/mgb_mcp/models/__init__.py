"""Data models for the sequencer state and batch edits."""

from .state import DeviceState, TRACKS, default_state_document, normalize_cc_key
from .batch import Attribute, BatchItem, Granularity
