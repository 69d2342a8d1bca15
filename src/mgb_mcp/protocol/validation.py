"""Argument validation for bridge operations.

Every operation has an entry in ``OPERATION_SCHEMAS``: a total predicate
over the raw argument mapping and a builder for the message reported when
it fails. Predicates never raise; ``require`` turns a failed check into an
``ArgumentError``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from ..models.batch import BATCH_TYPES, BatchItem, Granularity, VALUE_FIELDS
from ..models.state import TRACKS

BPM_MIN = 60
BPM_MAX = 300
MIDI_MAX = 127
DIVIDES = (1, 2, 3)

CC_NAME_RE = re.compile(r"cc[0-9]+")


class ArgumentError(ValueError):
    """Raised when an operation's arguments fail validation."""


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid number here
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _in_range(value: Any, low: int, high: int) -> bool:
    return _is_int(value) and low <= value <= high


def is_index(value: Any) -> bool:
    return _is_int(value) and value >= 0


def is_bpm(value: Any) -> bool:
    return _in_range(value, BPM_MIN, BPM_MAX)


def is_midi_value(value: Any) -> bool:
    """Note numbers and CC values share the 0-127 range."""
    return _in_range(value, 0, MIDI_MAX)


def is_divide(value: Any) -> bool:
    return _is_int(value) and value in DIVIDES


def is_track(value: Any) -> bool:
    return isinstance(value, str) and value in TRACKS


def is_cc(value: Any) -> bool:
    """A CC is either a ``"cc<N>"`` name or a number 0-127."""
    if isinstance(value, str):
        return CC_NAME_RE.fullmatch(value) is not None
    return is_midi_value(value)


def _is_list_of(value: Any, check: Callable[[Any], bool]) -> bool:
    return isinstance(value, list) and all(check(v) for v in value)


def _is_grid_of(value: Any, check: Callable[[Any], bool]) -> bool:
    return isinstance(value, list) and all(_is_list_of(row, check) for row in value)


_CELL_CHECKS: dict[str, Callable[[Any], bool]] = {
    "sequence": lambda v: isinstance(v, bool),
    "note": is_midi_value,
    "divide": is_divide,
}


def _as_int(value: Any) -> Any:
    if isinstance(value, list):
        return [_as_int(v) for v in value]
    if isinstance(value, float):
        return int(value)
    return value


def parse_batch_item(raw: Any) -> BatchItem | None:
    """Parse one raw batch entry into a ``BatchItem``.

    Returns None if the entry does not match its variant's schema.
    """
    if not isinstance(raw, Mapping) or not isinstance(raw.get("type"), str):
        return None
    variant = BATCH_TYPES.get(raw["type"])
    if variant is None:
        return None
    granularity, attribute = variant
    check = _CELL_CHECKS[attribute.value]
    cell_field, many_field = VALUE_FIELDS[attribute]

    if granularity is Granularity.CELL:
        row, col, value = raw.get("row"), raw.get("col"), raw.get(cell_field)
        if not (is_index(row) and is_index(col) and check(value)):
            return None
        return BatchItem(granularity, attribute, _as_int(value), int(row), int(col))

    value = raw.get(many_field)
    if granularity is Granularity.ROW:
        row = raw.get("row")
        if not (is_index(row) and _is_list_of(value, check)):
            return None
        return BatchItem(granularity, attribute, _as_int(value), int(row))

    if not _is_grid_of(value, check):
        return None
    return BatchItem(granularity, attribute, _as_int(value))


def parse_batch(updates: Any) -> list[BatchItem] | None:
    """Parse a whole batch. A single invalid entry rejects all of it."""
    if not isinstance(updates, list):
        return None
    items = []
    for raw in updates:
        item = parse_batch_item(raw)
        if item is None:
            return None
        items.append(item)
    return items


# ─── OPERATION PREDICATES ────────────────────────────────────────────

def _no_args(args: Any) -> bool:
    return args is None or isinstance(args, Mapping)


def is_set_bpm_args(args: Any) -> bool:
    return isinstance(args, Mapping) and is_bpm(args.get("bpm"))


def is_toggle_step_args(args: Any) -> bool:
    return (
        isinstance(args, Mapping)
        and is_index(args.get("row"))
        and is_index(args.get("col"))
    )


def is_set_note_args(args: Any) -> bool:
    if not is_toggle_step_args(args):
        return False
    divide = args.get("divide")
    return is_midi_value(args.get("note")) and (divide is None or is_divide(divide))


def is_send_preset_args(args: Any) -> bool:
    return isinstance(args, Mapping) and isinstance(args.get("preset"), str)


def is_batch_update_args(args: Any) -> bool:
    return isinstance(args, Mapping) and parse_batch(args.get("updates")) is not None


def is_port_args(args: Any) -> bool:
    return isinstance(args, Mapping) and isinstance(args.get("port"), str)


def is_toggle_midi_clock_args(args: Any) -> bool:
    return isinstance(args, Mapping) and isinstance(args.get("enabled"), bool)


def is_update_cc_args(args: Any) -> bool:
    return (
        isinstance(args, Mapping)
        and is_track(args.get("track"))
        and is_cc(args.get("cc"))
        and is_midi_value(args.get("value"))
    )


@dataclass(frozen=True)
class OperationSchema:
    """Validation entry for one operation."""

    predicate: Callable[[Any], bool]
    describe: Callable[[Any], str]


def _fixed(message: str) -> Callable[[Any], str]:
    return lambda args: message


OPERATION_SCHEMAS: dict[str, OperationSchema] = {
    "get_state": OperationSchema(_no_args, _fixed("get_state takes no arguments")),
    "toggle_play": OperationSchema(_no_args, _fixed("toggle_play takes no arguments")),
    "set_bpm": OperationSchema(
        is_set_bpm_args,
        _fixed(f"Invalid BPM arguments: bpm must be a number {BPM_MIN}-{BPM_MAX}"),
    ),
    "toggle_step": OperationSchema(
        is_toggle_step_args,
        _fixed("Invalid toggle step arguments: row and col must be non-negative integers"),
    ),
    "set_note": OperationSchema(
        is_set_note_args,
        _fixed(
            "Invalid set note arguments: row/col non-negative, note 0-127, "
            "divide one of 1, 2, 3"
        ),
    ),
    "send_preset": OperationSchema(
        is_send_preset_args, _fixed("Invalid preset arguments: preset must be a string")
    ),
    "batch_update": OperationSchema(
        is_batch_update_args,
        lambda args: (
            "Invalid batch update arguments: "
            f"{_first_bad_batch_entry(args)}"
        ),
    ),
    "get_midi_ports": OperationSchema(
        _no_args, _fixed("get_midi_ports takes no arguments")
    ),
    "change_midi_output": OperationSchema(
        is_port_args, _fixed("Invalid MIDI output arguments: port must be a string")
    ),
    "change_midi_input": OperationSchema(
        is_port_args, _fixed("Invalid MIDI input arguments: port must be a string")
    ),
    "toggle_midi_clock": OperationSchema(
        is_toggle_midi_clock_args,
        _fixed("Invalid MIDI clock arguments: enabled must be a boolean"),
    ),
    "update_cc": OperationSchema(
        is_update_cc_args,
        _fixed(
            f"Invalid control change arguments: track one of {', '.join(TRACKS)}, "
            "cc 'cc<N>' or 0-127, value 0-127"
        ),
    ),
}


def _first_bad_batch_entry(args: Any) -> str:
    updates = args.get("updates") if isinstance(args, Mapping) else None
    if not isinstance(updates, list):
        return "updates must be a list"
    for index, raw in enumerate(updates):
        if parse_batch_item(raw) is None:
            kind = raw.get("type") if isinstance(raw, Mapping) else None
            return f"entry {index} ({kind!r}) does not match its schema"
    return "no valid entries"


def validate(operation: str, args: Any) -> bool:
    """Return True if ``args`` are valid for ``operation``."""
    schema = OPERATION_SCHEMAS.get(operation)
    if schema is None:
        return False
    return schema.predicate(args)


def describe(operation: str, args: Any) -> str:
    """The validation error message for ``operation`` given ``args``."""
    schema = OPERATION_SCHEMAS.get(operation)
    if schema is None:
        return f"Unknown operation '{operation}'"
    return schema.describe(args)


def require(operation: str, args: Any) -> None:
    """Raise ``ArgumentError`` unless ``args`` are valid for ``operation``."""
    if not validate(operation, args):
        raise ArgumentError(describe(operation, args))
