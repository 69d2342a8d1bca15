"""Batch update items.

A batch item edits one attribute of the pattern at one granularity::

                 state                 note                   divide
    cell   sequence       row,col   note       row,col   divide       row,col
    row    sequence_row   row       note_row   row       divide_row   row
    grid   sequence_all             note_all             divide_all

The wire ``type`` tag is the attribute prefix plus the granularity suffix.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Granularity(Enum):
    CELL = ""
    ROW = "_row"
    GRID = "_all"


class Attribute(Enum):
    """Edited attribute, with the wire prefix as value."""

    STATE = "sequence"
    NOTE = "note"
    DIVIDE = "divide"


# Field carrying the value, per attribute: (cell field, row/grid field)
VALUE_FIELDS: dict[Attribute, tuple[str, str]] = {
    Attribute.STATE: ("state", "states"),
    Attribute.NOTE: ("note", "notes"),
    Attribute.DIVIDE: ("divide", "divides"),
}

BATCH_TYPES: dict[str, tuple[Granularity, Attribute]] = {
    attribute.value + granularity.value: (granularity, attribute)
    for attribute in Attribute
    for granularity in Granularity
}


@dataclass(frozen=True)
class BatchItem:
    """One parsed batch entry.

    ``value`` is a scalar for cells, a list for rows and a list of lists
    for grids. ``row`` is set for cell and row items, ``col`` for cells.
    """

    granularity: Granularity
    attribute: Attribute
    value: Any
    row: int | None = None
    col: int | None = None

    @property
    def type(self) -> str:
        return self.attribute.value + self.granularity.value

    @property
    def value_field(self) -> str:
        cell_field, many_field = VALUE_FIELDS[self.attribute]
        return cell_field if self.granularity is Granularity.CELL else many_field

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.row is not None:
            data["row"] = self.row
        if self.col is not None:
            data["col"] = self.col
        if isinstance(self.value, list):
            data[self.value_field] = [
                list(v) if isinstance(v, list) else v for v in self.value
            ]
        else:
            data[self.value_field] = self.value
        return data
