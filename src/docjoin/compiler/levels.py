"""Compile-time nesting levels.

A ``Level`` records one step of descent while the relationship resolver
walks embedded entities and joins. Levels are immutable and linked to
their parent through ``previous``; the chain lives only for the duration
of one ``build`` call.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from docjoin.models.schema import Column, Format, RealColumn, VirtualColumn
from docjoin.registry import SchemaRegistry


@dataclass(frozen=True)
class Level:
    """One step of nesting: an embedded entity column or a join."""

    name: str
    column: Column
    multiple: bool
    fields: tuple[str, ...] = ()
    previous: Level | None = None
    virtual: str | None = None

    @classmethod
    def real(cls, column: RealColumn, previous: Level | None, fields: Sequence[str]) -> Level:
        """Level for an embedded object or array of entities."""
        field = column.storage_name
        return cls(
            name=f"{previous.name}.{field}" if previous else field,
            column=column,
            multiple=Format.ARRAY in column.formats,
            fields=tuple(SchemaRegistry.nested_fields(column, fields)),
            previous=previous,
        )

    @classmethod
    def join(
        cls,
        column: VirtualColumn,
        local: str,
        previous: Level | None,
        fields: Sequence[str],
    ) -> Level:
        """Level for a join; ``name`` addresses the local key, ``virtual`` the joined field."""
        if fields:
            selected = tuple(SchemaRegistry.nested_fields(column, fields))
        else:
            selected = tuple(column.fields)
        return cls(
            name=f"{previous.name}.{local}" if previous else local,
            virtual=f"{previous.name}.{column.name}" if previous else column.name,
            column=column,
            multiple=column.multiple,
            fields=selected,
            previous=previous,
        )

    @property
    def is_join(self) -> bool:
        return isinstance(self.column, VirtualColumn)

    @property
    def field(self) -> str:
        """Storage name of the column this level descends through."""
        return self.column.storage_name

    @property
    def index_field(self) -> str:
        """Synthetic field receiving the array index when this level is unwound."""
        return f"_{self.column.name}Index"

    def chain(self) -> list[Level]:
        """All levels from the root down to (and including) this one."""
        levels: list[Level] = []
        level: Level | None = self
        while level is not None:
            levels.append(level)
            level = level.previous
        levels.reverse()
        return levels
