"""Translates a sort map into a ``$sort`` document."""

from __future__ import annotations

from collections.abc import Mapping

from docjoin.models.query import Order
from docjoin.registry import EntityRef, SchemaRegistry

_DIRECTIONS: dict[Order, int] = {Order.ASCENDING: 1, Order.DESCENDING: -1}


class SortCompiler:
    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry

    def compile(self, entity: EntityRef, sort: Mapping[str, Order | str]) -> dict[str, int]:
        """Map each column path to ``1``/``-1``; unknown directions are skipped."""
        result: dict[str, int] = {}
        for path, direction in sort.items():
            try:
                order = Order(str(direction).lower())
            except ValueError:
                continue
            columns = self._registry.resolve_path(entity, path)
            result[self._registry.path_name(columns)] = _DIRECTIONS[order]
        return result
