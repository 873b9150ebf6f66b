"""Translates match expressions into ``$match`` filter documents."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from docjoin.compiler.caster import ValueCaster
from docjoin.models.errors import TypeMismatchError, UnsupportedOperatorError
from docjoin.models.query import Match, Operation, Operator
from docjoin.registry import EntityRef, SchemaRegistry

_COMPARISONS: dict[Operator, str] = {
    Operator.LESS_THAN: "$lt",
    Operator.LESS_THAN_OR_EQUAL: "$lte",
    Operator.EQUAL: "$eq",
    Operator.NOT_EQUAL: "$ne",
    Operator.GREATER_THAN_OR_EQUAL: "$gte",
    Operator.GREATER_THAN: "$gt",
    Operator.REGEXP: "$regex",
}

_SET_OPERATORS: dict[Operator, str] = {
    Operator.CONTAIN: "$in",
    Operator.NOT_CONTAIN: "$nin",
}


class MatchCompiler:
    """Compiles a ``Match`` (or a list of them, OR-ed) for one entity."""

    def __init__(self, registry: SchemaRegistry, caster: ValueCaster | None = None) -> None:
        self._registry = registry
        self._caster = caster or ValueCaster()

    def compile(self, entity: EntityRef, match: Match | list[Match]) -> dict[str, Any]:
        if isinstance(match, list):
            return {"$or": [self._compile_expression(entity, m) for m in match]}
        return self._compile_expression(entity, match)

    def _compile_expression(self, entity: EntityRef, match: Match) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        for path, raw in match.items():
            columns = self._registry.resolve_path(entity, path)
            column = columns[-1]
            storage_path = self._registry.path_name(columns)
            operator, value = self._operation(path, raw)

            if operator in _COMPARISONS:
                filters[storage_path] = {_COMPARISONS[operator]: self._caster.cast(value, column)}
            elif operator in _SET_OPERATORS:
                filters[storage_path] = {
                    _SET_OPERATORS[operator]: self._caster.cast_many(value, column, path)
                }
            elif operator is Operator.BETWEEN:
                if not isinstance(value, (list, tuple)) or len(value) != 2:
                    raise TypeMismatchError(
                        f"Between operand for column '{path}' must be a two-element list",
                        path=path,
                    )
                low, high = value
                filters[storage_path] = {
                    "$gte": self._caster.cast(low, column),
                    "$lte": self._caster.cast(high, column),
                }
            else:
                raise UnsupportedOperatorError(operator, path)
        return filters

    @staticmethod
    def _operation(path: str, raw: Operation | Mapping[str, Any]) -> tuple[Operator, Any]:
        if isinstance(raw, Operation):
            return raw.operator, raw.value
        if not isinstance(raw, Mapping):
            raise TypeMismatchError(f"Match for column '{path}' must be an operation", path=path)
        name = raw.get("operator")
        try:
            operator = Operator(str(name).lower())
        except ValueError:
            raise UnsupportedOperatorError(name, path) from None
        return operator, raw.get("value")
