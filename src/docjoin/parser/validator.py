"""Semantic checks over a set of entity schemas: keys, references and cycles."""

from __future__ import annotations

from collections.abc import Mapping

import networkx as nx

from docjoin.models.errors import SemanticError
from docjoin.models.schema import EntitySchema, Format, RealColumn, VirtualColumn
from docjoin.parser.resolver import _suggest_similar


def _reenters(join: VirtualColumn, entities: Mapping[str, EntitySchema]) -> bool:
    """Whether expanding ``join`` can descend into a further entity."""
    if not join.fields:
        return True
    target = entities[join.entity]
    for field in join.fields:
        column = target.columns.get(field.split(".", 1)[0])
        if column is None or column.entity is None:
            continue
        if not (isinstance(column, RealColumn) and column.is_map):
            return True
    return False


class SchemaValidator:
    """Validates cross-entity rules that single-entity parsing cannot see."""

    def validate(self, entities: Mapping[str, EntitySchema]) -> list[SemanticError]:
        errors: list[SemanticError] = []
        errors.extend(self._check_primary_keys(entities))
        errors.extend(self._check_column_names(entities))
        errors.extend(self._check_nested_entities(entities))
        errors.extend(self._check_joins(entities))
        errors.extend(self._check_no_unrestricted_cycles(entities))
        return errors

    def _check_primary_keys(self, entities: Mapping[str, EntitySchema]) -> list[SemanticError]:
        """Declared primaries must be ``id`` real columns; join targets must declare one."""
        errors: list[SemanticError] = []
        targets = {
            column.entity
            for schema in entities.values()
            for column in schema.columns.values()
            if isinstance(column, VirtualColumn)
        }
        for name, schema in entities.items():
            path = f"entities.{name}.primary"
            if schema.primary is None:
                if name in targets:
                    errors.append(
                        SemanticError(
                            code="MISSING_PRIMARY_KEY",
                            message=f"Entity '{name}' is a join target but declares no primary key",
                            path=path,
                        )
                    )
                continue
            column = schema.columns.get(schema.primary)
            if column is None:
                errors.append(
                    SemanticError(
                        code="UNKNOWN_PRIMARY_KEY",
                        message=f"Primary key '{schema.primary}' is not a column of entity '{name}'",
                        path=path,
                        suggestions=_suggest_similar(schema.primary, list(schema.columns)),
                    )
                )
            elif not isinstance(column, RealColumn) or Format.ID not in column.formats:
                errors.append(
                    SemanticError(
                        code="INVALID_PRIMARY_KEY",
                        message=f"Primary key '{schema.primary}' of entity '{name}' must be an id column",
                        path=path,
                    )
                )
        return errors

    def _check_column_names(self, entities: Mapping[str, EntitySchema]) -> list[SemanticError]:
        """Column keys match column names and storage names are unique per entity."""
        errors: list[SemanticError] = []
        for name, schema in entities.items():
            seen: dict[str, str] = {}
            for key, column in schema.columns.items():
                path = f"entities.{name}.columns.{key}"
                if key != column.name:
                    errors.append(
                        SemanticError(
                            code="COLUMN_NAME_MISMATCH",
                            message=f"Column '{key}' of entity '{name}' is named '{column.name}'",
                            path=path,
                        )
                    )
                storage = column.storage_name
                if storage in seen:
                    errors.append(
                        SemanticError(
                            code="DUPLICATE_STORAGE_NAME",
                            message=(
                                f"Column '{key}' of entity '{name}' is stored as '{storage}', "
                                f"same as column '{seen[storage]}'"
                            ),
                            path=path,
                        )
                    )
                else:
                    seen[storage] = key
        return errors

    def _check_nested_entities(self, entities: Mapping[str, EntitySchema]) -> list[SemanticError]:
        errors: list[SemanticError] = []
        for name, schema in entities.items():
            for key, column in schema.columns.items():
                if not isinstance(column, RealColumn) or column.entity is None:
                    continue
                if column.entity not in entities:
                    errors.append(
                        SemanticError(
                            code="UNKNOWN_ENTITY",
                            message=f"Column '{key}' of entity '{name}' references unknown entity '{column.entity}'",
                            path=f"entities.{name}.columns.{key}.entity",
                            suggestions=_suggest_similar(column.entity, list(entities)),
                        )
                    )
        return errors

    def _check_joins(self, entities: Mapping[str, EntitySchema]) -> list[SemanticError]:
        """Join targets exist, the local key exists here and the foreign key over there."""
        errors: list[SemanticError] = []
        for name, schema in entities.items():
            for key, column in schema.columns.items():
                if not isinstance(column, VirtualColumn):
                    continue
                path = f"entities.{name}.columns.{key}.join"
                local = schema.columns.get(column.local)
                if not isinstance(local, RealColumn):
                    errors.append(
                        SemanticError(
                            code="UNKNOWN_LOCAL_KEY",
                            message=f"Join '{key}' of entity '{name}' uses unknown local key '{column.local}'",
                            path=f"{path}.local",
                            suggestions=_suggest_similar(column.local, list(schema.columns)),
                        )
                    )
                target = entities.get(column.entity)
                if target is None:
                    errors.append(
                        SemanticError(
                            code="UNKNOWN_ENTITY",
                            message=f"Join '{key}' of entity '{name}' targets unknown entity '{column.entity}'",
                            path=f"{path}.entity",
                            suggestions=_suggest_similar(column.entity, list(entities)),
                        )
                    )
                    continue
                if not isinstance(target.columns.get(column.foreign), RealColumn):
                    errors.append(
                        SemanticError(
                            code="UNKNOWN_FOREIGN_KEY",
                            message=(
                                f"Join '{key}' of entity '{name}' uses unknown foreign key "
                                f"'{column.foreign}' on entity '{column.entity}'"
                            ),
                            path=f"{path}.foreign",
                            suggestions=_suggest_similar(column.foreign, list(target.columns)),
                        )
                    )
        return errors

    def _check_no_unrestricted_cycles(
        self, entities: Mapping[str, EntitySchema]
    ) -> list[SemanticError]:
        """Reject relationship cycles that a full-view build would follow forever.

        Map columns are never traversed, so they contribute no edge. A join
        with a default field selection stops the walk unless one of those
        fields reaches another entity on the target.
        """
        graph: nx.DiGraph[str] = nx.DiGraph()
        graph.add_nodes_from(entities)
        for name, schema in entities.items():
            for column in schema.columns.values():
                if column.entity is None or column.entity not in entities:
                    continue
                if isinstance(column, RealColumn) and column.is_map:
                    continue
                if isinstance(column, VirtualColumn) and not _reenters(column, entities):
                    continue
                graph.add_edge(name, column.entity)

        errors: list[SemanticError] = []
        for cycle in nx.simple_cycles(graph):
            path = " -> ".join([*cycle, cycle[0]])
            errors.append(
                SemanticError(
                    code="CYCLIC_RELATIONSHIP",
                    message=f"Unrestricted relationship cycle: {path}",
                    path=f"entities.{cycle[0]}",
                )
            )
        return errors
