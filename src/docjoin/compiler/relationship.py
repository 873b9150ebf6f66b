"""Relationship resolution: joins, embedded entities and array recomposition.

``RelationshipResolver.build`` walks the entity tree under the requested
field paths and emits the aggregation stages that:

1. filter the root documents (``query.pre``),
2. resolve every join with ``$lookup``, unwinding enclosing arrays first
   (recording each element's index) and regrouping them afterwards so the
   joined values land back in the element that requested them,
3. filter on joined values (``query.post``), sort, paginate and project.

Every ``build`` call owns the stage list it appends to; nothing is shared
between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from docjoin.compiler.levels import Level
from docjoin.compiler.match import MatchCompiler
from docjoin.compiler.sort import SortCompiler
from docjoin.models.query import Query
from docjoin.models.schema import EntitySchema
from docjoin.registry import EntityRef, SchemaRegistry

logger = logging.getLogger(__name__)

Stage = dict[str, Any]


def _group_rule(view: Sequence[str], path: str | None = None) -> dict[str, Any]:
    """Carry ``view`` fields through a ``$group``: from ``path`` when given, else ``$first``."""
    if path:
        return {field: f"${path}.{field}" for field in view}
    return {field: {"$first": f"${field}"} for field in view}


def _project_rule(keys: Sequence[str]) -> dict[str, Any]:
    """Keep every key, dropping it instead of writing null when absent."""
    return {key: {"$ifNull": [f"${key}", "$$REMOVE"]} for key in keys}


def _composed_id(current_id: str, levels: Sequence[Level]) -> dict[str, Any]:
    compound: dict[str, Any] = {"_id": current_id}
    for level in levels:
        compound[level.column.name] = f"${level.index_field}"
    return compound


def _group_name(level: Level) -> str:
    return f"_{level.field}" if level.previous else level.field


class RelationshipResolver:
    """Compiles (entity, query, field paths) into an ordered stage list."""

    def __init__(
        self,
        registry: SchemaRegistry,
        match_compiler: MatchCompiler | None = None,
        sort_compiler: SortCompiler | None = None,
    ) -> None:
        self._registry = registry
        self._match = match_compiler or MatchCompiler(registry)
        self._sort = sort_compiler or SortCompiler(registry)

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def build(
        self,
        entity: EntityRef,
        query: Query | None = None,
        fields: Sequence[str] = (),
    ) -> list[Stage]:
        schema = self._registry.entity(entity)
        query = query or Query()
        fields = list(fields)
        primary = self._registry.primary_column(schema)

        stages: list[Stage] = []
        if query.pre:
            stages.append({"$match": self._match.compile(schema, query.pre)})

        view = self.view(schema, fields)
        project = self._apply_relationship(stages, schema, view, fields, None)

        if query.post:
            stages.append({"$match": self._match.compile(schema, query.post)})
        if query.sort:
            stages.append({"$sort": self._sort.compile(schema, query.sort)})
        if query.limit is not None:
            if query.limit.start > 0:
                stages.append({"$skip": query.limit.start})
            stages.append({"$limit": query.limit.count})
        if view:
            project.setdefault(primary.storage_name, True)
            stages.append({"$project": project})
        return stages

    def view(self, entity: EntityRef, fields: Sequence[str]) -> list[str]:
        """Ordered storage names a group or project stage must retain for ``entity``.

        Embedded entities without a primary key contribute only their columns.
        """
        schema = self._registry.entity(entity)
        view: dict[str, None] = {}
        if schema.primary is not None:
            view[self._registry.primary_column(schema).storage_name] = None
        for column in self._registry.real_columns(schema, fields):
            view[column.storage_name] = None
        for join in self._registry.virtual_columns(schema, fields):
            view[self._registry.local_name(schema, join)] = None
            view[join.storage_name] = None
        return list(view)

    # -- relationship walk ---------------------------------------------------

    def _apply_relationship(
        self,
        stages: list[Stage],
        schema: EntitySchema,
        view: list[str],
        fields: Sequence[str],
        level: Level | None,
    ) -> dict[str, Any]:
        project: dict[str, Any] = {}
        self._resolve_foreign_relations(stages, project, schema, view, fields, level)
        self._resolve_nested_relations(stages, project, schema, view, fields, level)
        return project

    def _resolve_foreign_relations(
        self,
        stages: list[Stage],
        project: dict[str, Any],
        schema: EntitySchema,
        view: list[str],
        fields: Sequence[str],
        parent: Level | None,
    ) -> None:
        group = _group_rule(view)
        for join in self._registry.virtual_columns(schema, fields):
            target = self._registry.entity(join.entity)
            level = Level.join(join, self._registry.local_name(schema, join), parent, fields)
            multiples = self._decompose_all(stages, level)

            lookup_pipeline: list[Stage] = [
                {"$match": {"$expr": {"$eq": [f"${self._registry.foreign_name(join)}", "$$id"]}}},
                *self.build(target, join.query or Query(), level.fields),
            ]
            stages.append(
                {
                    "$lookup": {
                        "from": target.collection,
                        "let": {"id": f"${level.name}"},
                        "pipeline": lookup_pipeline,
                        "as": level.virtual,
                    }
                }
            )
            if not join.all:
                stages.append(
                    {"$unwind": {"path": f"${level.virtual}", "preserveNullAndEmptyArrays": True}}
                )

            if multiples:
                current = multiples.pop()
                properties = dict(group)
                for pending in multiples:
                    properties[pending.index_field] = {"$first": f"${pending.index_field}"}
                self._compose_all(stages, properties, current, multiples)

            project[join.name] = True

    def _resolve_nested_relations(
        self,
        stages: list[Stage],
        project: dict[str, Any],
        schema: EntitySchema,
        view: list[str],
        fields: Sequence[str],
        parent: Level | None,
    ) -> None:
        for column in self._registry.real_columns(schema, fields):
            nested = self._registry.nested_entity(column)
            if nested is None or column.is_map:
                project[column.storage_name] = True
                continue
            level = Level.real(column, parent, fields)
            projection = self._apply_relationship(stages, nested, view, level.fields, level)
            project[column.storage_name] = projection or True

    # -- decompose / recompose -----------------------------------------------

    @staticmethod
    def _decompose_all(stages: list[Stage], level: Level) -> list[Level]:
        """Unwind every array level from the root down, recording element indices."""
        multiples: list[Level] = []
        for current in level.chain():
            if not current.multiple:
                continue
            stages.append(
                {
                    "$unwind": {
                        "path": f"${current.name}",
                        "includeArrayIndex": current.index_field,
                        "preserveNullAndEmptyArrays": True,
                    }
                }
            )
            multiples.append(current)
        return multiples

    def _compose_all(
        self,
        stages: list[Stage],
        properties: dict[str, Any],
        level: Level,
        multiples: list[Level],
    ) -> None:
        """Regroup from ``level`` out to the root, one ``$group`` per level."""
        multiple = multiples.pop() if multiples else None
        current_id = "$_id"
        last: Level | None = None
        current: Level | None = level
        while current is not None:
            group = dict(properties)
            if current.previous is not None:
                group["_realId"] = {"$first": current_id}
            if multiple is current:
                multiple = multiples.pop() if multiples else None
            if multiple is not None:
                group["_id"] = _composed_id(current_id, [*multiples, multiple])
                current_id = "$_realId"
            else:
                group["_id"] = current_id
            if last is not None:
                self._compose_subgroup(stages, group, current, last)
            else:
                self._compose_group(stages, group, current)
            last = current
            current = current.previous

    def _compose_subgroup(
        self,
        stages: list[Stage],
        group: dict[str, Any],
        level: Level,
        last: Level,
    ) -> None:
        """Push the rebuilt element of ``level`` with the regrouped ``last`` inside it."""
        name = _group_name(level)
        nested = self._registry.nested_entity(level.column)
        internal = _group_rule(self.view(nested, level.fields), level.name) if nested else {}
        internal[last.field] = f"$_{last.field}"
        if last.is_join:
            local = self._local_of(last)
            internal[local] = f"$_{local}"
        group[name] = {"$push": internal}
        stages.append({"$group": group})
        stages.append({"$project": _project_rule(list(group))})
        if not level.multiple:
            stages.append({"$unwind": {"path": f"${name}"}})

    def _compose_group(self, stages: list[Stage], group: dict[str, Any], level: Level) -> None:
        """Accumulate the innermost level's value (and a join's local key)."""
        name = _group_name(level)
        accumulator = "$push" if level.multiple else "$first"
        if level.is_join:
            local = self._local_of(level)
            if level.previous is not None:
                local = f"_{local}"
            group[name] = {accumulator: f"${level.virtual}"}
            group[local] = {accumulator: f"${level.name}"}
        else:
            group[name] = {accumulator: f"${level.name}"}
        stages.append({"$group": group})
        stages.append({"$project": _project_rule(list(group))})

    @staticmethod
    def _local_of(level: Level) -> str:
        """Local key segment of a join level (last component of its path)."""
        return level.name.rsplit(".", 1)[-1]
