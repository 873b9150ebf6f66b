"""Orchestrates compilation: Query → relationship resolution → stage list → validation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from docjoin.compiler.relationship import RelationshipResolver, Stage
from docjoin.compiler.validator import validate_stages
from docjoin.models.query import Match, Operation, Operator, Query
from docjoin.registry import EntityRef, SchemaRegistry

logger = logging.getLogger(__name__)


@dataclass
class CompilationResult:
    """The result of compiling a query to an aggregation pipeline."""

    entity: str
    collection: str
    stages: list[Stage]
    warnings: list[str] = field(default_factory=list)
    stages_valid: bool = True


class CompilationPipeline:
    """Entry point for building find, find-by-id and count pipelines."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry
        self._resolver = RelationshipResolver(registry)

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def build(
        self,
        entity: EntityRef,
        query: Query | None = None,
        fields: Sequence[str] = (),
    ) -> list[Stage]:
        """Compile the stages selecting ``fields`` of ``entity`` rows matching ``query``."""
        stages = self._resolver.build(entity, query, fields)
        logger.debug(
            "Compiled pipeline for %s: %d stages", self._registry.entity(entity).name, len(stages)
        )
        return stages

    def primary_id_match(self, entity: EntityRef, value: Any) -> Match:
        """Match on the primary key of ``entity``."""
        primary = self._registry.primary_column(entity)
        return {primary.name: Operation(operator=Operator.EQUAL, value=value)}

    def find_by_id(self, entity: EntityRef, value: Any, fields: Sequence[str] = ()) -> list[Stage]:
        query = Query(pre=self.primary_id_match(entity, value))
        return self.build(entity, query, fields)

    def count(self, entity: EntityRef, query: Query | None = None) -> list[Stage]:
        """Stages counting the matching rows into a ``records`` field."""
        return self.build(entity, query, []) + [{"$count": "records"}]

    def compile(
        self,
        entity: EntityRef,
        query: Query | None = None,
        fields: Sequence[str] = (),
    ) -> CompilationResult:
        """Compile and validate; validation problems become warnings."""
        schema = self._registry.entity(entity)
        stages = self.build(schema, query, fields)
        return self._result(schema.name, schema.collection, stages)

    def compile_count(self, entity: EntityRef, query: Query | None = None) -> CompilationResult:
        schema = self._registry.entity(entity)
        return self._result(schema.name, schema.collection, self.count(schema, query))

    @staticmethod
    def _result(entity: str, collection: str, stages: list[Stage]) -> CompilationResult:
        errors = validate_stages(stages)
        if errors:
            logger.warning("Pipeline for %s failed stage validation: %s", entity, errors)
        return CompilationResult(
            entity=entity,
            collection=collection,
            stages=stages,
            warnings=[f"Stage validation: {e}" for e in errors],
            stages_valid=not errors,
        )
