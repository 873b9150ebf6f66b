"""Read operations over a driver: compile, submit, unwrap."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from docjoin.compiler.document_schema import build_validator
from docjoin.compiler.pipeline import CompilationPipeline
from docjoin.models.query import Query
from docjoin.registry import EntityRef, SchemaRegistry
from docjoin.settings import Settings
from docjoin.storage.driver import PipelineDriver
from docjoin.storage.mongo_driver import MongoPipelineDriver

logger = logging.getLogger(__name__)


class EntityFinder:
    """Finds and counts entities of one registry through a ``PipelineDriver``.

    ``session`` is handed to the driver untouched; transaction handling is
    the driver's concern.
    """

    def __init__(self, registry: SchemaRegistry, driver: PipelineDriver) -> None:
        self._registry = registry
        self._pipeline = CompilationPipeline(registry)
        self._driver = driver

    @classmethod
    def from_settings(cls, registry: SchemaRegistry, settings: Settings) -> EntityFinder:
        """Finder over a MongoDB database configured by ``settings``."""
        return cls(registry, MongoPipelineDriver.from_settings(settings))

    @property
    def driver(self) -> PipelineDriver:
        return self._driver

    async def find(
        self,
        entity: EntityRef,
        query: Query | None = None,
        fields: Sequence[str] = (),
        session: Any = None,
    ) -> list[dict[str, Any]]:
        stages = self._pipeline.build(entity, query, fields)
        return await self._driver.run_pipeline(
            self._registry.storage_name(entity), stages, session
        )

    async def find_by_id(
        self,
        entity: EntityRef,
        value: Any,
        fields: Sequence[str] = (),
        session: Any = None,
    ) -> dict[str, Any] | None:
        """First row whose primary key equals ``value``, or None."""
        stages = self._pipeline.find_by_id(entity, value, fields)
        rows = await self._driver.run_pipeline(
            self._registry.storage_name(entity), stages, session
        )
        return rows[0] if rows else None

    async def count(
        self, entity: EntityRef, query: Query | None = None, session: Any = None
    ) -> int:
        stages = self._pipeline.count(entity, query)
        rows = await self._driver.run_pipeline(
            self._registry.storage_name(entity), stages, session
        )
        return int(rows[0].get("records", 0)) if rows else 0

    async def ensure_collection(self, entity: EntityRef, session: Any = None) -> None:
        """Create the entity's collection with its ``$jsonSchema`` validator."""
        collection = self._registry.storage_name(entity)
        logger.info("Creating collection %s with schema validator", collection)
        await self._driver.create_collection(
            collection, build_validator(self._registry, entity), session
        )
