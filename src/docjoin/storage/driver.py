"""Abstract pipeline driver and an in-memory implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


class DriverError(Exception):
    """Raised when a pipeline cannot be submitted to the store."""


class PipelineDriver(ABC):
    """Submits compiled stage lists to a document store."""

    @abstractmethod
    async def run_pipeline(
        self,
        collection: str,
        stages: Sequence[dict[str, Any]],
        session: Any = None,
    ) -> list[dict[str, Any]]: ...

    async def create_collection(
        self, collection: str, options: dict[str, Any], session: Any = None
    ) -> None:
        """Create ``collection`` with ``options`` (for example a ``$jsonSchema`` validator)."""
        raise DriverError(f"{type(self).__name__} cannot create collections")


@dataclass
class SubmittedPipeline:
    collection: str
    stages: list[dict[str, Any]]
    session: Any = None


@dataclass
class InMemoryPipelineDriver(PipelineDriver):
    """Records every submitted pipeline and answers with canned documents.

    For development/testing: ``results`` maps a collection name to the
    documents returned for any pipeline run against it.
    """

    results: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    submitted: list[SubmittedPipeline] = field(default_factory=list)
    collections: dict[str, dict[str, Any]] = field(default_factory=dict)

    async def run_pipeline(
        self,
        collection: str,
        stages: Sequence[dict[str, Any]],
        session: Any = None,
    ) -> list[dict[str, Any]]:
        self.submitted.append(SubmittedPipeline(collection, list(stages), session))
        return [dict(document) for document in self.results.get(collection, [])]

    async def create_collection(
        self, collection: str, options: dict[str, Any], session: Any = None
    ) -> None:
        self.collections[collection] = options
