"""MongoDB pipeline driver backed by Motor."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from docjoin.settings import Settings
from docjoin.storage.driver import DriverError, PipelineDriver

logger = logging.getLogger(__name__)


class MongoPipelineDriver(PipelineDriver):
    """Runs aggregation pipelines against one MongoDB database."""

    def __init__(
        self,
        url: str = "mongodb://localhost:27017",
        database: str = "docjoin",
        *,
        allow_disk_use: bool = True,
        server_selection_timeout_ms: int = 5000,
        **kwargs: Any,
    ) -> None:
        self._url = url
        self._database = database
        self._allow_disk_use = allow_disk_use
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self._kwargs = kwargs
        self._client: AsyncIOMotorClient[Any] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> MongoPipelineDriver:
        return cls(
            settings.mongo_url,
            settings.mongo_database,
            allow_disk_use=settings.allow_disk_use,
        )

    def connect(self) -> AsyncIOMotorClient[Any]:
        """Create and cache the Motor client. Idempotent."""
        if self._client is None:
            self._client = AsyncIOMotorClient(
                self._url,
                serverSelectionTimeoutMS=self._server_selection_timeout_ms,
                **self._kwargs,
            )
            logger.info("Connected Mongo driver to database %s", self._database)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def health_check(self) -> bool:
        """Ping the server; return True if reachable."""
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("Mongo health check failed: %s", exc)
            return False
        return True

    async def run_pipeline(
        self,
        collection: str,
        stages: Sequence[dict[str, Any]],
        session: Any = None,
    ) -> list[dict[str, Any]]:
        database = self.connect()[self._database]
        logger.debug("Submitting %d stages to %s", len(stages), collection)
        try:
            cursor = database[collection].aggregate(
                list(stages), session=session, allowDiskUse=self._allow_disk_use
            )
            return await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise DriverError(f"Pipeline on '{collection}' failed: {exc}") from exc

    async def create_collection(
        self, collection: str, options: dict[str, Any], session: Any = None
    ) -> None:
        database = self.connect()[self._database]
        try:
            await database.create_collection(collection, session=session, **options)
        except PyMongoError as exc:
            raise DriverError(f"Cannot create collection '{collection}': {exc}") from exc
