"""Pipeline drivers for docjoin."""

from docjoin.storage.driver import DriverError, InMemoryPipelineDriver, PipelineDriver
from docjoin.storage.mongo_driver import MongoPipelineDriver

__all__ = ["DriverError", "InMemoryPipelineDriver", "MongoPipelineDriver", "PipelineDriver"]
