"""docjoin: compiles entity schemas and queries into MongoDB aggregation pipelines."""

__version__ = "0.4.0"
