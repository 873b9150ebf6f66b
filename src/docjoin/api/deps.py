"""Dependency injection for FastAPI: SchemaStore singleton."""

from __future__ import annotations

from docjoin.service.schema_store import SchemaStore

_store: SchemaStore | None = None


def init_store(store: SchemaStore) -> None:
    """Set the global SchemaStore (called at app startup)."""
    global _store  # noqa: PLW0603
    _store = store


def get_store() -> SchemaStore:
    """FastAPI ``Depends`` provider for SchemaStore."""
    if _store is None:
        raise RuntimeError("SchemaStore not initialised; call init_store() first")
    return _store


def reset_store() -> None:
    """Clear the global SchemaStore (for tests)."""
    global _store  # noqa: PLW0603
    _store = None
