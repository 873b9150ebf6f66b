"""In-memory registry store: the service layer behind the REST API."""

from __future__ import annotations

import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from docjoin.compiler.pipeline import CompilationPipeline, CompilationResult
from docjoin.models.errors import SemanticError
from docjoin.models.query import Query
from docjoin.models.schema import EntitySchema, RealColumn, VirtualColumn
from docjoin.parser.loader import TrackedLoader, YAMLParseError, YAMLSafetyError
from docjoin.parser.resolver import SchemaResolver
from docjoin.parser.validator import SchemaValidator
from docjoin.registry import SchemaRegistry


@dataclass
class ErrorInfo:
    """A single validation error or warning."""

    code: str
    message: str
    path: str | None = None
    line: int | None = None
    suggestions: list[str] = field(default_factory=list)

    @classmethod
    def from_semantic(cls, error: SemanticError) -> ErrorInfo:
        return cls(
            code=error.code,
            message=error.message,
            path=error.path,
            line=error.span.line if error.span else None,
            suggestions=list(error.suggestions),
        )


class SchemaLoadError(ValueError):
    """Raised when a schema document has validation errors."""

    def __init__(self, errors: list[ErrorInfo]) -> None:
        self.errors = errors
        super().__init__("Schema validation failed: " + "; ".join(e.message for e in errors))


@dataclass
class LoadResult:
    registry_id: str
    entities: list[str]
    warnings: list[str]


@dataclass
class ColumnInfo:
    name: str
    storage: str
    kind: str
    formats: list[str] = field(default_factory=list)
    entity: str | None = None
    multiple: bool = False


@dataclass
class EntityInfo:
    name: str
    collection: str
    primary: str | None
    columns: list[ColumnInfo]


@dataclass
class RegistryDescription:
    registry_id: str
    entities: list[EntityInfo]


@dataclass
class RegistrySummary:
    registry_id: str
    entities: int


@dataclass
class ValidationSummary:
    """Result of validating a schema document without storing it."""

    valid: bool
    errors: list[ErrorInfo]
    warnings: list[ErrorInfo]


class SchemaStore:
    """Loaded schema registries keyed by short id (8-char hex).

    Thread-safe via ``threading.Lock``; each registry keeps its own
    ``CompilationPipeline``, which is stateless and safe to share.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pipelines: dict[str, CompilationPipeline] = {}
        self._loader = TrackedLoader()
        self._resolver = SchemaResolver()
        self._validator = SchemaValidator()

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex[:8]

    def _parse_and_validate(
        self, yaml_str: str
    ) -> tuple[dict[str, EntitySchema], list[ErrorInfo], list[ErrorInfo]]:
        """Parse YAML, resolve entities and run cross-entity validation."""
        try:
            raw, source_map = self._loader.load_string(yaml_str)
        except YAMLSafetyError as exc:
            return {}, [ErrorInfo(code="YAML_SAFETY_ERROR", message=str(exc))], []
        except YAMLParseError as exc:
            line = exc.span.line if exc.span else None
            return {}, [ErrorInfo(code="YAML_PARSE_ERROR", message=exc.message, line=line)], []

        entities, resolution = self._resolver.resolve(raw, source_map)
        errors = [ErrorInfo.from_semantic(e) for e in resolution.errors]
        warnings = [ErrorInfo.from_semantic(w) for w in resolution.warnings]
        if not errors:
            errors.extend(ErrorInfo.from_semantic(e) for e in self._validator.validate(entities))
        return entities, errors, warnings

    # -- public API ----------------------------------------------------------

    def load_schema(self, yaml_str: str) -> LoadResult:
        """Parse, validate and store a schema document.

        Raises ``SchemaLoadError`` if the document has validation errors.
        """
        entities, errors, warnings = self._parse_and_validate(yaml_str)
        if errors:
            raise SchemaLoadError(errors)

        registry_id = self._new_id()
        with self._lock:
            self._pipelines[registry_id] = CompilationPipeline(SchemaRegistry(entities))
        return LoadResult(
            registry_id=registry_id,
            entities=list(entities),
            warnings=[w.message for w in warnings],
        )

    def validate(self, yaml_str: str) -> ValidationSummary:
        """Validate a schema document without storing it."""
        _entities, errors, warnings = self._parse_and_validate(yaml_str)
        return ValidationSummary(valid=not errors, errors=errors, warnings=warnings)

    def get_registry(self, registry_id: str) -> SchemaRegistry:
        """Raises ``KeyError`` if not found."""
        return self._pipeline(registry_id).registry

    def describe(self, registry_id: str) -> RegistryDescription:
        registry = self.get_registry(registry_id)
        entities = [
            EntityInfo(
                name=schema.name,
                collection=schema.collection,
                primary=schema.primary,
                columns=[_column_info(c) for c in schema.columns.values()],
            )
            for schema in registry.entities.values()
        ]
        return RegistryDescription(registry_id=registry_id, entities=entities)

    def list_registries(self) -> list[RegistrySummary]:
        with self._lock:
            items = list(self._pipelines.items())
        return [RegistrySummary(registry_id=rid, entities=len(p.registry)) for rid, p in items]

    def remove(self, registry_id: str) -> None:
        """Unload a registry. Raises ``KeyError`` if not found."""
        with self._lock:
            try:
                del self._pipelines[registry_id]
            except KeyError:
                raise KeyError(f"No registry loaded with id '{registry_id}'") from None

    def compile_pipeline(
        self,
        registry_id: str,
        entity: str,
        query: Query | None = None,
        fields: Sequence[str] = (),
    ) -> CompilationResult:
        return self._pipeline(registry_id).compile(entity, query, fields)

    def compile_count(
        self, registry_id: str, entity: str, query: Query | None = None
    ) -> CompilationResult:
        return self._pipeline(registry_id).compile_count(entity, query)

    def _pipeline(self, registry_id: str) -> CompilationPipeline:
        with self._lock:
            try:
                return self._pipelines[registry_id]
            except KeyError:
                raise KeyError(f"No registry loaded with id '{registry_id}'") from None


def _column_info(column: RealColumn | VirtualColumn) -> ColumnInfo:
    if isinstance(column, VirtualColumn):
        return ColumnInfo(
            name=column.name,
            storage=column.storage_name,
            kind=column.kind,
            entity=column.entity,
            multiple=column.multiple,
        )
    return ColumnInfo(
        name=column.name,
        storage=column.storage_name,
        kind=column.kind,
        formats=[f.value for f in column.formats],
        entity=column.entity,
        multiple=column.is_array,
    )
