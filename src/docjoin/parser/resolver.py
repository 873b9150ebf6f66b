"""Schema document resolution: raw ``entities:`` mapping → typed ``EntitySchema`` objects."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from docjoin.models.errors import SemanticError, SourceSpan, ValidationResult
from docjoin.models.query import Query
from docjoin.models.schema import Column, EntitySchema, Format, RealColumn, VirtualColumn
from docjoin.parser.loader import SourceMap

_REAL_KEYS = frozenset(
    {
        "type",
        "formats",
        "alias",
        "required",
        "minimum",
        "maximum",
        "unique",
        "values",
        "pattern",
        "entity",
        "items",
    }
)
_JOIN_KEYS = frozenset({"entity", "local", "foreign", "multiple", "all", "fields", "query"})
_FORMAT_NAMES = [f.value for f in Format]


class SchemaResolver:
    """Turns a raw schema document into entity schemas.

    Problems are collected rather than raised so one pass reports all of
    them; entities that fail to parse are left out of the result.
    """

    def resolve(
        self,
        raw: dict[str, Any],
        source_map: SourceMap | None = None,
    ) -> tuple[dict[str, EntitySchema], ValidationResult]:
        errors: list[SemanticError] = []
        warnings: list[SemanticError] = []
        entities: dict[str, EntitySchema] = {}

        raw_entities = raw.get("entities", {})
        if not isinstance(raw_entities, dict):
            errors.append(
                SemanticError(
                    code="ENTITIES_PARSE_ERROR",
                    message="'entities' must be a YAML mapping",
                    path="entities",
                    span=_span(source_map, "entities"),
                )
            )
            raw_entities = {}
        elif not raw_entities:
            warnings.append(
                SemanticError(code="EMPTY_SCHEMA", message="Schema document declares no entities")
            )

        for name, raw_entity in raw_entities.items():
            path = f"entities.{name}"
            if not isinstance(raw_entity, dict):
                errors.append(
                    SemanticError(
                        code="ENTITY_PARSE_ERROR",
                        message=f"Entity '{name}' must be a mapping",
                        path=path,
                        span=_span(source_map, path),
                    )
                )
                continue
            columns, column_errors = self._resolve_columns(name, raw_entity, source_map)
            errors.extend(column_errors)
            entities[name] = EntitySchema(
                name=name,
                storage=str(raw_entity.get("storage", "")),
                columns=columns,
                primary=raw_entity.get("primary"),
            )

        return entities, ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _resolve_columns(
        self,
        entity: str,
        raw_entity: dict[str, Any],
        source_map: SourceMap | None,
    ) -> tuple[dict[str, Column], list[SemanticError]]:
        columns: dict[str, Column] = {}
        errors: list[SemanticError] = []
        raw_columns = raw_entity.get("columns", {})
        if not isinstance(raw_columns, dict):
            path = f"entities.{entity}.columns"
            errors.append(
                SemanticError(
                    code="COLUMN_PARSE_ERROR",
                    message=f"Columns of entity '{entity}' must be a mapping",
                    path=path,
                    span=_span(source_map, path),
                )
            )
            return columns, errors

        for name, data in raw_columns.items():
            path = f"entities.{entity}.columns.{name}"
            if isinstance(data, str):
                data = {"type": data}
            if not isinstance(data, dict):
                errors.append(
                    SemanticError(
                        code="COLUMN_PARSE_ERROR",
                        message=f"Column '{name}' in entity '{entity}' must be a mapping or a type name",
                        path=path,
                        span=_span(source_map, path),
                    )
                )
                continue
            try:
                if "join" in data:
                    columns[name] = self._virtual(name, data["join"], path, errors, source_map)
                else:
                    columns[name] = self._real(name, data, path, errors, source_map)
            except (ValidationError, TypeError, ValueError) as exc:
                errors.append(
                    SemanticError(
                        code="COLUMN_PARSE_ERROR",
                        message=f"Failed to parse column '{name}' in entity '{entity}': {exc}",
                        path=path,
                        span=_span(source_map, path),
                    )
                )
        return columns, errors

    def _real(
        self,
        name: str,
        data: dict[str, Any],
        path: str,
        errors: list[SemanticError],
        source_map: SourceMap | None,
    ) -> RealColumn:
        _check_keys(data, _REAL_KEYS, path, errors, source_map)
        raw_formats = data.get("formats", data.get("type", []))
        if isinstance(raw_formats, str):
            raw_formats = [raw_formats]
        formats: list[Format] = []
        for raw_format in raw_formats:
            fmt = self._format(raw_format, f"{path}.formats", errors, source_map)
            if fmt is not None:
                formats.append(fmt)
        items = None
        if data.get("items") is not None:
            items = self._format(data["items"], f"{path}.items", errors, source_map)
        if data.get("entity") is not None and not formats:
            formats = [Format.OBJECT]
        return RealColumn(
            name=name,
            alias=data.get("alias"),
            formats=formats,
            required=bool(data.get("required", False)),
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            unique=data.get("unique"),
            values=data.get("values"),
            pattern=data.get("pattern"),
            entity=data.get("entity"),
            items=items,
        )

    def _virtual(
        self,
        name: str,
        join: Any,
        path: str,
        errors: list[SemanticError],
        source_map: SourceMap | None,
    ) -> VirtualColumn:
        if not isinstance(join, dict):
            raise TypeError("'join' must be a mapping")
        _check_keys(join, _JOIN_KEYS, f"{path}.join", errors, source_map)
        for key in ("local", "entity"):
            if key not in join:
                raise ValueError(f"join is missing required key '{key}'")
        query = join.get("query")
        return VirtualColumn(
            name=name,
            local=join["local"],
            entity=join["entity"],
            foreign=join.get("foreign", "id"),
            multiple=bool(join.get("multiple", False)),
            all=bool(join.get("all", False)),
            fields=list(join.get("fields", [])),
            query=Query.model_validate(query) if query is not None else None,
        )

    @staticmethod
    def _format(
        raw: Any,
        path: str,
        errors: list[SemanticError],
        source_map: SourceMap | None,
    ) -> Format | None:
        try:
            return Format(str(raw).lower())
        except ValueError:
            errors.append(
                SemanticError(
                    code="UNKNOWN_FORMAT",
                    message=f"Unknown column format '{raw}'",
                    path=path,
                    span=_span(source_map, path),
                    suggestions=_suggest_similar(str(raw), _FORMAT_NAMES),
                )
            )
            return None


def _check_keys(
    data: dict[str, Any],
    allowed: frozenset[str],
    path: str,
    errors: list[SemanticError],
    source_map: SourceMap | None,
) -> None:
    for key in data:
        if key in allowed or key == "join":
            continue
        key_path = f"{path}.{key}"
        errors.append(
            SemanticError(
                code="UNKNOWN_KEY",
                message=f"Unknown key '{key}' at '{path}'",
                path=key_path,
                span=_span(source_map, key_path),
                suggestions=_suggest_similar(key, sorted(allowed)),
            )
        )


def _span(source_map: SourceMap | None, path: str) -> SourceSpan | None:
    return source_map.get(path) if source_map else None


def _suggest_similar(name: str, candidates: list[str], max_suggestions: int = 3) -> list[str]:
    """Suggest close candidates for 'did you mean?' messages."""
    lowered = name.lower()
    scored: list[tuple[int, str]] = []
    for candidate in candidates:
        other = candidate.lower()
        if lowered in other or other in lowered:
            scored.append((0, candidate))
            continue
        common = sum(1 for char in set(lowered) if char in other)
        scored.append((len(lowered) + len(other) - 2 * common, candidate))
    scored.sort(key=lambda item: item[0])
    return [candidate for _, candidate in scored[:max_suggestions]]
