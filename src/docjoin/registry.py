"""Schema registry: read-only column metadata for every declared entity."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import Any, Self

from docjoin.models.errors import SchemaError
from docjoin.models.query import Query
from docjoin.models.schema import Column, EntitySchema, Format, RealColumn, VirtualColumn

EntityRef = EntitySchema | str


def _is_selected(name: str, fields: Sequence[str]) -> bool:
    """A column is selected when a requested path names it or descends into it."""
    if not fields:
        return True
    prefix = f"{name}."
    return any(path == name or path.startswith(prefix) for path in fields)


class SchemaRegistry:
    """Immutable map of entity name → ``EntitySchema``.

    Built once at startup (by ``SchemaBuilder`` or the YAML loader) and
    shared freely between threads afterwards.
    """

    def __init__(self, entities: Mapping[str, EntitySchema] | Iterable[EntitySchema]) -> None:
        if isinstance(entities, Mapping):
            items = dict(entities)
        else:
            items = {schema.name: schema for schema in entities}
        self._entities: Mapping[str, EntitySchema] = MappingProxyType(items)

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    @property
    def names(self) -> list[str]:
        return list(self._entities)

    @property
    def entities(self) -> Mapping[str, EntitySchema]:
        return self._entities

    def entity(self, ref: EntityRef) -> EntitySchema:
        """Get an entity schema by name (schemas pass through unchanged)."""
        if isinstance(ref, EntitySchema):
            return ref
        try:
            return self._entities[ref]
        except KeyError:
            raise SchemaError(f"Unknown entity '{ref}'", entity=ref) from None

    def storage_name(self, ref: EntityRef) -> str:
        """Collection name of an entity."""
        return self.entity(ref).collection

    # -- columns -------------------------------------------------------------

    def column(self, ref: EntityRef, name: str) -> Column:
        schema = self.entity(ref)
        try:
            return schema.columns[name]
        except KeyError:
            raise SchemaError(
                f"Column '{name}' does not exist in entity '{schema.name}'",
                entity=schema.name,
                path=name,
            ) from None

    def real_columns(self, ref: EntityRef, fields: Sequence[str] = ()) -> list[RealColumn]:
        """Real columns of ``ref`` selected by ``fields`` (all of them when empty)."""
        return [
            column
            for name, column in self.entity(ref).columns.items()
            if isinstance(column, RealColumn) and _is_selected(name, fields)
        ]

    def virtual_columns(self, ref: EntityRef, fields: Sequence[str] = ()) -> list[VirtualColumn]:
        """Join columns of ``ref`` selected by ``fields`` (all of them when empty)."""
        return [
            column
            for name, column in self.entity(ref).columns.items()
            if isinstance(column, VirtualColumn) and _is_selected(name, fields)
        ]

    def primary_column(self, ref: EntityRef) -> RealColumn:
        """Primary key column. Raises ``SchemaError`` when none is declared."""
        schema = self.entity(ref)
        if schema.primary is None:
            raise SchemaError(f"Entity '{schema.name}' has no primary column", entity=schema.name)
        column = self.column(schema, schema.primary)
        if not isinstance(column, RealColumn):
            raise SchemaError(
                f"Primary column '{schema.primary}' of entity '{schema.name}' is not a real column",
                entity=schema.name,
                path=schema.primary,
            )
        return column

    def nested_entity(self, column: Column) -> EntitySchema | None:
        """Entity reached through ``column``, if any."""
        if column.entity is None:
            return None
        return self.entity(column.entity)

    def resolve_path(self, ref: EntityRef, path: str) -> list[Column]:
        """Resolve a dotted property path to its column chain.

        Every segment but the last must lead into a nested entity (an
        embedded object/array or a join target).
        """
        schema: EntitySchema | None = self.entity(ref)
        root = self.entity(ref).name
        columns: list[Column] = []
        for segment in path.split("."):
            if schema is None:
                raise SchemaError(
                    f"Column '{columns[-1].name}' in path '{path}' has no nested fields",
                    entity=root,
                    path=path,
                )
            if segment not in schema.columns:
                raise SchemaError(
                    f"Column '{segment}' in path '{path}' does not exist in entity '{schema.name}'",
                    entity=root,
                    path=path,
                )
            column = schema.columns[segment]
            columns.append(column)
            if isinstance(column, RealColumn) and column.is_map:
                schema = None
            else:
                schema = self.nested_entity(column)
        return columns

    # -- naming helpers ------------------------------------------------------

    @staticmethod
    def column_name(column: Column) -> str:
        """Storage name of a column (its alias when declared)."""
        return column.storage_name

    @staticmethod
    def path_name(columns: Sequence[Column]) -> str:
        """Dotted storage path of a resolved column chain."""
        return ".".join(column.storage_name for column in columns)

    @staticmethod
    def nested_fields(column: Column, fields: Sequence[str]) -> list[str]:
        """Requested sub-paths below ``column``, with the column prefix removed."""
        prefix = f"{column.name}."
        return [path[len(prefix) :] for path in fields if path.startswith(prefix)]

    def local_name(self, ref: EntityRef, column: VirtualColumn) -> str:
        """Storage name of a join's local key."""
        local = self.entity(ref).columns.get(column.local)
        return local.storage_name if local is not None else column.local

    def foreign_name(self, column: VirtualColumn) -> str:
        """Storage name of a join's foreign key on the target entity."""
        foreign = self.entity(column.entity).columns.get(column.foreign)
        return foreign.storage_name if foreign is not None else column.foreign


class EntityBuilder:
    """Fluent builder for one entity schema."""

    def __init__(self, name: str, storage: str = "") -> None:
        self._name = name
        self._storage = storage
        self._columns: dict[str, Column] = {}
        self._primary: str | None = None

    @property
    def name(self) -> str:
        return self._name

    def primary(self, name: str = "id", alias: str | None = "_id") -> Self:
        """Declare the primary key: a required identifier column."""
        self._columns[name] = RealColumn(name=name, alias=alias, formats=[Format.ID], required=True)
        self._primary = name
        return self

    def column(self, name: str, *formats: Format, **options: Any) -> Self:
        self._columns[name] = RealColumn(name=name, formats=list(formats), **options)
        return self

    def object(self, name: str, entity: str, *, required: bool = False) -> Self:
        self._columns[name] = RealColumn(
            name=name, formats=[Format.OBJECT], entity=entity, required=required
        )
        return self

    def array(
        self,
        name: str,
        *,
        entity: str | None = None,
        items: Format | None = None,
        required: bool = False,
        unique: bool | None = None,
        minimum: float | None = None,
        maximum: float | None = None,
    ) -> Self:
        self._columns[name] = RealColumn(
            name=name,
            formats=[Format.ARRAY],
            entity=entity,
            items=items,
            required=required,
            unique=unique,
            minimum=minimum,
            maximum=maximum,
        )
        return self

    def map(
        self,
        name: str,
        *,
        entity: str | None = None,
        items: Format | None = None,
        required: bool = False,
    ) -> Self:
        self._columns[name] = RealColumn(
            name=name, formats=[Format.MAP], entity=entity, items=items, required=required
        )
        return self

    def join(
        self,
        name: str,
        *,
        local: str,
        entity: str,
        foreign: str = "id",
        query: Query | None = None,
        fields: Sequence[str] = (),
        multiple: bool = False,
        all: bool = False,  # noqa: A002
    ) -> Self:
        self._columns[name] = VirtualColumn(
            name=name,
            local=local,
            entity=entity,
            foreign=foreign,
            multiple=multiple,
            query=query,
            all=all,
            fields=list(fields),
        )
        return self

    def join_many(self, name: str, *, local: str, entity: str, foreign: str = "id", **kw: Any) -> Self:
        """Join every id of an array-valued local key."""
        return self.join(name, local=local, entity=entity, foreign=foreign, multiple=True, **kw)

    def join_all(self, name: str, *, local: str, entity: str, foreign: str = "id", **kw: Any) -> Self:
        """Join all matching rows and keep them as an array."""
        return self.join(name, local=local, entity=entity, foreign=foreign, all=True, **kw)

    def build(self) -> EntitySchema:
        return EntitySchema(
            name=self._name,
            storage=self._storage,
            columns=dict(self._columns),
            primary=self._primary,
        )


class SchemaBuilder:
    """Registers entity schemas explicitly and freezes them into a ``SchemaRegistry``."""

    def __init__(self) -> None:
        self._builders: dict[str, EntityBuilder] = {}
        self._schemas: dict[str, EntitySchema] = {}

    def entity(self, name: str, storage: str = "") -> EntityBuilder:
        """Start (or continue) declaring an entity."""
        if name not in self._builders:
            self._builders[name] = EntityBuilder(name, storage)
        return self._builders[name]

    def add(self, schema: EntitySchema) -> Self:
        """Register an already-built schema."""
        self._schemas[schema.name] = schema
        return self

    def build(self) -> SchemaRegistry:
        """Validate every declaration and return the frozen registry.

        Raises ``SchemaError`` listing every validation error found.
        """
        from docjoin.parser.validator import SchemaValidator

        schemas = dict(self._schemas)
        for name, builder in self._builders.items():
            schemas[name] = builder.build()
        errors = SchemaValidator().validate(schemas)
        if errors:
            raise SchemaError("; ".join(e.message for e in errors))
        return SchemaRegistry(schemas)
