"""Entity schema types: real columns, virtual (join) columns and entities."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from docjoin.models.query import Query


class Format(StrEnum):
    ID = "id"
    NULL = "null"
    BINARY = "binary"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DECIMAL = "decimal"
    NUMBER = "number"
    STRING = "string"
    ENUMERATION = "enumeration"
    PATTERN = "pattern"
    TIMESTAMP = "timestamp"
    DATE = "date"
    ARRAY = "array"
    MAP = "map"
    OBJECT = "object"


class RealColumn(BaseModel):
    """A locally stored value: scalar, embedded object, array or map."""

    kind: Literal["real"] = "real"
    name: str
    alias: str | None = None
    formats: list[Format] = []
    required: bool = False
    minimum: float | None = None
    maximum: float | None = None
    unique: bool | None = None
    values: list[str] | None = None
    pattern: str | None = None
    entity: str | None = None
    items: Format | None = None

    model_config = {"frozen": True}

    @property
    def storage_name(self) -> str:
        return self.alias or self.name

    @property
    def is_map(self) -> bool:
        return Format.MAP in self.formats

    @property
    def is_array(self) -> bool:
        return Format.ARRAY in self.formats


class VirtualColumn(BaseModel):
    """A foreign relationship resolved at query time through ``$lookup``."""

    kind: Literal["virtual"] = "virtual"
    name: str
    local: str
    entity: str
    foreign: str
    multiple: bool = False
    query: Query | None = None
    all: bool = False
    fields: list[str] = []

    model_config = {"frozen": True}

    @property
    def storage_name(self) -> str:
        return self.name


Column = Annotated[RealColumn | VirtualColumn, Field(discriminator="kind")]


class EntitySchema(BaseModel):
    """A named row of columns stored in (or embedded into) a collection."""

    name: str
    storage: str = ""
    columns: dict[str, Column] = {}
    primary: str | None = None

    model_config = {"frozen": True}

    @property
    def collection(self) -> str:
        return self.storage or self.name
