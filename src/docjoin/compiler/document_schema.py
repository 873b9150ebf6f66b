"""Builds ``$jsonSchema`` collection validators from entity schemas."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from docjoin.models.errors import UnsupportedTypeError
from docjoin.models.schema import EntitySchema, Format, RealColumn
from docjoin.registry import EntityRef, SchemaRegistry

_ELEMENT_TYPES: dict[Format, str] = {
    Format.OBJECT: "object",
    Format.STRING: "string",
    Format.NUMBER: "number",
    Format.BOOLEAN: "bool",
    Format.DATE: "date",
    Format.ID: "objectId",
}

_SCALAR_TYPES: dict[Format, str] = {
    Format.ID: "objectId",
    Format.NULL: "null",
    Format.BINARY: "binData",
    Format.BOOLEAN: "bool",
    Format.TIMESTAMP: "timestamp",
    Format.DATE: "date",
}

_NUMERIC_TYPES: dict[Format, str] = {
    Format.INTEGER: "int",
    Format.DECIMAL: "double",
    Format.NUMBER: "number",
}


def _set(target: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        target[key] = value


def _set_count(target: dict[str, Any], key: str, value: float | None) -> None:
    if value is not None:
        target[key] = int(value)


class DocumentSchemaBuilder:
    """Transcribes real columns into ``$jsonSchema`` documents."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self._registry = registry
        self._expanding: list[str] = []

    def entity_document(self, schema: EntitySchema) -> dict[str, Any]:
        """Document for every real column of ``schema``."""
        self._expanding.append(schema.name)
        try:
            return self.document(self._registry.real_columns(schema))
        finally:
            self._expanding.pop()

    def document(self, columns: Iterable[RealColumn]) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "bsonType": "object",
            "properties": {},
            "additionalProperties": False,
        }
        for column in columns:
            name = column.storage_name
            if column.required:
                schema.setdefault("required", []).append(name)
            schema["properties"][name] = self.property(column)
        return schema

    def property(self, column: RealColumn) -> dict[str, Any]:
        prop: dict[str, Any] = {"bsonType": []}
        for fmt in column.formats:
            if fmt in _SCALAR_TYPES:
                prop["bsonType"].append(_SCALAR_TYPES[fmt])
            elif fmt in _NUMERIC_TYPES:
                prop["bsonType"].append(_NUMERIC_TYPES[fmt])
                _set(prop, "minimum", column.minimum)
                _set(prop, "maximum", column.maximum)
            elif fmt is Format.STRING:
                prop["bsonType"].append("string")
                _set_count(prop, "minLength", column.minimum)
                _set_count(prop, "maxLength", column.maximum)
            elif fmt is Format.ENUMERATION:
                prop["bsonType"].append("string")
                prop["enum"] = list(column.values or [])
            elif fmt is Format.PATTERN:
                prop["bsonType"].append("string")
                _set(prop, "pattern", column.pattern)
            elif fmt is Format.ARRAY:
                prop["bsonType"].append("array")
                _set_count(prop, "minItems", column.minimum)
                _set_count(prop, "maxItems", column.maximum)
                _set(prop, "uniqueItems", column.unique)
                prop["items"] = self._element(column)
            elif fmt is Format.MAP:
                prop["bsonType"].append("object")
                prop["additionalProperties"] = self._element(column)
            elif fmt is Format.OBJECT:
                prop["bsonType"].append("object")
                if column.entity is None:
                    prop["additionalProperties"] = True
                else:
                    nested = self._nested(column)
                    prop["additionalProperties"] = "properties" not in nested
                    _set(prop, "properties", nested.get("properties"))
                    _set(prop, "required", nested.get("required"))
            else:
                raise UnsupportedTypeError(str(fmt), column.name)
        return prop

    def _element(self, column: RealColumn) -> dict[str, Any]:
        """Schema of one array element or map value."""
        if column.entity is not None:
            return self._nested(column)
        if column.items is None:
            return self.document([])
        if column.items not in _ELEMENT_TYPES:
            raise UnsupportedTypeError(str(column.items), column.name)
        return {"bsonType": _ELEMENT_TYPES[column.items]}

    def _nested(self, column: RealColumn) -> dict[str, Any]:
        """Embedded entity document; an entity already being expanded stays opaque."""
        nested = self._registry.nested_entity(column)
        if nested is None:
            return self.document([])
        if nested.name in self._expanding:
            return {"bsonType": "object"}
        return self.entity_document(nested)


def build_validator(registry: SchemaRegistry, entity: EntityRef) -> dict[str, Any]:
    """Collection options enforcing the stored shape of ``entity``."""
    builder = DocumentSchemaBuilder(registry)
    return {
        "validator": {"$jsonSchema": builder.entity_document(registry.entity(entity))},
        "validationLevel": "strict",
        "validationAction": "error",
    }
