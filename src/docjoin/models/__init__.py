"""Pydantic domain models for docjoin."""

from docjoin.models.errors import (
    CompilationError,
    SchemaError,
    SemanticError,
    SourceSpan,
    TypeMismatchError,
    UnsupportedOperatorError,
    UnsupportedTypeError,
    ValidationResult,
)
from docjoin.models.query import Limit, Match, Operation, Operator, Order, Query
from docjoin.models.schema import Column, EntitySchema, Format, RealColumn, VirtualColumn

__all__ = [
    "Column",
    "CompilationError",
    "EntitySchema",
    "Format",
    "Limit",
    "Match",
    "Operation",
    "Operator",
    "Order",
    "Query",
    "RealColumn",
    "SchemaError",
    "SemanticError",
    "SourceSpan",
    "TypeMismatchError",
    "UnsupportedOperatorError",
    "UnsupportedTypeError",
    "ValidationResult",
    "VirtualColumn",
]
