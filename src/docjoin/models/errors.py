"""Compilation exceptions and structured schema-document errors."""

from __future__ import annotations

from pydantic import BaseModel


class CompilationError(Exception):
    """Base class for every error raised while compiling a pipeline."""


class SchemaError(CompilationError):
    """Raised for an unknown entity, column or path, or a missing primary key."""

    def __init__(self, message: str, *, entity: str | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.path = path


class TypeMismatchError(CompilationError):
    """Raised when an operator receives a scalar where it expects a sequence, or vice versa."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class UnsupportedOperatorError(CompilationError):
    """Raised when a match expression uses an operator the compiler does not know."""

    def __init__(self, operator: object, path: str) -> None:
        self.operator = operator
        self.path = path
        super().__init__(f"Unsupported operator '{operator}' for column '{path}'")


class UnsupportedTypeError(CompilationError):
    """Raised when a column declares a type the document-schema builder cannot express."""

    def __init__(self, type_name: str, column: str) -> None:
        self.type_name = type_name
        self.column = column
        super().__init__(f"Unsupported column type '{type_name}' for column '{column}'")


class SourceSpan(BaseModel):
    """Points to exact location in YAML source for error reporting."""

    file: str
    line: int
    column: int
    end_line: int | None = None
    end_column: int | None = None


class SemanticError(BaseModel):
    """A structured schema-document error with optional source position and suggestions."""

    code: str
    message: str
    path: str | None = None
    span: SourceSpan | None = None
    suggestions: list[str] = []


class ValidationResult(BaseModel):
    """Result of schema-document validation."""

    valid: bool
    errors: list[SemanticError] = []
    warnings: list[SemanticError] = []
