"""API request/response Pydantic schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from docjoin.models.query import Query


class ErrorDetail(BaseModel):
    """A single validation error detail."""

    code: str
    message: str
    path: str | None = None
    line: int | None = None
    suggestions: list[str] = []


class ValidateRequest(BaseModel):
    """Request body for POST /validate."""

    schema_yaml: str = Field(description="YAML schema document declaring entities")


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[ErrorDetail] = []
    warnings: list[ErrorDetail] = []


class RegistryLoadRequest(BaseModel):
    """Request body for POST /registries."""

    schema_yaml: str = Field(description="YAML schema document declaring entities")


class RegistryLoadResponse(BaseModel):
    registry_id: str
    entities: list[str] = []
    warnings: list[str] = []


class RegistrySummaryResponse(BaseModel):
    registry_id: str
    entities: int


class RegistryListResponse(BaseModel):
    registries: list[RegistrySummaryResponse] = []


class ColumnInfoResponse(BaseModel):
    name: str
    storage: str
    kind: str
    formats: list[str] = []
    entity: str | None = None
    multiple: bool = False


class EntityInfoResponse(BaseModel):
    name: str
    collection: str
    primary: str | None = None
    columns: list[ColumnInfoResponse] = []


class RegistryDescribeResponse(BaseModel):
    registry_id: str
    entities: list[EntityInfoResponse] = []


class PipelineRequest(BaseModel):
    """Request body for POST /registries/{id}/pipelines."""

    entity: str
    query: Query | None = None
    fields: list[str] = Field(default=[], description="Dotted field paths; empty selects all")


class CountRequest(BaseModel):
    """Request body for POST /registries/{id}/count."""

    entity: str
    query: Query | None = None


class PipelineResponse(BaseModel):
    """Compiled stages, encoded as MongoDB extended JSON."""

    entity: str
    collection: str
    stages: list[dict[str, Any]]
    warnings: list[str] = []
    stages_valid: bool = True


class ErrorResponse(BaseModel):
    error: str
    message: str
    path: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
