"""Registry endpoints: schema loading, description and pipeline compilation."""

from __future__ import annotations

import json
from dataclasses import asdict

from bson import json_util
from fastapi import APIRouter, Depends, HTTPException

from docjoin.api.deps import get_store
from docjoin.api.schemas import (
    CountRequest,
    ErrorDetail,
    PipelineRequest,
    PipelineResponse,
    RegistryDescribeResponse,
    RegistryListResponse,
    RegistryLoadRequest,
    RegistryLoadResponse,
    RegistrySummaryResponse,
)
from docjoin.compiler.pipeline import CompilationResult
from docjoin.models.errors import CompilationError
from docjoin.service.schema_store import SchemaLoadError, SchemaStore

router = APIRouter()


def _not_found(registry_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Registry '{registry_id}' not found")


def _pipeline_response(result: CompilationResult) -> PipelineResponse:
    # ObjectId/datetime operands become {"$oid": ...}/{"$date": ...}
    stages = json.loads(json_util.dumps(result.stages))
    return PipelineResponse(
        entity=result.entity,
        collection=result.collection,
        stages=stages,
        warnings=result.warnings,
        stages_valid=result.stages_valid,
    )


@router.post("", response_model=RegistryLoadResponse, status_code=201)
async def load_registry(
    body: RegistryLoadRequest,
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> RegistryLoadResponse:
    """Load a YAML schema document as a new registry."""
    try:
        result = store.load_schema(body.schema_yaml)
    except SchemaLoadError as exc:
        raise HTTPException(
            status_code=422,
            detail=[ErrorDetail(**asdict(e)).model_dump() for e in exc.errors],
        ) from None
    return RegistryLoadResponse(**asdict(result))


@router.get("", response_model=RegistryListResponse)
async def list_registries(
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> RegistryListResponse:
    return RegistryListResponse(
        registries=[RegistrySummaryResponse(**asdict(s)) for s in store.list_registries()]
    )


@router.get("/{registry_id}", response_model=RegistryDescribeResponse)
async def describe_registry(
    registry_id: str,
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> RegistryDescribeResponse:
    try:
        description = store.describe(registry_id)
    except KeyError:
        raise _not_found(registry_id) from None
    return RegistryDescribeResponse.model_validate(asdict(description))


@router.delete("/{registry_id}", status_code=204)
async def remove_registry(
    registry_id: str,
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> None:
    try:
        store.remove(registry_id)
    except KeyError:
        raise _not_found(registry_id) from None


@router.post("/{registry_id}/pipelines", response_model=PipelineResponse)
async def compile_pipeline(
    registry_id: str,
    body: PipelineRequest,
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> PipelineResponse:
    """Compile a find pipeline for one entity."""
    try:
        result = store.compile_pipeline(registry_id, body.entity, body.query, body.fields)
    except KeyError:
        raise _not_found(registry_id) from None
    except CompilationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return _pipeline_response(result)


@router.post("/{registry_id}/count", response_model=PipelineResponse)
async def compile_count(
    registry_id: str,
    body: CountRequest,
    store: SchemaStore = Depends(get_store),  # noqa: B008
) -> PipelineResponse:
    """Compile a count pipeline for one entity."""
    try:
        result = store.compile_count(registry_id, body.entity, body.query)
    except KeyError:
        raise _not_found(registry_id) from None
    except CompilationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return _pipeline_response(result)
