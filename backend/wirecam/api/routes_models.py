"""
Routes for model upload, listing and mesh retrieval.

Uploads are saved (deduplicated by content hash) and a background task
builds the triangulated mesh: STEP files are tessellated with CadQuery,
STL files are read with trimesh.  The model status moves from
``preprocessing`` to ``ready`` or ``failed`` once that task finishes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, File, HTTPException, Response, UploadFile

from .models import MeshBBox, MeshResponse, ModelInfo, ModelStatusInfo
from ..services.geometry import get_mesh_for_model, precompute_mesh_for_model
from ..services.models_store import (
    ModelRecord,
    delete_model as delete_model_record,
    get_model_record,
    list_models as list_model_records,
)
from ..services.pipeline import sessions
from ..services.storage import save_model_file

logger = logging.getLogger(__name__)

router = APIRouter()


def _status_info(record: ModelRecord) -> ModelStatusInfo:
    return ModelStatusInfo(
        modelId=record.model_id,
        name=record.original_name,
        format=record.file_format,
        createdAt=record.created_at,
        status=record.status,
        errorMessage=record.error_message,
    )


@router.post("/models", response_model=ModelInfo, status_code=201)
async def upload_model(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
) -> ModelInfo:
    """Upload a STEP or STL model and schedule mesh precomputation.

    When a mesh for identical content is already cached the model is
    ``ready`` immediately and no task is scheduled.
    """
    model_info = save_model_file(file)
    if model_info.status != "ready":
        background_tasks.add_task(precompute_mesh_for_model, model_info.modelId, 0)
    return model_info


@router.get("/models", response_model=list[ModelStatusInfo])
async def list_models() -> list[ModelStatusInfo]:
    """Return all stored models with their processing status."""
    return [_status_info(r) for r in list_model_records()]


@router.get("/models/{model_id}", response_model=ModelStatusInfo)
async def get_model(model_id: str) -> ModelStatusInfo:
    record = get_model_record(model_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Model not found")
    return _status_info(record)


@router.delete("/models/{model_id}", status_code=204)
async def delete_model(model_id: str) -> Response:
    """Delete a model together with its toolpath session.

    The stored file and mesh cache are removed once no other model
    references the same content.
    """
    if not delete_model_record(model_id):
        raise HTTPException(status_code=404, detail="Model not found")
    sessions.discard(model_id)
    return Response(status_code=204)


@router.get("/models/{model_id}/mesh", response_model=MeshResponse)
async def get_mesh(model_id: str) -> MeshResponse:
    """Return the triangulated mesh of a model.

    Raises:
        HTTPException: 404 for an unknown model, 409 while the mesh is
            still being prepared or when preparation failed.
    """
    record = get_model_record(model_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Model not found")
    if record.status == "preprocessing":
        raise HTTPException(status_code=409, detail="Model mesh is still being prepared")
    mesh = get_mesh_for_model(model_id)
    if mesh is None:
        record = get_model_record(model_id)
        detail = (record.error_message if record else None) or "Mesh unavailable"
        raise HTTPException(status_code=409, detail=detail)
    bbox_min, bbox_max = mesh.bbox
    return MeshResponse(
        modelId=model_id,
        vertices=mesh.flat_vertices(),
        indices=mesh.flat_indices(),
        bbox=MeshBBox(min=bbox_min, max=bbox_max),
    )
