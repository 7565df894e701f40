"""
Local storage for uploaded model files.

Uploads are streamed into a temporary file while their SHA‑256 hash is
computed.  Identical content is stored once under
``storage/binary/{hash}{ext}`` and shared by every ``ModelRecord`` that
uploads it, so the (expensive) tessellation also runs once per file.
"""

from __future__ import annotations

import hashlib
import logging
import os
import uuid
from pathlib import Path

from fastapi import UploadFile, HTTPException

from ..api.models import ModelInfo
from ..config import storage_dir
from .models_store import (
    ModelRecord,
    insert_model_record,
    get_binary_file_by_hash,
    create_binary_file,
    get_mesh_cache_for_binary,
    get_model_record,
)

logger = logging.getLogger(__name__)

# extension -> file_format stored on the ModelRecord
SUPPORTED_EXTENSIONS = {
    ".step": "step",
    ".stp": "step",
    ".stl": "stl",
}

STORAGE_BINARY_DIR = storage_dir() / "binary"
STORAGE_BINARY_DIR.mkdir(parents=True, exist_ok=True)

STORAGE_TEMP_DIR = storage_dir() / "tmp"
STORAGE_TEMP_DIR.mkdir(parents=True, exist_ok=True)

STORAGE_MESH_DIR = storage_dir() / "meshes"
STORAGE_MESH_DIR.mkdir(parents=True, exist_ok=True)


def file_format_for(filename: str) -> str:
    """Return ``"step"`` or ``"stl"`` for a filename, or raise HTTP 400."""
    _, ext = os.path.splitext(filename or "")
    fmt = SUPPORTED_EXTENSIONS.get(ext.lower())
    if fmt is None:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file extension: {ext or '<none>'} (expected .step, .stp or .stl)",
        )
    return fmt


def save_model_file(upload_file: UploadFile) -> ModelInfo:
    """Persist an uploaded model file to disk and return its metadata.

    Args:
        upload_file: Incoming file from the client.

    Returns:
        ModelInfo: Identifier, filename, format and initial status.
        The status is ``ready`` when a mesh of identical content is
        already cached, ``preprocessing`` otherwise.

    Raises:
        HTTPException: 400 for an unsupported extension.
    """
    filename = upload_file.filename or ""
    file_format = file_format_for(filename)
    logger.info("Saving uploaded model %s (%s)", filename, file_format)
    model_id = uuid.uuid4().hex
    _, ext = os.path.splitext(filename)
    ext = ext.lower()

    sha256 = hashlib.sha256()
    temp_path = STORAGE_TEMP_DIR / f"tmp_{model_id}"
    with temp_path.open("wb") as tmp_file:
        while True:
            chunk = upload_file.file.read(8192)
            if not chunk:
                break
            tmp_file.write(chunk)
            sha256.update(chunk)
    file_hash = sha256.hexdigest()
    filesize_bytes = temp_path.stat().st_size
    canonical_path = STORAGE_BINARY_DIR / f"{file_hash}{ext}"

    binary = get_binary_file_by_hash(file_hash)
    if binary is None:
        if not canonical_path.exists():
            temp_path.replace(canonical_path)
        else:
            temp_path.unlink(missing_ok=True)
        binary = create_binary_file(file_hash, str(canonical_path), filesize_bytes)
    else:
        temp_path.unlink(missing_ok=True)
        canonical_path = Path(binary.file_path)

    cache = get_mesh_cache_for_binary(binary.id, lod=0)
    status = "ready" if cache is not None else "preprocessing"
    record = ModelRecord(
        model_id=model_id,
        binary_file_id=binary.id,
        file_hash=file_hash,
        original_name=filename,
        file_path=str(canonical_path),
        file_format=file_format,
        filesize_bytes=filesize_bytes,
        status=status,
    )
    insert_model_record(record)
    return ModelInfo(modelId=model_id, filename=filename, format=file_format, status=status)


def get_model_file_path(model_id: str) -> Path:
    """Return the stored file path for a model.

    Raises:
        HTTPException: 404 if the model or its file cannot be found.
    """
    record = get_model_record(model_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Model not found")
    path = Path(record.file_path)
    if not path.exists():
        logger.warning("Model %s references missing file %s", model_id, path)
        raise HTTPException(status_code=404, detail="Model file not found")
    return path
