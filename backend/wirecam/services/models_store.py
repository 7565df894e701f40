"""
Metadata persistence for uploaded models.

Three SQLModel tables back the upload workflow:

- ``BinaryFileRecord`` – one row per distinct uploaded file, keyed by
  its SHA‑256 hash, so identical uploads share storage and meshes.
- ``ModelRecord`` – the user‑facing entry created by each upload,
  carrying the original filename, the file format and the processing
  status (``preprocessing``, ``ready`` or ``failed``).
- ``MeshCacheRecord`` – where the triangulated mesh of a binary lives
  on disk (a compressed ``.npz`` file) plus its size and bounding box.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, List

from sqlmodel import SQLModel, Field, select

from .db import create_db_and_tables, get_session

logger = logging.getLogger(__name__)


class BinaryFileRecord(SQLModel, table=True):
    """A unique uploaded file on disk, identified by its content hash."""

    id: Optional[int] = Field(default=None, primary_key=True)
    file_hash: str = Field(index=True, unique=True)
    file_path: str
    filesize_bytes: int
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ModelRecord(SQLModel, table=True):
    """A user-facing model entry referencing a ``BinaryFileRecord``."""

    model_id: str = Field(primary_key=True)
    binary_file_id: int = Field(foreign_key="binaryfilerecord.id")
    file_hash: str
    original_name: str
    file_path: str
    file_format: str = Field(default="step")
    filesize_bytes: int
    created_at: datetime = Field(default_factory=datetime.utcnow)
    # preprocessing, ready or failed
    status: str = Field(default="preprocessing")
    error_message: Optional[str] = None


class MeshCacheRecord(SQLModel, table=True):
    """A cached triangulation of a binary file at a given level of detail."""

    id: Optional[int] = Field(default=None, primary_key=True)
    binary_file_id: int = Field(foreign_key="binaryfilerecord.id")
    lod: int = 0
    mesh_path: str
    vertex_count: int
    triangle_count: int
    bbox_min_x: float
    bbox_min_y: float
    bbox_min_z: float
    bbox_max_x: float
    bbox_max_y: float
    bbox_max_z: float
    created_at: datetime = Field(default_factory=datetime.utcnow)


def init_db() -> None:
    """Create the tables if they do not exist.  Safe to call repeatedly."""
    create_db_and_tables()


def insert_model_record(record: ModelRecord) -> None:
    with get_session() as session:
        session.add(record)
        session.commit()


def get_model_record(model_id: str) -> Optional[ModelRecord]:
    """Retrieve a ``ModelRecord`` by its model identifier, or ``None``."""
    with get_session() as session:
        return session.get(ModelRecord, model_id)


def list_models() -> List[ModelRecord]:
    """Return all model records, oldest first."""
    with get_session() as session:
        statement = select(ModelRecord).order_by(ModelRecord.created_at)
        return list(session.exec(statement))


def get_binary_file_by_hash(file_hash: str) -> Optional[BinaryFileRecord]:
    with get_session() as session:
        statement = select(BinaryFileRecord).where(BinaryFileRecord.file_hash == file_hash)
        return session.exec(statement).first()


def get_binary_file_by_id(binary_file_id: int) -> Optional[BinaryFileRecord]:
    with get_session() as session:
        return session.get(BinaryFileRecord, binary_file_id)


def create_binary_file(file_hash: str, file_path: str, filesize_bytes: int) -> BinaryFileRecord:
    """Create and persist a new ``BinaryFileRecord``.

    Args:
        file_hash: SHA‑256 hash of the file contents.
        file_path: Absolute path to the file on disk.
        filesize_bytes: Size of the file in bytes.

    Returns:
        The persisted record with its primary key populated.
    """
    record = BinaryFileRecord(
        file_hash=file_hash,
        file_path=file_path,
        filesize_bytes=filesize_bytes,
    )
    with get_session() as session:
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def update_models_status_for_binary(binary_file_id: int, status: str, error_message: Optional[str] = None) -> None:
    """Set ``status`` (and ``error_message``) on every model sharing a binary."""
    with get_session() as session:
        stmt = select(ModelRecord).where(ModelRecord.binary_file_id == binary_file_id)
        models = session.exec(stmt).all()
        for m in models:
            m.status = status
            m.error_message = error_message
            session.add(m)
        session.commit()


def delete_model(model_id: str) -> bool:
    """Delete a model, and its binary and mesh caches once nothing references them.

    Returns:
        True if the model existed.
    """
    with get_session() as session:
        model = session.get(ModelRecord, model_id)
        if model is None:
            return False
        binary_file_id = model.binary_file_id
        session.delete(model)
        session.commit()

        stmt = select(ModelRecord).where(ModelRecord.binary_file_id == binary_file_id)
        if session.exec(stmt).first() is not None:
            return True

        caches = session.exec(
            select(MeshCacheRecord).where(MeshCacheRecord.binary_file_id == binary_file_id)
        ).all()
        for cache in caches:
            Path(cache.mesh_path).unlink(missing_ok=True)
            session.delete(cache)
        binary = session.get(BinaryFileRecord, binary_file_id)
        if binary is not None:
            Path(binary.file_path).unlink(missing_ok=True)
            session.delete(binary)
        session.commit()
        logger.info(
            "delete_model(%s): removed orphaned binary %s and %d mesh cache(s)",
            model_id,
            binary_file_id,
            len(caches),
        )
    return True


def get_mesh_cache_for_binary(binary_file_id: int, lod: int = 0) -> Optional[MeshCacheRecord]:
    with get_session() as session:
        statement = select(MeshCacheRecord).where(
            MeshCacheRecord.binary_file_id == binary_file_id,
            MeshCacheRecord.lod == lod,
        )
        return session.exec(statement).first()


def upsert_mesh_cache_for_binary(record: MeshCacheRecord) -> None:
    """Insert a mesh cache record, replacing any for the same binary and LOD."""
    with get_session() as session:
        stmt = select(MeshCacheRecord).where(
            MeshCacheRecord.binary_file_id == record.binary_file_id,
            MeshCacheRecord.lod == record.lod,
        )
        existing = session.exec(stmt).first()
        if existing is not None:
            session.delete(existing)
            session.commit()
        session.add(record)
        session.commit()
