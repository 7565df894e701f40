"""
Geometry ingestion for uploaded models.

This module turns a stored upload into the :class:`TriangleMesh`
consumed by the CAM pipeline and caches the result on disk.

- STEP files (``.step``/``.stp``) are imported and tessellated with
  CadQuery.  CadQuery is an optional dependency; when it cannot be
  imported STEP models are marked ``failed`` with an explanatory
  message and STL uploads keep working.
- STL files are read with trimesh.  A ``trimesh.Scene`` is flattened
  into a single mesh.

Functions defined here:

- ``load_shape_for_model(model_id)`` – import a STEP file via CadQuery.
- ``tessellate_shape_to_mesh(shape, ...)`` – triangulate a CadQuery shape.
- ``load_stl_mesh(path)`` – read an STL file into a ``TriangleMesh``.
- ``precompute_mesh_for_model(model_id)`` – build and cache the mesh,
  updating the model status (run as a background task after upload).
- ``get_mesh_for_model(model_id)`` – return the cached mesh, computing
  it synchronously when the cache is missing.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import numpy as np
import trimesh

from .errors import GeometryInputError
from .mesh import TriangleMesh
from .mesh_cache import load_mesh_cache, save_mesh_cache
from .models_store import (
    MeshCacheRecord,
    get_binary_file_by_id,
    get_mesh_cache_for_binary,
    get_model_record,
    update_models_status_for_binary,
    upsert_mesh_cache_for_binary,
)

logger = logging.getLogger(__name__)

try:
    import cadquery as cq
    CADQUERY_AVAILABLE = True
    logger.info("CadQuery available; STEP import/tessellation enabled")
except Exception as exc:
    cq = None  # type: ignore
    CADQUERY_AVAILABLE = False
    logger.warning(
        "CadQuery not available, STEP uploads cannot be tessellated. Reason: %r",
        exc,
    )


def load_shape_for_model(model_id: str):
    """Import the STEP file of ``model_id`` with CadQuery.

    Returns ``None`` when CadQuery is unavailable.
    """
    if not CADQUERY_AVAILABLE:
        logger.debug("load_shape_for_model(%s): CadQuery not available, returning None", model_id)
        return None

    from .storage import get_model_file_path  # local import to avoid cycles

    file_path = get_model_file_path(model_id)
    start_time = time.perf_counter()
    try:
        shape = cq.importers.importStep(str(file_path))
    except Exception as exc:
        logger.exception("Failed to import STEP model %s via CadQuery. Reason: %r", file_path, exc)
        raise
    logger.debug(
        "load_shape_for_model(%s): CadQuery import finished in %.2f s (type=%s)",
        model_id,
        time.perf_counter() - start_time,
        type(shape),
    )
    return shape


def tessellate_shape_to_mesh(
    shape,
    linear_deflection: float = 0.1,
    angular_deflection: float = 0.2,
) -> Tuple[List[float], List[int]]:
    """Tessellate a CadQuery shape into flat vertex and index arrays.

    Args:
        shape: A CadQuery ``Shape`` or ``Workplane`` (unwrapped via ``val()``).
        linear_deflection: Linear deflection; lower values give finer meshes.
        angular_deflection: Angular deflection, where the installed
            CadQuery version supports it.

    Returns:
        ``(vertices, indices)`` as flat lists.

    Raises:
        ImportError: If CadQuery is not available.
    """
    if not CADQUERY_AVAILABLE:
        raise ImportError("CadQuery is not available for tessellation")
    cq_shape = shape.val() if hasattr(shape, "val") else shape
    vertices_data: Iterable
    triangles_data: Iterable
    try:
        try:
            vertices_data, triangles_data = cq_shape.tessellate(linear_deflection, angular_deflection)
        except TypeError:
            # older CadQuery releases accept a single tolerance
            vertices_data, triangles_data = cq_shape.tessellate(linear_deflection)
    except Exception as exc:
        logger.exception("Failed to tessellate shape via CadQuery. Reason: %r", exc)
        raise
    vertices: List[float] = []
    indices: List[int] = []
    for v in vertices_data:
        vertices.extend([float(v.x), float(v.y), float(v.z)] if hasattr(v, "x") else [float(c) for c in v])
    for tri in triangles_data:
        indices.extend([int(tri[0]), int(tri[1]), int(tri[2])])
    return vertices, indices


def mesh_from_trimesh(mesh: "trimesh.Trimesh") -> TriangleMesh:
    return TriangleMesh.from_indexed(
        np.asarray(mesh.vertices, dtype=np.float64).reshape(-1),
        np.asarray(mesh.faces, dtype=np.int64).reshape(-1),
    )


def load_stl_mesh(path: Path) -> TriangleMesh:
    """Read an STL file into a :class:`TriangleMesh`.

    Raises:
        GeometryInputError: If the file holds no triangles.
    """
    scene_or_mesh = trimesh.load(str(path), file_type="stl")
    if isinstance(scene_or_mesh, trimesh.Scene):
        mesh = scene_or_mesh.to_mesh()
    else:
        mesh = scene_or_mesh
    if len(mesh.faces) == 0:
        raise GeometryInputError(f"STL file {path.name} contains no triangles")
    return mesh_from_trimesh(mesh)


def _build_mesh(model_id: str, file_format: str, file_path: Path) -> TriangleMesh:
    if file_format == "stl":
        return load_stl_mesh(file_path)
    if not CADQUERY_AVAILABLE:
        raise ImportError("CadQuery is not installed; install the 'step' extra to import STEP files")
    shape = load_shape_for_model(model_id)
    vertices, indices = tessellate_shape_to_mesh(shape)
    return TriangleMesh.from_indexed(vertices, indices)


def precompute_mesh_for_model(model_id: str, lod: int = 0) -> None:
    """Generate and cache the triangulated mesh of an uploaded model.

    On success every model sharing the same binary is marked ``ready``;
    on failure they are marked ``failed`` with the error message.
    Errors are logged, never raised, as this runs as a background task.
    """
    record = get_model_record(model_id)
    if record is None:
        logger.warning("precompute_mesh_for_model(%s): model record not found; skipping", model_id)
        return
    binary = get_binary_file_by_id(record.binary_file_id)
    if binary is None:
        logger.error(
            "precompute_mesh_for_model(%s): binary file not found for id %s", model_id, record.binary_file_id
        )
        update_models_status_for_binary(record.binary_file_id, "failed", "Binary file not found")
        return

    start_time = time.perf_counter()
    try:
        mesh = _build_mesh(model_id, record.file_format, Path(binary.file_path))
    except Exception as exc:
        logger.exception(
            "precompute_mesh_for_model(%s): mesh generation failed. Reason: %r",
            model_id,
            exc,
        )
        update_models_status_for_binary(record.binary_file_id, "failed", str(exc))
        return

    from .storage import STORAGE_MESH_DIR  # local import to avoid cycles

    cache_path = STORAGE_MESH_DIR / f"{binary.file_hash}_lod{lod}.npz"
    try:
        bbox_min, bbox_max = save_mesh_cache(cache_path, mesh)
        upsert_mesh_cache_for_binary(
            MeshCacheRecord(
                binary_file_id=record.binary_file_id,
                lod=lod,
                mesh_path=str(cache_path),
                vertex_count=int(mesh.vertices.shape[0]),
                triangle_count=mesh.triangle_count,
                bbox_min_x=bbox_min[0],
                bbox_min_y=bbox_min[1],
                bbox_min_z=bbox_min[2],
                bbox_max_x=bbox_max[0],
                bbox_max_y=bbox_max[1],
                bbox_max_z=bbox_max[2],
            )
        )
    except Exception as exc:
        logger.exception(
            "precompute_mesh_for_model(%s): failed to store mesh cache. Reason: %r",
            model_id,
            exc,
        )
        update_models_status_for_binary(record.binary_file_id, "failed", str(exc))
        return

    update_models_status_for_binary(record.binary_file_id, "ready", None)
    logger.info(
        "precompute_mesh_for_model(%s): mesh cached at %s (verts=%d, tris=%d) in %.2f s",
        model_id,
        cache_path,
        mesh.vertices.shape[0],
        mesh.triangle_count,
        time.perf_counter() - start_time,
    )


def get_mesh_for_model(model_id: str, lod: int = 0) -> Optional[TriangleMesh]:
    """Return the cached mesh of a model, building it first if needed.

    Returns ``None`` when the model is unknown or its mesh cannot be
    produced (see the model's ``error_message``).
    """
    record = get_model_record(model_id)
    if record is None:
        return None
    cache = get_mesh_cache_for_binary(record.binary_file_id, lod=lod)
    if cache is None or not Path(cache.mesh_path).exists():
        precompute_mesh_for_model(model_id, lod=lod)
        cache = get_mesh_cache_for_binary(record.binary_file_id, lod=lod)
        if cache is None:
            return None
    try:
        mesh, _, _ = load_mesh_cache(Path(cache.mesh_path))
    except (OSError, ValueError, GeometryInputError) as exc:
        logger.exception("Failed to load mesh cache for model_id=%s. Reason: %r", model_id, exc)
        return None
    return mesh
