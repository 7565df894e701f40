"""
Mesh cache serialization.

Triangulated meshes are stored as compressed NumPy archives (``.npz``)
holding the vertex positions, the triangle index buffer and the
bounding box.  Unlike a display mesh the CAM pipeline needs exact
coordinates (land‑face heights are compared to 1e-9), so positions are
kept in ``float64``.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Tuple

import numpy as np

from .mesh import TriangleMesh


def save_mesh_cache(path: Path, mesh: TriangleMesh) -> Tuple[List[float], List[float]]:
    """Write ``mesh`` to a compressed ``.npz`` file.

    Args:
        path: Destination file path.  Its parent directory must exist.
        mesh: The mesh to store.

    Returns:
        The bounding box ``(min_xyz, max_xyz)`` that was stored.
    """
    bbox_min, bbox_max = mesh.bbox
    np.savez_compressed(
        path,
        vertices=np.asarray(mesh.vertices, dtype=np.float64),
        indices=np.asarray(mesh.faces, dtype=np.uint32).reshape(-1),
        bbox_min=np.asarray(bbox_min, dtype=np.float64),
        bbox_max=np.asarray(bbox_max, dtype=np.float64),
    )
    return bbox_min, bbox_max


def load_mesh_cache(path: Path) -> Tuple[TriangleMesh, List[float], List[float]]:
    """Load a mesh written by :func:`save_mesh_cache`.

    Returns:
        ``(mesh, bbox_min, bbox_max)``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the archive lacks one of the expected fields.
    """
    if not path.exists():
        raise FileNotFoundError(f"Mesh cache file not found: {path}")
    with np.load(path, allow_pickle=False) as data:
        required_keys = {"vertices", "indices", "bbox_min", "bbox_max"}
        if not required_keys.issubset(data.files):
            missing = required_keys - set(data.files)
            raise ValueError(f"Mesh cache file is missing fields: {missing}")
        vertices = data["vertices"].astype(np.float64)
        indices = data["indices"].astype(np.int64)
        bbox_min = data["bbox_min"].astype(np.float64).tolist()
        bbox_max = data["bbox_max"].astype(np.float64).tolist()
    mesh = TriangleMesh.from_indexed(vertices.reshape(-1), indices)
    return mesh, bbox_min, bbox_max
