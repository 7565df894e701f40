"""
Indexed triangle mesh used as the input of every slicing stage.

The mesh is a thin wrapper around two NumPy arrays: ``vertices`` with
shape ``(N, 3)`` and ``faces`` with shape ``(M, 3)``.  Two constructors
cover the ways geometry reaches the backend:

- ``TriangleMesh.from_soup(flat)`` – a flat list of 9 floats per
  triangle (the layout produced by browser STL loaders), where
  vertices are not shared between triangles.
- ``TriangleMesh.from_indexed(positions, indices)`` – flat positions
  (3 floats per vertex) plus flat index triples, as stored in the
  ``.npz`` mesh cache and returned by CadQuery tessellation.

Both reject malformed input with :class:`GeometryInputError` so that
downstream code can assume a non‑empty, finite, triangular mesh.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

import numpy as np

from .errors import GeometryInputError
from .geom import Point3


@dataclass
class TriangleMesh:
    """Triangle mesh backed by NumPy arrays.

    Attributes:
        vertices: ``float64`` array of shape ``(N, 3)``.
        faces: ``int64`` array of shape ``(M, 3)`` indexing ``vertices``.
    """

    vertices: np.ndarray
    faces: np.ndarray

    @classmethod
    def from_soup(cls, flat: Sequence[float]) -> "TriangleMesh":
        data = np.asarray(flat, dtype=np.float64).reshape(-1)
        if data.size == 0:
            raise GeometryInputError("mesh is empty")
        if data.size % 9 != 0:
            raise GeometryInputError(
                f"triangle soup length {data.size} is not a multiple of 9"
            )
        if not np.all(np.isfinite(data)):
            raise GeometryInputError("mesh contains non-finite coordinates")
        vertices = data.reshape(-1, 3)
        faces = np.arange(vertices.shape[0], dtype=np.int64).reshape(-1, 3)
        return cls(vertices=vertices, faces=faces)

    @classmethod
    def from_indexed(cls, positions: Sequence[float], indices: Sequence[int]) -> "TriangleMesh":
        pos = np.asarray(positions, dtype=np.float64).reshape(-1)
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        if pos.size == 0 or idx.size == 0:
            raise GeometryInputError("mesh is empty")
        if pos.size % 3 != 0:
            raise GeometryInputError(
                f"vertex array length {pos.size} is not a multiple of 3"
            )
        if idx.size % 3 != 0:
            raise GeometryInputError(
                f"index array length {idx.size} is not a multiple of 3"
            )
        if not np.all(np.isfinite(pos)):
            raise GeometryInputError("mesh contains non-finite coordinates")
        vertices = pos.reshape(-1, 3)
        if idx.min() < 0 or idx.max() >= vertices.shape[0]:
            raise GeometryInputError("mesh index out of range")
        return cls(vertices=vertices, faces=idx.reshape(-1, 3))

    @property
    def triangle_count(self) -> int:
        return int(self.faces.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.faces.shape[0] == 0

    def triangle(self, k: int) -> Tuple[Point3, Point3, Point3]:
        i0, i1, i2 = self.faces[k]
        v = self.vertices
        return (
            (float(v[i0, 0]), float(v[i0, 1]), float(v[i0, 2])),
            (float(v[i1, 0]), float(v[i1, 1]), float(v[i1, 2])),
            (float(v[i2, 0]), float(v[i2, 1]), float(v[i2, 2])),
        )

    def triangles(self) -> Iterator[Tuple[Point3, Point3, Point3]]:
        """Yield each face as three ``Point3`` tuples."""
        for k in range(self.triangle_count):
            yield self.triangle(k)

    def to_soup(self) -> List[float]:
        return self.vertices[self.faces].reshape(-1).tolist()

    def flat_vertices(self) -> List[float]:
        return self.vertices.reshape(-1).tolist()

    def flat_indices(self) -> List[int]:
        return [int(i) for i in self.faces.reshape(-1)]

    @property
    def bbox(self) -> Tuple[List[float], List[float]]:
        """Axis‑aligned bounding box as ``(min_xyz, max_xyz)`` of used vertices."""
        used = self.vertices[np.unique(self.faces.reshape(-1))]
        return used.min(axis=0).tolist(), used.max(axis=0).tolist()

    def z_range(self) -> Tuple[float, float]:
        lo, hi = self.bbox
        return lo[2], hi[2]
