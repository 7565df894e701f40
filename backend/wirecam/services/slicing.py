"""
Horizontal plane slicing of triangle meshes.

Two families of cut are provided:

``perimeter_segments`` / ``slice_at_heights``
    The land‑face slicer.  The model is assumed to be oriented so its
    top and bottom faces are flat and normal to Z.  At such a height
    the perimeter is exactly the set of triangle edges with both
    endpoints on the plane, so no interpolation takes place and the
    output reproduces the mesh vertices bit for bit.  A height that
    does not coincide with a land face simply yields no segments.

``section_segments`` / ``section_at_z``
    A general section at any height, used for the intermediate levels
    (quarters and middle) needed by corner synchronisation.  Each
    triangle is classified against the plane and contributes the edge
    lying on the plane, the segment from an on‑plane vertex to the
    crossing of the opposite edge, or the segment joining two edge
    crossings.

All cuts are assembled into ordered polylines with
:func:`~wirecam.services.polyline_graph.build_polylines`.  Closed
loops are then wound counter‑clockwise in XY, so the rails at every
height run in the same direction whatever the triangle winding.  Debug
tracing of segment counts is enabled with the ``CAM_DEBUG`` environment
variable.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .errors import GeometryInputError
from .geom import Perimeter, Point3, Segment3, lerp, orient_ccw
from .mesh import TriangleMesh
from .polyline_graph import build_polylines

logger = logging.getLogger(__name__)


@dataclass
class SlicePerimeters:
    """Bottom (``p0``) and top (``p1``) perimeters of a sliced model."""

    p0: Perimeter
    p1: Perimeter
    z_bottom: float
    z_top: float


@dataclass
class PerimeterSet:
    """Five horizontal cuts through a model, top to bottom.

    Corner synchronisation compares the outline at a quarter of the
    height above and below the middle with the outline at the
    extremes, so the set carries all five levels together with the
    heights they were taken at.
    """

    top: Perimeter
    upper_quarter: Perimeter
    middle: Perimeter
    lower_quarter: Perimeter
    bottom: Perimeter
    heights: Tuple[float, float, float, float, float] = (0.0, 0.0, 0.0, 0.0, 0.0)


def _check_mesh(mesh: TriangleMesh) -> None:
    if mesh is None or mesh.is_empty:
        raise GeometryInputError("cannot slice an empty mesh")


def _check_height(name: str, z: float) -> float:
    try:
        value = float(z)
    except (TypeError, ValueError) as exc:
        raise GeometryInputError(f"{name} must be a number, got {z!r}") from exc
    if not math.isfinite(value):
        raise GeometryInputError(f"{name} must be finite, got {value}")
    return value


def perimeter_segments(
    mesh: TriangleMesh,
    z: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Segment3]:
    """Return the triangle edges lying in the plane ``Z = z``.

    A triangle contributes its edge when exactly two of its vertices are
    within ``tol.plane`` of ``z``.  Triangles lying in the plane (three
    vertices on it) and triangles touching it at one vertex contribute
    nothing.
    """
    segments: List[Segment3] = []
    for a, b, c in mesh.triangles():
        on = [abs(a[2] - z) < tol.plane, abs(b[2] - z) < tol.plane, abs(c[2] - z) < tol.plane]
        if sum(on) != 2:
            continue
        pts = [p for p, flag in zip((a, b, c), on) if flag]
        segments.append((pts[0], pts[1]))
    return segments


def _crossing(p: Point3, q: Point3, z: float) -> Point3:
    t = (z - p[2]) / (q[2] - p[2])
    x, y, _ = lerp(p, q, t)
    return (x, y, z)


def section_segments(
    mesh: TriangleMesh,
    z: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Segment3]:
    """Cut every triangle with the plane ``Z = z``.

    Vertices within ``tol.plane`` of the plane count as lying on it.
    Triangles entirely on one side of the plane, or entirely in it, are
    skipped.  Interpolated crossing points are snapped to exactly ``z``.
    """
    segments: List[Segment3] = []
    for tri in mesh.triangles():
        side = []
        for v in tri:
            d = v[2] - z
            if abs(d) < tol.plane:
                side.append(0)
            elif d < 0:
                side.append(-1)
            else:
                side.append(1)
        on_count = side.count(0)
        if on_count == 3 or side.count(-1) == 3 or side.count(1) == 3:
            continue
        if on_count == 2:
            pts = [v for v, s in zip(tri, side) if s == 0]
            segments.append((pts[0], pts[1]))
        elif on_count == 1:
            k = side.index(0)
            p = tri[(k + 1) % 3]
            q = tri[(k + 2) % 3]
            sp = side[(k + 1) % 3]
            sq = side[(k + 2) % 3]
            if sp * sq < 0:
                segments.append((tri[k], _crossing(p, q, z)))
        else:
            crossings = []
            for i, j in ((0, 1), (1, 2), (2, 0)):
                if side[i] * side[j] < 0:
                    crossings.append(_crossing(tri[i], tri[j], z))
            if len(crossings) == 2:
                segments.append((crossings[0], crossings[1]))
    return segments


def _assemble(segments: List[Segment3], tol: Tolerances) -> Perimeter:
    return [orient_ccw(p, tol.point_merge) for p in build_polylines(segments, tol=tol)]


def section_at_z(
    mesh: TriangleMesh,
    z: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> Perimeter:
    """Return the ordered polylines of a general section at height ``z``."""
    _check_mesh(mesh)
    z = _check_height("z", z)
    segments = section_segments(mesh, z, tol)
    polylines = _assemble(segments, tol)
    if cam_debug_enabled():
        logger.debug(
            "section_at_z: z=%.6f segments=%d polylines=%d",
            z,
            len(segments),
            len(polylines),
        )
    return polylines


def slice_at_heights(
    mesh: TriangleMesh,
    z_bottom: Optional[float] = None,
    z_top: Optional[float] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> SlicePerimeters:
    """Extract the bottom and top land‑face perimeters of a mesh.

    Args:
        mesh: The model, oriented with its land faces normal to Z.
        z_bottom: Height of the bottom face.  Defaults to the minimum Z
            of the mesh bounding box.
        z_top: Height of the top face.  Defaults to the maximum Z of the
            mesh bounding box.
        tol: Tolerance bundle.

    Returns:
        :class:`SlicePerimeters` whose ``p0`` and ``p1`` hold the
        polylines found at each height.  Heights that do not coincide
        with a flat face give empty perimeters.

    Raises:
        GeometryInputError: If the mesh is empty or a height is not a
            finite number.
    """
    _check_mesh(mesh)
    lo, hi = mesh.z_range()
    zb = _check_height("z_bottom", lo if z_bottom is None else z_bottom)
    zt = _check_height("z_top", hi if z_top is None else z_top)

    bottom_segments = perimeter_segments(mesh, zb, tol)
    top_segments = perimeter_segments(mesh, zt, tol)
    p0 = _assemble(bottom_segments, tol)
    p1 = _assemble(top_segments, tol)
    if cam_debug_enabled():
        logger.debug(
            "slice_at_heights: z_bottom=%.6f segments=%d loops=%d; z_top=%.6f segments=%d loops=%d",
            zb,
            len(bottom_segments),
            len(p0),
            zt,
            len(top_segments),
            len(p1),
        )
    if not p0 or not p1:
        logger.info(
            "slice_at_heights: no land face found at z_bottom=%s (%d loops) or z_top=%s (%d loops)",
            zb,
            len(p0),
            zt,
            len(p1),
        )
    return SlicePerimeters(p0=p0, p1=p1, z_bottom=zb, z_top=zt)


def slice_perimeter_set(
    mesh: TriangleMesh,
    z_bottom: Optional[float] = None,
    z_top: Optional[float] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> PerimeterSet:
    """Cut the five levels used by corner synchronisation.

    The extremes are taken with the land‑face slicer; the quarter and
    middle heights with the general section.
    """
    ends = slice_at_heights(mesh, z_bottom, z_top, tol)
    zb, zt = ends.z_bottom, ends.z_top
    height = zt - zb
    z_lower = zb + 0.25 * height
    z_mid = zb + 0.5 * height
    z_upper = zb + 0.75 * height
    return PerimeterSet(
        top=ends.p1,
        upper_quarter=section_at_z(mesh, z_upper, tol),
        middle=section_at_z(mesh, z_mid, tol),
        lower_quarter=section_at_z(mesh, z_lower, tol),
        bottom=ends.p0,
        heights=(zt, z_upper, z_mid, z_lower, zb),
    )


__all__ = [
    "SlicePerimeters",
    "PerimeterSet",
    "perimeter_segments",
    "section_segments",
    "section_at_z",
    "slice_at_heights",
    "slice_perimeter_set",
]
