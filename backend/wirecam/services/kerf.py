"""
Kerf compensation for a single wire position.

The wire has a finite radius ``R`` so the programmed wire axis must be
offset from the nominal surface.  A wire position is described by six
points, seen from above::

                     C
                   /
                 /
    B___________A/          top rail (P1)
                |
                |           ruling / stitch A-D
                |    F
                |  /
    E___________D/          bottom rail (P0)

``A`` and ``D`` are the current top and bottom points, ``B``/``E`` the
trailing neighbours and ``C``/``F`` the leading neighbours.  Offsetting
each rail edge perpendicular to both itself and the wire by ``R`` gives
the four *E* end points.  Where the two offset edges meet on the
outside of the corner (external solution) a miter is formed through
the *M* points, located by intersecting each offset edge with the
bisector plane.  On the inside of the corner (internal solution) the
two offset edges meet at a single *I* point.

All wire lines are finally extended to the machine guide planes at
``Z0`` (bottom) and ``Z1`` (top).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .errors import GeometryInputError
from .geom import Point3, add, as_point, cross, dot, length, normalize, points_close, scale, sub
from .stitching import ToolpathStep

logger = logging.getLogger(__name__)

PointPair = Tuple[Point3, Point3]

# (name, bottom-rail attribute, top-rail attribute)
PROJECTED_PAIRS: Tuple[Tuple[str, str, str], ...] = (
    ("A-D", "d", "a"),
    ("E_B-E_E", "e_e", "e_b"),
    ("E_C-E_F", "e_f", "e_c"),
    ("M_B-M_E", "m_e", "m_b"),
    ("M_C-M_F", "m_f", "m_c"),
    ("I_BC-I_EF", "i_ef", "i_bc"),
)


@dataclass
class KerfSolution:
    """Offset points for one wire position and their guide‑plane projections.

    ``projections`` maps each wire line (see ``PROJECTED_PAIRS``) to
    ``(point on Z0, point on Z1)``, or ``None`` when either endpoint is
    missing or the line runs parallel to the guide planes.
    """

    a: Point3
    d: Point3
    e_b: Point3
    e_c: Point3
    e_e: Point3
    e_f: Point3
    m_b: Optional[Point3] = None
    m_c: Optional[Point3] = None
    m_e: Optional[Point3] = None
    m_f: Optional[Point3] = None
    i_bc: Optional[Point3] = None
    i_ef: Optional[Point3] = None
    projections: Dict[str, Optional[PointPair]] = field(default_factory=dict)


def intersect_line_plane(
    origin: Point3,
    direction: Point3,
    plane_point: Point3,
    plane_normal: Point3,
    eps: float = 1e-9,
) -> Optional[Point3]:
    """Intersect the line ``origin + t·direction`` with a plane.

    Returns ``None`` when the line is parallel to the plane.
    """
    denom = dot(direction, plane_normal)
    if abs(denom) < eps:
        return None
    t = dot(sub(plane_point, origin), plane_normal) / denom
    return add(origin, scale(direction, t))


def project_to_guides(
    p0: Point3,
    p1: Point3,
    z0: float,
    z1: float,
    eps: float = 1e-9,
) -> Optional[PointPair]:
    """Extend the line ``p0 → p1`` to the planes ``Z = z0`` and ``Z = z1``.

    Returns ``None`` when the line has no Z component.
    """
    v = sub(p1, p0)
    if abs(v[2]) < eps:
        return None
    t0 = (z0 - p0[2]) / v[2]
    t1 = (z1 - p0[2]) / v[2]
    return add(p0, scale(v, t0)), add(p0, scale(v, t1))


def _offset(edge: Point3, wire: Point3, radius: float, label: str) -> Point3:
    unit = normalize(cross(edge, wire))
    if unit is None:
        raise GeometryInputError(f"edge {label} is parallel to the wire or has zero length")
    return scale(unit, radius)


def _scaled_bisector(x1: Point3, x2: Point3, radius: float) -> Optional[Point3]:
    unit = normalize(add(x1, x2))
    if unit is None:
        return None
    return scale(unit, radius)


def kerf_offsets(
    points: Mapping[str, Sequence[float]],
    radius: float,
    z0: float,
    z1: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> KerfSolution:
    """Solve the kerf‑compensated wire lines for one wire position.

    Args:
        points: Mapping with keys ``"A"`` … ``"F"`` (see module docstring).
        radius: Wire (kerf) radius, strictly positive.
        z0: Height of the bottom guide plane.
        z1: Height of the top guide plane.
        tol: Tolerance bundle; ``tol.projection`` guards the line/plane
            intersections.

    Returns:
        The :class:`KerfSolution`.  M points are ``None`` for a straight
        corner (no bisector) and I points are ``None`` when the offset
        edges are parallel.

    Raises:
        GeometryInputError: On a missing point, a non‑positive radius,
            non‑finite guide heights, a zero‑length wire or a rail edge
            parallel to the wire.
    """
    try:
        A, B, C, D, E, F = (as_point(points[k]) for k in ("A", "B", "C", "D", "E", "F"))
    except KeyError as exc:
        raise GeometryInputError(f"kerf input is missing point {exc.args[0]}") from exc
    r = float(radius)
    if not math.isfinite(r) or r <= 0.0:
        raise GeometryInputError(f"kerf radius must be positive, got {radius!r}")
    if not (math.isfinite(z0) and math.isfinite(z1)):
        raise GeometryInputError("guide plane heights must be finite")
    if points_close(A, D, tol.point_merge):
        raise GeometryInputError("wire line A-D has zero length")

    v_a = sub(A, D)
    v_b = sub(B, A)
    v_c = sub(C, A)
    v_d = sub(D, A)
    v_e = sub(E, D)
    v_f = sub(F, D)

    x_b = _offset(v_b, v_d, r, "A-B")
    x_c = _offset(v_c, v_d, r, "A-C")
    x_e = _offset(v_e, v_a, r, "D-E")
    x_f = _offset(v_f, v_a, r, "D-F")

    # flip each offset so the pair opens away from the neighbouring edge
    flip_c = dot(x_c, v_b) > 0
    flip_b = dot(x_b, v_c) > 0
    flip_f = dot(x_f, v_e) > 0
    flip_e = dot(x_e, v_f) > 0
    if flip_c:
        x_c = scale(x_c, -1.0)
    if flip_b:
        x_b = scale(x_b, -1.0)
    if flip_e:
        x_e = scale(x_e, -1.0)
    if flip_f:
        x_f = scale(x_f, -1.0)

    solution = KerfSolution(
        a=A,
        d=D,
        e_b=add(A, x_b),
        e_c=add(A, x_c),
        e_e=add(D, x_e),
        e_f=add(D, x_f),
    )

    eps = tol.projection
    x_bc = _scaled_bisector(x_b, x_c, r)
    if x_bc is not None:
        m_bc = add(A, x_bc)
        solution.m_b = intersect_line_plane(solution.e_b, sub(A, B), m_bc, x_bc, eps)
        solution.m_c = intersect_line_plane(solution.e_c, sub(A, C), m_bc, x_bc, eps)
    x_ef = _scaled_bisector(x_e, x_f, r)
    if x_ef is not None:
        m_ef = add(D, x_ef)
        solution.m_e = intersect_line_plane(solution.e_e, sub(D, E), m_ef, x_ef, eps)
        solution.m_f = intersect_line_plane(solution.e_f, sub(D, F), m_ef, x_ef, eps)

    solution.i_bc = intersect_line_plane(sub(A, x_b), v_b, sub(A, x_c), x_c, eps)
    solution.i_ef = intersect_line_plane(sub(D, x_e), v_e, sub(D, x_f), x_f, eps)

    for name, bottom_attr, top_attr in PROJECTED_PAIRS:
        lower = getattr(solution, bottom_attr)
        upper = getattr(solution, top_attr)
        if lower is None or upper is None:
            solution.projections[name] = None
        else:
            solution.projections[name] = project_to_guides(lower, upper, z0, z1, eps)

    if cam_debug_enabled():
        logger.debug(
            "kerf_offsets: A=%s D=%s R=%.4f |AD|=%.4f flips=(%s,%s,%s,%s) miter=%s/%s",
            A,
            D,
            r,
            length(v_a),
            flip_b,
            flip_c,
            flip_e,
            flip_f,
            x_bc is not None,
            x_ef is not None,
        )
    return solution


def kerf_along_toolpath(
    steps: Sequence[ToolpathStep],
    radius: float,
    z0: float,
    z1: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Tuple[int, KerfSolution]]:
    """Solve every wire position of a stitched path.

    Each step is treated as the ``A-D`` wire line; the previous and next
    steps supply ``B``/``E`` and ``C``/``F``.  The path is treated as
    closed (the trailing copy of the first step is ignored).  Steps for
    which no solution exists are skipped.

    Returns:
        ``(step index, solution)`` pairs in path order.
    """
    r = float(radius)
    if not math.isfinite(r) or r <= 0.0:
        raise GeometryInputError(f"kerf radius must be positive, got {radius!r}")
    if not (math.isfinite(z0) and math.isfinite(z1)):
        raise GeometryInputError("guide plane heights must be finite")
    path = list(steps)
    if len(path) > 1 and path[0] == path[-1]:
        path = path[:-1]
    n = len(path)
    if n < 3:
        return []
    solutions: List[Tuple[int, KerfSolution]] = []
    for i in range(n):
        prev = path[(i - 1) % n]
        cur = path[i]
        nxt = path[(i + 1) % n]
        points = {
            "A": cur.top,
            "B": prev.top,
            "C": nxt.top,
            "D": cur.bottom,
            "E": prev.bottom,
            "F": nxt.bottom,
        }
        try:
            solutions.append((i, kerf_offsets(points, r, z0, z1, tol)))
        except GeometryInputError as exc:
            logger.debug("kerf_along_toolpath: step %d skipped: %s", i, exc)
    return solutions


__all__ = [
    "KerfSolution",
    "PROJECTED_PAIRS",
    "intersect_line_plane",
    "project_to_guides",
    "kerf_offsets",
    "kerf_along_toolpath",
]
