"""
Detection of rulings: straight mesh edge chains that span the part height.

A ruled side wall of a wire‑EDM part is tessellated into triangles whose
shared edges run straight from the bottom face to the top face.  Those
edges are the natural synchronisation anchors between the two rails,
because the wire must lie exactly along them.

Detection runs in two steps:

1. ``find_ruling_candidates`` welds mesh vertices, builds edge adjacency
   and grows every unused edge into a maximal straight chain.  A chain
   grows forwards while exactly one unused neighbouring edge continues
   in the seed direction, and backwards while exactly one continues in
   the opposite direction.  Only the two chain endpoints are kept.
2. ``filter_rulings_by_span`` keeps the candidates whose vertical extent
   covers at least ``span_percentage`` of the part height.

``detect_rulings`` chains both steps and validates its parameters.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .errors import GeometryInputError
from .geom import Point3, PointIndex, as_point, dot, normalize, sub
from .mesh import TriangleMesh

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Ruling:
    """A straight segment joining the bottom rail to the top rail.

    ``bottom`` is always the endpoint with the lower (or equal) Z.
    """

    bottom: Point3
    top: Point3

    @classmethod
    def from_endpoints(cls, a: Sequence[float], b: Sequence[float]) -> "Ruling":
        pa = as_point(a)
        pb = as_point(b)
        if pa[2] > pb[2]:
            return cls(bottom=pb, top=pa)
        return cls(bottom=pa, top=pb)

    @property
    def height(self) -> float:
        return self.top[2] - self.bottom[2]


def _edge_key(u: int, v: int) -> Tuple[int, int]:
    return (u, v) if u < v else (v, u)


def _build_edge_graph(
    mesh: TriangleMesh, tol: Tolerances
) -> Tuple[List[Point3], List[List[int]], Dict[Tuple[int, int], None]]:
    welded = PointIndex(tol.vertex_weld)
    adjacency: List[List[int]] = []
    # dict preserves first-seen edge order
    edges: Dict[Tuple[int, int], None] = {}
    for tri in mesh.triangles():
        ids = [welded.find_or_add(p) for p in tri]
        while len(adjacency) < len(welded):
            adjacency.append([])
        for a, b in ((ids[0], ids[1]), (ids[1], ids[2]), (ids[2], ids[0])):
            if a == b:
                continue
            if b not in adjacency[a]:
                adjacency[a].append(b)
            if a not in adjacency[b]:
                adjacency[b].append(a)
            edges.setdefault(_edge_key(a, b), None)
    return welded.points, adjacency, edges


def _extend(
    start: int,
    direction: Point3,
    forward: bool,
    vertices: List[Point3],
    adjacency: List[List[int]],
    used: set,
    tol: Tolerances,
) -> List[int]:
    chain: List[int] = []
    current = start
    while True:
        candidates = []
        for nb in adjacency[current]:
            if _edge_key(current, nb) in used:
                continue
            step = sub(vertices[nb], vertices[current])
            if dot(step, step) < tol.vertex_weld:
                continue
            unit = normalize(step)
            if unit is None:
                continue
            d = dot(unit, direction)
            if (forward and d > tol.collinear_dot) or (not forward and d < -tol.collinear_dot):
                candidates.append(nb)
        if len(candidates) != 1:
            break
        nxt = candidates[0]
        used.add(_edge_key(current, nxt))
        chain.append(nxt)
        current = nxt
    return chain


def find_ruling_candidates(
    mesh: TriangleMesh,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Ruling]:
    """Return the endpoints of every maximal straight edge chain in ``mesh``.

    Each mesh edge belongs to exactly one chain.  Chains are reported
    in the order their seed edge first appears in the face list.
    """
    vertices, adjacency, edges = _build_edge_graph(mesh, tol)
    used: set = set()
    candidates: List[Ruling] = []
    for key in edges:
        if key in used:
            continue
        used.add(key)
        u, v = key
        direction = normalize(sub(vertices[v], vertices[u]))
        if direction is None:
            continue
        front = _extend(v, direction, True, vertices, adjacency, used, tol)
        back = _extend(u, direction, False, vertices, adjacency, used, tol)
        first = back[-1] if back else u
        last = front[-1] if front else v
        candidates.append(Ruling.from_endpoints(vertices[first], vertices[last]))
    if cam_debug_enabled():
        logger.debug(
            "find_ruling_candidates: welded vertices=%d edges=%d chains=%d",
            len(vertices),
            len(edges),
            len(candidates),
        )
    return candidates


def _check_span(span_percentage: float) -> float:
    span = float(span_percentage)
    if not math.isfinite(span) or span < 0.0 or span > 1.0:
        raise GeometryInputError(
            f"span_percentage must lie in [0, 1], got {span_percentage!r}"
        )
    return span


def _check_heights(bottom_z: float, top_z: float) -> Tuple[float, float]:
    if bottom_z is None or top_z is None:
        raise GeometryInputError("bottom_z and top_z are required for ruling detection")
    zb = float(bottom_z)
    zt = float(top_z)
    if not (math.isfinite(zb) and math.isfinite(zt)):
        raise GeometryInputError("ruling heights must be finite")
    return zb, zt


def filter_rulings_by_span(
    candidates: Sequence[Ruling],
    bottom_z: float,
    top_z: float,
    span_percentage: float = 1.0,
) -> List[Ruling]:
    """Keep candidates whose height is at least ``span_percentage`` of the part height.

    Raises:
        GeometryInputError: If ``span_percentage`` lies outside [0, 1]
            or a height is not finite.
    """
    span = _check_span(span_percentage)
    zb, zt = _check_heights(bottom_z, top_z)
    required = abs(zt - zb) * span
    return [r for r in candidates if abs(r.top[2] - r.bottom[2]) >= required]


def detect_rulings(
    mesh: TriangleMesh,
    bottom_z: float,
    top_z: float,
    span_percentage: float = 1.0,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Ruling]:
    """Find the rulings of ``mesh`` spanning from ``bottom_z`` to ``top_z``.

    Args:
        mesh: The model.
        bottom_z: Height of the bottom rail.
        top_z: Height of the top rail.
        span_percentage: Minimum fraction of the part height a chain
            must cover, in [0, 1].  ``1.0`` keeps only full‑height chains.
        tol: Tolerance bundle.

    Returns:
        The qualifying rulings, bottom endpoint first.
    """
    span = _check_span(span_percentage)
    zb, zt = _check_heights(bottom_z, top_z)
    if mesh is None or mesh.is_empty:
        raise GeometryInputError("cannot detect rulings on an empty mesh")
    candidates = find_ruling_candidates(mesh, tol)
    rulings = filter_rulings_by_span(candidates, zb, zt, span)
    logger.info(
        "detect_rulings: %d of %d candidates span >= %.0f%% of height %.4f",
        len(rulings),
        len(candidates),
        span * 100.0,
        abs(zt - zb),
    )
    return rulings


__all__ = [
    "Ruling",
    "find_ruling_candidates",
    "filter_rulings_by_span",
    "detect_rulings",
]
