"""
Corner synchronisation between the top and bottom rails.

At a sharp corner of the part the wire has to pass through the corner
of the middle section while its guides sit on the top and bottom
rails.  Stitching alone may interpolate straight across such a corner,
so this module inserts an extra matched vertex pair on both rails.

For each sharp corner ``c`` of the middle perimeter:

1. the bottom and lower‑quarter rails are point‑reflected through ``c``;
2. the reflected bottom is intersected with the top rail and the
   reflected lower quarter with the upper quarter;
3. a top point ``t`` is accepted when some upper/lower intersection
   lies on the line from ``c`` to ``t`` (the wire is straight through
   all four levels), the closest such ``t`` to ``c`` wins;
4. ``t`` is inserted into the top rail and its reflection ``2c - t``
   into the bottom rail, and the two indices form a sync pair.

Corners without an accepted solution are skipped.  Neither input rail
is modified; insertions happen on copies.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .errors import GeometryInputError
from .geom import (
    Perimeter,
    Point3,
    Polyline,
    SyncPair,
    distance,
    mirror_point,
    open_loop,
    points_close,
)
from .intersection import find_intersections
from .slicing import PerimeterSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolutionLine:
    """Wire line through a synchronised corner.

    ``start`` is the middle‑perimeter corner and ``end`` the sync point
    on the top rail.
    """

    middle_index: int
    start: Point3
    end: Point3


@dataclass
class CornerSyncResult:
    top: Polyline = field(default_factory=list)
    bottom: Polyline = field(default_factory=list)
    sync_pairs: List[SyncPair] = field(default_factory=list)
    solution_lines: List[SolutionLine] = field(default_factory=list)


def corner_angle(prev: Point3, cur: Point3, nxt: Point3) -> float:
    """Interior angle at ``cur`` in degrees, measured in XY.

    Uses the law of cosines on the triangle ``prev, cur, nxt``.  A
    neighbour coinciding with ``cur`` makes the angle undefined; 180 is
    returned so the vertex is treated as straight.
    """
    a = math.hypot(prev[0] - cur[0], prev[1] - cur[1])
    b = math.hypot(nxt[0] - cur[0], nxt[1] - cur[1])
    if a * b < 1e-9:
        return 180.0
    c = math.hypot(prev[0] - nxt[0], prev[1] - nxt[1])
    cos_angle = (a * a + b * b - c * c) / (2.0 * a * b)
    return math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))


def mirror_polyline(polyline: Sequence[Point3], center: Point3) -> Polyline:
    return [mirror_point(p, center) for p in polyline]


def insert_point(
    loop: Sequence[Point3],
    point: Point3,
    eps: float,
) -> Optional[Tuple[Polyline, int, bool]]:
    """Insert ``point`` into a copy of a cyclic ``loop``.

    An existing vertex within ``eps`` is reused.  Otherwise the point is
    spliced into the edge ``(a, b)`` for which ``|a p| + |p b|`` matches
    ``|a b|`` within ``eps``; if several edges qualify the one with the
    smallest mismatch wins.

    Returns:
        ``(new_loop, index, inserted)`` or ``None`` if the point lies on
        no edge.  ``inserted`` is False when a vertex was reused.
    """
    for i, q in enumerate(loop):
        if points_close(q, point, eps):
            return list(loop), i, False
    n = len(loop)
    best_edge = -1
    best_residual = math.inf
    for i in range(n):
        a = loop[i]
        b = loop[(i + 1) % n]
        residual = abs(distance(a, point) + distance(point, b) - distance(a, b))
        if residual < eps and residual < best_residual:
            best_residual = residual
            best_edge = i
    if best_edge < 0:
        return None
    new_loop = list(loop)
    new_loop.insert(best_edge + 1, point)
    return new_loop, best_edge + 1, True


def _best_top_point(
    corner: Point3,
    bottom_top: Sequence[Point3],
    lower_upper: Sequence[Point3],
    tol: Tolerances,
) -> Optional[Point3]:
    best: Optional[Point3] = None
    best_dist = math.inf
    for bt in bottom_top:
        dist_line = distance(corner, bt)
        for lu in lower_upper:
            d1 = distance(lu, corner)
            d2 = distance(lu, bt)
            if abs(d1 + d2 - dist_line) < tol.collinearity and dist_line < best_dist:
                best_dist = dist_line
                best = bt
    return best


def _first_loop(perimeter: Perimeter, eps: float) -> Polyline:
    if not perimeter:
        return []
    return open_loop(perimeter[0], eps)


def sync_corners(
    perimeters: PerimeterSet,
    angle_threshold_deg: float,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> CornerSyncResult:
    """Insert sync pairs at the sharp corners of the middle perimeter.

    Args:
        perimeters: The five cuts; the first loop of each is used.
        angle_threshold_deg: Corners with an interior angle strictly
            below this value (degrees) are synchronised.
        tol: Tolerance bundle.

    Returns:
        Copies of the top and bottom loops (without closing duplicate)
        with the sync points inserted, the sync pairs sorted by top
        index, and one solution line per synchronised corner.

    Raises:
        GeometryInputError: If the threshold is not finite or lies
            outside ``(0, 180]``.
    """
    try:
        threshold = float(angle_threshold_deg)
    except (TypeError, ValueError) as exc:
        raise GeometryInputError(f"angle threshold must be a number, got {angle_threshold_deg!r}") from exc
    if not math.isfinite(threshold) or threshold <= 0.0 or threshold > 180.0:
        raise GeometryInputError(f"angle threshold must lie in (0, 180], got {angle_threshold_deg!r}")

    top = _first_loop(perimeters.top, tol.point_merge)
    upper = _first_loop(perimeters.upper_quarter, tol.point_merge)
    middle = _first_loop(perimeters.middle, tol.point_merge)
    lower = _first_loop(perimeters.lower_quarter, tol.point_merge)
    bottom = _first_loop(perimeters.bottom, tol.point_merge)

    result = CornerSyncResult(top=list(top), bottom=list(bottom))
    if len(middle) < 3 or not top or not upper or not lower or not bottom:
        logger.debug(
            "sync_corners: skipped, loop sizes top=%d upper=%d middle=%d lower=%d bottom=%d",
            len(top),
            len(upper),
            len(middle),
            len(lower),
            len(bottom),
        )
        return result

    work_top: Polyline = list(top)
    work_bottom: Polyline = list(bottom)
    pairs: List[SyncPair] = []
    n = len(middle)
    for i in range(n):
        prev = middle[(i - 1) % n]
        corner = middle[i]
        nxt = middle[(i + 1) % n]
        angle = corner_angle(prev, corner, nxt)
        if abs(angle - 180.0) < tol.straight_angle or angle >= threshold:
            continue

        bottom_top = find_intersections(mirror_polyline(bottom, corner), top, tol=tol).points
        lower_upper = find_intersections(mirror_polyline(lower, corner), upper, tol=tol).points
        top_point = _best_top_point(corner, bottom_top, lower_upper, tol)
        if top_point is None:
            logger.debug(
                "sync_corners: no straight wire through corner %d at %s (angle %.2f)",
                i,
                corner,
                angle,
            )
            continue
        bottom_point = mirror_point(top_point, corner)

        top_insert = insert_point(work_top, top_point, tol.sync_insert)
        bottom_insert = insert_point(work_bottom, bottom_point, tol.sync_insert)
        if top_insert is None or bottom_insert is None:
            logger.debug(
                "sync_corners: corner %d sync point not on a rail edge (top=%s bottom=%s)",
                i,
                top_insert is not None,
                bottom_insert is not None,
            )
            continue

        work_top, top_idx, top_added = top_insert
        work_bottom, bottom_idx, bottom_added = bottom_insert
        shifted: List[SyncPair] = []
        for t, b in pairs:
            if top_added and t >= top_idx:
                t += 1
            if bottom_added and b >= bottom_idx:
                b += 1
            shifted.append((t, b))
        shifted.append((top_idx, bottom_idx))
        pairs = shifted
        result.solution_lines.append(SolutionLine(middle_index=i, start=corner, end=top_point))
        if cam_debug_enabled():
            logger.debug(
                "sync_corners: corner %d angle=%.2f -> pair (%d, %d)",
                i,
                angle,
                top_idx,
                bottom_idx,
            )

    result.top = work_top
    result.bottom = work_bottom
    result.sync_pairs = sorted(set(pairs))
    logger.info(
        "sync_corners: %d sync pairs from %d middle vertices (threshold %.1f deg)",
        len(result.sync_pairs),
        n,
        threshold,
    )
    return result


__all__ = [
    "SolutionLine",
    "CornerSyncResult",
    "corner_angle",
    "mirror_polyline",
    "insert_point",
    "sync_corners",
]
