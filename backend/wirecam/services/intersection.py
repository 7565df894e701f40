"""
Planar intersection of 3D segments and polylines.

Intersections are computed in the XY plane; the Z of an intersection
point is always recovered by interpolating along the *first* segment.
This matters to the corner synchroniser, which intersects a mirrored
bottom rail (first argument) against the top rail and relies on the
result carrying the mirrored rail's height.

``intersect_segments`` returns ``None`` when the segments do not meet.
Absence is normal here and is never reported as an error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances
from .geom import Point3, Segment3, as_point, lerp, open_loop, points_close


@dataclass(frozen=True)
class Intersection:
    """Result of intersecting two segments.

    ``kind == "point"`` carries ``point``; ``kind == "segment"`` carries
    the overlap as ``start``/``end``.
    """

    kind: Literal["point", "segment"]
    point: Optional[Point3] = None
    start: Optional[Point3] = None
    end: Optional[Point3] = None


@dataclass
class IntersectionSet:
    points: List[Point3] = field(default_factory=list)
    segments: List[Segment3] = field(default_factory=list)


def orientation(p: Point3, q: Point3, r: Point3, eps: float) -> int:
    """Turn direction of ``p → q → r`` in XY: 0 collinear, 1 or -1 otherwise.

    ``eps`` is a distance: ``r`` counts as collinear when it lies within
    ``eps`` of the line through ``p`` and ``q``.
    """
    val = (q[1] - p[1]) * (r[0] - q[0]) - (q[0] - p[0]) * (r[1] - q[1])
    if abs(val) < eps * math.hypot(q[0] - p[0], q[1] - p[1]):
        return 0
    return 1 if val > 0 else -1


def _project_param(p: Point3, q: Point3, r: Point3) -> float:
    """Parameter of the XY projection of ``r`` onto the line ``p → q``."""
    dx = q[0] - p[0]
    dy = q[1] - p[1]
    return ((r[0] - p[0]) * dx + (r[1] - p[1]) * dy) / (dx * dx + dy * dy)


def _xy_close(a: Point3, b: Point3, eps: float) -> bool:
    return (a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 < eps * eps


def _point_on_segment(
    pt: Point3,
    p: Point3,
    q: Point3,
    eps: float,
) -> Optional[float]:
    """Return the parameter of ``pt`` on ``p → q`` if it lies on the segment in XY."""
    t = _project_param(p, q, pt)
    if t < -eps or t > 1.0 + eps:
        return None
    foot = lerp(p, q, t)
    if not _xy_close(foot, pt, eps):
        return None
    return min(1.0, max(0.0, t))


def _with_z_from(seg: Segment3, xy: Tuple[float, float], t: float) -> Point3:
    p, q = seg
    return (xy[0], xy[1], p[2] + t * (q[2] - p[2]))


def intersect_segments(
    seg1: Sequence[Sequence[float]],
    seg2: Sequence[Sequence[float]],
    eps: Optional[float] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> Optional[Intersection]:
    """Intersect two segments in XY.

    Segments are parallel when the sine of the angle between them is
    below ``eps``, so the test does not depend on segment length or
    model units.  Parallel segments are tested for collinearity and, if collinear,
    their overlap along the dominant axis of ``seg1`` is returned as a
    segment (or as its midpoint when the overlap is shorter than
    ``eps``).  Crossing segments are solved as a 2×2 system and
    accepted when both parameters lie in ``[-eps, 1 + eps]``.

    Args:
        seg1: ``(p, q)`` endpoints of the first segment.  Z of every
            returned point is interpolated along this segment.
        seg2: ``(p, q)`` endpoints of the second segment.
        eps: Tolerance; defaults to ``tol.intersection``.
        tol: Tolerance bundle.

    Returns:
        An :class:`Intersection`, or ``None`` if the segments are
        disjoint.
    """
    e = tol.intersection if eps is None else eps
    p1, q1 = as_point(seg1[0]), as_point(seg1[1])
    p2, q2 = as_point(seg2[0]), as_point(seg2[1])
    s1: Segment3 = (p1, q1)

    degenerate1 = _xy_close(p1, q1, e)
    degenerate2 = _xy_close(p2, q2, e)
    if degenerate1 and degenerate2:
        if _xy_close(p1, p2, e):
            return Intersection(kind="point", point=p1)
        return None
    if degenerate1:
        if _point_on_segment(p1, p2, q2, e) is not None:
            return Intersection(kind="point", point=p1)
        return None
    if degenerate2:
        t = _point_on_segment(p2, p1, q1, e)
        if t is None:
            return None
        return Intersection(kind="point", point=_with_z_from(s1, (p2[0], p2[1]), t))

    dx1 = q1[0] - p1[0]
    dy1 = q1[1] - p1[1]
    dx2 = q2[0] - p2[0]
    dy2 = q2[1] - p2[1]
    den = dx1 * dy2 - dy1 * dx2

    # den is |d1| |d2| sin(angle)
    if abs(den) < e * math.hypot(dx1, dy1) * math.hypot(dx2, dy2):
        if orientation(p1, q1, p2, e) != 0 or orientation(p1, q1, q2, e) != 0:
            return None
        axis = 0 if abs(dx1) >= abs(dy1) else 1
        a_lo, a_hi = sorted((p1[axis], q1[axis]))
        b_lo, b_hi = sorted((p2[axis], q2[axis]))
        start_k = max(a_lo, b_lo)
        end_k = min(a_hi, b_hi)
        if start_k > end_k + e:
            return None
        span = q1[axis] - p1[axis]
        if abs(end_k - start_k) < e:
            t = ((start_k + end_k) / 2.0 - p1[axis]) / span
            t = min(1.0, max(0.0, t))
            return Intersection(kind="point", point=lerp(p1, q1, t))
        t_start = (start_k - p1[axis]) / span
        t_end = (end_k - p1[axis]) / span
        return Intersection(
            kind="segment",
            start=lerp(p1, q1, t_start),
            end=lerp(p1, q1, t_end),
        )

    wx = p2[0] - p1[0]
    wy = p2[1] - p1[1]
    t = (wx * dy2 - wy * dx2) / den
    s = (wx * dy1 - wy * dx1) / den
    if -e < t < 1.0 + e and -e < s < 1.0 + e:
        return Intersection(
            kind="point",
            point=(p1[0] + t * dx1, p1[1] + t * dy1, p1[2] + t * (q1[2] - p1[2])),
        )
    return None


def polyline_segments(polyline: Sequence[Point3], closed: bool = True, eps: float = 1e-9) -> List[Segment3]:
    """Split a polyline into consecutive segments, adding the closing edge for loops."""
    if closed:
        pts = open_loop(polyline, eps)
        n = len(pts)
        if n < 2:
            return []
        return [(pts[i], pts[(i + 1) % n]) for i in range(n)]
    pts = [as_point(p) for p in polyline]
    return [(pts[i], pts[i + 1]) for i in range(len(pts) - 1)]


def _ordered(start: Point3, end: Point3) -> Segment3:
    if start[0] > end[0] or (start[0] == end[0] and start[1] > end[1]):
        return (end, start)
    return (start, end)


def find_intersections(
    poly1: Sequence[Point3],
    poly2: Sequence[Point3],
    eps: Optional[float] = None,
    closed: bool = True,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> IntersectionSet:
    """Intersect every segment of ``poly1`` with every segment of ``poly2``.

    Points closer than ``eps`` (in 3D) are merged, keeping the first one
    found.  Overlaps shorter than ``eps`` collapse to their midpoint and
    join the point list; longer overlaps are returned with their
    endpoints ordered by X then Y.
    """
    e = tol.intersection if eps is None else eps
    result = IntersectionSet()
    segments1 = polyline_segments(poly1, closed, tol.point_merge)
    segments2 = polyline_segments(poly2, closed, tol.point_merge)

    def add_point(p: Point3) -> None:
        if not any(points_close(p, q, e) for q in result.points):
            result.points.append(p)

    for seg1 in segments1:
        for seg2 in segments2:
            hit = intersect_segments(seg1, seg2, e, tol)
            if hit is None:
                continue
            if hit.kind == "point":
                add_point(hit.point)
            elif points_close(hit.start, hit.end, e):
                add_point(lerp(hit.start, hit.end, 0.5))
            else:
                result.segments.append(_ordered(hit.start, hit.end))
    return result


__all__ = [
    "Intersection",
    "IntersectionSet",
    "orientation",
    "intersect_segments",
    "polyline_segments",
    "find_intersections",
]
