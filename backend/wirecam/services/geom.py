"""
Point and vector primitives shared by every stage of the CAM pipeline.

Points are plain ``(x, y, z)`` tuples of floats.  Keeping them as
tuples (rather than NumPy rows or ad‑hoc records) means every module
speaks the same representation and results can be compared and
hashed directly.  This module also owns the single epsilon‑aware
equality helper (:func:`points_close`) and the grid‑hashed point
deduplicator (:class:`PointIndex`) used by the polyline reconstructor
and the ruling detector.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

Point3 = Tuple[float, float, float]
Polyline = List[Point3]
Perimeter = List[Polyline]
Segment3 = Tuple[Point3, Point3]
SyncPair = Tuple[int, int]


def as_point(values: Sequence[float]) -> Point3:
    """Coerce any 3‑sequence (list, tuple, NumPy row) into a ``Point3``."""
    return (float(values[0]), float(values[1]), float(values[2]))


def add(a: Point3, b: Point3) -> Point3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def sub(a: Point3, b: Point3) -> Point3:
    """Subtract two 3D vectors (a - b)."""
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def scale(a: Point3, s: float) -> Point3:
    return (a[0] * s, a[1] * s, a[2] * s)


def dot(a: Point3, b: Point3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Point3, b: Point3) -> Point3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def length(a: Point3) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def distance(a: Point3, b: Point3) -> float:
    """Euclidean distance between two points."""
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return math.sqrt(dx * dx + dy * dy + dz * dz)


def distance_sq(a: Point3, b: Point3) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return dx * dx + dy * dy + dz * dz


def normalize(a: Point3, eps: float = 1e-12) -> Optional[Point3]:
    """Return ``a`` scaled to unit length, or ``None`` for a near‑zero vector."""
    n = length(a)
    if n < eps:
        return None
    return (a[0] / n, a[1] / n, a[2] / n)


def lerp(a: Point3, b: Point3, t: float) -> Point3:
    """Linearly interpolate from ``a`` (t=0) to ``b`` (t=1)."""
    return (
        a[0] + (b[0] - a[0]) * t,
        a[1] + (b[1] - a[1]) * t,
        a[2] + (b[2] - a[2]) * t,
    )


def mirror_point(p: Point3, center: Point3) -> Point3:
    """Point‑reflect ``p`` through ``center`` (p' = 2·center − p)."""
    return (
        2.0 * center[0] - p[0],
        2.0 * center[1] - p[1],
        2.0 * center[2] - p[2],
    )


def points_close(a: Point3, b: Point3, eps: float) -> bool:
    """Return True if two points lie within ``eps`` of each other (3D)."""
    return distance_sq(a, b) < eps * eps


def open_loop(polyline: Sequence[Point3], eps: float = 1e-9) -> Polyline:
    """Return a cyclic copy of a closed polyline without its closing vertex.

    Closed polylines produced by the graph reconstructor repeat their
    first point at the end.  Algorithms that index loops modulo their
    length need that duplicate removed, otherwise they see a
    zero‑length closing edge.  The input is never modified.
    """
    pts = [as_point(p) for p in polyline]
    while len(pts) > 1 and points_close(pts[0], pts[-1], eps):
        pts.pop()
    return pts


def is_closed(polyline: Sequence[Point3], eps: float = 1e-9) -> bool:
    return len(polyline) > 2 and points_close(as_point(polyline[0]), as_point(polyline[-1]), eps)


def signed_area_xy(polyline: Sequence[Point3]) -> float:
    """Shoelace area of a loop projected on XY; positive when counter‑clockwise.

    The loop is implicitly closed, a repeated closing vertex adds nothing.
    """
    n = len(polyline)
    if n < 3:
        return 0.0
    area = 0.0
    for i in range(n):
        x1, y1 = polyline[i][0], polyline[i][1]
        x2, y2 = polyline[(i + 1) % n][0], polyline[(i + 1) % n][1]
        area += x1 * y2 - x2 * y1
    return 0.5 * area


def orient_ccw(polyline: Sequence[Point3], eps: float = 1e-9) -> Polyline:
    """Return a closed polyline wound counter‑clockwise in XY.

    A clockwise loop is reversed in place of its start vertex, so the
    first point stays first.  Open polylines are returned unchanged.
    """
    pts = [as_point(p) for p in polyline]
    if not is_closed(pts, eps) or signed_area_xy(pts) >= 0.0:
        return pts
    return [pts[0]] + pts[-2:0:-1] + [pts[0]]


def nearest_vertex_index(point: Point3, polyline: Sequence[Point3]) -> int:
    """Index of the polyline vertex closest to ``point`` (first on ties).

    Returns -1 for an empty polyline.
    """
    best = -1
    best_d = math.inf
    for i, q in enumerate(polyline):
        d = distance_sq(point, q)
        if d < best_d:
            best_d = d
            best = i
    return best


def path_length(path: Sequence[Point3]) -> float:
    """Total length of an open path (no closing edge)."""
    total = 0.0
    for i in range(len(path) - 1):
        total += distance(path[i], path[i + 1])
    return total


def loop_arc_length(loop: Sequence[Point3], start: int, end: int) -> float:
    """Arc length walking forward around a cyclic loop from ``start`` to ``end``.

    When ``start == end`` the full loop length is returned.
    """
    n = len(loop)
    if n < 2:
        return 0.0
    total = 0.0
    i = start % n
    end = end % n
    while True:
        j = (i + 1) % n
        total += distance(loop[i], loop[j])
        i = j
        if i == end:
            break
    return total


def point_at_loop_arc_length(
    loop: Sequence[Point3],
    start: int,
    target: float,
    eps: float = 1e-9,
) -> Point3:
    """Walk a cyclic loop forward from ``start`` and return the point at ``target`` length.

    The walk accumulates segment lengths and linearly interpolates
    within the segment that reaches the target.  Zero‑length segments
    are skipped.  If the target exceeds the loop length the start
    vertex is returned (a full lap ends where it began).
    """
    n = len(loop)
    if n == 0:
        raise ValueError("cannot walk an empty loop")
    start = start % n
    if target <= 0.0:
        return loop[start]
    accumulated = 0.0
    for k in range(n):
        p1 = loop[(start + k) % n]
        p2 = loop[(start + k + 1) % n]
        seg = distance(p1, p2)
        if seg < eps:
            continue
        if accumulated + seg >= target:
            return lerp(p1, p2, (target - accumulated) / seg)
        accumulated += seg
    return loop[start]


def point_at_path_fraction(path: Sequence[Point3], total: float, fraction: float, eps: float = 1e-9) -> Point3:
    """Point at a fractional arc length (0..1) along an open path."""
    if fraction <= 0.0:
        return path[0]
    if fraction >= 1.0:
        return path[-1]
    target = total * fraction
    accumulated = 0.0
    for i in range(len(path) - 1):
        seg = distance(path[i], path[i + 1])
        if seg < eps:
            continue
        if accumulated + seg >= target:
            return lerp(path[i], path[i + 1], (target - accumulated) / seg)
        accumulated += seg
    return path[-1]


class PointIndex:
    """Epsilon deduplication of 3D points backed by a uniform hash grid.

    Points are binned into cubic cells of side ``eps``.  A lookup scans
    the 27 cells surrounding the query so that two points closer than
    ``eps`` are always found, even when they straddle a cell boundary
    (plain coordinate rounding would split them).  When several stored
    points qualify the earliest one wins, which keeps results
    independent of hash ordering.
    """

    def __init__(self, eps: float) -> None:
        if eps <= 0.0:
            raise ValueError("eps must be positive for point deduplication")
        self.eps = eps
        self.points: List[Point3] = []
        self._cells: Dict[Tuple[int, int, int], List[int]] = {}

    def _key(self, p: Point3) -> Tuple[int, int, int]:
        return (
            int(math.floor(p[0] / self.eps)),
            int(math.floor(p[1] / self.eps)),
            int(math.floor(p[2] / self.eps)),
        )

    def find(self, p: Point3) -> Optional[int]:
        kx, ky, kz = self._key(p)
        eps_sq = self.eps * self.eps
        best: Optional[int] = None
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for dz in (-1, 0, 1):
                    for idx in self._cells.get((kx + dx, ky + dy, kz + dz), ()):
                        if distance_sq(self.points[idx], p) < eps_sq and (best is None or idx < best):
                            best = idx
        return best

    def find_or_add(self, p: Point3) -> int:
        idx = self.find(p)
        if idx is not None:
            return idx
        idx = len(self.points)
        self.points.append(p)
        self._cells.setdefault(self._key(p), []).append(idx)
        return idx

    def __len__(self) -> int:
        return len(self.points)
