"""
Reconstruct ordered polylines from an unordered bag of segments.

Slicing a mesh yields one short segment per triangle with no ordering.
``build_polylines`` turns that soup into ordered point sequences:

1. Endpoints are deduplicated with an epsilon :class:`PointIndex`, so
   nearly coincident endpoints become one graph node.  Zero‑length
   segments and repeated edges are discarded.
2. Open chains are walked first, starting from every node of degree
   0 or 1.
3. Whatever remains unvisited lies on closed cycles.  Those are walked
   the same way and closed by repeating the first point when the walk
   ends next to where it began.

Well‑formed slices never branch.  When they do (a non‑manifold vertex
touching the plane, two loops meeting at a point) the walk continues
with the neighbour that turns the least relative to the incoming
direction, lowest node index first on ties.  Every such decision is
logged at WARNING level because the resulting loops may not match the
designer's intent.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Set, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .geom import Point3, PointIndex, Polyline, Segment3, dot, normalize, points_close, sub

logger = logging.getLogger(__name__)


def _turning_angle(prev: Point3, cur: Point3, nxt: Point3) -> float:
    d_in = normalize(sub(cur, prev))
    d_out = normalize(sub(nxt, cur))
    if d_in is None or d_out is None:
        return 0.0
    c = max(-1.0, min(1.0, dot(d_in, d_out)))
    return math.acos(c)


class _SegmentGraph:
    """Adjacency lists over deduplicated segment endpoints."""

    def __init__(self, eps: float) -> None:
        self.index = PointIndex(eps)
        self.adjacency: List[List[int]] = []
        self._edges: Set[Tuple[int, int]] = set()
        self.dropped_degenerate = 0
        self.dropped_duplicate = 0

    def add_segment(self, p: Point3, q: Point3) -> None:
        if points_close(p, q, self.index.eps):
            self.dropped_degenerate += 1
            return
        a = self._node(p)
        b = self._node(q)
        if a == b:
            self.dropped_degenerate += 1
            return
        key = (a, b) if a < b else (b, a)
        if key in self._edges:
            self.dropped_duplicate += 1
            return
        self._edges.add(key)
        self.adjacency[a].append(b)
        self.adjacency[b].append(a)

    def _node(self, p: Point3) -> int:
        idx = self.index.find_or_add(p)
        while len(self.adjacency) <= idx:
            self.adjacency.append([])
        return idx

    @property
    def points(self) -> List[Point3]:
        return self.index.points

    def degree(self, node: int) -> int:
        return len(self.adjacency[node])


def _choose_next(
    graph: _SegmentGraph,
    prev: Optional[int],
    cur: int,
    candidates: List[int],
) -> int:
    if len(candidates) == 1:
        return candidates[0]
    if prev is None:
        choice = min(candidates)
    else:
        pts = graph.points
        choice = min(
            candidates,
            key=lambda c: (round(_turning_angle(pts[prev], pts[cur], pts[c]), 12), c),
        )
    if graph.degree(cur) > 2:
        logger.warning(
            "ambiguous topology at node %d %s: %d unvisited neighbours, continuing to node %d",
            cur,
            graph.points[cur],
            len(candidates),
            choice,
        )
    return choice


def _walk(graph: _SegmentGraph, start: int, visited: List[bool]) -> List[int]:
    path = [start]
    visited[start] = True
    prev: Optional[int] = None
    cur = start
    while True:
        candidates = [nb for nb in graph.adjacency[cur] if not visited[nb]]
        if not candidates:
            break
        nxt = _choose_next(graph, prev, cur, candidates)
        visited[nxt] = True
        path.append(nxt)
        prev, cur = cur, nxt
    return path


def build_polylines(
    segments: Iterable[Segment3],
    eps: Optional[float] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[Polyline]:
    """Join unordered segments into ordered polylines.

    Args:
        segments: Iterable of ``(p, q)`` point pairs in any order and
            orientation.
        eps: Endpoint merge distance.  Defaults to ``tol.point_merge``.
        tol: Tolerance bundle.

    Returns:
        Open polylines (from dangling ends) followed by closed loops.
        Closed loops repeat their first point at the end.  Every input
        edge appears at most once across the result.
    """
    merge_eps = tol.point_merge if eps is None else eps
    graph = _SegmentGraph(merge_eps)
    for p, q in segments:
        graph.add_segment(p, q)

    n = len(graph.adjacency)
    visited = [False] * n
    polylines: List[Polyline] = []

    for node in range(n):
        if not visited[node] and graph.degree(node) <= 1:
            path = _walk(graph, node, visited)
            if len(path) >= 2:
                polylines.append([graph.points[i] for i in path])

    open_count = len(polylines)
    for node in range(n):
        if visited[node]:
            continue
        path = _walk(graph, node, visited)
        if len(path) < 2:
            continue
        if len(path) > 2 and path[0] in graph.adjacency[path[-1]]:
            path.append(path[0])
        polylines.append([graph.points[i] for i in path])

    if cam_debug_enabled():
        logger.debug(
            "build_polylines: nodes=%d open=%d closed=%d degenerate=%d duplicate=%d",
            n,
            open_count,
            len(polylines) - open_count,
            graph.dropped_degenerate,
            graph.dropped_duplicate,
        )
    return polylines


__all__ = ["build_polylines"]
