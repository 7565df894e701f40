"""
Stitching of the bottom and top rails into one synchronised traversal.

The stitcher walks every vertex of the top perimeter ``p1`` exactly once
and pairs it with a point on the bottom perimeter ``p0``.  Rulings pin
the pairing: a top vertex that a ruling maps onto is paired with the
bottom vertex of the same ruling.  Between two consecutive ruling
anchors the pairing is proportional to arc length, so a vertex that
lies 30 % of the way from one anchor to the next along ``p1`` is paired
with the point 30 % of the way along the matching stretch of ``p0``.

Without rulings the first vertex of each loop acts as the sole anchor
and every vertex is placed by its fraction of the whole loop length.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .errors import GeometryInputError
from .geom import (
    Point3,
    PointIndex,
    Polyline,
    as_point,
    loop_arc_length,
    nearest_vertex_index,
    open_loop,
    point_at_loop_arc_length,
)
from .rulings import Ruling

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolpathStep:
    """One node of the stitched path: a wire position between the rails."""

    bottom: Point3
    top: Point3
    is_ruling: bool = False


def _prepare_loop(name: str, loop: Sequence[Point3], tol: Tolerances) -> Polyline:
    pts = open_loop(loop, tol.point_merge)
    distinct = PointIndex(tol.point_merge)
    for p in pts:
        distinct.find_or_add(p)
    if len(distinct) < 3:
        raise GeometryInputError(
            f"{name} perimeter needs at least 3 distinct vertices, got {len(distinct)}"
        )
    return pts


def map_rulings_to_indices(
    p0: Sequence[Point3],
    p1: Sequence[Point3],
    rulings: Sequence[Ruling],
) -> Dict[int, int]:
    """Map each ruling onto a ``{top index: bottom index}`` anchor.

    The top endpoint is matched to the nearest ``p1`` vertex and the
    bottom endpoint to the nearest ``p0`` vertex; there is no distance
    threshold.  When several rulings land on the same top vertex the
    steepest one (shortest run in XY) wins, the earliest on ties.  A
    triangulated flat side wall carries a full‑height diagonal next to
    each vertical edge, and the diagonal must not twist the pairing.
    """
    anchors: Dict[int, int] = {}
    runs: Dict[int, float] = {}
    for ruling in rulings:
        top_idx = nearest_vertex_index(ruling.top, p1)
        bottom_idx = nearest_vertex_index(ruling.bottom, p0)
        if top_idx == -1 or bottom_idx == -1:
            continue
        run = math.hypot(ruling.top[0] - ruling.bottom[0], ruling.top[1] - ruling.bottom[1])
        if top_idx in runs and runs[top_idx] <= run:
            continue
        anchors[top_idx] = bottom_idx
        runs[top_idx] = run
    return anchors


def _previous_anchor(anchors: Dict[int, int], index: int, n: int) -> int:
    for j in range(1, n + 1):
        k = (index - j) % n
        if k in anchors:
            return k
    return index


def _next_anchor(anchors: Dict[int, int], index: int, n: int) -> int:
    for j in range(1, n + 1):
        k = (index + j) % n
        if k in anchors:
            return k
    return index


def stitch(
    p0: Sequence[Point3],
    p1: Sequence[Point3],
    rulings: Sequence[Ruling],
    lead_in: Optional[Sequence[float]] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> List[ToolpathStep]:
    """Produce the ruling‑guided traversal of two closed perimeters.

    Args:
        p0: Bottom perimeter loop (closing duplicate optional).
        p1: Top perimeter loop (closing duplicate optional).
        rulings: Anchors between the rails.  May be empty.
        lead_in: Optional point near ``p1``; the walk starts at the
            closest ``p1`` vertex.  Defaults to vertex 0.
        tol: Tolerance bundle.

    Returns:
        ``len(p1) + 1`` steps.  The last step repeats the first so the
        path closes.

    Raises:
        GeometryInputError: If either loop has fewer than three
            distinct vertices.
    """
    bottom = _prepare_loop("bottom", p0, tol)
    top = _prepare_loop("top", p1, tol)
    n = len(top)

    ruling_anchors = map_rulings_to_indices(bottom, top, rulings)
    anchors = dict(ruling_anchors) if ruling_anchors else {0: 0}

    start = 0
    if lead_in is not None:
        start = max(nearest_vertex_index(as_point(lead_in), top), 0)

    steps: List[ToolpathStep] = []
    for i in range(n):
        cur = (start + i) % n
        if cur in anchors:
            steps.append(
                ToolpathStep(bottom=bottom[anchors[cur]], top=top[cur], is_ruling=cur in ruling_anchors)
            )
            continue

        prev_top = _previous_anchor(anchors, cur, n)
        next_top = _next_anchor(anchors, cur, n)
        prev_bottom = anchors[prev_top]
        next_bottom = anchors[next_top]

        span_top = loop_arc_length(top, prev_top, next_top)
        partial_top = loop_arc_length(top, prev_top, cur)
        if prev_top != next_top and prev_bottom == next_bottom:
            span_bottom = 0.0
        else:
            span_bottom = loop_arc_length(bottom, prev_bottom, next_bottom)

        ratio = partial_top / span_top if span_top > tol.arc_length else 0.0
        point = point_at_loop_arc_length(bottom, prev_bottom, ratio * span_bottom, tol.arc_length)
        steps.append(ToolpathStep(bottom=point, top=top[cur], is_ruling=False))

    steps.append(steps[0])
    if cam_debug_enabled():
        logger.debug(
            "stitch: top=%d bottom=%d rulings=%d anchors=%d start=%d",
            n,
            len(bottom),
            len(rulings),
            len(ruling_anchors),
            start,
        )
    return steps


__all__ = ["ToolpathStep", "map_rulings_to_indices", "stitch"]
