"""
Four‑axis G‑code synthesis from two synchronised rails.

The machine moves two wire guides at once: ``X Y Z`` carry the top
guide position and ``U V W`` the bottom guide position.  Between two
consecutive sync pairs the top and bottom rails are walked in lockstep
by arc‑length fraction.  Every vertex of either rail becomes a G‑code
line; the other rail contributes the point found at the same fraction
of its own sub‑path.

The output format is fixed: one ``G1`` move per line, six axes, four
decimals, newline separated, nothing else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..config import DEFAULT_TOLERANCES, Tolerances, cam_debug_enabled
from .geom import Point3, Polyline, SyncPair, distance, open_loop, path_length, point_at_path_fraction

logger = logging.getLogger(__name__)

_TOP = 0
_BOTTOM = 1


@dataclass(frozen=True)
class WireMove:
    """One parsed ``G1`` move: top guide ``(x, y, z)``, bottom guide ``(u, v, w)``."""

    x: float
    y: float
    u: float
    v: float
    z: Optional[float] = None
    w: Optional[float] = None

    @property
    def top(self) -> Tuple[float, float, Optional[float]]:
        return (self.x, self.y, self.z)

    @property
    def bottom(self) -> Tuple[float, float, Optional[float]]:
        return (self.u, self.v, self.w)


def _fmt(value: float) -> str:
    # "+ 0.0" turns -0.0 into 0.0
    return f"{value + 0.0:.4f}"


def format_move(top: Point3, bottom: Point3) -> str:
    return (
        f"G1 X{_fmt(top[0])} Y{_fmt(top[1])} Z{_fmt(top[2])} "
        f"U{_fmt(bottom[0])} V{_fmt(bottom[1])} W{_fmt(bottom[2])}"
    )


def _roll(loop: Sequence[Point3], start: int) -> Polyline:
    return list(loop[start:]) + list(loop[:start])


def _sub_path(loop: Sequence[Point3], start: int, end: int, full_lap: bool) -> Polyline:
    """Forward walk from ``start`` to ``end`` inclusive.

    Equal indices give a full lap only when ``full_lap`` is set, otherwise
    the single start vertex (a zero‑length span).
    """
    n = len(loop)
    path = [loop[start]]
    if start == end and not full_lap:
        return path
    j = start
    while True:
        j = (j + 1) % n
        path.append(loop[j])
        if j == end:
            break
    return path


def _vertex_events(path: Sequence[Point3], total: float, rail: int) -> List[Tuple[float, int, Point3]]:
    events = []
    accumulated = 0.0
    # interior vertices only; the closing sync vertex is emitted separately
    for j in range(len(path) - 2):
        accumulated += distance(path[j], path[j + 1])
        events.append((accumulated / total, rail, path[j + 1]))
    return events


def emit_gcode(
    top: Sequence[Point3],
    bottom: Sequence[Point3],
    sync_pairs: Sequence[SyncPair],
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> str:
    """Generate the interleaved 4‑axis program for two rails.

    Args:
        top: Top rail loop (closing duplicate optional).
        bottom: Bottom rail loop (closing duplicate optional).
        sync_pairs: ``(top index, bottom index)`` correspondences.  At
            least one is required; indices are taken modulo the loop
            length.
        tol: Tolerance bundle; ``tol.arc_length`` decides when a
            sub‑path is empty and when two events coincide.

    Returns:
        The program text without a trailing newline, or ``""`` when a
        rail or the sync pairs are empty.
    """
    top_loop = open_loop(top, tol.point_merge)
    bottom_loop = open_loop(bottom, tol.point_merge)
    if not top_loop or not bottom_loop or not sync_pairs:
        return ""
    n_top = len(top_loop)
    n_bottom = len(bottom_loop)

    pairs = sorted((int(t) % n_top, int(b) % n_bottom) for t, b in sync_pairs)
    lead_top, lead_bottom = pairs[0]
    rolled_top = _roll(top_loop, lead_top)
    rolled_bottom = _roll(bottom_loop, lead_bottom)
    remapped = sorted(
        ((t - lead_top) % n_top, (b - lead_bottom) % n_bottom) for t, b in pairs
    )
    deduped: List[SyncPair] = []
    for pair in remapped:
        if not deduped or deduped[-1] != pair:
            deduped.append(pair)

    lines = [format_move(rolled_top[0], rolled_bottom[0])]
    skipped = 0
    # a lone pair spans the whole loop on both rails
    full_lap = len(deduped) == 1
    for i, (cur_top, cur_bottom) in enumerate(deduped):
        next_top, next_bottom = deduped[(i + 1) % len(deduped)]
        top_path = _sub_path(rolled_top, cur_top, next_top, full_lap)
        bottom_path = _sub_path(rolled_bottom, cur_bottom, next_bottom, full_lap)
        top_length = path_length(top_path)
        bottom_length = path_length(bottom_path)
        if top_length < tol.arc_length or bottom_length < tol.arc_length:
            skipped += 1
            continue

        events = _vertex_events(top_path, top_length, _TOP) + _vertex_events(
            bottom_path, bottom_length, _BOTTOM
        )
        events.sort(key=lambda e: (e[0], e[1]))

        k = 0
        while k < len(events):
            fraction, rail, point = events[k]
            partner = events[k + 1] if k + 1 < len(events) else None
            if (
                rail == _TOP
                and partner is not None
                and partner[1] == _BOTTOM
                and abs(partner[0] - fraction) < tol.arc_length
            ):
                lines.append(format_move(point, partner[2]))
                k += 2
                continue
            if rail == _TOP:
                other = point_at_path_fraction(bottom_path, bottom_length, fraction, tol.arc_length)
                lines.append(format_move(point, other))
            else:
                other = point_at_path_fraction(top_path, top_length, fraction, tol.arc_length)
                lines.append(format_move(other, point))
            k += 1

        lines.append(format_move(rolled_top[next_top], rolled_bottom[next_bottom]))

    if cam_debug_enabled():
        logger.debug(
            "emit_gcode: top=%d bottom=%d sync pairs=%d lines=%d skipped spans=%d",
            n_top,
            n_bottom,
            len(deduped),
            len(lines),
            skipped,
        )
    return "\n".join(lines)


def parse_gcode(text: str) -> List[WireMove]:
    """Read back the ``G1`` moves of a program produced by :func:`emit_gcode`.

    Lines that are not ``G1`` moves are ignored, as are moves missing
    any of ``X Y U V``.  ``Z`` and ``W`` are optional.
    """
    moves: List[WireMove] = []
    for raw in text.splitlines():
        parts = raw.split()
        if not parts or parts[0] != "G1":
            continue
        axes = {}
        for part in parts[1:]:
            letter = part[:1].lower()
            if not letter or letter not in "xyzuvw":
                continue
            try:
                axes[letter] = float(part[1:])
            except ValueError:
                logger.debug("parse_gcode: ignoring malformed word %r in line %r", part, raw)
        if not all(k in axes for k in ("x", "y", "u", "v")):
            continue
        moves.append(WireMove(**axes))
    return moves


__all__ = ["WireMove", "format_move", "emit_gcode", "parse_gcode"]
