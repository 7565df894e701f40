"""
Tests for stitching the bottom and top perimeters into wire positions.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.errors import GeometryInputError
from wirecam.services.rulings import Ruling
from wirecam.services.stitching import ToolpathStep, map_rulings_to_indices, stitch


def _square(side: float, z: float):
    return [(0.0, 0.0, z), (side, 0.0, z), (side, side, z), (0.0, side, z)]


def _close(points):
    return points + [points[0]]


def test_stitch_is_deterministic_and_closed() -> None:
    p0 = _close(_square(2.0, 0.0))
    p1 = _close(_square(1.0, 10.0))
    rulings = [Ruling.from_endpoints((0.0, 0.0, 0.0), (0.0, 0.0, 10.0))]
    first = stitch(p0, p1, rulings)
    second = stitch(p0, p1, rulings)
    assert first == second
    assert len(first) == 5
    assert first[0] == first[-1]


def test_zero_rulings_fall_back_to_first_vertices() -> None:
    p0 = _square(1.0, 0.0)
    p1 = _square(1.0, 10.0)
    steps = stitch(p0, p1, [])
    assert not any(s.is_ruling for s in steps)
    for step in steps:
        assert step.top[:2] == pytest.approx(step.bottom[:2])
        assert step.bottom[2] == 0.0


def test_tapered_rails_interpolate_by_arc_length_fraction() -> None:
    p0 = _square(2.0, 0.0)
    p1 = _square(1.0, 10.0)
    rulings = [Ruling.from_endpoints((0.0, 0.0, 0.0), (0.0, 0.0, 10.0))]
    steps = stitch(p0, p1, rulings)
    assert steps[0] == ToolpathStep(bottom=(0.0, 0.0, 0.0), top=(0.0, 0.0, 10.0), is_ruling=True)
    # a quarter of the way round the top loop maps to a quarter of the bottom loop
    assert steps[1].bottom == pytest.approx((2.0, 0.0, 0.0))
    assert steps[2].bottom == pytest.approx((2.0, 2.0, 0.0))
    assert steps[3].bottom == pytest.approx((0.0, 2.0, 0.0))
    assert not steps[1].is_ruling


def test_interior_vertex_between_two_anchors() -> None:
    p0 = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (0.0, 4.0, 0.0)]
    # top has an extra vertex one quarter along its first edge
    p1 = [(0.0, 0.0, 5.0), (1.0, 0.0, 5.0), (4.0, 0.0, 5.0), (4.0, 4.0, 5.0), (0.0, 4.0, 5.0)]
    rulings = [
        Ruling.from_endpoints((0.0, 0.0, 0.0), (0.0, 0.0, 5.0)),
        Ruling.from_endpoints((4.0, 0.0, 0.0), (4.0, 0.0, 5.0)),
    ]
    steps = stitch(p0, p1, rulings)
    assert steps[1].bottom == pytest.approx((1.0, 0.0, 0.0))
    assert steps[2].is_ruling


def test_steepest_ruling_wins_on_shared_top_vertex() -> None:
    p0 = _square(10.0, 0.0)
    p1 = _square(10.0, 10.0)
    vertical = Ruling.from_endpoints((10.0, 0.0, 0.0), (10.0, 0.0, 10.0))
    diagonal = Ruling.from_endpoints((0.0, 0.0, 0.0), (10.0, 0.0, 10.0))
    assert map_rulings_to_indices(p0, p1, [vertical, diagonal]) == {1: 1}
    assert map_rulings_to_indices(p0, p1, [diagonal, vertical]) == {1: 1}


def test_collapsed_bottom_span_pins_interior_vertices() -> None:
    p0 = _square(1.0, 0.0)
    p1 = _square(1.0, 10.0)
    # both rulings end on bottom vertex 0
    rulings = [
        Ruling.from_endpoints((0.0, 0.0, 0.0), (0.0, 0.0, 10.0)),
        Ruling.from_endpoints((0.0, 0.0, 0.0), (1.0, 1.0, 10.0)),
    ]
    steps = stitch(p0, p1, rulings)
    assert steps[1].bottom == (0.0, 0.0, 0.0)
    assert steps[3].bottom == (0.0, 0.0, 0.0)


def test_lead_in_selects_start_vertex() -> None:
    p0 = _square(1.0, 0.0)
    p1 = _square(1.0, 10.0)
    steps = stitch(p0, p1, [], lead_in=(1.1, 0.9, 10.0))
    assert steps[0].top == (1.0, 1.0, 10.0)
    assert steps[-1] == steps[0]
    assert len(steps) == 5


def test_degenerate_loop_is_rejected() -> None:
    with pytest.raises(GeometryInputError):
        stitch([(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 0.0)], _square(1.0, 10.0), [])
    with pytest.raises(GeometryInputError):
        stitch(_square(1.0, 0.0), [], [])


def test_steps_never_contain_nan() -> None:
    p0 = [(0.0, 0.0, 0.0), (0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0)]
    p1 = _square(1.0, 10.0)
    for step in stitch(p0, p1, []):
        assert all(math.isfinite(c) for c in step.bottom + step.top)
