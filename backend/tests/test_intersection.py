"""
Tests for the planar (XY) segment intersector.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.intersection import (
    find_intersections,
    intersect_segments,
    orientation,
    polyline_segments,
)


def test_crossing_segments_meet_at_point_with_z_from_first() -> None:
    seg1 = ((0.0, 0.0, 0.0), (10.0, 10.0, 4.0))
    seg2 = ((0.0, 10.0, 100.0), (10.0, 0.0, 100.0))
    hit = intersect_segments(seg1, seg2)
    assert hit is not None
    assert hit.kind == "point"
    assert hit.point == pytest.approx((5.0, 5.0, 2.0))


def test_parallel_disjoint_segments_do_not_intersect() -> None:
    seg1 = ((0.0, 0.0, 0.0), (10.0, 0.0, 0.0))
    seg2 = ((0.0, 1.0, 0.0), (10.0, 1.0, 0.0))
    assert intersect_segments(seg1, seg2) is None


def test_non_overlapping_collinear_segments() -> None:
    seg1 = ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    seg2 = ((2.0, 0.0, 0.0), (3.0, 0.0, 0.0))
    assert intersect_segments(seg1, seg2) is None


def test_collinear_overlap_is_a_segment() -> None:
    seg1 = ((0.0, 0.0, 0.0), (10.0, 0.0, 10.0))
    seg2 = ((4.0, 0.0, 50.0), (20.0, 0.0, 50.0))
    hit = intersect_segments(seg1, seg2)
    assert hit is not None
    assert hit.kind == "segment"
    assert hit.start == pytest.approx((4.0, 0.0, 4.0))
    assert hit.end == pytest.approx((10.0, 0.0, 10.0))


def test_touching_collinear_segments_give_a_point() -> None:
    seg1 = ((0.0, 0.0, 0.0), (0.0, 5.0, 5.0))
    seg2 = ((0.0, 5.0, 0.0), (0.0, 9.0, 0.0))
    hit = intersect_segments(seg1, seg2)
    assert hit is not None
    assert hit.kind == "point"
    assert hit.point == pytest.approx((0.0, 5.0, 5.0))


def test_endpoint_contact_within_tolerance() -> None:
    seg1 = ((0.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    seg2 = ((1.00005, -1.0, 0.0), (1.00005, 1.0, 0.0))
    assert intersect_segments(seg1, seg2) is not None
    assert intersect_segments(seg1, seg2, eps=1e-6) is None


def test_degenerate_segment_on_other_segment() -> None:
    seg = ((0.0, 0.0, 0.0), (10.0, 0.0, 10.0))
    dot = ((3.0, 0.0, 99.0), (3.0, 0.0, 99.0))
    hit = intersect_segments(seg, dot)
    assert hit is not None
    assert hit.point == pytest.approx((3.0, 0.0, 3.0))
    assert intersect_segments(dot, seg).point == (3.0, 0.0, 99.0)
    assert intersect_segments(seg, ((3.0, 1.0, 0.0), (3.0, 1.0, 0.0))) is None


def test_orientation_signs() -> None:
    p, q = (0.0, 0.0, 0.0), (1.0, 0.0, 0.0)
    assert orientation(p, q, (0.5, 1.0, 0.0), 1e-9) == -1
    assert orientation(p, q, (0.5, -1.0, 0.0), 1e-9) == 1
    assert orientation(p, q, (2.0, 0.0, 0.0), 1e-9) == 0


def test_orientation_tolerance_is_a_distance() -> None:
    short = ((0.0, 0.0, 0.0), (0.001, 0.0, 0.0))
    assert orientation(*short, (0.0005, 0.0001, 0.0), 1e-6) == -1
    long = ((0.0, 0.0, 0.0), (1000.0, 0.0, 0.0))
    assert orientation(*long, (500.0, 1e-7, 0.0), 1e-6) == 0


@pytest.mark.parametrize("size", [0.005, 5.0, 5000.0])
def test_crossing_does_not_depend_on_segment_length(size: float) -> None:
    seg1 = ((0.0, 0.0, 0.0), (size, size, 0.0))
    seg2 = ((0.0, size, 0.0), (size, 0.0, 0.0))
    hit = intersect_segments(seg1, seg2)
    assert hit is not None
    assert hit.kind == "point"
    assert hit.point == pytest.approx((size / 2.0, size / 2.0, 0.0))


def test_polyline_segments_closes_loops() -> None:
    square = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)]
    assert len(polyline_segments(square)) == 4
    assert len(polyline_segments(square + [square[0]])) == 4
    assert len(polyline_segments(square, closed=False)) == 3


def test_find_intersections_square_and_diamond() -> None:
    a = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (0.0, 4.0, 0.0)]
    b = [(2.0, -1.0, 1.0), (5.0, 2.0, 1.0), (2.0, 5.0, 1.0), (-1.0, 2.0, 1.0)]
    result = find_intersections(a, b)
    assert result.segments == []
    assert len(result.points) == 8
    assert all(p[2] == pytest.approx(0.0) for p in result.points)


def test_find_intersections_orders_overlap_endpoints() -> None:
    a = [(10.0, 0.0, 0.0), (0.0, 0.0, 0.0)]
    b = [(2.0, 0.0, 0.0), (8.0, 0.0, 0.0)]
    result = find_intersections(a, b, closed=False)
    assert result.points == []
    assert len(result.segments) == 1
    start, end = result.segments[0]
    assert start == pytest.approx((2.0, 0.0, 0.0))
    assert end == pytest.approx((8.0, 0.0, 0.0))
