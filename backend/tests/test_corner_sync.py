"""
Tests for corner synchronisation across the five perimeter levels.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.corner_sync import corner_angle, insert_point, sync_corners
from wirecam.services.errors import GeometryInputError
from wirecam.services.slicing import PerimeterSet

PENTAGON = [(0.0, 0.0), (10.0, 0.0), (12.0, 8.0), (8.0, 12.0), (0.0, 10.0)]
HEIGHTS = (10.0, 7.5, 5.0, 2.5, 0.0)


def _level(z: float):
    return [[(x, y, z) for x, y in PENTAGON]]


def _pentagon_set() -> PerimeterSet:
    return PerimeterSet(
        top=_level(HEIGHTS[0]),
        upper_quarter=_level(HEIGHTS[1]),
        middle=_level(HEIGHTS[2]),
        lower_quarter=_level(HEIGHTS[3]),
        bottom=_level(HEIGHTS[4]),
        heights=HEIGHTS,
    )


def test_corner_angle_law_of_cosines() -> None:
    o = (0.0, 0.0, 0.0)
    assert corner_angle((1.0, 0.0, 0.0), o, (0.0, 1.0, 0.0)) == pytest.approx(90.0)
    assert corner_angle((-1.0, 0.0, 0.0), o, (1.0, 0.0, 0.0)) == pytest.approx(180.0)
    assert corner_angle((1.0, 0.0, 0.0), o, (1.0, 1.0, 0.0)) == pytest.approx(45.0)
    # coincident neighbour is treated as straight
    assert corner_angle(o, o, (1.0, 0.0, 0.0)) == 180.0


def test_insert_point_reuses_vertex_or_splits_edge() -> None:
    loop = [(0.0, 0.0, 0.0), (4.0, 0.0, 0.0), (4.0, 4.0, 0.0), (0.0, 4.0, 0.0)]
    new_loop, idx, inserted = insert_point(loop, (4.0, 0.0, 0.0), 1e-4)
    assert (idx, inserted) == (1, False)
    assert new_loop == loop

    new_loop, idx, inserted = insert_point(loop, (0.0, 2.0, 0.0), 1e-4)
    assert (idx, inserted) == (4, True)
    assert new_loop[4] == (0.0, 2.0, 0.0)
    assert len(loop) == 4

    assert insert_point(loop, (2.0, 2.0, 0.0), 1e-4) is None


def test_right_angle_corner_is_synchronised() -> None:
    result = sync_corners(_pentagon_set(), 100.0)
    assert result.sync_pairs == [(0, 0)]
    assert len(result.solution_lines) == 1
    line = result.solution_lines[0]
    assert line.middle_index == 0
    assert line.start == (0.0, 0.0, 5.0)
    assert line.end == pytest.approx((0.0, 0.0, 10.0))
    assert len(result.top) == len(PENTAGON)
    assert len(result.bottom) == len(PENTAGON)


def test_threshold_below_every_corner_gives_no_pairs() -> None:
    perimeters = _pentagon_set()
    result = sync_corners(perimeters, 45.0)
    assert result.sync_pairs == []
    assert result.solution_lines == []
    assert result.top == perimeters.top[0]
    assert result.bottom == perimeters.bottom[0]


def test_missing_levels_are_skipped() -> None:
    perimeters = _pentagon_set()
    perimeters.middle = []
    result = sync_corners(perimeters, 100.0)
    assert result.sync_pairs == []
    assert len(result.top) == len(PENTAGON)


@pytest.mark.parametrize("threshold", [0.0, -5.0, 200.0, float("nan"), "sharp"])
def test_invalid_threshold_is_rejected(threshold) -> None:
    with pytest.raises(GeometryInputError):
        sync_corners(_pentagon_set(), threshold)


def _flat(points, z: float):
    return [[(x, y, z) for x, y in points]]


def test_sync_point_is_spliced_into_rail_edges() -> None:
    top = [(1.0, -1.0), (5.0, -1.0), (5.0, 3.0), (1.0, 3.0)]
    bottom = [(0.0, -2.0), (-6.0, -6.0), (-2.0, 0.0)]
    perimeters = PerimeterSet(
        top=_flat(top, 10.0),
        upper_quarter=_flat([(x / 2.0, y / 2.0) for x, y in top], 7.5),
        middle=_level(5.0),
        lower_quarter=_flat([(x / 2.0, y / 2.0) for x, y in bottom], 2.5),
        bottom=_flat(bottom, 0.0),
        heights=HEIGHTS,
    )
    result = sync_corners(perimeters, 100.0)
    assert result.sync_pairs == [(4, 3)]
    assert len(result.top) == 5
    assert len(result.bottom) == 4
    assert result.top[4] == pytest.approx((1.0, 1.0, 10.0))
    assert result.bottom[3] == pytest.approx((-1.0, -1.0, 0.0))
    assert result.solution_lines[0].end == pytest.approx((1.0, 1.0, 10.0))


def test_later_insertion_shifts_earlier_pairs() -> None:
    # rhombus with sharp corners at index 0 and 2
    middle = [(-0.5, 3.5), (1.0, 1.0), (3.5, -0.5), (2.0, 2.0)]
    perimeters = PerimeterSet(
        top=_flat([(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)], 10.0),
        upper_quarter=_flat([(-0.25, -0.25), (10.25, -0.25), (10.25, 10.25), (-0.25, 10.25)], 7.5),
        middle=_flat(middle, 5.0),
        lower_quarter=_flat([(5.0, -2.5), (12.5, 5.0), (5.0, 12.5), (-2.5, 5.0)], 2.5),
        bottom=_flat([(5.0, -3.0), (13.0, 5.0), (5.0, 13.0), (-3.0, 5.0)], 0.0),
        heights=HEIGHTS,
    )
    result = sync_corners(perimeters, 100.0)

    assert [line.middle_index for line in result.solution_lines] == [0, 2]
    # corner 0 was first recorded as (4, 4); corner 2 then spliced top index 1
    assert result.sync_pairs == [(1, 5), (5, 4)]
    expected_top = [(0.0, 0.0), (4.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0), (0.0, 4.0)]
    assert len(result.top) == len(expected_top)
    for got, (x, y) in zip(result.top, expected_top):
        assert got == pytest.approx((x, y, 10.0))
    assert result.bottom[4] == pytest.approx((-1.0, 3.0, 0.0))
    assert result.bottom[5] == pytest.approx((3.0, -1.0, 0.0))
