"""
Tests for kerf offsets of single wire positions and along a stitched path.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.errors import GeometryInputError
from wirecam.services.kerf import (
    PROJECTED_PAIRS,
    intersect_line_plane,
    kerf_along_toolpath,
    kerf_offsets,
    project_to_guides,
)
from wirecam.services.stitching import ToolpathStep

R = 0.5


def _corner():
    """Vertical wire at the origin, trailing edge along -X, leading edge along +Y."""
    return {
        "A": (0.0, 0.0, 10.0),
        "B": (-1.0, 0.0, 10.0),
        "C": (0.0, 1.0, 10.0),
        "D": (0.0, 0.0, 0.0),
        "E": (-1.0, 0.0, 0.0),
        "F": (0.0, 1.0, 0.0),
    }


def test_offset_end_points_sit_one_radius_off_each_edge() -> None:
    sol = kerf_offsets(_corner(), R, -5.0, 15.0)
    assert sol.e_b == pytest.approx((0.0, -R, 10.0))
    assert sol.e_c == pytest.approx((R, 0.0, 10.0))
    assert sol.e_e == pytest.approx((0.0, -R, 0.0))
    assert sol.e_f == pytest.approx((R, 0.0, 0.0))


def test_internal_solution_meets_inside_the_corner() -> None:
    sol = kerf_offsets(_corner(), R, -5.0, 15.0)
    assert sol.i_bc == pytest.approx((-R, R, 10.0))
    assert sol.i_ef == pytest.approx((-R, R, 0.0))


def test_miter_points_lie_on_the_offset_edges() -> None:
    sol = kerf_offsets(_corner(), R, -5.0, 15.0)
    assert sol.m_b is not None and sol.m_c is not None
    assert sol.m_b[1] == pytest.approx(-R)
    assert sol.m_c[0] == pytest.approx(R)
    # both miter points are the same distance from the bisector plane origin
    assert sol.m_b[0] == pytest.approx(-sol.m_c[1])


def test_every_line_is_projected_to_the_guides() -> None:
    z0, z1 = -5.0, 15.0
    sol = kerf_offsets(_corner(), R, z0, z1)
    assert set(sol.projections) == {name for name, _, _ in PROJECTED_PAIRS}
    assert sol.projections["A-D"] == (
        pytest.approx((0.0, 0.0, z0)),
        pytest.approx((0.0, 0.0, z1)),
    )
    lower, upper = sol.projections["E_B-E_E"]
    assert lower == pytest.approx((0.0, -R, z0))
    assert upper == pytest.approx((0.0, -R, z1))


def test_straight_edges_have_no_internal_solution() -> None:
    points = _corner()
    points["C"] = (1.0, 0.0, 10.0)
    points["F"] = (1.0, 0.0, 0.0)
    sol = kerf_offsets(points, R, 0.0, 10.0)
    assert sol.i_bc is None
    assert sol.projections["I_BC-I_EF"] is None


def test_project_to_guides_and_line_plane() -> None:
    assert project_to_guides((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), 0.0, 1.0) is None
    lower, upper = project_to_guides((0.0, 0.0, 0.0), (1.0, 1.0, 1.0), -1.0, 2.0)
    assert lower == pytest.approx((-1.0, -1.0, -1.0))
    assert upper == pytest.approx((2.0, 2.0, 2.0))
    hit = intersect_line_plane((0.0, 0.0, 0.0), (0.0, 0.0, 1.0), (0.0, 0.0, 3.0), (0.0, 0.0, 1.0))
    assert hit == pytest.approx((0.0, 0.0, 3.0))
    assert intersect_line_plane((0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 0.0, 3.0), (0.0, 0.0, 1.0)) is None


def test_missing_point_is_rejected() -> None:
    points = _corner()
    del points["E"]
    with pytest.raises(GeometryInputError, match="E"):
        kerf_offsets(points, R, 0.0, 10.0)


@pytest.mark.parametrize("radius", [0.0, -1.0, float("nan")])
def test_non_positive_radius_is_rejected(radius) -> None:
    with pytest.raises(GeometryInputError):
        kerf_offsets(_corner(), radius, 0.0, 10.0)


def test_degenerate_wire_is_rejected() -> None:
    points = _corner()
    points["D"] = points["A"]
    with pytest.raises(GeometryInputError):
        kerf_offsets(points, R, 0.0, 10.0)
    with pytest.raises(GeometryInputError):
        kerf_offsets(_corner(), R, float("nan"), 10.0)


def test_kerf_along_closed_square_path() -> None:
    square = [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (0.0, 4.0)]
    steps = [ToolpathStep(bottom=(x, y, 0.0), top=(x, y, 10.0), is_ruling=True) for x, y in square]
    steps.append(steps[0])
    solutions = kerf_along_toolpath(steps, R, 0.0, 10.0)
    assert [i for i, _ in solutions] == [0, 1, 2, 3]
    for _, sol in solutions:
        for pair in sol.projections.values():
            if pair is not None:
                assert all(math.isfinite(c) for c in pair[0] + pair[1])
    assert kerf_along_toolpath(steps[:2], R, 0.0, 10.0) == []
