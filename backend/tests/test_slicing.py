"""
Tests for land-face slicing and general sections of prism meshes.

The meshes are built in ``conftest.py``: vertical prisms over convex
outlines, with caps fanned from vertex 0 and every side quad split
into two triangles.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.errors import GeometryInputError
from wirecam.services.geom import path_length, signed_area_xy
from wirecam.services.mesh import TriangleMesh
from wirecam.services.slicing import (
    perimeter_segments,
    section_at_z,
    slice_at_heights,
    slice_perimeter_set,
)


@pytest.mark.parametrize("n", [3, 4, 6, 9])
def test_ngon_prism_caps_give_closed_loops_of_known_length(prism, ngon, n) -> None:
    radius = 7.5
    outline = [(x, y) for x, y, _ in ngon(n, radius)]
    mesh = prism(outline, 0.0, 12.0)
    slices = slice_at_heights(mesh, 0.0, 12.0)
    expected = 2.0 * n * radius * math.sin(math.pi / n)
    for perimeter, z in ((slices.p0, 0.0), (slices.p1, 12.0)):
        assert len(perimeter) == 1
        loop = perimeter[0]
        assert len(loop) == n + 1
        assert loop[0] == loop[-1]
        assert abs(path_length(loop) - expected) < 1e-4
        assert all(p[2] == z for p in loop)


def test_heights_default_to_bounding_box(prism, square_outline) -> None:
    mesh = prism(square_outline, -2.0, 3.0)
    slices = slice_at_heights(mesh)
    assert slices.z_bottom == -2.0
    assert slices.z_top == 3.0
    assert slices.p0 and slices.p1


def test_cap_loops_are_counter_clockwise(prism, square_outline) -> None:
    slices = slice_at_heights(prism(square_outline))
    assert signed_area_xy(slices.p0[0]) > 0
    assert signed_area_xy(slices.p1[0]) > 0


def test_height_off_land_face_gives_empty_perimeter(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 10.0)
    assert perimeter_segments(mesh, 5.0) == []
    slices = slice_at_heights(mesh, 0.0, 5.0)
    assert slices.p0
    assert slices.p1 == []


def test_non_finite_height_is_rejected(prism, square_outline) -> None:
    mesh = prism(square_outline)
    with pytest.raises(GeometryInputError):
        slice_at_heights(mesh, float("nan"), 10.0)
    with pytest.raises(GeometryInputError):
        slice_at_heights(mesh, 0.0, float("inf"))


def test_empty_mesh_is_rejected() -> None:
    empty = TriangleMesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64))
    with pytest.raises(GeometryInputError):
        slice_at_heights(empty, 0.0, 1.0)


def test_section_through_side_walls(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 10.0)
    loops = section_at_z(mesh, 2.5)
    assert len(loops) == 1
    loop = loops[0]
    assert loop[0] == loop[-1]
    assert all(p[2] == 2.5 for p in loop)
    assert abs(path_length(loop) - 40.0) < 1e-9
    corners = {(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)}
    assert corners <= {(round(p[0], 9), round(p[1], 9)) for p in loop}


def test_perimeter_set_heights_and_levels(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 8.0)
    levels = slice_perimeter_set(mesh)
    assert levels.heights == (8.0, 6.0, 4.0, 2.0, 0.0)
    for perimeter, z in zip(
        (levels.top, levels.upper_quarter, levels.middle, levels.lower_quarter, levels.bottom),
        levels.heights,
    ):
        assert len(perimeter) == 1
        assert all(p[2] == z for p in perimeter[0])
