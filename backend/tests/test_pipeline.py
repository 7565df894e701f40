"""
Tests for the end-to-end toolpath computation and the session registry.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.errors import GeometryInputError
from wirecam.services.gcode import parse_gcode
from wirecam.services.pipeline import CamContext, CamParameters, SessionStore, compute_toolpath


def test_square_prism_toolpath(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 10.0)
    result = compute_toolpath(mesh)

    assert (result.slices.z_bottom, result.slices.z_top) == (0.0, 10.0)
    assert len(result.rulings) == 8
    assert len(result.steps) == 5
    assert result.steps[0] == result.steps[-1]
    assert all(s.is_ruling for s in result.steps)

    assert len(result.sync_pairs) == 4
    assert len(result.corners.solution_lines) == 4

    moves = parse_gcode(result.gcode)
    assert len(moves) == 5
    for move in moves:
        assert (move.x, move.y) == pytest.approx((move.u, move.v))
        assert (move.z, move.w) == (10.0, 0.0)

    assert result.kerf_radius == 0.125
    assert result.guide_z == (0.0, 10.0)
    assert [i for i, _ in result.kerf] == [0, 1, 2, 3]


def test_parameters_reach_every_stage(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 10.0)
    params = CamParameters(
        angle_threshold=45.0,
        kerf_diameter=1.0,
        lower_guide_z=-5.0,
        upper_guide_z=15.0,
        manual_rulings=[((5.0, 0.0, 0.0), (5.0, 0.0, 10.0))],
    )
    result = compute_toolpath(mesh, params)
    assert len(result.rulings) == 9
    # no corner is sharper than 45 degrees, so a single default pair is used
    assert result.corners.sync_pairs == []
    assert len(result.sync_pairs) == 1
    assert len(result.gcode.splitlines()) == 5
    assert result.kerf_radius == 0.5
    assert result.guide_z == (-5.0, 15.0)
    lower, upper = result.kerf[0][1].projections["A-D"]
    assert (lower[2], upper[2]) == pytest.approx((-5.0, 15.0))


def test_height_without_land_face_is_rejected(prism, square_outline) -> None:
    mesh = prism(square_outline, 0.0, 10.0)
    with pytest.raises(GeometryInputError, match="land face"):
        compute_toolpath(mesh, CamParameters(bottom_z=5.0))


@pytest.mark.parametrize(
    "field, value",
    [("angle_threshold", 0.0), ("angle_threshold", 181.0), ("span_percentage", 1.5), ("kerf_diameter", 0.0)],
)
def test_parameter_ranges_are_validated(field, value) -> None:
    with pytest.raises(ValidationError):
        CamParameters(**{field: value})


def test_session_store_evicts_least_recently_used(prism, square_outline) -> None:
    mesh = prism(square_outline)
    store = SessionStore(max_entries=2)
    store.put(CamContext(model_id="a", mesh=mesh))
    store.put(CamContext(model_id="b", mesh=mesh))
    assert store.get("a") is not None
    store.put(CamContext(model_id="c", mesh=mesh))
    assert len(store) == 2
    assert store.get("b") is None
    assert store.get("a") is not None

    store.discard("a")
    store.discard("missing")
    assert store.get("a") is None
    assert len(store) == 1


def test_recompute_replaces_previous_session(prism, square_outline) -> None:
    mesh = prism(square_outline)
    store = SessionStore()
    first = store.recompute("m", mesh)
    second = store.recompute("m", mesh, CamParameters(kerf_diameter=2.0))
    assert len(store) == 1
    assert store.get("m") is second
    assert second is not first
    assert second.result is not None and second.result.kerf_radius == 1.0
