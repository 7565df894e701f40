"""
API routes for the CAM pipeline.

Two groups of endpoints live here:

- Stateless geometry endpoints under ``/cam``.  Each exposes one stage
  of the pipeline (slice, rulings, stitch, corner sync, kerf, G‑code)
  on inline data, so clients can drive the stages individually.
- Model‑bound toolpath endpoints.  ``POST /models/{id}/toolpath``
  recomputes the complete toolpath for a stored model and keeps the
  result as that model's session; the ``GET`` variants read it back,
  including a plain‑text G‑code download.

Malformed geometry raises ``GeometryInputError`` in the services; the
application maps it to HTTP 422.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import ValidationError

from .models import (
    GCodeRequest,
    GCodeResponse,
    KerfRequest,
    KerfResponse,
    KerfStepModel,
    MeshPayload,
    RulingModel,
    RulingsRequest,
    RulingsResponse,
    SliceRequest,
    SliceResponse,
    SolutionLineModel,
    StitchRequest,
    StitchResponse,
    SyncCornersRequest,
    SyncCornersResponse,
    ToolpathRequest,
    ToolpathResponse,
    ToolpathStepModel,
)
from ..services.corner_sync import SolutionLine, sync_corners
from ..services.errors import GeometryInputError
from ..services.gcode import emit_gcode
from ..services.geometry import get_mesh_for_model
from ..services.kerf import PROJECTED_PAIRS, KerfSolution, kerf_offsets
from ..services.mesh import TriangleMesh
from ..services.models_store import get_model_record
from ..services.pipeline import CamContext, CamParameters, ToolpathResult, sessions
from ..services.rulings import Ruling, detect_rulings
from ..services.slicing import PerimeterSet, slice_at_heights
from ..services.stitching import ToolpathStep, stitch

logger = logging.getLogger(__name__)

router = APIRouter()

# response key -> KerfSolution attribute
_KERF_POINTS = (
    ("E_B", "e_b"),
    ("E_C", "e_c"),
    ("E_E", "e_e"),
    ("E_F", "e_f"),
    ("M_B", "m_b"),
    ("M_C", "m_c"),
    ("M_E", "m_e"),
    ("M_F", "m_f"),
    ("I_BC", "i_bc"),
    ("I_EF", "i_ef"),
)


def _mesh_from_payload(payload: MeshPayload) -> TriangleMesh:
    if payload.triangles is not None:
        return TriangleMesh.from_soup(payload.triangles)
    if payload.positions is not None and payload.indices is not None:
        return TriangleMesh.from_indexed(payload.positions, payload.indices)
    raise GeometryInputError("mesh needs either 'triangles' or 'positions' and 'indices'")


def _ruling_models(rulings: List[Ruling]) -> List[RulingModel]:
    return [RulingModel(bottom=r.bottom, top=r.top) for r in rulings]


def _step_models(steps: List[ToolpathStep]) -> List[ToolpathStepModel]:
    return [ToolpathStepModel(bottom=s.bottom, top=s.top, isRuling=s.is_ruling) for s in steps]


def _solution_line_models(lines: List[SolutionLine]) -> List[SolutionLineModel]:
    return [SolutionLineModel(middleIndex=line.middle_index, start=line.start, end=line.end) for line in lines]


def _kerf_projections(solution: KerfSolution) -> Dict[str, Optional[tuple]]:
    return {name: solution.projections.get(name) for name, _, _ in PROJECTED_PAIRS}


@router.post("/cam/slice", response_model=SliceResponse)
def slice_mesh(body: SliceRequest) -> SliceResponse:
    """Extract the bottom and top land face perimeters of an inline mesh."""
    mesh = _mesh_from_payload(body.mesh)
    slices = slice_at_heights(mesh, body.bottomZ, body.topZ)
    return SliceResponse(p0=slices.p0, p1=slices.p1, bottomZ=slices.z_bottom, topZ=slices.z_top)


@router.post("/cam/rulings", response_model=RulingsResponse)
def find_rulings(body: RulingsRequest) -> RulingsResponse:
    mesh = _mesh_from_payload(body.mesh)
    rulings = detect_rulings(mesh, body.bottomZ, body.topZ, body.spanPercentage)
    return RulingsResponse(rulings=_ruling_models(rulings))


@router.post("/cam/stitch", response_model=StitchResponse)
def stitch_perimeters(body: StitchRequest) -> StitchResponse:
    """Pair the bottom and top loops into wire positions.

    The returned path is closed: its last step repeats the first.
    """
    rulings = [Ruling.from_endpoints(r.bottom, r.top) for r in body.rulings]
    steps = stitch(body.p0, body.p1, rulings, body.leadIn)
    return StitchResponse(steps=_step_models(steps))


@router.post("/cam/sync-corners", response_model=SyncCornersResponse)
def sync_perimeter_corners(body: SyncCornersRequest) -> SyncCornersResponse:
    perimeters = PerimeterSet(
        top=body.top,
        upper_quarter=body.upperQuarter,
        middle=body.middle,
        lower_quarter=body.lowerQuarter,
        bottom=body.bottom,
    )
    result = sync_corners(perimeters, body.angleThreshold)
    return SyncCornersResponse(
        top=result.top,
        bottom=result.bottom,
        syncPairs=result.sync_pairs,
        solutionLines=_solution_line_models(result.solution_lines),
    )


@router.post("/cam/kerf", response_model=KerfResponse)
def solve_kerf(body: KerfRequest) -> KerfResponse:
    """Offset one wire position by the kerf radius and project to the guides."""
    solution = kerf_offsets(body.points, body.radius, body.z0, body.z1)
    return KerfResponse(
        points={key: getattr(solution, attr) for key, attr in _KERF_POINTS},
        projections=_kerf_projections(solution),
    )


@router.post("/cam/gcode", response_model=GCodeResponse)
def generate_gcode(body: GCodeRequest) -> GCodeResponse:
    gcode = emit_gcode(body.top, body.bottom, body.syncPairs)
    return GCodeResponse(gcode=gcode, lineCount=len(gcode.splitlines()))


def _cam_parameters(body: ToolpathRequest) -> CamParameters:
    try:
        return CamParameters(
            bottom_z=body.bottomZ,
            top_z=body.topZ,
            span_percentage=body.spanPercentage,
            angle_threshold=body.angleThreshold,
            kerf_diameter=body.kerfDiameter,
            lower_guide_z=body.lowerGuideZ,
            upper_guide_z=body.upperGuideZ,
            lead_in=body.leadIn,
            manual_rulings=[(r.bottom, r.top) for r in body.manualRulings],
        )
    except ValidationError as exc:
        logger.warning("Rejected toolpath parameters: %s", exc)
        raise HTTPException(status_code=422, detail=f"Invalid toolpath parameters: {exc}")


def _toolpath_response(model_id: str, result: ToolpathResult) -> ToolpathResponse:
    return ToolpathResponse(
        modelId=model_id,
        bottomZ=result.slices.z_bottom,
        topZ=result.slices.z_top,
        p0=result.slices.p0,
        p1=result.slices.p1,
        rulings=_ruling_models(result.rulings),
        steps=_step_models(result.steps),
        topRail=result.corners.top,
        bottomRail=result.corners.bottom,
        syncPairs=result.sync_pairs,
        solutionLines=_solution_line_models(result.corners.solution_lines),
        gcode=result.gcode,
        kerfRadius=result.kerf_radius,
        guideZ=result.guide_z,
        kerf=[KerfStepModel(index=i, projections=_kerf_projections(s)) for i, s in result.kerf],
        elapsed=result.elapsed,
    )


def _current_session(model_id: str) -> CamContext:
    ctx = sessions.get(model_id)
    if ctx is None or ctx.result is None:
        raise HTTPException(status_code=404, detail="No toolpath computed for this model")
    return ctx


@router.post("/models/{model_id}/toolpath", response_model=ToolpathResponse)
def compute_model_toolpath(model_id: str, body: Optional[ToolpathRequest] = None) -> ToolpathResponse:
    """Recompute the full toolpath of a stored model.

    The result replaces any previous toolpath of the model.

    Raises:
        HTTPException: 404 for an unknown model, 409 when its mesh is
            not available, 422 for invalid parameters or geometry.
    """
    if get_model_record(model_id) is None:
        raise HTTPException(status_code=404, detail="Model not found")
    params = _cam_parameters(body or ToolpathRequest())
    mesh = get_mesh_for_model(model_id)
    if mesh is None:
        raise HTTPException(status_code=409, detail="Model mesh is not available")
    ctx = sessions.recompute(model_id, mesh, params)
    return _toolpath_response(model_id, ctx.result)


@router.get("/models/{model_id}/toolpath", response_model=ToolpathResponse)
async def get_model_toolpath(model_id: str) -> ToolpathResponse:
    ctx = _current_session(model_id)
    return _toolpath_response(model_id, ctx.result)


@router.get("/models/{model_id}/toolpath/gcode")
async def export_model_gcode(model_id: str) -> Response:
    """Download the last computed G‑code of a model as plain text."""
    ctx = _current_session(model_id)
    return Response(
        content=ctx.result.gcode + "\n" if ctx.result.gcode else "",
        media_type="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{model_id}.nc"'},
    )
