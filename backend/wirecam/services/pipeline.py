"""
End‑to‑end toolpath computation and the per‑model session registry.

``compute_toolpath`` chains every stage of the CAM pipeline for one
mesh and one set of :class:`CamParameters`:

1. slice the bottom and top land faces;
2. detect rulings and append any manually picked ones;
3. stitch the first bottom and top loops into a synchronised path;
4. cut the five perimeter levels and synchronise sharp corners;
5. emit the 4‑axis G‑code for the corner‑synchronised rails;
6. solve the kerf offsets along the stitched path.

Each call recomputes everything from scratch.  The only state kept
between calls is the last :class:`CamContext` per model, held by the
:class:`SessionStore` in the same LRU fashion as the slice cache.  A
new computation for a model replaces the previous one.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from threading import RLock
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import DEFAULT_TOLERANCES, Tolerances
from .corner_sync import CornerSyncResult, sync_corners
from .errors import GeometryInputError
from .gcode import emit_gcode
from .geom import Point3, SyncPair, nearest_vertex_index
from .kerf import KerfSolution, kerf_along_toolpath
from .mesh import TriangleMesh
from .rulings import Ruling, detect_rulings
from .slicing import PerimeterSet, SlicePerimeters, slice_at_heights, slice_perimeter_set
from .stitching import ToolpathStep, stitch

logger = logging.getLogger(__name__)


class CamParameters(BaseModel):
    """User‑tunable inputs of a toolpath computation."""

    bottom_z: Optional[float] = Field(default=None, description="Bottom land face height; bounding box minimum when omitted")
    top_z: Optional[float] = Field(default=None, description="Top land face height; bounding box maximum when omitted")
    span_percentage: float = Field(default=1.0, ge=0.0, le=1.0, description="Minimum ruling span as a fraction of part height")
    angle_threshold: float = Field(default=100.0, gt=0.0, le=180.0, description="Corners sharper than this (degrees) are synchronised")
    kerf_diameter: float = Field(default=0.25, gt=0.0, description="Wire kerf diameter")
    lower_guide_z: Optional[float] = Field(default=None, description="Bottom wire guide height; bottom_z when omitted")
    upper_guide_z: Optional[float] = Field(default=None, description="Top wire guide height; top_z when omitted")
    lead_in: Optional[Tuple[float, float, float]] = Field(default=None, description="Point near the top rail where cutting starts")
    manual_rulings: List[Tuple[Tuple[float, float, float], Tuple[float, float, float]]] = Field(
        default_factory=list, description="Additional rulings as (point, point) pairs"
    )


@dataclass
class ToolpathResult:
    slices: SlicePerimeters
    rulings: List[Ruling]
    steps: List[ToolpathStep]
    perimeters: PerimeterSet
    corners: CornerSyncResult
    sync_pairs: List[SyncPair]
    gcode: str
    kerf: List[Tuple[int, KerfSolution]]
    kerf_radius: float
    guide_z: Tuple[float, float]
    elapsed: float = 0.0


@dataclass
class CamContext:
    """Everything one model's session needs, passed explicitly between calls."""

    model_id: str
    mesh: TriangleMesh
    params: CamParameters = field(default_factory=CamParameters)
    result: Optional[ToolpathResult] = None


def _default_sync_pairs(top: List[Point3], bottom: List[Point3]) -> List[SyncPair]:
    if not top or not bottom:
        return []
    return [(0, nearest_vertex_index((top[0][0], top[0][1], bottom[0][2]), bottom))]


def compute_toolpath(
    mesh: TriangleMesh,
    params: Optional[CamParameters] = None,
    tol: Tolerances = DEFAULT_TOLERANCES,
) -> ToolpathResult:
    """Run the complete pipeline for one mesh.

    Args:
        mesh: The oriented model.
        params: Computation parameters; defaults apply when omitted.
        tol: Tolerance bundle forwarded to every stage.

    Returns:
        A :class:`ToolpathResult` with every intermediate product.

    Raises:
        GeometryInputError: When the mesh is unusable or no closed
            perimeter exists at one of the slicing heights.
    """
    params = params or CamParameters()
    start = time.perf_counter()

    slices = slice_at_heights(mesh, params.bottom_z, params.top_z, tol)
    if not slices.p0 or not slices.p1:
        raise GeometryInputError(
            f"no land face perimeter at z_bottom={slices.z_bottom} or z_top={slices.z_top}"
        )
    zb, zt = slices.z_bottom, slices.z_top

    rulings = detect_rulings(mesh, zb, zt, params.span_percentage, tol)
    rulings.extend(Ruling.from_endpoints(a, b) for a, b in params.manual_rulings)

    steps = stitch(slices.p0[0], slices.p1[0], rulings, params.lead_in, tol)

    perimeters = slice_perimeter_set(mesh, zb, zt, tol)
    corners = sync_corners(perimeters, params.angle_threshold, tol)
    sync_pairs = corners.sync_pairs or _default_sync_pairs(corners.top, corners.bottom)
    gcode = emit_gcode(corners.top, corners.bottom, sync_pairs, tol)

    radius = params.kerf_diameter / 2.0
    z0 = zb if params.lower_guide_z is None else params.lower_guide_z
    z1 = zt if params.upper_guide_z is None else params.upper_guide_z
    kerf = kerf_along_toolpath(steps, radius, z0, z1, tol)

    elapsed = time.perf_counter() - start
    logger.info(
        "compute_toolpath: rulings=%d steps=%d sync_pairs=%d gcode_lines=%d kerf=%d in %.3f s",
        len(rulings),
        len(steps),
        len(sync_pairs),
        gcode.count("\n") + 1 if gcode else 0,
        len(kerf),
        elapsed,
    )
    return ToolpathResult(
        slices=slices,
        rulings=rulings,
        steps=steps,
        perimeters=perimeters,
        corners=corners,
        sync_pairs=sync_pairs,
        gcode=gcode,
        kerf=kerf,
        kerf_radius=radius,
        guide_z=(z0, z1),
        elapsed=elapsed,
    )


class SessionStore:
    """Thread‑safe registry of the last :class:`CamContext` per model.

    Entries are evicted least recently used once ``max_entries`` is
    exceeded, so the store never grows without bound.
    """

    def __init__(self, max_entries: int = 16) -> None:
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CamContext]" = OrderedDict()
        self._lock = RLock()

    def get(self, model_id: str) -> Optional[CamContext]:
        with self._lock:
            ctx = self._entries.get(model_id)
            if ctx is not None:
                self._entries.move_to_end(model_id)
            return ctx

    def put(self, ctx: CamContext) -> None:
        with self._lock:
            self._entries[ctx.model_id] = ctx
            self._entries.move_to_end(ctx.model_id)
            if len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("SessionStore: evicted session for model_id=%s", evicted)

    def discard(self, model_id: str) -> None:
        with self._lock:
            self._entries.pop(model_id, None)

    def recompute(
        self,
        model_id: str,
        mesh: TriangleMesh,
        params: Optional[CamParameters] = None,
    ) -> CamContext:
        """Compute a fresh toolpath and make it the model's current session."""
        ctx = CamContext(model_id=model_id, mesh=mesh, params=params or CamParameters())
        ctx.result = compute_toolpath(mesh, ctx.params)
        self.put(ctx)
        return ctx

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


sessions = SessionStore()


__all__ = [
    "CamParameters",
    "CamContext",
    "ToolpathResult",
    "compute_toolpath",
    "SessionStore",
    "sessions",
]
