"""
Pydantic data models for the wirecam API.

Field names are camelCase to match the JSON consumed by the browser
client.  Points travel as ``[x, y, z]`` arrays and perimeters as lists
of polylines.  Conversion to and from the internal dataclasses lives
in the route modules, keeping these schemas free of logic.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

Point = Tuple[float, float, float]
PolylineModel = List[Point]
PerimeterModel = List[PolylineModel]


class ModelInfo(BaseModel):
    """Metadata returned after a model file is uploaded."""

    modelId: str = Field(..., description="Unique identifier for the uploaded model")
    filename: str = Field(..., description="Original filename provided by the client")
    format: str = Field(..., description="Detected file format ('step' or 'stl')")
    status: str = Field(..., description="Processing status right after upload")


class ModelStatusInfo(BaseModel):
    """Summary information about a stored model and its processing status."""

    modelId: str = Field(..., description="Unique identifier for the model")
    name: str = Field(..., description="Original filename provided by the user")
    format: str = Field(..., description="File format ('step' or 'stl')")
    createdAt: Any = Field(..., description="Timestamp of when the model was uploaded")
    status: str = Field(..., description="Processing status of the model (preprocessing, ready, failed)")
    errorMessage: Optional[str] = Field(
        default=None, description="Error message if preprocessing failed"
    )


class MeshBBox(BaseModel):
    """Axis‑aligned bounding box for a mesh."""

    min: List[float] = Field(..., description="Minimum x, y, z coordinates of the mesh")
    max: List[float] = Field(..., description="Maximum x, y, z coordinates of the mesh")


class MeshResponse(BaseModel):
    """Triangulated mesh of a stored model."""

    modelId: str = Field(..., description="Identifier of the associated model")
    vertices: List[float] = Field(..., description="Flat list of vertex positions (x, y, z …)")
    indices: List[int] = Field(..., description="Index buffer defining the mesh triangles")
    bbox: MeshBBox = Field(..., description="Bounding box around the mesh")


class MeshPayload(BaseModel):
    """Inline mesh: either a triangle soup or positions plus indices."""

    triangles: Optional[List[float]] = Field(
        default=None, description="Flat triangle soup, 9 floats per triangle"
    )
    positions: Optional[List[float]] = Field(
        default=None, description="Flat vertex positions, 3 floats per vertex"
    )
    indices: Optional[List[int]] = Field(
        default=None, description="Flat triangle index triples into positions"
    )


class RulingModel(BaseModel):
    bottom: Point = Field(..., description="Lower endpoint of the ruling")
    top: Point = Field(..., description="Upper endpoint of the ruling")


class ToolpathStepModel(BaseModel):
    bottom: Point
    top: Point
    isRuling: bool = Field(default=False, description="True when the step is pinned by a ruling")


class SolutionLineModel(BaseModel):
    middleIndex: int = Field(..., description="Vertex index on the middle perimeter")
    start: Point = Field(..., description="Corner on the middle perimeter")
    end: Point = Field(..., description="Sync point on the top rail")


class SliceRequest(BaseModel):
    mesh: MeshPayload
    bottomZ: Optional[float] = Field(default=None, description="Bottom land face height (bbox min when omitted)")
    topZ: Optional[float] = Field(default=None, description="Top land face height (bbox max when omitted)")


class SliceResponse(BaseModel):
    p0: PerimeterModel = Field(..., description="Bottom perimeter polylines")
    p1: PerimeterModel = Field(..., description="Top perimeter polylines")
    bottomZ: float
    topZ: float


class RulingsRequest(BaseModel):
    mesh: MeshPayload
    bottomZ: float
    topZ: float
    spanPercentage: float = Field(default=1.0, description="Minimum ruling span as a fraction of the height (0–1)")


class RulingsResponse(BaseModel):
    rulings: List[RulingModel]


class StitchRequest(BaseModel):
    p0: PolylineModel = Field(..., description="Bottom perimeter loop")
    p1: PolylineModel = Field(..., description="Top perimeter loop")
    rulings: List[RulingModel] = Field(default_factory=list)
    leadIn: Optional[Point] = Field(default=None, description="Start point near the top perimeter")


class StitchResponse(BaseModel):
    steps: List[ToolpathStepModel]


class SyncCornersRequest(BaseModel):
    top: PerimeterModel
    upperQuarter: PerimeterModel
    middle: PerimeterModel
    lowerQuarter: PerimeterModel
    bottom: PerimeterModel
    angleThreshold: float = Field(default=100.0, description="Corners sharper than this (degrees) are synchronised")


class SyncCornersResponse(BaseModel):
    top: PolylineModel = Field(..., description="Top rail with sync points inserted")
    bottom: PolylineModel = Field(..., description="Bottom rail with sync points inserted")
    syncPairs: List[Tuple[int, int]] = Field(..., description="(top index, bottom index) pairs sorted by top index")
    solutionLines: List[SolutionLineModel]


class KerfRequest(BaseModel):
    points: Dict[str, Point] = Field(..., description="Points A–F (A/D current, B/E trailing, C/F leading)")
    radius: float = Field(..., description="Kerf (wire) radius")
    z0: float = Field(..., description="Bottom guide plane height")
    z1: float = Field(..., description="Top guide plane height")


class KerfResponse(BaseModel):
    points: Dict[str, Optional[Point]] = Field(..., description="Offset points E_*, M_*, I_*")
    projections: Dict[str, Optional[Tuple[Point, Point]]] = Field(
        ..., description="Wire line name -> (point on Z0, point on Z1)"
    )


class GCodeRequest(BaseModel):
    top: PolylineModel
    bottom: PolylineModel
    syncPairs: List[Tuple[int, int]]


class GCodeResponse(BaseModel):
    gcode: str
    lineCount: int


class ToolpathRequest(BaseModel):
    """Parameters of a full toolpath recompute for a stored model."""

    bottomZ: Optional[float] = Field(default=None, description="Bottom land face height (bbox min when omitted)")
    topZ: Optional[float] = Field(default=None, description="Top land face height (bbox max when omitted)")
    spanPercentage: float = Field(default=1.0, description="Minimum ruling span as a fraction of the height (0–1)")
    angleThreshold: float = Field(default=100.0, description="Corner angle threshold in degrees")
    kerfDiameter: float = Field(default=0.25, description="Wire kerf diameter")
    lowerGuideZ: Optional[float] = Field(default=None, description="Bottom wire guide height")
    upperGuideZ: Optional[float] = Field(default=None, description="Top wire guide height")
    leadIn: Optional[Point] = Field(default=None, description="Start point near the top perimeter")
    manualRulings: List[RulingModel] = Field(default_factory=list, description="Rulings picked by the user")


class KerfStepModel(BaseModel):
    index: int = Field(..., description="Index of the stitched step")
    projections: Dict[str, Optional[Tuple[Point, Point]]]


class ToolpathResponse(BaseModel):
    modelId: str
    bottomZ: float
    topZ: float
    p0: PerimeterModel
    p1: PerimeterModel
    rulings: List[RulingModel]
    steps: List[ToolpathStepModel]
    topRail: PolylineModel
    bottomRail: PolylineModel
    syncPairs: List[Tuple[int, int]]
    solutionLines: List[SolutionLineModel]
    gcode: str
    kerfRadius: float
    guideZ: Tuple[float, float]
    kerf: List[KerfStepModel]
    elapsed: float = Field(..., description="Computation time in seconds")
