"""
Configuration for the wire‑EDM toolpath backend.

Two kinds of settings live here.  ``Tolerances`` gathers every epsilon
used by the geometry pipeline into a single frozen dataclass so that
point merging, collinearity checks and arc‑length guards no longer
carry their own ad‑hoc constants.  Every public geometry function
accepts an optional ``tol`` argument and falls back to
``DEFAULT_TOLERANCES``.

Runtime switches are read from environment variables, in the same
spirit as the ``SLICE_DEBUG`` flag used by the slicing code:

- ``CAM_DEBUG`` – when truthy, the core modules emit verbose debug
  traces (segment counts, branching decisions, rejected corners).
- ``WIRECAM_STORAGE_DIR`` – overrides the directory holding the SQLite
  database, uploaded files and cached meshes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Tolerances:
    """Epsilon values shared by all pipeline stages.

    Attributes:
        point_merge: Distance under which two segment endpoints are the
            same graph node when reconstructing polylines.
        plane: Absolute |z - Z| under which a vertex is considered to lie
            on a slicing plane.
        vertex_weld: Distance used to weld mesh vertices before building
            edge adjacency for ruling detection.
        collinear_dot: Minimum normalised dot product for two edge
            directions to be treated as one straight chain (≈2.5°).
        intersection: Tolerance of the planar segment intersector
            (parallelism, parameter range and point merging).
        collinearity: Slack allowed in the triangle‑equality test that
            decides whether three points lie on one line.
        straight_angle: Degrees from 180 under which a corner is treated
            as straight and ignored.
        sync_insert: Distance used when inserting a sync point into a
            perimeter (vertex reuse and edge matching).
        arc_length: Lengths below this are treated as zero.
        projection: Minimum |dz| of a line for it to be projected onto a
            guide plane.
    """

    point_merge: float = 1e-9
    plane: float = 1e-9
    vertex_weld: float = 1e-6
    collinear_dot: float = 0.999
    intersection: float = 1e-4
    collinearity: float = 1e-6
    straight_angle: float = 1e-6
    sync_insert: float = 1e-4
    arc_length: float = 1e-9
    projection: float = 1e-9


DEFAULT_TOLERANCES = Tolerances()


def cam_debug_enabled() -> bool:
    """Return True when verbose CAM tracing was requested via ``CAM_DEBUG``."""
    return bool(os.getenv("CAM_DEBUG"))


def storage_dir() -> Path:
    """Return the storage root, creating it on first use.

    Defaults to ``<repo>/storage``; ``WIRECAM_STORAGE_DIR`` overrides it.
    """
    override = os.getenv("WIRECAM_STORAGE_DIR")
    if override:
        path = Path(override)
    else:
        path = Path(__file__).resolve().parents[2] / "storage"
    path.mkdir(parents=True, exist_ok=True)
    return path
