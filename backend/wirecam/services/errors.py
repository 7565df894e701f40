"""
Error types raised by the geometry pipeline.

Only malformed top‑level input is reported with an exception.  Benign
absences (no corner solution, segments that do not meet) are returned
as ``None`` or empty collections by the functions concerned, and
ambiguous graph topology is logged and resolved in place.
"""

from __future__ import annotations


class GeometryInputError(ValueError):
    """Raised when a mesh, height or perimeter cannot be processed.

    Examples are an empty or non‑triangular mesh, a non‑finite slicing
    height, a perimeter with fewer than three distinct vertices or a
    threshold outside its valid range.  The API layer converts this
    into a 422 response.
    """
