"""
Shared fixtures for the wirecam test suite.

The storage directory (SQLite database, uploads and mesh caches) is
redirected to a throwaway directory before any ``wirecam`` module is
imported, so test runs never touch the developer's ``storage/`` folder.
"""

import math
import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, List, Sequence, Tuple

import pytest

os.environ.setdefault("WIRECAM_STORAGE_DIR", tempfile.mkdtemp(prefix="wirecam-test-"))

sys.path.append(str(Path(__file__).resolve().parents[1]))

from wirecam.services.mesh import TriangleMesh  # noqa: E402


def regular_polygon(n: int, radius: float, z: float = 0.0) -> List[Tuple[float, float, float]]:
    """Counter-clockwise regular n-gon centred on the origin."""
    return [
        (radius * math.cos(2.0 * math.pi * k / n), radius * math.sin(2.0 * math.pi * k / n), z)
        for k in range(n)
    ]


def prism_soup(outline: Sequence[Tuple[float, float]], z_bottom: float, z_top: float) -> List[float]:
    """Triangle soup of a vertical prism over a convex counter-clockwise outline.

    Caps are fanned from vertex 0; every side quad is split along the
    diagonal from bottom vertex ``i`` to top vertex ``i + 1``.
    """
    n = len(outline)
    bottom = [(x, y, z_bottom) for x, y in outline]
    top = [(x, y, z_top) for x, y in outline]
    triangles = []
    for i in range(1, n - 1):
        triangles.append((bottom[0], bottom[i + 1], bottom[i]))
        triangles.append((top[0], top[i], top[i + 1]))
    for i in range(n):
        j = (i + 1) % n
        triangles.append((bottom[i], bottom[j], top[j]))
        triangles.append((bottom[i], top[j], top[i]))
    return [c for tri in triangles for p in tri for c in p]


@pytest.fixture
def prism() -> Callable[..., TriangleMesh]:
    def build(outline: Sequence[Tuple[float, float]], z_bottom: float = 0.0, z_top: float = 10.0) -> TriangleMesh:
        return TriangleMesh.from_soup(prism_soup(outline, z_bottom, z_top))

    return build


@pytest.fixture
def ngon() -> Callable[..., List[Tuple[float, float, float]]]:
    return regular_polygon


@pytest.fixture
def square_outline() -> List[Tuple[float, float]]:
    return [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]


def ascii_stl(soup: Sequence[float], name: str = "part") -> bytes:
    """Encode a flat triangle soup as an ASCII STL file."""
    lines = [f"solid {name}"]
    for k in range(0, len(soup), 9):
        lines.append("  facet normal 0 0 0")
        lines.append("    outer loop")
        for j in range(k, k + 9, 3):
            lines.append(f"      vertex {soup[j]:.6f} {soup[j + 1]:.6f} {soup[j + 2]:.6f}")
        lines.append("    endloop")
        lines.append("  endfacet")
    lines.append(f"endsolid {name}")
    return ("\n".join(lines) + "\n").encode("ascii")


@pytest.fixture
def square_prism_stl(square_outline) -> bytes:
    return ascii_stl(prism_soup(square_outline, 0.0, 10.0), name="square_prism")


@pytest.fixture
def square_prism_soup(square_outline) -> List[float]:
    return prism_soup(square_outline, 0.0, 10.0)
