"""Tetrahedral-interpolation palette backend.

The palette is triangulated in linear RGB; a query colour is expressed
as barycentric weights over the vertices of the tetrahedron enclosing
it. Palettes that cannot be triangulated (fewer than four colours, or
all colours on a plane or line) and queries outside the hull fall back
to the nearest palette colour.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.spatial import Delaunay, QhullError, cKDTree

logger = logging.getLogger(__name__)


class Tetrapal:
    """Delaunay triangulation of a palette.

    Args:
        points: (N, 3) float palette coordinates (linear RGB).
    """

    def __init__(self, points: np.ndarray) -> None:
        self._points = np.asarray(points, dtype=np.float64)
        if self._points.ndim != 2 or self._points.shape[1] != 3 or not len(self._points):
            msg = f"Tetrapal needs a non-empty (N, 3) point set, got {self._points.shape}"
            raise ValueError(msg)
        self._nearest = cKDTree(self._points)
        self._triangulation: Delaunay | None = None
        if len(self._points) >= 4:
            try:
                self._triangulation = Delaunay(self._points)
            except QhullError:
                logger.debug("Palette is degenerate; using nearest-colour lookup")

    @property
    def triangulated(self) -> bool:
        return self._triangulation is not None

    def interpolate(self, point: np.ndarray) -> list[tuple[int, float]]:
        """Return up to four ``(palette index, weight)`` pairs for *point*."""
        p = np.asarray(point, dtype=np.float64)
        tri = self._triangulation
        if tri is not None:
            simplex = int(tri.find_simplex(p))
            if simplex >= 0:
                transform = tri.transform[simplex]
                bary = transform[:3] @ (p - transform[3])
                weights = np.append(bary, 1.0 - bary.sum())
                return [
                    (int(v), float(w))
                    for v, w in zip(tri.simplices[simplex], weights, strict=True)
                ]
        _, idx = self._nearest.query(p)
        return [(int(idx), 1.0)]

    def closest_index(self, point: np.ndarray) -> int:
        """Index of the candidate with the largest interpolation weight."""
        best_index, best_weight = -1, -np.inf
        for index, weight in self.interpolate(point):
            if weight > best_weight:
                best_index, best_weight = index, weight
        return best_index
