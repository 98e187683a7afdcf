"""Knuth's dot diffusion.

The image is cut into tiles the size of a class matrix.  Inside each tile
pixels are thresholded in class order and the residual is pushed only to
the 8-neighbours that come *later* in that order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output
from ditherkit.ordered import bayer_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class DotClassMatrix:
    """Square matrix of non-negative processing classes.

    Knuth-style dot diffusion needs every class ``0 .. n*n - 1`` exactly
    once (see :attr:`is_permutation`); the Lippens matrix repeats classes.
    """

    values: np.ndarray

    def __post_init__(self) -> None:
        v = np.array(self.values, dtype=np.int64)
        if v.ndim != 2 or v.shape[0] != v.shape[1] or v.size == 0:
            msg = f"Class matrix must be square, got shape {v.shape}"
            raise ValueError(msg)
        if v.min() < 0:
            msg = "Class matrix values must be non-negative"
            raise ValueError(msg)
        v.setflags(write=False)
        object.__setattr__(self, "values", v)

    @property
    def size(self) -> int:
        return self.values.shape[0]

    @property
    def is_permutation(self) -> bool:
        return bool(np.array_equal(np.sort(self.values.ravel()), np.arange(self.values.size)))

    def positions(self) -> list[tuple[int, int]]:
        """``positions()[c]`` is the tile-local ``(x, y)`` of class *c*."""
        lut: list[tuple[int, int]] = [(0, 0)] * self.values.size
        for (y, x), c in np.ndenumerate(self.values):
            lut[int(c)] = (x, y)
        return lut


@dataclass(frozen=True, eq=False)
class DotDiffusionMatrix:
    """3x3 stencil of error weights around the current pixel."""

    weights: np.ndarray

    def __post_init__(self) -> None:
        w = np.array(self.weights, dtype=np.float64)
        if w.shape != (3, 3):
            msg = f"Dot diffusion stencil must be 3x3, got shape {w.shape}"
            raise ValueError(msg)
        w.setflags(write=False)
        object.__setattr__(self, "weights", w)


# -- Built-in data -----------------------------------------------------

def knuth_diffusion_matrix() -> DotDiffusionMatrix:
    return DotDiffusionMatrix(np.array([[1, 2, 1], [2, 0, 2], [1, 2, 1]]))


def knuth_class_matrix() -> DotClassMatrix:
    return DotClassMatrix(np.array([
        [34, 48, 40, 32, 29, 15, 23, 31],
        [42, 58, 56, 53, 21, 5, 7, 10],
        [50, 62, 61, 45, 13, 1, 2, 18],
        [38, 46, 54, 37, 25, 17, 9, 26],
        [28, 14, 22, 30, 35, 49, 41, 33],
        [20, 4, 6, 11, 43, 59, 57, 52],
        [12, 0, 3, 19, 51, 63, 60, 44],
        [24, 16, 8, 27, 39, 47, 55, 36],
    ]))


def bayer_class_matrix(size: int = 8) -> DotClassMatrix:
    return DotClassMatrix(bayer_values(size))


def _spiral_values(size: int) -> np.ndarray:
    # Walk outward from the centre: right, down, left, up with growing legs
    values = np.full((size, size), -1, dtype=np.int64)
    x = y = (size - 1) // 2
    steps = ((1, 0), (0, 1), (-1, 0), (0, -1))
    count, leg, direction = 0, 1, 0
    while count < size * size:
        for _ in range(2):
            dx, dy = steps[direction % 4]
            for _ in range(leg):
                if 0 <= x < size and 0 <= y < size and values[y, x] < 0:
                    values[y, x] = count
                    count += 1
                x += dx
                y += dy
            direction += 1
        leg += 1
    return values


def spiral_class_matrix(size: int = 8) -> DotClassMatrix:
    return DotClassMatrix(_spiral_values(size))


def spiral_inverted_class_matrix(size: int = 8) -> DotClassMatrix:
    return DotClassMatrix(size * size - 1 - _spiral_values(size))


DOT_CLASS_MATRICES: dict[str, Callable[[], DotClassMatrix]] = {
    "knuth": knuth_class_matrix,
    "bayer": bayer_class_matrix,
    "spiral": spiral_class_matrix,
    "spiral_inverted": spiral_inverted_class_matrix,
}


def get_dot_class_matrix(name: str) -> DotClassMatrix:
    if name not in DOT_CLASS_MATRICES:
        available = ", ".join(DOT_CLASS_MATRICES)
        msg = f"Unknown class matrix '{name}'. Available: {available}"
        raise ValueError(msg)
    return DOT_CLASS_MATRICES[name]()


# -- Engine ------------------------------------------------------------

def _later_neighbors(
    cmatrix: DotClassMatrix, dmatrix: DotDiffusionMatrix,
) -> list[list[tuple[int, int, float]]]:
    """Per class: tile-local ``(x, y, weight)`` of neighbours processed later."""
    bs = cmatrix.size
    values = cmatrix.values
    result = []
    for c, (cx, cy) in enumerate(cmatrix.positions()):
        targets = []
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                nx, ny = cx + dx, cy + dy
                if 0 <= nx < bs and 0 <= ny < bs and values[ny, nx] > c:
                    w = float(dmatrix.weights[dy + 1, dx + 1])
                    if w > 0:
                        targets.append((nx, ny, w))
        result.append(targets)
    return result


def dot_diffusion_dither(
    image: DitherImage,
    dmatrix: DotDiffusionMatrix | None = None,
    cmatrix: DotClassMatrix | None = None,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Dot diffusion with the given stencil and class matrix (Knuth's by default).

    The divisor for each pixel is the sum of the weights that actually
    receive error, so a pixel with no later neighbours keeps its residual.
    """
    if dmatrix is None:
        dmatrix = knuth_diffusion_matrix()
    if cmatrix is None:
        cmatrix = knuth_class_matrix()
    if not cmatrix.is_permutation:
        msg = f"Class matrix must hold each of 0..{cmatrix.values.size - 1} once"
        raise ValueError(msg)
    out = prepare_mono_output(image, levels, out)
    bs = cmatrix.size
    positions = cmatrix.positions()
    neighbors = _later_neighbors(cmatrix, dmatrix)
    width, height = image.width, image.height
    buf = image.buffer.tolist()
    transparent = image.transparent.tolist()

    for oy in range(0, math.ceil(height / bs) * bs, bs):
        for ox in range(0, math.ceil(width / bs) * bs, bs):
            for c, (cx, cy) in enumerate(positions):
                x, y = cx + ox, cy + oy
                if x >= width or y >= height or transparent[y][x]:
                    continue
                err = buf[y][x]
                if err > 0.5:
                    out[y, x] = levels.on
                    err -= 1.0
                targets = neighbors[c]
                total = sum(w for _, _, w in targets)
                if total <= 0:
                    continue
                err /= total
                for nx, ny, w in targets:
                    xx, yy = nx + ox, ny + oy
                    if xx < width and yy < height:
                        buf[yy][xx] += err * w
    logger.debug("Dot diffusion on %dx%d with %dx%d class tiles", width, height, bs, bs)
    return apply_transparency(image, levels, out)
