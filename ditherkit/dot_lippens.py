"""Lippens & Philips dot dithering.

A variant of dot diffusion with a large tiled class matrix and a 5x5
coefficient stencil.  Pixels are visited class by class across the whole
image instead of tile by tile.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.dot_diffusion import DotClassMatrix
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output
from ditherkit.ordered import bayer_values

# Only classes below this are visited
CLASS_LIMIT = 256


@dataclass(frozen=True, eq=False)
class DotLippensCoefficients:
    """Odd-sized square stencil of integer error weights.

    Attributes:
        weights: (K, K) stencil centred on the current pixel.
        divisor: Half the sum of all weights.
    """

    weights: np.ndarray

    def __post_init__(self) -> None:
        w = np.array(self.weights, dtype=np.int64)
        if w.ndim != 2 or w.shape[0] != w.shape[1] or w.shape[0] % 2 == 0:
            msg = f"Coefficient stencil must be square with odd size, got shape {w.shape}"
            raise ValueError(msg)
        if w.sum() <= 0:
            msg = "Coefficient stencil must have a positive sum"
            raise ValueError(msg)
        w.setflags(write=False)
        object.__setattr__(self, "weights", w)

    @property
    def divisor(self) -> float:
        return float(self.weights.sum()) / 2.0

    @property
    def half_size(self) -> int:
        return (self.weights.shape[0] - 1) // 2


def coefficients_1() -> DotLippensCoefficients:
    """Radial 5x5 stencil standing in for the first Lippens & Philips table.

    The published coefficient tables are not reproduced here; this and
    the other two stencils are symmetric stand-ins with a zero centre.
    """
    return DotLippensCoefficients(np.array([
        [0, 1, 1, 1, 0],
        [1, 3, 10, 3, 1],
        [1, 10, 0, 10, 1],
        [1, 3, 10, 3, 1],
        [0, 1, 1, 1, 0],
    ]))


def coefficients_2() -> DotLippensCoefficients:
    """Stand-in stencil weighted towards the four direct neighbours."""
    return DotLippensCoefficients(np.array([
        [0, 0, 1, 0, 0],
        [0, 4, 12, 4, 0],
        [1, 12, 0, 12, 1],
        [0, 4, 12, 4, 0],
        [0, 0, 1, 0, 0],
    ]))


def coefficients_3() -> DotLippensCoefficients:
    """Stand-in stencil with a broad, slowly falling radial weighting."""
    return DotLippensCoefficients(np.array([
        [1, 2, 3, 2, 1],
        [2, 5, 8, 5, 2],
        [3, 8, 0, 8, 3],
        [2, 5, 8, 5, 2],
        [1, 2, 3, 2, 1],
    ]))


DOT_LIPPENS_COEFFICIENTS: dict[str, Callable[[], DotLippensCoefficients]] = {
    "lippens1": coefficients_1,
    "lippens2": coefficients_2,
    "lippens3": coefficients_3,
}


def _default_order() -> np.ndarray:
    """2x2 interleave tiled over 8x8, a stand-in for the published orientation table."""
    i, j = np.mgrid[0:8, 0:8]
    return 2 * (i % 2) + j % 2


def create_dot_lippens_class_matrix(
    base: np.ndarray | None = None, order: np.ndarray | None = None,
) -> DotClassMatrix:
    """Tile four orientations of a 16x16 base order into a 128x128 class matrix.

    Args:
        base: (16, 16) order with values 0..255 (Bayer 16x16 by default).
        order: (8, 8) array of orientation numbers 0..3 selecting which
            orientation fills each 16x16 block.
    """
    base = bayer_values(16) if base is None else np.asarray(base, dtype=np.int64)
    order = _default_order() if order is None else np.asarray(order, dtype=np.int64)
    if base.shape != (16, 16):
        msg = f"Base order must be 16x16, got shape {base.shape}"
        raise ValueError(msg)
    if order.shape != (8, 8) or order.min() < 0 or order.max() > 3:
        msg = "Orientation order must be 8x8 with values 0..3"
        raise ValueError(msg)
    orientations = [
        base.T,
        base[::-1, ::-1].T,
        base[::-1, ::-1],
        base,
    ]
    blocks = [[orientations[int(k)] for k in row] for row in order]
    return DotClassMatrix(np.block(blocks))


def dot_lippens_dither(
    image: DitherImage,
    cmatrix: DotClassMatrix | None = None,
    coefficients: DotLippensCoefficients | None = None,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Lippens & Philips dot dither.

    Visits pixels with class ``0 .. 255`` in class order (row-major within
    a class).  The residual is spread over the stencil window to every
    in-bounds pixel whose class exceeds the column offset of that cell.
    """
    if cmatrix is None:
        cmatrix = create_dot_lippens_class_matrix()
    if coefficients is None:
        coefficients = coefficients_1()
    out = prepare_mono_output(image, levels, out)
    width, height = image.width, image.height
    bs = cmatrix.size
    reps = (-(-height // bs), -(-width // bs))
    classes = np.tile(cmatrix.values, reps)[:height, :width]
    flat = classes.ravel()
    order = np.argsort(flat, kind="stable")
    order = order[flat[order] < CLASS_LIMIT]

    half = coefficients.half_size
    divisor = coefficients.divisor
    stencil = [
        (dx, dy, float(coefficients.weights[dy + half, dx + half]) / divisor)
        for dy in range(-half, half + 1)
        for dx in range(-half, half + 1)
    ]
    class_rows = classes.tolist()
    buf = image.buffer.tolist()
    transparent = image.transparent.tolist()

    for addr in order.tolist():
        y, x = divmod(addr, width)
        if transparent[y][x]:
            continue
        err = buf[y][x]
        if err > 0.5:
            out[y, x] = levels.on
            err -= 1.0
        for dx, dy, w in stencil:
            xx, yy = x + dx, y + dy
            if 0 <= xx < width and 0 <= yy < height and class_rows[yy][xx] > dx:
                buf[yy][xx] += err * w
    return apply_transparency(image, levels, out)
