"""Ordered (threshold-matrix) dithering, mono and colour.

Besides fixed tables the module generates matrices: recursive Bayer
matrices, void-and-cluster blue noise, the step-parameterised 2x2 / 4x4
"variable" matrices, interleaved gradient noise and matrices taken from
an image.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
from scipy.ndimage import gaussian_filter

from ditherkit.cached_palette import CachedPalette
from ditherkit.config import OutputLevels
from ditherkit.gamma import gamma_decode
from ditherkit.image import (
    ColorImage,
    DitherImage,
    apply_transparency,
    prepare_color_output,
    prepare_mono_output,
)
from ditherkit.rng import box_muller_array

logger = logging.getLogger(__name__)

INT_MAX = 2_147_483_647

# Linear-light bias removed before colour ordered dithering
COLOR_BIAS = 0.022


@dataclass(frozen=True, eq=False)
class OrderedDitherMatrix:
    """Threshold matrix tiled over the image.

    Attributes:
        values:  (H, W) integer thresholds.
        divisor: ``values / divisor`` maps thresholds into [0, 1).
    """

    values: np.ndarray
    divisor: float

    def __post_init__(self) -> None:
        v = np.array(self.values, dtype=np.int64)
        if v.ndim != 2 or v.size == 0:
            msg = f"Ordered matrix must be a non-empty 2-D array, got shape {v.shape}"
            raise ValueError(msg)
        if self.divisor <= 0:
            msg = f"Divisor must be positive, got {self.divisor}"
            raise ValueError(msg)
        v.setflags(write=False)
        object.__setattr__(self, "values", v)

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    def thresholds(self) -> np.ndarray:
        """Offsets added to pixels, centred on 0: ``values / divisor - 0.5``."""
        return self.values / float(self.divisor) - 0.5

    def tile(self, width: int, height: int) -> np.ndarray:
        """Threshold offsets tiled to cover a *width* x *height* image."""
        t = self.thresholds()
        reps = (-(-height // self.height), -(-width // self.width))
        return np.tile(t, reps)[:height, :width]


# -- Generated matrices ------------------------------------------------

def bayer_values(size: int) -> np.ndarray:
    """Recursive Bayer index matrix; *size* must be a power of two."""
    if size < 1 or size & (size - 1):
        msg = f"Bayer matrix size must be a power of two, got {size}"
        raise ValueError(msg)
    m = np.zeros((1, 1), dtype=np.int64)
    while m.shape[0] < size:
        m = np.block([[4 * m, 4 * m + 2], [4 * m + 3, 4 * m + 1]])
    return m


def bayer_matrix(size: int) -> OrderedDitherMatrix:
    return OrderedDitherMatrix(bayer_values(size), size * size)


def bayer2x2() -> OrderedDitherMatrix:
    return bayer_matrix(2)


def bayer3x3() -> OrderedDitherMatrix:
    return OrderedDitherMatrix(np.array([[0, 7, 3], [6, 5, 2], [4, 1, 8]]), 9)


def bayer4x4() -> OrderedDitherMatrix:
    return bayer_matrix(4)


def bayer8x8() -> OrderedDitherMatrix:
    return bayer_matrix(8)


def bayer16x16() -> OrderedDitherMatrix:
    return bayer_matrix(16)


def bayer32x32() -> OrderedDitherMatrix:
    return bayer_matrix(32)


@lru_cache(maxsize=8)
def _void_and_cluster(size: int, seed: int, sigma: float) -> np.ndarray:
    rng = np.random.default_rng(seed)
    n = size * size
    ones = max(1, n // 10)
    initial = np.zeros(n, dtype=bool)
    initial[rng.choice(n, ones, replace=False)] = True

    def energy(pattern: np.ndarray) -> np.ndarray:
        field = pattern.reshape(size, size).astype(np.float64)
        return gaussian_filter(field, sigma, mode="wrap").ravel()

    def tightest_cluster(pattern: np.ndarray) -> int:
        return int(np.argmax(np.where(pattern, energy(pattern), -np.inf)))

    def largest_void(pattern: np.ndarray) -> int:
        return int(np.argmin(np.where(pattern, np.inf, energy(pattern))))

    # Move points from clusters into voids until the pattern is stable
    for _ in range(n):
        cluster = tightest_cluster(initial)
        initial[cluster] = False
        void = largest_void(initial)
        initial[void] = True
        if void == cluster:
            break

    ranks = np.zeros(n, dtype=np.int64)
    pattern = initial.copy()
    for rank in range(ones - 1, -1, -1):
        idx = tightest_cluster(pattern)
        pattern[idx] = False
        ranks[idx] = rank
    pattern = initial.copy()
    for rank in range(ones, n):
        idx = largest_void(pattern)
        pattern[idx] = True
        ranks[idx] = rank
    logger.debug("Void-and-cluster %dx%d (seed=%d) done", size, size, seed)
    return ranks.reshape(size, size)


def blue_noise_values(size: int = 64, seed: int = 0, sigma: float = 1.5) -> np.ndarray:
    """Void-and-cluster rank matrix with values ``0 .. size*size - 1``."""
    if size < 2:
        msg = f"Blue noise size must be >= 2, got {size}"
        raise ValueError(msg)
    return _void_and_cluster(size, seed, sigma).copy()


def blue_noise(size: int = 64, seed: int = 0) -> OrderedDitherMatrix:
    return OrderedDitherMatrix(blue_noise_values(size, seed), size * size)


def variable_4x4(step: int) -> OrderedDitherMatrix:
    """4x4 matrix whose threshold spread grows with *step*."""
    base = np.array([
        [-7.5, 0.5, -5.5, 2.5],
        [4.5, -3.5, 6.5, -1.5],
        [-4.5, 3.5, -6.5, 1.5],
        [7.5, -0.5, 5.5, -2.5],
    ])
    t = np.floor(np.clip(127.5 + step * base, 0, 255))
    return OrderedDitherMatrix(t.astype(np.int64), 255)


def variable_2x2(step: int) -> OrderedDitherMatrix:
    base = np.array([[-1.5, 1.5], [0.5, -0.5]])
    t = np.floor(np.clip(127.5 + step * base, 0, 255))
    return OrderedDitherMatrix(t.astype(np.int64), 255)


def interleaved_gradient_noise(
    size: int, a: float = 52.9829189, b: float = 0.06711056, c: float = 0.00583715,
) -> OrderedDitherMatrix:
    """``fract(a * (b*x + c*y))`` scaled to ``INT_MAX``."""
    y, x = np.mgrid[0:size, 0:size]
    v = a * (b * x + c * y)
    values = ((v - np.floor(v)) * INT_MAX).astype(np.int64)
    if not np.any(values > 0):
        msg = f"Interleaved gradient noise ({a}, {b}, {c}) is zero everywhere"
        raise ValueError(msg)
    return OrderedDitherMatrix(values, INT_MAX)


def matrix_from_image(image: DitherImage) -> OrderedDitherMatrix:
    """Use an image (e.g. a noise texture) as a threshold matrix."""
    values = np.round(image.buffer * INT_MAX).astype(np.int64)
    return OrderedDitherMatrix(values, INT_MAX)


# -- Clustered-dot halftone screens ------------------------------------

def _screen(rows: list[list[int]], divisor: int) -> OrderedDitherMatrix:
    return OrderedDitherMatrix(np.array(rows), divisor)


def halftone4x4_orthogonal() -> OrderedDitherMatrix:
    return _screen([
        [7, 13, 11, 4],
        [12, 16, 14, 8],
        [10, 15, 6, 2],
        [5, 9, 3, 1],
    ], 17)


def halftone6x6_orthogonal() -> OrderedDitherMatrix:
    return _screen([
        [7, 17, 27, 14, 9, 4],
        [21, 29, 33, 31, 18, 11],
        [24, 32, 36, 34, 25, 22],
        [19, 30, 35, 28, 20, 10],
        [8, 15, 26, 16, 6, 2],
        [5, 13, 23, 12, 3, 1],
    ], 37)


def halftone8x8_orthogonal() -> OrderedDitherMatrix:
    return _screen([
        [7, 21, 33, 43, 36, 19, 9, 4],
        [16, 27, 51, 55, 49, 29, 14, 11],
        [31, 47, 57, 61, 59, 45, 35, 23],
        [41, 53, 60, 64, 62, 52, 40, 38],
        [37, 44, 58, 63, 56, 46, 30, 22],
        [15, 28, 48, 54, 50, 26, 17, 10],
        [8, 18, 34, 42, 32, 20, 6, 2],
        [5, 13, 25, 39, 24, 12, 3, 1],
    ], 65)


def halftone4x4_angled() -> OrderedDitherMatrix:
    return _screen([
        [4, 2, 7, 5],
        [3, 1, 8, 6],
        [7, 5, 4, 2],
        [8, 6, 3, 1],
    ], 9)


def halftone6x6_angled() -> OrderedDitherMatrix:
    return _screen([
        [14, 13, 10, 8, 2, 3],
        [16, 18, 12, 7, 1, 4],
        [15, 17, 11, 9, 6, 5],
        [8, 2, 3, 14, 13, 10],
        [7, 1, 4, 16, 18, 12],
        [9, 6, 5, 15, 17, 11],
    ], 19)


def halftone8x8_angled() -> OrderedDitherMatrix:
    return _screen([
        [13, 7, 8, 14, 17, 21, 22, 18],
        [6, 1, 3, 9, 28, 31, 29, 23],
        [5, 2, 4, 10, 27, 32, 30, 24],
        [16, 12, 11, 15, 20, 26, 25, 19],
        [17, 21, 22, 18, 13, 7, 8, 14],
        [28, 31, 29, 23, 6, 1, 3, 9],
        [27, 32, 30, 24, 5, 2, 4, 10],
        [20, 26, 25, 19, 16, 12, 11, 15],
    ], 33)


ORDERED_MATRICES: dict[str, Callable[[], OrderedDitherMatrix]] = {
    "bayer2x2": bayer2x2,
    "bayer3x3": bayer3x3,
    "bayer4x4": bayer4x4,
    "bayer8x8": bayer8x8,
    "bayer16x16": bayer16x16,
    "bayer32x32": bayer32x32,
    "halftone4x4": halftone4x4_orthogonal,
    "halftone6x6": halftone6x6_orthogonal,
    "halftone8x8": halftone8x8_orthogonal,
    "halftone4x4_45": halftone4x4_angled,
    "halftone6x6_45": halftone6x6_angled,
    "halftone8x8_45": halftone8x8_angled,
    "blue_noise": blue_noise,
    "variable_2x2": lambda: variable_2x2(32),
    "variable_4x4": lambda: variable_4x4(14),
    "interleaved_gradient_noise": lambda: interleaved_gradient_noise(32),
}


def get_ordered_matrix(name: str) -> OrderedDitherMatrix:
    if name not in ORDERED_MATRICES:
        available = ", ".join(ORDERED_MATRICES)
        msg = f"Unknown ordered matrix '{name}'. Available: {available}"
        raise ValueError(msg)
    return ORDERED_MATRICES[name]()


# -- Engines -----------------------------------------------------------

def ordered_dither(
    image: DitherImage,
    matrix: OrderedDitherMatrix,
    sigma: float = 0.0,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Mono ordered dither.

    A pixel is on when ``value + threshold`` reaches 0.5, where the
    threshold comes from the matrix cell at ``(y mod H, x mod W)``.
    With ``sigma > 0`` each pixel also gets Gaussian jitter.

    Returns:
        (H, W) uint8 array of ``levels`` values.
    """
    out = prepare_mono_output(image, levels, out)
    px = image.buffer + matrix.tile(image.width, image.height)
    if sigma > 0.0:
        if rng is None:
            rng = np.random.default_rng()
        px = px + box_muller_array(rng, sigma, 0.5, px.shape) - 0.5
    out[px >= 0.5] = levels.on
    return apply_transparency(image, levels, out)


def color_offsets(matrix: OrderedDitherMatrix, width: int, height: int, spread: float) -> np.ndarray:
    """Signed, gamma-decoded linear-light offsets in ``[-spread/2, spread/2]``."""
    t = matrix.tile(width, height)
    return spread * np.sign(t) * np.asarray(gamma_decode(np.abs(t) * 2.0)) / 2.0


def ordered_dither_color(
    image: ColorImage,
    palette: CachedPalette,
    matrix: OrderedDitherMatrix,
    spread: float = 1.0,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Colour ordered dither in linear light.

    Args:
        image: Source image.
        palette: Target palette to pick indices from.
        matrix: Threshold matrix.
        spread: Scale of the per-pixel offset.
        out: Optional (H, W) int32 buffer to fill.

    Returns:
        (H, W) int32 array of palette indices, ``-1`` for transparent pixels.
    """
    out = prepare_color_output(image, out)
    offsets = color_offsets(matrix, image.width, image.height, spread)
    values = np.clip(image.linear - COLOR_BIAS + offsets[..., np.newaxis], 0.0, 1.0)
    opaque = ~image.transparent
    rows = values.tolist()
    for y, x in zip(*np.nonzero(opaque), strict=True):
        out[y, x] = palette.find_closest_color(rows[y][x])
    return out
