"""Matrix-driven error diffusion, mono and colour.

A kernel is a small integer matrix in which ``-1`` marks the current
pixel. Cells after it (row-major) are forward neighbours receiving
``weight / divisor`` of the quantisation error; cells before it must be 0.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ditherkit.cached_palette import CachedPalette
from ditherkit.config import OutputLevels
from ditherkit.image import ColorImage, DitherImage, prepare_color_output, prepare_mono_output
from ditherkit.rng import box_muller

SENTINEL = -1


@dataclass(frozen=True, eq=False)
class ErrorDiffusionMatrix:
    """Diffusion kernel.

    Attributes:
        weights: (H, W) integer weights containing exactly one ``-1``.
        divisor: Error is divided by this before being distributed.
    """

    weights: np.ndarray
    divisor: float

    def __post_init__(self) -> None:
        w = np.array(self.weights, dtype=np.int64)
        if w.ndim != 2 or w.size == 0:
            msg = f"Diffusion weights must be a non-empty 2-D array, got shape {w.shape}"
            raise ValueError(msg)
        if np.count_nonzero(w == SENTINEL) != 1:
            msg = "Diffusion weights must contain exactly one -1 marking the current pixel"
            raise ValueError(msg)
        if self.divisor <= 0:
            msg = f"Divisor must be positive, got {self.divisor}"
            raise ValueError(msg)
        w.setflags(write=False)
        object.__setattr__(self, "weights", w)

    @classmethod
    def from_rows(cls, rows: list[list[int]], divisor: float) -> ErrorDiffusionMatrix:
        return cls(np.array(rows), divisor)

    @property
    def width(self) -> int:
        return self.weights.shape[1]

    @property
    def height(self) -> int:
        return self.weights.shape[0]

    def neighbors(self) -> list[tuple[int, int, float]]:
        """Forward neighbours ``(dx, dy, weight)`` for a left-to-right scan."""
        flat = self.weights.ravel()
        start = int(np.flatnonzero(flat == SENTINEL)[0])
        sx, sy = start % self.width, start // self.width
        out = []
        for i in range(start + 1, flat.size):
            if flat[i] > 0:
                out.append((i % self.width - sx, i // self.width - sy, float(flat[i])))
        return out


def _directional_neighbors(
    matrix: ErrorDiffusionMatrix,
) -> tuple[list[tuple[int, int, float]], list[tuple[int, int, float]]]:
    forward = matrix.neighbors()
    reverse = [(-dx, dy, w) for dx, dy, w in forward]
    return forward, reverse


# -- Built-in kernels --------------------------------------------------

def floyd_steinberg() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, -1, 7], [3, 5, 1]], 16)


def fake_floyd_steinberg() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[-1, 3], [3, 2]], 8)


def jarvis_judice_ninke() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows(
        [[0, 0, -1, 7, 5], [3, 5, 7, 5, 3], [1, 3, 5, 3, 1]], 48,
    )


def stucki() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows(
        [[0, 0, -1, 8, 4], [2, 4, 8, 4, 2], [1, 2, 4, 2, 1]], 42,
    )


def burkes() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, 0, -1, 8, 4], [2, 4, 8, 4, 2]], 32)


def sierra_3() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows(
        [[0, 0, -1, 5, 3], [2, 4, 5, 4, 2], [0, 2, 3, 2, 0]], 32,
    )


def sierra_2row() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, 0, -1, 4, 3], [1, 2, 3, 2, 1]], 16)


def sierra_lite() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, -1, 2], [1, 1, 0]], 4)


def atkinson() -> ErrorDiffusionMatrix:
    """Atkinson's kernel; only 6/8 of the error is passed on."""
    return ErrorDiffusionMatrix.from_rows(
        [[0, -1, 1, 1], [1, 1, 1, 0], [0, 1, 0, 0]], 8,
    )


def shiau_fan() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, 0, -1, 4], [1, 1, 2, 0]], 8)


def shiau_fan_2() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[0, 0, 0, -1, 8], [1, 1, 2, 4, 0]], 16)


def stevenson_arce() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows(
        [
            [0, 0, 0, -1, 0, 32, 0],
            [12, 0, 26, 0, 30, 0, 16],
            [0, 12, 0, 26, 0, 12, 0],
            [5, 0, 12, 0, 12, 0, 5],
        ],
        200,
    )


def steve_pigeon() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows(
        [[0, 0, -1, 2, 1], [1, 2, 2, 2, 1], [1, 0, 1, 0, 1]], 14,
    )


def diffusion_1d() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[-1, 1]], 1)


def diffusion_2d() -> ErrorDiffusionMatrix:
    return ErrorDiffusionMatrix.from_rows([[-1, 1], [1, 0]], 2)


ERROR_DIFFUSION_MATRICES: dict[str, Callable[[], ErrorDiffusionMatrix]] = {
    "floyd_steinberg": floyd_steinberg,
    "fake_floyd_steinberg": fake_floyd_steinberg,
    "jarvis_judice_ninke": jarvis_judice_ninke,
    "stucki": stucki,
    "burkes": burkes,
    "sierra_3": sierra_3,
    "sierra_2row": sierra_2row,
    "sierra_lite": sierra_lite,
    "atkinson": atkinson,
    "shiau_fan": shiau_fan,
    "shiau_fan_2": shiau_fan_2,
    "stevenson_arce": stevenson_arce,
    "steve_pigeon": steve_pigeon,
    "diffusion_1d": diffusion_1d,
    "diffusion_2d": diffusion_2d,
}


def get_error_diffusion_matrix(name: str) -> ErrorDiffusionMatrix:
    if name not in ERROR_DIFFUSION_MATRICES:
        available = ", ".join(ERROR_DIFFUSION_MATRICES)
        msg = f"Unknown error diffusion kernel '{name}'. Available: {available}"
        raise ValueError(msg)
    return ERROR_DIFFUSION_MATRICES[name]()


# -- Engines -----------------------------------------------------------

def error_diffusion_dither(
    image: DitherImage,
    matrix: ErrorDiffusionMatrix,
    serpentine: bool = False,
    sigma: float = 0.0,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Mono error diffusion.

    Args:
        image: Source image.
        matrix: Diffusion kernel.
        serpentine: Scan odd rows right-to-left.
        sigma: Standard deviation of Gaussian jitter on the 0.5 threshold.
        levels: Output byte values.
        out: Optional (H, W) uint8 buffer to fill.
        rng: Random generator used when *sigma* > 0.

    Returns:
        (H, W) uint8 array of ``levels`` values.
    """
    out = prepare_mono_output(image, levels, out)
    if sigma > 0 and rng is None:
        rng = np.random.default_rng()
    forward, reverse = _directional_neighbors(matrix)
    divisor = float(matrix.divisor)
    width, height = image.width, image.height
    buf = image.buffer.tolist()
    transparent = image.transparent.tolist()

    for y in range(height):
        backwards = serpentine and y % 2 == 1
        neighbors = reverse if backwards else forward
        xs = range(width - 1, -1, -1) if backwards else range(width)
        row = buf[y]
        for x in xs:
            if transparent[y][x]:
                out[y, x] = levels.transparent
                continue
            err = row[x]
            threshold = box_muller(rng, sigma, 0.5) if sigma > 0 else 0.5
            if err > threshold:
                out[y, x] = levels.on
                err -= 1.0
            err /= divisor
            for dx, dy, w in neighbors:
                xx, yy = x + dx, y + dy
                if 0 <= xx < width and yy < height:
                    buf[yy][xx] += err * w
    return out


def error_diffusion_dither_color(
    image: ColorImage,
    palette: CachedPalette,
    matrix: ErrorDiffusionMatrix,
    serpentine: bool = False,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Colour error diffusion in linear light.

    Returns:
        (H, W) int32 array of palette indices, ``-1`` for transparent pixels.
    """
    out = prepare_color_output(image, out)
    forward, reverse = _directional_neighbors(matrix)
    divisor = float(matrix.divisor)
    width, height = image.width, image.height
    buf = image.linear.tolist()
    targets = palette.target_linear.tolist()
    transparent = image.transparent.tolist()

    for y in range(height):
        backwards = serpentine and y % 2 == 1
        neighbors = reverse if backwards else forward
        xs = range(width - 1, -1, -1) if backwards else range(width)
        for x in xs:
            if transparent[y][x]:
                continue
            color = [min(max(c, 0.0), 1.0) for c in buf[y][x]]
            index = palette.find_closest_color(color)
            out[y, x] = index
            target = targets[index]
            err = [(c - t) / divisor for c, t in zip(color, target, strict=True)]
            for dx, dy, w in neighbors:
                xx, yy = x + dx, y + dy
                if 0 <= xx < width and yy < height:
                    cell = buf[yy][xx]
                    cell[0] += err[0] * w
                    cell[1] += err[1] * w
                    cell[2] += err[2] * w
    return out
