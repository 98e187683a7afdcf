"""Kacker-Allebach dithering with alternating blue-noise arrays."""

from __future__ import annotations

from functools import lru_cache

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output
from ditherkit.ordered import blue_noise_values

ARRAY_SIZE = 32
ARRAY_COUNT = 4


@lru_cache(maxsize=1)
def dither_arrays() -> np.ndarray:
    """Four 32x32 void-and-cluster arrays with thresholds 0..255."""
    arrays = np.stack([
        blue_noise_values(ARRAY_SIZE, seed=seed) * 256 // (ARRAY_SIZE * ARRAY_SIZE)
        for seed in range(ARRAY_COUNT)
    ])
    arrays.setflags(write=False)
    return arrays


def kallebach_dither(
    image: DitherImage,
    random: bool = False,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Threshold each 32x32 cell against one of four dither arrays.

    No cell uses the same array as the cell to its left or above it.
    Arrays are chosen at random (``random=True``) or round-robin.
    """
    out = prepare_mono_output(image, levels, out)
    if random and rng is None:
        rng = np.random.default_rng()
    arrays = dither_arrays()
    width, height = image.width, image.height
    cells_y = -(-height // ARRAY_SIZE)
    cells_x = -(-width // ARRAY_SIZE)
    chosen = np.full((cells_y, cells_x), -1, dtype=np.int64)
    current = 0

    for cy in range(cells_y):
        for cx in range(cells_x):
            left = chosen[cy, cx - 1] if cx > 0 else -1
            upper = chosen[cy - 1, cx] if cy > 0 else -1
            while True:
                if random:
                    current = int(rng.integers(ARRAY_COUNT))
                else:
                    current = (current + 1) % ARRAY_COUNT
                if current not in (left, upper):
                    break
            chosen[cy, cx] = current
            y0, x0 = cy * ARRAY_SIZE, cx * ARRAY_SIZE
            block = image.buffer[y0:y0 + ARRAY_SIZE, x0:x0 + ARRAY_SIZE]
            h, w = block.shape
            mask = block * 256.0 > arrays[current, :h, :w]
            out[y0:y0 + h, x0:x0 + w][mask] = levels.on
    return apply_transparency(image, levels, out)
