"""Pattern dithering: replace each image block with the closest 1-bit tile."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output
from ditherkit.ordered import OrderedDitherMatrix, bayer2x2, bayer3x3, bayer4x4


@dataclass(frozen=True, eq=False)
class TilePattern:
    """A stack of binary tiles.

    Attributes:
        tiles: (N, H, W) array of 0/1 values; 1 marks an "on" pixel.
    """

    tiles: np.ndarray

    def __post_init__(self) -> None:
        t = np.array(self.tiles, dtype=np.uint8)
        if t.ndim != 3 or 0 in t.shape:
            msg = f"Tiles must be a non-empty (N, H, W) array, got shape {t.shape}"
            raise ValueError(msg)
        if t.max() > 1:
            msg = "Tiles must only hold 0 and 1"
            raise ValueError(msg)
        t.setflags(write=False)
        object.__setattr__(self, "tiles", t)

    @classmethod
    def from_ordered_matrix(cls, matrix: OrderedDitherMatrix) -> TilePattern:
        """One tile per grey level: tile *k* switches on the *k* lowest ranks."""
        ranks = np.argsort(np.argsort(matrix.values, axis=None, kind="stable"))
        ranks = ranks.reshape(matrix.values.shape)
        return cls(np.stack([ranks < k for k in range(ranks.size + 1)]))

    @property
    def num_tiles(self) -> int:
        return self.tiles.shape[0]

    @property
    def width(self) -> int:
        return self.tiles.shape[2]

    @property
    def height(self) -> int:
        return self.tiles.shape[1]


def pattern_2x2() -> TilePattern:
    return TilePattern.from_ordered_matrix(bayer2x2())


def pattern_3x3() -> TilePattern:
    return TilePattern.from_ordered_matrix(bayer3x3())


def pattern_4x4() -> TilePattern:
    return TilePattern.from_ordered_matrix(bayer4x4())


TILE_PATTERNS: dict[str, Callable[[], TilePattern]] = {
    "2x2": pattern_2x2,
    "3x3": pattern_3x3,
    "4x4": pattern_4x4,
}


def pattern_dither(
    image: DitherImage,
    pattern: TilePattern | None = None,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Pick, for every whole block, the tile minimising
    ``|sum(w * (block - tile))| + sum(w * |block - tile|)`` with uniform *w*.

    Partial blocks at the right and bottom edges stay off.
    """
    if pattern is None:
        pattern = pattern_4x4()
    out = prepare_mono_output(image, levels, out)
    tw, th = pattern.width, pattern.height
    bw, bh = image.width // tw, image.height // th
    if bw == 0 or bh == 0:
        return apply_transparency(image, levels, out)

    size = tw * th
    w = np.full(size, 1.0 / size)
    region = image.buffer[: bh * th, : bw * tw]
    blocks = region.reshape(bh, th, bw, tw).transpose(0, 2, 1, 3).reshape(bh * bw, size)
    tiles = pattern.tiles.reshape(pattern.num_tiles, size).astype(np.float64)

    diff = blocks[:, np.newaxis, :] - tiles[np.newaxis, :, :]
    distance = np.abs(diff @ w) + np.abs(diff) @ w
    best = np.argmin(distance, axis=1)

    chosen = pattern.tiles[best].reshape(bh, bw, th, tw).transpose(0, 2, 1, 3)
    chosen = chosen.reshape(bh * th, bw * tw)
    out[: bh * th, : bw * tw][chosen == 1] = levels.on
    return apply_transparency(image, levels, out)
