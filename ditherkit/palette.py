"""Colour value types and palette containers.

``ByteColor`` / ``BytePalette`` hold 8-bit sRGB(A) colours (what colour
engines emit indices into); ``FloatColor`` / ``FloatPalette`` hold
real-valued 3-component colours in whatever space a distance model uses.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import NamedTuple

import numpy as np

from ditherkit.gamma import gamma_decode


class ByteColor(NamedTuple):
    """8-bit sRGB colour with alpha."""

    r: int
    g: int
    b: int
    a: int = 255

    def to_float(self) -> FloatColor:
        """Scale RGB to [0, 1] (alpha dropped)."""
        return FloatColor(self.r / 255.0, self.g / 255.0, self.b / 255.0)

    def to_linear(self) -> FloatColor:
        return FloatColor(*(gamma_decode(c / 255.0) for c in (self.r, self.g, self.b)))


class FloatColor(NamedTuple):
    """Three real components; the aliases name them per colour space."""

    x: float
    y: float
    z: float

    # RGB
    @property
    def r(self) -> float:
        return self.x

    @property
    def g(self) -> float:
        return self.y

    @property
    def b(self) -> float:
        return self.z

    # HSV
    @property
    def h(self) -> float:
        return self.x

    @property
    def s(self) -> float:
        return self.y

    @property
    def v(self) -> float:
        return self.z

    # LAB ("a" and "b" would clash with the RGB aliases)
    @property
    def lab_l(self) -> float:
        return self.x

    @property
    def lab_a(self) -> float:
        return self.y

    @property
    def lab_b(self) -> float:
        return self.z


def hex_to_color(hex_str: str) -> ByteColor:
    """Parse '#RRGGBB' (or 'RRGGBB') to an opaque ByteColor."""
    h = hex_str.strip().lstrip("#")
    if len(h) != 6:
        msg = f"Expected a '#RRGGBB' colour, got '{hex_str}'"
        raise ValueError(msg)
    return ByteColor(*(int(h[i : i + 2], 16) for i in (0, 2, 4)))


class BytePalette:
    """Fixed-size list of ByteColors backed by an (N, 4) uint8 array."""

    def __init__(self, colors: np.ndarray | Iterable[Iterable[int]]) -> None:
        arr = np.array(colors, dtype=np.int64)
        if arr.ndim == 1 and arr.size == 0:
            arr = arr.reshape(0, 4)
        if arr.ndim != 2 or arr.shape[1] not in (3, 4):
            msg = f"Palette colours must have shape (N, 3) or (N, 4), got {arr.shape}"
            raise ValueError(msg)
        if arr.size and (arr.min() < 0 or arr.max() > 255):
            msg = "Palette components must lie in 0..255"
            raise ValueError(msg)
        if arr.shape[1] == 3:
            arr = np.column_stack([arr, np.full(len(arr), 255)])
        self._colors = arr.astype(np.uint8)
        self._colors.setflags(write=False)

    @classmethod
    def from_hex(cls, hex_colors: Iterable[str]) -> BytePalette:
        return cls([hex_to_color(h) for h in hex_colors])

    @property
    def colors(self) -> np.ndarray:
        """(N, 4) uint8 read-only view."""
        return self._colors

    @property
    def rgb(self) -> np.ndarray:
        """(N, 3) uint8 read-only view."""
        return self._colors[:, :3]

    def linear(self) -> np.ndarray:
        """(N, 3) float64 linear-light RGB."""
        return np.asarray(gamma_decode(self.rgb / 255.0)).reshape(-1, 3)

    def copy(self) -> BytePalette:
        return BytePalette(self._colors.copy())

    def resize(self, size: int) -> BytePalette:
        """Return a palette of *size* entries, truncated or padded with black."""
        if size < 0:
            msg = f"Palette size must be >= 0, got {size}"
            raise ValueError(msg)
        out = np.zeros((size, 4), dtype=np.uint8)
        n = min(size, len(self))
        out[:n] = self._colors[:n]
        return BytePalette(out)

    def __len__(self) -> int:
        return len(self._colors)

    def __getitem__(self, index: int) -> ByteColor:
        return ByteColor(*(int(c) for c in self._colors[index]))

    def __iter__(self) -> Iterator[ByteColor]:
        for i in range(len(self)):
            yield self[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BytePalette):
            return NotImplemented
        return np.array_equal(self._colors, other._colors)

    def __repr__(self) -> str:
        return f"BytePalette({len(self)} colours)"


class FloatPalette:
    """Fixed-size list of FloatColors backed by an (N, 3) float64 array."""

    def __init__(self, colors: np.ndarray | Iterable[Iterable[float]]) -> None:
        arr = np.array(colors, dtype=np.float64)
        if arr.ndim == 1 and arr.size == 0:
            arr = arr.reshape(0, 3)
        if arr.ndim != 2 or arr.shape[1] != 3:
            msg = f"Float palette must have shape (N, 3), got {arr.shape}"
            raise ValueError(msg)
        self._colors = arr
        self._colors.setflags(write=False)

    @property
    def colors(self) -> np.ndarray:
        return self._colors

    def copy(self) -> FloatPalette:
        return FloatPalette(self._colors.copy())

    def resize(self, size: int) -> FloatPalette:
        if size < 0:
            msg = f"Palette size must be >= 0, got {size}"
            raise ValueError(msg)
        out = np.zeros((size, 3), dtype=np.float64)
        n = min(size, len(self))
        out[:n] = self._colors[:n]
        return FloatPalette(out)

    def __len__(self) -> int:
        return len(self._colors)

    def __getitem__(self, index: int) -> FloatColor:
        return FloatColor(*(float(c) for c in self._colors[index]))

    def __repr__(self) -> str:
        return f"FloatPalette({len(self)} colours)"


# -- Built-in palettes -------------------------------------------------

BUILTIN_PALETTES: dict[str, list[str]] = {
    "bw": ["#000000", "#FFFFFF"],
    "rgbcmykw": [
        "#000000", "#FF0000", "#00FF00", "#0000FF",
        "#00FFFF", "#FF00FF", "#FFFF00", "#FFFFFF",
    ],
    "cga": [
        "#000000", "#0000AA", "#00AA00", "#00AAAA",
        "#AA0000", "#AA00AA", "#AA5500", "#AAAAAA",
        "#555555", "#5555FF", "#55FF55", "#55FFFF",
        "#FF5555", "#FF55FF", "#FFFF55", "#FFFFFF",
    ],
    "gameboy": ["#0F380F", "#306230", "#8BAC0F", "#9BBC0F"],
}


def builtin_palette(name: str) -> BytePalette:
    """Return a fresh copy of one of :data:`BUILTIN_PALETTES`."""
    if name not in BUILTIN_PALETTES:
        available = ", ".join(BUILTIN_PALETTES)
        msg = f"Unknown palette '{name}'. Available: {available}"
        raise ValueError(msg)
    return BytePalette.from_hex(BUILTIN_PALETTES[name])
