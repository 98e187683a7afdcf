"""Closest-colour lookup over a target palette, memoised by a 24-bit key."""

from __future__ import annotations

import logging

import numpy as np

from ditherkit.color_models import (
    DEFAULT_ILLUMINANT,
    ColorComparisonMode,
    LabWeights,
    distances,
    resolve_illuminant,
    to_comparison_space,
)
from ditherkit.image import ColorImage
from ditherkit.palette import BytePalette, FloatPalette
from ditherkit.quantize import QuantizationMethod, quantize
from ditherkit.tetrapal import Tetrapal

logger = logging.getLogger(__name__)

# Reference colours for the extreme-colour scan, in sRGB floats
_EXTREME_REFS = {
    "dark": (0.0, 0.0, 0.0),
    "light": (1.0, 1.0, 1.0),
    "red": (1.0, 0.0, 0.0),
    "green": (0.0, 1.0, 0.0),
    "blue": (0.0, 0.0, 1.0),
    "cyan": (0.0, 1.0, 1.0),
    "magenta": (1.0, 0.0, 1.0),
    "yellow": (1.0, 1.0, 0.0),
}


def _unique_in_scan_order(rgb: np.ndarray) -> np.ndarray:
    keys = (rgb[:, 0].astype(np.int64) << 16) | (rgb[:, 1].astype(np.int64) << 8) | rgb[:, 2]
    _, first = np.unique(keys, return_index=True)
    return rgb[np.sort(first)]


def _extreme_colors(rgb: np.ndarray, names: list[str]) -> list[np.ndarray]:
    """Image colours closest (Euclidean, sRGB) to each named reference."""
    fc = rgb.astype(np.float64) / 255.0
    found = []
    for name in names:
        dist = np.sum((fc - np.array(_EXTREME_REFS[name])) ** 2, axis=1)
        found.append(rgb[int(np.argmin(dist))])
    return found


class CachedPalette:
    """Target palette plus a distance-space lookup palette and a hash cache.

    Args:
        mode: Distance model for closest-colour queries.
        illuminant: White point for the LAB modes (name or XYZ triple).
        lab_weights: Hue / chroma / value weights for ΔE94 and ΔE2000.
    """

    def __init__(
        self,
        mode: ColorComparisonMode = ColorComparisonMode.LINEAR,
        illuminant: str | tuple[float, float, float] = DEFAULT_ILLUMINANT,
        lab_weights: LabWeights = LabWeights(),
    ) -> None:
        self._mode = ColorComparisonMode(mode)
        self._illuminant = resolve_illuminant(illuminant)
        self._lab_weights = lab_weights
        self._shift = (0, 0, 0)
        self._target: BytePalette | None = None
        self._target_linear = np.zeros((0, 3))
        self._lookup = FloatPalette(np.zeros((0, 3)))
        self._tetrapal: Tetrapal | None = None
        self._cache: dict[int, int] = {}

    # -- construction --------------------------------------------------

    @classmethod
    def from_palette(cls, palette: BytePalette, **kwargs) -> CachedPalette:
        cp = cls(**kwargs)
        cp.build_from_palette(palette)
        return cp

    @classmethod
    def from_image(
        cls,
        image: ColorImage,
        num_colors: int,
        method: QuantizationMethod = QuantizationMethod.MEDIAN_CUT,
        unique: bool = True,
        include_bw: bool = False,
        include_rgb: bool = False,
        include_cmy: bool = False,
        **kwargs,
    ) -> CachedPalette:
        cp = cls(**kwargs)
        cp.build_from_image(
            image, num_colors, method,
            unique=unique,
            include_bw=include_bw,
            include_rgb=include_rgb,
            include_cmy=include_cmy,
        )
        return cp

    def build_from_palette(self, palette: BytePalette) -> None:
        """Use a copy of *palette* as the target palette."""
        if not len(palette):
            msg = "Cannot build a cached palette from an empty palette"
            raise ValueError(msg)
        self._target = palette.copy()
        self._rebuild()

    def build_from_image(
        self,
        image: ColorImage,
        num_colors: int,
        method: QuantizationMethod = QuantizationMethod.MEDIAN_CUT,
        unique: bool = True,
        include_bw: bool = False,
        include_rgb: bool = False,
        include_cmy: bool = False,
    ) -> None:
        """Derive a target palette of at most *num_colors* from *image*.

        Args:
            image: Source image; fully transparent pixels are ignored.
            num_colors: Target palette size.
            method: Quantizer used when the image has more colours.
            unique: Quantize the unique-colour set (True) or every pixel,
                so frequent colours weigh more (False).
            include_bw: Reserve the image colours closest to black and white.
            include_rgb: Reserve the image colours closest to R, G and B.
            include_cmy: Reserve the image colours closest to C, M and Y.
        """
        if num_colors < 1:
            msg = f"Target colour count must be >= 1, got {num_colors}"
            raise ValueError(msg)
        pixels = image.srgb.reshape(-1, 4)
        rgb = pixels[pixels[:, 3] != 0, :3]
        if not len(rgb):
            msg = "Image has no opaque pixels to take a palette from"
            raise ValueError(msg)
        unique_rgb = _unique_in_scan_order(rgb)
        logger.info("Image has %d unique colours", len(unique_rgb))

        if len(unique_rgb) <= num_colors:
            self.build_from_palette(BytePalette(unique_rgb))
            return

        names: list[str] = []
        if include_bw and num_colors >= 2:
            names += ["dark", "light"]
        if include_rgb and num_colors - len(names) >= 3:
            names += ["red", "green", "blue"]
        if include_cmy and num_colors - len(names) >= 3:
            names += ["cyan", "magenta", "yellow"]
        reserved = _extreme_colors(unique_rgb, names)

        source = unique_rgb if unique else rgb
        remaining = num_colors - len(reserved)
        colors = [np.asarray(c, dtype=np.int64) for c in reserved]
        if remaining > 0:
            quantized = quantize(source, remaining, method)
            colors += [np.asarray(c, dtype=np.int64) for c in quantized.rgb]
        logger.info(
            "Palette: %d colours (%d reserved, %s)",
            len(colors), len(reserved), QuantizationMethod(method).name.lower(),
        )
        self.build_from_palette(BytePalette(np.array(colors)))

    # -- configuration -------------------------------------------------

    @property
    def mode(self) -> ColorComparisonMode:
        return self._mode

    @property
    def shift(self) -> tuple[int, int, int]:
        return self._shift

    @property
    def lab_weights(self) -> LabWeights:
        return self._lab_weights

    @property
    def illuminant(self) -> np.ndarray:
        return self._illuminant.copy()

    def set_mode(
        self,
        mode: ColorComparisonMode,
        illuminant: str | tuple[float, float, float] | None = None,
    ) -> None:
        """Switch distance model (and optionally illuminant); rebuilds the lookup."""
        self._mode = ColorComparisonMode(mode)
        if illuminant is not None:
            self._illuminant = resolve_illuminant(illuminant)
        self._rebuild()

    def set_shift(self, r: int, g: int, b: int) -> None:
        """Drop the low bits of each channel from the cache key."""
        for s in (r, g, b):
            if not 0 <= s <= 7:
                msg = f"Channel shifts must lie in 0..7, got {(r, g, b)}"
                raise ValueError(msg)
        self._shift = (r, g, b)
        self.clear_cache()

    def set_lab_weights(self, weights: LabWeights) -> None:
        self._lab_weights = LabWeights(*weights)
        self.clear_cache()

    def clear_cache(self) -> None:
        if self._cache:
            logger.debug("Flushing %d cached lookups", len(self._cache))
        self._cache = {}

    def _rebuild(self) -> None:
        self.clear_cache()
        if self._target is None:
            return
        self._target_linear = self._target.linear()
        if self._mode == ColorComparisonMode.TETRAPAL:
            self._lookup = FloatPalette(self._target_linear)
            self._tetrapal = Tetrapal(self._target_linear)
        else:
            self._lookup = FloatPalette(
                to_comparison_space(self._target_linear, self._mode, self._illuminant)
            )
            self._tetrapal = None

    # -- lookup --------------------------------------------------------

    @property
    def target_palette(self) -> BytePalette:
        self._require_target()
        return self._target

    @property
    def lookup_palette(self) -> FloatPalette:
        return self._lookup

    @property
    def target_linear(self) -> np.ndarray:
        """(N, 3) linear-light RGB of the target palette."""
        return self._target_linear

    def __len__(self) -> int:
        return 0 if self._target is None else len(self._target)

    def _require_target(self) -> None:
        if self._target is None:
            msg = "CachedPalette has no target palette; build it first"
            raise RuntimeError(msg)

    def cache_key(self, color) -> int:
        """24-bit key of a linear colour after clamping and channel shifts."""
        r, g, b = (min(max(float(c), 0.0), 1.0) for c in color)
        rs, gs, bs = self._shift
        return (
            (int(r * 255) >> rs) << 16
            | (int(g * 255) >> gs) << 8
            | (int(b * 255) >> bs)
        )

    def find_closest_color(self, color) -> int:
        """Index of the target colour closest to linear-RGB *color*.

        Components outside [0, 1] are clamped before the lookup.
        """
        self._require_target()
        key = self.cache_key(color)
        index = self._cache.get(key)
        if index is not None:
            return index

        query = np.clip(np.asarray(color, dtype=np.float64), 0.0, 1.0)
        if self._tetrapal is not None:
            index = self._tetrapal.closest_index(query)
        else:
            point = to_comparison_space(query, self._mode, self._illuminant)
            dist = distances(self._lookup.colors, point, self._mode, self._lab_weights)
            index = int(np.argmin(np.abs(dist)))
        self._cache[key] = index
        return index

    def __repr__(self) -> str:
        return f"CachedPalette({len(self)} colours, mode={self._mode.name})"
