"""Colour-space conversion and colour-distance models.

All functions operate on the last axis of float arrays, so a single
colour ``(3,)`` and a whole palette ``(N, 3)`` go through the same code
and broadcast against each other.
"""

from __future__ import annotations

from enum import IntEnum
from typing import NamedTuple

import numpy as np
from skimage.color import deltaE_cie76, deltaE_ciede2000

from ditherkit.gamma import gamma_decode, gamma_encode

# CCIR 601 luma weights
CCIR_WEIGHTS = np.array([0.299, 0.587, 0.114])
CCIR_FACTOR = 0.75

# linear sRGB (D65) -> XYZ
_RGB_TO_XYZ = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041],
])

# Reference white points (X, Y, Z), 2° observer
ILLUMINANTS: dict[str, tuple[float, float, float]] = {
    "D93": (0.98074, 1.0, 1.18232),
    "D75": (0.94972, 1.0, 1.22638),
    "D65": (0.95047, 1.0, 1.08883),
    "D55": (0.95682, 1.0, 0.92149),
    "D50": (0.96422, 1.0, 0.82521),
    "A": (1.09850, 1.0, 0.35585),
    "B": (0.99072, 1.0, 0.85365),
    "C": (0.98074, 1.0, 1.18232),
    "E": (1.0, 1.0, 1.0),
    "F1": (0.92834, 1.0, 1.03665),
    "F2": (0.99186, 1.0, 0.67393),
    "F3": (1.03896, 1.0, 0.65555),
    "F7": (0.95041, 1.0, 1.08747),
    "F11": (1.00962, 1.0, 0.64350),
}

DEFAULT_ILLUMINANT = "D65"


class ColorComparisonMode(IntEnum):
    """Distance model used by :class:`~ditherkit.cached_palette.CachedPalette`."""

    LUMINANCE = 0
    SRGB = 1
    LINEAR = 2
    HSV = 3
    LAB76 = 4
    LAB94 = 5
    LAB2000 = 6
    SRGB_CCIR = 7
    LINEAR_CCIR = 8
    TETRAPAL = 9


class LabWeights(NamedTuple):
    """Hue / chroma / value weights for the ΔE94 and ΔE2000 distances."""

    hue: float = 0.91
    chroma: float = 0.84
    value: float = 0.96


def resolve_illuminant(illuminant: str | tuple[float, float, float]) -> np.ndarray:
    """Look up a named white point or pass an explicit XYZ triple through."""
    if isinstance(illuminant, str):
        key = illuminant.upper()
        if key not in ILLUMINANTS:
            available = ", ".join(ILLUMINANTS)
            msg = f"Unknown illuminant '{illuminant}'. Available: {available}"
            raise ValueError(msg)
        return np.array(ILLUMINANTS[key])
    white = np.asarray(illuminant, dtype=np.float64)
    if white.shape != (3,):
        msg = f"Illuminant must be a name or an XYZ triple, got shape {white.shape}"
        raise ValueError(msg)
    return white


# -- Conversions -------------------------------------------------------

def rgb_to_linear(rgb: np.ndarray) -> np.ndarray:
    """sRGB floats in [0, 1] -> linear RGB."""
    return np.asarray(gamma_decode(np.asarray(rgb, dtype=np.float64)))


def linear_to_rgb(linear: np.ndarray) -> np.ndarray:
    """Linear RGB -> sRGB floats."""
    return np.asarray(gamma_encode(np.asarray(linear, dtype=np.float64)))


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """sRGB floats -> (hue in radians, saturation, value).

    Near-achromatic colours (max - min below 1e-5) get hue and
    saturation 0.
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    hi = rgb.max(axis=-1)
    lo = rgb.min(axis=-1)
    delta = hi - lo
    chromatic = (delta >= 1e-5) & (hi > 0.0)
    safe_delta = np.where(chromatic, delta, 1.0)

    hue = np.where(
        r >= hi,
        (g - b) / safe_delta,
        np.where(g >= hi, 2.0 + (b - r) / safe_delta, 4.0 + (r - g) / safe_delta),
    )
    hue = hue * 60.0
    hue = np.where(hue < 0.0, hue + 360.0, hue)
    hue = np.where(chromatic, np.deg2rad(hue), 0.0)
    sat = np.where(chromatic, delta / np.where(hi > 0.0, hi, 1.0), 0.0)
    return np.stack([hue, sat, hi], axis=-1)


def linear_to_xyz(linear: np.ndarray) -> np.ndarray:
    return np.asarray(linear, dtype=np.float64) @ _RGB_TO_XYZ.T


def xyz_to_lab(
    xyz: np.ndarray,
    illuminant: str | tuple[float, float, float] = DEFAULT_ILLUMINANT,
) -> np.ndarray:
    """XYZ -> CIELAB relative to *illuminant*.

    Uses the linear segment ``7.787 t + 16/116`` below ``t = 0.008856``.
    """
    white = resolve_illuminant(illuminant)
    t = np.asarray(xyz, dtype=np.float64) / white
    f = np.where(t > 0.008856, np.cbrt(t), 7.787 * t + 16.0 / 116.0)
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    return np.stack([116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1)


def rgb_to_lab(
    rgb: np.ndarray,
    illuminant: str | tuple[float, float, float] = DEFAULT_ILLUMINANT,
) -> np.ndarray:
    """sRGB floats -> CIELAB (sRGB -> linear -> XYZ -> LAB)."""
    return xyz_to_lab(linear_to_xyz(rgb_to_linear(rgb)), illuminant)


def rgb_to_luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 709 luminance replicated into all three components."""
    rgb = np.asarray(rgb, dtype=np.float64)
    lum = rgb @ np.array([0.2126, 0.7152, 0.0722])
    return np.repeat(lum[..., np.newaxis], 3, axis=-1)


# -- Distances ---------------------------------------------------------

def distance_linear(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Euclidean distance."""
    diff = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return np.sqrt(np.sum(diff ** 2, axis=-1))


def distance_luminance(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.abs(np.asarray(a)[..., 0] - np.asarray(b)[..., 0])


def distance_hsv(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """HSV distance: hue/saturation on a polar plane plus weighted value."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    sa2 = a[..., 1] ** 2
    sb2 = b[..., 1] ** 2
    plane1 = np.sin(a[..., 0]) * sa2 - np.sin(b[..., 0]) * sb2
    plane2 = np.cos(a[..., 0]) * sa2 - np.cos(b[..., 0]) * sb2
    value = a[..., 2] - b[..., 2]
    return np.abs(plane1 ** 2 * 0.7 + plane2 ** 2 * 0.7 + value ** 2 * 3.0)


def distance_ccir(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Luma-weighted RGB distance (CCIR 601 weights).

    Channel differences are divided by 255 before weighting, so on the
    0..1 scale the squared luma term stays tiny next to the root term.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    diff = (a - b) / 255.0
    lumadiff = diff @ CCIR_WEIGHTS
    return np.sqrt((diff ** 2) @ CCIR_WEIGHTS) * CCIR_FACTOR + lumadiff ** 2


def _lab_pair(a: np.ndarray, b: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    lab1, lab2 = np.broadcast_arrays(
        np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64),
    )
    return lab1.copy(), lab2.copy()


def distance_lab76(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return deltaE_cie76(*_lab_pair(a, b))


def distance_lab94(
    a: np.ndarray, b: np.ndarray, weights: LabWeights = LabWeights(),
) -> np.ndarray:
    """CIE ΔE94 with S_C and S_H taken from the mean chroma of both colours.

    Unlike ``skimage.color.deltaE_ciede94``, which scales by the chroma
    of the first argument only, this is symmetric in *a* and *b*.
    """
    lab1, lab2 = _lab_pair(a, b)
    c1 = np.hypot(lab1[..., 1], lab1[..., 2])
    c2 = np.hypot(lab2[..., 1], lab2[..., 2])
    delta_l = lab1[..., 0] - lab2[..., 0]
    delta_c = c1 - c2
    delta_a = lab1[..., 1] - lab2[..., 1]
    delta_b = lab1[..., 2] - lab2[..., 2]
    delta_h_sq = np.maximum(delta_a ** 2 + delta_b ** 2 - delta_c ** 2, 0.0)
    c_avg = (c1 + c2) / 2.0
    s_c = 1.0 + 0.045 * c_avg
    s_h = 1.0 + 0.015 * c_avg
    term_l = delta_l / weights.value
    term_c = delta_c / (s_c * weights.chroma)
    term_h = np.sqrt(delta_h_sq) / (s_h * weights.hue)
    return np.sqrt(term_l ** 2 + term_c ** 2 + term_h ** 2)


def distance_lab2000(
    a: np.ndarray, b: np.ndarray, weights: LabWeights = LabWeights(),
) -> np.ndarray:
    """CIE ΔE2000."""
    lab1, lab2 = _lab_pair(a, b)
    return deltaE_ciede2000(
        lab1, lab2, kL=weights.value, kC=weights.chroma, kH=weights.hue,
    )


# -- Comparison space --------------------------------------------------

def to_comparison_space(
    linear: np.ndarray,
    mode: ColorComparisonMode,
    illuminant: str | tuple[float, float, float] = DEFAULT_ILLUMINANT,
) -> np.ndarray:
    """Convert linear RGB into the coordinates *mode* measures distance in."""
    linear = np.asarray(linear, dtype=np.float64)
    if mode == ColorComparisonMode.LUMINANCE:
        return rgb_to_luminance(linear)
    if mode in (ColorComparisonMode.SRGB, ColorComparisonMode.SRGB_CCIR):
        return linear_to_rgb(linear)
    if mode == ColorComparisonMode.HSV:
        return rgb_to_hsv(linear_to_rgb(linear))
    if mode in (
        ColorComparisonMode.LAB76,
        ColorComparisonMode.LAB94,
        ColorComparisonMode.LAB2000,
    ):
        return xyz_to_lab(linear_to_xyz(linear), illuminant)
    return linear.copy()


def distances(
    lookup: np.ndarray,
    query: np.ndarray,
    mode: ColorComparisonMode,
    weights: LabWeights = LabWeights(),
) -> np.ndarray:
    """Distance from *query* to every row of *lookup* under *mode*."""
    if mode == ColorComparisonMode.LUMINANCE:
        return distance_luminance(lookup, query)
    if mode == ColorComparisonMode.HSV:
        return distance_hsv(lookup, query)
    if mode in (ColorComparisonMode.SRGB_CCIR, ColorComparisonMode.LINEAR_CCIR):
        return distance_ccir(lookup, query)
    if mode == ColorComparisonMode.LAB76:
        return distance_lab76(lookup, query)
    if mode == ColorComparisonMode.LAB94:
        return distance_lab94(query, lookup, weights)
    if mode == ColorComparisonMode.LAB2000:
        return distance_lab2000(query, lookup, weights)
    return distance_linear(lookup, query)
