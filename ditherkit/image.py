"""Linear-light input images and engine output buffers."""

from __future__ import annotations

import numpy as np

from ditherkit.config import TRANSPARENT_INDEX, OutputLevels
from ditherkit.gamma import gamma_decode

# Luma weights used to collapse RGB to gray
GRAY_WEIGHTS = np.array([0.299, 0.586, 0.114])


def _split_rgba(rgba: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    arr = np.asarray(rgba)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        msg = f"Expected an (H, W, 3) or (H, W, 4) array, got shape {arr.shape}"
        raise ValueError(msg)
    if arr.dtype != np.uint8:
        msg = f"Expected uint8 pixel data, got {arr.dtype}"
        raise ValueError(msg)
    if arr.shape[2] == 4:
        return arr[..., :3], arr[..., 3].copy()
    return arr, np.full(arr.shape[:2], 255, dtype=np.uint8)


class DitherImage:
    """Grayscale image in linear light with an alpha mask.

    Attributes:
        buffer:       (H, W) float64 gray values in [0, 1].
        transparency: (H, W) uint8 alpha; 0 marks a fully transparent pixel.
    """

    def __init__(self, width: int, height: int) -> None:
        if width < 1 or height < 1:
            msg = f"Image dimensions must be positive, got {width}x{height}"
            raise ValueError(msg)
        self.width = width
        self.height = height
        self.buffer = np.zeros((height, width), dtype=np.float64)
        self.transparency = np.full((height, width), 255, dtype=np.uint8)

    @classmethod
    def from_rgb(cls, rgba: np.ndarray, correct_gamma: bool = True) -> DitherImage:
        """Build from (H, W, 3|4) uint8 sRGB data."""
        rgb, alpha = _split_rgba(rgba)
        channels = rgb.astype(np.float64) / 255.0
        if correct_gamma:
            channels = gamma_decode(channels)
        img = cls(rgb.shape[1], rgb.shape[0])
        img.buffer = channels @ GRAY_WEIGHTS
        img.transparency = alpha
        return img

    @classmethod
    def from_gray(cls, gray: np.ndarray, alpha: np.ndarray | None = None) -> DitherImage:
        """Wrap an (H, W) array of linear gray values in [0, 1]."""
        arr = np.asarray(gray, dtype=np.float64)
        if arr.ndim != 2:
            msg = f"Expected an (H, W) gray array, got shape {arr.shape}"
            raise ValueError(msg)
        img = cls(arr.shape[1], arr.shape[0])
        img.buffer = arr.copy()
        if alpha is not None:
            alpha = np.asarray(alpha, dtype=np.uint8)
            if alpha.shape != arr.shape:
                msg = f"Alpha shape {alpha.shape} does not match image shape {arr.shape}"
                raise ValueError(msg)
            img.transparency = alpha.copy()
        return img

    def set_pixel(
        self, x: int, y: int, r: int, g: int, b: int, a: int = 255,
        correct_gamma: bool = True,
    ) -> None:
        channels = np.array([r, g, b], dtype=np.float64) / 255.0
        if correct_gamma:
            channels = gamma_decode(channels)
        self.buffer[y, x] = float(channels @ GRAY_WEIGHTS)
        self.transparency[y, x] = a

    def get_pixel(self, x: int, y: int) -> float:
        return float(self.buffer[y, x])

    @property
    def transparent(self) -> np.ndarray:
        """(H, W) bool mask of fully transparent pixels."""
        return self.transparency == 0

    def __repr__(self) -> str:
        return f"DitherImage({self.width}x{self.height})"


class ColorImage:
    """RGB image held both as 8-bit sRGB(A) and as linear-light floats.

    ``linear`` is always ``gamma_decode(srgb / 255)``; mutate only through
    :meth:`set_pixel` to keep the two in step.
    """

    def __init__(self, width: int, height: int) -> None:
        if width < 1 or height < 1:
            msg = f"Image dimensions must be positive, got {width}x{height}"
            raise ValueError(msg)
        self.width = width
        self.height = height
        self.srgb = np.zeros((height, width, 4), dtype=np.uint8)
        self.srgb[..., 3] = 255
        self.linear = np.zeros((height, width, 3), dtype=np.float64)

    @classmethod
    def from_rgb(cls, rgba: np.ndarray) -> ColorImage:
        rgb, alpha = _split_rgba(rgba)
        img = cls(rgb.shape[1], rgb.shape[0])
        img.srgb[..., :3] = rgb
        img.srgb[..., 3] = alpha
        img.linear = np.asarray(gamma_decode(rgb.astype(np.float64) / 255.0))
        return img

    def set_pixel(self, x: int, y: int, r: int, g: int, b: int, a: int = 255) -> None:
        self.srgb[y, x] = (r, g, b, a)
        self.linear[y, x] = gamma_decode(np.array([r, g, b], dtype=np.float64) / 255.0)

    @property
    def transparent(self) -> np.ndarray:
        return self.srgb[..., 3] == 0

    def __repr__(self) -> str:
        return f"ColorImage({self.width}x{self.height})"


# -- Output buffers ----------------------------------------------------

def prepare_mono_output(
    image: DitherImage, levels: OutputLevels, out: np.ndarray | None = None,
) -> np.ndarray:
    """Validate or allocate a (H, W) uint8 buffer filled with ``levels.off``."""
    shape = (image.height, image.width)
    if out is None:
        out = np.empty(shape, dtype=np.uint8)
    elif out.shape != shape or out.dtype != np.uint8:
        msg = f"Output buffer must be uint8 with shape {shape}, got {out.dtype} {out.shape}"
        raise ValueError(msg)
    out.fill(levels.off)
    return out


def prepare_color_output(image: ColorImage, out: np.ndarray | None = None) -> np.ndarray:
    """Validate or allocate a (H, W) int32 buffer filled with the transparent index."""
    shape = (image.height, image.width)
    if out is None:
        out = np.empty(shape, dtype=np.int32)
    elif out.shape != shape or out.dtype != np.int32:
        msg = f"Output buffer must be int32 with shape {shape}, got {out.dtype} {out.shape}"
        raise ValueError(msg)
    out.fill(TRANSPARENT_INDEX)
    return out


def apply_transparency(image: DitherImage, levels: OutputLevels, out: np.ndarray) -> np.ndarray:
    """Overwrite transparent pixels of *out* with ``levels.transparent``."""
    out[image.transparent] = levels.transparent
    return out
