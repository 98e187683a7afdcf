"""Image loading and saving with Pillow."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from ditherkit.config import TRANSPARENT_INDEX, OutputLevels
from ditherkit.image import ColorImage, DitherImage
from ditherkit.palette import BytePalette


def compute_target_size(
    original_width: int,
    original_height: int,
    max_side: int,
) -> tuple[int, int]:
    """Compute downscaled (w, h) preserving aspect ratio.

    The longest side becomes *max_side* unless the image is already
    smaller; the other side is scaled proportionally (minimum 1).
    """
    longest = max(original_width, original_height)
    if longest <= max_side:
        return original_width, original_height
    scale = max_side / longest
    w = max(1, round(original_width * scale))
    h = max(1, round(original_height * scale))
    return w, h


def load_rgba(path: str | Path, max_side: int | None = None) -> np.ndarray:
    """Load any Pillow-readable image.

    Returns:
        (H, W, 4) uint8 array.
    """
    img = Image.open(path).convert("RGBA")
    if max_side is not None:
        size = compute_target_size(img.width, img.height, max_side)
        if size != img.size:
            img = img.resize(size, Image.LANCZOS)
    return np.array(img, dtype=np.uint8)


def load_dither_image(
    path: str | Path, correct_gamma: bool = True, max_side: int | None = None,
) -> DitherImage:
    return DitherImage.from_rgb(load_rgba(path, max_side), correct_gamma=correct_gamma)


def load_color_image(path: str | Path, max_side: int | None = None) -> ColorImage:
    return ColorImage.from_rgb(load_rgba(path, max_side))


def _upscaled(img: Image.Image, pixel_upscale: int) -> Image.Image:
    if pixel_upscale == 1:
        return img
    return img.resize((img.width * pixel_upscale, img.height * pixel_upscale), Image.NEAREST)


def mono_to_image(out: np.ndarray, levels: OutputLevels = OutputLevels()) -> Image.Image:
    """Grayscale image of a mono result.

    If any pixel carries the transparent level the image gets an alpha
    channel and those pixels become fully transparent black.
    """
    mask = out == levels.transparent
    if not mask.any():
        return Image.fromarray(out.astype(np.uint8))
    gray = np.where(mask, 0, out).astype(np.uint8)
    alpha = np.where(mask, 0, 255).astype(np.uint8)
    return Image.fromarray(np.dstack([gray, alpha]))


def indexed_to_image(indices: np.ndarray, palette: BytePalette) -> Image.Image:
    """RGBA image of a colour result; index -1 becomes fully transparent."""
    colors = np.vstack([palette.colors, np.zeros((1, 4), dtype=np.uint8)])
    lookup = np.where(indices == TRANSPARENT_INDEX, len(palette), indices)
    if lookup.size and (lookup.min() < 0 or lookup.max() > len(palette)):
        msg = f"Palette indices must lie in [-1, {len(palette) - 1}]"
        raise ValueError(msg)
    return Image.fromarray(colors[lookup])


def save_mono(
    out: np.ndarray,
    path: str | Path,
    levels: OutputLevels = OutputLevels(),
    pixel_upscale: int = 1,
) -> None:
    _upscaled(mono_to_image(out, levels), pixel_upscale).save(path)


def save_indexed(
    indices: np.ndarray,
    palette: BytePalette,
    path: str | Path,
    pixel_upscale: int = 1,
) -> None:
    _upscaled(indexed_to_image(indices, palette), pixel_upscale).save(path)
