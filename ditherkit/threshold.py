"""Plain and noisy threshold dithering."""

from __future__ import annotations

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.gamma import gamma_decode, gamma_encode
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output


def auto_threshold(image: DitherImage) -> float:
    """Suggest a threshold for :func:`threshold_dither` from the image contrast.

    Low-contrast images get a threshold pushed away from their mean
    brightness, towards the darker side for dark images.
    """
    encoded = np.asarray(gamma_encode(image.buffer))
    avg = float(encoded.mean())
    spread = float(encoded.max() - encoded.min())
    v = (1.0 - spread) * 0.5
    if avg < gamma_decode(0.5):
        v = -v
    return float(gamma_decode(avg + v))


def threshold_dither(
    image: DitherImage,
    threshold: float = 0.5,
    noise: float = 0.0,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Switch on pixels brighter than *threshold*.

    Args:
        image: Source image.
        threshold: Cut-off in [0, 1].
        noise: Amount of uniform jitter in [0, 1]; also pulls the
            threshold towards 0.5.
        levels: Output byte values.
        out: Optional (H, W) uint8 buffer to fill.
        rng: Random generator used when *noise* > 0.
    """
    out = prepare_mono_output(image, levels, out)
    t = 0.5 * noise + threshold * (1.0 - noise)
    px = image.buffer
    if noise > 0:
        if rng is None:
            rng = np.random.default_rng()
        px = px + (rng.random(px.shape) - 0.5) * noise
    out[px > t] = levels.on
    return apply_transparency(image, levels, out)
