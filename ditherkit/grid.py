"""Grid dithering: switch off a brightness-dependent number of random pixels per cell."""

from __future__ import annotations

import math

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output


def grid_dither(
    image: DitherImage,
    width: int = 4,
    height: int = 4,
    min_pixels: int = 0,
    alt_algorithm: bool = False,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Start fully on and darken each *width* x *height* cell at random.

    A cell with mean brightness ``avg`` gets ``n = ((1 - avg) * area)**2 /
    (area / 4)`` off-picks (none if ``n < min_pixels``).  The default mode
    draws ``int(n)`` positions with repeats inside the clipped cell.  The
    alternative mode switches off ``round(n / 4) + 1`` distinct cell
    positions, capped at the cell area.
    """
    if width < 1 or height < 1:
        msg = f"Grid cell must be at least 1x1, got {width}x{height}"
        raise ValueError(msg)
    out = prepare_mono_output(image, levels, out)
    out.fill(levels.on)
    if rng is None:
        rng = np.random.default_rng()
    area = width * height

    for y in range(0, image.height, height):
        for x in range(0, image.width, width):
            cell = image.buffer[y:y + height, x:x + width]
            ch, cw = cell.shape
            # Missing pixels past the edge count as black
            avg = float(cell.sum()) / area
            n = ((1.0 - avg) * area) ** 2 / (area / 4.0)
            if n < min_pixels:
                n = 0.0
            if alt_algorithm:
                count = min(math.floor(n / 4.0 + 0.5) + 1, area)
                for pos in rng.permutation(area)[:count].tolist():
                    yr, xr = divmod(pos, width)
                    if yr < ch and xr < cw:
                        out[y + yr, x + xr] = levels.off
            else:
                picks = int(n)
                if picks:
                    ys = rng.integers(ch, size=picks)
                    xs = rng.integers(cw, size=picks)
                    out[y + ys, x + xs] = levels.off
    return apply_transparency(image, levels, out)
