"""Variable-coefficient error diffusion (Ostromoukhov, Zhou-Fang).

Both variants push the residual to three neighbours (right, below-left,
below) with weights chosen by the grey level of the source pixel.
"""

from __future__ import annotations

import enum
from functools import lru_cache

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output


class VariableDiffusion(enum.IntEnum):
    OSTROMOUKHOV = 0
    ZHOU_FANG = 1


FORWARD_OFFSETS = ((1, 0), (-1, 1), (0, 1))
REVERSE_OFFSETS = ((-1, 0), (1, 1), (0, 1))

# (right, below-left, below, sum) for grey levels 0..127
_OSTROMOUKHOV_HALF = (
    (13, 0, 5, 18), (13, 0, 5, 18), (21, 0, 10, 31), (7, 0, 4, 11),
    (8, 0, 5, 13), (47, 3, 28, 78), (23, 3, 13, 39), (15, 3, 8, 26),
    (22, 6, 11, 39), (43, 15, 20, 78), (7, 3, 3, 13), (501, 224, 211, 936),
    (249, 116, 103, 468), (165, 80, 67, 312), (123, 62, 49, 234), (489, 256, 191, 936),
    (81, 44, 31, 156), (483, 272, 181, 936), (60, 35, 22, 117), (53, 32, 19, 104),
    (237, 148, 83, 468), (471, 304, 161, 936), (3, 2, 1, 6), (481, 314, 185, 980),
    (354, 226, 155, 735), (1389, 866, 685, 2940), (227, 138, 125, 490), (267, 158, 163, 588),
    (327, 188, 220, 735), (61, 34, 45, 140), (627, 338, 505, 1470), (1227, 638, 1075, 2940),
    (20, 10, 19, 49), (1937, 1000, 1767, 4704), (977, 520, 855, 2352), (657, 360, 551, 1568),
    (71, 40, 57, 168), (2005, 1160, 1539, 4704), (337, 200, 247, 784), (2039, 1240, 1425, 4704),
    (257, 160, 171, 588), (691, 440, 437, 1568), (1045, 680, 627, 2352), (301, 200, 171, 672),
    (177, 120, 95, 392), (2141, 1480, 1083, 4704), (1079, 760, 513, 2352), (725, 520, 323, 1568),
    (137, 100, 57, 294), (2209, 1640, 855, 4704), (53, 40, 19, 112), (2243, 1720, 741, 4704),
    (565, 440, 171, 1176), (759, 600, 209, 1568), (1147, 920, 285, 2352), (2311, 1880, 513, 4704),
    (97, 80, 19, 196), (335, 280, 57, 672), (1181, 1000, 171, 2352), (793, 680, 95, 1568),
    (599, 520, 57, 1176), (2413, 2120, 171, 4704), (405, 360, 19, 784), (2447, 2200, 57, 4704),
    (11, 10, 0, 21), (158, 151, 3, 312), (178, 179, 7, 364), (1030, 1091, 63, 2184),
    (248, 277, 21, 546), (318, 375, 35, 728), (458, 571, 63, 1092), (878, 1159, 147, 2184),
    (5, 7, 1, 13), (172, 181, 37, 390), (97, 76, 22, 195), (72, 41, 17, 130),
    (119, 47, 29, 195), (4, 1, 1, 6), (4, 1, 1, 6), (4, 1, 1, 6),
    (4, 1, 1, 6), (4, 1, 1, 6), (4, 1, 1, 6), (4, 1, 1, 6),
    (4, 1, 1, 6), (4, 1, 1, 6), (65, 18, 17, 100), (95, 29, 26, 150),
    (185, 62, 53, 300), (30, 11, 9, 50), (35, 14, 11, 60), (85, 37, 28, 150),
    (55, 26, 19, 100), (80, 41, 29, 150), (155, 86, 59, 300), (5, 3, 2, 10),
    (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10),
    (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10),
    (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10), (5, 3, 2, 10),
    (305, 176, 119, 600), (155, 86, 59, 300), (105, 56, 39, 200), (80, 41, 29, 150),
    (65, 32, 23, 120), (55, 26, 19, 100), (335, 152, 113, 600), (85, 37, 28, 150),
    (115, 48, 37, 200), (35, 14, 11, 60), (355, 136, 109, 600), (30, 11, 9, 50),
    (365, 128, 107, 600), (185, 62, 53, 300), (25, 8, 7, 40), (95, 29, 26, 150),
    (385, 112, 103, 600), (65, 18, 17, 100), (395, 104, 101, 600), (4, 1, 1, 6),
)

# Zhou-Fang key levels: level -> (right, below-left, below)
_ZHOU_FANG_KEYS = {
    0: (13, 0, 5),
    1: (1300249, 0, 499250),
    2: (213113, 287, 99357),
    3: (351854, 0, 199965),
    4: (801100, 0, 490999),
    10: (704075, 297466, 303694),
    22: (46613, 31917, 21469),
    32: (47482, 30617, 21900),
    44: (43024, 42131, 14826),
    64: (36411, 43219, 20369),
    72: (38477, 53843, 7678),
    77: (40503, 51547, 7948),
    85: (35865, 34108, 30026),
    95: (34117, 36899, 28983),
    102: (35464, 35049, 29485),
    107: (16477, 18810, 14712),
    112: (33360, 37954, 28685),
    127: (35269, 36066, 28664),
}

# Zhou-Fang threshold modulation strength in percent
_ZHOU_FANG_STRENGTH = {
    0: 0, 44: 34, 64: 50, 85: 100, 95: 17, 102: 50, 107: 70, 112: 79, 127: 100,
}


def _mirror(half: np.ndarray) -> np.ndarray:
    """Extend a 128-level table to 256 levels: ``full[i] = half[255 - i]``."""
    return np.concatenate([half, half[::-1]])


@lru_cache(maxsize=None)
def ostromoukhov_table() -> tuple[np.ndarray, np.ndarray]:
    """Return ``(coefficients (256, 3), divisors (256,))``."""
    full = _mirror(np.array(_OSTROMOUKHOV_HALF, dtype=np.float64))
    coefs, divs = full[:, :3], full[:, 3]
    coefs.setflags(write=False)
    divs.setflags(write=False)
    return coefs, divs


@lru_cache(maxsize=None)
def zhou_fang_table() -> tuple[np.ndarray, np.ndarray]:
    """Coefficients interpolated between the key levels, then mirrored.

    Key rows are normalised before interpolation so the divisor of each
    level is the sum of its three weights.
    """
    levels = np.array(sorted(_ZHOU_FANG_KEYS), dtype=np.float64)
    keys = np.array([_ZHOU_FANG_KEYS[int(k)] for k in levels], dtype=np.float64)
    keys /= keys.sum(axis=1, keepdims=True)
    grid = np.arange(128, dtype=np.float64)
    half = np.stack([np.interp(grid, levels, keys[:, c]) for c in range(3)], axis=1)
    coefs = _mirror(half)
    divs = coefs.sum(axis=1)
    coefs.setflags(write=False)
    divs.setflags(write=False)
    return coefs, divs


@lru_cache(maxsize=None)
def zhou_fang_scale() -> np.ndarray:
    """129-entry modulation strength indexed by ``int(min(v, 1 - v) * 128)``."""
    levels = np.array(sorted(_ZHOU_FANG_STRENGTH), dtype=np.float64)
    strength = np.array([_ZHOU_FANG_STRENGTH[int(k)] for k in levels], dtype=np.float64)
    i = np.arange(129)
    folded = np.minimum(2 * i, 255 - 2 * i)
    scale = np.interp(folded, levels, strength)
    scale.setflags(write=False)
    return scale


def _level(v: float) -> int:
    return int(min(max(v, 0.0), 1.0) * 255.0 + 0.5)


def variable_error_diffusion_dither(
    image: DitherImage,
    variant: VariableDiffusion = VariableDiffusion.OSTROMOUKHOV,
    serpentine: bool = False,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Error diffusion whose weights depend on the source grey level.

    Ostromoukhov thresholds at 0.5.  Zhou-Fang thresholds at a random
    level around 0.5 whose spread depends on the grey level; *rng* drives
    that choice.
    """
    variant = VariableDiffusion(variant)
    out = prepare_mono_output(image, levels, out)
    zhou_fang = variant == VariableDiffusion.ZHOU_FANG
    if zhou_fang:
        coefs, divs = zhou_fang_table()
        scale = zhou_fang_scale().tolist()
        if rng is None:
            rng = np.random.default_rng()
    else:
        coefs, divs = ostromoukhov_table()
    coef_rows = coefs.tolist()
    div_list = divs.tolist()
    width, height = image.width, image.height
    src = image.buffer.tolist()
    buf = image.buffer.tolist()
    transparent = image.transparent.tolist()

    for y in range(height):
        backwards = serpentine and y % 2 == 1
        offsets = REVERSE_OFFSETS if backwards else FORWARD_OFFSETS
        xs = range(width - 1, -1, -1) if backwards else range(width)
        for x in xs:
            if transparent[y][x]:
                continue
            px = min(max(src[y][x], 0.0), 1.0)
            err = buf[y][x]
            if zhou_fang:
                folded = min(px, 1.0 - px)
                idx = _level(folded)
                noise = int(rng.integers(128)) * scale[int(folded * 128)] / 100.0
                on = err >= (128.0 + noise) / 256.0
            else:
                idx = _level(px)
                on = err > 0.5
            if on:
                out[y, x] = levels.on
                err -= 1.0
            err /= div_list[idx]
            for (dx, dy), w in zip(offsets, coef_rows[idx], strict=True):
                xx, yy = x + dx, y + dy
                if 0 <= xx < width and yy < height:
                    buf[yy][xx] += err * w
    return apply_transparency(image, levels, out)
