"""Riemersma dithering along L-system space-filling curves.

A curve is an axiom plus rewrite rules.  After expansion the string is
walked as turtle commands: ``F`` steps forward, ``+`` turns left and
``-`` turns right (image coordinates, y pointing down).  Every other
character is a rule key and draws nothing.
"""

from __future__ import annotations

import enum
import logging
import math
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass

import numpy as np

from ditherkit.config import OutputLevels
from ditherkit.image import DitherImage, apply_transparency, prepare_mono_output

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 20

# Largest queue weight, relative to the oldest entry
MAX_WEIGHT = 16


class CurveCentering(enum.IntEnum):
    """Which axes start at the middle of the curve's square."""

    NONE = 0
    XY = 1
    X = 2
    Y = 3


@dataclass(frozen=True)
class RiemersmaCurve:
    """L-system description of a space-filling curve.

    The curve of ``n`` iterations spans ``base ** (n + exp_adjust) +
    add_adjust`` cells per side.  The turtle starts one step behind the
    start cell facing ``orientation``, so the axiom's leading ``F`` lands
    on it.

    Attributes:
        base:        Growth factor of the side length per iteration.
        add_adjust:  Added to the side length.
        exp_adjust:  Added to the iteration count in the exponent.
        axiom:       Initial command string.
        rules:       Rewrite rules keyed by single characters.
        orientation: Initial heading ``(dx, dy)``.
        centering:   Axes on which the start moves to the middle.
    """

    base: int
    add_adjust: int
    exp_adjust: int
    axiom: str
    rules: dict[str, str]
    orientation: tuple[int, int]
    centering: CurveCentering = CurveCentering.NONE

    def __post_init__(self) -> None:
        if self.base < 2:
            msg = f"Curve base must be >= 2, got {self.base}"
            raise ValueError(msg)
        for key in self.rules:
            if len(key) != 1 or key in "F+-":
                msg = f"Rule keys must be single non-command characters, got {key!r}"
                raise ValueError(msg)
        dx, dy = self.orientation
        if abs(dx) + abs(dy) != 1:
            msg = f"Orientation must be a unit axis step, got {self.orientation}"
            raise ValueError(msg)

    def dimension(self, iterations: int) -> int:
        return self.base ** (iterations + self.exp_adjust) + self.add_adjust

    def iterations_for(self, width: int, height: int) -> int | None:
        """Fewest iterations whose square exceeds both image sides."""
        for j in range(MAX_ITERATIONS):
            dim = self.dimension(j)
            if dim > width and dim > height:
                return j
        return None

    def expand(self, iterations: int) -> str:
        commands = self.axiom
        for _ in range(iterations):
            commands = "".join(self.rules.get(ch, ch) for ch in commands)
        return commands

    def start(self, dim: int) -> tuple[int, int]:
        cx = self.centering in (CurveCentering.XY, CurveCentering.X)
        cy = self.centering in (CurveCentering.XY, CurveCentering.Y)
        return (int(dim * 0.5) if cx else 0, int(dim * 0.5) if cy else 0)


# -- Built-in curves ---------------------------------------------------

def hilbert_curve() -> RiemersmaCurve:
    return RiemersmaCurve(
        base=2, add_adjust=0, exp_adjust=0,
        axiom="FA",
        rules={"A": "-BF+AFA+FB-", "B": "+AF-BFB-FA+"},
        orientation=(1, 0),
    )


def hilbert_mod_curve() -> RiemersmaCurve:
    """Moore curve: a closed loop of four Hilbert curves."""
    return RiemersmaCurve(
        base=2, add_adjust=0, exp_adjust=1,
        axiom="FLFL-F-LFL",
        rules={"L": "+RF-LFL-FR+", "R": "-LF+RFR+FL-"},
        orientation=(0, 1),
        centering=CurveCentering.X,
    )


def peano_curve() -> RiemersmaCurve:
    return RiemersmaCurve(
        base=3, add_adjust=0, exp_adjust=0,
        axiom="FX",
        rules={"X": "XFYFX-F-YFXFY+F+XFYFX", "Y": "YFXFY+F+XFYFX-F-YFXFY"},
        orientation=(1, 0),
    )


RIEMERSMA_CURVES: dict[str, Callable[[], RiemersmaCurve]] = {
    "hilbert": hilbert_curve,
    "hilbert_mod": hilbert_mod_curve,
    "peano": peano_curve,
}


def get_riemersma_curve(name: str) -> RiemersmaCurve:
    if name not in RIEMERSMA_CURVES:
        available = ", ".join(RIEMERSMA_CURVES)
        msg = f"Unknown curve '{name}'. Available: {available}"
        raise ValueError(msg)
    return RIEMERSMA_CURVES[name]()


# -- Curve generation --------------------------------------------------

def create_curve(curve: RiemersmaCurve, width: int, height: int) -> tuple[str, int] | None:
    """Expand *curve* until it covers a *width* x *height* image.

    Returns:
        ``(commands, dim)`` where *dim* is the side of the covered square,
        or ``None`` if :data:`MAX_ITERATIONS` iterations are not enough.
    """
    iterations = curve.iterations_for(width, height)
    if iterations is None:
        logger.warning(
            "Curve cannot cover %dx%d within %d iterations", width, height, MAX_ITERATIONS,
        )
        return None
    dim = curve.dimension(iterations)
    logger.debug("Curve: %d iterations, %dx%d cells", iterations, dim, dim)
    return curve.expand(iterations), dim


def walk_curve(
    curve: RiemersmaCurve, commands: str, dim: int,
) -> Iterator[tuple[int, int]]:
    """Yield every ``(x, y)`` the turtle steps onto, in order."""
    rx, ry = curve.orientation
    x, y = curve.start(dim)
    x, y = x - rx, y - ry
    for ch in commands:
        if ch == "F":
            x += rx
            y += ry
            yield x, y
        elif ch == "+":
            rx, ry = ry, -rx
        elif ch == "-":
            rx, ry = -ry, rx


def curve_points(curve: RiemersmaCurve, width: int, height: int) -> list[tuple[int, int]]:
    """In-bounds cells of the curve covering a *width* x *height* image."""
    created = create_curve(curve, width, height)
    if created is None:
        msg = f"Curve cannot cover a {width}x{height} image"
        raise ValueError(msg)
    commands, dim = created
    return [
        (x, y) for x, y in walk_curve(curve, commands, dim)
        if 0 <= x < width and 0 <= y < height
    ]


# -- Engine ------------------------------------------------------------

def riemersma_weights(modified: bool = False) -> np.ndarray:
    """Queue weights, oldest entry first.

    The classic scheme uses 16 integer weights growing geometrically from
    1 to 16.  The modified scheme uses 8 exponentially growing weights
    normalised to a unit sum.
    """
    if not modified:
        n = 16
        m = math.exp(math.log(MAX_WEIGHT) / (n - 1))
        return np.round(m ** np.arange(n))
    n = 8
    w = np.exp2(np.arange(n) / n * 10.0) / 1000.0 * MAX_WEIGHT
    return w / w.sum()


def riemersma_dither(
    image: DitherImage,
    curve: RiemersmaCurve | None = None,
    modified: bool = False,
    levels: OutputLevels = OutputLevels(),
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Diffuse error along a space-filling curve through a short queue.

    The classic variant compares ``pixel + weighted_error / 16`` with 0.5
    and queues the raw residual.  The modified variant compares
    ``pixel + weighted_error`` and queues the full accumulated residual.
    """
    if curve is None:
        curve = hilbert_curve()
    out = prepare_mono_output(image, levels, out)
    weights = riemersma_weights(modified).tolist()
    queue: deque[float] = deque([0.0] * len(weights), maxlen=len(weights))
    buf = image.buffer.tolist()
    transparent = image.transparent.tolist()

    for x, y in curve_points(curve, image.width, image.height):
        if transparent[y][x]:
            continue
        err = sum(w * e for w, e in zip(weights, queue, strict=True))
        p = buf[y][x]
        if modified:
            value = err + p
            on = value > 0.5
        else:
            value = p
            on = p + err / MAX_WEIGHT > 0.5
        if on:
            out[y, x] = levels.on
            value -= 1.0
        queue.append(value)
    return apply_transparency(image, levels, out)
