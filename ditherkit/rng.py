"""Explicit random-number handles for the stochastic engines."""

from __future__ import annotations

import math

import numpy as np


def make_rng(seed: int | None = None) -> np.random.Generator:
    """Return a numpy Generator (``seed=None`` = non-deterministic)."""
    return np.random.default_rng(seed)


def box_muller(rng: np.random.Generator, sigma: float, mean: float) -> float:
    """Draw one normally distributed value via the Box-Muller transform."""
    u1 = rng.random()
    while u1 <= 0.0:
        u1 = rng.random()
    u2 = rng.random()
    z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    return z * sigma + mean


def box_muller_array(
    rng: np.random.Generator, sigma: float, mean: float, shape: tuple[int, ...],
) -> np.ndarray:
    """Vectorised :func:`box_muller`: an array of independent draws."""
    u1 = 1.0 - rng.random(shape)  # (0, 1]
    u2 = rng.random(shape)
    z = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return z * sigma + mean
