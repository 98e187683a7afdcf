"""Colour quantizers: median cut, Wu (Graphics Gems II) and k-d tree k-means.

Each quantizer takes an (N, 3) or (N, 4) uint8 array of source colours
(unique colours or a full per-pixel list, duplicates acting as weights)
and returns a :class:`~ditherkit.palette.BytePalette`.
"""

from __future__ import annotations

import logging
from enum import IntEnum

import numpy as np
from scipy.spatial import cKDTree

from ditherkit.palette import BytePalette

logger = logging.getLogger(__name__)

KMEANS_MAX_ITER = 10


class QuantizationMethod(IntEnum):
    MEDIAN_CUT = 0
    WU = 1
    KDTREE = 2


def _source_rgb(colors: np.ndarray | BytePalette) -> np.ndarray:
    arr = colors.rgb if isinstance(colors, BytePalette) else np.asarray(colors)
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        msg = f"Source colours must have shape (N, 3) or (N, 4), got {arr.shape}"
        raise ValueError(msg)
    return arr[:, :3].astype(np.int64)


def _check_target(num_colors: int) -> None:
    if num_colors < 1:
        msg = f"Target colour count must be >= 1, got {num_colors}"
        raise ValueError(msg)


def _round_half_up(x: np.ndarray) -> np.ndarray:
    return np.floor(np.asarray(x, dtype=np.float64) + 0.5).astype(np.int64)


# -- Median cut --------------------------------------------------------

def _bucket_range(bucket: np.ndarray) -> tuple[int, int]:
    """Largest channel range and its channel (ties prefer R, then G)."""
    ranges = bucket.max(axis=0) - bucket.min(axis=0)
    channel = int(np.argmax(ranges))
    return int(ranges[channel]), channel


def median_cut(colors: np.ndarray | BytePalette, num_colors: int) -> BytePalette:
    """Median-cut quantization to *num_colors* colours.

    Returns an empty palette (and logs a warning) when *num_colors* is not
    smaller than the number of source colours.
    """
    _check_target(num_colors)
    pixels = _source_rgb(colors)
    if num_colors >= len(pixels):
        logger.warning(
            "Median cut needs fewer target colours (%d) than source colours (%d)",
            num_colors, len(pixels),
        )
        return BytePalette(np.zeros((0, 4), dtype=np.uint8))

    buckets = [pixels]
    for _ in range(num_colors - 1):
        best, best_range = -1, -1
        for j, bucket in enumerate(buckets):
            if len(bucket) < 2:
                continue
            rng, _channel = _bucket_range(bucket)
            if rng > best_range:
                best, best_range = j, rng
        if best < 0:
            break
        bucket = buckets[best]
        _, channel = _bucket_range(bucket)
        ordered = bucket[np.argsort(bucket[:, channel], kind="stable")]
        upper_size = len(ordered) // 2
        lower_size = len(ordered) - upper_size
        buckets[best] = ordered[:lower_size]
        buckets.append(ordered[lower_size:])

    averages = np.array([_round_half_up(b.mean(axis=0)) for b in buckets])
    logger.debug("Median cut: %d buckets from %d colours", len(buckets), len(pixels))
    return BytePalette(np.clip(averages, 0, 255))


# -- Wu ----------------------------------------------------------------

_RED, _GREEN, _BLUE = 0, 1, 2
_WU_SIZE = 33


class _Box:
    """Half-open box (lo, hi] on each axis of the 33^3 moment tables."""

    __slots__ = ("lo", "hi", "vol")

    def __init__(self) -> None:
        self.lo = [0, 0, 0]
        self.hi = [32, 32, 32]
        self.vol = 0


class _WuMoments:
    def __init__(self, pixels: np.ndarray) -> None:
        idx = (pixels >> 3) + 1
        shape = (_WU_SIZE, _WU_SIZE, _WU_SIZE)
        flat = np.ravel_multi_index((idx[:, 0], idx[:, 1], idx[:, 2]), shape)
        size = _WU_SIZE ** 3

        def hist(weights: np.ndarray | None) -> np.ndarray:
            h = np.bincount(flat, weights=weights, minlength=size).reshape(shape)
            return h.cumsum(axis=0).cumsum(axis=1).cumsum(axis=2)

        self.wt = hist(None)
        self.mr = hist(pixels[:, 0].astype(np.float64))
        self.mg = hist(pixels[:, 1].astype(np.float64))
        self.mb = hist(pixels[:, 2].astype(np.float64))
        self.m2 = hist(np.sum(pixels.astype(np.float64) ** 2, axis=1))

    @staticmethod
    def vol(box: _Box, m: np.ndarray) -> float:
        (r0, g0, b0), (r1, g1, b1) = box.lo, box.hi
        return float(
            m[r1, g1, b1] - m[r1, g1, b0] - m[r1, g0, b1] + m[r1, g0, b0]
            - m[r0, g1, b1] + m[r0, g1, b0] + m[r0, g0, b1] - m[r0, g0, b0]
        )

    @staticmethod
    def top(box: _Box, axis: int, pos: int, m: np.ndarray) -> float:
        """Moment of the slab with *axis* fixed at *pos* (upper-bound terms)."""
        lo, hi = list(box.lo), list(box.hi)
        hi[axis] = pos
        return _WuMoments._signed_face(lo, hi, axis, m)

    @staticmethod
    def bottom(box: _Box, axis: int, m: np.ndarray) -> float:
        """Negated moment of the face at the box's lower bound on *axis*."""
        lo, hi = list(box.lo), list(box.hi)
        hi[axis] = lo[axis]
        return -_WuMoments._signed_face(lo, hi, axis, m)

    @staticmethod
    def _signed_face(lo: list[int], hi: list[int], axis: int, m: np.ndarray) -> float:
        # 2-D inclusion-exclusion over the two axes other than *axis*
        a, b = (ax for ax in range(3) if ax != axis)
        total = 0.0
        for ca, sa in ((hi[a], 1), (lo[a], -1)):
            for cb, sb in ((hi[b], 1), (lo[b], -1)):
                idx = [0, 0, 0]
                idx[axis] = hi[axis]
                idx[a] = ca
                idx[b] = cb
                total += sa * sb * m[idx[0], idx[1], idx[2]]
        return float(total)

    def variance(self, box: _Box) -> float:
        dr = self.vol(box, self.mr)
        dg = self.vol(box, self.mg)
        db = self.vol(box, self.mb)
        xx = self.vol(box, self.m2)
        w = self.vol(box, self.wt)
        if w == 0:
            return 0.0
        return xx - (dr * dr + dg * dg + db * db) / w

    def maximize(
        self, box: _Box, axis: int, first: int, last: int, whole: tuple[float, ...],
    ) -> tuple[float, int]:
        moments = (self.mr, self.mg, self.mb, self.wt)
        base = [self.bottom(box, axis, m) for m in moments]
        best, cut = 0.0, -1
        for i in range(first, last):
            half = [b + self.top(box, axis, i, m) for b, m in zip(base, moments, strict=True)]
            if half[3] == 0:
                continue
            temp = (half[0] ** 2 + half[1] ** 2 + half[2] ** 2) / half[3]
            rest = [w - h for w, h in zip(whole, half, strict=True)]
            if rest[3] == 0:
                continue
            temp += (rest[0] ** 2 + rest[1] ** 2 + rest[2] ** 2) / rest[3]
            if temp > best:
                best, cut = temp, i
        return best, cut

    def cut(self, set1: _Box, set2: _Box) -> bool:
        whole = tuple(self.vol(set1, m) for m in (self.mr, self.mg, self.mb, self.wt))
        results = [
            self.maximize(set1, axis, set1.lo[axis] + 1, set1.hi[axis], whole)
            for axis in (_RED, _GREEN, _BLUE)
        ]
        (max_r, cut_r), (max_g, _), (max_b, _) = results
        if max_r >= max_g and max_r >= max_b:
            axis = _RED
            if cut_r < 0:
                return False
        elif max_g >= max_r and max_g >= max_b:
            axis = _GREEN
        else:
            axis = _BLUE

        set2.hi = list(set1.hi)
        set2.lo = list(set1.lo)
        set2.lo[axis] = set1.hi[axis] = results[axis][1]
        for box in (set1, set2):
            box.vol = (
                (box.hi[0] - box.lo[0]) * (box.hi[1] - box.lo[1]) * (box.hi[2] - box.lo[2])
            )
        return True


def wu_quantize(colors: np.ndarray | BytePalette, num_colors: int) -> BytePalette:
    """Wu's variance-minimising colour quantizer.

    May return fewer than *num_colors* colours when no box can be split
    further; a warning is logged in that case.
    """
    _check_target(num_colors)
    pixels = _source_rgb(colors)
    if len(pixels) == 0:
        return BytePalette(np.zeros((0, 4), dtype=np.uint8))
    moments = _WuMoments(pixels)

    boxes = [_Box() for _ in range(num_colors)]
    boxes[0].vol = 32 ** 3
    variances = np.zeros(num_colors)
    count = num_colors
    nxt = 0
    i = 1
    while i < num_colors:
        if moments.cut(boxes[nxt], boxes[i]):
            variances[nxt] = moments.variance(boxes[nxt]) if boxes[nxt].vol > 1 else 0.0
            variances[i] = moments.variance(boxes[i]) if boxes[i].vol > 1 else 0.0
        else:
            variances[nxt] = 0.0
            i -= 1
        nxt = int(np.argmax(variances[: i + 1]))
        if variances[nxt] <= 0.0:
            count = i + 1
            logger.warning("Only got %d boxes", count)
            break
        i += 1

    out = np.zeros((count, 3), dtype=np.int64)
    for k in range(count):
        weight = moments.vol(boxes[k], moments.wt)
        if weight:
            out[k] = [
                int(moments.vol(boxes[k], m) // weight)
                for m in (moments.mr, moments.mg, moments.mb)
            ]
        else:
            logger.warning("Bogus box %d", k)
    logger.debug("Wu: %d boxes from %d colours", count, len(pixels))
    return BytePalette(out)


# -- k-d tree / k-means ------------------------------------------------

def _seed_indices(k: int, n: int) -> list[int]:
    """Deterministic unique seeds (n-1)//1, (n-1)//2, ... then the rest in order."""
    chosen: list[int] = []
    seen: set[int] = set()
    for i in range(1, n + 1):
        idx = (n - 1) // i
        if idx not in seen:
            seen.add(idx)
            chosen.append(idx)
            if len(chosen) == k:
                return chosen
    for idx in range(n):
        if idx not in seen:
            chosen.append(idx)
            if len(chosen) == k:
                break
    return chosen


def kdtree_quantize(colors: np.ndarray | BytePalette, num_colors: int) -> BytePalette:
    """k-means refined with a k-d tree over the current centres.

    Runs at most ten iterations; centres are the integer means of their
    assignees and empty clusters keep their previous centre.
    """
    _check_target(num_colors)
    pixels = _source_rgb(colors)
    n = len(pixels)
    if num_colors > n:
        msg = f"k-d tree quantization needs at least {num_colors} source colours, got {n}"
        raise ValueError(msg)

    centers = pixels[_seed_indices(num_colors, n)].copy()
    for _ in range(KMEANS_MAX_ITER):
        _, assignments = cKDTree(centers).query(pixels)
        counts = np.bincount(assignments, minlength=num_colors)
        filled = counts > 0
        previous = centers.copy()
        for c in range(3):
            sums = np.bincount(assignments, weights=pixels[:, c], minlength=num_colors)
            centers[filled, c] = sums[filled].astype(np.int64) // counts[filled]
        if np.array_equal(previous, centers):
            break
    return BytePalette(centers)


def quantize(
    colors: np.ndarray | BytePalette,
    num_colors: int,
    method: QuantizationMethod = QuantizationMethod.MEDIAN_CUT,
) -> BytePalette:
    """Dispatch to the quantizer selected by *method*."""
    if method == QuantizationMethod.WU:
        return wu_quantize(colors, num_colors)
    if method == QuantizationMethod.KDTREE:
        return kdtree_quantize(colors, num_colors)
    return median_cut(colors, num_colors)
