"""sRGB transfer function.

Both directions accept Python floats or numpy arrays and never clamp, so
out-of-range values carrying diffused error pass through unchanged in
sign.
"""

from __future__ import annotations

import numpy as np

SRGB_KNEE = 0.04045
LINEAR_KNEE = SRGB_KNEE / 12.92


def gamma_decode(c):
    """sRGB value(s) in [0, 1] -> linear light."""
    arr = np.asarray(c, dtype=np.float64)
    out = np.where(
        arr <= SRGB_KNEE,
        arr / 12.92,
        ((np.maximum(arr, SRGB_KNEE) + 0.055) / 1.055) ** 2.4,
    )
    return float(out) if out.ndim == 0 else out


def gamma_encode(c):
    """Linear light value(s) in [0, 1] -> sRGB. Inverse of :func:`gamma_decode`."""
    arr = np.asarray(c, dtype=np.float64)
    out = np.where(
        arr <= LINEAR_KNEE,
        arr * 12.92,
        1.055 * np.maximum(arr, LINEAR_KNEE) ** (1.0 / 2.4) - 0.055,
    )
    return float(out) if out.ndim == 0 else out
