"""
ditherkit
=========

Image dithering in linear light, to 1-bit or to a small colour palette.
Ships these engine families:

- **Error diffusion** (Floyd-Steinberg, Jarvis-Judice-Ninke, Atkinson, ...)
- **Ordered** (Bayer, halftone screens, blue noise, ...)
- **Dot diffusion** (Knuth, Lippens & Philips)
- **Variable error diffusion** (Ostromoukhov, Zhou-Fang)
- **Riemersma** along Hilbert, Moore and Peano curves
- **Pattern**, **Kacker-Allebach**, **threshold** and **grid**
"""

__version__ = "0.1.0"

from ditherkit.cached_palette import CachedPalette
from ditherkit.color_models import ColorComparisonMode, LabWeights
from ditherkit.config import TRANSPARENT_INDEX, DitherConfig, OutputLevels
from ditherkit.dot_diffusion import DotClassMatrix, DotDiffusionMatrix, dot_diffusion_dither
from ditherkit.dot_lippens import (
    DotLippensCoefficients,
    create_dot_lippens_class_matrix,
    dot_lippens_dither,
)
from ditherkit.error_diffusion import (
    ErrorDiffusionMatrix,
    error_diffusion_dither,
    error_diffusion_dither_color,
    get_error_diffusion_matrix,
)
from ditherkit.gamma import gamma_decode, gamma_encode
from ditherkit.grid import grid_dither
from ditherkit.image import ColorImage, DitherImage
from ditherkit.kallebach import kallebach_dither
from ditherkit.ordered import (
    OrderedDitherMatrix,
    get_ordered_matrix,
    ordered_dither,
    ordered_dither_color,
)
from ditherkit.palette import BytePalette, ByteColor, FloatColor, FloatPalette
from ditherkit.pattern import TilePattern, pattern_dither
from ditherkit.quantize import QuantizationMethod, kdtree_quantize, median_cut, wu_quantize
from ditherkit.riemersma import CurveCentering, RiemersmaCurve, create_curve, riemersma_dither
from ditherkit.threshold import auto_threshold, threshold_dither
from ditherkit.variable_diffusion import VariableDiffusion, variable_error_diffusion_dither

__all__ = [
    "TRANSPARENT_INDEX",
    "ByteColor",
    "BytePalette",
    "CachedPalette",
    "ColorComparisonMode",
    "ColorImage",
    "CurveCentering",
    "DitherConfig",
    "DitherImage",
    "DotClassMatrix",
    "DotDiffusionMatrix",
    "DotLippensCoefficients",
    "ErrorDiffusionMatrix",
    "FloatColor",
    "FloatPalette",
    "LabWeights",
    "OrderedDitherMatrix",
    "OutputLevels",
    "QuantizationMethod",
    "RiemersmaCurve",
    "TilePattern",
    "VariableDiffusion",
    "auto_threshold",
    "create_curve",
    "create_dot_lippens_class_matrix",
    "dot_diffusion_dither",
    "dot_lippens_dither",
    "error_diffusion_dither",
    "error_diffusion_dither_color",
    "gamma_decode",
    "gamma_encode",
    "get_error_diffusion_matrix",
    "get_ordered_matrix",
    "grid_dither",
    "kallebach_dither",
    "kdtree_quantize",
    "median_cut",
    "ordered_dither",
    "ordered_dither_color",
    "pattern_dither",
    "riemersma_dither",
    "threshold_dither",
    "variable_error_diffusion_dither",
    "wu_quantize",
]
