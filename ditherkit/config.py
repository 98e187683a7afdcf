"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class OutputLevels:
    """Byte values written by the mono engines.

    Attributes:
        on:          Written where the pixel (plus diffused error) exceeds
                     the threshold, i.e. a bright pixel.
        off:         Written everywhere else.
        transparent: Written for fully transparent source pixels.
    """

    on: int = 255
    off: int = 0
    transparent: int = 128

    def __post_init__(self) -> None:
        values = (self.on, self.off, self.transparent)
        for v in values:
            if not 0 <= v <= 255:
                msg = f"Output level {v} is outside 0..255"
                raise ValueError(msg)
        if len(set(values)) != 3:
            msg = f"Output levels must be distinct, got {values}"
            raise ValueError(msg)


# Color engines mark transparent pixels with this index
TRANSPARENT_INDEX = -1


@dataclass(frozen=True)
class DitherConfig:
    """All tuneable parameters for a command-line dither run.

    Attributes:
        algorithm:          Engine name (see ``ditherkit.cli.list``).
        serpentine:         Alternate scan direction on odd rows.
        sigma:              Gaussian jitter on the 0.5 threshold (0 = off).
        correct_gamma:      Decode sRGB to linear light before dithering.
        seed:               Random seed (None = non-deterministic).
        palette_size:       Target colour count for the colour path.
        quantization:       "median_cut", "wu" or "kdtree".
        comparison:         Colour-distance mode name (see ColorComparisonMode).
        include_bw:         Reserve the darkest and lightest image colours.
        include_rgb:        Reserve the image colours closest to R, G, B.
        include_cmy:        Reserve the image colours closest to C, M, Y.
        curve:              Space-filling curve for Riemersma dithering.
        modified_riemersma: Use the short-queue Riemersma variant.
        input_dir:          Folder scanned by the batch command.
        output_dir:         Folder for results.
    """

    # Engine
    algorithm: str = "floyd_steinberg"
    serpentine: bool = False
    sigma: float = 0.0
    correct_gamma: bool = True
    seed: int | None = None

    # Colour path
    palette_size: int = 8
    quantization: str = "median_cut"
    comparison: str = "linear"
    include_bw: bool = True
    include_rgb: bool = False
    include_cmy: bool = False

    # Riemersma
    curve: str = "hilbert"
    modified_riemersma: bool = False

    # Output
    levels: OutputLevels = field(default_factory=OutputLevels)
    input_dir: Path = field(default_factory=lambda: Path("input"))
    output_dir: Path = field(default_factory=lambda: Path("output"))

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".tiff", ".tif", ".webp", ".gif"}
    )
