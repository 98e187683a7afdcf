"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from functools import partial
from pathlib import Path

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ditherkit.cached_palette import CachedPalette
from ditherkit.color_models import ColorComparisonMode
from ditherkit.config import DitherConfig
from ditherkit.dot_diffusion import DOT_CLASS_MATRICES, dot_diffusion_dither
from ditherkit.dot_lippens import DOT_LIPPENS_COEFFICIENTS, dot_lippens_dither
from ditherkit.error_diffusion import (
    ERROR_DIFFUSION_MATRICES,
    error_diffusion_dither,
    error_diffusion_dither_color,
)
from ditherkit.grid import grid_dither
from ditherkit.image import ColorImage, DitherImage
from ditherkit.image_io import load_color_image, load_dither_image, save_indexed, save_mono
from ditherkit.kallebach import kallebach_dither
from ditherkit.ordered import ORDERED_MATRICES, ordered_dither, ordered_dither_color
from ditherkit.palette import BUILTIN_PALETTES, builtin_palette
from ditherkit.pattern import TILE_PATTERNS, pattern_dither
from ditherkit.quantize import QuantizationMethod
from ditherkit.riemersma import RIEMERSMA_CURVES, get_riemersma_curve, riemersma_dither
from ditherkit.rng import make_rng
from ditherkit.threshold import auto_threshold, threshold_dither
from ditherkit.variable_diffusion import VariableDiffusion, variable_error_diffusion_dither

app = typer.Typer(
    name="ditherkit",
    help="Dither images to 1-bit or to a small colour palette.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("ditherkit")

MonoEngine = Callable[[DitherImage, DitherConfig, np.random.Generator], np.ndarray]
ColorEngine = Callable[[ColorImage, CachedPalette, DitherConfig], np.ndarray]


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


# -- Engine registries -------------------------------------------------

def _error_diffusion(name: str, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return error_diffusion_dither(
        img, ERROR_DIFFUSION_MATRICES[name](),
        serpentine=cfg.serpentine, sigma=cfg.sigma, levels=cfg.levels, rng=rng,
    )


def _ordered(name: str, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return ordered_dither(img, ORDERED_MATRICES[name](), sigma=cfg.sigma, levels=cfg.levels, rng=rng)


def _dot(name: str, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return dot_diffusion_dither(img, cmatrix=DOT_CLASS_MATRICES[name](), levels=cfg.levels)


def _lippens(name: str, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return dot_lippens_dither(img, coefficients=DOT_LIPPENS_COEFFICIENTS[name](), levels=cfg.levels)


def _pattern(name: str, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return pattern_dither(img, TILE_PATTERNS[name](), levels=cfg.levels)


def _variable(variant: VariableDiffusion, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return variable_error_diffusion_dither(
        img, variant, serpentine=cfg.serpentine, levels=cfg.levels, rng=rng,
    )


def _riemersma(img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    curve = get_riemersma_curve(cfg.curve)
    return riemersma_dither(img, curve, modified=cfg.modified_riemersma, levels=cfg.levels)


def _kallebach(random: bool, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return kallebach_dither(img, random=random, levels=cfg.levels, rng=rng)


def _threshold(auto: bool, img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    t = auto_threshold(img) if auto else 0.5
    logger.debug("Threshold: %.4f", t)
    return threshold_dither(img, threshold=t, noise=cfg.sigma, levels=cfg.levels, rng=rng)


def _grid(img: DitherImage, cfg: DitherConfig, rng: np.random.Generator) -> np.ndarray:
    return grid_dither(img, levels=cfg.levels, rng=rng)


def mono_engines() -> dict[str, MonoEngine]:
    """All mono algorithms selectable by ``--algorithm``."""
    engines: dict[str, MonoEngine] = {}
    for name in ERROR_DIFFUSION_MATRICES:
        engines[name] = partial(_error_diffusion, name)
    for name in ORDERED_MATRICES:
        engines[name] = partial(_ordered, name)
    for name in DOT_CLASS_MATRICES:
        engines[f"dot_{name}"] = partial(_dot, name)
    for name in DOT_LIPPENS_COEFFICIENTS:
        engines[f"dot_{name}"] = partial(_lippens, name)
    for name in TILE_PATTERNS:
        engines[f"pattern_{name}"] = partial(_pattern, name)
    engines["ostromoukhov"] = partial(_variable, VariableDiffusion.OSTROMOUKHOV)
    engines["zhou_fang"] = partial(_variable, VariableDiffusion.ZHOU_FANG)
    engines["riemersma"] = _riemersma
    engines["kallebach"] = partial(_kallebach, False)
    engines["kallebach_random"] = partial(_kallebach, True)
    engines["threshold"] = partial(_threshold, False)
    engines["auto_threshold"] = partial(_threshold, True)
    engines["grid"] = _grid
    return engines


def color_engines() -> dict[str, ColorEngine]:
    """Colour algorithms: every error-diffusion kernel and ordered matrix."""
    engines: dict[str, ColorEngine] = {}
    for name, factory in ERROR_DIFFUSION_MATRICES.items():
        engines[name] = (
            lambda img, pal, cfg, f=factory:
            error_diffusion_dither_color(img, pal, f(), serpentine=cfg.serpentine)
        )
    for name, factory in ORDERED_MATRICES.items():
        engines[name] = lambda img, pal, cfg, f=factory: ordered_dither_color(img, pal, f())
    return engines


def _pick(registry: dict, name: str, kind: str):
    if name not in registry:
        msg = f"Unknown {kind} '{name}'. Run 'ditherkit list' to see the choices."
        raise typer.BadParameter(msg)
    return registry[name]


def _default_output(input_path: Path, output_dir: Path, algorithm: str) -> Path:
    return output_dir / f"{input_path.stem}_{algorithm}.png"


def _collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.is_dir():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


# Defaults come from DitherConfig - single source of truth
_DEFAULTS = DitherConfig()


# -- mono command ------------------------------------------------------

@app.command()
def mono(
    source: Path = typer.Argument(..., help="Image to dither"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output PNG path"),
    algorithm: str = typer.Option(
        _DEFAULTS.algorithm, "--algorithm", "-a", help="Algorithm name (see 'list')",
    ),
    serpentine: bool = typer.Option(
        _DEFAULTS.serpentine, "--serpentine/--no-serpentine", help="Alternate scan direction",
    ),
    sigma: float = typer.Option(
        _DEFAULTS.sigma, "--sigma", help="Threshold jitter (noise amount for 'threshold')",
    ),
    correct_gamma: bool = typer.Option(
        _DEFAULTS.correct_gamma, "--gamma/--no-gamma", help="Dither in linear light",
    ),
    seed: int | None = typer.Option(
        _DEFAULTS.seed, "--seed", "-s", help="Random seed (None = random)",
    ),
    curve: str = typer.Option(_DEFAULTS.curve, "--curve", help="Riemersma curve"),
    modified_riemersma: bool = typer.Option(
        _DEFAULTS.modified_riemersma, "--modified/--classic", help="Riemersma variant",
    ),
    max_side: int | None = typer.Option(None, "--max-side", "-m", help="Downscale first"),
    upscale: int = typer.Option(1, "--upscale", "-u", help="Pixel upscale factor"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Dither SOURCE to black and white."""
    _setup_logging(verbose)
    engine = _pick(mono_engines(), algorithm, "algorithm")
    _pick(RIEMERSMA_CURVES, curve, "curve")
    cfg = DitherConfig(
        algorithm=algorithm,
        serpentine=serpentine,
        sigma=sigma,
        correct_gamma=correct_gamma,
        seed=seed,
        curve=curve,
        modified_riemersma=modified_riemersma,
    )
    output = output or _default_output(source, cfg.output_dir, algorithm)
    output.parent.mkdir(parents=True, exist_ok=True)

    try:
        img = load_dither_image(source, correct_gamma=cfg.correct_gamma, max_side=max_side)
    except OSError as exc:
        console.print(f"[red]Cannot read {source}: {exc}[/red]")
        raise typer.Exit(1) from exc
    logger.info("Loaded %s (%dx%d)", source.name, img.width, img.height)

    t0 = time.perf_counter()
    result = engine(img, cfg, make_rng(cfg.seed))
    elapsed = time.perf_counter() - t0
    save_mono(result, output, cfg.levels, pixel_upscale=upscale)

    on = int(np.count_nonzero(result == cfg.levels.on))
    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{img.width}x{img.height}  on={on}  time={elapsed:.2f}s[/dim]"
    )


# -- color command -----------------------------------------------------

@app.command()
def color(
    source: Path = typer.Argument(..., help="Image to dither"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output PNG path"),
    algorithm: str = typer.Option(
        _DEFAULTS.algorithm, "--algorithm", "-a", help="Error-diffusion kernel or ordered matrix",
    ),
    palette_name: str | None = typer.Option(
        None, "--palette", "-p", help="Built-in palette (default: quantize the image)",
    ),
    palette_size: int = typer.Option(
        _DEFAULTS.palette_size, "--colors", "-n", help="Colours to quantize to",
    ),
    quantization: str = typer.Option(
        _DEFAULTS.quantization, "--quantization", "-q", help="median_cut, wu or kdtree",
    ),
    comparison: str = typer.Option(
        _DEFAULTS.comparison, "--comparison", "-c", help="Colour distance model",
    ),
    include_bw: bool = typer.Option(_DEFAULTS.include_bw, "--include-bw/--no-include-bw"),
    include_rgb: bool = typer.Option(_DEFAULTS.include_rgb, "--include-rgb/--no-include-rgb"),
    include_cmy: bool = typer.Option(_DEFAULTS.include_cmy, "--include-cmy/--no-include-cmy"),
    serpentine: bool = typer.Option(_DEFAULTS.serpentine, "--serpentine/--no-serpentine"),
    max_side: int | None = typer.Option(None, "--max-side", "-m"),
    upscale: int = typer.Option(1, "--upscale", "-u"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Dither SOURCE to a small colour palette."""
    _setup_logging(verbose)
    engine = _pick(color_engines(), algorithm, "algorithm")
    try:
        mode = ColorComparisonMode[comparison.upper()]
        method = QuantizationMethod[quantization.upper()]
    except KeyError as exc:
        msg = f"Unknown choice {exc}"
        raise typer.BadParameter(msg) from exc
    cfg = DitherConfig(
        algorithm=algorithm,
        serpentine=serpentine,
        palette_size=palette_size,
        quantization=quantization,
        comparison=comparison,
        include_bw=include_bw,
        include_rgb=include_rgb,
        include_cmy=include_cmy,
    )
    output = output or _default_output(source, cfg.output_dir, algorithm)
    output.parent.mkdir(parents=True, exist_ok=True)

    try:
        img = load_color_image(source, max_side=max_side)
    except OSError as exc:
        console.print(f"[red]Cannot read {source}: {exc}[/red]")
        raise typer.Exit(1) from exc

    if palette_name is not None:
        _pick(BUILTIN_PALETTES, palette_name, "palette")
        palette = CachedPalette.from_palette(builtin_palette(palette_name), mode=mode)
    else:
        palette = CachedPalette.from_image(
            img, cfg.palette_size, method,
            include_bw=cfg.include_bw,
            include_rgb=cfg.include_rgb,
            include_cmy=cfg.include_cmy,
            mode=mode,
        )
    logger.info("Palette: %d colours (%s)", len(palette), mode.name.lower())

    t0 = time.perf_counter()
    result = engine(img, palette, cfg)
    elapsed = time.perf_counter() - t0
    save_indexed(result, palette.target_palette, output, pixel_upscale=upscale)
    console.print(
        f"[green]✓[/green] Saved to {output}  "
        f"[dim]{img.width}x{img.height}  colours={len(palette)}  time={elapsed:.2f}s[/dim]"
    )


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(
        _DEFAULTS.input_dir, "--input", "-i", help="Folder with source images",
    ),
    output_dir: Path = typer.Option(
        _DEFAULTS.output_dir, "--output", "-o", help="Results folder",
    ),
    algorithm: list[str] = typer.Option(
        [_DEFAULTS.algorithm], "--algorithm", "-a", help="Mono algorithm; repeat for several",
    ),
    serpentine: bool = typer.Option(_DEFAULTS.serpentine, "--serpentine/--no-serpentine"),
    correct_gamma: bool = typer.Option(_DEFAULTS.correct_gamma, "--gamma/--no-gamma"),
    seed: int | None = typer.Option(_DEFAULTS.seed, "--seed", "-s"),
    max_side: int | None = typer.Option(None, "--max-side", "-m"),
    upscale: int = typer.Option(1, "--upscale", "-u"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Dither every image in INPUT_DIR with each ALGORITHM."""
    _setup_logging(verbose)
    registry = mono_engines()
    engines = {name: _pick(registry, name, "algorithm") for name in algorithm}
    cfg = DitherConfig(
        serpentine=serpentine,
        correct_gamma=correct_gamma,
        seed=seed,
        input_dir=input_dir,
        output_dir=output_dir,
    )

    images = _collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
    if not images:
        console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
        raise typer.Exit(0)
    output_dir.mkdir(parents=True, exist_ok=True)

    console.print(Panel.fit(
        f"[bold]DITHERKIT BATCH[/bold]\n"
        f"Algorithms: {', '.join(engines)}\n"
        f"Images: {len(images)}  |  Gamma: {cfg.correct_gamma}",
        border_style="cyan",
    ))

    for idx, img_path in enumerate(images, 1):
        console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
        try:
            img = load_dither_image(img_path, correct_gamma=cfg.correct_gamma, max_side=max_side)
        except OSError as exc:
            logger.warning("Skipping %s: %s", img_path.name, exc)
            continue
        for name, engine in engines.items():
            t0 = time.perf_counter()
            result = engine(img, cfg, make_rng(cfg.seed))
            path = _default_output(img_path, output_dir, name)
            save_mono(result, path, cfg.levels, pixel_upscale=upscale)
            console.print(
                f"  [green]✓[/green] {path.name}  "
                f"[dim]time={time.perf_counter() - t0:.2f}s[/dim]"
            )

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- list command ------------------------------------------------------

@app.command("list")
def list_choices() -> None:
    """Show every algorithm, curve, palette and distance model."""
    table = Table(title="ditherkit", border_style="cyan")
    table.add_column("Kind", style="bold")
    table.add_column("Names")
    table.add_row("mono", ", ".join(mono_engines()))
    table.add_row("color", ", ".join(color_engines()))
    table.add_row("curves", ", ".join(RIEMERSMA_CURVES))
    table.add_row("palettes", ", ".join(BUILTIN_PALETTES))
    table.add_row("comparison", ", ".join(m.name.lower() for m in ColorComparisonMode))
    table.add_row("quantization", ", ".join(m.name.lower() for m in QuantizationMethod))
    console.print(Panel.fit(table, border_style="cyan"))


if __name__ == "__main__":
    app()
