"""Tests for image loading/saving and the command-line interface."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from typer.testing import CliRunner

from ditherkit.cli import app, color_engines, mono_engines
from ditherkit.config import DitherConfig, OutputLevels
from ditherkit.image_io import (
    compute_target_size,
    indexed_to_image,
    load_color_image,
    load_dither_image,
    load_rgba,
    mono_to_image,
    save_indexed,
    save_mono,
)
from ditherkit.palette import builtin_palette

runner = CliRunner()


# -- Fixtures ----------------------------------------------------------

def _gradient_rgb(width: int = 24, height: int = 16) -> np.ndarray:
    x = np.linspace(0, 255, width).astype(np.uint8)
    img = np.zeros((height, width, 3), dtype=np.uint8)
    img[..., 0] = x
    img[..., 1] = x[::-1]
    img[..., 2] = 128
    return img


@pytest.fixture
def gradient_png(tmp_path: Path) -> Path:
    path = tmp_path / "gradient.png"
    Image.fromarray(_gradient_rgb()).save(path)
    return path


@pytest.fixture
def holed_png(tmp_path: Path) -> Path:
    """White RGBA image with a fully transparent left column."""
    rgba = np.full((6, 6, 4), 255, dtype=np.uint8)
    rgba[:, 0, 3] = 0
    path = tmp_path / "holed.png"
    Image.fromarray(rgba).save(path)
    return path


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_defaults(self) -> None:
        cfg = DitherConfig()
        assert cfg.algorithm == "floyd_steinberg"
        assert cfg.levels == OutputLevels(on=255, off=0, transparent=128)
        assert cfg.output_dir == Path("output")

    def test_frozen(self) -> None:
        cfg = DitherConfig()
        with pytest.raises(AttributeError):
            cfg.sigma = 0.5  # type: ignore[misc]

    def test_levels_range(self) -> None:
        with pytest.raises(ValueError, match="outside"):
            OutputLevels(on=256)

    def test_supported_extensions(self) -> None:
        assert ".png" in DitherConfig.SUPPORTED_EXTENSIONS
        assert ".txt" not in DitherConfig.SUPPORTED_EXTENSIONS


# -- Loading -----------------------------------------------------------

class TestComputeTargetSize:
    def test_landscape(self) -> None:
        assert compute_target_size(100, 50, 32) == (32, 16)

    def test_portrait(self) -> None:
        assert compute_target_size(50, 100, 32) == (16, 32)

    def test_never_upscales(self) -> None:
        assert compute_target_size(10, 5, 32) == (10, 5)

    def test_minimum_one(self) -> None:
        assert compute_target_size(1, 1000, 10) == (1, 10)


class TestLoad:
    def test_rgba_shape(self, gradient_png: Path) -> None:
        rgba = load_rgba(gradient_png)
        assert rgba.shape == (16, 24, 4)
        assert np.all(rgba[..., 3] == 255)
        np.testing.assert_array_equal(rgba[..., :3], _gradient_rgb())

    def test_max_side(self, gradient_png: Path) -> None:
        assert load_rgba(gradient_png, max_side=12).shape == (8, 12, 4)

    def test_dither_image(self, holed_png: Path) -> None:
        img = load_dither_image(holed_png)
        assert (img.width, img.height) == (6, 6)
        assert np.all(img.transparent[:, 0])
        assert not img.transparent[:, 1:].any()
        np.testing.assert_allclose(img.buffer[:, 1:], 1.0, atol=1e-2)

    def test_gamma_toggle(self, tmp_path: Path) -> None:
        path = tmp_path / "gray.png"
        Image.fromarray(np.full((2, 2, 3), 128, dtype=np.uint8)).save(path)
        linear = load_dither_image(path).buffer
        encoded = load_dither_image(path, correct_gamma=False).buffer
        assert linear.mean() < encoded.mean()

    def test_color_image(self, gradient_png: Path) -> None:
        img = load_color_image(gradient_png)
        np.testing.assert_array_equal(img.srgb[..., :3], _gradient_rgb())
        assert img.linear.shape == (16, 24, 3)


# -- Saving ------------------------------------------------------------

class TestSave:
    def test_mono_opaque_is_grayscale(self) -> None:
        out = np.array([[0, 255], [255, 0]], dtype=np.uint8)
        img = mono_to_image(out)
        assert img.mode == "L"
        np.testing.assert_array_equal(np.array(img), out)

    def test_mono_transparent_gets_alpha(self) -> None:
        out = np.array([[0, 128], [255, 0]], dtype=np.uint8)
        arr = np.array(mono_to_image(out))
        assert arr.shape == (2, 2, 2)
        assert arr[0, 1, 1] == 0
        assert arr[1, 0, 0] == 255
        assert arr[1, 0, 1] == 255

    def test_save_mono_upscaled(self, tmp_path: Path) -> None:
        out = np.array([[0, 255]], dtype=np.uint8)
        path = tmp_path / "mono.png"
        save_mono(out, path, pixel_upscale=3)
        loaded = np.array(Image.open(path))
        assert loaded.shape == (3, 6)
        assert np.all(loaded[:, :3] == 0)
        assert np.all(loaded[:, 3:] == 255)

    def test_indexed(self) -> None:
        pal = builtin_palette("rgbcmykw")
        arr = np.array(indexed_to_image(np.array([[1, -1]], dtype=np.int32), pal))
        np.testing.assert_array_equal(arr[0, 0], [255, 0, 0, 255])
        assert arr[0, 1, 3] == 0

    def test_indexed_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="indices"):
            indexed_to_image(np.array([[2]], dtype=np.int32), builtin_palette("bw"))

    def test_save_indexed(self, tmp_path: Path) -> None:
        path = tmp_path / "color.png"
        save_indexed(np.array([[0, 1]], dtype=np.int32), builtin_palette("bw"), path)
        loaded = np.array(Image.open(path).convert("RGB"))
        np.testing.assert_array_equal(loaded[0], [[0, 0, 0], [255, 255, 255]])


# -- CLI ---------------------------------------------------------------

class TestCli:
    def test_registries(self) -> None:
        mono = mono_engines()
        for name in ("floyd_steinberg", "bayer4x4", "dot_knuth", "dot_lippens1",
                     "pattern_4x4", "ostromoukhov", "zhou_fang", "riemersma",
                     "kallebach", "auto_threshold", "grid"):
            assert name in mono
        assert set(color_engines()) < set(mono)

    @pytest.mark.parametrize("algorithm", ["floyd_steinberg", "bayer4x4", "riemersma", "grid"])
    def test_mono(self, gradient_png: Path, tmp_path: Path, algorithm: str) -> None:
        out = tmp_path / "out" / "mono.png"
        result = runner.invoke(
            app, ["mono", str(gradient_png), "-o", str(out), "-a", algorithm, "-s", "3"],
        )
        assert result.exit_code == 0, result.output
        assert "Saved to" in result.output
        pixels = np.array(Image.open(out))
        assert pixels.shape == (16, 24)
        assert set(np.unique(pixels).tolist()) <= {0, 255}

    def test_mono_keeps_transparency(self, holed_png: Path, tmp_path: Path) -> None:
        out = tmp_path / "holed_out.png"
        result = runner.invoke(app, ["mono", str(holed_png), "-o", str(out)])
        assert result.exit_code == 0, result.output
        pixels = np.array(Image.open(out))
        assert pixels.shape == (6, 6, 2)
        assert np.all(pixels[:, 0, 1] == 0)
        assert np.all(pixels[:, 1:, 0] == 255)

    def test_mono_upscale(self, gradient_png: Path, tmp_path: Path) -> None:
        out = tmp_path / "big.png"
        result = runner.invoke(app, ["mono", str(gradient_png), "-o", str(out), "-u", "2"])
        assert result.exit_code == 0, result.output
        assert Image.open(out).size == (48, 32)

    def test_unknown_algorithm(self, gradient_png: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["mono", str(gradient_png), "-o", str(tmp_path / "x.png"), "-a", "nope"],
        )
        assert result.exit_code != 0
        assert not (tmp_path / "x.png").exists()

    def test_unreadable_input(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not an image")
        result = runner.invoke(app, ["mono", str(bad), "-o", str(tmp_path / "x.png")])
        assert result.exit_code == 1
        assert "Cannot read" in result.output

    def test_color_builtin_palette(self, gradient_png: Path, tmp_path: Path) -> None:
        out = tmp_path / "color.png"
        result = runner.invoke(
            app, ["color", str(gradient_png), "-o", str(out), "-p", "rgbcmykw", "-a", "bayer8x8"],
        )
        assert result.exit_code == 0, result.output
        rgb = np.array(Image.open(out).convert("RGB")).reshape(-1, 3)
        allowed = {tuple(c) for c in builtin_palette("rgbcmykw").rgb.tolist()}
        assert {tuple(c) for c in rgb.tolist()} <= allowed

    def test_color_quantized(self, gradient_png: Path, tmp_path: Path) -> None:
        out = tmp_path / "quantized.png"
        result = runner.invoke(
            app, ["color", str(gradient_png), "-o", str(out), "-n", "4", "-q", "wu", "-c", "lab94"],
        )
        assert result.exit_code == 0, result.output
        rgb = np.array(Image.open(out).convert("RGB")).reshape(-1, 3)
        assert len({tuple(c) for c in rgb.tolist()}) <= 4

    def test_color_unknown_comparison(self, gradient_png: Path, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["color", str(gradient_png), "-o", str(tmp_path / "x.png"), "-c", "nope"],
        )
        assert result.exit_code != 0

    def test_batch(self, tmp_path: Path) -> None:
        src = tmp_path / "in"
        src.mkdir()
        for name in ("a.png", "b.jpg"):
            Image.fromarray(_gradient_rgb(8, 8)).save(src / name)
        (src / "notes.txt").write_text("skip me")
        dst = tmp_path / "results"
        result = runner.invoke(
            app, ["batch", "-i", str(src), "-o", str(dst), "-a", "bayer4x4", "-a", "threshold"],
        )
        assert result.exit_code == 0, result.output
        assert sorted(p.name for p in dst.iterdir()) == [
            "a_bayer4x4.png", "a_threshold.png", "b_bayer4x4.png", "b_threshold.png",
        ]

    def test_batch_empty_folder(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["batch", "-i", str(tmp_path / "missing")])
        assert result.exit_code == 0
        assert "No images" in result.output

    def test_list(self) -> None:
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "hilbert" in result.output
        assert "rgbcmykw" in result.output
