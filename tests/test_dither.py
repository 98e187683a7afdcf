"""Tests for the dithering engines."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import pytest

from ditherkit.cached_palette import CachedPalette
from ditherkit.config import OutputLevels
from ditherkit.dot_diffusion import (
    DotClassMatrix,
    bayer_class_matrix,
    dot_diffusion_dither,
    knuth_class_matrix,
    spiral_class_matrix,
    spiral_inverted_class_matrix,
)
from ditherkit.dot_lippens import (
    DOT_LIPPENS_COEFFICIENTS,
    DotLippensCoefficients,
    coefficients_2,
    create_dot_lippens_class_matrix,
    dot_lippens_dither,
)
from ditherkit.error_diffusion import (
    ERROR_DIFFUSION_MATRICES,
    ErrorDiffusionMatrix,
    atkinson,
    error_diffusion_dither,
    error_diffusion_dither_color,
    floyd_steinberg,
    get_error_diffusion_matrix,
)
from ditherkit.grid import grid_dither
from ditherkit.image import ColorImage, DitherImage
from ditherkit.kallebach import dither_arrays, kallebach_dither
from ditherkit.ordered import (
    ORDERED_MATRICES,
    OrderedDitherMatrix,
    bayer2x2,
    bayer_values,
    blue_noise_values,
    interleaved_gradient_noise,
    matrix_from_image,
    ordered_dither,
    ordered_dither_color,
    variable_4x4,
)
from ditherkit.palette import builtin_palette
from ditherkit.pattern import TilePattern, pattern_2x2, pattern_4x4, pattern_dither
from ditherkit.riemersma import riemersma_dither
from ditherkit.threshold import auto_threshold, threshold_dither
from ditherkit.variable_diffusion import (
    VariableDiffusion,
    ostromoukhov_table,
    variable_error_diffusion_dither,
    zhou_fang_scale,
    zhou_fang_table,
)

LEVELS = OutputLevels()
ON, OFF, CLEAR = LEVELS.on, LEVELS.off, LEVELS.transparent

# -- Fixtures ----------------------------------------------------------


def _flat(value: float, width: int = 16, height: int = 16) -> DitherImage:
    return DitherImage.from_gray(np.full((height, width), value))


@pytest.fixture
def ramp() -> DitherImage:
    """Horizontal 0 -> 1 ramp, 48x20 (not a multiple of any tile size)."""
    return DitherImage.from_gray(np.tile(np.linspace(0.0, 1.0, 48), (20, 1)))


@pytest.fixture
def clear() -> DitherImage:
    """Fully transparent mid-gray image."""
    return DitherImage.from_gray(np.full((10, 12), 0.5), alpha=np.zeros((10, 12)))


# Every deterministic mono engine, called with defaults
DETERMINISTIC: dict[str, Callable[[DitherImage], np.ndarray]] = {
    "floyd_steinberg": lambda img: error_diffusion_dither(img, floyd_steinberg()),
    "ordered": lambda img: ordered_dither(img, bayer2x2()),
    "dot_diffusion": dot_diffusion_dither,
    "dot_lippens": dot_lippens_dither,
    "ostromoukhov": variable_error_diffusion_dither,
    "riemersma": riemersma_dither,
    "riemersma_modified": lambda img: riemersma_dither(img, modified=True),
    "pattern": pattern_dither,
    "kallebach": kallebach_dither,
    "threshold": threshold_dither,
}

# Stochastic engines, seeded
SEEDED: dict[str, Callable[[DitherImage, np.random.Generator], np.ndarray]] = {
    "error_diffusion_sigma": lambda img, rng: error_diffusion_dither(
        img, floyd_steinberg(), sigma=0.2, rng=rng,
    ),
    "ordered_sigma": lambda img, rng: ordered_dither(img, bayer2x2(), sigma=0.2, rng=rng),
    "zhou_fang": lambda img, rng: variable_error_diffusion_dither(
        img, VariableDiffusion.ZHOU_FANG, rng=rng,
    ),
    "kallebach_random": lambda img, rng: kallebach_dither(img, random=True, rng=rng),
    "threshold_noise": lambda img, rng: threshold_dither(img, noise=0.3, rng=rng),
    "grid": lambda img, rng: grid_dither(img, rng=rng),
}


# -- Shared engine properties ------------------------------------------

class TestEngineContract:
    @pytest.mark.parametrize("name", sorted(DETERMINISTIC))
    def test_deterministic(self, name: str, ramp: DitherImage) -> None:
        engine = DETERMINISTIC[name]
        np.testing.assert_array_equal(engine(ramp), engine(ramp))

    @pytest.mark.parametrize("name", sorted(SEEDED))
    def test_seeded(self, name: str, ramp: DitherImage) -> None:
        engine = SEEDED[name]
        a = engine(ramp, np.random.default_rng(5))
        b = engine(ramp, np.random.default_rng(5))
        np.testing.assert_array_equal(a, b)

    @pytest.mark.parametrize("name", sorted(DETERMINISTIC))
    def test_output_values(self, name: str, ramp: DitherImage) -> None:
        out = DETERMINISTIC[name](ramp)
        assert out.shape == (20, 48)
        assert out.dtype == np.uint8
        assert set(np.unique(out).tolist()) <= {ON, OFF}

    @pytest.mark.parametrize("name", sorted(DETERMINISTIC))
    def test_fully_transparent(self, name: str, clear: DitherImage) -> None:
        before = clear.buffer.copy()
        out = DETERMINISTIC[name](clear)
        assert np.all(out == CLEAR)
        np.testing.assert_array_equal(clear.buffer, before)

    @pytest.mark.parametrize("name", sorted(SEEDED))
    def test_seeded_fully_transparent(self, name: str, clear: DitherImage) -> None:
        out = SEEDED[name](clear, np.random.default_rng(0))
        assert np.all(out == CLEAR)

    @pytest.mark.parametrize("name", sorted(DETERMINISTIC))
    def test_source_untouched(self, name: str, ramp: DitherImage) -> None:
        before = ramp.buffer.copy()
        DETERMINISTIC[name](ramp)
        np.testing.assert_array_equal(ramp.buffer, before)

    @pytest.mark.parametrize("name", sorted(DETERMINISTIC))
    def test_black_and_white_images(self, name: str) -> None:
        engine = DETERMINISTIC[name]
        assert np.all(engine(_flat(0.0)) == OFF)
        assert np.all(engine(_flat(1.0)) == ON)

    def test_custom_levels(self) -> None:
        levels = OutputLevels(on=1, off=0, transparent=2)
        out = error_diffusion_dither(_flat(1.0, 4, 4), floyd_steinberg(), levels=levels)
        assert np.all(out == 1)

    def test_levels_must_differ(self) -> None:
        with pytest.raises(ValueError, match="distinct"):
            OutputLevels(on=0, off=0, transparent=128)

    def test_out_buffer_is_filled(self) -> None:
        buf = np.full((16, 16), 7, dtype=np.uint8)
        result = ordered_dither(_flat(1.0), bayer2x2(), out=buf)
        assert result is buf
        assert np.all(buf == ON)

    def test_out_buffer_shape_checked(self) -> None:
        with pytest.raises(ValueError, match="shape"):
            ordered_dither(_flat(0.5), bayer2x2(), out=np.zeros((4, 4), dtype=np.uint8))

    def test_out_buffer_dtype_checked(self) -> None:
        with pytest.raises(ValueError, match="uint8"):
            ordered_dither(_flat(0.5), bayer2x2(), out=np.zeros((16, 16), dtype=np.int32))


# -- Error diffusion ---------------------------------------------------

class TestErrorDiffusion:
    def test_floyd_steinberg_mid_gray(self) -> None:
        out = error_diffusion_dither(_flat(0.5, 4, 4), floyd_steinberg())
        expected = np.array([
            [0, 1, 0, 1],
            [1, 0, 1, 0],
            [0, 1, 0, 1],
            [1, 0, 1, 0],
        ]) * ON
        np.testing.assert_array_equal(out, expected)

    @pytest.mark.parametrize("name", sorted(ERROR_DIFFUSION_MATRICES))
    def test_every_kernel_keeps_tone(self, name: str) -> None:
        out = error_diffusion_dither(_flat(0.5, 32, 32), get_error_diffusion_matrix(name))
        assert 0.35 < np.mean(out == ON) < 0.65

    def test_floyd_steinberg_conserves_tone(self) -> None:
        # mean 0.5; only the right column and bottom row lose error
        img = DitherImage.from_gray(np.tile(np.linspace(0.0, 1.0, 128), (128, 1)))
        out = error_diffusion_dither(img, floyd_steinberg())
        assert abs(np.mean(out == ON) - 0.5) <= 1 / 128

    def test_floyd_steinberg_dark_tone(self) -> None:
        out = error_diffusion_dither(_flat(0.1, 128, 128), floyd_steinberg())
        assert abs(np.mean(out == ON) - 0.1) <= 1 / 128

    def test_atkinson_drops_a_quarter_of_the_error(self) -> None:
        matrix = atkinson()
        assert sum(w for _, _, w in matrix.neighbors()) == 6.0
        assert matrix.divisor == 8
        # accumulated value settles at 0.1 / (1 - 6/8) = 0.4, never above 0.5
        out = error_diffusion_dither(_flat(0.1, 64, 64), matrix)
        assert np.count_nonzero(out == ON) == 0

    def test_serpentine_differs(self, ramp: DitherImage) -> None:
        a = error_diffusion_dither(ramp, floyd_steinberg())
        b = error_diffusion_dither(ramp, floyd_steinberg(), serpentine=True)
        np.testing.assert_array_equal(a[0], b[0])
        assert not np.array_equal(a, b)

    def test_neighbors(self) -> None:
        assert floyd_steinberg().neighbors() == [
            (1, 0, 7.0), (-1, 1, 3.0), (0, 1, 5.0), (1, 1, 1.0),
        ]

    def test_matrix_needs_sentinel(self) -> None:
        with pytest.raises(ValueError, match="-1"):
            ErrorDiffusionMatrix.from_rows([[0, 1], [1, 1]], 3)

    def test_unknown_kernel(self) -> None:
        with pytest.raises(ValueError, match="Unknown"):
            get_error_diffusion_matrix("nope")

    def test_partial_transparency(self) -> None:
        alpha = np.full((4, 4), 255)
        alpha[1, 2] = 0
        img = DitherImage.from_gray(np.full((4, 4), 1.0), alpha=alpha)
        out = error_diffusion_dither(img, floyd_steinberg())
        assert out[1, 2] == CLEAR
        assert np.count_nonzero(out == ON) == 15


# -- Ordered -----------------------------------------------------------

class TestOrdered:
    def test_bayer_generator(self) -> None:
        np.testing.assert_array_equal(bayer_values(2), [[0, 2], [3, 1]])
        b8 = bayer_values(8)
        np.testing.assert_array_equal(np.sort(b8.ravel()), np.arange(64))

    def test_bayer_size_must_be_power_of_two(self) -> None:
        with pytest.raises(ValueError, match="power of two"):
            bayer_values(6)

    def test_bayer_2x2_checker(self) -> None:
        out = ordered_dither(_flat(0.5, 4, 4), bayer2x2())
        expected = np.array([[0, 1, 0, 1], [1, 0, 1, 0], [0, 1, 0, 1], [1, 0, 1, 0]]) * ON
        np.testing.assert_array_equal(out, expected)

    def test_tiling(self) -> None:
        m = ORDERED_MATRICES["bayer4x4"]()
        out = ordered_dither(_flat(0.3, 12, 8), m)
        np.testing.assert_array_equal(out[:4, :4], out[4:8, 8:12])

    @pytest.mark.parametrize("name", sorted(ORDERED_MATRICES))
    def test_every_matrix_orders_tones(self, name: str) -> None:
        m = ORDERED_MATRICES[name]()
        dark = np.mean(ordered_dither(_flat(0.2, 32, 32), m) == ON)
        light = np.mean(ordered_dither(_flat(0.8, 32, 32), m) == ON)
        assert dark < light

    def test_blue_noise_is_a_permutation(self) -> None:
        v = blue_noise_values(16, seed=1)
        np.testing.assert_array_equal(np.sort(v.ravel()), np.arange(256))
        np.testing.assert_array_equal(v, blue_noise_values(16, seed=1))

    def test_variable_matrix_clamps(self) -> None:
        v = variable_4x4(100).values
        assert v.min() == 0
        assert v.max() == 255

    def test_interleaved_gradient_noise_zero(self) -> None:
        with pytest.raises(ValueError, match="zero"):
            interleaved_gradient_noise(4, 0.0, 0.0, 0.0)

    def test_matrix_from_image(self) -> None:
        img = DitherImage.from_gray(np.array([[0.0, 0.5], [1.0, 0.25]]))
        m = matrix_from_image(img)
        np.testing.assert_allclose(m.values / m.divisor, img.buffer, atol=1e-9)

    def test_invalid_divisor(self) -> None:
        with pytest.raises(ValueError, match="Divisor"):
            OrderedDitherMatrix(np.zeros((2, 2)), 0)


# -- Dot diffusion -----------------------------------------------------

class TestDotDiffusion:
    @pytest.mark.parametrize(
        "factory",
        [knuth_class_matrix, bayer_class_matrix, spiral_class_matrix, spiral_inverted_class_matrix],
    )
    def test_class_matrices_are_permutations(self, factory: Callable[[], DotClassMatrix]) -> None:
        assert factory().is_permutation

    def test_spiral_starts_in_centre(self) -> None:
        assert spiral_class_matrix().values[3, 3] == 0
        assert spiral_inverted_class_matrix().values[3, 3] == 63

    def test_keeps_tone(self) -> None:
        out = dot_diffusion_dither(_flat(0.5, 32, 32))
        assert 0.3 < np.mean(out == ON) < 0.7

    def test_rejects_repeated_classes(self) -> None:
        with pytest.raises(ValueError, match="once"):
            dot_diffusion_dither(_flat(0.5), cmatrix=DotClassMatrix(np.zeros((2, 2))))

    def test_lippens_class_matrix(self) -> None:
        cm = create_dot_lippens_class_matrix()
        assert cm.values.shape == (128, 128)
        np.testing.assert_array_equal(np.bincount(cm.values.ravel()), np.full(256, 64))
        np.testing.assert_array_equal(cm.values[:16, :16], bayer_values(16).T)
        np.testing.assert_array_equal(cm.values[:16, 16:32], bayer_values(16)[::-1, ::-1].T)

    def test_lippens_divisor(self) -> None:
        assert coefficients_2().divisor == pytest.approx(coefficients_2().weights.sum() / 2)

    @pytest.mark.parametrize("name", sorted(DOT_LIPPENS_COEFFICIENTS))
    def test_lippens_stencils_are_radial(self, name: str) -> None:
        w = DOT_LIPPENS_COEFFICIENTS[name]().weights
        assert w[2, 2] == 0
        np.testing.assert_array_equal(w, w.T)
        np.testing.assert_array_equal(w, w[::-1, ::-1])

    def test_lippens_default_orientation_interleaves(self) -> None:
        i, j = np.mgrid[0:8, 0:8]
        explicit = create_dot_lippens_class_matrix(order=2 * (i % 2) + j % 2)
        np.testing.assert_array_equal(create_dot_lippens_class_matrix().values, explicit.values)
        np.testing.assert_array_equal(explicit.values[16:32, :16], bayer_values(16)[::-1, ::-1])
        np.testing.assert_array_equal(explicit.values[16:32, 16:32], bayer_values(16))

    def test_lippens_stencil_must_be_odd(self) -> None:
        with pytest.raises(ValueError, match="odd"):
            DotLippensCoefficients(np.ones((4, 4)))

    def test_lippens_ramp_is_monotone(self, ramp: DitherImage) -> None:
        out = dot_lippens_dither(ramp) == ON
        assert out[:, :16].mean() < out[:, 32:].mean()


# -- Variable error diffusion ------------------------------------------

class TestVariableDiffusion:
    def test_ostromoukhov_table_is_mirrored(self) -> None:
        coefs, divs = ostromoukhov_table()
        assert coefs.shape == (256, 3)
        np.testing.assert_array_equal(coefs, coefs[::-1])
        np.testing.assert_array_equal(coefs.sum(axis=1), divs)
        np.testing.assert_array_equal(coefs[0], [13, 0, 5])

    def test_zhou_fang_table(self) -> None:
        coefs, divs = zhou_fang_table()
        assert coefs.shape == (256, 3)
        np.testing.assert_allclose(divs, 1.0)
        np.testing.assert_array_equal(coefs, coefs[::-1])

    def test_zhou_fang_scale(self) -> None:
        scale = zhou_fang_scale()
        assert scale.shape == (129,)
        assert scale[0] == 0.0
        assert scale[64] == pytest.approx(100.0)

    @pytest.mark.parametrize("variant", list(VariableDiffusion))
    def test_keeps_tone(self, variant: VariableDiffusion) -> None:
        out = variable_error_diffusion_dither(
            _flat(0.3, 32, 32), variant, serpentine=True, rng=np.random.default_rng(1),
        )
        assert 0.2 < np.mean(out == ON) < 0.4


# -- Riemersma ---------------------------------------------------------

class TestRiemersma:
    @pytest.mark.parametrize("modified", [False, True])
    def test_keeps_tone(self, modified: bool) -> None:
        out = riemersma_dither(_flat(0.5, 16, 16), modified=modified)
        assert 0.3 < np.mean(out == ON) < 0.7

    def test_partial_transparency(self) -> None:
        alpha = np.full((8, 8), 255)
        alpha[:, :4] = 0
        img = DitherImage.from_gray(np.full((8, 8), 1.0), alpha=alpha)
        out = riemersma_dither(img)
        assert np.all(out[:, :4] == CLEAR)
        assert np.all(out[:, 4:] == ON)


# -- Pattern -----------------------------------------------------------

class TestPattern:
    def test_tiles_from_matrix(self) -> None:
        p = pattern_2x2()
        assert p.num_tiles == 5
        assert p.tiles[0].sum() == 0
        assert p.tiles[4].sum() == 4
        np.testing.assert_array_equal(p.tiles[1], [[1, 0], [0, 0]])

    def test_mid_gray_picks_half_tile(self) -> None:
        out = pattern_dither(_flat(0.5, 4, 4), pattern_4x4())
        assert np.count_nonzero(out == ON) == 8

    def test_partial_blocks_stay_off(self) -> None:
        out = pattern_dither(_flat(1.0, 5, 5), pattern_4x4())
        assert np.all(out[:4, :4] == ON)
        assert np.all(out[4, :] == OFF)
        assert np.all(out[:, 4] == OFF)

    def test_image_smaller_than_tile(self) -> None:
        out = pattern_dither(_flat(1.0, 3, 3), pattern_4x4())
        assert np.all(out == OFF)

    def test_tiles_must_be_binary(self) -> None:
        with pytest.raises(ValueError, match="0 and 1"):
            TilePattern(np.full((1, 2, 2), 2))


# -- Kacker-Allebach ---------------------------------------------------

class TestKallebach:
    def test_arrays(self) -> None:
        arrays = dither_arrays()
        assert arrays.shape == (4, 32, 32)
        for a in arrays:
            np.testing.assert_array_equal(np.bincount(a.ravel()), np.full(256, 4))

    def test_neighbouring_cells_differ(self) -> None:
        out = kallebach_dither(_flat(0.5, 64, 64))
        cells = [out[y:y + 32, x:x + 32] for y in (0, 32) for x in (0, 32)]
        assert not np.array_equal(cells[0], cells[1])
        assert not np.array_equal(cells[0], cells[2])


# -- Threshold and grid ------------------------------------------------

class TestThreshold:
    def test_ramp(self) -> None:
        n = 10
        img = DitherImage.from_gray(np.linspace(0.0, 1.0, n)[np.newaxis, :])
        out = threshold_dither(img, threshold=0.5, noise=0.0)
        np.testing.assert_array_equal(out[0], [OFF] * (n // 2) + [ON] * (n // 2))

    def test_auto_threshold_full_range(self, ramp: DitherImage) -> None:
        from ditherkit.gamma import gamma_decode, gamma_encode

        expected = gamma_decode(float(np.mean(gamma_encode(ramp.buffer))))
        assert auto_threshold(ramp) == pytest.approx(expected)

    def test_auto_threshold_flat_light(self) -> None:
        assert auto_threshold(_flat(0.5)) > 1.0


class TestGrid:
    def test_white_stays_on(self) -> None:
        out = grid_dither(_flat(1.0, 8, 8), rng=np.random.default_rng(0))
        assert np.all(out == ON)

    def test_alt_mode_removes_one_per_cell_on_white(self) -> None:
        out = grid_dither(_flat(1.0, 8, 8), alt_algorithm=True, rng=np.random.default_rng(0))
        assert np.count_nonzero(out == OFF) == 4

    def test_dark_is_mostly_off(self) -> None:
        out = grid_dither(_flat(0.0, 16, 16), rng=np.random.default_rng(0))
        assert np.mean(out == OFF) > 0.8

    def test_min_pixels(self) -> None:
        out = grid_dither(_flat(0.9, 8, 8), min_pixels=100, rng=np.random.default_rng(0))
        assert np.all(out == ON)


# -- Colour engines ----------------------------------------------------

@pytest.fixture
def rgbcmykw() -> CachedPalette:
    return CachedPalette.from_palette(builtin_palette("rgbcmykw"))


class TestColorEngines:
    def test_error_diffusion_exact_colours(self, rgbcmykw: CachedPalette) -> None:
        rgb = builtin_palette("rgbcmykw").rgb.reshape(2, 4, 3)
        out = error_diffusion_dither_color(ColorImage.from_rgb(rgb), rgbcmykw, floyd_steinberg())
        np.testing.assert_array_equal(out, np.arange(8).reshape(2, 4))

    def test_transparent_index(self, rgbcmykw: CachedPalette) -> None:
        rgba = np.zeros((3, 3, 4), dtype=np.uint8)
        rgba[1, 1] = (255, 255, 255, 255)
        img = ColorImage.from_rgb(rgba)
        for out in (
            error_diffusion_dither_color(img, rgbcmykw, floyd_steinberg()),
            ordered_dither_color(img, rgbcmykw, bayer2x2()),
        ):
            assert out.dtype == np.int32
            assert out[1, 1] >= 0
            assert np.count_nonzero(out == -1) == 8

    def test_gray_mixes_black_and_white(self) -> None:
        bw = CachedPalette.from_palette(builtin_palette("bw"))
        img = ColorImage.from_rgb(np.full((8, 8, 3), 188, dtype=np.uint8))
        for out in (
            error_diffusion_dither_color(img, bw, floyd_steinberg()),
            ordered_dither_color(img, bw, bayer2x2()),
        ):
            assert set(np.unique(out).tolist()) == {0, 1}

    def test_color_out_buffer_checked(self, rgbcmykw: CachedPalette) -> None:
        img = ColorImage.from_rgb(np.zeros((2, 2, 3), dtype=np.uint8))
        with pytest.raises(ValueError, match="int32"):
            ordered_dither_color(img, rgbcmykw, bayer2x2(), out=np.zeros((2, 2), dtype=np.uint8))
