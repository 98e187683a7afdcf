"""Tests for the space-filling curves behind Riemersma dithering."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from ditherkit.image import DitherImage
from ditherkit.riemersma import (
    RIEMERSMA_CURVES,
    CurveCentering,
    RiemersmaCurve,
    create_curve,
    curve_points,
    get_riemersma_curve,
    hilbert_curve,
    hilbert_mod_curve,
    peano_curve,
    riemersma_dither,
    riemersma_weights,
    walk_curve,
)


class TestRiemersmaCurve:
    def test_hilbert_growth(self) -> None:
        curve = hilbert_curve()
        for k in range(5):
            assert curve.expand(k).count("F") == 4 ** k

    def test_dimension(self) -> None:
        assert hilbert_curve().dimension(3) == 8
        assert hilbert_mod_curve().dimension(3) == 16
        assert peano_curve().dimension(2) == 9

    def test_iterations_exceed_both_sides(self) -> None:
        assert hilbert_curve().iterations_for(16, 3) == 5
        assert peano_curve().iterations_for(9, 9) == 3

    def test_start_centering(self) -> None:
        assert hilbert_curve().start(16) == (0, 0)
        assert hilbert_mod_curve().start(16) == (8, 0)
        curve = RiemersmaCurve(
            base=2, add_adjust=0, exp_adjust=0, axiom="F", rules={},
            orientation=(1, 0), centering=CurveCentering.Y,
        )
        assert curve.start(16) == (0, 8)

    def test_rejects_bad_base(self) -> None:
        with pytest.raises(ValueError, match="base"):
            RiemersmaCurve(1, 0, 0, "F", {}, (1, 0))

    def test_rejects_command_rule_key(self) -> None:
        with pytest.raises(ValueError, match="Rule keys"):
            RiemersmaCurve(2, 0, 0, "F", {"+": "F"}, (1, 0))

    def test_rejects_diagonal_orientation(self) -> None:
        with pytest.raises(ValueError, match="Orientation"):
            RiemersmaCurve(2, 0, 0, "F", {}, (1, 1))

    def test_registry(self) -> None:
        assert set(RIEMERSMA_CURVES) == {"hilbert", "hilbert_mod", "peano"}
        assert get_riemersma_curve("peano") == peano_curve()
        with pytest.raises(ValueError, match="Unknown curve"):
            get_riemersma_curve("gosper")


class TestCurveWalk:
    def test_turtle_turns(self) -> None:
        points = list(walk_curve(hilbert_curve(), "F+F-F", 4))
        assert points == [(0, 0), (0, -1), (1, -1)]

    def test_rule_keys_draw_nothing(self) -> None:
        assert list(walk_curve(hilbert_curve(), "AFBA", 4)) == [(0, 0)]

    def test_create_curve(self) -> None:
        commands, dim = create_curve(hilbert_curve(), 16, 16)
        assert dim == 32
        assert commands.count("F") == 1024

    def test_create_curve_too_large(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert create_curve(hilbert_curve(), 600_000, 1) is None
        assert "cannot cover" in caplog.text

    def test_curve_points_too_large(self) -> None:
        with pytest.raises(ValueError, match="cannot cover"):
            curve_points(hilbert_curve(), 600_000, 1)

    @pytest.mark.parametrize(
        ("name", "width", "height"),
        [
            ("hilbert", 16, 16),
            ("hilbert", 13, 5),
            ("hilbert_mod", 8, 8),
            ("hilbert_mod", 10, 7),
            ("peano", 9, 9),
            ("peano", 20, 4),
        ],
    )
    def test_visits_every_pixel_once(self, name: str, width: int, height: int) -> None:
        points = curve_points(get_riemersma_curve(name), width, height)
        assert len(points) == width * height
        assert len(set(points)) == width * height

    def test_consecutive_steps_are_adjacent(self) -> None:
        commands, dim = create_curve(peano_curve(), 9, 9)
        points = list(walk_curve(peano_curve(), commands, dim))
        steps = np.abs(np.diff(np.array(points), axis=0)).sum(axis=1)
        assert np.all(steps == 1)


class TestRiemersmaDither:
    def test_classic_weights(self) -> None:
        w = riemersma_weights()
        assert w.shape == (16,)
        assert w[0] == 1.0
        assert w[-1] == 16.0
        assert np.all(np.diff(w) >= 0)

    def test_modified_weights(self) -> None:
        w = riemersma_weights(modified=True)
        assert w.shape == (8,)
        assert w.sum() == pytest.approx(1.0)
        assert np.all(np.diff(w) > 0)

    @pytest.mark.parametrize("name", sorted(RIEMERSMA_CURVES))
    def test_every_curve_keeps_tone(self, name: str) -> None:
        img = DitherImage.from_gray(np.full((12, 20), 0.25))
        out = riemersma_dither(img, get_riemersma_curve(name))
        assert 0.15 < np.mean(out == 255) < 0.35

    def test_classic_and_modified_differ(self) -> None:
        img = DitherImage.from_gray(np.tile(np.linspace(0.0, 1.0, 16), (16, 1)))
        assert not np.array_equal(
            riemersma_dither(img), riemersma_dither(img, modified=True),
        )
