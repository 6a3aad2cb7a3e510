"""Tests for the fBM noise kernel."""

import numpy as np
import pytest

from py_terrain.core.noise import base_noise, fbm, fbm_grid


class TestFbm:
    """Test fractal Brownian motion."""

    @pytest.mark.parametrize("persistence", [0.5, 1.0, 8.0])
    def test_range(self, persistence):
        for x, y in [(0.1, 0.2), (3.7, -1.2), (120.5, 44.0), (-9.9, 9.9)]:
            value = fbm(x, y, 4, persistence)
            assert 0.0 <= value <= 1.0

    def test_single_octave_is_base_noise(self):
        assert fbm(1.3, 2.7, 1, 8.0) == pytest.approx(base_noise(1.3, 2.7))

    def test_normalised_by_amplitude_sum(self):
        """Two octaves with persistence 8 weight the second octave 8:1."""
        x, y = 0.37, 1.91
        expected = (base_noise(x, y) + 8.0 * base_noise(2 * x, 2 * y)) / 9.0

        assert fbm(x, y, 2, 8.0) == pytest.approx(expected)

    def test_pure(self):
        assert fbm(5.5, 6.5, 3, 8.0) == fbm(5.5, 6.5, 3, 8.0)

    def test_invalid_octaves(self):
        with pytest.raises(ValueError):
            fbm(0.0, 0.0, 0, 0.5)

    def test_grid_matches_scalar(self):
        xs = np.array([0.0, 0.25, 1.5, 7.0])
        ys = np.array([0.5, 2.0, 3.25])

        grid = fbm_grid(xs, ys, 3, 8.0)

        assert grid.shape == (3, 4)
        for j, y in enumerate(ys):
            for i, x in enumerate(xs):
                assert grid[j, i] == pytest.approx(fbm(x, y, 3, 8.0), rel=1e-6, abs=1e-9)
