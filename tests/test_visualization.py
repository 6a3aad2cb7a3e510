"""Tests for distance field rendering."""

import numpy as np
import pytest
from matplotlib import image as mpimg

from py_terrain.core.distance_field import SENTINEL, DistanceField, compute_distance_field
from py_terrain.core.visualization import (
    GRADIENT,
    render_distance_field,
    save_distance_field_image,
)


class TestDistanceFieldRendering:
    """Test the colour gradient export."""

    @pytest.fixture
    def field(self):
        free = np.ones((6, 9), dtype=bool)
        free[:, 0] = False
        return compute_distance_field(9, 6, free)

    def test_shape_and_range(self, field):
        rgb = render_distance_field(field)

        assert rgb.shape == (6, 9, 3)
        assert rgb.min() >= 0.0
        assert rgb.max() <= 1.0

    def test_gradient_ends(self, field):
        rgb = render_distance_field(field)

        # Protected cells are black and the farthest cells yellow
        np.testing.assert_allclose(rgb[:, 0], 0.0)
        np.testing.assert_allclose(rgb[:, 8], np.tile(GRADIENT[-1], (6, 1)))

    def test_stops_hit_exactly(self):
        field = DistanceField(np.arange(9, dtype=np.int32).reshape(1, 9))

        rgb = render_distance_field(field)

        np.testing.assert_allclose(rgb[0], GRADIENT)

    def test_sentinel_renders_as_far(self):
        values = np.array([[0, 1, 2, SENTINEL]], dtype=np.int32)

        rgb = render_distance_field(DistanceField(values))

        np.testing.assert_allclose(rgb[0, 3], GRADIENT[-1])

    def test_no_finite_distance_is_black(self):
        field = DistanceField(np.full((3, 3), SENTINEL, dtype=np.int32))

        np.testing.assert_array_equal(render_distance_field(field), np.zeros((3, 3, 3)))

    def test_save_png(self, tmp_path, field):
        path = save_distance_field_image(field, tmp_path / "debug" / "distance.png")

        assert path.exists()
        image = mpimg.imread(str(path))
        assert image.shape[:2] == (6, 9)
