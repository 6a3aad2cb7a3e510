"""Tests for distance field computation and persistence."""

import struct

import numpy as np
import pytest

from py_terrain.core.distance_field import (
    SENTINEL,
    DistanceField,
    DistanceFieldStore,
    compute_distance_field,
    mask_key,
)
from py_terrain.exceptions import DegenerateDistanceFieldError, DistanceFieldMismatchError


def _neighbour_min(values, x, y):
    height, width = values.shape
    best = SENTINEL
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            nx, ny = x + dx, y + dy
            if 0 <= nx < width and 0 <= ny < height:
                best = min(best, int(values[ny, nx]))
    return best


class TestDistanceField:
    """Test the multi-source BFS distance field."""

    @pytest.fixture
    def scattered_mask(self):
        """Free mask with a handful of protected cells."""
        rng = np.random.default_rng(3)
        free = rng.random((12, 15)) > 0.08
        free[0, 0] = False
        return free

    def test_center_protected(self):
        """A protected centre gives distance 1 all around it."""
        free = np.ones((3, 3), dtype=bool)
        free[1, 1] = False

        field = compute_distance_field(3, 3, free)

        expected = np.array([[1, 1, 1], [1, 0, 1], [1, 1, 1]])
        np.testing.assert_array_equal(field.values, expected)

    def test_zero_exactly_on_protected(self, scattered_mask):
        field = compute_distance_field(15, 12, scattered_mask)

        np.testing.assert_array_equal(field.values == 0, ~scattered_mask)

    def test_one_plus_neighbour_minimum(self, scattered_mask):
        field = compute_distance_field(15, 12, scattered_mask)
        values = field.values

        for y in range(12):
            for x in range(15):
                if scattered_mask[y, x]:
                    assert values[y, x] == 1 + _neighbour_min(values, x, y)

    def test_repeatable(self, scattered_mask):
        first = compute_distance_field(15, 12, scattered_mask)
        second = compute_distance_field(15, 12, scattered_mask)

        np.testing.assert_array_equal(first.values, second.values)

    def test_callable_predicate_matches_mask(self, scattered_mask):
        from_mask = compute_distance_field(15, 12, scattered_mask)
        from_callable = compute_distance_field(15, 12, lambda x, y: bool(scattered_mask[y, x]))

        np.testing.assert_array_equal(from_mask.values, from_callable.values)

    def test_chessboard_metric(self):
        """Diagonal steps count as one, so distance is max(|dx|, |dy|)."""
        free = np.ones((5, 5), dtype=bool)
        free[0, 0] = False

        field = compute_distance_field(5, 5, free)

        assert field.values[4, 4] == 4
        assert field.values[2, 4] == 4
        assert field.values[3, 1] == 3

    def test_no_protected_cells(self):
        field = compute_distance_field(4, 4, np.ones((4, 4), dtype=bool))

        assert (field.values == SENTINEL).all()
        assert not field.has_protected
        assert field.max_finite == 0
        with pytest.raises(DegenerateDistanceFieldError):
            field.normalized()

    def test_all_protected_is_degenerate(self):
        field = compute_distance_field(3, 3, np.zeros((3, 3), dtype=bool))

        assert field.has_protected
        assert field.max_finite == 0
        with pytest.raises(DegenerateDistanceFieldError):
            field.normalized()

    def test_max_distance_truncates(self):
        free = np.ones((1, 7), dtype=bool)
        free[0, 0] = False

        field = compute_distance_field(7, 1, free, max_distance=2)

        assert field.values[0, :3].tolist() == [0, 1, 2]
        assert (field.values[0, 3:] == SENTINEL).all()

    def test_normalized_maps_sentinel_to_one(self):
        free = np.ones((1, 7), dtype=bool)
        free[0, 0] = False
        field = compute_distance_field(7, 1, free, max_distance=2)

        normalized = field.normalized()

        np.testing.assert_allclose(normalized[0], [0.0, 0.5, 1.0, 1.0, 1.0, 1.0, 1.0])


class TestDistanceFieldCodec:
    """Test the binary persistence format."""

    @pytest.fixture
    def field(self):
        free = np.ones((3, 4), dtype=bool)
        free[1, 2] = False
        return compute_distance_field(4, 3, free)

    def test_header_layout(self, field):
        data = field.to_bytes()

        assert len(data) == 8 + 4 * 12
        assert struct.unpack("<ii", data[:8]) == (4, 3)
        # Row-major body: third value of the second row is the protected cell
        assert struct.unpack("<i", data[8 + 4 * 6: 8 + 4 * 7])[0] == 0

    def test_round_trip(self, field):
        restored = DistanceField.from_bytes(field.to_bytes(), expected_width=4, expected_height=3)

        np.testing.assert_array_equal(restored.values, field.values)

    def test_sentinel_survives(self):
        field = DistanceField(np.full((2, 2), SENTINEL, dtype=np.int32))

        restored = DistanceField.from_bytes(field.to_bytes())

        assert (restored.values == SENTINEL).all()

    def test_dimension_mismatch_rejected(self, field):
        with pytest.raises(DistanceFieldMismatchError):
            DistanceField.from_bytes(field.to_bytes(), expected_width=3, expected_height=4)

    def test_truncated_blob_rejected(self, field):
        with pytest.raises(DistanceFieldMismatchError):
            DistanceField.from_bytes(field.to_bytes()[:-4])

        with pytest.raises(DistanceFieldMismatchError):
            DistanceField.from_bytes(b"\x01\x00")


class TestDistanceFieldStore:
    """Test the file backed distance field cache."""

    @pytest.fixture
    def free(self):
        free = np.ones((6, 6), dtype=bool)
        free[:, 0] = False
        return free

    def test_save_and_load(self, tmp_path, free):
        store = DistanceFieldStore(tmp_path)
        field = compute_distance_field(6, 6, free)

        path = store.save("Scene One", field)
        loaded = store.load("Scene One", 6, 6)

        assert path.name == "Scene_One_distance_field.dat"
        np.testing.assert_array_equal(loaded.values, field.values)

    def test_missing_returns_none(self, tmp_path):
        assert DistanceFieldStore(tmp_path).load("nothing", 4, 4) is None

    def test_resolution_change_returns_none(self, tmp_path, free):
        store = DistanceFieldStore(tmp_path)
        store.save("scene", compute_distance_field(6, 6, free))

        assert store.load("scene", 8, 8) is None

    def test_get_or_compute_persists(self, tmp_path, free):
        store = DistanceFieldStore(tmp_path)

        field = store.get_or_compute("scene", 6, 6, free)

        assert store.path_for("scene").exists()
        np.testing.assert_array_equal(store.load("scene", 6, 6).values, field.values)

    def test_invalidate(self, tmp_path, free):
        store = DistanceFieldStore(tmp_path)
        store.save("scene", compute_distance_field(6, 6, free))

        assert store.invalidate("scene")
        assert not store.path_for("scene").exists()
        assert not store.invalidate("scene")

    def test_mask_key(self, free):
        other = free.copy()
        other[3, 3] = False

        assert mask_key(free) == mask_key(free.copy())
        assert mask_key(free) != mask_key(other)
        assert mask_key(free).startswith("6x6_")
