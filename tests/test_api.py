"""
Tests for the height field API endpoints.
"""

import inspect
from unittest.mock import patch

from fastapi.testclient import TestClient

from py_terrain.api.main import app, distance_field, transform
from py_terrain.config import settings


class TestHeightFieldAPI:
    """Test the distance field and transform endpoints."""

    def setup_method(self):
        """Set up test client."""
        self.client = TestClient(app)
        self.protected = [[False] * 5 for _ in range(5)]
        self.protected[2] = [True] * 5

    def test_health(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_list_algorithms(self):
        response = self.client.get("/algorithms")

        assert response.status_code == 200
        data = response.json()
        generator_types = {g["type"] for g in data["generators"]}
        smoother_types = {s["type"] for s in data["smoothers"]}
        assert {"uniform_height", "perlin_noise", "voronoi", "midpoint_displacement"} <= generator_types
        assert {"basic", "distance_weighted", "thermal", "hydraulic"} <= smoother_types

        hydraulic = next(s for s in data["smoothers"] if s["type"] == "hydraulic")
        assert hydraulic["requires_distance_field"]
        assert hydraulic["defaults"]["droplet_count"] == 50000

    def test_distance_field(self):
        protected = [[False, False, False], [False, True, False], [False, False, False]]

        response = self.client.post("/distance-field", json={"protected": protected})

        assert response.status_code == 200
        data = response.json()
        assert data["width"] == 3
        assert data["height"] == 3
        assert data["max_distance"] == 1
        assert data["distances"] == [[1, 1, 1], [1, 0, 1], [1, 1, 1]]

    def test_distance_field_unreachable_is_null(self):
        response = self.client.post("/distance-field", json={"protected": [[False, False]]})

        assert response.status_code == 200
        data = response.json()
        assert data["max_distance"] == 0
        assert data["distances"] == [[None, None]]

    def test_transform_uniform(self):
        heights = [[0.2] * 5 for _ in range(5)]
        preset = {
            "name": "Lift",
            "reset_free_region": False,
            "generators": [{"type": "uniform_height", "params": {"uniform_step": 0.1}}],
        }

        response = self.client.post(
            "/transform",
            json={"heights": heights, "protected": self.protected, "preset": preset},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == ["Uniform Height"]
        assert data["skipped"] == []
        assert data["heights"][2] == [0.2] * 5
        assert abs(data["heights"][0][0] - 0.3) < 1e-9

    def test_transform_reports_skipped_entries(self):
        preset = {
            "name": "Partial",
            "generators": [{"type": "terraces", "params": {}}],
            "smoothers": [{"type": "basic", "params": {"iterations": 1}}],
        }

        response = self.client.post(
            "/transform",
            json={"heights": [[0.5] * 5 for _ in range(5)], "protected": self.protected, "preset": preset},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == ["Basic Smoother"]
        assert data["skipped"] == [{"type": "terraces", "params": {}}]

    def test_transform_without_protection_rejects_distance_smoother(self):
        preset = {"name": "Needs Roads", "smoothers": [{"type": "distance_weighted", "params": {}}]}

        response = self.client.post(
            "/transform",
            json={"heights": [[0.5] * 4 for _ in range(4)], "preset": preset},
        )

        assert response.status_code == 400

    def test_ragged_rows_rejected(self):
        response = self.client.post(
            "/transform",
            json={"heights": [[0.1, 0.2], [0.3]], "preset": {"name": "x"}},
        )

        assert response.status_code == 422

    def test_mask_shape_mismatch_rejected(self):
        response = self.client.post(
            "/transform",
            json={"heights": [[0.1] * 5 for _ in range(5)], "protected": [[False] * 3], "preset": {}},
        )

        assert response.status_code == 422

    def test_grid_size_limit(self):
        with patch.object(settings, "max_grid_size", 4):
            response = self.client.post(
                "/distance-field", json={"protected": self.protected}
            )

        assert response.status_code == 413

    def test_list_presets(self, tmp_path):
        (tmp_path / "Hills.json").write_text(
            '{"name": "Hills", "generators": [{"type": "perlin_noise", "params": {}}]}'
        )

        with patch.object(settings, "preset_dir", str(tmp_path)):
            response = self.client.get("/presets")

        assert response.status_code == 200
        presets = response.json()["presets"]
        assert [p["name"] for p in presets] == ["Hills"]
        assert presets[0]["generators"][0]["type"] == "perlin_noise"

    def test_transform_persists_distance_field(self, tmp_path):
        preset = {"name": "Smooth", "smoothers": [{"type": "distance_weighted", "params": {}}]}

        with patch.object(settings, "distance_field_dir", str(tmp_path)):
            response = self.client.post(
                "/transform",
                json={
                    "heights": [[0.5] * 5 for _ in range(5)],
                    "protected": self.protected,
                    "preset": preset,
                    "persist_distance_field": True,
                },
            )

        assert response.status_code == 200
        assert len(list(tmp_path.glob("*_distance_field.dat"))) == 1

    def test_compute_endpoints_run_in_threadpool(self):
        # Sync endpoints are dispatched to the threadpool instead of the event loop
        assert not inspect.iscoroutinefunction(transform)
        assert not inspect.iscoroutinefunction(distance_field)

    def test_transform_skips_zero_amplitude_noise(self):
        preset = {
            "name": "Flat Noise",
            "generators": [{"type": "perlin_noise", "params": {"persistence": -1.0, "octaves": 2}}],
        }

        response = self.client.post(
            "/transform",
            json={"heights": [[0.5] * 5 for _ in range(5)], "protected": self.protected, "preset": preset},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == []
        assert data["skipped"] == preset["generators"]
