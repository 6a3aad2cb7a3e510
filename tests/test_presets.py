"""Tests for preset serialisation."""

import json

import pytest

from py_terrain.core.erosion import HydraulicErosion, ThermalErosion
from py_terrain.core.generators import (
    PerlinNoiseGenerator,
    RandomHeightGenerator,
    VoronoiGenerator,
    VoronoiType,
)
from py_terrain.core.pipeline import TerrainPreset
from py_terrain.core.presets import (
    generator_from_dict,
    generator_to_dict,
    load_preset,
    load_presets,
    preset_from_dict,
    preset_to_dict,
    save_preset,
    smoother_from_dict,
)
from py_terrain.core.smoothers import DistanceWeightedSmoother


class TestPresetSerialisation:
    """Test the type tag plus params form."""

    @pytest.fixture
    def preset(self):
        return TerrainPreset(
            name="Mountain Pass",
            generators=[
                PerlinNoiseGenerator(octaves=5, persistence=2.0),
                VoronoiGenerator(voronoi_type=VoronoiType.SIN_POWER, seed=3),
                RandomHeightGenerator(height_limits=(0.0, 0.1)),
            ],
            smoothers=[
                DistanceWeightedSmoother(use_linear_blending=True),
                ThermalErosion(road_aware=True),
                HydraulicErosion(droplet_count=2000),
            ],
            reset_free_region=False,
        )

    def test_generator_dict(self):
        data = generator_to_dict(PerlinNoiseGenerator(octaves=5))

        assert data["type"] == "perlin_noise"
        assert data["params"]["octaves"] == 5
        assert data["params"]["persistence"] == 8.0

    def test_round_trip(self, preset):
        data = json.loads(json.dumps(preset_to_dict(preset)))

        restored = preset_from_dict(data)

        assert restored.name == "Mountain Pass"
        assert not restored.reset_free_region
        assert [type(g) for g in restored.generators] == [type(g) for g in preset.generators]
        assert [type(s) for s in restored.smoothers] == [type(s) for s in preset.smoothers]
        for original, loaded in zip(preset.generators + preset.smoothers,
                                    restored.generators + restored.smoothers):
            assert loaded.options == original.options

    def test_missing_params_use_defaults(self):
        generator = generator_from_dict({"type": "voronoi", "params": {"peak_count": 2}})

        assert generator.options.peak_count == 2
        assert generator.options.fall_rate == 1.5
        assert generator.options.voronoi_type == VoronoiType.COMBINED

    def test_no_params_at_all(self):
        smoother = smoother_from_dict({"type": "hydraulic"})

        assert isinstance(smoother, HydraulicErosion)
        assert smoother.options.droplet_count == 50000

    def test_unknown_params_ignored(self):
        smoother = smoother_from_dict({"type": "thermal", "params": {"iterations": 3, "colour": "red"}})

        assert smoother.options.iterations == 3
        assert not hasattr(smoother.options, "colour")

    def test_params_clamped_on_load(self):
        smoother = smoother_from_dict({"type": "thermal", "params": {"erosion_rate": 4}})

        assert smoother.options.erosion_rate == 1.0

    def test_unknown_type_skipped(self):
        skipped = []
        data = {
            "name": "Partial",
            "generators": [
                {"type": "perlin_noise", "params": {}},
                {"type": "terraces", "params": {"steps": 4}},
            ],
            "smoothers": [{"type": "basic", "params": {"iterations": 2}}],
        }

        preset = preset_from_dict(data, skipped=skipped)

        assert len(preset.generators) == 1
        assert len(preset.smoothers) == 1
        assert skipped == [{"type": "terraces", "params": {"steps": 4}}]

    def test_invalid_params_skipped(self):
        assert generator_from_dict({"type": "perlin_noise", "params": {"octaves": "many"}}) is None

    def test_defaults_when_fields_missing(self):
        preset = preset_from_dict({})

        assert preset.name == "Unnamed Preset"
        assert preset.reset_free_region
        assert preset.generators == []
        assert preset.smoothers == []


class TestPresetFiles:
    """Test preset files on disk."""

    @pytest.fixture
    def preset(self):
        return TerrainPreset(name="Hills/Low Res", generators=[PerlinNoiseGenerator()])

    def test_save_and_load(self, tmp_path, preset):
        path = save_preset(preset, tmp_path)

        assert path.name == "Hills_Low_Res.json"
        loaded = load_preset(path)
        assert loaded.name == "Hills/Low Res"
        assert isinstance(loaded.generators[0], PerlinNoiseGenerator)

    def test_refuses_overwrite(self, tmp_path, preset):
        save_preset(preset, tmp_path)

        with pytest.raises(FileExistsError):
            save_preset(preset, tmp_path)

        save_preset(preset, tmp_path, overwrite=True)

    def test_load_directory_skips_broken_files(self, tmp_path, preset):
        save_preset(preset, tmp_path)
        save_preset(TerrainPreset(name="Flat"), tmp_path)
        (tmp_path / "broken.json").write_text("{not json")

        presets = load_presets(tmp_path)

        assert sorted(p.name for p in presets) == ["Flat", "Hills/Low Res"]

    def test_load_missing_directory(self, tmp_path):
        assert load_presets(tmp_path / "absent") == []


class TestPresetPackageExports:
    """Test the package level entry points."""

    def test_top_level_round_trip(self, tmp_path):
        import py_terrain

        preset = py_terrain.TerrainPreset(name="Top", smoothers=[py_terrain.ThermalErosion(iterations=3)])

        loaded = py_terrain.load_preset(py_terrain.save_preset(preset, tmp_path))

        assert loaded.smoothers[0].options.iterations == 3
        assert py_terrain.__version__ == "0.1.0"
