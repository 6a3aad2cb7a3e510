"""
Core height field transformation engine.
"""

from .distance_field import (
    SENTINEL,
    DistanceField,
    DistanceFieldStore,
    compute_distance_field,
    mask_key,
)
from .noise import fbm, fbm_grid
from .generators import (
    GENERATOR_TYPES,
    TerrainGenerator,
    UniformHeightGenerator,
    RandomHeightGenerator,
    PerlinNoiseGenerator,
    VoronoiGenerator,
    VoronoiType,
    MidpointDisplacementGenerator,
)
from .smoothers import (
    TerrainSmoother,
    BasicSmoother,
    DistanceWeightedSmoother,
    DistanceBasedSmoother,
    AdaptiveSmoother,
)
from .erosion import SMOOTHER_TYPES, ThermalErosion, HydraulicErosion
from .pipeline import TerrainPipeline, TerrainPreset
from .presets import load_preset, load_presets, preset_from_dict, preset_to_dict, save_preset
from .visualization import render_distance_field, save_distance_field_image

__all__ = ['SENTINEL', 'DistanceField', 'DistanceFieldStore', 'compute_distance_field', 'mask_key',
           'fbm', 'fbm_grid',
           'GENERATOR_TYPES', 'TerrainGenerator', 'UniformHeightGenerator', 'RandomHeightGenerator',
           'PerlinNoiseGenerator', 'VoronoiGenerator', 'VoronoiType', 'MidpointDisplacementGenerator',
           'SMOOTHER_TYPES', 'TerrainSmoother', 'BasicSmoother', 'DistanceWeightedSmoother',
           'DistanceBasedSmoother', 'AdaptiveSmoother', 'ThermalErosion', 'HydraulicErosion',
           'TerrainPipeline', 'TerrainPreset',
           'load_preset', 'load_presets', 'preset_from_dict', 'preset_to_dict', 'save_preset',
           'render_distance_field', 'save_distance_field_image']
