"""Height field generation and erosion around protected regions."""

__version__ = "0.1.0"

from .exceptions import (  # noqa: E402
    TerrainError,
    DistanceFieldRequiredError,
    DegenerateDistanceFieldError,
    DistanceFieldMismatchError,
    GridShapeError,
)
from .core import (  # noqa: E402
    DistanceField,
    DistanceFieldStore,
    compute_distance_field,
    GENERATOR_TYPES,
    SMOOTHER_TYPES,
    UniformHeightGenerator,
    RandomHeightGenerator,
    PerlinNoiseGenerator,
    VoronoiGenerator,
    MidpointDisplacementGenerator,
    BasicSmoother,
    DistanceWeightedSmoother,
    DistanceBasedSmoother,
    AdaptiveSmoother,
    ThermalErosion,
    HydraulicErosion,
    TerrainPipeline,
    TerrainPreset,
    load_preset,
    save_preset,
)

__all__ = ['__version__',
           'TerrainError', 'DistanceFieldRequiredError', 'DegenerateDistanceFieldError',
           'DistanceFieldMismatchError', 'GridShapeError',
           'DistanceField', 'DistanceFieldStore', 'compute_distance_field',
           'GENERATOR_TYPES', 'SMOOTHER_TYPES',
           'UniformHeightGenerator', 'RandomHeightGenerator', 'PerlinNoiseGenerator',
           'VoronoiGenerator', 'MidpointDisplacementGenerator',
           'BasicSmoother', 'DistanceWeightedSmoother', 'DistanceBasedSmoother', 'AdaptiveSmoother',
           'ThermalErosion', 'HydraulicErosion',
           'TerrainPipeline', 'TerrainPreset', 'load_preset', 'save_preset']
