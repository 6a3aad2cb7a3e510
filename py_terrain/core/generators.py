"""
Height field generators.

Each generator adds elevation to the free region of a (H, W) height field in
place. Protected cells are never written. Generators that draw random numbers
create one generator per call from their `seed` option (0 = unseeded) and
draw in row-major order, so a fixed seed reproduces the same output.

Available generators:
- UniformHeightGenerator: constant shift, or floor renormalisation
- RandomHeightGenerator: independent uniform noise per cell
- PerlinNoiseGenerator: fractal Brownian motion
- VoronoiGenerator: cone shaped peaks with max-accumulation
- MidpointDisplacementGenerator: diamond-square fractal terrain
"""

import math
from enum import Enum
from typing import Dict, Optional, Tuple, Type

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.grid import FreePredicate, check_shape, free_mask
from ..utils.random import make_rng
from .noise import fbm_grid

logger = structlog.get_logger()


class GeneratorOptions(BaseModel):
    """Base class for generator parameter records."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class TerrainGenerator:
    """Base class for all generators."""

    name: str = "Generator"
    type_tag: str = ""
    options_class: Type[GeneratorOptions] = GeneratorOptions

    def __init__(self, options: Optional[GeneratorOptions] = None, **overrides):
        if options is None:
            options = self.options_class(**overrides)
        elif overrides:
            options = self.options_class.model_validate({**options.model_dump(), **overrides})
        self.options = options

    def generate(
        self, heights: np.ndarray, width: int, height: int, is_free: FreePredicate
    ) -> None:
        raise NotImplementedError

    def clone(self) -> "TerrainGenerator":
        return type(self)(self.options.model_copy(deep=True))

    def __repr__(self):
        return f"{type(self).__name__}({self.options!r})"


# ---------------------------------------------------------------------------
# Uniform / random
# ---------------------------------------------------------------------------


class UniformHeightOptions(GeneratorOptions):
    uniform_step: float = Field(default=0.1, description="Constant added to every free cell")
    normalize_floor: bool = Field(
        default=False, description="Subtract the free-region minimum instead of adding the step"
    )


class UniformHeightGenerator(TerrainGenerator):
    """Shift the free region by a constant, or drop its floor to zero."""

    name = "Uniform Height"
    type_tag = "uniform_height"
    options_class = UniformHeightOptions

    def generate(self, heights, width, height, is_free):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        if not free.any():
            return

        if self.options.normalize_floor:
            floor = heights[free].min()
            heights[free] -= floor
            logger.debug("Free region floor normalised", floor=float(floor))
        else:
            heights[free] += self.options.uniform_step


class RandomHeightOptions(GeneratorOptions):
    height_limits: Tuple[float, float] = Field(
        default=(0.0, 0.5), description="Lower and upper bound of the added value"
    )
    seed: int = Field(default=0, description="Random seed, 0 for unseeded")


class RandomHeightGenerator(TerrainGenerator):
    """Add an independent uniform random value to every free cell."""

    name = "Random Height"
    type_tag = "random_height"
    options_class = RandomHeightOptions

    def generate(self, heights, width, height, is_free):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        rng = make_rng(self.options.seed)
        low, high = self.options.height_limits
        heights[free] += rng.uniform(low, high, size=int(free.sum()))


# ---------------------------------------------------------------------------
# Perlin
# ---------------------------------------------------------------------------


class PerlinNoiseOptions(GeneratorOptions):
    x_frequency: float = Field(default=0.005, description="Noise frequency along x")
    y_frequency: float = Field(default=0.005, description="Noise frequency along y")
    x_offset: float = Field(default=0.0, description="Sample offset along x")
    y_offset: float = Field(default=0.0, description="Sample offset along y")
    octaves: int = Field(default=3, description="Number of fBM octaves")
    persistence: float = Field(default=8.0, gt=0, description="Per-octave amplitude multiplier")
    amplitude: float = Field(default=0.3, description="Scale of the added height")

    @field_validator("octaves")
    @classmethod
    def _min_octaves(cls, v):
        return max(1, v)


def _perlin_layer(width: int, height: int, options) -> np.ndarray:
    xs = (np.arange(width) + options.x_offset) * options.x_frequency
    ys = (np.arange(height) + options.y_offset) * options.y_frequency
    return fbm_grid(xs, ys, options.octaves, options.persistence)


class PerlinNoiseGenerator(TerrainGenerator):
    """Add fBM noise scaled by `amplitude` to every free cell."""

    name = "Perlin Noise"
    type_tag = "perlin_noise"
    options_class = PerlinNoiseOptions

    def generate(self, heights, width, height, is_free):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        noise = _perlin_layer(width, height, self.options)
        heights[free] += noise[free] * self.options.amplitude


# ---------------------------------------------------------------------------
# Voronoi
# ---------------------------------------------------------------------------


class VoronoiType(str, Enum):
    LINEAR = "linear"
    POWER = "power"
    COMBINED = "combined"
    SIN_POWER = "sin_power"
    PERLIN = "perlin"


class PerlinModulation(BaseModel):
    """Noise parameters for the perlin-modulated Voronoi profile."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    x_frequency: float = 0.005
    y_frequency: float = 0.005
    x_offset: float = 0.0
    y_offset: float = 0.0
    octaves: int = 3
    persistence: float = Field(default=8.0, gt=0)
    amplitude: float = 0.3

    @field_validator("octaves")
    @classmethod
    def _min_octaves(cls, v):
        return max(1, v)


class VoronoiOptions(GeneratorOptions):
    peak_count: int = Field(default=6, description="Number of peaks to place")
    fall_rate: float = Field(default=1.5, description="Slope of the falloff profile")
    drop_off: float = Field(default=7.0, description="Exponent or divisor of the falloff profile")
    min_height: float = Field(default=0.3, description="Lowest peak height")
    max_height: float = Field(default=0.5, description="Highest peak height")
    voronoi_type: VoronoiType = Field(default=VoronoiType.COMBINED, description="Falloff profile")
    perlin: PerlinModulation = Field(default_factory=PerlinModulation)
    seed: int = Field(default=0, description="Random seed, 0 for unseeded")

    @field_validator("peak_count")
    @classmethod
    def _non_negative(cls, v):
        return max(0, v)


class VoronoiGenerator(TerrainGenerator):
    """
    Place random peaks and raise the terrain around them.

    A peak lower than the terrain already at its location is skipped so peaks
    never carve divots. Cells are only ever raised, so the result depends on
    what earlier generators left behind.
    """

    name = "Voronoi"
    type_tag = "voronoi"
    options_class = VoronoiOptions

    def _profile(self, peak_height: float, d: np.ndarray, fbm_values: Optional[np.ndarray]):
        opts = self.options
        kind = opts.voronoi_type

        if kind == VoronoiType.COMBINED:
            return peak_height - d * opts.fall_rate - np.power(d, opts.drop_off)
        if kind == VoronoiType.POWER:
            return peak_height - np.power(d, opts.drop_off) * opts.fall_rate
        if kind == VoronoiType.SIN_POWER:
            return (
                peak_height
                - np.power(d * 3.0, opts.fall_rate)
                - np.sin(d * 2.0 * math.pi) / opts.drop_off
            )
        if kind == VoronoiType.PERLIN:
            return peak_height - d * opts.fall_rate * fbm_values * opts.perlin.amplitude
        return (peak_height - d) * opts.fall_rate

    def generate(self, heights, width, height, is_free):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options
        rng = make_rng(opts.seed)

        max_distance = math.hypot(width, height)
        xs = np.arange(width, dtype=np.float64)[np.newaxis, :]
        ys = np.arange(height, dtype=np.float64)[:, np.newaxis]

        fbm_values = None
        if opts.voronoi_type == VoronoiType.PERLIN:
            fbm_values = _perlin_layer(width, height, opts.perlin)

        placed = 0
        for i in range(opts.peak_count):
            px = int(rng.integers(0, width))
            peak_height = float(rng.uniform(opts.min_height, opts.max_height))
            py = int(rng.integers(0, height))

            if heights[py, px] < peak_height:
                if free[py, px]:
                    heights[py, px] = peak_height
            else:
                continue

            d = np.hypot(xs - px, ys - py) / max_distance
            with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
                candidate = self._profile(peak_height, d, fbm_values)
            candidate[py, px] = -np.inf

            raise_mask = free & (candidate > heights)
            heights[raise_mask] = candidate[raise_mask]
            placed += 1

            logger.debug("Voronoi peak placed", peak=i + 1, total=opts.peak_count, x=px, y=py)

        logger.info("Voronoi peaks generated", placed=placed, requested=opts.peak_count)


# ---------------------------------------------------------------------------
# Midpoint displacement
# ---------------------------------------------------------------------------


def _next_power_of_two(value: int) -> int:
    if value <= 1:
        return 1
    return 1 << (value - 1).bit_length()


class MidpointDisplacementOptions(GeneratorOptions):
    min_height: float = Field(default=0.0, description="Lower bound of the generated range")
    max_height: float = Field(default=1.0, description="Upper bound of the generated range")
    roughness: float = Field(default=0.5, description="Random range decay per level (0.1 - 1)")
    initial_random_range: float = Field(
        default=0.5, description="Corner randomness as a fraction of the range (0 - 1)"
    )
    normalize: bool = Field(default=True, description="Stretch the result to [min, max]")
    seed: int = Field(default=0, description="Random seed, 0 for unseeded")
    absolute_random: bool = Field(
        default=False, description="Offsets in [0, r] instead of [-r/2, r/2]"
    )
    use_terrain_for_protected: bool = Field(
        default=True, description="Average protected neighbours from the real height field"
    )
    displacement_strength: float = Field(
        default=1.0, description="Scale applied when adding the result to the height field"
    )

    @field_validator("roughness")
    @classmethod
    def _clamp_roughness(cls, v):
        return min(1.0, max(0.1, v))

    @field_validator("initial_random_range")
    @classmethod
    def _clamp_initial_range(cls, v):
        return min(1.0, max(0.0, v))


class MidpointDisplacementGenerator(TerrainGenerator):
    """
    Diamond-square terrain.

    The algorithm runs in a zeroed working buffer over the largest
    power-of-two-plus-one square that fits the grid. Protected cells are
    never displaced; when `use_terrain_for_protected` is set their real
    height (scaled by the height range) feeds the averages so the fractal
    lines up with them. The finished buffer is normalised or clamped over
    the free cells and added to the height field.
    """

    name = "Midpoint Displacement"
    type_tag = "midpoint_displacement"
    options_class = MidpointDisplacementOptions

    def _offset(self, rng: np.random.Generator, spread: float) -> float:
        if self.options.absolute_random:
            return rng.random() * spread
        return (rng.random() * 2.0 - 1.0) * (spread / 2.0)

    def generate(self, heights, width, height, is_free):
        check_shape(heights, width, height)
        opts = self.options
        free = free_mask(is_free, width, height)

        size = _next_power_of_two(min(width, height) - 1)
        if size <= 1 or not free.any():
            logger.info("Midpoint displacement skipped", width=width, height=height, size=size)
            return

        rng = make_rng(opts.seed)
        height_range = opts.max_height - opts.min_height
        work = np.zeros((height, width), dtype=np.float64)

        use_terrain = opts.use_terrain_for_protected

        def sample(x, y):
            if use_terrain and not free[y, x]:
                return float(heights[y, x]) * height_range
            return work[y, x]

        corner_spread = opts.initial_random_range * height_range
        mid_value = opts.min_height + height_range * 0.5
        cx_max = min(size, width - 1)
        cy_max = min(size, height - 1)
        for x, y in ((0, 0), (0, cy_max), (cx_max, 0), (cx_max, cy_max)):
            if free[y, x]:
                work[y, x] = mid_value + self._offset(rng, corner_spread)

        square = size
        spread = corner_spread
        while square > 1:
            half = square // 2

            # Square centres: average of the four corners
            for y in range(half, height, square):
                y1 = max(y - half, 0)
                y2 = min(y + half, height - 1)
                for x in range(half, width, square):
                    if not free[y, x]:
                        continue
                    x1 = max(x - half, 0)
                    x2 = min(x + half, width - 1)
                    avg = (sample(x1, y1) + sample(x2, y1) + sample(x1, y2) + sample(x2, y2)) / 4.0
                    work[y, x] = avg + self._offset(rng, spread)

            # Diamond midpoints: average of the in-bounds axis neighbours
            for y in range(0, height, half):
                start = half if y % square == 0 else 0
                for x in range(start, width, square):
                    if not free[y, x]:
                        continue
                    total = 0.0
                    count = 0
                    if y - half >= 0:
                        total += sample(x, y - half)
                        count += 1
                    if y + half < height:
                        total += sample(x, y + half)
                        count += 1
                    if x - half >= 0:
                        total += sample(x - half, y)
                        count += 1
                    if x + half < width:
                        total += sample(x + half, y)
                        count += 1
                    if count:
                        work[y, x] = total / count + self._offset(rng, spread)

            spread *= 2.0 ** (-opts.roughness)
            square = half

        values = work[free]
        actual_min = values.min()
        actual_max = values.max()
        if opts.normalize and actual_min < actual_max:
            values = opts.min_height + (values - actual_min) / (actual_max - actual_min) * height_range
        else:
            values = np.clip(values, opts.min_height, opts.max_height)

        heights[free] += values * opts.displacement_strength
        logger.info(
            "Midpoint displacement generated",
            size=size,
            raw_min=float(actual_min),
            raw_max=float(actual_max),
        )


GENERATOR_TYPES: Dict[str, Type[TerrainGenerator]] = {
    cls.type_tag: cls
    for cls in (
        UniformHeightGenerator,
        RandomHeightGenerator,
        PerlinNoiseGenerator,
        VoronoiGenerator,
        MidpointDisplacementGenerator,
    )
}
