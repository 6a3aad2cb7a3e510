"""
Smoothing passes over the free region of a height field.

Every pass reads from a snapshot taken at the start of the iteration, so
updates inside one iteration never see each other. Smoothers that need the
distance-to-protected field declare it with `requires_distance_field` and
refuse to run without a usable one before touching the height field.
"""

from typing import Dict, Optional, Type

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..exceptions import DistanceFieldRequiredError
from ..utils.grid import (
    NEIGHBOR_OFFSETS,
    FreePredicate,
    check_shape,
    free_mask,
    local_mean,
    local_std,
    neighbor_counts,
    offset_slices,
)
from .distance_field import DistanceField

logger = structlog.get_logger()

# Cells whose smoothing factor falls below this are left alone
NEGLIGIBLE_FACTOR = 0.01


class SmootherOptions(BaseModel):
    """Base class for smoother parameter records."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


class TerrainSmoother:
    """Base class for smoothers and erosion passes."""

    name: str = "Smoother"
    type_tag: str = ""
    requires_distance_field: bool = False
    options_class: Type[SmootherOptions] = SmootherOptions

    def __init__(self, options: Optional[SmootherOptions] = None, **overrides):
        if options is None:
            options = self.options_class(**overrides)
        elif overrides:
            options = self.options_class.model_validate({**options.model_dump(), **overrides})
        self.options = options

    def smooth(
        self,
        heights: np.ndarray,
        width: int,
        height: int,
        is_free: FreePredicate,
        distance_field: Optional[DistanceField] = None,
    ) -> None:
        raise NotImplementedError

    def clone(self) -> "TerrainSmoother":
        return type(self)(self.options.model_copy(deep=True))

    def _normalized_distances(
        self, distance_field: Optional[DistanceField], width: int, height: int
    ) -> np.ndarray:
        """
        Validate the distance field and return it normalised to [0, 1].

        Raises:
            DistanceFieldRequiredError: No field was given
            DegenerateDistanceFieldError: Field cannot be normalised
            GridShapeError: Field does not match the grid
        """
        if distance_field is None:
            raise DistanceFieldRequiredError(f"{self.name} requires a distance field")
        check_shape(distance_field.values, width, height, "distance field")
        return distance_field.normalized()

    def __repr__(self):
        return f"{type(self).__name__}({self.options!r})"


def _weighted_average(snapshot: np.ndarray, self_weight: np.ndarray, neighbor_weight) -> np.ndarray:
    """
    Weighted mean of every cell and its in-bounds 8-neighbours.

    Args:
        snapshot: Heights to average
        self_weight: Weight of the centre cell, shape (H, W)
        neighbor_weight: Callable (src, dst) -> weight array for the neighbours
            selected by offset_slices
    """
    height, width = snapshot.shape
    total_weight = self_weight.astype(np.float64, copy=True)
    accumulated = snapshot * self_weight

    for dx, dy in NEIGHBOR_OFFSETS:
        src, dst = offset_slices(dx, dy, width, height)
        weight = neighbor_weight(src, dst)
        total_weight[src] += weight
        accumulated[src] += snapshot[dst] * weight

    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(total_weight > 0, accumulated / total_weight, snapshot)


class BasicSmootherOptions(SmootherOptions):
    iterations: int = Field(default=1, description="Number of smoothing passes (at least 1)")

    @field_validator("iterations")
    @classmethod
    def _min_iterations(cls, v):
        return max(1, v)


class BasicSmoother(TerrainSmoother):
    """Replace each free cell with the mean of itself and its neighbours."""

    name = "Basic Smoother"
    type_tag = "basic"
    options_class = BasicSmootherOptions

    def smooth(self, heights, width, height, is_free, distance_field=None):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        counts = neighbor_counts(width, height)

        for _ in range(self.options.iterations):
            snapshot = heights.astype(np.float64)
            averaged = local_mean(snapshot, counts)
            heights[free] = averaged[free]

        logger.debug("Basic smoothing completed", iterations=self.options.iterations)


class DistanceWeightedSmootherOptions(SmootherOptions):
    base_smoothing: float = Field(default=1.0, description="Smoothing strength at protected cells")
    iterations: int = Field(default=1, description="Number of smoothing passes (at least 1)")
    distance_falloff: float = Field(default=0.5, description="Power-law exponent of the falloff")
    use_distance_threshold: bool = Field(
        default=True, description="Keep a near-constant plateau below the threshold"
    )
    distance_threshold: float = Field(default=0.4, description="Plateau end, normalised distance")
    road_proximity_weight: float = Field(
        default=3.0, description="Weight multiplier for neighbours closer to protected cells"
    )
    preserve_detail: bool = Field(default=True, description="Smooth high-variance cells less")
    detail_preservation: float = Field(default=0.5, description="Strength of detail preservation")
    min_smoothing_factor: float = Field(default=0.05, description="Lower bound of the factor")
    use_linear_blending: bool = Field(
        default=False, description="Blend the average with the original height"
    )
    min_blend_factor: float = Field(default=0.25, description="Blend used for maximum detail")

    @field_validator("iterations")
    @classmethod
    def _min_iterations(cls, v):
        return max(1, v)

    @field_validator("distance_threshold", "detail_preservation", "min_smoothing_factor")
    @classmethod
    def _clamp01(cls, v):
        return min(1.0, max(0.0, v))

    @field_validator("road_proximity_weight")
    @classmethod
    def _min_road_weight(cls, v):
        return max(1.0, v)

    @field_validator("min_blend_factor")
    @classmethod
    def _clamp_blend(cls, v):
        return min(1.0, max(0.25, v))


class DistanceWeightedSmoother(TerrainSmoother):
    """
    Smooth strongly near protected cells and fade out with distance.

    The smoothing factor follows a plateau below `distance_threshold` and a
    power-law falloff beyond it. Neighbours closer to a protected cell than
    the centre get `road_proximity_weight` times the weight, which pulls the
    terrain toward the protected heights. Local variance, measured once
    before the first pass, reduces the factor on detailed terrain.
    """

    name = "Distance Weighted Smoother"
    type_tag = "distance_weighted"
    requires_distance_field = True
    options_class = DistanceWeightedSmootherOptions

    def smoothing_factors(self, normalized: np.ndarray) -> np.ndarray:
        opts = self.options
        base = opts.base_smoothing

        if not opts.use_distance_threshold:
            return base * np.power(np.clip(1.0 - normalized, 0.0, None), opts.distance_falloff)

        threshold = opts.distance_threshold
        factors = np.empty_like(normalized)
        near = normalized < threshold
        if threshold > 0:
            factors[near] = base * (0.8 + 0.2 * (1.0 - normalized[near] / threshold))

        far = ~near
        if threshold < 1.0:
            effective = (normalized[far] - threshold) / (1.0 - threshold)
        else:
            effective = np.zeros(int(far.sum()))
        factors[far] = base * np.power(np.clip(1.0 - effective, 0.0, None), opts.distance_falloff)
        return factors

    def smooth(self, heights, width, height, is_free, distance_field=None):
        normalized = self._normalized_distances(distance_field, width, height)
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options
        raw = distance_field.values

        factors = self.smoothing_factors(normalized)

        detail = np.ones_like(normalized)
        if opts.preserve_detail:
            variation = local_std(heights)
            max_variation = variation.max()
            if max_variation > 0:
                detail = 1.0 - (variation / max_variation) * opts.detail_preservation

        factors = np.maximum(factors * detail, opts.min_smoothing_factor)
        active = free & (factors >= NEGLIGIBLE_FACTOR)

        def neighbor_weight(src, dst):
            closer = raw[dst] < raw[src]
            return factors[src] * np.where(closer, opts.road_proximity_weight, 1.0)

        blend = opts.min_blend_factor + (1.0 - opts.min_blend_factor) * detail

        for iteration in range(opts.iterations):
            snapshot = heights.astype(np.float64)
            averaged = _weighted_average(snapshot, factors, neighbor_weight)
            if opts.use_linear_blending:
                averaged = snapshot + (averaged - snapshot) * blend
            heights[active] = averaged[active]
            logger.debug("Distance weighted smoothing pass", iteration=iteration + 1, total=opts.iterations)

        logger.info(
            "Distance weighted smoothing completed",
            iterations=opts.iterations,
            cells=int(active.sum()),
        )


class DistanceBasedSmootherOptions(SmootherOptions):
    base_smoothing: float = Field(default=1.0, description="Smoothing strength at protected cells")
    distance_falloff: float = Field(default=0.5, description="Power-law exponent of the falloff")
    iterations: int = Field(default=1, description="Number of smoothing passes (at least 1)")

    @field_validator("iterations")
    @classmethod
    def _min_iterations(cls, v):
        return max(1, v)


class DistanceBasedSmoother(TerrainSmoother):
    """Power-law falloff smoothing where neighbours are weighted by their own distance."""

    name = "Distance Based Smoother"
    type_tag = "distance_based"
    requires_distance_field = True
    options_class = DistanceBasedSmootherOptions

    def smooth(self, heights, width, height, is_free, distance_field=None):
        normalized = self._normalized_distances(distance_field, width, height)
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options

        falloff = np.power(np.clip(1.0 - normalized, 0.0, None), opts.distance_falloff)
        factors = opts.base_smoothing * falloff
        active = free & (factors >= NEGLIGIBLE_FACTOR)

        def neighbor_weight(src, dst):
            return factors[src] * falloff[dst]

        for _ in range(opts.iterations):
            snapshot = heights.astype(np.float64)
            averaged = _weighted_average(snapshot, factors, neighbor_weight)
            heights[active] = averaged[active]

        logger.info("Distance based smoothing completed", iterations=opts.iterations, cells=int(active.sum()))


class AdaptiveSmootherOptions(SmootherOptions):
    base_smoothing: float = Field(default=1.0, description="Smoothing strength at protected cells")
    distance_falloff: float = Field(default=0.5, description="Power-law exponent of the falloff")
    detail_preservation: float = Field(default=0.5, description="Strength of detail preservation")
    iterations: int = Field(default=1, description="Number of smoothing passes (at least 1)")

    @field_validator("detail_preservation")
    @classmethod
    def _clamp01(cls, v):
        return min(1.0, max(0.0, v))

    @field_validator("iterations")
    @classmethod
    def _min_iterations(cls, v):
        return max(1, v)


class AdaptiveSmoother(TerrainSmoother):
    """
    Distance falloff smoothing that backs off on detailed terrain.

    Local variance is re-measured before every pass and the averaged height
    is blended with the original by lerp(0.25, 1, detail).
    """

    name = "Adaptive Smoother"
    type_tag = "adaptive"
    requires_distance_field = True
    options_class = AdaptiveSmootherOptions

    def smooth(self, heights, width, height, is_free, distance_field=None):
        normalized = self._normalized_distances(distance_field, width, height)
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options

        falloff = np.power(np.clip(1.0 - normalized, 0.0, None), opts.distance_falloff)

        for _ in range(opts.iterations):
            snapshot = heights.astype(np.float64)

            variation = local_std(snapshot)
            max_variation = variation.max()
            if max_variation > 0:
                detail = 1.0 - (variation / max_variation) * opts.detail_preservation
            else:
                detail = np.ones_like(snapshot)

            factors = opts.base_smoothing * detail * falloff
            active = free & (factors >= NEGLIGIBLE_FACTOR)

            averaged = _weighted_average(snapshot, factors, lambda src, dst: factors[src])
            blend = 0.25 + 0.75 * detail
            blended = snapshot + (averaged - snapshot) * blend
            heights[active] = blended[active]

        logger.info("Adaptive smoothing completed", iterations=opts.iterations)


# Erosion passes register themselves from the erosion module
SMOOTHER_TYPES: Dict[str, Type[TerrainSmoother]] = {
    cls.type_tag: cls
    for cls in (
        BasicSmoother,
        DistanceWeightedSmoother,
        DistanceBasedSmoother,
        AdaptiveSmoother,
    )
}
