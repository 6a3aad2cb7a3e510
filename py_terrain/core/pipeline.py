"""
Preset execution.

A preset is an ordered list of generators followed by an ordered list of
smoothers. The pipeline owns the distance field for one protection mask and
resolution, runs the preset against a working copy of the height field and
writes the result back only once every pass has succeeded.

Order matters: Voronoi peaks only raise terrain, so running them before or
after other generators gives different results.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import structlog

from ..exceptions import DistanceFieldRequiredError
from ..utils.grid import FreePredicate, check_shape, free_mask
from .distance_field import DistanceField, DistanceFieldStore, compute_distance_field, mask_key
from .generators import TerrainGenerator
from .smoothers import TerrainSmoother

logger = structlog.get_logger()


@dataclass
class TerrainPreset:
    """Named, ordered set of generator and smoother passes."""

    name: str
    generators: List[TerrainGenerator] = field(default_factory=list)
    smoothers: List[TerrainSmoother] = field(default_factory=list)
    reset_free_region: bool = True

    def clone(self) -> "TerrainPreset":
        return TerrainPreset(
            name=self.name,
            generators=[g.clone() for g in self.generators],
            smoothers=[s.clone() for s in self.smoothers],
            reset_free_region=self.reset_free_region,
        )

    @property
    def requires_distance_field(self) -> bool:
        return any(s.requires_distance_field for s in self.smoothers)


class TerrainPipeline:
    """Runs generators and smoothers over a height field for a fixed protection mask."""

    def __init__(
        self,
        width: int,
        height: int,
        is_free: FreePredicate,
        store: Optional[DistanceFieldStore] = None,
        key: Optional[str] = None,
        auto_compute_distance_field: bool = True,
    ):
        """
        Initialize the pipeline.

        Args:
            width: Grid width
            height: Grid height
            is_free: Protection predicate or boolean free mask
            store: Optional persistent distance field cache
            key: Store key, derived from the mask when omitted
            auto_compute_distance_field: Compute the field on first use
        """
        self.width = width
        self.height = height
        self.free = free_mask(is_free, width, height)
        self.store = store
        self.key = key or mask_key(self.free)
        self.auto_compute_distance_field = auto_compute_distance_field
        self._distance_field: Optional[DistanceField] = None

    @property
    def distance_field(self) -> Optional[DistanceField]:
        if self._distance_field is None and self.auto_compute_distance_field:
            self.calculate_distance_field()
        return self._distance_field

    @distance_field.setter
    def distance_field(self, value: Optional[DistanceField]):
        if value is not None:
            check_shape(value.values, self.width, self.height, "distance field")
        self._distance_field = value

    def calculate_distance_field(self, force: bool = False) -> DistanceField:
        """Load the field from the store, or compute (and store) it."""
        if not force and self._distance_field is not None:
            return self._distance_field

        result = None
        if self.store is not None and not force:
            result = self.store.load(self.key, self.width, self.height)

        if result is None:
            result = compute_distance_field(self.width, self.height, self.free)
            if self.store is not None:
                self.store.save(self.key, result)

        self._distance_field = result
        return result

    def invalidate_distance_field(self) -> None:
        self._distance_field = None
        if self.store is not None:
            self.store.invalidate(self.key)

    def reset(self, heights: np.ndarray) -> None:
        """Zero the free region; protected cells keep their heights."""
        check_shape(heights, self.width, self.height)
        heights[self.free] = 0.0

    def _field_for(self, smoother: TerrainSmoother) -> Optional[DistanceField]:
        if not smoother.requires_distance_field:
            return self._distance_field

        result = self.distance_field
        if result is None:
            raise DistanceFieldRequiredError(
                f"{smoother.name} requires a distance field; calculate it first"
            )
        result.normalized()
        return result

    def _commit(self, heights: np.ndarray, work: np.ndarray) -> None:
        heights[self.free] = work[self.free]

    def apply_generator(self, heights: np.ndarray, generator: TerrainGenerator) -> None:
        check_shape(heights, self.width, self.height)
        work = heights.copy()
        generator.generate(work, self.width, self.height, self.free)
        self._commit(heights, work)
        logger.info("Generator applied", generator=generator.name)

    def apply_smoother(self, heights: np.ndarray, smoother: TerrainSmoother) -> None:
        check_shape(heights, self.width, self.height)
        distance_field = self._field_for(smoother)
        work = heights.copy()
        smoother.smooth(work, self.width, self.height, self.free, distance_field)
        self._commit(heights, work)
        logger.info("Smoother applied", smoother=smoother.name)

    def run(self, heights: np.ndarray, preset: TerrainPreset) -> List[str]:
        """
        Apply a whole preset.

        The distance field is validated before any pass runs, so a preset
        that cannot complete leaves `heights` untouched.

        Returns:
            Names of the applied passes in order
        """
        check_shape(heights, self.width, self.height)
        fields = [self._field_for(s) for s in preset.smoothers]

        work = heights.copy()
        if preset.reset_free_region:
            work[self.free] = 0.0

        applied = []
        for generator in preset.generators:
            generator.generate(work, self.width, self.height, self.free)
            applied.append(generator.name)
            logger.debug("Generator applied", preset=preset.name, generator=generator.name)

        for smoother, distance_field in zip(preset.smoothers, fields):
            smoother.smooth(work, self.width, self.height, self.free, distance_field)
            applied.append(smoother.name)
            logger.debug("Smoother applied", preset=preset.name, smoother=smoother.name)

        self._commit(heights, work)
        logger.info("Preset applied", preset=preset.name, passes=len(applied))
        return applied
