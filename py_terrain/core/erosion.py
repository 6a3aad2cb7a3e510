"""
Erosion passes.

This module implements:
- Thermal (talus) erosion, optionally tightened near protected cells
- Hydraulic erosion with simulated water droplets carrying sediment

Both only ever write free cells. Thermal erosion moves material between
free neighbours and never creates or destroys any.
"""

import math
from typing import Optional

import numpy as np
import structlog
from pydantic import Field, field_validator

from ..utils.grid import (
    NEIGHBOR_OFFSETS,
    check_shape,
    find_nearest_protected,
    free_mask,
    offset_slices,
)
from ..utils.random import make_rng
from .distance_field import DistanceField, compute_distance_field
from .smoothers import SMOOTHER_TYPES, SmootherOptions, TerrainSmoother

logger = structlog.get_logger()

# Early stop when the largest transfer of an iteration is below this share of the height range
EARLY_STOP_FRACTION = 1e-4

# Droplets die once their water drops below this
MIN_WATER = 0.01

DROPLET_PROGRESS_INTERVAL = 1000


def _clamp01(v):
    return min(1.0, max(0.0, v))


class ThermalErosionOptions(SmootherOptions):
    iterations: int = Field(default=25, description="Maximum number of passes (at least 1)")
    talus: float = Field(default=0.01, description="Height difference tolerated between neighbours")
    erosion_rate: float = Field(default=0.5, description="Share of the excess moved per pass")
    auto_adjust_talus: bool = Field(
        default=False, description="Halve the steepest slope into the talus when terrain is flatter"
    )
    road_aware: bool = Field(default=False, description="Tighten slopes near protected cells")
    road_influence_radius: int = Field(default=8, description="Reach of the road effect in cells")
    road_talus_factor: float = Field(
        default=0.25, description="Talus multiplier right next to a protected cell"
    )
    road_rate_boost: float = Field(
        default=0.5, description="Extra erosion rate right next to a protected cell"
    )

    @field_validator("iterations", "road_influence_radius")
    @classmethod
    def _at_least_one(cls, v):
        return max(1, v)

    @field_validator("talus")
    @classmethod
    def _min_talus(cls, v):
        return max(0.0001, v)

    @field_validator("erosion_rate", "road_talus_factor")
    @classmethod
    def _unit_interval(cls, v):
        return _clamp01(v)

    @field_validator("road_rate_boost")
    @classmethod
    def _non_negative(cls, v):
        return max(0.0, v)


class ThermalErosion(TerrainSmoother):
    """
    Talus erosion.

    For each free cell and each free neighbour lower by more than the talus,
    `(difference - talus) * erosion_rate` is moved downhill. All transfers of
    a pass are computed from the heights at the start of the pass.
    """

    name = "Thermal Erosion"
    type_tag = "thermal"
    options_class = ThermalErosionOptions

    def _road_proximity(
        self, free: np.ndarray, distance_field: Optional[DistanceField]
    ) -> np.ndarray:
        """1 next to a protected cell, falling linearly to 0 at the influence radius."""
        height, width = free.shape
        radius = self.options.road_influence_radius

        if distance_field is not None and distance_field.values.shape == free.shape:
            distances = distance_field.values
        else:
            distances = compute_distance_field(width, height, free, max_distance=radius).values

        reach = np.minimum(distances.astype(np.float64), float(radius))
        return 1.0 - reach / radius

    def smooth(self, heights, width, height, is_free, distance_field=None):
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options

        if not free.any():
            logger.info("Thermal erosion skipped, no free cells")
            return

        free_heights = heights[free]
        height_range = float(free_heights.max() - free_heights.min())

        talus = opts.talus
        if opts.auto_adjust_talus:
            max_slope = 0.0
            for dx, dy in NEIGHBOR_OFFSETS:
                src, dst = offset_slices(dx, dy, width, height)
                slope = np.abs(heights[src] - heights[dst].astype(np.float64))[free[src]]
                if slope.size:
                    max_slope = max(max_slope, float(slope.max()))
            if 0 < max_slope < talus:
                logger.info("Auto-adjusting talus", talus=talus, adjusted=max_slope * 0.5)
                talus = max_slope * 0.5

        talus_map = np.full((height, width), talus, dtype=np.float64)
        rate_map = np.full((height, width), opts.erosion_rate, dtype=np.float64)
        if opts.road_aware:
            proximity = self._road_proximity(free, distance_field)
            talus_map *= 1.0 - proximity * (1.0 - opts.road_talus_factor)
            rate_map = np.minimum(1.0, rate_map * (1.0 + proximity * opts.road_rate_boost))

        logger.info(
            "Starting thermal erosion",
            iterations=opts.iterations,
            talus=talus,
            erosion_rate=opts.erosion_rate,
            height_range=height_range,
            road_aware=opts.road_aware,
        )

        iteration = 0
        for iteration in range(opts.iterations):
            snapshot = heights.astype(np.float64)
            delta = np.zeros_like(snapshot)
            largest = 0.0
            moved = 0.0

            for dx, dy in NEIGHBOR_OFFSETS:
                src, dst = offset_slices(dx, dy, width, height)
                excess = snapshot[src] - snapshot[dst] - talus_map[src]
                movable = free[src] & free[dst] & (excess > 0)
                transfer = np.where(movable, excess * rate_map[src], 0.0)

                delta[src] -= transfer
                delta[dst] += transfer
                if transfer.size:
                    largest = max(largest, float(transfer.max()))
                moved += float(transfer.sum())

            heights[free] += delta[free]
            logger.debug(
                "Thermal erosion pass",
                iteration=iteration + 1,
                largest_transfer=largest,
                material_moved=moved,
            )

            if largest == 0.0 or largest < height_range * EARLY_STOP_FRACTION:
                logger.info("Thermal erosion converged early", iteration=iteration + 1)
                break

        logger.info("Thermal erosion completed", passes=iteration + 1)


class HydraulicErosionOptions(SmootherOptions):
    droplet_count: int = Field(default=50000, description="Number of simulated droplets")
    max_droplet_lifetime: int = Field(default=30, description="Maximum steps per droplet")
    initial_water_volume: float = Field(default=1.0, description="Water carried at spawn")
    initial_speed: float = Field(default=1.0, description="Speed at spawn")
    inertia: float = Field(default=0.05, description="Share of the previous direction kept per step")
    gravity: float = Field(default=4.0, description="Acceleration from height loss")
    evaporation_rate: float = Field(default=0.01, description="Water lost per step")
    sediment_capacity_factor: float = Field(default=4.0, description="Capacity per speed and water")
    min_sediment_capacity: float = Field(default=0.01, description="Capacity floor on flat ground")
    erode_speed: float = Field(default=0.3, description="Share of free capacity eroded per step")
    deposit_speed: float = Field(default=0.3, description="Share of excess sediment dropped per step")
    erosion_radius: int = Field(default=3, description="Brush radius in cells")
    erosion_falloff: float = Field(default=0.5, description="Brush weight exponent")
    max_erosion_depth: float = Field(
        default=0.1, description="Allowed depth below the nearest protected height"
    )
    road_influence_multiplier: float = Field(
        default=0.8, description="Change multiplier right next to a protected cell"
    )
    road_influence_distance: float = Field(
        default=0.3, description="Normalised distance over which changes are damped"
    )
    seed: int = Field(default=0, description="Random seed, 0 for unseeded")
    protected_search_limit: int = Field(
        default=64, description="Cells visited when looking for the nearest protected cell"
    )

    @field_validator("droplet_count", "max_droplet_lifetime", "erosion_radius", "protected_search_limit")
    @classmethod
    def _at_least_one(cls, v):
        return max(1, v)

    @field_validator("initial_water_volume", "initial_speed", "gravity", "sediment_capacity_factor")
    @classmethod
    def _min_tenth(cls, v):
        return max(0.1, v)

    @field_validator("min_sediment_capacity")
    @classmethod
    def _min_capacity(cls, v):
        return max(0.001, v)

    @field_validator("erosion_falloff")
    @classmethod
    def _min_falloff(cls, v):
        return max(0.01, v)

    @field_validator(
        "inertia",
        "evaporation_rate",
        "erode_speed",
        "deposit_speed",
        "max_erosion_depth",
        "road_influence_multiplier",
        "road_influence_distance",
    )
    @classmethod
    def _unit_interval(cls, v):
        return _clamp01(v)


def erosion_brush(radius: int, falloff: float) -> np.ndarray:
    """
    Radial brush of shape (2r+1, 2r+1).

    Weights are `1 - (dist / radius) ** falloff` inside the radius and zero
    outside, normalised to sum to 1.
    """
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    dist = np.hypot(offsets[np.newaxis, :], offsets[:, np.newaxis])
    weights = np.where(dist <= radius, 1.0 - np.power(dist / radius, falloff), 0.0)
    return weights / weights.sum()


def _bilinear(heights: np.ndarray, x: float, y: float) -> float:
    height, width = heights.shape
    x0 = math.floor(x)
    y0 = math.floor(y)
    fx = x - x0
    fy = y - y0
    x1 = min(max(x0 + 1, 0), width - 1)
    y1 = min(max(y0 + 1, 0), height - 1)
    x0 = min(max(x0, 0), width - 1)
    y0 = min(max(y0, 0), height - 1)

    top = heights[y0, x0] * (1 - fx) + heights[y0, x1] * fx
    bottom = heights[y1, x0] * (1 - fx) + heights[y1, x1] * fx
    return float(top * (1 - fy) + bottom * fy)


class HydraulicErosion(TerrainSmoother):
    """
    Droplet based hydraulic erosion.

    Each droplet spawns on a random free cell, rolls downhill along the
    bilinear gradient and erodes or deposits sediment through a radial brush.
    A droplet that leaves the grid or enters a protected cell simply stops.
    Changes are damped close to protected cells, and erosion there may not
    dig deeper than `max_erosion_depth` below the nearest protected height.
    """

    name = "Hydraulic Erosion"
    type_tag = "hydraulic"
    requires_distance_field = True
    options_class = HydraulicErosionOptions

    def _road_damping(self, normalized: np.ndarray) -> np.ndarray:
        opts = self.options
        damping = np.ones_like(normalized)
        if opts.road_influence_distance <= 0:
            return damping

        near = normalized < opts.road_influence_distance
        influence = normalized[near] / opts.road_influence_distance
        damping[near] = (
            influence * (1.0 - opts.road_influence_multiplier) + opts.road_influence_multiplier
        )
        return damping

    def _erosion_floor(
        self, heights: np.ndarray, free: np.ndarray, normalized: np.ndarray
    ) -> np.ndarray:
        """Lowest height erosion may reach per cell."""
        opts = self.options
        floor = np.zeros(free.shape, dtype=np.float64)
        zone = free & (normalized < 0.5 * opts.road_influence_distance)

        for y, x in np.argwhere(zone):
            nearest = find_nearest_protected(free, int(x), int(y), opts.protected_search_limit)
            if nearest is not None:
                px, py = nearest
                floor[y, x] = max(0.0, float(heights[py, px]) - opts.max_erosion_depth)

        return floor

    def _apply(self, heights, cx, cy, amount, brush, weight_map, floor):
        """Spread `amount` over the brush centred on (cx, cy)."""
        height, width = heights.shape
        radius = brush.shape[0] // 2

        x0 = max(cx - radius, 0)
        x1 = min(cx + radius + 1, width)
        y0 = max(cy - radius, 0)
        y1 = min(cy + radius + 1, height)
        if x0 >= x1 or y0 >= y1:
            return

        bx0 = x0 - (cx - radius)
        by0 = y0 - (cy - radius)
        weights = brush[by0:by0 + (y1 - y0), bx0:bx0 + (x1 - x0)] * weight_map[y0:y1, x0:x1]

        window = heights[y0:y1, x0:x1]
        window += amount * weights
        if amount < 0:
            np.maximum(window, floor[y0:y1, x0:x1], out=window, where=weights > 0)

    def smooth(self, heights, width, height, is_free, distance_field=None):
        normalized = self._normalized_distances(distance_field, width, height)
        check_shape(heights, width, height)
        free = free_mask(is_free, width, height)
        opts = self.options

        start_cells = np.flatnonzero(free.ravel())
        if start_cells.size == 0:
            logger.info("Hydraulic erosion skipped, no free cells")
            return

        rng = make_rng(opts.seed)
        brush = erosion_brush(opts.erosion_radius, opts.erosion_falloff)
        damping = self._road_damping(normalized)
        # Protected cells carry zero weight so the brush never touches them
        weight_map = damping * free
        floor = self._erosion_floor(heights, free, normalized)

        logger.info(
            "Starting hydraulic erosion",
            droplets=opts.droplet_count,
            lifetime=opts.max_droplet_lifetime,
            radius=opts.erosion_radius,
        )

        total_steps = 0
        for i in range(opts.droplet_count):
            if i % DROPLET_PROGRESS_INTERVAL == 0:
                logger.debug("Hydraulic erosion progress", droplet=i, total=opts.droplet_count)

            start = int(start_cells[rng.integers(0, start_cells.size)])
            start_y, start_x = divmod(start, width)
            angle = rng.uniform(0.0, 2.0 * math.pi)
            total_steps += self._simulate_droplet(
                heights, free, float(start_x), float(start_y),
                math.cos(angle), math.sin(angle),
                brush, damping, weight_map, floor,
            )

        logger.info(
            "Hydraulic erosion completed",
            droplets=opts.droplet_count,
            average_lifetime=total_steps / opts.droplet_count,
        )

    def _simulate_droplet(
        self, heights, free, pos_x, pos_y, dir_x, dir_y, brush, damping, weight_map, floor
    ) -> int:
        """Run one droplet until it dies; returns the number of steps taken."""
        opts = self.options
        height, width = heights.shape
        inertia = opts.inertia

        speed = opts.initial_speed
        water = opts.initial_water_volume
        sediment = 0.0

        steps = 0
        for steps in range(1, opts.max_droplet_lifetime + 1):
            cx = math.floor(pos_x)
            cy = math.floor(pos_y)
            if cx < 0 or cx >= width - 1 or cy < 0 or cy >= height - 1:
                break

            off_x = pos_x - cx
            off_y = pos_y - cy
            h_nw = float(heights[cy, cx])
            h_ne = float(heights[cy, cx + 1])
            h_sw = float(heights[cy + 1, cx])
            h_se = float(heights[cy + 1, cx + 1])

            grad_x = (h_ne - h_nw) * (1 - off_y) + (h_se - h_sw) * off_y
            grad_y = (h_sw - h_nw) * (1 - off_x) + (h_se - h_ne) * off_x

            dir_x = dir_x * inertia - grad_x * (1 - inertia)
            dir_y = dir_y * inertia - grad_y * (1 - inertia)
            length = math.hypot(dir_x, dir_y)
            if length != 0:
                dir_x /= length
                dir_y /= length

            old_x, old_y = pos_x, pos_y
            pos_x += dir_x
            pos_y += dir_y

            if pos_x < 0 or pos_x >= width - 1 or pos_y < 0 or pos_y >= height - 1:
                break

            nx = math.floor(pos_x)
            ny = math.floor(pos_y)
            if not free[ny, nx]:
                break

            delta = _bilinear(heights, pos_x, pos_y) - _bilinear(heights, old_x, old_y)
            capacity = max(
                opts.min_sediment_capacity,
                opts.sediment_capacity_factor * speed * water * abs(delta),
            )

            if delta > 0:
                deposit = min(delta, sediment)
                sediment -= deposit
                self._apply(heights, math.floor(old_x), math.floor(old_y), deposit, brush, weight_map, floor)
            elif sediment > capacity:
                deposit = (sediment - capacity) * opts.deposit_speed
                sediment -= deposit
                self._apply(heights, nx, ny, deposit, brush, weight_map, floor)
            else:
                erosion = min((capacity - sediment) * opts.erode_speed, -delta)
                erosion *= damping[ny, nx]
                self._apply(heights, nx, ny, -erosion, brush, weight_map, floor)
                sediment += erosion

            speed = math.sqrt(max(0.0, speed * speed + delta * opts.gravity))
            water *= 1 - opts.evaporation_rate
            if water < MIN_WATER:
                break

        return steps


SMOOTHER_TYPES.update({
    ThermalErosion.type_tag: ThermalErosion,
    HydraulicErosion.type_tag: HydraulicErosion,
})
