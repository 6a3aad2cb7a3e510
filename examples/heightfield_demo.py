#!/usr/bin/env python3
"""
Demo script running a preset around a protected road network.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from py_terrain.core import (
    DistanceFieldStore,
    DistanceWeightedSmoother,
    HydraulicErosion,
    MidpointDisplacementGenerator,
    PerlinNoiseGenerator,
    TerrainPipeline,
    TerrainPreset,
    ThermalErosion,
    VoronoiGenerator,
    save_distance_field_image,
    save_preset,
)


def road_mask(width, height):
    """Two crossing roads, True where terrain may change."""
    free = np.ones((height, width), dtype=bool)
    free[height // 2 - 1:height // 2 + 1, :] = False
    xs = np.arange(height) * (width - 1) // (height - 1)
    free[np.arange(height), xs] = False
    return free


def main():
    """Run a preset and plot the result."""
    print("Height Field Demo")
    print("=" * 40)

    width, height = 129, 129
    output_dir = Path("demo_output")
    free = road_mask(width, height)

    heights = np.zeros((height, width))
    heights[~free] = 0.35

    preset = TerrainPreset(
        name="Rolling Hills",
        generators=[
            MidpointDisplacementGenerator(seed=7, max_height=0.6, roughness=0.6),
            PerlinNoiseGenerator(amplitude=0.1, x_frequency=0.03, y_frequency=0.03),
            VoronoiGenerator(seed=7, peak_count=5, min_height=0.4, max_height=0.7),
        ],
        smoothers=[
            DistanceWeightedSmoother(iterations=3, use_linear_blending=True),
            ThermalErosion(iterations=20, road_aware=True),
            HydraulicErosion(droplet_count=20000, seed=7),
        ],
    )

    store = DistanceFieldStore(output_dir / "distance_fields")
    pipeline = TerrainPipeline(width, height, free, store=store, key="demo_roads")

    print(f"\nRunning preset '{preset.name}' on {width}x{height} grid...")
    applied = pipeline.run(heights, preset)
    for name in applied:
        print(f"  - {name}")

    print(f"\nHeight range: {heights[free].min():.3f}-{heights[free].max():.3f}")
    print(f"Average height: {heights[free].mean():.3f}")

    image_path = save_distance_field_image(pipeline.distance_field, output_dir / "distance_field.png")
    print(f"Distance field image: {image_path}")

    preset_path = save_preset(preset, output_dir / "presets", overwrite=True)
    print(f"Preset saved: {preset_path}")

    fig, axes = plt.subplots(1, 2, figsize=(12, 6))
    axes[0].imshow(heights, cmap="terrain", origin="lower")
    axes[0].set_title(preset.name)
    axes[1].imshow(np.ma.masked_where(free, heights), cmap="gray", origin="lower")
    axes[1].set_title("Protected cells")
    for ax in axes:
        ax.set_xticks([])
        ax.set_yticks([])
    plt.tight_layout()
    plt.savefig(output_dir / "heightfield.png", dpi=120)
    print(f"Height field plot: {output_dir / 'heightfield.png'}")


if __name__ == "__main__":
    main()
