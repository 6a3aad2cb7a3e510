"""
Fractal Brownian motion over a coherent 2D noise primitive.

The base primitive is OpenSimplex noise remapped from [-1, 1] to [0, 1].
Octave amplitude is multiplied by `persistence` after every octave and the
sum is divided by the total amplitude used, so a persistence above 1 makes
later (higher frequency) octaves dominate while the result stays in [0, 1].
"""

from typing import Optional

import numpy as np
from opensimplex import OpenSimplex

# Fixed primitive so fbm() is a pure function of its arguments
_PRIMITIVE = OpenSimplex(seed=0)


def base_noise(x: float, y: float, primitive: Optional[OpenSimplex] = None) -> float:
    """Coherent noise in [0, 1] at (x, y)."""
    primitive = primitive or _PRIMITIVE
    return (primitive.noise2(x, y) + 1.0) * 0.5


def _octave_weights(octaves: int, persistence: float):
    if octaves < 1:
        raise ValueError(f"octaves must be at least 1, got {octaves}")

    frequency = 1.0
    amplitude = 1.0
    weights = []
    for _ in range(octaves):
        weights.append((frequency, amplitude))
        amplitude *= persistence
        frequency *= 2.0

    max_value = sum(a for _, a in weights)
    if max_value == 0:
        raise ValueError("octave amplitudes sum to zero")
    return weights, max_value


def fbm(
    x: float,
    y: float,
    octaves: int,
    persistence: float,
    primitive: Optional[OpenSimplex] = None,
) -> float:
    """
    Fractal Brownian motion at a single point.

    Args:
        x, y: Sample position
        octaves: Number of noise layers (at least 1)
        persistence: Amplitude multiplier applied after each octave
        primitive: Noise source, defaults to the module primitive

    Returns:
        Normalised value in [0, 1]
    """
    primitive = primitive or _PRIMITIVE
    weights, max_value = _octave_weights(octaves, persistence)

    total = 0.0
    for frequency, amplitude in weights:
        total += base_noise(x * frequency, y * frequency, primitive) * amplitude

    return total / max_value


def fbm_grid(
    xs: np.ndarray,
    ys: np.ndarray,
    octaves: int,
    persistence: float,
    primitive: Optional[OpenSimplex] = None,
) -> np.ndarray:
    """
    Vectorised fbm over the outer product of sample coordinates.

    Args:
        xs: 1D sample x coordinates (one per column)
        ys: 1D sample y coordinates (one per row)

    Returns:
        Array of shape (len(ys), len(xs)) with result[j, i] == fbm(xs[i], ys[j], ...)
    """
    primitive = primitive or _PRIMITIVE
    weights, max_value = _octave_weights(octaves, persistence)

    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    total = np.zeros((ys.size, xs.size), dtype=np.float64)

    for frequency, amplitude in weights:
        layer = primitive.noise2array(xs * frequency, ys * frequency)
        total += (layer + 1.0) * 0.5 * amplitude

    return total / max_value
