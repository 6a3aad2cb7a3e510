"""
Debug rendering of distance fields.

Distances are normalised by the largest finite distance and mapped onto a
nine-stop colour gradient. Unreachable cells render at the far end.
"""

from pathlib import Path
from typing import Union

import numpy as np
import structlog
from matplotlib import image as mpimg

from .distance_field import DistanceField

logger = structlog.get_logger()

GRADIENT = np.array(
    [
        (0.0, 0.0, 0.0),    # black
        (0.0, 0.0, 1.0),    # blue
        (0.0, 1.0, 1.0),    # cyan
        (1.0, 0.0, 1.0),    # magenta
        (1.0, 0.0, 0.0),    # red
        (0.0, 1.0, 0.0),    # green
        (0.5, 0.5, 0.5),    # gray
        (1.0, 1.0, 1.0),    # white
        (1.0, 0.92, 0.016),  # yellow
    ],
    dtype=np.float64,
)


def render_distance_field(field: DistanceField) -> np.ndarray:
    """
    Map a distance field to RGB.

    Returns:
        Float array of shape (H, W, 3) in [0, 1]
    """
    max_distance = field.max_finite
    if max_distance == 0:
        return np.zeros((field.height, field.width, 3), dtype=np.float64)

    normalized = field.values.astype(np.float64) / max_distance
    normalized[~field.finite_mask] = 1.0

    scaled = normalized * (len(GRADIENT) - 1)
    index = np.clip(np.floor(scaled).astype(np.int64), 0, len(GRADIENT) - 2)
    t = (scaled - index)[..., np.newaxis]

    return GRADIENT[index] * (1.0 - t) + GRADIENT[index + 1] * t


def save_distance_field_image(field: DistanceField, path: Union[str, Path]) -> Path:
    """Write the rendered field as a PNG."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    mpimg.imsave(str(path), np.clip(render_distance_field(field), 0.0, 1.0))
    logger.info("Distance field image saved", path=str(path), width=field.width, height=field.height)
    return path
