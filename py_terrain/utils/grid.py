"""
Grid helpers shared by the distance field, generators and smoothers.

Height fields are (H, W) arrays indexed [y, x]. The protection predicate is
`is_free(x, y)`; it is evaluated once per cell per algorithm call and cached
as a boolean mask.
"""

from collections import deque
from typing import Callable, Optional, Tuple, Union

import numpy as np
from scipy import ndimage

from ..exceptions import GridShapeError

# (dx, dy) in the order the BFS relaxes them
NEIGHBOR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
)

FreePredicate = Union[Callable[[int, int], bool], np.ndarray]

_BOX_KERNEL = np.ones((3, 3), dtype=np.float64)


def check_shape(array: np.ndarray, width: int, height: int, label: str = "height field") -> None:
    """Raise GridShapeError unless array has shape (height, width)."""
    if array.shape != (height, width):
        raise GridShapeError(
            f"{label} has shape {array.shape}, expected ({height}, {width})"
        )


def free_mask(is_free: FreePredicate, width: int, height: int) -> np.ndarray:
    """
    Evaluate the protection predicate for every cell.

    Args:
        is_free: Callable `is_free(x, y)` or a precomputed boolean array
        width: Grid width
        height: Grid height

    Returns:
        Boolean array of shape (height, width), True where the cell may change
    """
    if isinstance(is_free, np.ndarray):
        check_shape(is_free, width, height, "protection mask")
        return is_free.astype(bool, copy=False)

    mask = np.empty((height, width), dtype=bool)
    for y in range(height):
        for x in range(width):
            mask[y, x] = bool(is_free(x, y))
    return mask


def offset_slices(dx: int, dy: int, width: int, height: int) -> Tuple[tuple, tuple]:
    """
    Slices pairing every cell with its in-bounds neighbour at (dx, dy).

    `array[src]` holds the cells, `array[dst]` the matching neighbours.
    """
    src = (
        slice(max(0, -dy), height - max(0, dy)),
        slice(max(0, -dx), width - max(0, dx)),
    )
    dst = (
        slice(max(0, dy), height - max(0, -dy)),
        slice(max(0, dx), width - max(0, -dx)),
    )
    return src, dst


def neighbor_counts(width: int, height: int) -> np.ndarray:
    """Number of in-bounds cells in each 3x3 window (the cell included)."""
    ones = np.ones((height, width), dtype=np.float64)
    return ndimage.convolve(ones, _BOX_KERNEL, mode="constant", cval=0.0)


def local_mean(heights: np.ndarray, counts: Optional[np.ndarray] = None) -> np.ndarray:
    """Mean of each cell and its in-bounds 8-neighbours."""
    if counts is None:
        counts = neighbor_counts(heights.shape[1], heights.shape[0])
    sums = ndimage.convolve(heights.astype(np.float64), _BOX_KERNEL, mode="constant", cval=0.0)
    return sums / counts


def local_std(heights: np.ndarray) -> np.ndarray:
    """Standard deviation over each cell's 3x3 neighbourhood, clipped at the grid edge."""
    counts = neighbor_counts(heights.shape[1], heights.shape[0])
    values = heights.astype(np.float64)
    mean = local_mean(values, counts)
    mean_sq = local_mean(values * values, counts)
    return np.sqrt(np.maximum(0.0, mean_sq - mean * mean))


def find_nearest_protected(
    free: np.ndarray, x: int, y: int, max_visits: int = 64
) -> Optional[Tuple[int, int]]:
    """
    Breadth-first search for the closest protected cell around (x, y).

    The search stops after `max_visits` cells have been dequeued, so it stays
    local and cheap.

    Args:
        free: Boolean free-cell mask of shape (H, W)
        x, y: Start cell
        max_visits: Upper bound on dequeued cells

    Returns:
        (x, y) of the nearest protected cell found, or None
    """
    height, width = free.shape
    if not free[y, x]:
        return x, y

    visited = {(x, y)}
    queue = deque([(x, y)])
    visits = 0

    while queue and visits < max_visits:
        cx, cy = queue.popleft()
        visits += 1
        for dx, dy in NEIGHBOR_OFFSETS:
            nx, ny = cx + dx, cy + dy
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            if (nx, ny) in visited:
                continue
            if not free[ny, nx]:
                return nx, ny
            visited.add((nx, ny))
            queue.append((nx, ny))

    return None
