"""
Distance-to-protected field.

Every cell stores the minimum number of 8-connected steps to the nearest
protected cell. The field is built with a multi-source breadth-first search
seeded from all protected cells, so it is a chessboard lattice distance and
not a Euclidean one. Consumers normalise by the largest finite value found.

Cells that cannot reach a protected cell keep SENTINEL (int32 max).
"""

import hashlib
import re
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import structlog

from ..exceptions import DegenerateDistanceFieldError, DistanceFieldMismatchError
from ..utils.grid import NEIGHBOR_OFFSETS, FreePredicate, free_mask

logger = structlog.get_logger()

SENTINEL = int(np.iinfo(np.int32).max)
PROGRESS_INTERVAL = 1000

_HEADER_DTYPE = np.dtype("<i4")


@dataclass
class DistanceField:
    """Per-cell step distance to the nearest protected cell, shape (H, W)."""

    values: np.ndarray

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=np.int32)
        if self.values.ndim != 2:
            raise DistanceFieldMismatchError(
                f"distance field must be 2D, got shape {self.values.shape}"
            )

    @property
    def width(self) -> int:
        return self.values.shape[1]

    @property
    def height(self) -> int:
        return self.values.shape[0]

    @property
    def finite_mask(self) -> np.ndarray:
        return self.values != SENTINEL

    @property
    def max_finite(self) -> int:
        """Largest non-sentinel distance, 0 if there is none."""
        finite = self.values[self.finite_mask]
        if finite.size == 0:
            return 0
        return int(finite.max())

    @property
    def has_protected(self) -> bool:
        return bool((self.values == 0).any())

    def normalized(self) -> np.ndarray:
        """
        Distances divided by the largest finite distance.

        Sentinel cells map to 1.0.

        Raises:
            DegenerateDistanceFieldError: No protected cells or zero maximum
        """
        max_distance = self.max_finite
        if not self.has_protected or max_distance == 0:
            raise DegenerateDistanceFieldError(
                "distance field has no protected cells or no free cell reachable from one"
            )

        result = self.values.astype(np.float64) / float(max_distance)
        result[~self.finite_mask] = 1.0
        return result

    def to_bytes(self) -> bytes:
        """Encode as little-endian int32 width, height, then row-major distances."""
        header = np.array([self.width, self.height], dtype=_HEADER_DTYPE)
        body = self.values.astype(_HEADER_DTYPE, copy=False)
        return header.tobytes() + body.tobytes(order="C")

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        expected_width: Optional[int] = None,
        expected_height: Optional[int] = None,
    ) -> "DistanceField":
        """
        Decode a blob written by to_bytes().

        Raises:
            DistanceFieldMismatchError: Truncated blob or unexpected dimensions
        """
        if len(data) < 8:
            raise DistanceFieldMismatchError("distance field blob is missing its header")

        width, height = (int(v) for v in np.frombuffer(data[:8], dtype=_HEADER_DTYPE))

        if expected_width is not None and expected_height is not None:
            if (width, height) != (expected_width, expected_height):
                raise DistanceFieldMismatchError(
                    f"stored field is {width}x{height}, grid is {expected_width}x{expected_height}"
                )

        if width < 0 or height < 0 or len(data) != 8 + 4 * width * height:
            raise DistanceFieldMismatchError(
                f"distance field blob has {len(data)} bytes, expected {8 + 4 * max(0, width * height)}"
            )

        values = np.frombuffer(data[8:], dtype=_HEADER_DTYPE).astype(np.int32)
        return cls(values.reshape(height, width))


def compute_distance_field(
    width: int,
    height: int,
    is_free: FreePredicate,
    max_distance: Optional[int] = None,
) -> DistanceField:
    """
    Multi-source BFS from every protected cell.

    Args:
        width: Grid width
        height: Grid height
        is_free: Protection predicate or boolean free mask
        max_distance: Stop expanding past this distance; farther cells keep SENTINEL

    Returns:
        DistanceField of shape (height, width)
    """
    free = free_mask(is_free, width, height)
    total = width * height

    dist = [SENTINEL] * total
    queue = deque()
    for idx in np.flatnonzero(~free.ravel()).tolist():
        dist[idx] = 0
        queue.append(idx)

    if not queue:
        logger.warning("No protected cells, distance field is all sentinel", width=width, height=height)

    processed = 0
    while queue:
        idx = queue.popleft()
        current = dist[idx]
        processed += 1
        if processed % PROGRESS_INTERVAL == 0:
            logger.debug("Distance field progress", processed=processed, total=total)

        if max_distance is not None and current >= max_distance:
            continue

        y, x = divmod(idx, width)
        candidate = current + 1
        for dx, dy in NEIGHBOR_OFFSETS:
            nx = x + dx
            ny = y + dy
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            n = ny * width + nx
            if dist[n] > candidate:
                dist[n] = candidate
                queue.append(n)

    field = DistanceField(np.array(dist, dtype=np.int32).reshape(height, width))
    logger.info(
        "Distance field computed",
        width=width,
        height=height,
        max_distance=field.max_finite,
        unreachable=int((~field.finite_mask).sum()),
    )
    return field


def mask_key(mask: np.ndarray) -> str:
    """Stable file key for a free mask and its resolution."""
    mask = np.asarray(mask, dtype=bool)
    digest = hashlib.sha1(np.packbits(mask).tobytes()).hexdigest()[:16]
    return f"{mask.shape[1]}x{mask.shape[0]}_{digest}"


class DistanceFieldStore:
    """File-backed cache of distance fields keyed by scene or mask identity."""

    SUFFIX = "_distance_field.dat"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    @staticmethod
    def sanitize_key(key: str) -> str:
        return re.sub(r"[^A-Za-z0-9_.-]", "_", key) or "default"

    def path_for(self, key: str) -> Path:
        return self.directory / f"{self.sanitize_key(key)}{self.SUFFIX}"

    def load(self, key: str, width: int, height: int) -> Optional[DistanceField]:
        """
        Load a stored field.

        Returns None when nothing is stored or the stored field does not
        match the grid, which callers treat as "recompute".
        """
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            field = DistanceField.from_bytes(
                path.read_bytes(), expected_width=width, expected_height=height
            )
        except DistanceFieldMismatchError as e:
            logger.warning("Rejecting stored distance field", path=str(path), reason=str(e))
            return None

        logger.info("Loaded distance field", path=str(path), max_distance=field.max_finite)
        return field

    def save(self, key: str, field: DistanceField) -> Path:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(field.to_bytes())
        logger.info("Saved distance field", path=str(path))
        return path

    def invalidate(self, key: str) -> bool:
        """Delete the stored field; returns True if one existed."""
        path = self.path_for(key)
        if path.exists():
            path.unlink()
            logger.info("Invalidated distance field", path=str(path))
            return True
        return False

    def get_or_compute(
        self, key: str, width: int, height: int, is_free: FreePredicate
    ) -> DistanceField:
        field = self.load(key, width, height)
        if field is None:
            field = compute_distance_field(width, height, is_free)
            self.save(key, field)
        return field
