"""
Errors raised by the grid transformation engine.

All of them are raised before the height field is touched, so a failed
operation never leaves a partially modified grid behind.
"""


class TerrainError(Exception):
    """Base class for terrain engine errors."""


class DistanceFieldRequiredError(TerrainError):
    """An algorithm that needs the distance field was run without one."""


class DegenerateDistanceFieldError(TerrainError):
    """The distance field cannot be normalised (no protected cells or zero range)."""


class DistanceFieldMismatchError(TerrainError):
    """A persisted distance field does not fit the current grid."""


class GridShapeError(TerrainError, ValueError):
    """Array dimensions disagree with the grid resolution."""
