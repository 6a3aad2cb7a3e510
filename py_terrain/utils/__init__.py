"""
Shared helpers for grid access, randomness and logging.
"""

from .grid import NEIGHBOR_OFFSETS, free_mask, check_shape, find_nearest_protected
from .random import make_rng

__all__ = ['NEIGHBOR_OFFSETS', 'free_mask', 'check_shape', 'find_nearest_protected', 'make_rng']
