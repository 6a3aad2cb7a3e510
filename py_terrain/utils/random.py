"""
Random number generation utilities.

Every algorithm that draws random numbers owns a single generator created
here. A seed of 0 means "unseeded": the generator is initialised from OS
entropy and runs are not reproducible. Any other seed gives a deterministic
stream.
"""

from typing import Optional

import numpy as np


def make_rng(seed: Optional[int] = 0) -> np.random.Generator:
    """
    Create the random generator for one algorithm invocation.

    Args:
        seed: Integer seed, 0 or None for a non-deterministic generator

    Returns:
        NumPy Generator instance
    """
    if not seed:
        return np.random.default_rng()
    return np.random.default_rng(seed)
