"""
Deterministic RNG utilities for the atomic grid simulation.

The Simulator owns one numpy.random.Generator(PCG64) seeded once from the
configuration and threads it explicitly through spawning and reactions.
Derived streams use SHA256 over hierarchical components so that adding a
new consumer never shifts the draws of an existing one.
"""

import hashlib
import numpy as np
from typing import Any, Sequence

from .elements import ElementKind, SPAWNABLE_ELEMENTS


def make_seed(*components: Any) -> int:
    """
    Generate deterministic 64-bit seed from hierarchical components.

    Uses SHA256 to hash components into stable seed value.

    Args:
        *components: Seed components (config seed, stream name, ...)

    Returns:
        64-bit integer seed for numpy RNG

    Example:
        spawn_seed = make_seed(config.seed, "spawn")
    """
    hash_input = ":".join(str(c) for c in components)
    hash_bytes = hashlib.sha256(hash_input.encode('utf-8')).digest()
    return int.from_bytes(hash_bytes[:8], byteorder='big')


def make_rng(*components: Any) -> np.random.Generator:
    """PCG64 generator seeded from make_seed(*components)"""
    return np.random.Generator(np.random.PCG64(make_seed(*components)))


def normalized_probabilities(weights: Sequence[float]) -> np.ndarray:
    """
    Scale non-negative weights to sum to 1.

    Raises:
        ValueError: If any weight is negative or all are zero
    """
    weights = np.asarray(weights, dtype=np.float64)
    if np.any(weights < 0):
        raise ValueError(f"Element probabilities must be non-negative, got {weights.tolist()}")

    total = weights.sum()
    if total <= 0:
        raise ValueError("At least one element probability must be positive")

    return weights / total


def random_element(rng: np.random.Generator, probabilities: np.ndarray) -> ElementKind:
    """
    Draw a spawnable element.

    Args:
        rng: Generator owned by the caller
        probabilities: Normalized weights aligned with SPAWNABLE_ELEMENTS

    Returns:
        Chosen ElementKind
    """
    index = rng.choice(len(SPAWNABLE_ELEMENTS), p=probabilities)
    return SPAWNABLE_ELEMENTS[int(index)]
