"""
Vector helpers for 2D geometry.

Distance, normalization and speed clamping shared by the force model,
reactions and integration.
"""

import numpy as np
from typing import Tuple


def distance_2d(pos_a: np.ndarray, pos_b: np.ndarray) -> float:
    """
    Euclidean distance between two 2D points.

    Args:
        pos_a: Position [x, y]
        pos_b: Position [x, y]

    Returns:
        Distance in simulation units
    """
    diff = pos_a - pos_b
    return float(np.sqrt(np.dot(diff, diff)))


def normalize(vec: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Normalize vector to unit length.

    Args:
        vec: Vector to normalize [x, y]

    Returns:
        Tuple of (normalized vector, original length). A zero vector yields
        ([0, 0], 0.0) so callers can skip undefined directions.
    """
    length = float(np.sqrt(np.dot(vec, vec)))

    if length < 1e-12:
        return np.zeros(2, dtype=np.float64), 0.0

    return vec / length, length


def clamp_speed(velocity: np.ndarray, max_speed: float) -> np.ndarray:
    """
    Clamp velocity magnitude to maximum speed.

    Args:
        velocity: Velocity vector [vx, vy]
        max_speed: Maximum allowed speed

    Returns:
        Velocity with clamped magnitude
    """
    speed_sq = np.dot(velocity, velocity)

    if speed_sq > max_speed * max_speed:
        speed = np.sqrt(speed_sq)
        return velocity * (max_speed / speed)

    return velocity


def midpoint(pos_a: np.ndarray, pos_b: np.ndarray) -> np.ndarray:
    return 0.5 * (pos_a + pos_b)


def is_finite(vec: np.ndarray) -> bool:
    """True when every component is neither NaN nor infinite"""
    return bool(np.all(np.isfinite(vec)))
