"""
Pairwise force model.

Pure, stateless functions. Every pair function returns the force acting on
particle `a` due to particle `b`. The `b` arguments broadcast: pass a single
position (2,) or K neighbor positions (K, 2) with matching (K,) attribute
arrays and the result has shape (2,) or (K, 2).

Sign conventions:
    - Coulomb: like charges repel (force on a points away from b)
    - Gravity: always attractive
    - Lennard-Jones: positive magnitude is repulsive

Separations below FORCE_EPSILON produce a zero force instead of Inf/NaN.
"""

import numpy as np
from dataclasses import dataclass
from typing import Tuple

from .particle import Particle
from .constants import (
    COULOMB_CONSTANT,
    ELEMENTARY_CHARGE,
    GRAVITATIONAL_CONSTANT,
    FORCE_EPSILON,
    LJ_EPSILON_DEFAULT,
    LJ_CUTOFF_FACTOR,
    BOUNDARY_FORCE_DEFAULT,
)


@dataclass
class ForceParams:
    """Tunable inputs of the force model"""
    coulomb_strength: float = 1.0
    gravity_strength: float = 1.0e-6
    lj_epsilon: float = LJ_EPSILON_DEFAULT
    enable_coulomb: bool = True
    enable_gravity: bool = True
    enable_lennard_jones: bool = True
    bounds_min: Tuple[float, float] = (0.0, 0.0)
    bounds_max: Tuple[float, float] = (1024.0, 1024.0)
    boundary_force: float = BOUNDARY_FORCE_DEFAULT


def _separation(pos_a, pos_b) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Unit direction a -> b, distance, and validity mask.

    Returns:
        (direction, distance, valid) where valid is False for d < FORCE_EPSILON
        and direction is zero there.
    """
    delta = np.asarray(pos_b, dtype=np.float64) - np.asarray(pos_a, dtype=np.float64)
    distance = np.sqrt(np.sum(delta * delta, axis=-1))
    valid = distance >= FORCE_EPSILON
    safe = np.where(valid, distance, 1.0)
    direction = delta / np.expand_dims(safe, -1)
    direction = np.where(np.expand_dims(valid, -1), direction, 0.0)
    return direction, distance, valid


def coulomb_force(pos_a, q_a, pos_b, q_b, strength: float = 1.0) -> np.ndarray:
    """
    Electrostatic force on a: |F| = k_e * q_a * q_b * e^2 / d^2 * strength.

    Args:
        pos_a: Position of a [x, y]
        q_a: Charge of a in units of e
        pos_b: Position(s) of b, (2,) or (K, 2)
        q_b: Charge(s) of b in units of e
        strength: Global multiplier (coulomb_strength)

    Returns:
        Force vector(s) on a
    """
    direction, distance, valid = _separation(pos_a, pos_b)
    safe_sq = np.where(valid, distance * distance, 1.0)
    magnitude = COULOMB_CONSTANT * q_a * np.asarray(q_b, dtype=np.float64) \
        * ELEMENTARY_CHARGE * ELEMENTARY_CHARGE / safe_sq * strength
    magnitude = np.where(valid, magnitude, 0.0)
    # Positive product = repulsion = push a away from b
    return -np.expand_dims(magnitude, -1) * direction


def gravitational_force(pos_a, m_a, pos_b, m_b, strength: float = 1.0) -> np.ndarray:
    """
    Gravitational attraction on a: |F| = G * m_a * m_b / d^2 * strength.

    Returns:
        Force vector(s) on a, pointing toward b
    """
    direction, distance, valid = _separation(pos_a, pos_b)
    safe_sq = np.where(valid, distance * distance, 1.0)
    magnitude = GRAVITATIONAL_CONSTANT * m_a * np.asarray(m_b, dtype=np.float64) / safe_sq * strength
    magnitude = np.where(valid, magnitude, 0.0)
    return np.expand_dims(magnitude, -1) * direction


def lennard_jones_force(pos_a, r_a, pos_b, r_b, epsilon_lj: float = LJ_EPSILON_DEFAULT) -> np.ndarray:
    """
    Short-range Lennard-Jones force on a.

    Only active for d < LJ_CUTOFF_FACTOR * (r_a + r_b). With
    sigma = (r_a + r_b) / 2:

        F = 24 * eps * (2 * (sigma/d)^12 - (sigma/d)^6) / d

    Positive F pushes a away from b.
    """
    direction, distance, valid = _separation(pos_a, pos_b)
    radius_sum = r_a + np.asarray(r_b, dtype=np.float64)
    active = valid & (distance < LJ_CUTOFF_FACTOR * radius_sum)

    safe_d = np.where(active, distance, 1.0)
    sigma = radius_sum / 2.0
    ratio6 = (sigma / safe_d) ** 6
    magnitude = 24.0 * epsilon_lj * (2.0 * ratio6 * ratio6 - ratio6) / safe_d
    magnitude = np.where(active, magnitude, 0.0)
    return -np.expand_dims(magnitude, -1) * direction


def boundary_force(position, bounds_min, bounds_max, magnitude: float = BOUNDARY_FORCE_DEFAULT) -> np.ndarray:
    """
    Constant inward push for a particle outside the domain.

    Applied per axis, only when the coordinate is strictly outside
    [bounds_min, bounds_max]; a particle exactly on the boundary feels
    nothing.

    Args:
        position: [x, y]
        bounds_min: (x_min, y_min)
        bounds_max: (x_max, y_max)
        magnitude: Push strength per axis

    Returns:
        Force vector [fx, fy]
    """
    position = np.asarray(position, dtype=np.float64)
    lower = np.asarray(bounds_min, dtype=np.float64)
    upper = np.asarray(bounds_max, dtype=np.float64)

    force = np.zeros(2, dtype=np.float64)
    force[position < lower] = magnitude
    force[position > upper] = -magnitude
    return force


def damping_force(velocity, mass: float, damping_factor: float, dt: float) -> np.ndarray:
    """
    Velocity damping expressed as a force, subtracted during integration.

        D = velocity * (1 - damping_factor) * mass / dt

    With damping_factor = 1.0 the term vanishes. Applying v += -D/m * dt is
    equivalent to v *= damping_factor.
    """
    if dt <= 0.0:
        return np.zeros(2, dtype=np.float64)
    return np.asarray(velocity, dtype=np.float64) * (1.0 - damping_factor) * mass / dt


def net_force(
    position,
    charge: float,
    mass: float,
    radius: float,
    neighbor_positions: np.ndarray,
    neighbor_charges: np.ndarray,
    neighbor_masses: np.ndarray,
    neighbor_radii: np.ndarray,
    params: ForceParams
) -> np.ndarray:
    """
    Sum of all pair forces from neighbors plus the boundary push.

    Neighbor arrays are summed in the order given; callers pass them in
    ascending id order so the floating-point result is reproducible.

    Returns:
        Net force [fx, fy]
    """
    total = boundary_force(position, params.bounds_min, params.bounds_max, params.boundary_force)

    if len(neighbor_positions) == 0:
        return total

    pair = np.zeros((len(neighbor_positions), 2), dtype=np.float64)
    if params.enable_coulomb and charge != 0:
        pair += coulomb_force(position, charge, neighbor_positions, neighbor_charges, params.coulomb_strength)
    if params.enable_gravity:
        pair += gravitational_force(position, mass, neighbor_positions, neighbor_masses, params.gravity_strength)
    if params.enable_lennard_jones:
        pair += lennard_jones_force(position, radius, neighbor_positions, neighbor_radii, params.lj_epsilon)

    # Sequential accumulation keeps the summation order fixed
    for row in pair:
        total = total + row
    return total


def pair_force(a: Particle, b: Particle, params: ForceParams) -> np.ndarray:
    """
    Total pairwise force on particle a due to particle b (no boundary term).
    """
    force = np.zeros(2, dtype=np.float64)
    if params.enable_coulomb:
        force += coulomb_force(a.position, a.charge, b.position, b.charge, params.coulomb_strength)
    if params.enable_gravity:
        force += gravitational_force(a.position, a.mass, b.position, b.mass, params.gravity_strength)
    if params.enable_lennard_jones:
        force += lennard_jones_force(a.position, a.radius, b.position, b.radius, params.lj_epsilon)
    return force
