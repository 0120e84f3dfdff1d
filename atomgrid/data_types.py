"""
Data types shared across the simulation.

SimulationConfig mirrors the YAML configuration schema and is populated by
loader.py. Statistics and SnapshotEntry are the read-only records handed to
external consumers (reporters, renderers, encoders).
"""

from dataclasses import dataclass, asdict, fields
from typing import NamedTuple, Optional, Tuple

from .forces import ForceParams
from .constants import (
    LJ_EPSILON_DEFAULT,
    BOUNDARY_FORCE_DEFAULT,
    MAX_SPEED_DEFAULT,
    NEIGHBOR_RADIUS_DEFAULT,
    FUSION_PROBABILITY_DEFAULT,
    TRANSFER_PROBABILITY_DEFAULT,
    FUSION_RADIUS_DEFAULT,
    FUSION_IMPULSE_DEFAULT,
    SPAWN_SPACING_DEFAULT,
    TEMPERATURE_DEFAULT,
    FORCE_WORKERS_DEFAULT,
)


# ============================================================================
# Configuration
# ============================================================================

@dataclass
class SimulationConfig:
    """Complete simulation configuration (defaults match data/config/default.yaml)"""
    # Domain
    width: float = 1024.0
    height: float = 1024.0

    # Physics parameters
    time_step: float = 0.016
    coulomb_strength: float = 1.0
    gravity_strength: float = 1.0e-6
    damping_factor: float = 0.99
    temperature: float = TEMPERATURE_DEFAULT
    lj_epsilon: float = LJ_EPSILON_DEFAULT
    boundary_force: float = BOUNDARY_FORCE_DEFAULT
    max_speed: Optional[float] = MAX_SPEED_DEFAULT
    neighbor_radius: float = NEIGHBOR_RADIUS_DEFAULT

    # Element distribution (weights, normalized at spawn time)
    atom_density: float = 0.3
    hydrogen_prob: float = 0.4
    helium_prob: float = 0.2
    carbon_prob: float = 0.15
    oxygen_prob: float = 0.15
    iron_prob: float = 0.1
    spawn_spacing: float = SPAWN_SPACING_DEFAULT

    # Interaction settings
    enable_coulomb: bool = True
    enable_gravity: bool = True
    enable_fusion: bool = True
    enable_electron_transfer: bool = True
    fusion_probability: float = FUSION_PROBABILITY_DEFAULT
    transfer_probability: float = TRANSFER_PROBABILITY_DEFAULT
    fusion_radius: float = FUSION_RADIUS_DEFAULT
    fusion_impulse: float = FUSION_IMPULSE_DEFAULT

    # Run control
    seed: int = 42
    workers: int = FORCE_WORKERS_DEFAULT
    max_particles: Optional[int] = None
    total_frames: int = 480
    steps_per_frame: int = 1

    @property
    def bounds_min(self) -> Tuple[float, float]:
        return (0.0, 0.0)

    @property
    def bounds_max(self) -> Tuple[float, float]:
        return (float(self.width), float(self.height))

    def element_weights(self) -> Tuple[float, float, float, float, float]:
        """Weights aligned with elements.SPAWNABLE_ELEMENTS"""
        return (self.hydrogen_prob, self.helium_prob, self.carbon_prob,
                self.oxygen_prob, self.iron_prob)

    def force_params(self) -> ForceParams:
        return ForceParams(
            coulomb_strength=self.coulomb_strength,
            gravity_strength=self.gravity_strength,
            lj_epsilon=self.lj_epsilon,
            enable_coulomb=self.enable_coulomb,
            enable_gravity=self.enable_gravity,
            bounds_min=self.bounds_min,
            bounds_max=self.bounds_max,
            boundary_force=self.boundary_force,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'SimulationConfig':
        """
        Build config from a flat dict, filling unspecified options with defaults.

        Raises:
            ValueError: If data contains unknown option names
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration option(s): {', '.join(unknown)}")
        return cls(**data)


# ============================================================================
# Reporting Records
# ============================================================================

@dataclass(frozen=True)
class Statistics:
    """Totals over all live particles"""
    total_atoms: int
    total_protons: int
    total_neutrons: int
    total_electrons: int
    total_charge: int
    total_mass: float

    def to_dict(self) -> dict:
        return asdict(self)


class SnapshotEntry(NamedTuple):
    """Render record for one particle (plain Python values, immutable)"""
    id: int
    position: Tuple[float, float]
    color: Tuple[float, float, float, float]
    radius: float
