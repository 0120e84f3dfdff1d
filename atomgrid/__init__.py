"""
Atomic Grid Simulation

A deterministic, headless 2D particle simulator. Atoms built from protons,
neutrons and electrons interact through Coulomb, gravitational and
Lennard-Jones forces, and may fuse or exchange electrons on contact.

Architecture: the Simulator owns every particle. Renderers, encoders and
reporters consume read-only snapshots and statistics.
"""

from .elements import ElementKind
from .errors import AtomGridError, NotFoundError, ValidationError, CapacityError
from .data_types import SimulationConfig, Statistics, SnapshotEntry
from .simulator import Simulator

__version__ = "0.1.0"

__all__ = [
    "ElementKind",
    "AtomGridError",
    "NotFoundError",
    "ValidationError",
    "CapacityError",
    "SimulationConfig",
    "Statistics",
    "SnapshotEntry",
    "Simulator",
]
