"""
Error taxonomy for the atomic grid simulation.

Structural errors are raised to the caller. Numeric degeneracy is never
raised: it is clamped, flagged on the particle and logged by the simulator.
"""


class AtomGridError(Exception):
    """Base class for simulation errors"""
    pass


class NotFoundError(AtomGridError, KeyError):
    """Raised when a particle id is unknown or was removed"""

    def __init__(self, particle_id):
        self.particle_id = particle_id
        super().__init__(particle_id)

    def __str__(self):
        return f"Particle not found: {self.particle_id}"


class ValidationError(AtomGridError, ValueError):
    """Raised when bulk input is inconsistent (nothing is inserted)"""
    pass


class CapacityError(AtomGridError):
    """Raised when an insert would exceed capacity or allocation fails"""
    pass
