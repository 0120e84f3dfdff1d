"""
Particle runtime representation.

Particles are owned by the EntityStore and identified by a stable integer id.
Mass, charge, radius and ionization are derived from the proton, neutron and
electron counts on every access, so they can never drift out of sync with
the composition.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from .elements import ElementKind, Color
from .constants import (
    PROTON_MASS,
    NEUTRON_MASS,
    ELECTRON_MASS,
    RADIUS_SCALE,
    TEMPERATURE_DEFAULT,
    ION_TINT_PER_CHARGE,
    ION_TINT_MAX,
    ION_POSITIVE_TINT,
    ION_NEGATIVE_TINT,
)


@dataclass
class Particle:
    """
    Runtime particle in simulation.

    Attributes:
        id: Stable identifier assigned by the EntityStore (never reused)
        position: 2D position [x, y]
        velocity: 2D velocity [vx, vy]
        protons: Proton count
        neutrons: Neutron count
        electrons: Electron count
        element: Element tag, fixed at creation
        base_color: RGBA display color, fixed at creation
        temperature: Temperature in kelvin
        accumulated_force: Net force applied during the last step
        degenerate: True once a non-finite force or state was clamped
    """
    id: int
    position: np.ndarray  # [x, y] float64
    velocity: np.ndarray  # [vx, vy] float64
    protons: int
    neutrons: int
    electrons: int
    element: ElementKind = ElementKind.CUSTOM
    base_color: Color = (1.0, 1.0, 1.0, 1.0)
    temperature: float = TEMPERATURE_DEFAULT
    accumulated_force: Optional[np.ndarray] = None
    degenerate: bool = False

    def __post_init__(self):
        """Ensure vectors are float64 arrays and composition is valid"""
        self.position = np.array(self.position, dtype=np.float64).reshape(2)
        self.velocity = np.array(self.velocity, dtype=np.float64).reshape(2)

        if self.accumulated_force is None:
            self.accumulated_force = np.zeros(2, dtype=np.float64)
        else:
            self.accumulated_force = np.array(self.accumulated_force, dtype=np.float64).reshape(2)

        self.base_color = tuple(float(c) for c in self.base_color)
        self._check_composition(self.protons, self.neutrons, self.electrons)

    @staticmethod
    def _check_composition(protons: int, neutrons: int, electrons: int):
        if protons < 0 or neutrons < 0 or electrons < 0:
            raise ValueError(
                f"Composition counts must be non-negative "
                f"(p={protons}, n={neutrons}, e={electrons})"
            )

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------

    @property
    def charge(self) -> int:
        """Net charge in units of e"""
        return self.protons - self.electrons

    @property
    def mass(self) -> float:
        """Mass in kg"""
        return (self.protons * PROTON_MASS
                + self.neutrons * NEUTRON_MASS
                + self.electrons * ELECTRON_MASS)

    @property
    def radius(self) -> float:
        return RADIUS_SCALE * float(self.protons + self.neutrons) ** (1.0 / 3.0)

    @property
    def ionized(self) -> bool:
        return self.electrons != self.protons

    @property
    def electron_affinity(self) -> float:
        """
        Affinity used by electron transfer (protons per unit radius).

        Returns 0.0 for an empty nucleus.
        """
        radius = self.radius
        if radius <= 0.0:
            return 0.0
        return self.protons / radius

    # ------------------------------------------------------------------
    # Composition mutators
    # ------------------------------------------------------------------

    def add_electron(self):
        self.electrons += 1

    def remove_electron(self):
        """
        Remove one electron.

        Raises:
            ValueError: If the particle has no electrons
        """
        if self.electrons == 0:
            raise ValueError(f"Particle {self.id} has no electrons to remove")
        self.electrons -= 1

    def add_proton(self):
        self.protons += 1

    def add_neutron(self):
        self.neutrons += 1

    def set_composition(self, protons: int, neutrons: int, electrons: int):
        """Replace the full composition (element tag is left unchanged)"""
        self._check_composition(protons, neutrons, electrons)
        self.protons = int(protons)
        self.neutrons = int(neutrons)
        self.electrons = int(electrons)

    # ------------------------------------------------------------------
    # Rendering / serialization
    # ------------------------------------------------------------------

    def display_color(self) -> Color:
        """
        Base color tinted by ionization.

        Positive ions shift toward red, negative ions toward blue,
        proportionally to |charge| up to ION_TINT_MAX.
        """
        charge = self.charge
        if charge == 0:
            return self.base_color

        weight = min(ION_TINT_MAX, ION_TINT_PER_CHARGE * abs(charge))
        tint = ION_POSITIVE_TINT if charge > 0 else ION_NEGATIVE_TINT
        return tuple(
            (1.0 - weight) * base + weight * target
            for base, target in zip(self.base_color, tint)
        )

    def position_tuple(self) -> Tuple[float, float]:
        return float(self.position[0]), float(self.position[1])

    def to_dict(self) -> dict:
        """
        Serialize particle to JSON-compatible dict.

        Derived fields are included for consumers but ignored by from_dict().
        """
        return {
            'id': self.id,
            'element': self.element.value,
            'position': self.position.tolist(),
            'velocity': self.velocity.tolist(),
            'protons': self.protons,
            'neutrons': self.neutrons,
            'electrons': self.electrons,
            'base_color': list(self.base_color),
            'temperature': self.temperature,
            'accumulated_force': self.accumulated_force.tolist(),
            'degenerate': self.degenerate,
            'charge': self.charge,
            'mass': self.mass,
            'radius': self.radius,
            'ionized': self.ionized,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Particle':
        """
        Deserialize particle from dict.

        Args:
            data: Dict with particle fields (as produced by to_dict)

        Returns:
            Particle instance
        """
        return cls(
            id=int(data['id']),
            position=np.array(data['position'], dtype=np.float64),
            velocity=np.array(data.get('velocity', [0.0, 0.0]), dtype=np.float64),
            protons=int(data['protons']),
            neutrons=int(data['neutrons']),
            electrons=int(data['electrons']),
            element=ElementKind(data.get('element', ElementKind.CUSTOM.value)),
            base_color=tuple(data.get('base_color', (1.0, 1.0, 1.0, 1.0))),
            temperature=float(data.get('temperature', TEMPERATURE_DEFAULT)),
            accumulated_force=data.get('accumulated_force'),
            degenerate=bool(data.get('degenerate', False)),
        )

    def copy(self) -> 'Particle':
        """Independent copy (arrays are not shared)"""
        return Particle(
            id=self.id,
            position=self.position.copy(),
            velocity=self.velocity.copy(),
            protons=self.protons,
            neutrons=self.neutrons,
            electrons=self.electrons,
            element=self.element,
            base_color=self.base_color,
            temperature=self.temperature,
            accumulated_force=self.accumulated_force.copy(),
            degenerate=self.degenerate,
        )
