"""
Stochastic reactions between particles in contact.

Two particles are in contact when d < CONTACT_FACTOR * (r_a + r_b). For each
contact pair, visited once in ascending (id_a, id_b) order:

- Fusion: two Hydrogen particles fuse with probability p_fusion into one
  Helium particle at their midpoint. Nearby particles receive an outward
  velocity impulse (energy-release approximation) once every pair of the
  pass has been decided.
- Electron transfer: with probability p_transfer the particle with the
  higher electron affinity (protons / radius) takes one electron from the
  other. Equal affinities transfer nothing.

Contact detection, reaction choice and fusion momentum read a snapshot taken at the start of
the pass, and each particle reacts at most once per pass, so one tick can
never chain reactions through intermediate state.
"""

import logging
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .entity_store import EntityStore
from .spatial_index import SpatialHashGrid
from .elements import ElementKind, element_record
from .geometry import normalize, midpoint
from .constants import (
    CONTACT_FACTOR,
    FUSION_PROBABILITY_DEFAULT,
    TRANSFER_PROBABILITY_DEFAULT,
    FUSION_RADIUS_DEFAULT,
    FUSION_IMPULSE_DEFAULT,
    FUSION_HEAT_RELEASE,
)


logger = logging.getLogger(__name__)


@dataclass
class ReactionReport:
    """Outcome of one reaction pass"""
    fusions: int = 0
    transfers: int = 0
    contacts: int = 0
    created_ids: List[int] = field(default_factory=list)
    removed_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'fusions': self.fusions,
            'transfers': self.transfers,
            'contacts': self.contacts,
            'created_ids': list(self.created_ids),
            'removed_ids': list(self.removed_ids),
        }


@dataclass(frozen=True)
class _ParticleState:
    """Immutable per-particle view captured at the start of a pass"""
    id: int
    position: Tuple[float, float]
    element: ElementKind
    protons: int
    neutrons: int
    electrons: int
    radius: float
    affinity: float
    velocity: Tuple[float, float]
    mass: float


class ReactionEngine:
    """
    Applies fusion and electron transfer to an EntityStore/SpatialHashGrid pair.

    The engine holds no RNG of its own: the simulator passes its seeded
    generator into run() so reaction draws stay reproducible.
    """

    def __init__(
        self,
        fusion_probability: float = FUSION_PROBABILITY_DEFAULT,
        transfer_probability: float = TRANSFER_PROBABILITY_DEFAULT,
        enable_fusion: bool = True,
        enable_electron_transfer: bool = True,
        fusion_radius: float = FUSION_RADIUS_DEFAULT,
        fusion_impulse: float = FUSION_IMPULSE_DEFAULT
    ):
        for name, value in (('fusion_probability', fusion_probability),
                            ('transfer_probability', transfer_probability)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

        self.fusion_probability = fusion_probability
        self.transfer_probability = transfer_probability
        self.enable_fusion = enable_fusion
        self.enable_electron_transfer = enable_electron_transfer
        self.fusion_radius = fusion_radius
        self.fusion_impulse = fusion_impulse

    @property
    def active(self) -> bool:
        return self.enable_fusion or self.enable_electron_transfer

    def _snapshot(self, store: EntityStore) -> Dict[int, _ParticleState]:
        states = {}
        for particle in store.particles():
            states[particle.id] = _ParticleState(
                id=particle.id,
                position=particle.position_tuple(),
                element=particle.element,
                protons=particle.protons,
                neutrons=particle.neutrons,
                electrons=particle.electrons,
                radius=particle.radius,
                affinity=particle.electron_affinity,
                velocity=(float(particle.velocity[0]), float(particle.velocity[1])),
                mass=particle.mass,
            )
        return states

    def find_contacts(self, states: Dict[int, _ParticleState], index: SpatialHashGrid) -> List[Tuple[int, int]]:
        """
        Contact pairs (a, b) with a < b in ascending order.

        Args:
            states: Snapshot keyed by id
            index: Grid consistent with the snapshot positions

        Returns:
            Sorted list of id pairs
        """
        pairs = []
        max_radius = max((s.radius for s in states.values()), default=0.0)
        for a_id in sorted(states):
            a = states[a_id]
            search_radius = CONTACT_FACTOR * (a.radius + max_radius)
            for b_id in index.query_range(a.position, search_radius):
                if b_id <= a_id or b_id not in states:
                    continue
                b = states[b_id]
                dx = b.position[0] - a.position[0]
                dy = b.position[1] - a.position[1]
                limit = CONTACT_FACTOR * (a.radius + b.radius)
                if dx * dx + dy * dy < limit * limit:
                    pairs.append((a_id, b_id))
        return pairs

    def run(self, store: EntityStore, index: SpatialHashGrid, rng: np.random.Generator) -> ReactionReport:
        """
        Execute one reaction pass.

        Structural changes (fusion removals and insertions) are applied to
        both the store and the grid before returning.

        Args:
            store: Particle owner (mutated)
            index: Spatial grid, consistent with store on entry (mutated)
            rng: Generator owned by the simulator

        Returns:
            ReactionReport with counts and affected ids
        """
        report = ReactionReport()
        if not self.active or len(store) < 2:
            return report

        states = self._snapshot(store)
        pairs = self.find_contacts(states, index)
        report.contacts = len(pairs)

        consumed = set()
        # Energy releases are applied after every pair has been decided
        releases: List[Tuple[np.ndarray, int]] = []
        for a_id, b_id in pairs:
            if a_id in consumed or b_id in consumed:
                continue

            a = states[a_id]
            b = states[b_id]

            if (self.enable_fusion
                    and a.element is ElementKind.HYDROGEN
                    and b.element is ElementKind.HYDROGEN):
                if rng.random() < self.fusion_probability:
                    new_id, center = self._fuse(store, index, a, b)
                    releases.append((center, new_id))
                    consumed.update((a_id, b_id))
                    report.fusions += 1
                    report.removed_ids.extend((a_id, b_id))
                    report.created_ids.append(new_id)
                    continue

            if self.enable_electron_transfer:
                if rng.random() < self.transfer_probability:
                    if self._transfer(store, a, b):
                        consumed.update((a_id, b_id))
                        report.transfers += 1

        for center, product_id in releases:
            self._release_energy(store, index, center, exclude=product_id)

        if report.fusions or report.transfers:
            logger.debug("Reaction pass: %d fusions, %d transfers, %d contacts",
                         report.fusions, report.transfers, report.contacts)

        return report

    def _fuse(self, store: EntityStore, index: SpatialHashGrid, a: _ParticleState,
              b: _ParticleState) -> Tuple[int, np.ndarray]:
        """
        Replace a and b with one Helium particle at their midpoint.

        Protons and electrons are summed (net charge is conserved), the
        neutron count is raised to at least Helium's default, and velocity
        conserves momentum of the parents as captured in the snapshot.

        Returns:
            (new id, fusion center)
        """
        particle_a = store.remove(a.id)
        index.remove(a.id, particle_a.position)
        particle_b = store.remove(b.id)
        index.remove(b.id, particle_b.position)

        center = midpoint(particle_a.position, particle_b.position)
        helium = element_record(ElementKind.HELIUM)
        composition = (
            a.protons + b.protons,
            max(a.neutrons + b.neutrons, helium.neutrons),
            a.electrons + b.electrons,
        )

        momentum = a.mass * np.array(a.velocity) + b.mass * np.array(b.velocity)
        temperature = max(particle_a.temperature, particle_b.temperature) + FUSION_HEAT_RELEASE

        new_id = store.insert(
            center,
            element=ElementKind.HELIUM,
            composition=composition,
            temperature=temperature,
        )
        product = store.get_mut(new_id)
        product.velocity = momentum / product.mass
        index.insert(new_id, product.position)

        logger.debug("Fusion %d + %d -> %d at (%.4f, %.4f)", a.id, b.id, new_id, center[0], center[1])
        return new_id, center

    def _release_energy(self, store: EntityStore, index: SpatialHashGrid, center: np.ndarray, exclude: int):
        """Push every particle within fusion_radius away from center"""
        if self.fusion_radius <= 0 or self.fusion_impulse == 0:
            return

        for particle_id in index.query_range(center, self.fusion_radius):
            if particle_id == exclude or particle_id not in store:
                continue

            particle = store.get_mut(particle_id)
            direction, distance = normalize(particle.position - center)
            if distance == 0.0 or distance > self.fusion_radius:
                continue

            falloff = 1.0 - distance / self.fusion_radius
            particle.velocity = particle.velocity + direction * (self.fusion_impulse * falloff)

    def _transfer(self, store: EntityStore, a: _ParticleState, b: _ParticleState) -> bool:
        """
        Move one electron from the lower-affinity particle to the higher.

        Returns:
            True if an electron moved
        """
        if a.affinity == b.affinity:
            return False

        gainer, donor = (a, b) if a.affinity > b.affinity else (b, a)
        if donor.electrons < 1:
            return False

        store.remove_electron(donor.id)
        store.add_electron(gainer.id)
        return True
