"""
Particle ownership and lookup.

The EntityStore is the source of truth for every live particle. It assigns
ids from a monotonically increasing counter (ids are never reassigned
during a run) and maintains a bidirectional id <-> position lookup.

The spatial hash grid is NOT maintained here: relocate() only moves the
particle and its position-index entry. Callers update the SpatialIndex as a
separate explicit step.
"""

import numpy as np
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .particle import Particle
from .elements import ElementKind, Color, element_record
from .errors import NotFoundError, ValidationError, CapacityError
from .constants import TEMPERATURE_DEFAULT


PositionKey = Tuple[float, float]


def position_key(position) -> PositionKey:
    """Hashable key for an exact position"""
    return float(position[0]), float(position[1])


class EntityStore:
    """
    Owns all particle records.

    Maps:
        _particles: id -> Particle
        _ids_at: exact position -> set of ids (one entry per live particle)
    """

    def __init__(self, capacity: Optional[int] = None):
        """
        Args:
            capacity: Optional maximum number of live particles (None = unlimited)
        """
        self._particles: Dict[int, Particle] = {}
        self._ids_at: Dict[PositionKey, Set[int]] = {}
        self._next_id: int = 0
        self.capacity = capacity

    # ------------------------------------------------------------------
    # Insertion
    # ------------------------------------------------------------------

    def insert(
        self,
        position,
        element: ElementKind = ElementKind.HYDROGEN,
        velocity=None,
        composition: Optional[Tuple[int, int, int]] = None,
        color: Optional[Color] = None,
        temperature: float = TEMPERATURE_DEFAULT
    ) -> int:
        """
        Insert a single particle.

        Args:
            position: [x, y]
            element: Element tag (default composition and color source)
            velocity: Optional initial velocity (default zero)
            composition: Optional (protons, neutrons, electrons) override
            color: Optional RGBA override
            temperature: Initial temperature (K)

        Returns:
            New particle id

        Raises:
            CapacityError: If the store is full
        """
        if self.capacity is not None and len(self._particles) >= self.capacity:
            raise CapacityError(f"Store capacity {self.capacity} reached")

        particle = self._build_particle(position, element, velocity, composition, color, temperature)
        self._register(particle)
        return particle.id

    def insert_bulk(
        self,
        positions: Sequence,
        elements: Optional[Sequence[ElementKind]] = None,
        compositions: Optional[Sequence[Tuple[int, int, int]]] = None,
        colors: Optional[Sequence[Color]] = None,
        velocities: Optional[Sequence] = None,
        temperature: float = TEMPERATURE_DEFAULT
    ) -> List[int]:
        """
        Insert many particles, all-or-nothing.

        Every provided sequence must have the same length as positions.
        Validation and capacity checks happen before any mutation; if
        allocation fails midway the partial batch is rolled back.

        Args:
            positions: Sequence of [x, y]
            elements: Optional element per particle (default HYDROGEN)
            compositions: Optional (p, n, e) per particle
            colors: Optional RGBA per particle
            velocities: Optional [vx, vy] per particle
            temperature: Initial temperature for the whole batch

        Returns:
            List of new ids, in input order

        Raises:
            ValidationError: On mismatched lengths or invalid entries
            CapacityError: On capacity overflow or allocation failure
        """
        count = len(positions)
        for name, values in (('elements', elements), ('compositions', compositions),
                             ('colors', colors), ('velocities', velocities)):
            if values is not None and len(values) != count:
                raise ValidationError(
                    f"Bulk insert length mismatch: {count} positions but {len(values)} {name}"
                )

        if self.capacity is not None and len(self._particles) + count > self.capacity:
            raise CapacityError(
                f"Bulk insert of {count} exceeds capacity {self.capacity} "
                f"({len(self._particles)} live)"
            )

        # Build every record before touching the maps so bad input leaves no trace
        try:
            pending = []
            first_id = self._next_id
            for i in range(count):
                pending.append(self._build_particle(
                    positions[i],
                    elements[i] if elements is not None else ElementKind.HYDROGEN,
                    velocities[i] if velocities is not None else None,
                    compositions[i] if compositions is not None else None,
                    colors[i] if colors is not None else None,
                    temperature,
                    particle_id=first_id + i
                ))
        except (ValueError, TypeError) as e:
            raise ValidationError(f"Invalid bulk insert entry: {e}") from e
        except MemoryError as e:
            raise CapacityError(f"Allocation failed while preparing {count} particles") from e

        inserted: List[int] = []
        try:
            for particle in pending:
                self._register(particle)
                inserted.append(particle.id)
        except MemoryError as e:
            for particle_id in inserted:
                self._unregister(particle_id)
            raise CapacityError(f"Allocation failed after {len(inserted)} of {count} inserts") from e

        self._next_id = first_id + count
        return inserted

    def _build_particle(self, position, element, velocity, composition, color, temperature,
                        particle_id: Optional[int] = None) -> Particle:
        record = element_record(element)
        if composition is None:
            composition = (record.protons, record.neutrons, record.electrons)
        protons, neutrons, electrons = (int(c) for c in composition)

        if particle_id is None:
            particle_id = self._next_id

        particle = Particle(
            id=particle_id,
            position=np.array(position, dtype=np.float64),
            velocity=np.zeros(2, dtype=np.float64) if velocity is None else np.array(velocity, dtype=np.float64),
            protons=protons,
            neutrons=neutrons,
            electrons=electrons,
            element=element,
            base_color=record.color if color is None else tuple(color),
            temperature=float(temperature),
        )

        if len(particle.base_color) != 4:
            raise ValueError(f"Color must be RGBA, got {particle.base_color}")

        return particle

    def _register(self, particle: Particle):
        self._particles[particle.id] = particle
        self._ids_at.setdefault(position_key(particle.position), set()).add(particle.id)
        if particle.id >= self._next_id:
            self._next_id = particle.id + 1

    def _unregister(self, particle_id: int) -> Particle:
        particle = self._particles.pop(particle_id)
        key = position_key(particle.position)
        bucket = self._ids_at.get(key)
        if bucket is not None:
            bucket.discard(particle_id)
            if not bucket:
                del self._ids_at[key]
        return particle

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, particle_id: int) -> Particle:
        """
        Copy of a particle (safe to keep across structural mutations).

        Raises:
            NotFoundError: If the id is unknown or removed
        """
        return self.get_mut(particle_id).copy()

    def get_mut(self, particle_id: int) -> Particle:
        """
        Live particle record for in-place mutation.

        The reference must not be kept across remove() calls.

        Raises:
            NotFoundError: If the id is unknown or removed
        """
        particle = self._particles.get(particle_id)
        if particle is None:
            raise NotFoundError(particle_id)
        return particle

    def ids_at(self, position) -> Set[int]:
        """Ids of particles located exactly at position"""
        return set(self._ids_at.get(position_key(position), ()))

    def id_at(self, position) -> Optional[int]:
        """Lowest id located exactly at position, or None"""
        bucket = self._ids_at.get(position_key(position))
        if not bucket:
            return None
        return min(bucket)

    def ids(self) -> List[int]:
        """Live ids in ascending order"""
        return sorted(self._particles)

    def particles(self) -> Iterator[Particle]:
        """Live particle records in ascending id order"""
        for particle_id in sorted(self._particles):
            yield self._particles[particle_id]

    @property
    def next_id(self) -> int:
        """Id that the next insert will receive"""
        return self._next_id

    def __len__(self) -> int:
        return len(self._particles)

    def __contains__(self, particle_id) -> bool:
        return particle_id in self._particles

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def remove(self, particle_id: int) -> Particle:
        """
        Remove a particle and its position-index entry.

        Returns:
            The removed particle (owned by the caller)

        Raises:
            NotFoundError: If the id is unknown or already removed
        """
        if particle_id not in self._particles:
            raise NotFoundError(particle_id)
        return self._unregister(particle_id)

    def relocate(self, particle_id: int, new_position):
        """
        Move a particle and update the position -> id lookup.

        Does not touch the spatial hash grid.

        Raises:
            NotFoundError: If the id is unknown
        """
        particle = self.get_mut(particle_id)
        old_key = position_key(particle.position)
        new_position = np.array(new_position, dtype=np.float64).reshape(2)
        new_key = position_key(new_position)

        if old_key != new_key:
            bucket = self._ids_at.get(old_key)
            if bucket is not None:
                bucket.discard(particle_id)
                if not bucket:
                    del self._ids_at[old_key]
            self._ids_at.setdefault(new_key, set()).add(particle_id)

        particle.position = new_position

    def add_electron(self, particle_id: int):
        self.get_mut(particle_id).add_electron()

    def remove_electron(self, particle_id: int):
        self.get_mut(particle_id).remove_electron()

    def set_composition(self, particle_id: int, protons: int, neutrons: int, electrons: int):
        self.get_mut(particle_id).set_composition(protons, neutrons, electrons)

    def clear(self):
        """Remove every particle (the id counter keeps advancing)"""
        self._particles.clear()
        self._ids_at.clear()

    def check_invariants(self):
        """
        Assert the id <-> position lookup is a bijection over live particles.

        Raises:
            AssertionError: On any inconsistency
        """
        indexed = 0
        for key, bucket in self._ids_at.items():
            assert bucket, f"Empty position bucket at {key}"
            for particle_id in bucket:
                particle = self._particles.get(particle_id)
                assert particle is not None, f"Orphaned position entry for id {particle_id}"
                assert position_key(particle.position) == key, \
                    f"Particle {particle_id} indexed at {key} but located at {particle.position}"
                indexed += 1
        assert indexed == len(self._particles), \
            f"{indexed} position entries for {len(self._particles)} particles"
