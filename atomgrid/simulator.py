"""
Atomic grid simulation kernel.

Main simulation class that owns the particle store, the spatial hash grid,
the reaction engine and the seeded RNG, and advances them one phased step
at a time.
"""

import logging
import numpy as np
import os
import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .particle import Particle
from .elements import ElementKind, Color
from .entity_store import EntityStore
from .spatial_index import SpatialHashGrid
from .reactions import ReactionEngine, ReactionReport
from .statistics import StatisticsReporter
from .spawning import plan_random_atoms
from .forces import net_force, damping_force
from .geometry import clamp_speed, is_finite
from .data_types import SimulationConfig, Statistics, SnapshotEntry
from .loader import load_config
from .rng import make_rng
from .constants import TICK_TIME_WINDOW


logger = logging.getLogger(__name__)


class Simulator:
    """
    Main simulation class for the atomic grid.

    Owns every particle (through EntityStore) and keeps the SpatialHashGrid
    consistent with it. All public mutators update both structures before
    returning.
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        """
        Initialize an empty simulation.

        Args:
            config: Simulation configuration (defaults if omitted)
        """
        # Private copy: runtime changes such as set_neighbor_radius stay local
        self.config: SimulationConfig = replace(config) if config is not None else SimulationConfig()

        self.store = EntityStore(capacity=self.config.max_particles)
        self.index = SpatialHashGrid(self.config.neighbor_radius)
        self.reactions = ReactionEngine(
            fusion_probability=self.config.fusion_probability,
            transfer_probability=self.config.transfer_probability,
            enable_fusion=self.config.enable_fusion,
            enable_electron_transfer=self.config.enable_electron_transfer,
            fusion_radius=self.config.fusion_radius,
            fusion_impulse=self.config.fusion_impulse,
        )
        self.force_params = self.config.force_params()

        # One generator per consumer, each seeded once from the config seed
        self.rng = make_rng(self.config.seed, "reactions")
        self._spawn_rng = make_rng(self.config.seed, "spawn")

        # Simulation state
        self.tick_count: int = 0
        self.sim_time: float = 0.0
        self.last_reaction_report: ReactionReport = ReactionReport()
        self.total_fusions: int = 0
        self.total_transfers: int = 0
        self.degenerate_events: int = 0

        # Worker pool for force accumulation (created on first parallel step)
        self._workers: int = max(1, int(self.config.workers))
        self._executor: Optional[ThreadPoolExecutor] = None

        # Snapshot cache, invalidated by every mutation
        self._version: int = 0
        self._snapshot_version: int = -1
        self._snapshot_cache: Tuple[SnapshotEntry, ...] = ()

        # Performance metrics
        self._tick_times: List[float] = []
        self._tick_time_sum: float = 0.0
        self._tick_time_window: int = TICK_TIME_WINDOW

        # Phase timing breakdown
        self._force_times: List[float] = []
        self._integration_times: List[float] = []
        self._index_times: List[float] = []
        self._reaction_times: List[float] = []

        self._reporter = StatisticsReporter()

        logger.info("Simulation initialized: %gx%g domain, dt=%g, seed=%d, workers=%d",
                    self.config.width, self.config.height, self.config.time_step,
                    self.config.seed, self._workers)

    @classmethod
    def from_config_file(cls, path: Path, schema_dir: Optional[Path] = None) -> 'Simulator':
        """Build a simulator from a YAML config file"""
        return cls(load_config(path, schema_dir))

    # ======================================================================
    # Population management
    # ======================================================================

    def add_particle(self, position, element: ElementKind = ElementKind.HYDROGEN, velocity=None) -> int:
        """
        Add one particle with the element's default composition.

        Returns:
            New particle id
        """
        particle_id = self.store.insert(position, element=element, velocity=velocity,
                                        temperature=self.config.temperature)
        self.index.insert(particle_id, self.store.get_mut(particle_id).position)
        self._touch()
        return particle_id

    def add_custom_particle(self, position, protons: int, neutrons: int, electrons: int,
                            color: Color, velocity=None) -> int:
        """
        Add one CUSTOM particle with explicit composition and color.

        Returns:
            New particle id
        """
        particle_id = self.store.insert(
            position,
            element=ElementKind.CUSTOM,
            velocity=velocity,
            composition=(protons, neutrons, electrons),
            color=color,
            temperature=self.config.temperature,
        )
        self.index.insert(particle_id, self.store.get_mut(particle_id).position)
        self._touch()
        return particle_id

    def add_particles(self, positions: Sequence, elements: Optional[Sequence[ElementKind]] = None,
                      velocities: Optional[Sequence] = None) -> List[int]:
        """
        Bulk add particles (all-or-nothing).

        Raises:
            ValidationError: On mismatched input lengths
            CapacityError: On capacity overflow
        """
        ids = self.store.insert_bulk(positions, elements=elements, velocities=velocities,
                                     temperature=self.config.temperature)
        self._index_new(ids)
        return ids

    def add_custom_particles(self, positions: Sequence, compositions: Sequence[Tuple[int, int, int]],
                             colors: Sequence[Color], velocities: Optional[Sequence] = None) -> List[int]:
        """
        Bulk add CUSTOM particles (all-or-nothing).

        Raises:
            ValidationError: On mismatched input lengths
            CapacityError: On capacity overflow
        """
        ids = self.store.insert_bulk(
            positions,
            elements=[ElementKind.CUSTOM] * len(positions),
            compositions=compositions,
            colors=colors,
            velocities=velocities,
            temperature=self.config.temperature,
        )
        self._index_new(ids)
        return ids

    def _index_new(self, ids: List[int]):
        for particle_id in ids:
            self.index.insert(particle_id, self.store.get_mut(particle_id).position)
        self._touch()

    def generate_random_atoms(self, x_min: float = 0.0, y_min: float = 0.0,
                              x_max: Optional[float] = None, y_max: Optional[float] = None,
                              density: Optional[float] = None, limit: Optional[int] = None) -> List[int]:
        """
        Seed a random population over a rectangular region.

        Uses config.atom_density, spawn_spacing and element probabilities
        unless overridden. Draws come from the simulator's spawn generator.

        Returns:
            Ids of the new particles
        """
        plan = plan_random_atoms(
            self._spawn_rng,
            x_min, y_min,
            self.config.width if x_max is None else x_max,
            self.config.height if y_max is None else y_max,
            self.config.atom_density if density is None else density,
            self.config.element_weights(),
            self.config.spawn_spacing,
            limit=limit,
        )
        ids = self.add_particles(plan.positions, plan.elements)
        logger.info("Generated %d random atoms", len(ids))
        return ids

    def remove(self, particle_id: int) -> Particle:
        """
        Remove a particle from the store and the spatial grid.

        Raises:
            NotFoundError: If the id is unknown or removed
        """
        particle = self.store.remove(particle_id)
        self.index.remove(particle_id, particle.position)
        self._touch()
        return particle

    def get(self, particle_id: int) -> Particle:
        """Copy of a particle (NotFoundError if absent)"""
        return self.store.get(particle_id)

    def add_electron(self, particle_id: int):
        self.store.add_electron(particle_id)
        self._touch()

    def remove_electron(self, particle_id: int):
        self.store.remove_electron(particle_id)
        self._touch()

    def set_neighbor_radius(self, neighbor_radius: float):
        """Change the interaction radius and rebuild the grid (O(N))"""
        self.index.rebuild(self.store.particles(), neighbor_radius)
        self.config.neighbor_radius = self.index.neighbor_radius

    def __len__(self) -> int:
        return len(self.store)

    def _touch(self):
        self._version += 1

    # ======================================================================
    # Step
    # ======================================================================

    def step(self, dt: Optional[float] = None) -> ReactionReport:
        """
        Advance simulation by one time step.

        PHASED STEP CONTRACT:

        Phase 1: Force Accumulation (Read-Only)
        ---------------------------------------
        Every particle queries the grid at its step-start position and sums
        forces from neighbors (ascending id order) into a separate buffer.
        No particle state is written. Safe to run on worker threads.

        Phase 2: Integration (Write, per particle)
        ------------------------------------------
        Velocities and positions advance from the force buffer. Non-finite
        values are clamped to the last valid ones and the particle flagged.

        Phase 3: Index Sync (Write, single-threaded)
        --------------------------------------------
        Moved particles are re-bucketed in the spatial grid.

        Phase 4: Reaction Pass (Structural, single-threaded)
        ----------------------------------------------------
        Fusion and electron transfer run against a snapshot of the
        now-consistent store and grid.

        Each phase starts only after the previous one has completed.

        Args:
            dt: Time step (defaults to config.time_step)

        Returns:
            ReactionReport for this step
        """
        if dt is None:
            dt = self.config.time_step
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")

        start_time = time.perf_counter()

        ids = self.store.ids()
        count = len(ids)

        # ============================================================
        # PHASE 1: FORCE ACCUMULATION (Read-Only)
        # ============================================================
        phase_start = time.perf_counter()
        forces = self._accumulate_forces(ids)
        self._force_times.append(time.perf_counter() - phase_start)

        # ============================================================
        # PHASE 2: INTEGRATION
        # ============================================================
        phase_start = time.perf_counter()
        moved = self._integrate(ids, forces, dt)
        self._integration_times.append(time.perf_counter() - phase_start)

        # ============================================================
        # PHASE 3: INDEX SYNC
        # ============================================================
        phase_start = time.perf_counter()
        for particle_id, old_position, new_position in moved:
            self.index.update(particle_id, old_position, new_position)
        self._index_times.append(time.perf_counter() - phase_start)

        # ============================================================
        # PHASE 4: REACTION PASS
        # ============================================================
        phase_start = time.perf_counter()
        report = self.reactions.run(self.store, self.index, self.rng)
        self._reaction_times.append(time.perf_counter() - phase_start)

        self.last_reaction_report = report
        self.total_fusions += report.fusions
        self.total_transfers += report.transfers

        self.tick_count += 1
        self.sim_time += dt
        self._touch()

        self._record_tick_time(time.perf_counter() - start_time)

        if os.getenv('SIM_DEBUG_INVARIANTS') == '1':
            self.check_invariants()

        logger.debug("Step %d: %d particles, %d moved, %d fusions, %d transfers",
                     self.tick_count, count, len(moved), report.fusions, report.transfers)

        return report

    def _gather_arrays(self, ids: List[int]) -> Dict[str, np.ndarray]:
        """SoA copy of the inputs the force phase reads, in ascending id order"""
        count = len(ids)
        positions = np.empty((count, 2), dtype=np.float64)
        charges = np.empty(count, dtype=np.float64)
        masses = np.empty(count, dtype=np.float64)
        radii = np.empty(count, dtype=np.float64)

        for row, particle_id in enumerate(ids):
            particle = self.store.get_mut(particle_id)
            positions[row] = particle.position
            charges[row] = particle.charge
            masses[row] = particle.mass
            radii[row] = particle.radius

        return {'positions': positions, 'charges': charges, 'masses': masses, 'radii': radii}

    def _accumulate_forces(self, ids: List[int]) -> np.ndarray:
        """
        Net force per particle, one row per id.

        Rows are partitioned into contiguous chunks across the worker pool;
        each worker writes only its own rows of the output buffer.
        """
        count = len(ids)
        forces = np.zeros((count, 2), dtype=np.float64)
        if count == 0:
            return forces

        arrays = self._gather_arrays(ids)
        row_of_id = {particle_id: row for row, particle_id in enumerate(ids)}

        if self._workers > 1 and count >= 2 * self._workers:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self._workers,
                                                    thread_name_prefix="atomgrid-force")
            chunks = np.array_split(np.arange(count), self._workers)
            futures = [
                self._executor.submit(self._accumulate_rows, chunk, arrays, row_of_id, forces)
                for chunk in chunks if len(chunk) > 0
            ]
            # Join barrier: re-raises worker exceptions
            for future in futures:
                future.result()
        else:
            self._accumulate_rows(range(count), arrays, row_of_id, forces)

        return forces

    def _accumulate_rows(self, rows, arrays: Dict[str, np.ndarray], row_of_id: Dict[int, int],
                         forces: np.ndarray):
        positions = arrays['positions']
        charges = arrays['charges']
        masses = arrays['masses']
        radii = arrays['radii']
        radius = self.index.neighbor_radius
        radius_sq = radius * radius

        with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
            for row in rows:
                position = positions[row]
                neighbor_rows = np.fromiter(
                    (row_of_id[c] for c in self.index.query_range(position, radius)
                     if c in row_of_id and row_of_id[c] != row),
                    dtype=np.int64
                )
                if len(neighbor_rows) > 0:
                    delta = positions[neighbor_rows] - position
                    within = np.sum(delta * delta, axis=1) <= radius_sq
                    neighbor_rows = neighbor_rows[within]

                forces[row] = net_force(
                    position, charges[row], masses[row], radii[row],
                    positions[neighbor_rows], charges[neighbor_rows],
                    masses[neighbor_rows], radii[neighbor_rows],
                    self.force_params
                )

    def _integrate(self, ids: List[int], forces: np.ndarray, dt: float) -> List[Tuple[int, np.ndarray, np.ndarray]]:
        """
        Apply forces to velocities and positions.

        Returns:
            (id, old_position, new_position) for every particle that moved
        """
        damping = self.config.damping_factor
        max_speed = self.config.max_speed
        moved = []

        with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
            for row, particle_id in enumerate(ids):
                particle = self.store.get_mut(particle_id)
                force = forces[row]

                if not is_finite(force):
                    self._flag_degenerate(particle, "force")
                    force = particle.accumulated_force.copy()

                mass = particle.mass
                drag = damping_force(particle.velocity, mass, damping, dt)
                if mass > 0:
                    velocity = particle.velocity + (force - drag) / mass * dt
                else:
                    # Massless custom particle: acceleration is undefined
                    velocity = np.full(2, np.nan)
                if max_speed is not None and is_finite(velocity):
                    velocity = clamp_speed(velocity, max_speed)
                position = particle.position + velocity * dt

                if not (is_finite(velocity) and is_finite(position)):
                    self._flag_degenerate(particle, "state")
                    velocity = particle.velocity.copy()
                    position = particle.position.copy()

                particle.accumulated_force = np.array(force, dtype=np.float64)
                particle.velocity = velocity

                if not np.array_equal(position, particle.position):
                    old_position = particle.position.copy()
                    self.store.relocate(particle_id, position)
                    moved.append((particle_id, old_position, particle.position))

        return moved

    def _flag_degenerate(self, particle: Particle, what: str):
        if not particle.degenerate:
            logger.warning("Particle %d: non-finite %s at tick %d, clamped to last valid value",
                           particle.id, what, self.tick_count)
        particle.degenerate = True
        self.degenerate_events += 1

    def run(self, steps: int, dt: Optional[float] = None) -> List[ReactionReport]:
        """Call step() repeatedly"""
        return [self.step(dt) for _ in range(steps)]

    # ======================================================================
    # Outputs
    # ======================================================================

    def snapshot(self) -> Tuple[SnapshotEntry, ...]:
        """
        Render records for every particle in ascending id order.

        Read-only and cached: repeated calls without an intervening
        mutation return the same tuple.
        """
        if self._snapshot_version != self._version:
            self._snapshot_cache = tuple(
                SnapshotEntry(
                    id=particle.id,
                    position=particle.position_tuple(),
                    color=tuple(float(c) for c in particle.display_color()),
                    radius=float(particle.radius),
                )
                for particle in self.store.particles()
            )
            self._snapshot_version = self._version
        return self._snapshot_cache

    def snapshot_arrays(self) -> Dict[str, np.ndarray]:
        """
        Snapshot as numpy arrays for rasterizers.

        Returns:
            Dict with ids (N,), positions (N, 2), colors (N, 4), radii (N,)
        """
        entries = self.snapshot()
        count = len(entries)
        if count == 0:
            return {
                'ids': np.empty(0, dtype=np.int64),
                'positions': np.empty((0, 2), dtype=np.float64),
                'colors': np.empty((0, 4), dtype=np.float64),
                'radii': np.empty(0, dtype=np.float64),
            }
        return {
            'ids': np.array([e.id for e in entries], dtype=np.int64),
            'positions': np.array([e.position for e in entries], dtype=np.float64),
            'colors': np.array([e.color for e in entries], dtype=np.float64),
            'radii': np.array([e.radius for e in entries], dtype=np.float64),
        }

    def statistics(self) -> Statistics:
        """Totals over all live particles (O(N))"""
        return self._reporter.compute(self.store.particles())

    def degenerate_ids(self) -> List[int]:
        """Ids of particles flagged for numeric degeneracy"""
        return [p.id for p in self.store.particles() if p.degenerate]

    def check_invariants(self):
        """
        Assert store and grid agree.

        Raises:
            AssertionError: On any inconsistency
        """
        self.store.check_invariants()
        assert len(self.index) == len(self.store), \
            f"Grid holds {len(self.index)} ids, store holds {len(self.store)}"
        for particle in self.store.particles():
            assert self.index.indexed_cell(particle.id) == self.index.cell_of(particle.position), \
                f"Particle {particle.id} indexed in stale cell"

    def to_dict(self) -> dict:
        """
        Complete simulation state.

        Returns:
            Dict with tick_count, sim_time, particles, statistics, timing
        """
        return {
            'tick_count': self.tick_count,
            'sim_time': self.sim_time,
            'particle_count': len(self.store),
            'particles': [p.to_dict() for p in self.store.particles()],
            'statistics': self.statistics().to_dict(),
            'reactions': {
                'total_fusions': self.total_fusions,
                'total_transfers': self.total_transfers,
                'last': self.last_reaction_report.to_dict(),
            },
            'timing': self.get_tick_stats(),
        }

    # ======================================================================
    # Timing / console reporting
    # ======================================================================

    def get_tick_stats(self) -> dict:
        """
        Get current tick timing statistics.

        Returns:
            Dict with tick_count, avg_tick_time_ms, last_tick_time_ms
        """
        if not self._tick_times:
            return {
                'tick_count': self.tick_count,
                'avg_tick_time_ms': 0.0,
                'last_tick_time_ms': 0.0
            }

        avg_time = self._tick_time_sum / len(self._tick_times)
        last_time = self._tick_times[-1]

        return {
            'tick_count': self.tick_count,
            'avg_tick_time_ms': avg_time * 1000.0,
            'last_tick_time_ms': last_time * 1000.0
        }

    def _record_tick_time(self, elapsed: float):
        self._tick_times.append(elapsed)
        self._tick_time_sum += elapsed

        # Maintain rolling window
        if len(self._tick_times) > self._tick_time_window:
            removed = self._tick_times.pop(0)
            self._tick_time_sum -= removed

        for samples in (self._force_times, self._integration_times,
                        self._index_times, self._reaction_times):
            if len(samples) > self._tick_time_window:
                samples.pop(0)

    def print_tick_summary(self):
        """Print tick summary to console (lightweight monitoring)"""
        stats = self.get_tick_stats()
        print(f"Tick {stats['tick_count']:5d} | "
              f"Avg: {stats['avg_tick_time_ms']:7.3f} ms | "
              f"Last: {stats['last_tick_time_ms']:7.3f} ms | "
              f"Particles: {len(self.store)} | "
              f"Fusions: {self.total_fusions} | "
              f"Transfers: {self.total_transfers}")

    def print_perf_breakdown(self):
        """Print average per-phase timings over the rolling window"""
        def avg_ms(samples: List[float]) -> float:
            return (sum(samples) / len(samples)) * 1000.0 if samples else 0.0

        print(f"\n[Perf Breakdown] Tick {self.tick_count} ({len(self.store)} particles, "
              f"{self._workers} workers)")
        print(f"  Forces:       {avg_ms(self._force_times):7.3f} ms")
        print(f"  Integration:  {avg_ms(self._integration_times):7.3f} ms")
        print(f"  Index sync:   {avg_ms(self._index_times):7.3f} ms")
        print(f"  Reactions:    {avg_ms(self._reaction_times):7.3f} ms")
        print(f"  Total:        {avg_ms(self._tick_times):7.3f} ms")

    def print_statistics(self, title: str = "Statistics"):
        self._reporter.print_report(self.statistics(), title)

    # ======================================================================
    # Lifecycle
    # ======================================================================

    def close(self):
        """Shut down the force worker pool"""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> 'Simulator':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
