"""
Spatial hash grid for neighbor queries.

Positions are quantized into square cells of side
cell_size = CELL_SIZE_FACTOR * neighbor_radius. Each cell holds the ids
whose last indexed position hashed to it. The grid is a cache over the
EntityStore: operations on ids it does not know are no-ops.

Range queries return candidates from every cell overlapping the square of
half-width radius around the center. This over-approximates the circle, so
callers must apply an exact distance check.
"""

import math
import numpy as np
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .particle import Particle
from .constants import CELL_SIZE_FACTOR, QUERY_EPSILON


CellKey = Tuple[int, int]


class SpatialHashGrid:
    """
    Uniform grid keyed by floor(position / cell_size).

    Each indexed id lives in exactly one cell; _cell_of_id mirrors the
    bucket membership so stale positions passed to remove()/update() can
    never leave a duplicate behind.
    """

    def __init__(self, neighbor_radius: float):
        """
        Args:
            neighbor_radius: Interaction radius; fixes cell_size until rebuild()
        """
        if neighbor_radius <= 0:
            raise ValueError(f"neighbor_radius must be positive, got {neighbor_radius}")

        self.neighbor_radius = float(neighbor_radius)
        self.cell_size = CELL_SIZE_FACTOR * self.neighbor_radius
        self._cells: Dict[CellKey, Set[int]] = {}
        self._cell_of_id: Dict[int, CellKey] = {}

    def cell_of(self, position) -> CellKey:
        """Cell containing position"""
        return (
            int(math.floor(float(position[0]) / self.cell_size)),
            int(math.floor(float(position[1]) / self.cell_size)),
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, particle_id: int, position):
        """Index particle_id at position (moves it if already indexed)"""
        cell = self.cell_of(position)
        previous = self._cell_of_id.get(particle_id)
        if previous == cell:
            return
        if previous is not None:
            self._discard(particle_id, previous)

        self._cells.setdefault(cell, set()).add(particle_id)
        self._cell_of_id[particle_id] = cell

    def remove(self, particle_id: int, position):
        """
        Drop particle_id from the grid.

        Uses the cell of position when the id is there, otherwise the cell
        the id was last indexed in. Unknown ids are ignored.
        """
        cell = self.cell_of(position)
        bucket = self._cells.get(cell)
        if bucket is None or particle_id not in bucket:
            cell = self._cell_of_id.get(particle_id)
            if cell is None:
                return

        self._discard(particle_id, cell)
        del self._cell_of_id[particle_id]

    def update(self, particle_id: int, old_position, new_position):
        """
        Re-index a moved particle.

        No-op when both positions hash to the same cell or when the id is
        not indexed.
        """
        if particle_id not in self._cell_of_id:
            return

        old_cell = self.cell_of(old_position)
        new_cell = self.cell_of(new_position)
        if old_cell == new_cell and self._cell_of_id[particle_id] == new_cell:
            return

        self.remove(particle_id, old_position)
        self.insert(particle_id, new_position)

    def _discard(self, particle_id: int, cell: CellKey):
        bucket = self._cells.get(cell)
        if bucket is None:
            return
        bucket.discard(particle_id)
        if not bucket:
            del self._cells[cell]

    def rebuild(self, particles: Iterable[Particle], neighbor_radius: Optional[float] = None):
        """
        Re-index every particle from scratch (O(N)).

        Args:
            particles: Live particles to index
            neighbor_radius: Optional new interaction radius (recomputes cell_size)
        """
        if neighbor_radius is not None:
            if neighbor_radius <= 0:
                raise ValueError(f"neighbor_radius must be positive, got {neighbor_radius}")
            self.neighbor_radius = float(neighbor_radius)
            self.cell_size = CELL_SIZE_FACTOR * self.neighbor_radius

        self.clear()
        for particle in particles:
            self.insert(particle.id, particle.position)

    def clear(self):
        self._cells.clear()
        self._cell_of_id.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_range(self, center, radius: float) -> List[int]:
        """
        Candidate ids near center.

        Enumerates every cell overlapping the axis-aligned square of
        half-width radius (inclusive). A zero radius is widened to
        QUERY_EPSILON.

        Args:
            center: [x, y]
            radius: Query half-width

        Returns:
            Candidate ids in ascending order (may include ids farther than radius)
        """
        if not self._cells:
            return []

        if radius <= 0.0:
            radius = QUERY_EPSILON

        cx = float(center[0])
        cy = float(center[1])
        min_i = int(math.floor((cx - radius) / self.cell_size))
        max_i = int(math.floor((cx + radius) / self.cell_size))
        min_j = int(math.floor((cy - radius) / self.cell_size))
        max_j = int(math.floor((cy + radius) / self.cell_size))

        candidates: List[int] = []
        for i in range(min_i, max_i + 1):
            for j in range(min_j, max_j + 1):
                bucket = self._cells.get((i, j))
                if bucket:
                    candidates.extend(bucket)

        candidates.sort()
        return candidates

    def neighbors_within(self, center, radius: float, positions_of: Dict[int, np.ndarray]) -> List[int]:
        """
        Ids whose position lies within radius of center (exact check).

        Args:
            center: [x, y]
            radius: Inclusive distance limit
            positions_of: id -> position lookup for the exact check

        Returns:
            Matching ids in ascending order
        """
        center = np.asarray(center, dtype=np.float64)
        radius_sq = radius * radius
        matches = []
        for particle_id in self.query_range(center, radius):
            diff = positions_of[particle_id] - center
            if np.dot(diff, diff) <= radius_sq:
                matches.append(particle_id)
        return matches

    def cell_members(self, cell: CellKey) -> Set[int]:
        return set(self._cells.get(cell, ()))

    def indexed_cell(self, particle_id: int) -> Optional[CellKey]:
        """Cell the id is currently indexed in, or None"""
        return self._cell_of_id.get(particle_id)

    @property
    def cell_count(self) -> int:
        """Number of non-empty cells"""
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cell_of_id)

    def __contains__(self, particle_id) -> bool:
        return particle_id in self._cell_of_id
