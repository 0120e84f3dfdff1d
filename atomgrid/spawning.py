"""
Random atom generation.

The domain is tiled into square lattice cells of side spawn_spacing. Each
cell receives an atom with probability atom_density, placed uniformly at
random inside the cell, with its element drawn from the configured element
probabilities. All draws come from the generator passed in, so the same
seed always produces the same initial population.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional

from .elements import ElementKind
from .rng import normalized_probabilities, random_element


@dataclass
class SpawnPlan:
    """Positions and elements ready for EntityStore.insert_bulk()"""
    positions: List[np.ndarray]
    elements: List[ElementKind]

    def __len__(self):
        return len(self.positions)


def plan_random_atoms(
    rng: np.random.Generator,
    x_min: float,
    y_min: float,
    x_max: float,
    y_max: float,
    density: float,
    element_weights,
    spacing: float,
    limit: Optional[int] = None
) -> SpawnPlan:
    """
    Draw a random population for a rectangular region.

    Args:
        rng: Generator owned by the simulator
        x_min, y_min, x_max, y_max: Region bounds
        density: Probability that a lattice cell holds an atom (0.0-1.0)
        element_weights: Weights aligned with SPAWNABLE_ELEMENTS (normalized here)
        spacing: Lattice cell side
        limit: Optional cap on the number of atoms

    Returns:
        SpawnPlan with positions and elements in lattice scan order
    """
    if not 0.0 <= density <= 1.0:
        raise ValueError(f"density must be within [0, 1], got {density}")
    if spacing <= 0:
        raise ValueError(f"spacing must be positive, got {spacing}")

    probabilities = normalized_probabilities(element_weights)

    columns = max(1, int(np.ceil((x_max - x_min) / spacing)))
    rows = max(1, int(np.ceil((y_max - y_min) / spacing)))

    positions: List[np.ndarray] = []
    elements: List[ElementKind] = []

    for row in range(rows):
        cell_y = y_min + row * spacing
        for column in range(columns):
            if limit is not None and len(positions) >= limit:
                return SpawnPlan(positions, elements)

            if rng.random() >= density:
                continue

            cell_x = x_min + column * spacing
            x = rng.uniform(cell_x, min(cell_x + spacing, x_max))
            y = rng.uniform(cell_y, min(cell_y + spacing, y_max))
            positions.append(np.array([x, y], dtype=np.float64))
            elements.append(random_element(rng, probabilities))

    return SpawnPlan(positions, elements)
