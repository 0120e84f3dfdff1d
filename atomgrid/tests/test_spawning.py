"""
Test random atom generation.

Verifies:
- Same seed produces the same population
- Density bounds the number of atoms
- Positions stay inside the requested region
"""

import sys
import numpy as np
import pytest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from atomgrid.spawning import plan_random_atoms
from atomgrid.elements import ElementKind, SPAWNABLE_ELEMENTS
from atomgrid.rng import make_rng, make_seed, normalized_probabilities

WEIGHTS = (0.4, 0.2, 0.15, 0.15, 0.1)


def test_same_seed_same_population():
    first = plan_random_atoms(make_rng(9, "spawn"), 0, 0, 50, 50, 0.3, WEIGHTS, 5.0)
    second = plan_random_atoms(make_rng(9, "spawn"), 0, 0, 50, 50, 0.3, WEIGHTS, 5.0)

    assert len(first) == len(second)
    assert first.elements == second.elements
    for a, b in zip(first.positions, second.positions):
        assert np.array_equal(a, b)


def test_density_extremes():
    empty = plan_random_atoms(make_rng(1), 0, 0, 40, 40, 0.0, WEIGHTS, 4.0)
    assert len(empty) == 0

    full = plan_random_atoms(make_rng(1), 0, 0, 40, 40, 1.0, WEIGHTS, 4.0)
    assert len(full) == 100


def test_positions_inside_region():
    plan = plan_random_atoms(make_rng(2), 10, 20, 35, 47, 1.0, WEIGHTS, 4.0)
    positions = np.array(plan.positions)
    assert np.all(positions[:, 0] >= 10) and np.all(positions[:, 0] <= 35)
    assert np.all(positions[:, 1] >= 20) and np.all(positions[:, 1] <= 47)


def test_single_element_weights():
    plan = plan_random_atoms(make_rng(3), 0, 0, 20, 20, 1.0, (0, 0, 0, 0, 1), 4.0)
    assert set(plan.elements) == {ElementKind.IRON}


def test_limit_caps_population():
    plan = plan_random_atoms(make_rng(4), 0, 0, 100, 100, 1.0, WEIGHTS, 2.0, limit=17)
    assert len(plan) == 17


@pytest.mark.parametrize("density,spacing", [(1.5, 4.0), (-0.1, 4.0), (0.5, 0.0)])
def test_invalid_arguments(density, spacing):
    with pytest.raises(ValueError):
        plan_random_atoms(make_rng(5), 0, 0, 10, 10, density, WEIGHTS, spacing)


def test_probabilities_normalized():
    probs = normalized_probabilities((2, 1, 1, 0, 0))
    assert probs.sum() == pytest.approx(1.0)
    assert len(probs) == len(SPAWNABLE_ELEMENTS)

    with pytest.raises(ValueError):
        normalized_probabilities((0, 0, 0, 0, 0))
    with pytest.raises(ValueError):
        normalized_probabilities((1, -1, 0, 0, 0))


def test_seed_streams_are_independent():
    assert make_seed(42, "spawn") == make_seed(42, "spawn")
    assert make_seed(42, "spawn") != make_seed(42, "reactions")


if __name__ == "__main__":
    test_same_seed_same_population()
    test_density_extremes()
    print("\n[OK] Spawning tests passed")
