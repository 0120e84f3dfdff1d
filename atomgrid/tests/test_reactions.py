"""
Test fusion and electron transfer.

Verifies:
- Contact detection uses half the summed radii
- Forced fusion replaces two hydrogens with one helium
- Electron transfer moves charge toward the higher affinity
- Each particle reacts at most once per pass
- Total charge is conserved
"""

import sys
import numpy as np
import pytest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from atomgrid.reactions import ReactionEngine
from atomgrid.entity_store import EntityStore
from atomgrid.spatial_index import SpatialHashGrid
from atomgrid.elements import ElementKind
from atomgrid.statistics import StatisticsReporter
from atomgrid.rng import make_rng


def build_world(entries, neighbor_radius=5.0):
    """entries: list of (position, element) or (position, composition)"""
    store = EntityStore()
    grid = SpatialHashGrid(neighbor_radius)
    for position, what in entries:
        if isinstance(what, ElementKind):
            pid = store.insert(position, what)
        else:
            pid = store.insert(position, ElementKind.CUSTOM, composition=what)
        grid.insert(pid, store.get_mut(pid).position)
    return store, grid


def total_charge(store):
    return StatisticsReporter.compute(store.particles()).total_charge


def test_forced_fusion_creates_helium():
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
    ])
    engine = ReactionEngine(fusion_probability=1.0, transfer_probability=0.0)

    report = engine.run(store, grid, make_rng(1))

    assert report.fusions == 1
    assert report.removed_ids == [0, 1]
    assert len(store) == 1

    helium = store.get(report.created_ids[0])
    assert helium.element is ElementKind.HELIUM
    assert helium.protons == 2
    assert helium.electrons == 2
    assert helium.neutrons >= 2
    assert np.allclose(helium.position, [0.005, 0.0])
    assert helium.id not in (0, 1)

    assert 0 not in grid and 1 not in grid
    assert helium.id in grid
    store.check_invariants()
    print(f"[OK] Fusion produced He id={helium.id} at {helium.position}")


def test_fusion_conserves_momentum():
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
    ])
    store.get_mut(0).velocity = np.array([1.0, 0.0])
    store.get_mut(1).velocity = np.array([-3.0, 2.0])
    before = sum(p.mass * p.velocity for p in store.particles())

    engine = ReactionEngine(fusion_probability=1.0, transfer_probability=0.0)
    report = engine.run(store, grid, make_rng(1))

    helium = store.get(report.created_ids[0])
    assert np.allclose(helium.mass * helium.velocity, before, rtol=1e-3)


def test_no_contact_no_reaction():
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([3.0, 0.0], ElementKind.HYDROGEN),
    ])
    engine = ReactionEngine(fusion_probability=1.0, transfer_probability=1.0)
    report = engine.run(store, grid, make_rng(1))
    assert report.contacts == 0
    assert len(store) == 2


def test_electron_transfer_toward_higher_affinity():
    # Oxygen nucleus (p=8) out-pulls a lone proton with one electron
    store, grid = build_world([
        ([0.0, 0.0], (1, 0, 1)),
        ([0.05, 0.0], (8, 8, 8)),
    ])
    engine = ReactionEngine(enable_fusion=False, transfer_probability=1.0)
    charge_before = total_charge(store)

    report = engine.run(store, grid, make_rng(3))

    assert report.transfers == 1
    assert store.get(0).electrons == 0
    assert store.get(1).electrons == 9
    assert total_charge(store) == charge_before


def test_equal_affinity_transfers_nothing():
    store, grid = build_world([
        ([0.0, 0.0], (6, 6, 6)),
        ([0.05, 0.0], (6, 6, 6)),
    ])
    engine = ReactionEngine(enable_fusion=False, transfer_probability=1.0)
    report = engine.run(store, grid, make_rng(3))
    assert report.transfers == 0
    assert store.get(0).electrons == 6
    assert store.get(1).electrons == 6


def test_donor_without_electrons_transfers_nothing():
    store, grid = build_world([
        ([0.0, 0.0], (1, 0, 0)),
        ([0.05, 0.0], (8, 8, 8)),
    ])
    engine = ReactionEngine(enable_fusion=False, transfer_probability=1.0)
    report = engine.run(store, grid, make_rng(3))
    assert report.transfers == 0
    assert store.get(0).electrons == 0


def test_each_particle_reacts_once():
    """Three hydrogens in mutual contact fuse only one pair"""
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
        ([0.005, 0.01], ElementKind.HYDROGEN),
    ])
    engine = ReactionEngine(fusion_probability=1.0, transfer_probability=1.0,
                            fusion_impulse=0.0)

    report = engine.run(store, grid, make_rng(5))

    assert report.fusions == 1
    # Lowest pair fuses first and consumes both members
    assert report.removed_ids == [0, 1]
    assert 2 in store
    assert len(store) == 2
    assert total_charge(store) == 0


def test_fusion_pushes_nearby_particles():
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
        ([2.0, 0.0], ElementKind.CARBON),
    ])
    engine = ReactionEngine(fusion_probability=1.0, enable_electron_transfer=False,
                            fusion_radius=5.0, fusion_impulse=2.0)
    engine.run(store, grid, make_rng(1))

    carbon = store.get(2)
    assert carbon.velocity[0] > 0.0
    assert carbon.velocity[0] == pytest.approx(2.0 * (1.0 - 1.995 / 5.0))


def test_mirrored_fusions_are_symmetric():
    """Two mirrored H+H pairs yield mirrored products regardless of pair order"""
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
        ([2.0, 0.0], ElementKind.HYDROGEN),
        ([2.01, 0.0], ElementKind.HYDROGEN),
    ])
    engine = ReactionEngine(fusion_probability=1.0, enable_electron_transfer=False,
                            fusion_radius=5.0, fusion_impulse=2.0)

    report = engine.run(store, grid, make_rng(1))

    assert report.fusions == 2
    first = store.get(report.created_ids[0])
    second = store.get(report.created_ids[1])
    print(f"  He velocities: {first.velocity} / {second.velocity}")

    # Each product is pushed only by the other fusion's release
    expected = 2.0 * (1.0 - 2.0 / 5.0)
    assert first.velocity[0] == pytest.approx(-expected, rel=1e-3)
    assert second.velocity[0] == pytest.approx(expected, rel=1e-3)
    assert np.allclose(first.velocity, -second.velocity, rtol=1e-3)
    assert first.velocity[1] == 0.0 and second.velocity[1] == 0.0


def test_disabled_engine_does_nothing():
    store, grid = build_world([
        ([0.0, 0.0], ElementKind.HYDROGEN),
        ([0.01, 0.0], ElementKind.HYDROGEN),
    ])
    engine = ReactionEngine(enable_fusion=False, enable_electron_transfer=False)
    assert not engine.active
    report = engine.run(store, grid, make_rng(1))
    assert report.contacts == 0
    assert len(store) == 2


def test_invalid_probability_rejected():
    with pytest.raises(ValueError):
        ReactionEngine(fusion_probability=1.5)


if __name__ == "__main__":
    test_forced_fusion_creates_helium()
    test_each_particle_reacts_once()
    print("\n[OK] Reaction tests passed")
