"""
Multi-N performance check for the phased simulation step.

Runs step() at several population sizes and worker counts and reports
median/p90 step time plus the per-phase breakdown.
"""

# Pin threading for stable measurement
import os
os.environ.update({
    'OPENBLAS_NUM_THREADS': '1',
    'MKL_NUM_THREADS': '1',
    'NUMEXPR_NUM_THREADS': '1',
    'OMP_NUM_THREADS': '1'
})

import gc
import sys
import time
import numpy as np
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from atomgrid.simulator import Simulator
from atomgrid.data_types import SimulationConfig


def create_simulator(atom_count: int, workers: int, seed: int = 42) -> Simulator:
    """Square domain sized so a full lattice holds about atom_count atoms"""
    spacing = 4.0
    side = float(np.ceil(np.sqrt(atom_count))) * spacing
    config = SimulationConfig(
        width=side,
        height=side,
        spawn_spacing=spacing,
        atom_density=1.0,
        seed=seed,
        workers=workers,
    )
    sim = Simulator(config)
    sim.generate_random_atoms(limit=atom_count)
    return sim


def run_step_perf_test(atom_count: int, workers: int = 1, runs: int = 7) -> dict:
    """
    Time step() at a given population size.

    Args:
        atom_count: Number of atoms to spawn
        workers: Force worker threads
        runs: Number of timed steps (default 7 for stable median)

    Returns:
        Dict with p50, p90, min, max in milliseconds
    """
    with create_simulator(atom_count, workers) as sim:
        # Warm-up step (creates the worker pool)
        sim.step()

        times = []
        for _ in range(runs):
            gc.collect()
            start = time.perf_counter()
            sim.step()
            times.append((time.perf_counter() - start) * 1000.0)

        sim.print_perf_breakdown()

        return {
            'atom_count': len(sim),
            'workers': workers,
            'p50_ms': float(np.percentile(times, 50)),
            'p90_ms': float(np.percentile(times, 90)),
            'min_ms': min(times),
            'max_ms': max(times),
        }


def main():
    """Run multi-N step performance check."""
    print("=" * 80)
    print("Step Multi-N Performance")
    print("=" * 80)

    test_sizes = [250, 1000, 4000]
    worker_counts = [1, 4]

    results = []
    for atom_count in test_sizes:
        for workers in worker_counts:
            result = run_step_perf_test(atom_count, workers)
            print(f"  p50: {result['p50_ms']:.3f}ms  p90: {result['p90_ms']:.3f}ms  "
                  f"(min {result['min_ms']:.3f}, max {result['max_ms']:.3f})")
            results.append(result)
            print()

    print("=" * 80)
    print("| Atoms | Workers | p50 (ms) | p90 (ms) |")
    print("|-------|---------|----------|----------|")
    for r in results:
        print(f"| {r['atom_count']:5d} | {r['workers']:7d} | {r['p50_ms']:8.3f} | {r['p90_ms']:8.3f} |")
    print("=" * 80)


if __name__ == '__main__':
    main()
