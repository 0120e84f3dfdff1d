"""
Headless atomic grid runner.

Loads a YAML config, seeds a random population, runs the configured number
of frames and prints tick summaries and population statistics. Optionally
writes the final state and render snapshot as JSON for external encoders.

Usage:
    python scripts/run_simulation.py data/config/small.yaml
    python scripts/run_simulation.py data/config/default.yaml --frames 60 --snapshot-json out.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from atomgrid.simulator import Simulator
from atomgrid.loader import ConfigLoadError
from atomgrid.constants import TICK_SUMMARY_INTERVAL


DEFAULT_CONFIG = Path(__file__).parent.parent / "data" / "config" / "default.yaml"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Atomic grid particle simulation')
    parser.add_argument('config', nargs='?', type=Path, default=DEFAULT_CONFIG,
                        help='YAML config file (default: data/config/default.yaml)')
    parser.add_argument('--frames', type=int, default=None,
                        help='Override total_frames from the config')
    parser.add_argument('--seed', type=int, default=None,
                        help='Override the config seed')
    parser.add_argument('--workers', type=int, default=None,
                        help='Override force worker count')
    parser.add_argument('--summary-interval', type=int, default=TICK_SUMMARY_INTERVAL,
                        help='Print a tick summary every N steps (0 disables)')
    parser.add_argument('--snapshot-json', type=Path, default=None,
                        help='Write final state and snapshot to this JSON file')
    parser.add_argument('--perf', action='store_true',
                        help='Print per-phase timing breakdown at the end')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def write_snapshot(sim: Simulator, path: Path):
    """Dump full state plus render records as JSON"""
    state = sim.to_dict()
    state['snapshot'] = [
        {'id': e.id, 'position': list(e.position), 'color': list(e.color), 'radius': e.radius}
        for e in sim.snapshot()
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(state, f, indent=2)
    print(f"[OK] Wrote snapshot for {len(state['snapshot'])} particles to {path}")


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        sim = Simulator.from_config_file(args.config)
    except ConfigLoadError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    config = sim.config
    if args.seed is not None:
        config.seed = args.seed
    if args.workers is not None:
        config.workers = args.workers
    if args.seed is not None or args.workers is not None:
        sim.close()
        sim = Simulator(config)

    frames = config.total_frames if args.frames is None else args.frames
    total_steps = frames * config.steps_per_frame

    print("=" * 60)
    print(f"Atomic grid: {config.width:g}x{config.height:g}, seed={config.seed}, "
          f"{frames} frames x {config.steps_per_frame} steps")
    print("=" * 60)

    with sim:
        sim.generate_random_atoms()
        sim.print_statistics("Initial statistics")
        print()

        for step in range(total_steps):
            sim.step()
            if args.summary_interval and (step + 1) % args.summary_interval == 0:
                sim.print_tick_summary()

        print()
        sim.print_statistics("Final statistics")

        degenerate = sim.degenerate_ids()
        if degenerate:
            print(f"[WARN] {len(degenerate)} particles flagged degenerate")

        if args.perf:
            sim.print_perf_breakdown()

        if args.snapshot_json is not None:
            write_snapshot(sim, args.snapshot_json)

    return 0


if __name__ == '__main__':
    sys.exit(main())
