"""
Command line entry point.

Usage:
    python -m tumorsim --config run.json [--set key=value ...] [--trials N]
                       [--jobs J] [--output trajectories.csv] [--verbose]
"""

from __future__ import annotations

import argparse
import logging
import sys

import numpy as np

from .config import load_config, parse_overrides
from .errors import ConfigurationError
from .runner import run_trials, trajectories_to_frame


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tumorsim",
        description="Stochastic lattice tumor growth simulation",
    )
    parser.add_argument("--config", required=True, help="JSON configuration file")
    parser.add_argument("--set", dest="overrides", action="append", default=[], metavar="KEY=VALUE",
                        help="Override a configuration key (repeatable)")
    parser.add_argument("--trials", type=int, default=None, help="Number of trials (default: trial_count)")
    parser.add_argument("--jobs", type=int, default=1, help="Parallel jobs (-1 = all cores)")
    parser.add_argument("--output", default=None, help="Write per-step trajectories to this CSV file")
    parser.add_argument("--verbose", action="store_true", help="Log every step")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config, parse_overrides(args.overrides))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    trials = config.trial_count if args.trials is None else args.trials
    print(f"Component: {config.component_type.value}, space: {config.spatial_type.value}")
    print(f"Rates: birth={config.birth_rate}, death={config.death_rate}")
    print(f"Trials: {trials}, max steps: {config.max_step_count}, max size: {config.max_tumor_size}")
    print()

    trajectories = run_trials(config, trials, n_jobs=args.jobs, progress=True)

    sizes = np.array([t.final_size for t in trajectories], dtype=np.float64)
    extinct = sum(1 for t in trajectories if t.termination_reason == "extinct")
    print("\n" + "=" * 60)
    print("RUN SUMMARY")
    print("=" * 60)
    print(f"Final size: {sizes.mean():.1f} ± {sizes.std():.1f} (min {sizes.min():.0f}, max {sizes.max():.0f})")
    print(f"Extinct trials: {extinct} / {len(trajectories)}")

    if args.output:
        trajectories_to_frame(trajectories).to_csv(args.output, index=False)
        print(f"Trajectories saved to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
