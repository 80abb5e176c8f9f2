"""Command line front end for the random access simulator."""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np

from random_access_engine import (
    Protocol,
    SimulationConfig,
    SimulationConfigError,
    run_load_sweep,
    run_replications,
)
from compare_simpy import run_head_to_head_validation
from reporting import simulate

PROTOCOLS = {"aloha": Protocol.SLOTTED_ALOHA, "csma": Protocol.CSMA_CA}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Slotted ALOHA and CSMA/CA random access simulation."
    )
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging verbosity")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--protocol", choices=sorted(PROTOCOLS), default="aloha", help="Access discipline")
    common.add_argument("--sources", type=int, default=10, help="Number of traffic sources")
    common.add_argument("--prob", type=float, default=0.05, help="Packet ready probability per slot")
    common.add_argument("--max-backoff", type=int, default=16, help="Maximum backoff window in slots")
    common.add_argument("--slots", type=int, default=1000, help="Simulation time in slots")
    common.add_argument("--seed", type=int, default=42, help="Random seed")
    common.add_argument("--lcg", action="store_true", help="Use the linear congruential generator")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Single simulation run")
    run.add_argument("--progress", action="store_true", help="Show a progress bar (Ctrl+C stops the run)")
    run.add_argument("--quiet", action="store_true", help="Do not print the summary")
    run.add_argument("--plot", metavar="FILE", help="Write the metric time series figure to an HTML file")
    run.add_argument("--csv", metavar="FILE", help="Write the metric time series to a CSV file")

    sweep = sub.add_parser("sweep", parents=[common], help="Sweep the packet ready probability")
    sweep.add_argument("--start", type=float, default=0.01)
    sweep.add_argument("--stop", type=float, default=0.2)
    sweep.add_argument("--steps", type=int, default=10)
    sweep.add_argument("--workers", type=int, default=1, help="Parallel worker processes")

    rep = sub.add_parser("replicate", parents=[common], help="Independent replications with confidence intervals")
    rep.add_argument("--reps", type=int, default=10)
    rep.add_argument("--confidence", type=float, default=0.95)

    sub.add_parser("validate", parents=[common], help="Compare slotted ALOHA against the SimPy model")
    return parser


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        protocol=PROTOCOLS[args.protocol],
        source_number=args.sources,
        packet_ready_prob=args.prob,
        max_backoff=args.max_backoff,
        simulation_time=args.slots,
        random_seed=args.seed,
        use_lcg=args.lcg,
    ).validate()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                        datefmt='%m/%d/%Y %H:%M:%S', level=args.log_level)

    try:
        config = config_from_args(args)
    except SimulationConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.command == "run":
        result = simulate(config, show_progress_bar=args.progress, nice_output=not args.quiet,
                          plot_path=args.plot)
        if args.csv:
            result.get_time_series_dataframe().to_csv(args.csv, index=False)
        if result.cancelled:
            print(f"Stopped after {result.slots_completed} of {config.simulation_time} slots.")

    elif args.command == "sweep":
        probs = np.linspace(args.start, args.stop, args.steps)
        try:
            df = run_load_sweep(config, probs, workers=args.workers)
        except SimulationConfigError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
        cols = ['packet_ready_prob', 'traffic_offered', 'throughput', 'mean_delay', 'collision_probability']
        print(df[cols].to_string(index=False, float_format=lambda v: f"{v:.4f}"))

    elif args.command == "replicate":
        res = run_replications(config, args.reps, args.confidence)
        for metric, ci in res.items():
            print(f"{metric:>22}: {ci['mean']:.4f}  [{ci['lower']:.4f}, {ci['upper']:.4f}]  std={ci['std']:.4f}")

    elif args.command == "validate":
        if config.protocol != Protocol.SLOTTED_ALOHA:
            print("error: SimPy validation only covers slotted ALOHA", file=sys.stderr)
            return 2
        res = run_head_to_head_validation(config)
        for key, value in res.items():
            print(f"{key:>30}: {value:.5f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
