"""
coexnet soft-threshold command - Scale-free topology fit.

Fits the scale-free model for each candidate power on the top-K most variable
genes and reports the power estimate, so a fixed --power can be chosen before
the full run.

Usage:
    coexnet soft-threshold --input counts.csv --output results/sft --plots
    coexnet soft-threshold --input counts.csv --output results/sft --powers 1-20 --network-type signed
"""

import argparse
import logging
from datetime import datetime

from coexnet.cli.run import (
    LOG_FORMAT,
    add_input_arguments,
    add_network_arguments,
    add_outlier_arguments,
    require_paths,
    resolve_config,
)
from coexnet.core.exceptions import CoexnetError


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the soft-threshold subcommand."""
    parser = subparsers.add_parser(
        "soft-threshold",
        help="Scale-free topology fit across candidate powers",
        description="Pick the soft-thresholding power from the scale-free topology fit"
    )
    add_input_arguments(parser)
    add_outlier_arguments(parser)
    parser.add_argument("--remove-outliers", action="store_true", default=None,
                        help="Drop flagged samples before fitting")
    add_network_arguments(parser)
    parser.set_defaults(func=run_soft_threshold)


def run_soft_threshold(args: argparse.Namespace) -> int:
    """Execute the soft-threshold command."""
    from coexnet.io.writers import write_soft_threshold
    from coexnet.network.builder import NetworkBuilder
    from coexnet.network.pywgcna import PyWGCNABackend
    from coexnet.pipeline import load_inputs, screen_samples

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  Soft-Threshold Power Selection")
    print(f"{'='*70}")
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")

    try:
        config = resolve_config(args)
        if not require_paths(config):
            return 1
        if config.network.power is not None:
            print("NOTE: --power is ignored; the fit runs over --powers")

        print(f"Loading: {config.expression}")
        matrix, _ = load_inputs(config)
        print(f"Loaded: {matrix.n_genes:,} genes x {matrix.n_samples:,} samples")

        _, filtered, outliers = screen_samples(matrix, config)
        if config.outliers.remove and outliers.n_outliers:
            print(f"Removing outlier samples: {', '.join(str(s) for s in outliers.outlier_ids)}")
            filtered = outliers.remove_outliers(filtered)

        backend = PyWGCNABackend(n_threads=config.network.n_threads)
        sft = NetworkBuilder(backend, config.network).pick_power(filtered)
        paths = write_soft_threshold(
            sft,
            config.output,
            rsquared_cut=config.network.rsquared_cut,
            plots=config.plots,
            plot_format=config.plot_format,
        )
    except (CoexnetError, FileNotFoundError, OSError) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"\n{'Power':>6} {'Signed R²':>10} {'Mean k':>12}")
    for power, signed, mean_k in zip(sft.fit['power'], sft.signed_r_sq, sft.fit['mean_k']):
        marker = "  <- estimate" if power == sft.power_estimate else ""
        print(f"{int(power):>6} {signed:>10.3f} {mean_k:>12.2f}{marker}")
    print(f"\nPower estimate: {sft.power_estimate}")
    for name, path in paths.items():
        print(f"  {name}: {path}")

    elapsed = datetime.now() - start_time
    print(f"Completed in {elapsed.total_seconds():.1f}s")
    return 0
