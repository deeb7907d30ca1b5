"""
coexnet outliers command - Sample outlier screen.

Keeps the top-K most variable genes, builds the sample similarity network
(A = 1 - D/max D on squared Euclidean distances), standardizes connectivity
and flags samples below the Z threshold. Nothing is removed; the report is
for review before the full run.

Usage:
    coexnet outliers --input counts.csv --output results/qc --plots
    coexnet outliers --input counts.csv --output results/qc --outlier-threshold -2
"""

import argparse
import logging
from datetime import datetime

from coexnet.cli.run import (
    LOG_FORMAT,
    add_input_arguments,
    add_outlier_arguments,
    require_paths,
    resolve_config,
)
from coexnet.core.exceptions import CoexnetError


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the outliers subcommand."""
    parser = subparsers.add_parser(
        "outliers",
        help="Sample outlier screen only (connectivity Z-scores)",
        description="Flag samples whose standardized network connectivity falls below a threshold"
    )
    add_input_arguments(parser)
    add_outlier_arguments(parser)
    parser.set_defaults(func=run_outliers)


def run_outliers(args: argparse.Namespace) -> int:
    """Execute the outliers command."""
    from coexnet.io.writers import write_outlier_report
    from coexnet.pipeline import load_inputs, reconcile_samples, screen_samples

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  Sample Outlier Screen")
    print(f"{'='*70}")
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")

    try:
        config = resolve_config(args)
        if not require_paths(config):
            return 1

        print(f"Loading: {config.expression}")
        matrix, metadata = load_inputs(config)
        print(f"Loaded: {matrix.n_genes:,} genes x {matrix.n_samples:,} samples")
        if metadata is not None:
            matrix = reconcile_samples(matrix, metadata, config)

        ranking, filtered, outliers = screen_samples(matrix, config)
        paths = write_outlier_report(
            outliers, config.output, plots=config.plots, plot_format=config.plot_format
        )
    except (CoexnetError, FileNotFoundError, OSError) as e:
        print(f"ERROR: {e}")
        return 1

    print(f"\nGenes used: {filtered.n_genes:,} (variance cutoff {ranking.variance_cutoff:.4g})")
    print(f"Samples: {outliers.sample_ids.size}")
    print(f"Threshold: Z < {outliers.threshold:g}")
    table = outliers.to_frame().sort_values('z_score')
    print("\nLowest standardized connectivity:")
    for sample, row in table.head(10).iterrows():
        marker = "  <- outlier" if row['is_outlier'] else ""
        print(f"  {str(sample):<30} Z = {row['z_score']:+.3f}{marker}")
    print(f"\nFlagged: {outliers.n_outliers} sample(s)")
    for name, path in paths.items():
        print(f"  {name}: {path}")

    elapsed = datetime.now() - start_time
    print(f"Completed in {elapsed.total_seconds():.1f}s")
    return 0
