"""
coexnet run command - Full WGCNA exploratory pipeline.

Usage:
    coexnet run --input counts.csv --metadata samples.csv --output results/wgcna
    coexnet run --config wgcna.yaml --power 8 --remove-outliers
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path

from coexnet.cli._validators import (
    _positive_float,
    _positive_int,
    _power_list,
    _unit_interval,
    _z_threshold,
)
from coexnet.cli.config import load_config, merge_config_with_args
from coexnet.config import PipelineConfig
from coexnet.core.exceptions import CoexnetError
from coexnet.network.backend import NETWORK_TYPES, TOM_TYPES
from coexnet.quality.outliers import LINKAGE_METHODS
from coexnet.stats.correlation import CORRELATION_METHODS

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def add_input_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by every command: inputs, outputs, sample IDs, gene filter."""
    # Every option defaults to None so that config file values are only
    # overridden by flags the user actually passed.
    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")

    io_group = parser.add_argument_group("Input/Output")
    io_group.add_argument("--input", "-i", type=Path, default=None,
                          help="Expression matrix (genes x samples, first column = gene IDs)")
    io_group.add_argument("--output", "-o", type=Path, default=None,
                          help="Output directory (created if missing)")
    io_group.add_argument("--metadata", "-m", type=Path, default=None,
                          help="Sample metadata table (one row per sample)")
    io_group.add_argument("--plots", action="store_true", default=None,
                          help="Also write diagnostic figures")
    io_group.add_argument("--plot-format", choices=["png", "pdf", "svg"], default=None,
                          help="Figure format (default: png)")

    id_group = parser.add_argument_group("Sample ID reconciliation")
    id_group.add_argument("--sample-column", type=str, default=None,
                          help="Metadata column holding sample IDs (default: first column)")
    id_group.add_argument("--id-map", type=Path, default=None,
                          help="Corrections from metadata IDs to expression IDs "
                               "(YAML/JSON mapping or CSV with metadata_id, expression_id)")
    id_group.add_argument("--keep-raw-ids", dest="normalize_ids", action="store_false", default=None,
                          help="Match sample IDs exactly instead of normalizing '-', '.' and spaces to '_'")
    id_group.add_argument("--drop-unused-metadata", action="store_true", default=None,
                          help="Ignore metadata rows with no expression column instead of failing")

    filter_group = parser.add_argument_group("Gene filter")
    filter_group.add_argument("--top-k", type=_positive_int, default=None,
                              help="Number of most variable genes to keep (default: 10000)")


def add_outlier_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("Sample outlier screen")
    group.add_argument("--outlier-threshold", type=_z_threshold, default=None,
                       help="Flag samples with standardized connectivity below this Z (default: -2.5)")
    group.add_argument("--linkage-method", choices=LINKAGE_METHODS, default=None,
                       help="Linkage for the sample dendrogram (default: average)")


def add_network_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("Network construction")
    group.add_argument("--powers", type=_power_list, default=None,
                       help="Candidate soft-threshold powers, e.g. 1-10,12,14,16,18,20")
    group.add_argument("--power", type=_positive_int, default=None,
                       help="Fixed soft-threshold power (skips the scale-free fit)")
    group.add_argument("--rsquared-cut", type=_unit_interval, default=None,
                       help="Scale-free fit R² required to accept a power (default: 0.9)")
    group.add_argument("--mean-cut", type=_positive_float, default=None,
                       help="Maximum mean connectivity for an accepted power (default: 100)")
    group.add_argument("--network-type", choices=NETWORK_TYPES, default=None,
                       help="Adjacency type (default: unsigned)")
    group.add_argument("--tom-type", choices=TOM_TYPES, default=None,
                       help="Topological overlap type (default: unsigned)")
    group.add_argument("--correlation", choices=CORRELATION_METHODS, default=None,
                       help="Gene-gene correlation (default: pearson)")
    group.add_argument("--threads", type=_positive_int, default=None,
                       help="Thread limit for BLAS during network construction")


def add_module_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("Module detection")
    group.add_argument("--min-module-size", type=_positive_int, default=None,
                       help="Minimum genes per module (default: 30)")
    group.add_argument("--deep-split", type=int, choices=[0, 1, 2, 3, 4], default=None,
                       help="Dynamic tree cut sensitivity (default: 2)")
    group.add_argument("--merge-cut-height", type=_unit_interval, default=None,
                       help="Merge modules whose eigengenes have 1 - r below this (default: 0.25)")


def resolve_config(args: argparse.Namespace) -> PipelineConfig:
    """Config file (if any) overlaid with the flags that were given."""
    config = {}
    if args.config:
        print(f"Loading configuration from: {args.config}")
        config = load_config(args.config)
    return merge_config_with_args(config, args)


def require_paths(config: PipelineConfig) -> bool:
    """Print an error and return False when input or output is missing."""
    if config.expression is None:
        print("ERROR: --input is required (via CLI or config file)")
        return False
    if config.output is None:
        print("ERROR: --output is required (via CLI or config file)")
        return False
    return True


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Full pipeline: sample screen, network, modules, traits",
        description="Variance filter, sample outlier screen, soft-threshold network, "
                    "dynamic tree cut modules and module-trait association"
    )
    add_input_arguments(parser)
    add_outlier_arguments(parser)
    parser.add_argument("--remove-outliers", action="store_true", default=None,
                        help="Drop flagged samples before building the network "
                             "(default: flags are advisory only)")
    add_network_arguments(parser)
    add_module_arguments(parser)

    trait_group = parser.add_argument_group("Trait association")
    trait_group.add_argument("--traits", nargs="+", default=None,
                             help="Metadata columns to correlate with modules (default: all)")
    trait_group.add_argument("--trait-method", choices=CORRELATION_METHODS, default=None,
                             help="Correlation for module-trait and gene significance (default: pearson)")

    parser.set_defaults(func=run_run)


def run_run(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from coexnet.io.writers import write_report
    from coexnet.pipeline import load_inputs, run_pipeline

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  WGCNA Exploratory Analysis")
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
            print(f"Metadata: {len(metadata)} samples x {metadata.shape[1]} columns")

        result = run_pipeline(matrix, metadata, config)
        paths = write_report(
            result, config.output, plots=config.plots, plot_format=config.plot_format
        )
    except (CoexnetError, FileNotFoundError, OSError) as e:
        print(f"ERROR: {e}")
        return 1

    outliers = result.outliers
    network = result.network
    print(f"\n{'='*70}")
    print("  Summary")
    print(f"{'='*70}")
    print(f"Genes in network: {result.filtered.n_genes:,}")
    print(f"Samples in network: {result.filtered.n_samples}")
    if outliers.n_outliers:
        flagged = ', '.join(str(s) for s in outliers.outlier_ids)
        action = "removed" if result.removed_samples else "kept (advisory)"
        print(f"Outlier samples (Z < {outliers.threshold:g}): {flagged} [{action}]")
    else:
        print(f"Outlier samples (Z < {outliers.threshold:g}): none")
    source = "fixed" if network.soft_threshold is None else "scale-free fit"
    print(f"Soft-threshold power: {network.power} ({source})")
    print(f"Modules: {network.n_modules} (+ grey: {int(network.module_sizes.get('grey', 0))} genes)")
    print(f"Traits: {result.traits.shape[1]}")
    print(f"\nOutputs written to {config.output}: {len(paths)} files")

    elapsed = datetime.now() - start_time
    print(f"Completed in {elapsed.total_seconds():.1f}s")
    return 0
