"""
coexnet CLI - Command-line interface for WGCNA exploratory analysis.

Commands:
    coexnet run             - Full pipeline: sample screen, network, modules, traits
    coexnet outliers        - Sample outlier screen only (connectivity Z-scores)
    coexnet soft-threshold  - Scale-free fit across candidate powers
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for coexnet."""
    parser = argparse.ArgumentParser(
        prog="coexnet",
        description="Weighted gene co-expression network analysis with sample outlier screening",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run             Full pipeline: sample screen, network, modules, traits
  outliers        Sample outlier screen only (connectivity Z-scores)
  soft-threshold  Scale-free topology fit across candidate powers

Examples:
  coexnet outliers --input counts.csv --output results/qc --plots
  coexnet soft-threshold --input counts.csv --output results/sft --powers 1-10,12,14
  coexnet run --input counts.csv --metadata samples.csv --output results/wgcna
  coexnet run --config wgcna.yaml --remove-outliers
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Import and register subcommands
    from coexnet.cli import run, outliers, soft_threshold
    run.register_parser(subparsers)
    outliers.register_parser(subparsers)
    soft_threshold.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    # Dispatch to subcommand
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
