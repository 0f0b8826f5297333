"""
exprtidy CLI - Command-line interface for expression data preparation.

Commands:
    exprtidy prepare   - Re-key a matrix to target identifiers and aggregate duplicates
    exprtidy select    - Select significant factors and tidy their activity rows
    exprtidy deprep    - Check and align counts + metadata for differential expression
"""

import argparse
import logging
import sys
from typing import List, Optional

from exprtidy import __version__
from exprtidy.core.errors import ExprTidyError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for exprtidy."""
    parser = argparse.ArgumentParser(
        prog="exprtidy",
        description="Identifier mapping, aggregation and tidy reshaping for expression data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  prepare   Re-key a matrix to target identifiers and aggregate duplicates
  select    Select significant factors and tidy their activity rows
  deprep    Check and align counts + metadata for differential expression

Examples:
  exprtidy prepare --input counts.csv --mapping biomart.csv --output results/prepared
  exprtidy select --activity B.csv --summary summary.csv --criteria "FDR<0.05" "AUC>0.75"
  exprtidy deprep --counts counts.csv --metadata samples.csv --run --output results/de
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from exprtidy.cli import deprep, prepare, select
    prepare.register_parser(subparsers)
    select.register_parser(subparsers)
    deprep.register_parser(subparsers)

    argv = list(args) if args is not None else sys.argv[1:]
    parsed_args = parser.parse_args(argv)
    parsed_args.argv = argv

    if parsed_args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    logger = logging.getLogger(__name__)

    try:
        return parsed_args.func(parsed_args)
    except (ExprTidyError, FileNotFoundError, ValueError) as e:
        logger.error(f"{parsed_args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
