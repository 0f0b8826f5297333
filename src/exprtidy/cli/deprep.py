"""
exprtidy deprep command - Differential-expression input preparation.

Usage:
    exprtidy deprep --counts counts.csv --metadata samples.csv --group-col condition \\
        --min-total 10 --output results/de
    exprtidy deprep ... --run --reference CTRL      # also run pydeseq2

Outputs (in --output):
    counts.csv          filtered integer counts, columns in metadata-aligned order
    metadata.csv        sample metadata realigned to the count columns
    diagnostics.json    filter counts and parameters
    results.csv         with --run: per-gene engine results
    results_long.csv    with --run: tidy (entity_id, statistic, value) records
"""

import argparse
import logging
from pathlib import Path

from exprtidy.cli._validators import _non_negative_float, _probability
from exprtidy.cli.config import load_config, merge_config_with_args
from exprtidy.engines.differential import (
    PyDESeq2Engine,
    prepare_differential_input,
    results_to_long,
    validate_differential_results,
)
from exprtidy.io.loaders import load_matrix, load_sample_metadata
from exprtidy.io.writers import write_count_matrix, write_diagnostics, write_frame

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the deprep subcommand."""
    parser = subparsers.add_parser(
        "deprep",
        help="Check and align counts + metadata for differential expression",
        description=(
            "Validate an integer count matrix against sample metadata, align "
            "sample order, drop low-count genes, and optionally run pydeseq2."
        )
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")
    parser.add_argument("--counts", type=Path, required=True,
                        help="Raw count matrix CSV (genes x samples)")
    parser.add_argument("--metadata", "-m", type=Path, required=True,
                        help="Sample metadata CSV")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/deprep"),
                        help="Output directory")
    parser.add_argument("--sample-col", default=None,
                        help="Sample id column in metadata (default: first column)")
    parser.add_argument("--group-col", default="group",
                        help="Group column in metadata (default: group)")
    parser.add_argument("--min-total", type=_non_negative_float, default=10,
                        help="Drop genes with total count below this (default: 10)")

    parser.add_argument("--run", action="store_true",
                        help="Run pydeseq2 on the prepared input (requires the 'deseq' extra)")
    parser.add_argument("--reference", default=None,
                        help="Reference group level (default: first in sorted order)")
    parser.add_argument("--alternative", default=None,
                        help="Group level tested against the reference")
    parser.add_argument("--alpha", type=_probability, default=0.05,
                        help="Significance level for pydeseq2 (default: 0.05)")

    parser.set_defaults(func=run_deprep)


def run_deprep(args: argparse.Namespace) -> int:
    """Execute the deprep command."""
    if args.config is not None:
        args = merge_config_with_args(load_config(args.config), args, getattr(args, 'argv', None))

    counts = load_matrix(args.counts)
    metadata = load_sample_metadata(args.metadata, sample_col=args.sample_col, group_col=args.group_col)

    prepared = prepare_differential_input(
        counts, metadata, group_col=args.group_col, min_total=args.min_total
    )

    output = Path(args.output)
    write_count_matrix(prepared.counts, output / "counts.csv")
    write_frame(prepared.metadata.frame, output / "metadata.csv", index=True)

    if args.run:
        engine = PyDESeq2Engine(
            reference=args.reference, alternative=args.alternative, alpha=args.alpha
        )
        results = engine.run(prepared.counts, prepared.metadata, prepared.group_col)
        validate_differential_results(results, prepared.counts)
        write_frame(results, output / "results.csv", index=True)
        write_frame(results_to_long(results), output / "results_long.csv")

    write_diagnostics(
        prepared.diagnostics,
        output / "diagnostics.json",
        extra={'parameters': {
            'group_col': prepared.group_col,
            'levels': prepared.levels,
            'min_total': args.min_total,
        }},
    )
    return 0
