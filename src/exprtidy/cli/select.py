"""
exprtidy select command - Significant factor selection and tidy export.

Usage:
    exprtidy select --activity B.csv --summary summary.csv \\
        --factor-col "LV index" --label-col pathway \\
        --criteria "FDR<0.05" "AUC>0.75" --metadata samples.csv --output results/selected

Outputs (in --output):
    selected_activity.csv   activity rows of the selected factors
    selected_long.csv       tidy records (joined with metadata when given)
    selected_summary.csv    summary rows of the selected factors
    diagnostics.json        selection and join counts
"""

import argparse
import logging
from pathlib import Path

from exprtidy.cli.config import load_config, merge_config_with_args
from exprtidy.io.loaders import load_factor_summary, load_matrix, load_sample_metadata
from exprtidy.io.writers import write_diagnostics, write_frame, write_long_table, write_matrix
from exprtidy.pipeline import select_activity
from exprtidy.tidy.selection import SignificanceCriteria

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the select subcommand."""
    parser = subparsers.add_parser(
        "select",
        help="Select significant factors and tidy their activity rows",
        description=(
            "Filter a factorization summary by AND-ed threshold criteria, "
            "extract the matching rows of the activity matrix and reshape "
            "them into tidy records."
        )
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")
    parser.add_argument("--activity", "-a", type=Path, required=True,
                        help="Factor activity matrix CSV (factors x samples)")
    parser.add_argument("--summary", "-s", type=Path, required=True,
                        help="Per-factor summary CSV (one row per factor/gene-set)")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/selected"),
                        help="Output directory")

    parser.add_argument("--factor-col", default="LV index",
                        help="Summary column holding the factor index (default: 'LV index')")
    parser.add_argument("--label-col", default=None,
                        help="Summary column holding the gene-set label")
    parser.add_argument("--criteria", nargs="+", default=None,
                        help='Threshold criteria, AND-ed (e.g. "FDR<0.05" "AUC>0.75")')
    parser.add_argument("--derive-fdr", metavar="PVALUE_STAT", default=None,
                        help="Add an FDR statistic (Benjamini-Hochberg) from this p-value column")

    parser.add_argument("--metadata", "-m", type=Path, default=None,
                        help="Sample metadata CSV to join onto the tidy records")
    parser.add_argument("--sample-col", default=None,
                        help="Sample id column in metadata (default: first column)")
    parser.add_argument("--group-col", default="group",
                        help="Group column in metadata (default: group)")
    parser.add_argument("--join-policy", choices=["strict", "inner"], default="strict",
                        help="Sample mismatch handling for the join (default: strict)")

    parser.set_defaults(func=run_select)


def run_select(args: argparse.Namespace) -> int:
    """Execute the select command."""
    if args.config is not None:
        args = merge_config_with_args(load_config(args.config), args, getattr(args, 'argv', None))

    criteria = SignificanceCriteria.parse(args.criteria or [])

    activity = load_matrix(args.activity)
    summary = load_factor_summary(args.summary, factor_col=args.factor_col, label_col=args.label_col)
    if args.derive_fdr is not None:
        summary = summary.add_adjusted_pvalues(pvalue_stat=args.derive_fdr)

    metadata = None
    if args.metadata is not None:
        metadata = load_sample_metadata(args.metadata, sample_col=args.sample_col, group_col=args.group_col)

    result = select_activity(activity, summary, criteria, metadata=metadata, policy=args.join_policy)

    output = Path(args.output)
    write_matrix(result.activity, output / "selected_activity.csv", index_label="factor_index")
    write_long_table(result.table, output / "selected_long.csv")
    write_frame(summary.rows_for(result.factors).frame, output / "selected_summary.csv")
    write_diagnostics(
        result.diagnostics,
        output / "diagnostics.json",
        extra={'criteria': str(criteria), 'factors': result.factors},
    )

    logger.info(f"Selected factors: {result.factors}")
    return 0
