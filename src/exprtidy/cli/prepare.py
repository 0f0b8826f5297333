"""
exprtidy prepare command - Identifier mapping and duplicate aggregation.

Usage:
    exprtidy prepare --input counts.csv --mapping biomart.csv --output results/prepared
    exprtidy prepare --input counts.csv --mygene symbol --cache-dir .cache --output results/prepared

Outputs (in --output):
    prepared_matrix.csv    target-id x sample matrix, duplicates reduced
    mapping.csv            every (source_id, target_id) pair used
    diagnostics.json       ambiguous / unresolved ids and per-stage counts
    zscored_matrix.csv     with --zscore: row z-scored matrix
    priors_aligned.csv     with --zscore --priors: priors on the shared genes
    prepared_long.csv      with --metadata: tidy records joined to sample attributes
"""

import argparse
import logging
from pathlib import Path

from exprtidy.cli._validators import _positive_int
from exprtidy.cli.config import load_config, merge_config_with_args
from exprtidy.core.errors import ConfigurationError
from exprtidy.engines.factorization import prepare_factorization_input
from exprtidy.io.loaders import load_mapping_pairs, load_matrix, load_sample_metadata
from exprtidy.io.writers import (
    write_diagnostics,
    write_long_table,
    write_mapping_table,
    write_matrix,
)
from exprtidy.mapping.annotation import MyGeneInfoSource
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.pipeline import prepare_expression, tidy_matrix
from exprtidy.tidy.aggregate import Reducer

logger = logging.getLogger(__name__)


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the prepare subcommand."""
    parser = subparsers.add_parser(
        "prepare",
        help="Re-key a matrix to target identifiers and aggregate duplicates",
        description=(
            "Map row identifiers to a target namespace, replicate rows for "
            "one-to-many mappings, and reduce duplicate target rows."
        )
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="Path to YAML/JSON config file (optional, CLI args override config values)")
    parser.add_argument("--input", "-i", type=Path, required=True,
                        help="Expression matrix CSV (source ids x samples)")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/prepared"),
                        help="Output directory")

    mapping = parser.add_mutually_exclusive_group()
    mapping.add_argument("--mapping", type=Path,
                         help="Identifier pair table (CSV/TSV)")
    mapping.add_argument("--mygene", metavar="NAMESPACE",
                         help="Query mygene.info for this target namespace (symbol, entrez, uniprot, ...); "
                              "may also come from mapping.target_namespace in --config")

    parser.add_argument("--source-col", default="source_id",
                        help="Source id column of --mapping (default: source_id)")
    parser.add_argument("--target-col", default="target_id",
                        help="Target id column of --mapping (default: target_id)")
    parser.add_argument("--source-namespace", default="ensembl_gene",
                        help="Namespace of input ids for --mygene (default: ensembl_gene)")
    parser.add_argument("--species", default="human",
                        help="Species for --mygene (default: human)")
    parser.add_argument("--cache-dir", type=Path, default=None,
                        help="Cache directory for --mygene lookups")

    parser.add_argument("--reducer", choices=[r.value for r in Reducer], default="mean",
                        help="How to combine duplicate target rows (default: mean)")
    parser.add_argument("--on-duplicate-input", choices=[r.value for r in Reducer], default=None,
                        help="Combine repeated row ids in the input file instead of failing")

    parser.add_argument("--zscore", action="store_true",
                        help="Also write a row z-scored matrix for factorization")
    parser.add_argument("--priors", type=Path, default=None,
                        help="Gene x gene-set membership matrix to align with (requires --zscore)")
    parser.add_argument("--min-genes", type=_positive_int, default=1,
                        help="Minimum genes per gene set after alignment (default: 1)")

    parser.add_argument("--metadata", "-m", type=Path, default=None,
                        help="Sample metadata CSV; writes a joined tidy table")
    parser.add_argument("--sample-col", default=None,
                        help="Sample id column in metadata (default: first column)")
    parser.add_argument("--group-col", default="group",
                        help="Group column in metadata (default: group)")
    parser.add_argument("--join-policy", choices=["strict", "inner"], default="strict",
                        help="Sample mismatch handling for the join (default: strict)")

    parser.set_defaults(func=run_prepare)


def _build_idmap(args: argparse.Namespace, source_ids) -> IdentifierMap:
    if args.mapping is not None:
        logger.info(f"Loading identifier pairs: {args.mapping}")
        return load_mapping_pairs(args.mapping, source_col=args.source_col, target_col=args.target_col)

    source = MyGeneInfoSource(
        source_namespace=args.source_namespace,
        species=args.species,
        cache_dir=args.cache_dir,
    )
    return IdentifierMap.from_annotation(source, source_ids, args.mygene)


def run_prepare(args: argparse.Namespace) -> int:
    """Execute the prepare command."""
    if args.config is not None:
        args = merge_config_with_args(load_config(args.config), args, getattr(args, 'argv', None))
    if args.mapping is None and args.mygene is None:
        raise ConfigurationError(
            "an identifier source is required: --mapping, --mygene or mapping.target_namespace in --config"
        )
    if args.priors is not None and not args.zscore:
        raise ConfigurationError("--priors requires --zscore")

    logger.info(f"Loading: {args.input}")
    matrix = load_matrix(args.input, on_duplicate=args.on_duplicate_input)
    idmap = _build_idmap(args, matrix.feature_ids)

    prepared = prepare_expression(matrix, idmap, reducer=args.reducer)
    diagnostics = prepared.diagnostics

    output = Path(args.output)
    write_matrix(prepared.matrix, output / "prepared_matrix.csv")
    write_mapping_table(idmap.restrict_to(matrix.feature_ids), output / "mapping.csv")

    provenance = {'parameters': {'reducer': args.reducer, 'input': str(args.input)}}
    if args.zscore:
        priors = load_matrix(args.priors) if args.priors is not None else None
        factorization_input = prepare_factorization_input(
            prepared.matrix, priors, min_genes=args.min_genes
        )
        diagnostics.extend(factorization_input.diagnostics)
        write_matrix(factorization_input.expression, output / "zscored_matrix.csv")
        if factorization_input.priors is not None:
            write_matrix(factorization_input.priors, output / "priors_aligned.csv")

    if args.metadata is not None:
        metadata = load_sample_metadata(args.metadata, sample_col=args.sample_col, group_col=args.group_col)
        table, join_result = tidy_matrix(prepared.matrix, metadata, policy=args.join_policy)
        diagnostics.extend(join_result.diagnostics)
        write_long_table(table, output / "prepared_long.csv")

    diagnostics.log_summary()
    write_diagnostics(diagnostics, output / "diagnostics.json", extra=provenance)
    logger.info(f"Done. Results in {output}")
    return 0
