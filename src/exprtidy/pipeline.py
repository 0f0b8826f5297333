"""
End-to-end orchestration of the tidy stages.

Two flows:

    prepare_expression
        raw matrix (source ids) -> expand -> aggregate -> matrix (target ids)

    select_activity
        factor summary + criteria -> select -> extract_rows -> to_long
        -> join with sample metadata

Each returns the results alongside a Diagnostics container covering every
stage it ran, so a caller can persist one report per run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.longtable import LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.tidy.aggregate import Reducer, ReducerLike, aggregate
from exprtidy.tidy.expand import ExpansionResult, expand
from exprtidy.tidy.join import JoinPolicy, JoinResult, SampleMetadata, join
from exprtidy.tidy.reshape import to_long
from exprtidy.tidy.selection import FactorSummary, SignificanceCriteria, extract_rows, select

logger = logging.getLogger(__name__)

__all__ = [
    'PreparedExpression',
    'SelectedActivity',
    'prepare_expression',
    'select_activity',
    'tidy_matrix',
]


@dataclass
class PreparedExpression:
    """
    A target-keyed matrix with one row per target identifier.

    Attributes:
        matrix: Aggregated matrix, rows = target ids
        idmap: The identifier map used
        expansion: Intermediate expansion (long table, dropped, ambiguous)
        diagnostics: Ambiguous/unresolved ids and per-stage counts
    """

    matrix: WideMatrix
    idmap: IdentifierMap
    expansion: ExpansionResult
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class SelectedActivity:
    """
    Activity rows of the selected factors, wide and tidy.

    Attributes:
        factors: Selected factor indices in first-appearance order
        activity: Selected rows of the activity matrix
        table: Tidy records, joined with sample metadata when provided
        join_result: Join drop accounting (None without metadata)
    """

    factors: List[Any]
    activity: WideMatrix
    table: LongTable
    join_result: Optional[JoinResult] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def prepare_expression(
    matrix: WideMatrix,
    idmap: IdentifierMap,
    reducer: ReducerLike = Reducer.MEAN,
    keep_source: bool = False,
) -> PreparedExpression:
    """
    Re-key a matrix from source to target identifiers.

    Rows whose id does not resolve are dropped, one-to-many rows are
    replicated, and targets reached from several rows are reduced with
    ``reducer``. Every loss is recorded in the diagnostics.
    """
    expansion = expand(matrix, idmap, keep_source=keep_source)
    n_duplicates = expansion.table.n_duplicate_keys
    prepared = aggregate(expansion.table, reducer=reducer)

    diagnostics = expansion.diagnostics
    diagnostics.count('duplicate_records_aggregated', n_duplicates)
    diagnostics.count('target_rows', prepared.n_features)

    logger.info(
        f"Prepared {prepared.n_features} target rows from {matrix.n_features} source rows "
        f"({n_duplicates} duplicate records combined)"
    )
    return PreparedExpression(
        matrix=prepared, idmap=idmap, expansion=expansion, diagnostics=diagnostics
    )


def tidy_matrix(
    matrix: WideMatrix,
    metadata: Optional[SampleMetadata] = None,
    policy: JoinPolicy | str = JoinPolicy.STRICT,
) -> tuple[LongTable, Optional[JoinResult]]:
    """Reshape a matrix to tidy records and attach sample attributes if given."""
    table = to_long(matrix)
    if metadata is None:
        return table, None
    result = join(table, metadata, policy=policy)
    return result.table, result


def select_activity(
    activity: WideMatrix,
    summary: FactorSummary,
    criteria: SignificanceCriteria,
    metadata: Optional[SampleMetadata] = None,
    policy: JoinPolicy | str = JoinPolicy.STRICT,
) -> SelectedActivity:
    """
    Extract and tidy the activity rows of significant factors.

    Raises:
        EmptyCriteria, UnknownStatistic: On misconfigured criteria
        KeyNotFound: If a selected factor has no activity row
        ShapeMismatch: Under strict policy when samples disagree with metadata
    """
    factors = select(summary, criteria)
    selected = extract_rows(activity, factors)
    table, join_result = tidy_matrix(selected, metadata, policy=policy)

    diagnostics = Diagnostics()
    diagnostics.count('factors_selected', len(factors))
    if join_result is not None:
        diagnostics.extend(join_result.diagnostics)

    logger.info(
        f"Selected {len(factors)}/{len(summary.factors)} factors with {criteria}; "
        f"{len(table)} tidy records"
    )
    return SelectedActivity(
        factors=factors,
        activity=selected,
        table=table,
        join_result=join_result,
        diagnostics=diagnostics,
    )
