"""
Identifier expansion: source-keyed wide matrix -> target-keyed long table.

For every row of the matrix and every target its source identifier resolves
to, one record per sample is emitted with the row's value. A source mapping to
three symbols therefore contributes three identical rows; nothing is
aggregated here. Rows whose identifier resolves to nothing are dropped and
listed, because the dropped count is the coverage loss of the annotation.

Output order is deterministic: matrix row order, then targets sorted
lexicographically, then sample order.

Examples:
    >>> result = expand(matrix, IdentifierMap.build_from([("ENSG1", "A"), ("ENSG1", "B")]))
    >>> len(result.table)        # 2 targets x 2 samples
    4
    >>> result.dropped
    []
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.mapping.identifier_map import IdentifierMap

logger = logging.getLogger(__name__)

__all__ = ['ExpansionResult', 'expand', 'SOURCE']

SOURCE = 'source_id'


@dataclass
class ExpansionResult:
    """
    Long table keyed by target identifiers plus what expansion lost or duplicated.

    Attributes:
        table: (entity_id, sample_id, value) records, optionally with source_id
        dropped: Source ids of rows that resolved to no target (matrix order)
        ambiguous: Source id -> sorted targets, for rows with fan-out > 1
    """

    table: LongTable
    dropped: List[str] = field(default_factory=list)
    ambiguous: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def n_dropped(self) -> int:
        return len(self.dropped)

    @property
    def diagnostics(self) -> Diagnostics:
        diag = Diagnostics()
        for source_id, targets in self.ambiguous.items():
            diag.add_ambiguous(source_id, targets)
        for source_id in self.dropped:
            diag.add_unresolved(source_id, reason="row dropped: identifier did not resolve")
        diag.count('rows_dropped_unresolved', self.n_dropped)
        return diag


def expand(matrix: WideMatrix, idmap: IdentifierMap, keep_source: bool = False) -> ExpansionResult:
    """
    Replicate each matrix row once per resolved target identifier.

    Args:
        matrix: Wide matrix keyed by source identifiers
        idmap: Source -> target relation
        keep_source: Add a ``source_id`` attribute column recording which
            source row each record came from (for auditing ambiguous weight)

    Returns:
        ExpansionResult with the long table, dropped rows and ambiguous rows
    """
    row_positions: List[int] = []
    entity_labels: List[str] = []
    source_labels: List[str] = []
    dropped: List[str] = []
    ambiguous: Dict[str, Tuple[str, ...]] = {}

    for position, source_id in enumerate(matrix.feature_ids):
        source_key = str(source_id)
        targets = sorted(idmap.resolve(source_key))
        if not targets:
            dropped.append(source_key)
            continue
        if len(targets) > 1:
            ambiguous[source_key] = tuple(targets)
        for target in targets:
            row_positions.append(position)
            entity_labels.append(target)
            source_labels.append(source_key)

    n_samples = matrix.n_samples
    block = matrix.data[row_positions, :] if row_positions else np.empty((0, n_samples))
    columns = {
        ENTITY: np.repeat(np.asarray(entity_labels, dtype=object), n_samples),
        SAMPLE: np.tile(np.asarray(matrix.sample_ids, dtype=object), len(row_positions)),
        VALUE: block.ravel(),
    }
    if keep_source:
        columns[SOURCE] = np.repeat(np.asarray(source_labels, dtype=object), n_samples)
    table = LongTable(pd.DataFrame(columns))

    n_rows = matrix.n_features
    logger.info(
        f"Expanded {n_rows - len(dropped)}/{n_rows} rows to {len(row_positions)} target rows "
        f"({len(table)} records); {len(dropped)} unresolved rows dropped, "
        f"{len(ambiguous)} ambiguous"
    )
    if dropped:
        logger.warning(
            f"{len(dropped)} of {n_rows} rows ({100 * len(dropped) / n_rows:.1f}%) "
            f"had no target identifier and were dropped"
        )

    return ExpansionResult(table=table, dropped=dropped, ambiguous=ambiguous)
