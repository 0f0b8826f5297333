"""
Bidirectional wide <-> long reshaping.

``to_long`` emits one record per matrix cell in row-major order, missing
values included. ``to_wide`` is its inverse when the table has no duplicate
``(entity_id, sample_id)`` pairs; when it does, the caller must say how to
resolve them. ``to_wide`` never picks one of several duplicate values.

Round-trip law:
    For any WideMatrix M with at least one row and one column,
    ``to_wide(to_long(M)).identical(M)``: same keys, same order, same values
    (NaN cells included). A matrix with no cells has no records. Its sample
    keys survive the trip only when passed back explicitly:
    ``to_wide(to_long(M), sample_ids=M.sample_ids)``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from exprtidy.core.errors import DuplicateKeyConflict, ShapeMismatch
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.tidy.aggregate import ReducerLike, aggregate, pivot_unique

logger = logging.getLogger(__name__)

__all__ = ['to_long', 'to_wide', 'ON_DUPLICATE_ERROR']

ON_DUPLICATE_ERROR = "error"


def to_long(matrix: WideMatrix) -> LongTable:
    """
    Convert a wide matrix to tidy records, one per cell.

    Examples:
        >>> to_long(m).records()[:2]
        [('A', 'S1', 1.0), ('A', 'S2', 2.0)]
    """
    n_features, n_samples = matrix.shape
    frame = pd.DataFrame({
        ENTITY: np.repeat(np.asarray(matrix.feature_ids, dtype=object), n_samples),
        SAMPLE: np.tile(np.asarray(matrix.sample_ids, dtype=object), n_features),
        VALUE: matrix.data.ravel().copy(),
    })
    return LongTable(frame)


def to_wide(
    table: LongTable,
    on_duplicate: ReducerLike = ON_DUPLICATE_ERROR,
    sample_ids: Optional[Sequence[str]] = None,
) -> WideMatrix:
    """
    Convert tidy records back into a wide matrix.

    Args:
        table: Long table
        on_duplicate: ``"error"`` (default) to refuse duplicate
            (entity_id, sample_id) pairs, or any reducer accepted by
            ``aggregate`` to combine them
        sample_ids: Column keys of the result, in order. Samples with no
            records become all-missing columns. Defaults to the table's
            samples in first-seen order.

    Raises:
        DuplicateKeyConflict: If duplicates exist and on_duplicate is "error"
        TypeMismatch: If values are non-numeric
        ShapeMismatch: If the table has samples not listed in ``sample_ids``
    """
    n_duplicates = table.n_duplicate_keys
    if n_duplicates == 0:
        matrix = pivot_unique(table)
    elif isinstance(on_duplicate, str) and on_duplicate.lower() == ON_DUPLICATE_ERROR:
        raise DuplicateKeyConflict(
            f"{n_duplicates} duplicate (entity_id, sample_id) records; "
            f"pass on_duplicate=<reducer> to combine them",
            keys=table.duplicate_keys(),
        )
    else:
        logger.info(f"Resolving {n_duplicates} duplicate records in to_wide with reducer {on_duplicate!r}")
        matrix = aggregate(table, reducer=on_duplicate)

    if sample_ids is None:
        return matrix
    return _with_samples(matrix, list(sample_ids))


def _with_samples(matrix: WideMatrix, sample_ids: list) -> WideMatrix:
    present = matrix.sample_ids.tolist()
    listed = set(sample_ids)
    unlisted = [s for s in present if s not in listed]
    if unlisted:
        raise ShapeMismatch("table has samples not in sample_ids", keys=unlisted)

    position = {s: i for i, s in enumerate(present)}
    data = np.full((matrix.n_features, len(sample_ids)), np.nan)
    for j, sample in enumerate(sample_ids):
        if sample in position:
            data[:, j] = matrix.data[:, position[sample]]
    return WideMatrix(data, matrix.feature_ids, pd.Index(sample_ids, dtype=object))
