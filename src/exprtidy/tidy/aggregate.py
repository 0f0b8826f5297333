"""
Group-by-key aggregation of long tables into rectangular wide matrices.

Identifier expansion leaves several records per ``(entity_id, sample_id)``
whenever two source rows map to the same target. The Aggregator collapses each
group with a reducer and pivots the result into a WideMatrix.

Reducers:
    mean (default), median, sum, max, min. All ignore missing values unless
    every value in the group is missing, in which case the cell is missing.
    A callable receives the group's values (missing included) as a 1-D float
    array and returns a float.

Ordering:
    Rows are distinct entity ids and columns distinct sample ids, both in
    first-seen order of the input table. Results therefore do not depend on
    pandas' sort behaviour.

Shape:
    The output is always rectangular. An entity observed in only some samples
    gets missing values in the others.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Union

import numpy as np
import pandas as pd

from exprtidy.core.errors import ConfigurationError, ShapeMismatch, TypeMismatch
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix

logger = logging.getLogger(__name__)

__all__ = ['Reducer', 'ReducerLike', 'aggregate', 'numeric_values', 'pivot_unique']


class Reducer(Enum):
    """Built-in NA-tolerant reducers."""

    MEAN = "mean"
    MEDIAN = "median"
    SUM = "sum"
    MAX = "max"
    MIN = "min"


ReducerLike = Union[Reducer, str, Callable[[np.ndarray], float]]


def _coerce_reducer(reducer: ReducerLike) -> Reducer | Callable[[np.ndarray], float]:
    if isinstance(reducer, Reducer) or callable(reducer):
        return reducer
    try:
        return Reducer(str(reducer).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown reducer '{reducer}'. Use one of {[r.value for r in Reducer]} or a callable"
        ) from None


def _is_number_or_missing(value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    return value is None or isinstance(value, (int, float, np.number)) or value is pd.NA


def numeric_values(frame: pd.DataFrame) -> pd.Series:
    """
    Return the value column as float, raising TypeMismatch on non-numeric entries.

    None and NaN are accepted as missing. Strings are rejected even when they
    parse as numbers; parsing belongs to the loaders.
    """
    values = frame[VALUE]
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        return values.astype(np.float64)

    bad = ~values.map(_is_number_or_missing).astype(bool)
    if bad.any():
        offending = frame.loc[bad, [ENTITY, SAMPLE, VALUE]].head(10)
        raise TypeMismatch(
            f"{int(bad.sum())} non-numeric values where a numeric reduction is required",
            keys=list(offending.itertuples(index=False, name=None)),
        )
    return pd.to_numeric(values.where(values.notna(), np.nan)).astype(np.float64)


def _check_keys(frame: pd.DataFrame) -> None:
    missing = frame[ENTITY].isna() | frame[SAMPLE].isna()
    if missing.any():
        raise ShapeMismatch(
            f"{int(missing.sum())} records have a missing entity_id or sample_id",
            keys=frame.index[missing].tolist(),
        )


def _assemble(reduced: pd.Series, frame: pd.DataFrame) -> WideMatrix:
    """Pivot a (entity, sample)-indexed Series into first-seen order."""
    entity_order = pd.unique(frame[ENTITY])
    sample_order = pd.unique(frame[SAMPLE])
    if len(reduced) == 0:
        data = np.full((len(entity_order), len(sample_order)), np.nan)
    else:
        wide = reduced.unstack(SAMPLE).reindex(index=entity_order, columns=sample_order)
        data = wide.to_numpy(dtype=np.float64)
    return WideMatrix(data, pd.Index(entity_order), pd.Index(sample_order))


def pivot_unique(table: LongTable) -> WideMatrix:
    """
    Pivot a table with unique (entity_id, sample_id) pairs, values verbatim.

    Callers must check uniqueness first; duplicates raise ShapeMismatch.
    """
    frame = table.frame
    _check_keys(frame)
    if frame.duplicated(subset=[ENTITY, SAMPLE]).any():
        raise ShapeMismatch("pivot_unique requires unique (entity_id, sample_id) pairs")
    values = numeric_values(frame)
    series = pd.Series(
        values.to_numpy(),
        index=pd.MultiIndex.from_frame(frame[[ENTITY, SAMPLE]]),
    )
    return _assemble(series, frame)


def aggregate(table: LongTable, reducer: ReducerLike = Reducer.MEAN) -> WideMatrix:
    """
    Collapse records sharing (entity_id, sample_id) and pivot to a wide matrix.

    Args:
        table: Long table, duplicates allowed
        reducer: Reducer name/enum or callable (default: NA-tolerant mean)

    Returns:
        WideMatrix with one row per distinct entity and one column per
        distinct sample, first-seen order

    Raises:
        TypeMismatch: If the value column holds non-numeric data
        ShapeMismatch: If any record lacks an entity or sample id
        ConfigurationError: If the reducer name is unknown

    Examples:
        >>> table = LongTable.from_records([
        ...     ("A", "S1", 1.0), ("A", "S2", 3.0),
        ...     ("A", "S1", 2.0), ("A", "S2", 5.0),
        ... ])
        >>> aggregate(table).data
        array([[1.5, 4. ]])
    """
    reducer = _coerce_reducer(reducer)
    frame = table.frame
    _check_keys(frame)
    frame[VALUE] = numeric_values(frame)

    grouped = frame.groupby([ENTITY, SAMPLE], sort=False)[VALUE]
    if reducer is Reducer.MEAN:
        reduced = grouped.mean()
    elif reducer is Reducer.MEDIAN:
        reduced = grouped.median()
    elif reducer is Reducer.SUM:
        reduced = grouped.sum(min_count=1)
    elif reducer is Reducer.MAX:
        reduced = grouped.max()
    elif reducer is Reducer.MIN:
        reduced = grouped.min()
    else:
        reduced = grouped.agg(lambda s: float(reducer(s.to_numpy(dtype=np.float64))))

    result = _assemble(reduced, frame)

    n_collapsed = len(frame) - len(reduced)
    name = reducer.value if isinstance(reducer, Reducer) else getattr(reducer, '__name__', 'callable')
    logger.info(
        f"Aggregated {len(frame)} records into {result.n_features} entities × "
        f"{result.n_samples} samples (reducer={name}, {n_collapsed} duplicate records collapsed)"
    )
    return result
