"""
Tidy (long-format) table of entity/sample observations.

A LongTable is an ordered sequence of ``(entity_id, sample_id, value)``
records, one row per observation, one column per variable. After a metadata
join it also carries one column per sample attribute.

Duplicate ``(entity_id, sample_id)`` pairs are allowed: they are produced by
one-to-many identifier expansion and stay meaningful until an Aggregator or
``to_wide`` resolves them explicitly.

Examples:
    >>> from exprtidy.core.longtable import LongTable
    >>> table = LongTable.from_records([("A", "S1", 1.0), ("A", "S1", 2.0)])
    >>> table.n_duplicate_keys
    1
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd

from exprtidy.core.errors import ShapeMismatch

__all__ = ['LongTable', 'ENTITY', 'SAMPLE', 'VALUE', 'KEY_COLUMNS']

ENTITY = 'entity_id'
SAMPLE = 'sample_id'
VALUE = 'value'
KEY_COLUMNS = (ENTITY, SAMPLE, VALUE)


class LongTable:
    """
    Immutable wrapper around a DataFrame with entity_id, sample_id, value columns.

    Attribute columns (added by a metadata join) follow the three key columns.
    The wrapped frame is copied on construction and on access, so callers
    cannot mutate a table in place.
    """

    def __init__(self, frame: pd.DataFrame):
        missing = [c for c in KEY_COLUMNS if c not in frame.columns]
        if missing:
            raise ShapeMismatch("LongTable frame lacks required columns", keys=missing)
        if frame.columns.has_duplicates:
            raise ShapeMismatch(
                "LongTable frame has duplicate column names",
                keys=frame.columns[frame.columns.duplicated()].tolist(),
            )
        extra = [c for c in frame.columns if c not in KEY_COLUMNS]
        self._frame = frame.loc[:, list(KEY_COLUMNS) + extra].reset_index(drop=True)

    @classmethod
    def from_records(cls, records: Iterable[Tuple]) -> LongTable:
        """Build from ``(entity_id, sample_id, value)`` tuples."""
        return cls(pd.DataFrame(list(records), columns=list(KEY_COLUMNS)))

    @classmethod
    def empty(cls) -> LongTable:
        return cls(pd.DataFrame({
            ENTITY: pd.Series(dtype=object),
            SAMPLE: pd.Series(dtype=object),
            VALUE: pd.Series(dtype=np.float64),
        }))

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying DataFrame."""
        return self._frame.copy()

    @property
    def entity_ids(self) -> pd.Series:
        return self._frame[ENTITY].copy()

    @property
    def sample_ids(self) -> pd.Series:
        return self._frame[SAMPLE].copy()

    @property
    def values(self) -> np.ndarray:
        return self._frame[VALUE].to_numpy(copy=True)

    @property
    def attribute_columns(self) -> List[str]:
        """Columns beyond entity_id/sample_id/value (sample attributes)."""
        return [c for c in self._frame.columns if c not in KEY_COLUMNS]

    @property
    def n_duplicate_keys(self) -> int:
        """Number of records whose (entity_id, sample_id) pair was seen earlier."""
        return int(self._frame.duplicated(subset=[ENTITY, SAMPLE]).sum())

    def duplicate_keys(self) -> List[Tuple]:
        """Distinct (entity_id, sample_id) pairs occurring more than once."""
        dup = self._frame.duplicated(subset=[ENTITY, SAMPLE], keep=False)
        pairs = self._frame.loc[dup, [ENTITY, SAMPLE]].drop_duplicates()
        return list(pairs.itertuples(index=False, name=None))

    def records(self) -> List[Tuple]:
        """Key columns as a list of tuples (attribute columns excluded)."""
        return list(self._frame[list(KEY_COLUMNS)].itertuples(index=False, name=None))

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"LongTable({len(self)} records, "
            f"{self._frame[ENTITY].nunique()} entities × {self._frame[SAMPLE].nunique()} samples"
            + (f", attributes={self.attribute_columns}" if self.attribute_columns else "")
            + ")"
        )
