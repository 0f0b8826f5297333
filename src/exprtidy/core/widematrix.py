"""
Core data structure for entity x sample expression matrices.

WideMatrix couples a numeric array with its row keys (feature, gene or factor
identifiers) and column keys (sample identifiers). It is the shape handed to
the factorization and differential-expression engines and the shape they hand
back.

Biological Context:
    - Rows = entities (genes, transcripts, latent factors)
    - Columns = samples
    - Values = measurements (counts, intensities, z-scores, factor activity)

    Missing measurements are NaN. Infinite values are rejected because they
    cannot be told apart from numerical failures upstream.

Engineering Design:
    - Immutable: the array is stored as a read-only copy and every operation
      returns a new instance
    - Validated: constructor checks shape, key uniqueness and finiteness
    - Keys are pandas Index objects so selection by label stays cheap

Equality:
    ``equals`` compares key sets and values aligned by key, ignoring order.
    ``identical`` additionally requires row and column order to match.
    NaN cells compare equal to NaN cells.

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from exprtidy.core.widematrix import WideMatrix
    >>>
    >>> m = WideMatrix(
    ...     data=np.array([[1.0, 2.0], [3.0, np.nan]]),
    ...     feature_ids=pd.Index(["A", "B"]),
    ...     sample_ids=pd.Index(["S1", "S2"]),
    ... )
    >>> m.shape
    (2, 2)
    >>> m.select_features(["B"]).data
    array([[ 3., nan]])
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from exprtidy.core.errors import KeyNotFound, ShapeMismatch, TypeMismatch

__all__ = ['WideMatrix']


class WideMatrix:
    """
    Immutable container for an entity x sample numeric matrix.

    Attributes:
        data: Float matrix (entities x samples), NaN marks missing
        feature_ids: Row identifiers, unique
        sample_ids: Column identifiers, unique

    Shape Invariants:
        - data.shape[0] == len(feature_ids)
        - data.shape[1] == len(sample_ids)
        - feature_ids and sample_ids are unique
        - every cell is finite or NaN
    """

    def __init__(
        self,
        data: np.ndarray,
        feature_ids: pd.Index | Sequence,
        sample_ids: pd.Index | Sequence,
    ):
        """
        Initialize WideMatrix with validation.

        Args:
            data: 2D numeric array (entities x samples)
            feature_ids: Row identifiers
            sample_ids: Column identifiers

        Raises:
            TypeMismatch: If data is not numeric
            ShapeMismatch: If key lengths disagree with data, keys are
                duplicated, or data contains infinite values
        """
        if not isinstance(feature_ids, pd.Index):
            feature_ids = pd.Index(feature_ids)
        if not isinstance(sample_ids, pd.Index):
            sample_ids = pd.Index(sample_ids)

        data = np.asarray(data)
        if data.dtype.kind not in "biuf":
            raise TypeMismatch(f"data must be numeric, got dtype {data.dtype}")
        if data.ndim != 2:
            # An empty matrix built from [] arrives as 1-D
            if data.size == 0 and len(feature_ids) * len(sample_ids) == 0:
                data = data.reshape(len(feature_ids), len(sample_ids))
            else:
                raise ShapeMismatch(f"data must be 2D, got shape {data.shape}")

        n_features, n_samples = data.shape
        if len(feature_ids) != n_features:
            raise ShapeMismatch(
                f"feature_ids length ({len(feature_ids)}) must match data rows ({n_features})"
            )
        if len(sample_ids) != n_samples:
            raise ShapeMismatch(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )
        if feature_ids.has_duplicates:
            raise ShapeMismatch(
                "feature_ids must be unique",
                keys=feature_ids[feature_ids.duplicated()].unique().tolist(),
            )
        if sample_ids.has_duplicates:
            raise ShapeMismatch(
                "sample_ids must be unique",
                keys=sample_ids[sample_ids.duplicated()].unique().tolist(),
            )

        values = data.astype(np.float64, copy=True)
        if np.isinf(values).any():
            rows, cols = np.nonzero(np.isinf(values))
            raise ShapeMismatch(
                "data contains infinite values",
                keys=[(feature_ids[r], sample_ids[c]) for r, c in zip(rows, cols)],
            )
        values.setflags(write=False)

        self._data = values
        self._feature_ids = feature_ids
        self._sample_ids = sample_ids

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> WideMatrix:
        """Build from a DataFrame indexed by feature id with one column per sample."""
        try:
            data = frame.to_numpy(dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise TypeMismatch(f"frame contains non-numeric values: {e}") from e
        return cls(data, pd.Index(frame.index), pd.Index(frame.columns))

    @property
    def data(self) -> np.ndarray:
        """Read-only value matrix (entities x samples)."""
        return self._data

    @property
    def feature_ids(self) -> pd.Index:
        return self._feature_ids

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    @property
    def n_features(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    @property
    def n_missing(self) -> int:
        return int(np.isnan(self._data).sum())

    def to_frame(self) -> pd.DataFrame:
        """Return a (writable) DataFrame copy indexed by feature id."""
        return pd.DataFrame(
            self._data.copy(), index=self._feature_ids.copy(), columns=self._sample_ids.copy()
        )

    def with_data(self, data: np.ndarray) -> WideMatrix:
        """Return a new matrix with the same keys and replacement values."""
        return WideMatrix(data, self._feature_ids, self._sample_ids)

    def _positions(self, index: pd.Index, keys: Iterable, axis: str) -> np.ndarray:
        keys = list(keys)
        positions = index.get_indexer(keys)
        if (positions < 0).any():
            missing = [k for k, p in zip(keys, positions) if p < 0]
            raise KeyNotFound(f"unknown {axis} ids", keys=missing)
        return positions

    def select_features(self, keys: Iterable | np.ndarray | pd.Series) -> WideMatrix:
        """
        Subset rows by label list or boolean mask.

        Label lists are returned in the order given; boolean masks keep the
        current order.

        Raises:
            KeyNotFound: If a label is not a row key
            ShapeMismatch: If a boolean mask has the wrong length
        """
        positions = self._resolve_selection(keys, self._feature_ids, "feature")
        return WideMatrix(
            self._data[positions, :], self._feature_ids[positions], self._sample_ids
        )

    def select_samples(self, keys: Iterable | np.ndarray | pd.Series) -> WideMatrix:
        """Subset columns by label list or boolean mask (see select_features)."""
        positions = self._resolve_selection(keys, self._sample_ids, "sample")
        return WideMatrix(
            self._data[:, positions], self._feature_ids, self._sample_ids[positions]
        )

    def _resolve_selection(self, keys, index: pd.Index, axis: str) -> np.ndarray:
        if isinstance(keys, pd.Series):
            keys = keys.values
        if isinstance(keys, np.ndarray) and keys.dtype == bool:
            if len(keys) != len(index):
                raise ShapeMismatch(
                    f"mask length ({len(keys)}) must match n_{axis}s ({len(index)})"
                )
            return np.flatnonzero(keys)
        return self._positions(index, keys, axis)

    def equals(self, other: WideMatrix) -> bool:
        """Key-aligned equality, independent of row/column order."""
        if not isinstance(other, WideMatrix):
            return False
        if self.shape != other.shape:
            return False
        if set(self._feature_ids) != set(other.feature_ids):
            return False
        if set(self._sample_ids) != set(other.sample_ids):
            return False
        aligned = other.select_features(self._feature_ids).select_samples(self._sample_ids)
        return bool(np.array_equal(self._data, aligned.data, equal_nan=True))

    def identical(self, other: WideMatrix) -> bool:
        """Equality including row and column order."""
        return (
            isinstance(other, WideMatrix)
            and self._feature_ids.tolist() == other.feature_ids.tolist()
            and self._sample_ids.tolist() == other.sample_ids.tolist()
            and bool(np.array_equal(self._data, other.data, equal_nan=True))
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WideMatrix):
            return NotImplemented
        return self.equals(other)

    __hash__ = None

    def __repr__(self) -> str:
        if self.n_features == 0 or self.n_samples == 0:
            return f"WideMatrix({self.n_features} features × {self.n_samples} samples)"
        return (
            f"WideMatrix({self.n_features} features × {self.n_samples} samples)\n"
            f"  Features: {self.feature_ids[0]}...{self.feature_ids[-1]}\n"
            f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
            f"  Missing: {self.n_missing}"
        )
