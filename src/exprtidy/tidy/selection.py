"""
Factor significance selection.

A factorization engine reports, per latent factor, one row per associated
gene set with statistics such as AUC, p-value and FDR. Selecting the factors
worth inspecting is a conjunction of threshold predicates over those rows:

    FDR < 0.05 AND AUC > 0.75

A factor is selected when at least one of its gene-set rows satisfies every
criterion. The same factor passing through several gene sets is selected
once, at the position of its first passing row.

Misconfiguration is never treated as "match everything": an empty criteria
list raises EmptyCriteria and a statistic the summary does not report raises
UnknownStatistic.

Examples:
    >>> summary = FactorSummary.from_wide(plier_summary, factor_col='LV index',
    ...                                   label_col='pathway')
    >>> criteria = SignificanceCriteria.parse(["FDR<0.05", "AUC>0.75"])
    >>> factors = select(summary, criteria)
    >>> activity_subset = extract_rows(activity, factors)
"""

from __future__ import annotations

import logging
import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from exprtidy.core.errors import (
    EmptyCriteria,
    InvalidCriterion,
    KeyNotFound,
    ShapeMismatch,
    TypeMismatch,
    UnknownStatistic,
)
from exprtidy.core.widematrix import WideMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'FactorSummary',
    'Criterion',
    'SignificanceCriteria',
    'COMPARATORS',
    'select',
    'extract_rows',
]

FACTOR = 'factor_index'
ASSOCIATION = 'association'
STATISTIC = 'statistic_name'
STAT_VALUE = 'statistic_value'

COMPARATORS: Dict[str, Callable[[Any, Any], Any]] = {
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
    '==': operator.eq,
}

_CRITERION_PATTERN = re.compile(r'^\s*(.+?)\s*(<=|>=|==|<|>)\s*(\S+)\s*$')


class FactorSummary:
    """
    Per-factor statistics, one row per factor/gene-set association.

    Internally wide: columns ``factor_index``, ``association`` (gene-set label
    or occurrence number) and one float column per statistic.
    """

    def __init__(self, frame: pd.DataFrame):
        for required in (FACTOR, ASSOCIATION):
            if required not in frame.columns:
                raise ShapeMismatch(f"FactorSummary frame lacks column '{required}'")
        statistics = [c for c in frame.columns if c not in (FACTOR, ASSOCIATION)]
        converted = frame[[FACTOR, ASSOCIATION]].copy()
        for name in statistics:
            try:
                converted[name] = pd.to_numeric(frame[name], errors='raise').astype(np.float64)
            except (TypeError, ValueError) as e:
                raise TypeMismatch(f"statistic '{name}' is not numeric: {e}") from e
        self._frame = converted.reset_index(drop=True)

    @classmethod
    def from_wide(
        cls,
        frame: pd.DataFrame,
        factor_col: str,
        label_col: Optional[str] = None,
        statistics: Optional[Sequence[str]] = None,
    ) -> FactorSummary:
        """
        Build from an engine summary table with one column per statistic.

        Args:
            frame: Engine summary (e.g. PLIER's ``summary`` data frame)
            factor_col: Column holding the factor index
            label_col: Column holding the gene-set label, if any
            statistics: Statistic columns to keep (default: every numeric
                column other than factor_col/label_col)
        """
        if factor_col not in frame.columns:
            raise KeyNotFound(f"factor column '{factor_col}' not in summary columns {list(frame.columns)}")
        if label_col is not None and label_col not in frame.columns:
            raise KeyNotFound(f"label column '{label_col}' not in summary columns {list(frame.columns)}")

        if statistics is None:
            statistics = [
                c for c in frame.columns
                if c not in (factor_col, label_col) and pd.api.types.is_numeric_dtype(frame[c])
            ]
        else:
            missing = [s for s in statistics if s not in frame.columns]
            if missing:
                raise UnknownStatistic("statistics not in summary columns", keys=missing)

        wide = pd.DataFrame({FACTOR: frame[factor_col].to_numpy()})
        if label_col is not None:
            wide[ASSOCIATION] = frame[label_col].to_numpy()
        else:
            wide[ASSOCIATION] = wide.groupby(FACTOR, sort=False).cumcount().to_numpy()
        for name in statistics:
            wide[name] = frame[name].to_numpy()
        return cls(wide)

    @classmethod
    def from_records(cls, records: Iterable[Tuple]) -> FactorSummary:
        """
        Build from ``(factor_index, statistic_name, statistic_value)`` records.

        Records may carry a fourth element naming the association (gene set).
        Without it, the k-th occurrence of a statistic for a factor belongs to
        that factor's k-th association.
        """
        rows = []
        for record in records:
            if len(record) == 4:
                factor, name, value, association = record
            elif len(record) == 3:
                factor, name, value = record
                association = None
            else:
                raise ShapeMismatch(f"FactorSummary record must have 3 or 4 fields, got {record!r}")
            rows.append((factor, name, value, association))

        long = pd.DataFrame(rows, columns=[FACTOR, STATISTIC, STAT_VALUE, ASSOCIATION])
        if long.empty:
            return cls(pd.DataFrame({FACTOR: [], ASSOCIATION: []}))
        implicit = long[ASSOCIATION].isna()
        long.loc[implicit, ASSOCIATION] = (
            long[implicit].groupby([FACTOR, STATISTIC], sort=False).cumcount()
        )
        if long.duplicated(subset=[FACTOR, ASSOCIATION, STATISTIC]).any():
            raise ShapeMismatch("duplicate statistic for the same factor/association")

        row_keys = long[[FACTOR, ASSOCIATION]].drop_duplicates()
        wide = long.pivot(index=[FACTOR, ASSOCIATION], columns=STATISTIC, values=STAT_VALUE)
        wide = wide.reindex(pd.MultiIndex.from_frame(row_keys))
        wide = wide[list(pd.unique(long[STATISTIC]))]
        wide.columns.name = None
        return cls(wide.reset_index())

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def statistics(self) -> List[str]:
        return [c for c in self._frame.columns if c not in (FACTOR, ASSOCIATION)]

    @property
    def factors(self) -> List[Any]:
        """Distinct factor indices in first-seen order."""
        return list(pd.unique(self._frame[FACTOR]))

    def to_records(self) -> List[Tuple]:
        """Long ``(factor_index, statistic_name, statistic_value)`` records, row-major."""
        names = self.statistics
        rows = self._frame[names].itertuples(index=False, name=None)
        return [
            (factor, name, value)
            for factor, values in zip(self._frame[FACTOR], rows)
            for name, value in zip(names, values)
        ]

    def to_long(self) -> pd.DataFrame:
        """Tidy table: factor_index, association, statistic_name, statistic_value."""
        long = self._frame.melt(
            id_vars=[FACTOR, ASSOCIATION], var_name=STATISTIC, value_name=STAT_VALUE
        )
        return long

    def rows_for(self, factor_indices: Iterable[Any]) -> FactorSummary:
        """Rows belonging to the given factors, in the summary's order."""
        wanted = set(factor_indices)
        return FactorSummary(self._frame[self._frame[FACTOR].isin(wanted)])

    def add_adjusted_pvalues(
        self,
        pvalue_stat: str = 'p-value',
        name: str = 'FDR',
        method: str = 'fdr_bh',
    ) -> FactorSummary:
        """
        Derive a multiple-testing-adjusted statistic from raw p-values.

        Missing p-values stay missing and are excluded from the correction.

        Args:
            pvalue_stat: Statistic holding raw p-values
            name: Name of the new statistic
            method: statsmodels ``multipletests`` method ('fdr_bh', 'fdr_by',
                'bonferroni', 'holm', ...)
        """
        from statsmodels.stats.multitest import multipletests

        if pvalue_stat not in self.statistics:
            raise UnknownStatistic(f"p-value statistic '{pvalue_stat}' not in summary", keys=[pvalue_stat])
        pvalues = self._frame[pvalue_stat].to_numpy()
        adjusted = np.full(pvalues.shape, np.nan)
        valid = ~np.isnan(pvalues)
        if valid.any():
            _, qvalues, _, _ = multipletests(pvalues[valid], method=method)
            adjusted[valid] = qvalues

        frame = self.frame
        frame[name] = adjusted
        logger.info(
            f"Added '{name}' from '{pvalue_stat}' ({method}) for {int(valid.sum())} rows"
        )
        return FactorSummary(frame)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"FactorSummary({len(self)} rows, {len(self.factors)} factors, "
            f"statistics={self.statistics})"
        )


@dataclass(frozen=True)
class Criterion:
    """One ``statistic comparator threshold`` predicate."""

    statistic: str
    comparator: str
    threshold: float

    def __post_init__(self):
        if self.comparator not in COMPARATORS:
            raise InvalidCriterion(
                f"unsupported comparator '{self.comparator}' in criterion on "
                f"'{self.statistic}'. Use one of {list(COMPARATORS)}"
            )
        try:
            object.__setattr__(self, 'threshold', float(self.threshold))
        except (TypeError, ValueError):
            raise InvalidCriterion(
                f"threshold for '{self.statistic}' must be numeric, got {self.threshold!r}"
            ) from None

    @classmethod
    def parse(cls, text: str) -> Criterion:
        """Parse ``"FDR<0.05"`` style text."""
        match = _CRITERION_PATTERN.match(text)
        if match is None:
            raise InvalidCriterion(
                f"cannot parse criterion '{text}'; expected e.g. 'FDR<0.05' "
                f"with comparator one of {list(COMPARATORS)}"
            )
        statistic, comparator, threshold = match.groups()
        return cls(statistic, comparator, threshold)

    def evaluate(self, values: pd.Series) -> pd.Series:
        return COMPARATORS[self.comparator](values, self.threshold)

    def __str__(self) -> str:
        return f"{self.statistic} {self.comparator} {self.threshold:g}"


CriterionLike = Union[Criterion, str, Sequence[Any]]


@dataclass(frozen=True)
class SignificanceCriteria:
    """Ordered, AND-ed list of criteria."""

    criteria: Tuple[Criterion, ...]

    @classmethod
    def of(cls, items: Iterable[CriterionLike]) -> SignificanceCriteria:
        """Accept Criterion objects, ``"FDR<0.05"`` strings or (stat, op, threshold) triples."""
        parsed = []
        for item in items:
            if isinstance(item, Criterion):
                parsed.append(item)
            elif isinstance(item, str):
                parsed.append(Criterion.parse(item))
            elif len(item) == 3:
                parsed.append(Criterion(str(item[0]), str(item[1]), item[2]))
            else:
                raise InvalidCriterion(f"cannot interpret criterion {item!r}")
        return cls(tuple(parsed))

    @classmethod
    def parse(cls, texts: Iterable[str]) -> SignificanceCriteria:
        return cls(tuple(Criterion.parse(t) for t in texts))

    def __iter__(self):
        return iter(self.criteria)

    def __len__(self) -> int:
        return len(self.criteria)

    def __str__(self) -> str:
        return " AND ".join(str(c) for c in self.criteria)


def select(
    summary: FactorSummary,
    criteria: SignificanceCriteria | Iterable[CriterionLike],
) -> List[Any]:
    """
    Factors with at least one association satisfying every criterion.

    Returns:
        Deduplicated factor indices in order of first passing row

    Raises:
        EmptyCriteria: If no criteria are given
        UnknownStatistic: If a criterion names a statistic not in the summary
        InvalidCriterion: If a criterion is malformed
    """
    if not isinstance(criteria, SignificanceCriteria):
        criteria = SignificanceCriteria.of(criteria)
    if len(criteria) == 0:
        raise EmptyCriteria("at least one significance criterion is required")

    unknown = [c.statistic for c in criteria if c.statistic not in summary.statistics]
    if unknown:
        raise UnknownStatistic(
            f"criteria reference statistics not in summary (available: {summary.statistics})",
            keys=unknown,
        )

    frame = summary.frame
    mask = pd.Series(True, index=frame.index)
    for criterion in criteria:
        mask &= criterion.evaluate(frame[criterion.statistic]).astype(bool)

    selected = list(pd.unique(frame.loc[mask, FACTOR]))
    logger.info(
        f"Selected {len(selected)}/{len(summary.factors)} factors "
        f"({int(mask.sum())} passing rows) with {criteria}"
    )
    return selected


def extract_rows(matrix: WideMatrix, indices: Iterable[Any]) -> WideMatrix:
    """
    Restrict a factor-activity matrix to the given factors, in the given order.

    Duplicate indices are collapsed to their first occurrence.

    Raises:
        KeyNotFound: If an index is not a row of the matrix
    """
    ordered = list(dict.fromkeys(indices))
    return matrix.select_features(ordered)
