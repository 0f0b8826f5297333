"""
Handoff to a count-based differential-expression engine.

The engine (e.g. DESeq2) receives a raw integer count matrix (genes x samples)
and per-sample metadata with a group column, and returns per-gene test
statistics. This module checks the inputs line up before the handoff and
turns the engine's results back into tidy records.

Preconditions enforced before handoff:
    - counts are non-negative integers with no missing cells
    - count-matrix samples and metadata samples are the same set, and the
      metadata is realigned to the count matrix's column order
    - the group column exists and has at least two levels
    - genes with a total count below ``min_total`` removed (default 10)

Examples:
    >>> prepared = prepare_differential_input(counts, metadata, group_col='group')
    >>> results = PyDESeq2Engine(reference='CTRL').run(
    ...     prepared.counts, prepared.metadata, 'group'
    ... )
    >>> validate_differential_results(results, prepared.counts)
    >>> tidy = results_to_long(results)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.errors import KeyNotFound, ShapeMismatch, TypeMismatch
from exprtidy.core.longtable import ENTITY
from exprtidy.core.transform import Transform
from exprtidy.core.widematrix import WideMatrix
from exprtidy.tidy.join import SampleMetadata

logger = logging.getLogger(__name__)

__all__ = [
    'LowCountFilter',
    'DifferentialInput',
    'DifferentialEngine',
    'PyDESeq2Engine',
    'prepare_differential_input',
    'validate_differential_results',
    'results_to_long',
    'REQUIRED_RESULT_COLUMNS',
]

REQUIRED_RESULT_COLUMNS = ('stat', 'pvalue', 'padj')

STATISTIC = 'statistic'
VALUE = 'value'


class LowCountFilter(Transform):
    """
    Drop genes whose total count across all samples is below a threshold.

    DESeq2 users conventionally pre-filter genes with fewer than ~10 reads in
    total; they carry no power and slow the dispersion fit.

    Params:
        min_total: Minimum summed count a gene must reach to be kept
    """

    def __init__(self, min_total: float = 10):
        super().__init__(name="LowCountFilter", params={"min_total": min_total})
        self.min_total = min_total

    def apply(self, matrix: WideMatrix) -> WideMatrix:
        totals = np.nansum(matrix.data, axis=1)
        keep = totals >= self.min_total
        n_removed = int((~keep).sum())
        if n_removed:
            pct = 100 * n_removed / max(matrix.n_features, 1)
            logger.info(
                f"LowCountFilter: removing {n_removed}/{matrix.n_features} genes "
                f"({pct:.1f}%) with total count < {self.min_total}"
            )
        return matrix.select_features(keep)

    def validate(self, matrix: WideMatrix) -> list[str]:
        errors = super().validate(matrix)
        if self.min_total < 0:
            errors.append(f"min_total must be non-negative, got {self.min_total}")
        return errors


@dataclass
class DifferentialInput:
    """
    Engine-ready counts and metadata.

    Attributes:
        counts: Integer counts, genes x samples
        metadata: Sample metadata in the same sample order as ``counts``
        group_col: Column holding the group labels
        diagnostics: Genes removed by the low-count filter
    """

    counts: WideMatrix
    metadata: SampleMetadata
    group_col: str
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def levels(self) -> List[str]:
        return sorted(pd.unique(self.metadata.frame[self.group_col]).tolist(), key=str)


class DifferentialEngine(ABC):
    """Abstract interface for differential-expression engines."""

    @abstractmethod
    def run(self, counts: WideMatrix, metadata: SampleMetadata, group_col: str) -> pd.DataFrame:
        """
        Test every gene for a group effect.

        Returns:
            DataFrame indexed by feature id with at least the columns
            ``stat``, ``pvalue`` and ``padj``
        """


def _check_counts(counts: WideMatrix) -> None:
    data = counts.data
    if np.isnan(data).any():
        bad = counts.feature_ids[np.isnan(data).any(axis=1)].tolist()
        raise TypeMismatch("count matrix has missing values", keys=bad)
    bad_rows = ((data < 0) | (data != np.round(data))).any(axis=1)
    if bad_rows.any():
        raise TypeMismatch(
            "count matrix must hold non-negative integers",
            keys=counts.feature_ids[bad_rows].tolist(),
        )


def prepare_differential_input(
    counts: WideMatrix,
    metadata: SampleMetadata,
    group_col: Optional[str] = None,
    min_total: Optional[float] = 10,
) -> DifferentialInput:
    """
    Validate and align a count matrix with its sample metadata.

    Args:
        counts: Raw counts, genes x samples
        metadata: Sample metadata
        group_col: Group column (defaults to ``metadata.group_col``)
        min_total: LowCountFilter threshold; ``None`` skips the filter

    Raises:
        ShapeMismatch: If sample sets differ or the group has fewer than two levels
        KeyNotFound: If the group column is absent
        TypeMismatch: If counts are missing, negative or non-integer
    """
    group_col = group_col or metadata.group_col
    if group_col not in metadata.attribute_columns:
        raise KeyNotFound(
            f"group column '{group_col}' not in sample metadata columns {metadata.attribute_columns}"
        )

    count_samples = list(counts.sample_ids)
    meta_samples = set(metadata.sample_ids)
    only_counts = [s for s in count_samples if s not in meta_samples]
    only_meta = [s for s in metadata.sample_ids if s not in set(count_samples)]
    if only_counts or only_meta:
        raise ShapeMismatch(
            "count matrix and metadata disagree on samples",
            keys=only_counts + only_meta,
        )

    aligned = metadata.reindex(count_samples)
    groups = aligned.frame[group_col]
    if groups.isna().any():
        raise ShapeMismatch(
            f"group column '{group_col}' has missing labels",
            keys=groups.index[groups.isna()].tolist(),
        )
    n_levels = groups.nunique()
    if n_levels < 2:
        raise ShapeMismatch(f"group column '{group_col}' needs at least two levels, found {n_levels}")

    _check_counts(counts)

    diagnostics = Diagnostics()
    if min_total is not None:
        filtered = LowCountFilter(min_total=min_total).apply(counts)
        diagnostics.count('rows_dropped_low_count', counts.n_features - filtered.n_features)
        counts = filtered

    logger.info(
        f"Prepared {counts.n_features} genes × {counts.n_samples} samples, "
        f"{n_levels} levels in '{group_col}'"
    )
    return DifferentialInput(
        counts=counts,
        metadata=SampleMetadata(aligned.frame, group_col=group_col),
        group_col=group_col,
        diagnostics=diagnostics,
    )


def validate_differential_results(
    results: pd.DataFrame,
    counts: WideMatrix,
    required: Sequence[str] = REQUIRED_RESULT_COLUMNS,
) -> None:
    """
    Check an engine's results table covers every input gene.

    Raises:
        KeyNotFound: If required columns are missing
        ShapeMismatch: If result rows do not match the count matrix's genes
    """
    missing_cols = [c for c in required if c not in results.columns]
    if missing_cols:
        raise KeyNotFound("differential results lack required columns", keys=missing_cols)

    if results.index.has_duplicates:
        raise ShapeMismatch(
            "differential results have duplicate feature ids",
            keys=results.index[results.index.duplicated()].unique().tolist(),
        )
    expected = set(counts.feature_ids)
    observed = set(results.index)
    if expected != observed:
        raise ShapeMismatch(
            "differential results do not cover the input genes",
            keys=sorted(expected ^ observed, key=str),
        )


def results_to_long(results: pd.DataFrame, statistics: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Melt a per-gene results table into (entity_id, statistic, value) records.

    Record order is gene-major in the results' row order, then statistic in
    column order.
    """
    statistics = list(statistics) if statistics is not None else [
        c for c in results.columns if pd.api.types.is_numeric_dtype(results[c])
    ]
    values = results[statistics].to_numpy(dtype=np.float64)
    n_genes, n_stats = values.shape
    return pd.DataFrame({
        ENTITY: np.repeat(np.asarray(results.index, dtype=object), n_stats),
        STATISTIC: np.tile(np.asarray(statistics, dtype=object), n_genes),
        VALUE: values.ravel(),
    })


class PyDESeq2Engine(DifferentialEngine):
    """
    Adapter onto pydeseq2 (install the ``deseq`` extra).

    Args:
        reference: Reference level of the group column. Defaults to the first
            level in sorted order.
        alternative: Level compared against the reference. Required when the
            group column has more than two levels.
        alpha: Significance level passed to DeseqStats (independent filtering)
        n_cpus: Worker count for the dispersion fit
    """

    def __init__(
        self,
        reference: Optional[str] = None,
        alternative: Optional[str] = None,
        alpha: float = 0.05,
        n_cpus: Optional[int] = None,
    ):
        self.reference = reference
        self.alternative = alternative
        self.alpha = alpha
        self.n_cpus = n_cpus

    def _contrast(self, levels: List[str], group_col: str) -> List[str]:
        reference = self.reference if self.reference is not None else levels[0]
        if reference not in levels:
            raise KeyNotFound(f"reference level '{reference}' not in {levels}")
        if self.alternative is not None:
            alternative = self.alternative
            if alternative not in levels:
                raise KeyNotFound(f"alternative level '{alternative}' not in {levels}")
        else:
            others = [lvl for lvl in levels if lvl != reference]
            if len(others) != 1:
                raise ShapeMismatch(
                    f"'{group_col}' has {len(levels)} levels; pass alternative= to pick the contrast"
                )
            alternative = others[0]
        return [group_col, alternative, reference]

    def run(self, counts: WideMatrix, metadata: SampleMetadata, group_col: str) -> pd.DataFrame:
        from pydeseq2.dds import DeseqDataSet
        from pydeseq2.default_inference import DefaultInference
        from pydeseq2.ds import DeseqStats

        # pydeseq2 wants samples x genes
        count_frame = counts.to_frame().T.astype(np.int64)
        meta = metadata.reindex(counts.sample_ids).frame
        meta[group_col] = meta[group_col].astype(str)
        levels = sorted(meta[group_col].unique().tolist())
        contrast = self._contrast(levels, group_col)

        logger.info(
            f"Running pydeseq2 on {counts.n_features} genes × {counts.n_samples} samples, "
            f"contrast {contrast[1]} vs {contrast[2]}"
        )
        inference = DefaultInference(n_cpus=self.n_cpus)
        dds = DeseqDataSet(
            counts=count_frame,
            metadata=meta,
            design=f"~{group_col}",
            refit_cooks=True,
            inference=inference,
            quiet=True,
        )
        dds.deseq2()

        stat_res = DeseqStats(dds, contrast=contrast, alpha=self.alpha, inference=inference, quiet=True)
        stat_res.summary()
        results = stat_res.results_df.copy()
        results.index.name = ENTITY

        n_sig = int((results['padj'] < self.alpha).sum())
        logger.info(f"pydeseq2: {n_sig} genes with padj < {self.alpha}")
        return results
