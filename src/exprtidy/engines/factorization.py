"""
Handoff to a pathway-informed matrix-factorization engine.

The engine (e.g. PLIER) decomposes a z-scored gene x sample matrix into latent
factors, optionally guided by a prior gene x gene-set membership matrix. It
returns a factor x sample activity matrix and a per-factor summary.

This module does not factorize anything. It prepares the engine's input
(row z-scoring and the gene intersection with the priors) and validates what
comes back.

Preconditions enforced before handoff:
    - every row z-scored (mean 0, sd 1 across samples, NaN-aware)
    - rows with fewer than two observed values or zero variance removed
      (z-scores are undefined for them) and counted
    - expression and prior matrices restricted to their shared genes, in the
      expression matrix's order
    - gene sets with fewer than ``min_genes`` members after restriction
      removed and counted

Examples:
    >>> prepared = prepare_factorization_input(expression, priors, min_genes=10)
    >>> result = run_factorization(my_engine, prepared)
    >>> result.activity.shape          # factors x samples
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from scipy import stats

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.errors import ShapeMismatch
from exprtidy.core.transform import Transform
from exprtidy.core.widematrix import WideMatrix
from exprtidy.tidy.selection import FactorSummary

logger = logging.getLogger(__name__)

__all__ = [
    'RowZScore',
    'FactorizationInput',
    'FactorizationResult',
    'FactorizationEngine',
    'prepare_factorization_input',
    'run_factorization',
]


def _row_is_scalable(data: np.ndarray) -> np.ndarray:
    """Rows with at least two observed values and non-zero spread."""
    missing = np.isnan(data)
    observed = np.sum(~missing, axis=1)
    if data.shape[1] == 0:
        return np.zeros(len(data), dtype=bool)
    highest = np.where(missing, -np.inf, data).max(axis=1)
    lowest = np.where(missing, np.inf, data).min(axis=1)
    with np.errstate(invalid='ignore'):
        spread = highest - lowest
    return (observed >= 2) & (np.nan_to_num(spread, nan=0.0, posinf=0.0, neginf=0.0) > 0)


class RowZScore(Transform):
    """
    Standardize every row to mean 0 and standard deviation 1.

    Missing values are ignored when computing each row's mean and standard
    deviation and stay missing in the output. Uses the sample standard
    deviation (ddof=1), matching R's ``sd`` used by PLIER's ``rowNorm``.

    Params:
        drop_constant: Remove rows that cannot be scaled (fewer than two
            observed values or zero variance). If False, such rows raise.
    """

    def __init__(self, drop_constant: bool = True, ddof: int = 1):
        super().__init__(name="RowZScore", params={"drop_constant": drop_constant, "ddof": ddof})
        self.drop_constant = drop_constant
        self.ddof = ddof

    def apply(self, matrix: WideMatrix) -> WideMatrix:
        scalable = _row_is_scalable(matrix.data)
        n_constant = int((~scalable).sum())
        if n_constant:
            if not self.drop_constant:
                raise ShapeMismatch(
                    f"{n_constant} rows have zero variance or fewer than two observed values",
                    keys=matrix.feature_ids[~scalable].tolist(),
                )
            logger.info(f"RowZScore: removing {n_constant} unscalable rows")
            matrix = matrix.select_features(scalable)

        if matrix.n_features == 0:
            return matrix
        zscored = stats.zscore(matrix.data, axis=1, ddof=self.ddof, nan_policy='omit')
        return matrix.with_data(np.asarray(zscored, dtype=np.float64))

    def validate(self, matrix: WideMatrix) -> list[str]:
        errors = super().validate(matrix)
        if matrix.n_samples < 2:
            errors.append("Row z-scoring needs at least two samples")
        return errors


@dataclass
class FactorizationInput:
    """
    Engine-ready expression and prior matrices.

    Attributes:
        expression: Row z-scored genes x samples
        priors: Genes x gene-sets membership (same genes and order), or None
        diagnostics: Rows/gene sets removed during preparation
    """

    expression: WideMatrix
    priors: Optional[WideMatrix] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class FactorizationResult:
    """
    Engine output.

    Attributes:
        activity: Factors x samples activity matrix (row keys = factor indices)
        summary: Per-factor/gene-set statistics
    """

    activity: WideMatrix
    summary: FactorSummary


class FactorizationEngine(ABC):
    """Abstract interface for matrix-factorization engines."""

    @abstractmethod
    def fit(self, expression: WideMatrix, priors: Optional[WideMatrix]) -> FactorizationResult:
        """
        Factorize a z-scored genes x samples matrix.

        Args:
            expression: Row z-scored matrix
            priors: Optional genes x gene-sets membership matrix sharing the
                expression matrix's row keys and order

        Returns:
            FactorizationResult
        """


def prepare_factorization_input(
    expression: WideMatrix,
    priors: Optional[WideMatrix] = None,
    min_genes: int = 1,
) -> FactorizationInput:
    """
    Z-score rows and align the expression matrix with the gene-set priors.

    Args:
        expression: Genes x samples expression (target-identifier keyed,
            duplicates already resolved)
        priors: Genes x gene-sets membership, nonzero = member
        min_genes: Minimum members a gene set must keep after restriction

    Raises:
        ShapeMismatch: If expression and priors share no genes, or fewer than
            two samples are present
    """
    if expression.n_samples < 2:
        raise ShapeMismatch(f"row z-scoring needs at least two samples, got {expression.n_samples}")

    diagnostics = Diagnostics()
    zscore = RowZScore(drop_constant=True)
    scaled = zscore.apply(expression)
    diagnostics.count('rows_dropped_unscalable', expression.n_features - scaled.n_features)

    if priors is None:
        logger.info(f"Prepared {scaled.n_features} genes × {scaled.n_samples} samples (no priors)")
        return FactorizationInput(expression=scaled, priors=None, diagnostics=diagnostics)

    prior_genes = set(priors.feature_ids)
    shared = [g for g in scaled.feature_ids if g in prior_genes]
    if not shared:
        raise ShapeMismatch("expression matrix and gene-set priors share no genes")

    diagnostics.count('rows_dropped_not_in_priors', scaled.n_features - len(shared))
    scaled = scaled.select_features(shared)
    aligned_priors = priors.select_features(shared)

    members = np.sum(np.nan_to_num(aligned_priors.data) != 0, axis=0)
    keep_sets = members >= min_genes
    diagnostics.count('gene_sets_dropped_too_small', int((~keep_sets).sum()))
    aligned_priors = aligned_priors.select_samples(keep_sets)

    logger.info(
        f"Prepared {scaled.n_features} shared genes × {scaled.n_samples} samples "
        f"with {aligned_priors.n_samples} gene sets "
        f"({int((~keep_sets).sum())} gene sets below {min_genes} members dropped)"
    )
    return FactorizationInput(expression=scaled, priors=aligned_priors, diagnostics=diagnostics)


def run_factorization(engine: FactorizationEngine, prepared: FactorizationInput) -> FactorizationResult:
    """
    Call the engine and check its output is keyed consistently with its input.

    Raises:
        ShapeMismatch: If the activity matrix's samples differ from the input's,
            or the summary references factors absent from the activity matrix
    """
    result = engine.fit(prepared.expression, prepared.priors)

    expected = list(prepared.expression.sample_ids)
    observed = list(result.activity.sample_ids)
    if set(expected) != set(observed):
        raise ShapeMismatch(
            "factorization activity samples differ from input samples",
            keys=sorted(set(expected) ^ set(observed), key=str),
        )
    if observed != expected:
        result = FactorizationResult(
            activity=result.activity.select_samples(expected), summary=result.summary
        )

    unknown = [f for f in result.summary.factors if f not in set(result.activity.feature_ids)]
    if unknown:
        raise ShapeMismatch("summary references factors absent from the activity matrix", keys=unknown)

    logger.info(
        f"Factorization returned {result.activity.n_features} factors, "
        f"{len(result.summary)} summary rows"
    )
    return result
