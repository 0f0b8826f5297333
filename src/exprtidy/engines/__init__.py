"""
Input preparation and output validation for external analysis engines.

Neither engine is implemented here. ``factorization`` readies a z-scored
expression matrix and gene-set priors for a PLIER-style engine;
``differential`` readies counts and metadata for a DESeq2-style engine and
ships an optional pydeseq2 adapter.
"""

from exprtidy.engines.differential import (
    DifferentialEngine,
    DifferentialInput,
    LowCountFilter,
    PyDESeq2Engine,
    prepare_differential_input,
    results_to_long,
    validate_differential_results,
)
from exprtidy.engines.factorization import (
    FactorizationEngine,
    FactorizationInput,
    FactorizationResult,
    RowZScore,
    prepare_factorization_input,
    run_factorization,
)

__all__ = [
    'RowZScore',
    'FactorizationEngine',
    'FactorizationInput',
    'FactorizationResult',
    'prepare_factorization_input',
    'run_factorization',
    'LowCountFilter',
    'DifferentialEngine',
    'DifferentialInput',
    'PyDESeq2Engine',
    'prepare_differential_input',
    'validate_differential_results',
    'results_to_long',
]
