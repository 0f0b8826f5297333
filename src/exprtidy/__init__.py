"""
exprtidy: identifier mapping, aggregation and tidy reshaping for expression data.

Prepares gene-expression matrices for a pathway-informed factorization engine
and a count-based differential-expression engine, and brings both engines'
outputs back into a uniform tidy shape.
"""

__version__ = "0.1.0"

from exprtidy.core import (
    ConfigurationError,
    Diagnostics,
    DuplicateKeyConflict,
    EmptyCriteria,
    ExprTidyError,
    InvalidCriterion,
    KeyNotFound,
    LongTable,
    ShapeMismatch,
    TypeMismatch,
    UnknownStatistic,
    WideMatrix,
)
from exprtidy.mapping import IdentifierMap
from exprtidy.tidy import (
    FactorSummary,
    JoinPolicy,
    Reducer,
    SampleMetadata,
    SignificanceCriteria,
    aggregate,
    expand,
    extract_rows,
    join,
    select,
    to_long,
    to_wide,
)

__all__ = [
    '__version__',
    'WideMatrix',
    'LongTable',
    'Diagnostics',
    'IdentifierMap',
    'SampleMetadata',
    'FactorSummary',
    'SignificanceCriteria',
    'Reducer',
    'JoinPolicy',
    'expand',
    'aggregate',
    'to_long',
    'to_wide',
    'join',
    'select',
    'extract_rows',
    'ExprTidyError',
    'KeyNotFound',
    'TypeMismatch',
    'ShapeMismatch',
    'DuplicateKeyConflict',
    'ConfigurationError',
    'UnknownStatistic',
    'EmptyCriteria',
    'InvalidCriterion',
]
