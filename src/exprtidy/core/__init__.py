"""
Core data structures for the expression preparation pipeline.

This module provides the foundational types that all other modules build upon:

1. WideMatrix: entity x sample numeric matrix with unique row/column keys
2. LongTable: tidy (entity_id, sample_id, value) records
3. Transform: abstract base class for immutable matrix transformations
4. Diagnostics: non-fatal findings returned alongside results
5. errors: fatal error hierarchy (KeyNotFound, ShapeMismatch, ...)

Design Philosophy:
    - Immutability: all operations return new instances
    - Explicit failure: mismatched keys raise, never silently drop
    - Observable loss: anything dropped or duplicated is counted
"""

from exprtidy.core.diagnostics import AmbiguousMapping, Diagnostics, UnresolvedIdentifier
from exprtidy.core.errors import (
    ConfigurationError,
    DuplicateKeyConflict,
    EmptyCriteria,
    ExprTidyError,
    InvalidCriterion,
    KeyNotFound,
    ShapeMismatch,
    TypeMismatch,
    UnknownStatistic,
)
from exprtidy.core.longtable import LongTable
from exprtidy.core.transform import Transform
from exprtidy.core.widematrix import WideMatrix

__all__ = [
    'WideMatrix',
    'LongTable',
    'Transform',
    'Diagnostics',
    'AmbiguousMapping',
    'UnresolvedIdentifier',
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
