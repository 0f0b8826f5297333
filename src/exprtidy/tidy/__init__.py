"""
Tidy transformation pipeline.

Stages, in pipeline order:
    expand      source-keyed WideMatrix -> target-keyed LongTable
    aggregate   LongTable -> WideMatrix, duplicates reduced (mean by default)
    to_long / to_wide
                WideMatrix <-> LongTable
    join        LongTable + SampleMetadata -> annotated LongTable
    select / extract_rows
                FactorSummary + criteria -> factor indices -> activity rows
"""

from exprtidy.tidy.aggregate import Reducer, aggregate
from exprtidy.tidy.expand import ExpansionResult, expand
from exprtidy.tidy.join import JoinPolicy, JoinResult, SampleMetadata, join
from exprtidy.tidy.reshape import to_long, to_wide
from exprtidy.tidy.selection import (
    Criterion,
    FactorSummary,
    SignificanceCriteria,
    extract_rows,
    select,
)

__all__ = [
    'expand',
    'ExpansionResult',
    'aggregate',
    'Reducer',
    'to_long',
    'to_wide',
    'join',
    'JoinPolicy',
    'JoinResult',
    'SampleMetadata',
    'select',
    'extract_rows',
    'FactorSummary',
    'Criterion',
    'SignificanceCriteria',
]
