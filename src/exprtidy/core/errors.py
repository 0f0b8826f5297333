"""
Exception hierarchy for the expression preparation pipeline.

Every fatal condition raised by the pipeline derives from ExprTidyError and
also from the closest builtin exception, so code that catches ``KeyError`` or
``ValueError`` keeps working.

Each error carries the offending keys on its ``keys`` attribute. Messages
list at most the first ``MAX_KEYS_IN_MESSAGE`` keys; the attribute always
holds the complete list.

Examples:
    >>> from exprtidy.core.errors import ShapeMismatch
    >>> try:
    ...     raise ShapeMismatch("samples differ", keys=["S3"])
    ... except ValueError as e:
    ...     print(e.keys)
    ['S3']
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

__all__ = [
    'ExprTidyError',
    'KeyNotFound',
    'TypeMismatch',
    'ShapeMismatch',
    'DuplicateKeyConflict',
    'ConfigurationError',
    'UnknownStatistic',
    'EmptyCriteria',
    'InvalidCriterion',
    'format_keys',
]

MAX_KEYS_IN_MESSAGE = 10


def format_keys(keys: Iterable[Any], limit: int = MAX_KEYS_IN_MESSAGE) -> str:
    """Render keys for an error message, truncated to ``limit`` entries."""
    keys = list(keys)
    shown = ", ".join(repr(k) for k in keys[:limit])
    if len(keys) > limit:
        shown += f", ... ({len(keys) - limit} more)"
    return f"[{shown}]"


class ExprTidyError(Exception):
    """Base class for all fatal pipeline errors."""

    def __init__(self, message: str, keys: Optional[Iterable[Any]] = None):
        self.keys = list(keys) if keys is not None else []
        if self.keys:
            message = f"{message}: {format_keys(self.keys)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return str(self.args[0]) if self.args else ""


class KeyNotFound(ExprTidyError, KeyError):
    """A requested row, column or factor key does not exist."""


class TypeMismatch(ExprTidyError, TypeError):
    """A non-numeric value was found where a numeric reduction is required."""


class ShapeMismatch(ExprTidyError, ValueError):
    """Key sets that must align between two structures do not."""


class DuplicateKeyConflict(ExprTidyError, ValueError):
    """Duplicate (entity_id, sample_id) pairs found and no reducer was given."""


class ConfigurationError(ExprTidyError, ValueError):
    """Invalid pipeline configuration."""


class UnknownStatistic(ConfigurationError, KeyError):
    """A selection criterion names a statistic absent from the summary."""


class EmptyCriteria(ConfigurationError):
    """A selection was requested with no criteria at all."""


class InvalidCriterion(ConfigurationError):
    """A selection criterion is malformed (e.g. unsupported comparator)."""
