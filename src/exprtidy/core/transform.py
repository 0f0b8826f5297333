"""
Base transformation framework for immutable matrix operations.

Preparing a matrix for an external engine is a chain of small pure steps
(low-count filtering, row z-scoring). Each step is a Transform: it takes a
WideMatrix, returns a new WideMatrix, and never touches its input.

Each step must be:
    - Reproducible (same input + params -> same output)
    - Auditable (parameters recorded for the methods section)
    - Checkable (preconditions reported before applying)

Examples:
    >>> from exprtidy.core.transform import Transform
    >>>
    >>> class Log2Transform(Transform):
    ...     def __init__(self, pseudocount: float = 1.0):
    ...         super().__init__(name="Log2Transform", params={"pseudocount": pseudocount})
    ...         self.pseudocount = pseudocount
    ...
    ...     def apply(self, matrix):
    ...         import numpy as np
    ...         return matrix.with_data(np.log2(matrix.data + self.pseudocount))
    >>>
    >>> Log2Transform()
    Log2Transform(pseudocount=1.0)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from exprtidy.core.widematrix import WideMatrix

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for all matrix transformations.

    Attributes:
        name: Human-readable transformation name
        params: JSON-serializable parameters used for this transformation
        timestamp: When this transform instance was created (audit trail)
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, matrix: WideMatrix) -> WideMatrix:
        """
        Execute transformation and return a new matrix.

        Must never modify the input matrix.
        """

    def validate(self, matrix: WideMatrix) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Provenance record for diagnostics reports."""
        return {
            'name': self.name,
            'params': dict(self.params),
            'timestamp': self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
