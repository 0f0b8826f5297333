"""
Non-fatal diagnostics accumulated alongside pipeline results.

Identifier resolution loses or duplicates information in two ways that do not
abort a run but must never be discarded:

- AmbiguousMapping: one source identifier resolved to several targets. The
  value is carried to every target, so it gains weight downstream.
- UnresolvedIdentifier: a source identifier resolved to nothing. Its row is
  dropped, which measures coverage loss.

Stages return a Diagnostics container next to their output; the CLI writes it
as a JSON report.

Examples:
    >>> diag = Diagnostics()
    >>> diag.add_unresolved("ENSG9", reason="no annotation")
    >>> diag.n_unresolved
    1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

__all__ = ['AmbiguousMapping', 'UnresolvedIdentifier', 'Diagnostics']


@dataclass(frozen=True)
class AmbiguousMapping:
    """A source identifier that maps to more than one target."""

    source_id: str
    targets: tuple[str, ...]

    @property
    def fan_out(self) -> int:
        return len(self.targets)

    def to_dict(self) -> dict:
        return {
            'source_id': self.source_id,
            'targets': list(self.targets),
            'fan_out': self.fan_out,
        }


@dataclass(frozen=True)
class UnresolvedIdentifier:
    """A source identifier with no target; its row was dropped."""

    source_id: str
    reason: str = "no target identifier"

    def to_dict(self) -> dict:
        return {'source_id': self.source_id, 'reason': self.reason}


@dataclass
class Diagnostics:
    """
    Ordered collection of non-fatal findings from one pipeline invocation.

    Attributes:
        ambiguous: Source identifiers resolved to several targets
        unresolved: Source identifiers resolved to no target
        counts: Free-form named counters (rows dropped by a filter, etc.)
    """

    ambiguous: List[AmbiguousMapping] = field(default_factory=list)
    unresolved: List[UnresolvedIdentifier] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def n_ambiguous(self) -> int:
        return len(self.ambiguous)

    @property
    def n_unresolved(self) -> int:
        return len(self.unresolved)

    def add_ambiguous(self, source_id: str, targets) -> None:
        self.ambiguous.append(AmbiguousMapping(source_id, tuple(sorted(targets))))

    def add_unresolved(self, source_id: str, reason: str = "no target identifier") -> None:
        self.unresolved.append(UnresolvedIdentifier(source_id, reason))

    def count(self, name: str, n: int = 1) -> None:
        """Increment a named counter."""
        self.counts[name] = self.counts.get(name, 0) + int(n)

    def extend(self, other: Diagnostics) -> Diagnostics:
        """Append another container's findings to this one (returns self)."""
        self.ambiguous.extend(other.ambiguous)
        self.unresolved.extend(other.unresolved)
        for name, n in other.counts.items():
            self.count(name, n)
        return self

    def log_summary(self, level: int = logging.INFO) -> None:
        logger.log(
            level,
            f"Diagnostics: {self.n_ambiguous} ambiguous source ids, "
            f"{self.n_unresolved} unresolved source ids"
        )
        for name, n in self.counts.items():
            logger.log(level, f"  {name}: {n}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_ambiguous': self.n_ambiguous,
            'n_unresolved': self.n_unresolved,
            'ambiguous': [a.to_dict() for a in self.ambiguous],
            'unresolved': [u.to_dict() for u in self.unresolved],
            'counts': dict(self.counts),
        }
