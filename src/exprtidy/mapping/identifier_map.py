"""
Many-to-many relation between source and target gene identifiers.

Annotation databases rarely give a clean one-to-one answer: an Ensembl gene
can carry several symbols, a UniProt accession several Entrez ids. Picking the
"first" hit makes the result depend on the order the database happened to
return, so IdentifierMap keeps every target as a set and reports the
ambiguity instead of resolving it.

No fuzzy matching, case normalization or synonym resolution is performed:
``"tp53"`` and ``"TP53"`` are different identifiers.

Examples:
    >>> from exprtidy.mapping.identifier_map import IdentifierMap
    >>> idmap = IdentifierMap.build_from([
    ...     ("ENSG1", "A"), ("ENSG1", "B"), ("ENSG1", "A"), ("ENSG2", "C"),
    ... ])
    >>> sorted(idmap.resolve("ENSG1"))
    ['A', 'B']
    >>> idmap.resolve("ENSG404")
    frozenset()
    >>> idmap.ambiguity_counts()
    {'ENSG1': 2}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Tuple

import pandas as pd

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.errors import KeyNotFound

if TYPE_CHECKING:
    from exprtidy.mapping.annotation import AnnotationSource

logger = logging.getLogger(__name__)

__all__ = ['IdentifierMap']

_EMPTY: FrozenSet[str] = frozenset()


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and value.strip() == ""


def _as_targets(targets) -> Iterable:
    # a bare string or number is one identifier, not a sequence of characters
    if targets is None or isinstance(targets, (str, int, float)):
        return [targets]
    return targets


class IdentifierMap:
    """
    Immutable source id -> set of target ids relation.

    Sources seen during construction with no usable target are remembered as
    known-but-unresolved, so ``coverage`` reports exactly how many queried ids
    failed to map.
    """

    def __init__(self, relation: Mapping[str, Iterable[str]]):
        self._relation: Dict[str, FrozenSet[str]] = {
            str(src): frozenset(str(t) for t in _as_targets(targets) if not _is_missing(t))
            for src, targets in relation.items()
        }

    @classmethod
    def build_from(cls, pairs: Iterable[Tuple[str, str]]) -> IdentifierMap:
        """
        Build from ``(source_id, target_id)`` pairs, deduplicating.

        Pairs whose source is missing are skipped. Pairs whose target is
        missing register the source with no targets.
        """
        relation: Dict[str, set] = {}
        n_pairs = 0
        for source_id, target_id in pairs:
            n_pairs += 1
            if _is_missing(source_id):
                continue
            targets = relation.setdefault(str(source_id), set())
            if not _is_missing(target_id):
                targets.add(str(target_id))

        idmap = cls(relation)
        logger.debug(
            f"Built IdentifierMap from {n_pairs} pairs: {len(idmap)} sources, "
            f"{len(idmap.targets)} targets, {len(idmap.ambiguous())} ambiguous"
        )
        return idmap

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        source_col: str = 'source_id',
        target_col: str = 'target_id',
    ) -> IdentifierMap:
        """Build from a two-column pair table (e.g. a BioMart export)."""
        missing = [c for c in (source_col, target_col) if c not in frame.columns]
        if missing:
            raise KeyNotFound(f"Mapping table lacks columns; has {list(frame.columns)}", keys=missing)
        return cls.build_from(zip(frame[source_col], frame[target_col]))

    @classmethod
    def from_annotation(
        cls,
        source: AnnotationSource,
        source_ids: Iterable[str],
        target_namespace: str,
    ) -> IdentifierMap:
        """
        Build by querying an annotation source for every source id.

        Ids the source does not return at all are registered as unresolved.
        """
        source_ids = [str(s) for s in source_ids]
        hits = source.lookup(source_ids, target_namespace)
        relation = {sid: hits.get(sid, []) for sid in source_ids}
        idmap = cls(relation)
        n_resolved = sum(1 for t in idmap._relation.values() if t)
        logger.info(
            f"Resolved {n_resolved}/{len(source_ids)} identifiers to '{target_namespace}' "
            f"({len(idmap.ambiguous())} ambiguous)"
        )
        return idmap

    def resolve(self, source_id: str) -> FrozenSet[str]:
        """All targets of ``source_id``; empty for unknown ids."""
        return self._relation.get(source_id, _EMPTY)

    @property
    def sources(self) -> List[str]:
        return list(self._relation)

    @property
    def targets(self) -> FrozenSet[str]:
        return frozenset().union(*self._relation.values()) if self._relation else _EMPTY

    def ambiguous(self) -> Dict[str, FrozenSet[str]]:
        """Sources mapping to more than one target."""
        return {s: t for s, t in self._relation.items() if len(t) > 1}

    def ambiguity_counts(self) -> Dict[str, int]:
        """Fan-out of each ambiguous source."""
        return {s: len(t) for s, t in self.ambiguous().items()}

    def unresolved(self) -> List[str]:
        """Known sources with no target."""
        return [s for s, t in self._relation.items() if not t]

    def coverage(self, source_ids: Iterable[str]) -> float:
        """Fraction of ``source_ids`` resolving to at least one target."""
        source_ids = list(source_ids)
        if not source_ids:
            return 0.0
        return sum(1 for s in source_ids if self.resolve(s)) / len(source_ids)

    def restrict_to(self, source_ids: Iterable[str]) -> IdentifierMap:
        """Sub-map containing only the given (known) sources."""
        wanted = set(source_ids)
        return IdentifierMap({s: t for s, t in self._relation.items() if s in wanted})

    def diagnostics(self) -> Diagnostics:
        """Ambiguous and unresolved sources as a Diagnostics container."""
        diag = Diagnostics()
        for source_id, targets in self.ambiguous().items():
            diag.add_ambiguous(source_id, targets)
        for source_id in self.unresolved():
            diag.add_unresolved(source_id, reason="no target in annotation source")
        return diag

    def to_pairs(self) -> pd.DataFrame:
        """
        Audit table of all (source_id, target_id) pairs, ambiguous ones included.

        Sorted by source then target. Unresolved sources are not listed.
        """
        rows = [(s, t) for s in sorted(self._relation) for t in sorted(self._relation[s])]
        return pd.DataFrame(rows, columns=['source_id', 'target_id'])

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._relation

    def __iter__(self) -> Iterator[str]:
        return iter(self._relation)

    def __len__(self) -> int:
        return len(self._relation)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IdentifierMap):
            return NotImplemented
        return self._relation == other._relation

    __hash__ = None

    def __repr__(self) -> str:
        return (
            f"IdentifierMap({len(self)} sources, {len(self.targets)} targets, "
            f"{len(self.ambiguous())} ambiguous, {len(self.unresolved())} unresolved)"
        )
