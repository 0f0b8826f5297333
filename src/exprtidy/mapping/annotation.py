"""
Annotation sources: where identifier mappings come from.

The pipeline needs a single capability from an annotation database:

    lookup(source_ids, target_namespace) -> {source_id: [target_id, ...]}

Order of the returned targets is not meaningful; IdentifierMap treats them as
a set. One-to-many and zero-match results are normal.

Implementations:
    TableAnnotationSource: a local pair table (BioMart / HGNC export) with one
        column per identifier namespace
    MyGeneInfoSource: mygene.info batch queries with a JSON cache. Every hit
        is kept; there is no first-match selection.

Examples:
    >>> import pandas as pd
    >>> from exprtidy.mapping.annotation import TableAnnotationSource
    >>> table = pd.DataFrame({
    ...     'ensembl_gene': ['ENSG1', 'ENSG1', 'ENSG2'],
    ...     'symbol': ['A', 'B', 'C'],
    ... })
    >>> source = TableAnnotationSource(table, source_namespace='ensembl_gene')
    >>> source.lookup(['ENSG1', 'ENSG3'], 'symbol')
    {'ENSG1': ['A', 'B']}
"""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from exprtidy.utils.fileio import atomic_write_json

logger = logging.getLogger(__name__)

__all__ = ['AnnotationSource', 'TableAnnotationSource', 'MyGeneInfoSource', 'MYGENE_FIELDS']


# Namespace name -> mygene.info field
# 'uniprot' matches both Swiss-Prot and TrEMBL
MYGENE_FIELDS = {
    'ensembl_gene': 'ensembl.gene',
    'symbol': 'symbol',
    'symbol_alias': 'symbol,alias',
    'uniprot': 'uniprot',
    'entrez': 'entrezgene',
}


class AnnotationSource(ABC):
    """Abstract interface for identifier annotation databases."""

    @abstractmethod
    def lookup(self, source_ids: Sequence[str], target_namespace: str) -> Dict[str, List[str]]:
        """
        Map source ids to every matching target id in ``target_namespace``.

        Args:
            source_ids: Identifiers to look up
            target_namespace: Namespace to map into ('symbol', 'entrez', ...)

        Returns:
            Dict source_id -> list of target ids. Ids without any match may be
            absent or map to an empty list.
        """


class TableAnnotationSource(AnnotationSource):
    """
    Annotation source backed by an in-memory pair table.

    Each column is an identifier namespace; each row asserts that the values
    in that row refer to the same gene.
    """

    def __init__(self, table: pd.DataFrame, source_namespace: str):
        if source_namespace not in table.columns:
            raise KeyError(
                f"Source namespace '{source_namespace}' not in annotation table "
                f"columns {list(table.columns)}"
            )
        self.table = table
        self.source_namespace = source_namespace

    @classmethod
    def from_csv(cls, path: Path, source_namespace: str, sep: Optional[str] = None) -> TableAnnotationSource:
        """Load a pair table from CSV/TSV (separator sniffed when not given)."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Annotation table not found: {path}")
        table = pd.read_csv(path, sep=sep, engine='python', dtype=str)
        return cls(table, source_namespace)

    def lookup(self, source_ids: Sequence[str], target_namespace: str) -> Dict[str, List[str]]:
        if target_namespace not in self.table.columns:
            raise KeyError(
                f"Target namespace '{target_namespace}' not in annotation table "
                f"columns {list(self.table.columns)}"
            )
        wanted = set(source_ids)
        pairs = self.table[[self.source_namespace, target_namespace]].dropna()
        pairs = pairs[pairs[self.source_namespace].isin(wanted)]

        results: Dict[str, List[str]] = {}
        for source_id, target_id in pairs.itertuples(index=False, name=None):
            results.setdefault(str(source_id), []).append(str(target_id))
        return results


def _extract_field(item: Any, path: str) -> List[str]:
    """Collect every value under a dotted mygene field path, descending into lists."""
    values = [item]
    for part in path.split('.'):
        next_values = []
        for value in values:
            if isinstance(value, list):
                next_values.extend(v.get(part) for v in value if isinstance(v, dict))
            elif isinstance(value, dict):
                next_values.append(value.get(part))
        values = [v for v in next_values if v is not None]

    flat: List[str] = []
    for value in values:
        if isinstance(value, list):
            flat.extend(str(v) for v in value if not isinstance(v, (dict, list)))
        elif isinstance(value, dict):
            # e.g. uniprot: {'Swiss-Prot': 'P04637', 'TrEMBL': [...]}
            for v in value.values():
                flat.extend(str(x) for x in (v if isinstance(v, list) else [v]))
        else:
            flat.append(str(value))
    return flat


class MyGeneInfoSource(AnnotationSource):
    """
    mygene.info annotation source with concurrent batch queries.

    Unlike a first-match mapper, every hit of a query is returned so that
    IdentifierMap can surface ambiguity.

    Usage:
        source = MyGeneInfoSource(source_namespace='ensembl_gene', max_workers=8)
        hits = source.lookup(['ENSG00000141510'], 'symbol')
        # {'ENSG00000141510': ['TP53']}
    """

    BATCH_SIZE = 1000

    def __init__(
        self,
        source_namespace: str = 'ensembl_gene',
        species: str = 'human',
        cache_dir: Optional[Path] = None,
        max_workers: int = 8,
    ):
        """
        Args:
            source_namespace: Namespace of the ids passed to lookup()
            species: Species to query
            cache_dir: Directory for cached results
                (default: ~/.cache/exprtidy/id_mapping)
            max_workers: Number of concurrent API requests
        """
        if source_namespace not in MYGENE_FIELDS:
            raise ValueError(
                f"Unsupported ID type: {source_namespace}. Use one of {sorted(MYGENE_FIELDS)}"
            )
        self.source_namespace = source_namespace
        self.species = species
        self.cache_dir = Path(cache_dir) if cache_dir else Path.home() / '.cache/exprtidy/id_mapping'
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_workers = max_workers

    def _cache_path(self, source_ids: Sequence[str], target_namespace: str) -> Path:
        digest = hashlib.sha1(
            "\n".join(sorted(set(source_ids))).encode("utf-8")
        ).hexdigest()[:16]
        name = f"{self.source_namespace}_to_{target_namespace}_{self.species}_{digest}.json"
        return self.cache_dir / name

    def _query_batch(
        self,
        batch: List[str],
        source_field: str,
        target_field: str,
        batch_num: int,
        total_batches: int,
    ) -> Dict[str, List[str]]:
        """Query a single batch. Creates a client per thread."""
        import mygene

        mg = mygene.MyGeneInfo()
        logger.debug(f"Querying batch {batch_num + 1}/{total_batches} ({len(batch)} IDs)")

        query_results = mg.querymany(
            batch,
            scopes=source_field,
            fields=target_field,
            species=self.species,
            returnall=True,
            verbose=False,
        )

        results: Dict[str, List[str]] = {}
        for item in query_results['out']:
            source_id = item.get('query')
            if not source_id or item.get('notfound'):
                continue
            targets = results.setdefault(source_id, [])
            for field_path in target_field.split(','):
                for target in _extract_field(item, field_path):
                    if target not in targets:
                        targets.append(target)
        return {k: v for k, v in results.items() if v}

    def lookup(self, source_ids: Sequence[str], target_namespace: str) -> Dict[str, List[str]]:
        target_field = MYGENE_FIELDS.get(target_namespace)
        if target_field is None:
            raise ValueError(
                f"Unsupported ID type: {target_namespace}. Use one of {sorted(MYGENE_FIELDS)}"
            )
        source_field = MYGENE_FIELDS[self.source_namespace]
        source_ids = list(dict.fromkeys(str(s) for s in source_ids))
        if not source_ids:
            return {}

        cache_path = self._cache_path(source_ids, target_namespace)
        if cache_path.exists():
            try:
                with open(cache_path, 'r') as f:
                    return json.load(f)
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Corrupted cache file {cache_path}, ignoring: {e}")

        batches = [
            source_ids[i:i + self.BATCH_SIZE]
            for i in range(0, len(source_ids), self.BATCH_SIZE)
        ]
        logger.info(
            f"Starting ID lookup: {len(source_ids)} IDs in {len(batches)} batches "
            f"with {self.max_workers} workers"
        )

        results: Dict[str, List[str]] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(
                    self._query_batch, batch, source_field, target_field, i, len(batches)
                ): i
                for i, batch in enumerate(batches)
            }
            completed = 0
            for future in as_completed(futures):
                results.update(future.result())
                completed += 1
                logger.info(
                    f"ID lookup progress: {completed}/{len(batches)} batches complete, "
                    f"{len(results)}/{len(source_ids)} IDs matched"
                )

        n_multi = sum(1 for v in results.values() if len(v) > 1)
        logger.info(
            f"ID lookup complete: {len(results)}/{len(source_ids)} matched "
            f"({len(results) / len(source_ids) * 100:.1f}%), {n_multi} with multiple targets"
        )

        atomic_write_json(cache_path, results)
        return results
