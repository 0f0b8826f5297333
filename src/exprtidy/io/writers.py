"""
CSV/JSON writers for pipeline artifacts.

Artifacts:
    - prepared expression / selected activity matrix: first column the row
      keys, header the sample ids (reloadable with ``load_matrix``)
    - tidy tables: entity_id, sample_id, value, then sample attributes
    - identifier-mapping table: source_id, target_id, one row per pair,
      ambiguous pairs included
    - diagnostics report: JSON

All writes are atomic (temp file + rename), so an interrupted run never
leaves a truncated table behind for the next stage to read.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.longtable import ENTITY, LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.utils.fileio import atomic_write_csv, atomic_write_json

logger = logging.getLogger(__name__)

__all__ = [
    'write_matrix',
    'write_count_matrix',
    'write_long_table',
    'write_mapping_table',
    'write_frame',
    'write_diagnostics',
]


def write_matrix(matrix: WideMatrix, path, index_label: str = ENTITY) -> Path:
    """Write a WideMatrix as a CSV with row keys in the first column."""
    path = Path(path)
    frame = matrix.to_frame()
    frame.index.name = index_label
    atomic_write_csv(path, frame, index=True)
    logger.info(f"Wrote {matrix.n_features} × {matrix.n_samples} matrix to {path}")
    return path


def write_count_matrix(matrix: WideMatrix, path, index_label: str = ENTITY) -> Path:
    """Write a validated integer count matrix as integers rather than floats."""
    path = Path(path)
    frame = matrix.to_frame().astype(np.int64)
    frame.index.name = index_label
    atomic_write_csv(path, frame, index=True)
    logger.info(f"Wrote {matrix.n_features} × {matrix.n_samples} count matrix to {path}")
    return path


def write_long_table(table: LongTable, path) -> Path:
    path = Path(path)
    atomic_write_csv(path, table.frame, index=False)
    logger.info(f"Wrote {len(table)} tidy records to {path}")
    return path


def write_mapping_table(idmap: IdentifierMap, path) -> Path:
    """Write every (source_id, target_id) pair; unresolved sources are omitted."""
    path = Path(path)
    pairs = idmap.to_pairs()
    atomic_write_csv(path, pairs, index=False)
    logger.info(f"Wrote {len(pairs)} mapping pairs to {path}")
    return path


def write_frame(frame: pd.DataFrame, path, index: bool = False) -> Path:
    """Write any result table (summaries, engine results) atomically."""
    path = Path(path)
    atomic_write_csv(path, frame, index=index)
    logger.info(f"Wrote {len(frame)} rows to {path}")
    return path


def write_diagnostics(
    diagnostics: Diagnostics,
    path,
    extra: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Write a JSON diagnostics report.

    Args:
        diagnostics: Accumulated findings
        extra: Additional top-level entries (parameters, transform provenance)
    """
    path = Path(path)
    report = diagnostics.to_dict()
    if extra:
        report.update(extra)
    atomic_write_json(path, report)
    logger.info(f"Wrote diagnostics report to {path}")
    return path
