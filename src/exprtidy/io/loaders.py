"""
Loaders for expression matrices, sample metadata, mapping tables and factor
summaries.

Every identifier (feature, sample, factor) is read as a string so that keys
written by one stage match keys read by the next: "0001" stays "0001" and a
factor index read from a summary matches the same index read from an
activity matrix.

Expected matrix layout:
```
"","S1","S2"
"ENSG00000000003",612,1056
"ENSG00000000005",0,1
```

Data-quality notices (missing values) are raised as ``UserWarning``; structural
problems (duplicate keys, non-numeric cells) raise.

Examples:
    >>> from exprtidy.io.loaders import load_matrix, load_sample_metadata
    >>> matrix = load_matrix("counts.csv")
    >>> metadata = load_sample_metadata("samples.csv", sample_col="sample", group_col="group")
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from exprtidy.core.errors import ShapeMismatch, TypeMismatch
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.io.formats import resolve_delimiter
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.tidy.aggregate import ReducerLike, aggregate
from exprtidy.tidy.join import DEFAULT_GROUP_COL, SampleMetadata
from exprtidy.tidy.selection import FactorSummary

logger = logging.getLogger(__name__)

__all__ = [
    'load_matrix',
    'load_sample_metadata',
    'load_mapping_pairs',
    'load_factor_summary',
]


def _check_path(path) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def _read(path: Path, sep: Optional[str], **kwargs) -> pd.DataFrame:
    try:
        return pd.read_csv(path, sep=resolve_delimiter(path, sep), **kwargs)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"File is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse {path}: {e}") from e


def _header_labels(path: Path, sep: Optional[str]) -> list[str]:
    """Raw header cells, without pandas' de-duplication suffixes."""
    header = _read(path, sep, header=None, nrows=1, dtype=str, keep_default_na=False)
    return header.iloc[0].tolist()


def load_matrix(
    path,
    sep: Optional[str] = None,
    on_duplicate: Optional[ReducerLike] = None,
) -> WideMatrix:
    """
    Load an entity x sample matrix from a delimited file.

    The first column holds feature ids; the header holds sample ids.

    Args:
        path: File path
        sep: Field separator (inferred from extension or content when None)
        on_duplicate: Reducer for repeated feature ids (e.g. 'mean', 'sum').
            When None, repeated feature ids raise.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is empty or malformed
        ShapeMismatch: If sample ids repeat, or feature ids repeat without
            ``on_duplicate``
        TypeMismatch: If a data cell is not numeric
    """
    path = _check_path(path)

    samples = _header_labels(path, sep)[1:]
    seen, repeated = set(), []
    for sample in samples:
        if sample in seen:
            repeated.append(sample)
        seen.add(sample)
    if repeated:
        raise ShapeMismatch(f"Duplicate sample ids in header of {path}", keys=repeated)

    df = _read(path, sep, index_col=0, dtype=str)
    df.index = df.index.astype(str)
    df.columns = pd.Index(samples, dtype=object)

    if df.shape[1] == 0:
        raise ValueError(f"File contains no samples (columns): {path}")

    try:
        data = df.apply(pd.to_numeric, errors='raise').to_numpy(dtype=np.float64, na_value=np.nan)
    except (TypeError, ValueError) as e:
        numeric = df.apply(pd.to_numeric, errors='coerce')
        bad = df.index[(numeric.isna() & df.notna()).any(axis=1)].tolist()
        raise TypeMismatch(f"{path} contains non-numeric values", keys=bad) from e

    if np.isnan(data).any():
        n_nan = int(np.isnan(data).sum())
        warnings.warn(
            f"Found {n_nan:,} missing values ({100 * n_nan / data.size:.2f}% of data) in {path}",
            UserWarning,
        )

    if df.index.has_duplicates:
        n_duplicates = int(df.index.duplicated().sum())
        if on_duplicate is None:
            raise ShapeMismatch(
                f"Found {n_duplicates} duplicate feature ids in {path}; "
                "pass on_duplicate=<reducer> to combine them",
                keys=df.index[df.index.duplicated()].unique().tolist(),
            )
        logger.info(f"Combining {n_duplicates} duplicate feature rows with {on_duplicate!r}")
        frame = pd.DataFrame(data, index=df.index, columns=df.columns)
        frame.index.name = ENTITY
        frame.columns.name = SAMPLE
        long = frame.reset_index().melt(id_vars=ENTITY, var_name=SAMPLE, value_name=VALUE)
        matrix = aggregate(LongTable(long), reducer=on_duplicate)
    else:
        matrix = WideMatrix(data, df.index, df.columns)

    logger.info(f"Loaded {matrix.n_features} features × {matrix.n_samples} samples from {path}")
    return matrix


def load_sample_metadata(
    path,
    sample_col: Optional[str] = None,
    group_col: str = DEFAULT_GROUP_COL,
    sep: Optional[str] = None,
) -> SampleMetadata:
    """
    Load per-sample attributes.

    Args:
        sample_col: Column holding sample ids (first column when None)
        group_col: Column holding group labels
    """
    path = _check_path(path)
    if sample_col is None:
        frame = _read(path, sep, index_col=0, converters={0: str})
        frame.index = frame.index.astype(str)
    else:
        frame = _read(path, sep, dtype={sample_col: str})
    metadata = SampleMetadata.from_frame(frame, sample_col=sample_col, group_col=group_col)
    logger.info(f"Loaded metadata for {len(metadata)} samples from {path}")
    return metadata


def load_mapping_pairs(
    path,
    source_col: str = 'source_id',
    target_col: str = 'target_id',
    sep: Optional[str] = None,
) -> IdentifierMap:
    """Load a two-column identifier pair table (BioMart/HGNC export)."""
    path = _check_path(path)
    frame = _read(path, sep, dtype=str)
    idmap = IdentifierMap.from_frame(frame, source_col=source_col, target_col=target_col)
    logger.info(
        f"Loaded {len(frame)} mapping pairs from {path}: {len(idmap)} sources, "
        f"{len(idmap.ambiguous())} ambiguous"
    )
    return idmap


def load_factor_summary(
    path,
    factor_col: str,
    label_col: Optional[str] = None,
    sep: Optional[str] = None,
) -> FactorSummary:
    """Load a factorization engine's per-factor summary table."""
    path = _check_path(path)
    dtypes = {factor_col: str}
    if label_col is not None:
        dtypes[label_col] = str
    frame = _read(path, sep, dtype=dtypes)
    summary = FactorSummary.from_wide(frame, factor_col=factor_col, label_col=label_col)
    logger.info(f"Loaded {len(summary)} summary rows for {len(summary.factors)} factors from {path}")
    return summary
