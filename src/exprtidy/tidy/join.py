"""
Sample metadata and the long-table metadata join.

Attaching sample attributes (group, sex, batch) to tidy records is where
samples silently go missing in ad-hoc pipelines: an inner join on mismatched
keys drops rows without complaint and the downstream statistics change. The
join here therefore has two explicit policies:

    strict (default): the table's sample set must equal the metadata's
        sample set, otherwise ShapeMismatch names the offending samples
    inner: restrict to the intersection and report what was dropped from
        each side

Examples:
    >>> metadata = SampleMetadata(pd.DataFrame(
    ...     {'group': ['CTRL', 'CASE']}, index=['S1', 'S2']
    ... ))
    >>> result = join(table, metadata)                       # strict
    >>> result = join(table, metadata, policy='inner')
    >>> result.dropped_left_count
    0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

import pandas as pd

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.errors import ConfigurationError, KeyNotFound, ShapeMismatch, format_keys
from exprtidy.core.longtable import KEY_COLUMNS, SAMPLE, LongTable

logger = logging.getLogger(__name__)

__all__ = ['SampleMetadata', 'JoinPolicy', 'JoinResult', 'join', 'DEFAULT_GROUP_COL']

DEFAULT_GROUP_COL = 'group'


class SampleMetadata:
    """
    Per-sample attribute records keyed by unique sample id.

    Attributes:
        frame: DataFrame indexed by sample id, one column per attribute
        group_col: Name of the group/subgroup label column
    """

    def __init__(self, frame: pd.DataFrame, group_col: str = DEFAULT_GROUP_COL):
        if frame.index.has_duplicates:
            raise ShapeMismatch(
                "sample metadata has duplicate sample ids",
                keys=frame.index[frame.index.duplicated()].unique().tolist(),
            )
        if frame.index.hasnans:
            raise ShapeMismatch("sample metadata has missing sample ids")
        if group_col not in frame.columns:
            raise KeyNotFound(
                f"group column '{group_col}' not in sample metadata columns "
                f"{list(frame.columns)}"
            )
        self._frame = frame.copy()
        self._frame.index.name = SAMPLE
        self.group_col = group_col

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        sample_col: Optional[str] = None,
        group_col: str = DEFAULT_GROUP_COL,
    ) -> SampleMetadata:
        """Build from a DataFrame, taking sample ids from ``sample_col`` or the index."""
        if sample_col is not None:
            if sample_col not in frame.columns:
                raise KeyNotFound(
                    f"sample column '{sample_col}' not in metadata columns {list(frame.columns)}"
                )
            frame = frame.set_index(sample_col)
        return cls(frame, group_col=group_col)

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    @property
    def sample_ids(self) -> pd.Index:
        return self._frame.index.copy()

    @property
    def groups(self) -> pd.Series:
        """Group label per sample."""
        return self._frame[self.group_col].copy()

    @property
    def attribute_columns(self) -> List[str]:
        return list(self._frame.columns)

    def reindex(self, sample_ids) -> SampleMetadata:
        """Return metadata restricted to and ordered by ``sample_ids``."""
        sample_ids = list(sample_ids)
        missing = [s for s in sample_ids if s not in self._frame.index]
        if missing:
            raise KeyNotFound("samples absent from metadata", keys=missing)
        return SampleMetadata(self._frame.loc[sample_ids], group_col=self.group_col)

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"SampleMetadata({len(self)} samples, group_col='{self.group_col}', "
            f"attributes={self.attribute_columns})"
        )


class JoinPolicy(Enum):
    """How a join treats samples present on only one side."""

    STRICT = "strict"
    INNER = "inner"


@dataclass
class JoinResult:
    """
    Joined table plus an account of what the join dropped.

    Attributes:
        table: Long table with one column per sample attribute appended
        dropped_left: Table sample ids absent from metadata (inner only)
        dropped_right: Metadata sample ids absent from the table (inner only)
        dropped_left_count: Number of table records dropped
        dropped_right_count: Number of metadata samples left unused
    """

    table: LongTable
    policy: JoinPolicy
    dropped_left: List[Any] = field(default_factory=list)
    dropped_right: List[Any] = field(default_factory=list)
    dropped_left_count: int = 0
    dropped_right_count: int = 0

    @property
    def diagnostics(self) -> Diagnostics:
        diag = Diagnostics()
        diag.count('join_rows_dropped_left', self.dropped_left_count)
        diag.count('join_samples_dropped_right', self.dropped_right_count)
        return diag


def _coerce_policy(policy: JoinPolicy | str) -> JoinPolicy:
    if isinstance(policy, JoinPolicy):
        return policy
    try:
        return JoinPolicy(str(policy).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown join policy '{policy}'. Use one of {[p.value for p in JoinPolicy]}"
        ) from None


def join(
    table: LongTable,
    metadata: SampleMetadata,
    policy: JoinPolicy | str = JoinPolicy.STRICT,
) -> JoinResult:
    """
    Inner-join a long table to sample metadata on sample_id.

    Record order of the table is preserved. Attribute columns are appended in
    metadata column order.

    Args:
        table: Long table to annotate
        metadata: Sample attributes
        policy: 'strict' (default) or 'inner'

    Returns:
        JoinResult with the annotated table and drop counts

    Raises:
        ShapeMismatch: Under strict policy when sample sets differ, or when an
            attribute column name collides with an existing table column
    """
    policy = _coerce_policy(policy)
    frame = table.frame
    meta = metadata.frame

    collisions = [c for c in meta.columns if c in frame.columns]
    if collisions:
        raise ShapeMismatch(
            "metadata attribute names collide with table columns "
            f"(reserved: {list(KEY_COLUMNS)})",
            keys=collisions,
        )

    table_samples = pd.unique(frame[SAMPLE])
    meta_samples = set(meta.index)
    left_only = [s for s in table_samples if s not in meta_samples]
    table_sample_set = set(table_samples)
    right_only = [s for s in meta.index if s not in table_sample_set]

    if policy is JoinPolicy.STRICT and (left_only or right_only):
        error = ShapeMismatch(
            f"sample ids differ between table and metadata: "
            f"only in table {format_keys(left_only)}, "
            f"only in metadata {format_keys(right_only)}"
        )
        error.keys = left_only + right_only
        raise error

    keep = ~frame[SAMPLE].isin(left_only)
    dropped_left_count = int((~keep).sum())
    joined = frame.loc[keep].reset_index(drop=True)
    for column in meta.columns:
        joined[column] = joined[SAMPLE].map(meta[column])

    if left_only or right_only:
        logger.warning(
            f"Inner join dropped {dropped_left_count} records from {len(left_only)} samples "
            f"missing from metadata and ignored {len(right_only)} metadata samples absent "
            f"from the table"
        )
    logger.info(
        f"Joined {len(joined)} records with {len(meta.columns)} sample attributes "
        f"(policy={policy.value})"
    )

    return JoinResult(
        table=LongTable(joined),
        policy=policy,
        dropped_left=left_only,
        dropped_right=right_only,
        dropped_left_count=dropped_left_count,
        dropped_right_count=len(right_only),
    )
