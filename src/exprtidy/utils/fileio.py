"""
Atomic file-write utilities.

Every persisted artifact (mapping table, prepared matrix, diagnostics report)
is written to a temporary file in the destination directory and moved into
place with ``os.replace()``. Readers see either the previous file or the
complete new one, never a partial write from an interrupted run.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

import pandas as pd

__all__ = ['atomic_write_json', 'atomic_write_text', 'atomic_write_csv']


@contextmanager
def _atomic_handle(path: str | os.PathLike) -> Iterator[TextIO]:
    """Yield a temp-file handle that replaces ``path`` on clean exit."""
    path = os.fspath(path)
    dir_path = os.path.dirname(path) or "."
    os.makedirs(dir_path, exist_ok=True)
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w", dir=dir_path, suffix=".tmp", delete=False, newline=""
        ) as tmp:
            tmp_path = tmp.name
            yield tmp
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> None:
    """Write *data* as JSON atomically via temp-file + rename."""
    with _atomic_handle(path) as handle:
        json.dump(data, handle, indent=indent, default=str)


def atomic_write_text(path: str | os.PathLike, content: str) -> None:
    """Write *content* as text atomically via temp-file + rename."""
    with _atomic_handle(path) as handle:
        handle.write(content)


def atomic_write_csv(path: str | os.PathLike, frame: pd.DataFrame, *, index: bool = True) -> None:
    """Write a DataFrame as CSV atomically via temp-file + rename."""
    with _atomic_handle(path) as handle:
        frame.to_csv(handle, index=index)
