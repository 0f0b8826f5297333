"""
Delimiter handling for tabular inputs.

Expression exports arrive as CSV, TSV or semicolon-separated text depending
on the tool (featureCounts, BioMart, Excel in a European locale). The
extension decides when it is unambiguous; otherwise the content is sniffed.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

__all__ = ['sniff_delimiter', 'resolve_delimiter', 'EXTENSION_DELIMITERS']

EXTENSION_DELIMITERS = {
    '.csv': ',',
    '.tsv': '\t',
    '.tab': '\t',
}

SNIFF_CANDIDATES = ('\t', ',', ';', '|')


def sniff_delimiter(path: Path) -> str:
    """
    Pick the candidate delimiter that occurs most often in the header line.

    Raises:
        ValueError: If no candidate occurs in the header
    """
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        header = f.readline()

    counts = {d: header.count(d) for d in SNIFF_CANDIDATES}
    best = max(counts, key=counts.get)
    if counts[best] == 0:
        raise ValueError(f"Could not detect delimiter in {path}; pass the separator explicitly")
    return best


def resolve_delimiter(path: Path, sep: Optional[str] = None) -> str:
    """Explicit separator, else the one implied by the extension, else sniffed."""
    if sep is not None:
        return sep
    suffixes = [s.lower() for s in Path(path).suffixes if s.lower() != '.gz']
    if suffixes and suffixes[-1] in EXTENSION_DELIMITERS:
        return EXTENSION_DELIMITERS[suffixes[-1]]
    return sniff_delimiter(path)
