"""Reading and writing pipeline inputs and artifacts."""

from exprtidy.io.formats import resolve_delimiter, sniff_delimiter
from exprtidy.io.loaders import (
    load_factor_summary,
    load_mapping_pairs,
    load_matrix,
    load_sample_metadata,
)
from exprtidy.io.writers import (
    write_count_matrix,
    write_diagnostics,
    write_frame,
    write_long_table,
    write_mapping_table,
    write_matrix,
)

__all__ = [
    'sniff_delimiter',
    'resolve_delimiter',
    'load_matrix',
    'load_sample_metadata',
    'load_mapping_pairs',
    'load_factor_summary',
    'write_matrix',
    'write_count_matrix',
    'write_long_table',
    'write_mapping_table',
    'write_frame',
    'write_diagnostics',
]
