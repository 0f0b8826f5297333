"""
Identifier mapping: annotation sources and the IdentifierMap relation.

Examples:
    >>> from exprtidy.mapping import IdentifierMap, TableAnnotationSource
    >>> source = TableAnnotationSource(pairs_df, source_namespace='ensembl_gene')
    >>> idmap = IdentifierMap.from_annotation(source, matrix.feature_ids, 'symbol')
"""

from exprtidy.mapping.annotation import (
    AnnotationSource,
    MyGeneInfoSource,
    TableAnnotationSource,
)
from exprtidy.mapping.identifier_map import IdentifierMap

__all__ = [
    'IdentifierMap',
    'AnnotationSource',
    'TableAnnotationSource',
    'MyGeneInfoSource',
]
