"""
Pooled significance analysis and hit resolution
"""

from .significance import EQTL_Significance, manhattan_coordinates, qq_ordering
from .hits import select_hits, group_hits_by_chromosome, resolve_chromosome, annotation_queries

__all__ = [
    'EQTL_Significance',
    'manhattan_coordinates',
    'qq_ordering',
    'select_hits',
    'group_hits_by_chromosome',
    'resolve_chromosome',
    'annotation_queries',
]
