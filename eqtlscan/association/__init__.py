"""
Per-locus model fitting and genome-wide scans
"""

from .lrt import fit_locus_lrt
from .scan import EQTL_Scan, EQTL_ScanAll

__all__ = ['fit_locus_lrt', 'EQTL_Scan', 'EQTL_ScanAll']
