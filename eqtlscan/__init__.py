"""
eqtlscan: expression QTL scans for structured populations

Every expression phenotype is tested against every genotyped marker with a
nested linear-model F test (additive + dominance terms over covariates).
P-values are pooled under one Bonferroni threshold and laid out for
Manhattan and Q-Q reporting.
"""

__version__ = "0.1.0"

from .data.encoding import EQTL_Encode
from .association.lrt import fit_locus_lrt
from .association.scan import EQTL_Scan, EQTL_ScanAll
from .analysis.significance import EQTL_Significance
from .pipelines.eqtl import EQTLPipeline

__all__ = [
    'EQTL_Encode',
    'fit_locus_lrt',
    'EQTL_Scan',
    'EQTL_ScanAll',
    'EQTL_Significance',
    'EQTLPipeline',
]
