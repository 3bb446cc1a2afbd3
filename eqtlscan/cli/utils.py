import argparse
from typing import List, Optional

from ..pipelines.eqtl import OUTPUT_CHOICES


def normalize_outputs(outputs: List[str]) -> List[str]:
    """Normalize output choices; comma-separated items are split"""
    if not outputs:
        return list(OUTPUT_CHOICES)
    valid = []
    for item in outputs:
        for part in str(item).split(','):
            part = part.strip().lower()
            if part in OUTPUT_CHOICES and part not in valid:
                valid.append(part)
    return valid if valid else list(OUTPUT_CHOICES)


def split_list(value: Optional[str]) -> Optional[List[str]]:
    """'a, b,c' -> ['a', 'b', 'c']; None stays None"""
    if not value:
        return None
    return [v.strip() for v in value.split(',') if v.strip()]


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments for the eQTL pipeline"""
    parser = argparse.ArgumentParser(
        description="Expression QTL scan with nested linear-model F tests",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--phenotype", "-p", required=True,
                        help="Expression file (CSV/TSV, ID column and one column per gene)")
    parser.add_argument("--genotype", "-g", required=True,
                        help="Genotype file (CSV/TSV, ID column and one column per marker, calls 0/1/2)")
    parser.add_argument("--map", "-m", required=True,
                        help="Marker map file with SNP, CHROM, POS columns")

    # Optional inputs
    parser.add_argument("--covariates", "-c", default=None,
                        help="Covariate file with ID and categorical columns")
    parser.add_argument("--covariate-columns", default=None,
                        help="Comma-separated covariate columns to include "
                             "(default: sex and population, whichever are present)")
    parser.add_argument("--covariate-id-column", default='ID',
                        help="Column name for sample IDs in covariate file")
    parser.add_argument("--phenotype-id-column", default='ID',
                        help="Column name for sample IDs in phenotype file")
    parser.add_argument("--genes-file", default=None,
                        help="Gene metadata file with GENE and SYMBOL columns")
    parser.add_argument("--phenotype-transpose", action='store_true',
                        help="Expression file is genes x samples")
    parser.add_argument("--genotype-transpose", action='store_true',
                        help="Genotype file is markers x samples")
    parser.add_argument("--intersect-samples", action='store_true',
                        help="Scan only individuals present in both phenotype and genotype "
                             "files instead of failing when their samples differ")
    parser.add_argument("--genes", default=None,
                        help="Comma-separated genes to scan (default: all)")
    parser.add_argument("--outputdir", "-o", default="./eQTL_results",
                        help="Output directory")

    # Analysis settings
    parser.add_argument("--alpha", type=float, default=0.05,
                        help="Family-wise alpha for the pooled Bonferroni threshold")
    parser.add_argument("--cpu", type=int, default=1,
                        help="Worker threads per gene scan")
    parser.add_argument("--batch-size", type=int, default=500,
                        help="Markers per unit of work")
    parser.add_argument("--window", type=int, default=500_000,
                        help="Half-width (bp) of annotation regions around index markers")

    # QC reporting
    parser.add_argument("--min-maf", type=float, default=0.05,
                        help="MAF threshold reported by the genotype QC")
    parser.add_argument("--max-missing", type=float, default=0.1,
                        help="Missingness threshold reported by the genotype QC")
    parser.add_argument("--skip-qc", action='store_true',
                        help="Do not write the genotype QC report")

    # Output
    parser.add_argument("--outputs", nargs='+',
                        default=list(OUTPUT_CHOICES),
                        help="Outputs to generate, space or comma separated "
                             f"(choices: {', '.join(OUTPUT_CHOICES)})")

    return parser.parse_args(argv)
