"""
Genotype encoding for the nested-model eQTL test

Each marker's calls G (0/1/2 copies of the reference allele) become two
design columns:

    Xa = G - 1                    additive dosage, values in {-1, 0, 1}
    Xd = +1 if G == 1 else -1     dominance deviation (heterozygote vs homozygotes)

Missing calls are rejected; nothing is imputed.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..utils.data_types import GenotypeMatrix, CovariateTable, EncodedGenotypes
from ..utils.exceptions import MissingGenotypeError, SampleAlignmentError
from .loaders import check_alignment


def encode_additive(calls: np.ndarray) -> np.ndarray:
    """Additive encoding: call - 1"""
    return np.asarray(calls, dtype=np.float64) - 1.0


def encode_dominance(calls: np.ndarray) -> np.ndarray:
    """Dominance encoding: +1 for heterozygotes, -1 for either homozygote"""
    return np.where(np.asarray(calls) == 1, 1.0, -1.0)


def EQTL_Encode(geno: GenotypeMatrix,
                covariates: Optional[CovariateTable] = None,
                sample_ids: Optional[Sequence[str]] = None,
                verbose: bool = False) -> Tuple[EncodedGenotypes, Optional[pd.DataFrame]]:
    """Build the Xa/Xd design matrices and align covariates to genotype order

    Args:
        geno: Genotype calls (individuals × markers)
        covariates: Categorical covariates looked up by sample ID
        sample_ids: Phenotype sample order; must equal the genotype order
        verbose: Print a one-line summary

    Returns:
        (EncodedGenotypes, covariate rows reindexed to the genotype sample
        order or None)

    Raises:
        SampleAlignmentError: sample keys differ between tables
        MissingGenotypeError: any call is missing
    """
    if sample_ids is not None:
        check_alignment(sample_ids, geno.individual_ids,
                        covariates.ids if covariates is not None else None)
    elif covariates is not None:
        missing = sorted(set(geno.individual_ids) - set(covariates.ids))
        if missing:
            raise SampleAlignmentError(
                f"Covariate table lacks {len(missing)} genotyped individuals: {missing[:5]}"
            )

    missing_mask = geno.missing_mask()
    if missing_mask.any():
        cols = np.where(missing_mask.any(axis=0))[0]
        names = [geno.marker_ids[j] for j in cols[:5]]
        raise MissingGenotypeError(
            f"{len(cols)} markers contain missing genotype calls (e.g. {names}); "
            "missing calls are not imputed"
        )

    calls = geno.to_numpy()
    encoded = EncodedGenotypes(
        Xa=encode_additive(calls),
        Xd=encode_dominance(calls),
        individual_ids=tuple(geno.individual_ids),
        marker_ids=tuple(geno.marker_ids),
    )

    cov_rows = covariates.lookup(geno.individual_ids) if covariates is not None else None

    if verbose:
        print(f"Encoded {encoded.n_markers} markers for {encoded.n_individuals} individuals")
    return encoded, cov_rows


def genotype_qc_report(geno: GenotypeMatrix,
                       maf_threshold: float = 0.05,
                       missing_threshold: float = 0.1,
                       max_dosage: float = 2.0) -> pd.DataFrame:
    """Per-marker MAF and missingness against fixed thresholds

    Reporting only: the genotype matrix is not modified and no marker is
    removed from the scan whatever the outcome.
    """
    maf = geno.calculate_maf(max_dosage=max_dosage)
    missing_rate = geno.calculate_missing_rate()
    return pd.DataFrame({
        'SNP': geno.marker_ids,
        'MAF': maf,
        'missing_rate': missing_rate,
        'passes_maf': maf >= maf_threshold,
        'passes_missing': missing_rate <= missing_threshold,
        'passes_qc': (maf >= maf_threshold) & (missing_rate <= missing_threshold),
    })


def summarize_qc(report: pd.DataFrame) -> Dict[str, int]:
    """Counts of markers failing each fixed threshold"""
    return {
        'n_markers': int(len(report)),
        'n_fail_maf': int((~report['passes_maf']).sum()),
        'n_fail_missing': int((~report['passes_missing']).sum()),
        'n_pass': int(report['passes_qc'].sum()),
    }
