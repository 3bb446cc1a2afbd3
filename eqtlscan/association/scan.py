"""
Per-phenotype association scan over all markers.

Every marker is fit independently against read-only inputs (phenotype,
covariate design, its own Xa/Xd columns), so markers are dispatched in
batches to a thread pool. numpy's least-squares kernels release the GIL.
Results are reassembled by marker index: worker count and batch size never
change the output.
"""

import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..utils.data_types import (
    EncodedGenotypes, LocusTest, PhenotypeMatrix, ScanResults, STATUS_FAILED,
    STATUS_DEGENERATE, categorical_design
)
from ..data.loaders import check_alignment
from ..utils.exceptions import SampleAlignmentError, _preview
from .lrt import fit_locus_lrt, fit_reduced_model, OLSFit


def _scan_batch(y: np.ndarray,
                encoded: EncodedGenotypes,
                design: np.ndarray,
                reduced: OLSFit,
                start: int,
                end: int) -> List[LocusTest]:
    """Fit markers [start, end). A failing marker is recorded, not raised."""
    out = []
    for j in range(start, end):
        xa, xd = encoded.marker_columns(j)
        try:
            out.append(fit_locus_lrt(y, xa, xd, design, marker_index=j, reduced=reduced))
        except (np.linalg.LinAlgError, ValueError, FloatingPointError) as e:
            out.append(LocusTest(marker_index=j, pvalue=np.nan, status=STATUS_FAILED, message=str(e)))
    return out


def _resolve_design(covariates: Optional[Union[np.ndarray, pd.DataFrame]],
                    individual_ids: Sequence[str]) -> np.ndarray:
    n = len(individual_ids)
    if covariates is None:
        return categorical_design(None, n=n)
    if isinstance(covariates, pd.DataFrame):
        rows = covariates
        if 'ID' in rows.columns:
            # rows are matched by sample key, never by position
            keys = rows['ID'].astype(str)
            if keys.duplicated().any():
                raise SampleAlignmentError("Duplicated sample IDs in covariate rows")
            known = set(keys)
            missing = [sid for sid in individual_ids if sid not in known]
            if missing:
                raise SampleAlignmentError(
                    f"Covariate rows lack {len(missing)} genotyped individuals: {_preview(missing)}"
                )
            rows = rows.assign(ID=keys).set_index('ID').loc[list(individual_ids)].reset_index()
        design = categorical_design(rows)
    else:
        design = np.asarray(covariates, dtype=np.float64)
        if design.ndim == 1:
            design = design[:, None]
    if design.shape[0] != n:
        raise ValueError("Covariate matrix must have same number of rows as phenotypes")
    return design


def EQTL_Scan(phe: np.ndarray,
              encoded: EncodedGenotypes,
              covariates: Optional[Union[np.ndarray, pd.DataFrame]] = None,
              gene: str = 'phenotype',
              cpu: int = 1,
              batch_size: int = 500,
              verbose: bool = True) -> ScanResults:
    """Nested-model F test of every marker against one phenotype

    Args:
        phe: Phenotype vector (n individuals, genotype sample order)
        encoded: Xa/Xd encodings from EQTL_Encode
        covariates: Either covariate rows (DataFrame of categorical columns,
            dummy coded here with an intercept; rows are looked up by their
            'ID' column when present) or a ready design matrix that already
            includes the intercept, in genotype sample order. None means
            intercept only.
        gene: Label stored on the results
        cpu: Worker threads; 1 runs inline
        batch_size: Markers per unit of work
        verbose: Print brief progress

    Returns:
        ScanResults indexed by marker position

    Raises:
        SampleAlignmentError: covariate rows lack genotyped individuals
    """
    y = np.asarray(phe, dtype=np.float64)
    if y.ndim != 1:
        raise ValueError("Phenotype must be a 1D vector")
    n, m = encoded.n_individuals, encoded.n_markers
    if y.shape[0] != n:
        raise ValueError(f"Phenotype has {y.shape[0]} values but genotypes have {n} individuals")

    design = _resolve_design(covariates, encoded.individual_ids)
    reduced = fit_reduced_model(y, design)

    cpu = max(1, int(cpu))
    batch_size = max(1, min(int(batch_size), max(m, 1)))
    bounds = [(start, min(start + batch_size, m)) for start in range(0, m, batch_size)]

    batches: Dict[int, List[LocusTest]] = {}
    if cpu == 1 or len(bounds) <= 1:
        for start, end in bounds:
            batches[start] = _scan_batch(y, encoded, design, reduced, start, end)
    else:
        with ThreadPoolExecutor(max_workers=cpu) as executor:
            futures = {
                start: executor.submit(_scan_batch, y, encoded, design, reduced, start, end)
                for start, end in bounds
            }
            for start, future in futures.items():
                batches[start] = future.result()

    tests = [t for start, _ in bounds for t in batches[start]]
    results = ScanResults(gene, tests, encoded.marker_ids)

    counts = results.status_counts()
    if counts[STATUS_FAILED]:
        first = next(t for t in tests if t.status == STATUS_FAILED)
        warnings.warn(
            f"{gene}: {counts[STATUS_FAILED]} marker fits failed "
            f"(first: {encoded.marker_ids[first.marker_index]}: {first.message})"
        )
    if verbose:
        print(f"{gene}: {counts['ok']}/{m} markers tested, "
              f"{counts[STATUS_DEGENERATE]} degenerate, {counts[STATUS_FAILED]} failed")
    return results


def EQTL_ScanAll(phenotypes: PhenotypeMatrix,
                 encoded: EncodedGenotypes,
                 covariates: Optional[Union[np.ndarray, pd.DataFrame]] = None,
                 genes: Optional[Sequence[str]] = None,
                 cpu: int = 1,
                 batch_size: int = 500,
                 verbose: bool = True) -> Dict[str, ScanResults]:
    """Scan every gene (sequentially); each gene's scan is independent

    Raises:
        SampleAlignmentError: phenotype and genotype sample keys differ
    """
    check_alignment(phenotypes.ids, encoded.individual_ids)
    genes = list(genes) if genes is not None else phenotypes.genes
    missing = [g for g in genes if g not in phenotypes.genes]
    if missing:
        raise KeyError(f"Genes not in phenotype table: {missing}")

    results: Dict[str, ScanResults] = {}
    t0 = time.time()
    for i, gene in enumerate(genes, 1):
        if verbose:
            print(f"[{i}/{len(genes)}] scanning {gene}")
        results[gene] = EQTL_Scan(
            phenotypes.values(gene), encoded, covariates=covariates, gene=gene,
            cpu=cpu, batch_size=batch_size, verbose=verbose,
        )
    if verbose:
        print(f"Scanned {len(genes)} genes x {encoded.n_markers} markers in {time.time() - t0:.2f} seconds")
    return results


def pvalue_table(results: Dict[str, ScanResults]) -> pd.DataFrame:
    """Long (gene, marker, p-value) table across all scans"""
    if not results:
        return pd.DataFrame(columns=['GENE', 'SNP', 'marker_index', 'F', 'df_num', 'df_den', 'P', 'status'])
    return pd.concat([res.to_dataframe() for res in results.values()], ignore_index=True)
