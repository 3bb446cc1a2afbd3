"""
Nested linear-model likelihood-ratio test for a single locus.

Full model:     y ~ covariates + Xa + Xd
Reduced model:  y ~ covariates

    F = ((SSE0 - SSE1) / 2) / (SSE1 / (n - df1))
    p = F.sf(F, 2, n - df1)

where df1 is the rank of the full design. Both models are fit on the same
rows (individuals with a finite phenotype value).
"""

from typing import NamedTuple, Optional

import numpy as np
from scipy import stats

from ..utils.data_types import LocusTest, STATUS_OK, STATUS_DEGENERATE

# Xa and Xd are tested jointly
N_TESTED_TERMS = 2


class OLSFit(NamedTuple):
    """Least-squares fit exposing what the F-test needs"""
    coefficients: np.ndarray
    residuals: np.ndarray
    rank: int
    sse: float


def ols_fit(X: np.ndarray, y: np.ndarray) -> OLSFit:
    """Ordinary least squares via SVD-based lstsq

    Rank-deficient designs are allowed; the minimum-norm solution is
    returned together with the numerical rank of X.
    """
    if X.shape[0] != y.shape[0]:
        raise ValueError(f"Design has {X.shape[0]} rows but y has {y.shape[0]}")
    coef, _, rank, _ = np.linalg.lstsq(X, y, rcond=None)
    residuals = y - X @ coef
    return OLSFit(coef, residuals, int(rank), float(residuals @ residuals))


def observation_mask(y: np.ndarray) -> np.ndarray:
    """Rows used by both models: individuals with a finite phenotype"""
    return np.isfinite(np.asarray(y, dtype=np.float64))


def fit_reduced_model(y: np.ndarray, covariate_design: np.ndarray) -> OLSFit:
    """Covariate-only fit on the observed rows; shared by every locus of one phenotype"""
    mask = observation_mask(y)
    return ols_fit(covariate_design[mask], np.asarray(y, dtype=np.float64)[mask])


def fit_locus_lrt(y: np.ndarray,
                  xa: np.ndarray,
                  xd: np.ndarray,
                  covariate_design: np.ndarray,
                  marker_index: int = 0,
                  reduced: Optional[OLSFit] = None) -> LocusTest:
    """
    Test whether one marker's Xa/Xd columns explain variance beyond covariates.

    Args:
        y: Phenotype vector (n individuals); non-finite entries are excluded
           from both fits
        xa: Additive encoding of the marker (n,)
        xd: Dominance encoding of the marker (n,)
        covariate_design: Intercept plus covariate columns (n x k)
        marker_index: Position of the marker in the genotype table
        reduced: Pre-computed fit_reduced_model(y, covariate_design)

    Returns:
        LocusTest. A full model whose marker columns add no rank over the
        covariates (e.g. an invariant marker), or that leaves no residual
        degrees of freedom, gives p = NaN with status 'degenerate'.
    """
    y = np.asarray(y, dtype=np.float64)
    mask = observation_mask(y)
    y_obs = y[mask]
    n = int(mask.sum())
    C = covariate_design[mask]

    if reduced is None:
        reduced = ols_fit(C, y_obs)

    X_full = np.column_stack([C, xa[mask], xd[mask]])
    full = ols_fit(X_full, y_obs)

    df1 = full.rank
    df_den = n - df1
    rank_gain = full.rank - reduced.rank

    if rank_gain <= 0 or df_den <= 0:
        reason = 'marker columns add no rank over covariates' if rank_gain <= 0 else 'no residual degrees of freedom'
        return LocusTest(marker_index=marker_index, pvalue=np.nan, df_num=N_TESTED_TERMS,
                         df_den=df_den, rank_gain=rank_gain, sse_reduced=reduced.sse,
                         sse_full=full.sse, status=STATUS_DEGENERATE, message=reason)

    # SSE1 <= SSE0 up to rounding for nested designs
    gain = max(reduced.sse - full.sse, 0.0)
    with np.errstate(divide='ignore', invalid='ignore'):
        f_stat = np.float64(gain / N_TESTED_TERMS) / np.float64(full.sse / df_den)

    if np.isnan(f_stat):
        return LocusTest(marker_index=marker_index, pvalue=np.nan, df_num=N_TESTED_TERMS,
                         df_den=df_den, rank_gain=rank_gain, sse_reduced=reduced.sse,
                         sse_full=full.sse, status=STATUS_DEGENERATE,
                         message='undefined F statistic')

    pvalue = float(stats.f.sf(f_stat, N_TESTED_TERMS, df_den))
    return LocusTest(marker_index=marker_index, pvalue=pvalue, f_stat=float(f_stat),
                     df_num=N_TESTED_TERMS, df_den=df_den, rank_gain=rank_gain,
                     sse_reduced=reduced.sse, sse_full=full.sse, status=STATUS_OK)
