"""
Statistical utilities for eQTL analysis
"""

import numpy as np
from scipy import stats


def bonferroni_threshold(n_tests: int, alpha: float = 0.05) -> float:
    """Bonferroni threshold on the -log10 scale

    Args:
        n_tests: Number of tests in the pooled family
        alpha: Family-wise error rate (default: 0.05)

    Returns:
        -log10(alpha / n_tests)
    """
    if n_tests <= 0:
        raise ValueError("Bonferroni correction needs at least one test")
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must be in (0, 1), got {alpha}")
    return float(-np.log10(alpha / n_tests))


def neg_log10(pvalues: np.ndarray) -> np.ndarray:
    """-log10 of p-values; undefined p-values stay NaN, p == 0 gives inf"""
    pvalues = np.asarray(pvalues, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore'):
        return -np.log10(pvalues)


def expected_quantile_scores(total: int) -> np.ndarray:
    """-log10(rank / total) for rank 1..total"""
    if total <= 0:
        return np.array([], dtype=np.float64)
    ranks = np.arange(1, total + 1, dtype=np.float64)
    return -np.log10(ranks / total)


def genomic_inflation_factor(pvalues: np.ndarray) -> float:
    """Calculate genomic inflation factor (lambda)

    Args:
        pvalues: Array of p-values

    Returns:
        Genomic inflation factor (lambda)
    """
    pvalues = np.asarray(pvalues, dtype=np.float64)
    valid_pvals = pvalues[np.isfinite(pvalues) & (pvalues > 0)]
    if len(valid_pvals) == 0:
        return 1.0

    chi2_values = stats.chi2.isf(valid_pvals, df=1)
    median_chi2 = np.median(chi2_values)
    expected_median = stats.chi2.ppf(0.5, df=1)

    return float(median_chi2 / expected_median)
