import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from eqtlscan.association.lrt import fit_locus_lrt, fit_reduced_model, ols_fit, N_TESTED_TERMS
from eqtlscan.data.encoding import encode_additive, encode_dominance
from eqtlscan.utils.data_types import categorical_design, STATUS_OK, STATUS_DEGENERATE


def _covariate_design(n: int, rng) -> np.ndarray:
    rows = pd.DataFrame({
        "sex": rng.choice(["F", "M"], size=n),
        "population": rng.choice(["A", "B", "C"], size=n),
    })
    return categorical_design(rows)


def test_categorical_design_drops_first_level() -> None:
    rows = pd.DataFrame({"ID": ["a", "b", "c"], "sex": ["M", "F", "M"], "population": ["B", "A", "C"]})
    design = categorical_design(rows)
    np.testing.assert_array_equal(design, [
        [1, 1, 1, 0],
        [1, 0, 0, 0],
        [1, 1, 0, 1],
    ])
    np.testing.assert_array_equal(categorical_design(None, n=2), [[1], [1]])


def test_matches_statsmodels_nested_f_test() -> None:
    rng = np.random.default_rng(7)
    n = 120
    C = _covariate_design(n, rng)
    y = C @ np.array([1.0, 0.5, -0.3, 0.2]) + rng.normal(size=n)

    for _ in range(5):
        calls = rng.integers(0, 3, size=n)
        xa, xd = encode_additive(calls), encode_dominance(calls)
        res = fit_locus_lrt(y, xa, xd, C)

        full = sm.OLS(y, np.column_stack([C, xa, xd])).fit()
        reduced = sm.OLS(y, C).fit()
        f_sm, p_sm, df_diff = full.compare_f_test(reduced)

        assert res.status == STATUS_OK
        assert df_diff == N_TESTED_TERMS
        assert res.df_den == n - C.shape[1] - 2
        np.testing.assert_allclose(res.sse_full, full.ssr, rtol=1e-8)
        np.testing.assert_allclose(res.sse_reduced, reduced.ssr, rtol=1e-8)
        np.testing.assert_allclose(res.f_stat, f_sm, rtol=1e-6)
        np.testing.assert_allclose(res.pvalue, p_sm, rtol=1e-6)


def test_full_model_never_fits_worse() -> None:
    rng = np.random.default_rng(11)
    n = 60
    C = _covariate_design(n, rng)
    y = rng.normal(size=n)
    reduced = fit_reduced_model(y, C)
    for _ in range(20):
        calls = rng.integers(0, 3, size=n)
        res = fit_locus_lrt(y, encode_additive(calls), encode_dominance(calls), C, reduced=reduced)
        assert res.sse_full <= res.sse_reduced + 1e-9
        assert 0.0 <= res.pvalue <= 1.0


def test_perfectly_explained_phenotype_is_highly_significant() -> None:
    rng = np.random.default_rng(3)
    n = 100
    calls = rng.integers(0, 3, size=n)
    xa, xd = encode_additive(calls), encode_dominance(calls)
    y = 3.0 + 2.0 * xa + 0.5 * xd
    res = fit_locus_lrt(y, xa, xd, np.ones((n, 1)))
    assert res.status == STATUS_OK
    assert res.pvalue < 1e-10


def test_invariant_marker_is_degenerate() -> None:
    rng = np.random.default_rng(5)
    n = 40
    y = rng.normal(size=n)
    C = np.ones((n, 1))
    for call in (0, 1, 2):
        calls = np.full(n, call)
        res = fit_locus_lrt(y, encode_additive(calls), encode_dominance(calls), C, marker_index=4)
        assert res.status == STATUS_DEGENERATE
        assert np.isnan(res.pvalue)
        assert res.rank_gain == 0
        assert res.marker_index == 4
        assert not res.is_defined


def test_two_class_marker_keeps_fixed_numerator() -> None:
    rng = np.random.default_rng(9)
    n = 50
    calls = rng.choice([0, 2], size=n)
    y = 0.8 * (calls == 2) + rng.normal(size=n)
    res = fit_locus_lrt(y, encode_additive(calls), encode_dominance(calls), np.ones((n, 1)))
    assert res.status == STATUS_OK
    assert res.rank_gain == 1
    assert res.df_num == 2
    assert res.df_den == n - 2
    assert np.isfinite(res.pvalue)


def test_no_residual_degrees_of_freedom_is_degenerate() -> None:
    calls = np.array([0, 1, 2])
    res = fit_locus_lrt(np.array([0.1, 0.5, 0.2]), encode_additive(calls),
                        encode_dominance(calls), np.ones((3, 1)))
    assert res.status == STATUS_DEGENERATE
    assert res.df_den == 0
    assert np.isnan(res.pvalue)


def test_missing_phenotype_rows_are_dropped_from_both_fits() -> None:
    rng = np.random.default_rng(21)
    n = 80
    C = _covariate_design(n, rng)
    calls = rng.integers(0, 3, size=n)
    xa, xd = encode_additive(calls), encode_dominance(calls)
    y = 0.4 * xa + rng.normal(size=n)
    y_missing = y.copy()
    y_missing[[2, 17, 40]] = np.nan

    keep = np.isfinite(y_missing)
    with_nan = fit_locus_lrt(y_missing, xa, xd, C)
    subset = fit_locus_lrt(y[keep], xa[keep], xd[keep], C[keep])

    assert with_nan.df_den == subset.df_den == int(keep.sum()) - C.shape[1] - 2
    np.testing.assert_allclose(with_nan.pvalue, subset.pvalue, rtol=1e-10)
    np.testing.assert_allclose(with_nan.sse_reduced, subset.sse_reduced, rtol=1e-10)


def test_ols_fit_reports_rank_and_sse() -> None:
    X = np.column_stack([np.ones(4), [1.0, 2.0, 3.0, 4.0], [2.0, 4.0, 6.0, 8.0]])
    y = np.array([1.0, 3.0, 2.0, 5.0])
    fit = ols_fit(X, y)
    assert fit.rank == 2
    np.testing.assert_allclose(fit.sse, fit.residuals @ fit.residuals)
    with pytest.raises(ValueError):
        ols_fit(X, y[:3])
