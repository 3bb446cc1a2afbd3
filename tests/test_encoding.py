import numpy as np
import pandas as pd
import pytest

from eqtlscan.data.encoding import (
    EQTL_Encode, encode_additive, encode_dominance, genotype_qc_report, summarize_qc
)
from eqtlscan.utils.data_types import GenotypeMatrix, CovariateTable, MISSING_CALL
from eqtlscan.utils.exceptions import MissingGenotypeError, SampleAlignmentError


def _geno(calls, ids=None, markers=None) -> GenotypeMatrix:
    calls = np.asarray(calls)
    ids = ids or [f"i{k}" for k in range(calls.shape[0])]
    markers = markers or [f"m{k}" for k in range(calls.shape[1])]
    return GenotypeMatrix(calls, ids, markers)


def test_additive_and_dominance_values() -> None:
    calls = np.array([0, 1, 2])
    np.testing.assert_array_equal(encode_additive(calls), [-1.0, 0.0, 1.0])
    np.testing.assert_array_equal(encode_dominance(calls), [-1.0, 1.0, -1.0])


def test_encode_builds_matrices_in_genotype_order() -> None:
    geno = _geno([[0, 2], [1, 1], [2, 0]])
    encoded, cov_rows = EQTL_Encode(geno)

    assert cov_rows is None
    assert encoded.individual_ids == ("i0", "i1", "i2")
    assert encoded.marker_ids == ("m0", "m1")
    np.testing.assert_array_equal(encoded.Xa, [[-1, 1], [0, 0], [1, -1]])
    np.testing.assert_array_equal(encoded.Xd, [[-1, -1], [1, 1], [-1, -1]])

    xa, xd = encoded.marker_columns(1)
    np.testing.assert_array_equal(xa, [1, 0, -1])
    np.testing.assert_array_equal(xd, [-1, 1, -1])


def test_encode_rejects_missing_calls() -> None:
    geno = _geno([[0, 2], [MISSING_CALL, 1], [2, 0]])
    with pytest.raises(MissingGenotypeError, match="m0"):
        EQTL_Encode(geno)

    geno_nan = _geno(np.array([[0.0, 2.0], [1.0, np.nan], [2.0, 0.0]]))
    with pytest.raises(MissingGenotypeError, match="m1"):
        EQTL_Encode(geno_nan)


def test_genotype_matrix_rejects_invalid_calls() -> None:
    with pytest.raises(ValueError, match="m1"):
        _geno([[0, 3], [1, 1]])


def test_encode_checks_sample_order() -> None:
    geno = _geno([[0], [1], [2]])
    with pytest.raises(SampleAlignmentError, match="order"):
        EQTL_Encode(geno, sample_ids=["i1", "i0", "i2"])
    with pytest.raises(SampleAlignmentError):
        EQTL_Encode(geno, sample_ids=["i0", "i1"])


def test_encode_aligns_covariates_to_genotype_order() -> None:
    geno = _geno([[0], [1], [2]])
    covariates = CovariateTable(pd.DataFrame({
        "ID": ["i2", "extra", "i0", "i1"],
        "sex": ["F", "M", "M", "F"],
    }))
    _, cov_rows = EQTL_Encode(geno, covariates, sample_ids=["i0", "i1", "i2"])
    assert cov_rows["ID"].tolist() == ["i0", "i1", "i2"]
    assert cov_rows["sex"].tolist() == ["M", "F", "F"]


def test_encode_requires_covariates_for_every_individual() -> None:
    geno = _geno([[0], [1], [2]])
    covariates = CovariateTable(pd.DataFrame({"ID": ["i0", "i1"], "sex": ["M", "F"]}))
    with pytest.raises(SampleAlignmentError, match="i2"):
        EQTL_Encode(geno, covariates)


def test_qc_report_only_reports() -> None:
    calls = np.array([
        [0, 0, 0],
        [0, 0, MISSING_CALL],
        [2, 0, 2],
        [2, 1, 2],
    ])
    geno = _geno(calls)
    before = geno.to_numpy().copy()

    report = genotype_qc_report(geno, maf_threshold=0.2, missing_threshold=0.1)

    np.testing.assert_array_equal(geno.to_numpy(), before)
    assert report["SNP"].tolist() == ["m0", "m1", "m2"]
    np.testing.assert_allclose(report["MAF"], [0.5, 0.125, 1.0 / 3.0])
    np.testing.assert_allclose(report["missing_rate"], [0.0, 0.0, 0.25])
    assert report["passes_qc"].tolist() == [True, False, False]

    counts = summarize_qc(report)
    assert counts == {"n_markers": 3, "n_fail_maf": 1, "n_fail_missing": 1, "n_pass": 1}
