import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from eqtlscan.analysis.hits import group_hits_by_chromosome, select_hits
from eqtlscan.analysis.significance import EQTL_Significance
from eqtlscan.utils.data_types import GenotypeMap, PhenotypeMatrix
from eqtlscan.visualization import plots


@pytest.fixture
def analyzed():
    n_markers = 12
    geno_map = GenotypeMap(pd.DataFrame({
        "SNP": [f"s{i}" for i in range(n_markers)],
        "CHROM": [str((i % 3) + 1) for i in range(n_markers)],
        "POS": (np.arange(n_markers) + 1) * 1000,
    }))
    rng = np.random.default_rng(0)
    rows = []
    for gene in ("g1", "g2"):
        pvals = rng.uniform(0.05, 1.0, size=n_markers)
        if gene == "g1":
            pvals[4] = 1e-12
        pvals[7] = np.nan
        for j, p in enumerate(pvals):
            rows.append({"GENE": gene, "SNP": f"s{j}", "marker_index": j, "P": p})
    table, threshold = EQTL_Significance(pd.DataFrame(rows), geno_map, verbose=False)
    return table, threshold


def _phenotypes() -> PhenotypeMatrix:
    rng = np.random.default_rng(1)
    return PhenotypeMatrix(pd.DataFrame({
        "ID": [f"i{k}" for k in range(30)],
        "g1": rng.normal(size=30),
        "g2": rng.normal(size=30),
        "g3": rng.normal(size=30),
    }))


def test_manhattan_and_qq_plots(analyzed) -> None:
    table, threshold = analyzed

    fig = plots.create_manhattan_plot(table, threshold, gene="g1")
    assert isinstance(fig, matplotlib.figure.Figure)
    ax = fig.axes[0]
    assert [t.get_text() for t in ax.get_xticklabels()] == ["1", "2", "3"]
    plt.close(fig)

    fig = plots.create_qq_plot(table, "g2")
    assert fig.axes[0].get_title() == "Q-Q Plot: g2"
    plt.close(fig)

    fig = plots.create_qq_plot(table, "unknown")
    assert fig.axes[0].texts
    plt.close(fig)


def test_expression_pca_and_plots() -> None:
    phe = _phenotypes()
    pcs, explained = plots.expression_pca(phe)
    assert list(pcs.columns) == ["ID", "PC1", "PC2"]
    assert len(pcs) == 30
    assert explained[0] >= explained[1]
    assert explained.sum() <= 1.0 + 1e-12

    hue = pd.Series(["A", "B"] * 15)
    fig = plots.create_pca_plot(pcs, explained, hue=hue)
    assert "PC1" in fig.axes[0].get_xlabel()
    plt.close(fig)

    fig = plots.create_expression_histograms(phe)
    assert sum(ax.get_visible() for ax in fig.axes) == 3
    plt.close(fig)


def test_locus_zoom_plot(analyzed) -> None:
    table, threshold = analyzed
    groups = group_hits_by_chromosome(select_hits(table, threshold))
    assert list(groups) == ["2"]
    fig = plots.create_locus_zoom_plot(table, groups["2"], threshold, window=5000)
    assert fig.axes[0].get_title() == "g1: s4"
    plt.close(fig)


def test_report_writes_requested_plots(analyzed, tmp_path) -> None:
    table, threshold = analyzed
    groups = group_hits_by_chromosome(select_hits(table, threshold))
    report = plots.EQTL_Report(
        table, threshold,
        plot_types=["manhattan", "qq", "histograms", "pca", "locuszoom"],
        hit_groups=groups,
        phenotypes=_phenotypes(),
        output_prefix=str(tmp_path / "run"),
        verbose=False,
    )
    names = sorted(p.split("/")[-1] for p in report["files_created"])
    assert names == sorted([
        "run_g1_manhattan.png", "run_g2_manhattan.png",
        "run_g1_qq.png", "run_g2_qq.png",
        "run_expression_histograms.png", "run_expression_pca.png",
        "run_chr2_s4_locuszoom.png",
    ])
    for path in report["files_created"]:
        assert (tmp_path / path.split("/")[-1]).exists()


def test_report_without_phenotypes_warns(analyzed) -> None:
    table, threshold = analyzed
    with pytest.warns(UserWarning, match="phenotype"):
        report = plots.EQTL_Report(table, threshold, plot_types=["histograms"],
                                   save_plots=False, verbose=False)
    assert report["plots"] == {}
