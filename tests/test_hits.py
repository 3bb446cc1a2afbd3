import numpy as np
import pandas as pd
import pytest

from eqtlscan.analysis.hits import (
    annotation_queries, group_hits_by_chromosome, resolve_chromosome, select_hits
)
from eqtlscan.analysis.significance import EQTL_Significance
from eqtlscan.utils.data_types import GeneMap, GenotypeMap
from eqtlscan.utils.exceptions import MissingMetadataError


@pytest.fixture
def enriched():
    geno_map = GenotypeMap(pd.DataFrame({
        "SNP": ["s1", "s2", "s3", "s4"],
        "CHROM": ["1", "1", "2", "10"],
        "POS": [100, 200, 50, 10],
    }))
    pvals = {
        "gA": [1e-6, 1e-3, 0.5, 1e-8],
        "gB": [0.2, 1e-5, np.nan, 0.9],
    }
    rows = []
    for gene, values in pvals.items():
        for j, p in enumerate(values):
            rows.append({"GENE": gene, "SNP": f"s{j + 1}", "marker_index": j, "P": p})
    return EQTL_Significance(pd.DataFrame(rows), geno_map, verbose=False)


def test_select_hits_uses_strict_threshold() -> None:
    table = pd.DataFrame({
        "GENE": ["g", "g", "g"],
        "SNP": ["a", "b", "c"],
        "CHROM": ["1", "1", "1"],
        "POS": [1, 2, 3],
        "CUM_POS": [1, 2, 3],
        "P": [0.01, 0.001, np.nan],
        "observed": [2.0, 3.0, np.nan],
    })
    hits = select_hits(table, 2.0)
    assert hits["SNP"].tolist() == ["b"]

    with pytest.raises(ValueError, match="observed"):
        select_hits(table.drop(columns=["observed"]), 2.0)


def test_hits_grouped_per_chromosome(enriched) -> None:
    table, threshold = enriched
    hits = select_hits(table, threshold)
    assert len(hits) == 4

    groups = group_hits_by_chromosome(hits)
    assert list(groups) == ["1", "10"]

    chr1 = groups["1"]
    assert chr1.rows["SNP"].tolist() == ["s1", "s2", "s2"]
    assert chr1.rows["GENE"].tolist() == ["gA", "gB", "gA"]
    assert chr1.index_marker == "s1"
    assert chr1.index_position == 100
    assert chr1.marker_ids == ["s1", "s2"]
    assert chr1.n_hits == 3
    assert groups["10"].index_marker == "s4"

    assert group_hits_by_chromosome(hits.iloc[0:0]) == {}


def test_resolve_chromosome(enriched) -> None:
    table, threshold = enriched
    hits = select_hits(table, threshold)

    chr10 = resolve_chromosome(hits, 10)
    assert chr10.chrom == "10"
    assert chr10.marker_ids == ["s4"]

    # chromosome 2 is mapped but none of its markers pass the threshold
    with pytest.raises(MissingMetadataError, match="without significant hits") as excinfo:
        resolve_chromosome(hits, "2")
    assert excinfo.value.identifiers == ["2"]
    assert "not found" not in str(excinfo.value)


def test_annotation_queries(enriched) -> None:
    table, threshold = enriched
    groups = group_hits_by_chromosome(select_hits(table, threshold))
    gene_map = GeneMap(pd.DataFrame({"GENE": ["gA", "gB"], "SYMBOL": ["Abc1", "Xyz2"]}))

    queries = annotation_queries(groups, gene_map=gene_map, window=50)
    assert queries["CHROM"].tolist() == ["1", "10"]

    chr1 = queries.iloc[0]
    assert chr1["index_marker"] == "s1"
    assert chr1["region_start"] == 50
    assert chr1["region_end"] == 150
    assert chr1["markers"] == "s1;s2"
    assert chr1["positions"] == "100;200"
    assert chr1["genes"] == "gA;gB"
    assert chr1["symbols"] == "Abc1;Xyz2"

    # window clamped at the chromosome start
    assert queries.iloc[1]["region_start"] == 1

    without_map = annotation_queries(groups)
    assert without_map.iloc[0]["symbols"] == "gA;gB"


def test_annotation_queries_require_known_genes(enriched) -> None:
    table, threshold = enriched
    groups = group_hits_by_chromosome(select_hits(table, threshold))
    gene_map = GeneMap(pd.DataFrame({"GENE": ["gA"], "SYMBOL": ["Abc1"]}))
    with pytest.raises(MissingMetadataError) as excinfo:
        annotation_queries(groups, gene_map=gene_map)
    assert excinfo.value.identifiers == ["gB"]
