#!/usr/bin/env python3
"""
Example 02: Step-by-step scan on in-memory tables

Uses the functional API directly: encode genotypes, scan one gene with a
thread pool, pool the results, then resolve hits per chromosome.
"""

import numpy as np
import pandas as pd

from eqtlscan import EQTL_Encode, EQTL_ScanAll, EQTL_Significance
from eqtlscan.association.scan import pvalue_table
from eqtlscan.analysis.hits import select_hits, group_hits_by_chromosome
from eqtlscan.utils.data_types import GenotypeMatrix, GenotypeMap, PhenotypeMatrix


def main():
    rng = np.random.default_rng(2024)
    n, m = 200, 500
    ids = [f"ind{i:03d}" for i in range(n)]
    markers = [f"rs{j:05d}" for j in range(m)]

    calls = rng.integers(0, 3, size=(n, m))
    geno = GenotypeMatrix(calls, ids, markers)
    geno_map = GenotypeMap(pd.DataFrame({
        'SNP': markers,
        'CHROM': [str(1 + j // 100) for j in range(m)],
        'POS': [1_000 * (j % 100) + 1 for j in range(m)],
    }))

    # gene1 has a cis-eQTL at rs00042, gene2 is noise
    phenotypes = PhenotypeMatrix(pd.DataFrame({
        'ID': ids,
        'gene1': 0.8 * (calls[:, 42] - 1) + rng.normal(size=n),
        'gene2': rng.normal(size=n),
    }))
    covariates = pd.DataFrame({'ID': ids, 'sex': rng.choice(['F', 'M'], size=n)})

    encoded, _ = EQTL_Encode(geno, sample_ids=phenotypes.ids, verbose=True)
    results = EQTL_ScanAll(phenotypes, encoded, covariates=covariates, cpu=4)

    table, threshold = EQTL_Significance(pvalue_table(results), geno_map)
    groups = group_hits_by_chromosome(select_hits(table, threshold))

    for chrom, group in groups.items():
        print(f"Chr {chrom}: index marker {group.index_marker} "
              f"({group.n_hits} significant pairs)")


if __name__ == '__main__':
    main()
