"""
Significance analysis of pooled eQTL scan results

- Q-Q ordering per gene: expected -log10(rank/total) against observed -log10(p)
- One Bonferroni threshold over every (gene x marker) test
- Manhattan coordinates: per-chromosome relative positions concatenated in
  natural chromosome order
"""

import re
from typing import List, Tuple, Union, Iterable

import numpy as np
import pandas as pd

from ..utils.data_types import GenotypeMap, STATUS_OK, STATUS_DEGENERATE, STATUS_FAILED
from ..utils.exceptions import MissingMetadataError
from ..utils.stats import bonferroni_threshold, neg_log10, expected_quantile_scores, genomic_inflation_factor


def _natural_sort_key(value) -> List[Union[int, str]]:
    """Return a key for natural sorting of chromosome labels."""

    text = str(value).strip()
    if not text:
        return [""]
    parts = re.split(r'(\d+)', text)
    key: List[Union[int, str]] = []
    for part in parts:
        if part.isdigit():
            key.append(int(part))
        else:
            key.append(part.lower())
    return key


def chromosome_order(labels: Iterable) -> List[str]:
    """Unique chromosome labels in natural order (1, 2, ..., 10, X, Y)"""
    unique = {str(label) for label in labels}
    # raw label breaks ties between keys that compare equal (e.g. 'chr1' vs 'Chr1')
    return sorted(unique, key=lambda label: (_natural_sort_key(label), label))


def qq_ordering(pvalues: pd.DataFrame) -> pd.DataFrame:
    """Attach Q-Q scores and order rows per gene

    Within each gene, defined p-values are sorted ascending with ties broken
    by marker index; rank r of T defined tests gets expected = -log10(r/T).
    Undefined p-values (degenerate or failed fits) keep NaN scores and sort
    after the ranked rows, by marker index.
    """
    required = {'GENE', 'SNP', 'marker_index', 'P'}
    missing = required - set(pvalues.columns)
    if missing:
        raise ValueError(f"p-value table lacks columns: {sorted(missing)}")

    out = pvalues.copy()
    if 'status' not in out.columns:
        out['status'] = np.where(np.isfinite(out['P']), STATUS_OK, STATUS_DEGENERATE)
    out['observed'] = neg_log10(out['P'].to_numpy())
    out['expected'] = np.nan
    out['qq_rank'] = np.nan

    gene_order = list(dict.fromkeys(out['GENE']))
    pieces = []
    for gene in gene_order:
        sub = out[out['GENE'] == gene]
        defined = np.isfinite(sub['P'].to_numpy())
        ranked = sub[defined].sort_values(['P', 'marker_index'], kind='mergesort').copy()
        ranked['qq_rank'] = np.arange(1, len(ranked) + 1, dtype=np.float64)
        ranked['expected'] = expected_quantile_scores(len(ranked))
        undefined = sub[~defined].sort_values('marker_index', kind='mergesort')
        pieces.extend([ranked, undefined])

    ordered = pd.concat(pieces, ignore_index=True) if pieces else out
    return ordered


def manhattan_coordinates(geno_map: Union[GenotypeMap, pd.DataFrame],
                          marker_ids: Iterable[str] = None) -> pd.DataFrame:
    """Cumulative genome coordinates for markers

    REL_POS = POS - min(POS on the chromosome) + 1
    OFFSET  = sum of max REL_POS over the chromosomes preceding it
    CUM_POS = REL_POS + OFFSET

    Args:
        geno_map: Marker metadata with SNP/CHROM/POS
        marker_ids: Markers to place (default: every marker in the map).
            Offsets are computed from these markers only.

    Raises:
        MissingMetadataError: a requested marker is absent from the map
    """
    map_df = geno_map.to_dataframe() if isinstance(geno_map, GenotypeMap) else geno_map.copy()
    map_df['SNP'] = map_df['SNP'].astype(str)
    map_df['CHROM'] = map_df['CHROM'].astype(str)
    map_df = map_df.drop_duplicates('SNP').set_index('SNP')

    if marker_ids is not None:
        marker_ids = list(dict.fromkeys(str(m) for m in marker_ids))
        unknown = [m for m in marker_ids if m not in map_df.index]
        if unknown:
            raise MissingMetadataError('marker', unknown)
        map_df = map_df.loc[marker_ids]

    positions = pd.to_numeric(map_df['POS'], errors='coerce')
    if positions.isna().any():
        raise MissingMetadataError('marker position', positions.index[positions.isna()].tolist())

    coords = pd.DataFrame({'CHROM': map_df['CHROM'], 'POS': positions}, index=map_df.index)
    coords['REL_POS'] = coords['POS'] - coords.groupby('CHROM')['POS'].transform('min') + 1

    order = chromosome_order(coords['CHROM'])
    chrom_span = coords.groupby('CHROM')['REL_POS'].max().reindex(order)
    offsets = chrom_span.cumsum().shift(1, fill_value=0)
    coords['OFFSET'] = coords['CHROM'].map(offsets)
    coords['CUM_POS'] = coords['REL_POS'] + coords['OFFSET']
    coords['CHROM_ORDER'] = coords['CHROM'].map({c: i for i, c in enumerate(order)})
    coords.index.name = 'SNP'
    return coords


def chromosome_ticks(coords: pd.DataFrame) -> pd.DataFrame:
    """Axis segments per chromosome (start, end, centre) in plotting order"""
    order = chromosome_order(coords['CHROM'])
    grouped = coords.groupby('CHROM')
    ticks = pd.DataFrame({
        'start': grouped['OFFSET'].first() + 1,
        'end': grouped['CUM_POS'].max(),
    }).reindex(order)
    ticks['center'] = (ticks['start'] + ticks['end']) / 2.0
    ticks.index.name = 'CHROM'
    return ticks.reset_index()


def EQTL_Significance(pvalues: pd.DataFrame,
                      geno_map: Union[GenotypeMap, pd.DataFrame],
                      alpha: float = 0.05,
                      verbose: bool = True) -> Tuple[pd.DataFrame, float]:
    """Enrich the pooled p-value table and compute the global threshold

    Args:
        pvalues: Long table with GENE, SNP, marker_index, P (and status)
            holding every (gene x marker) test
        geno_map: Marker metadata
        alpha: Family-wise error rate for the pooled Bonferroni correction
        verbose: Print the threshold

    Returns:
        (enriched table, threshold on the -log10 scale). The threshold is
        -log10(alpha / n_tests) where n_tests counts every pooled test,
        defined or not.

    Raises:
        MissingMetadataError: markers absent from the map; raised before any
            threshold is produced
    """
    if pvalues.empty:
        raise ValueError("No tests to analyze")
    if pvalues.duplicated(['GENE', 'SNP']).any():
        raise ValueError("p-value table holds duplicated (gene, marker) tests")

    coords = manhattan_coordinates(geno_map, marker_ids=pvalues['SNP'].astype(str))

    table = qq_ordering(pvalues)
    table['SNP'] = table['SNP'].astype(str)
    table = table.join(coords, on='SNP')

    threshold = bonferroni_threshold(len(pvalues), alpha=alpha)

    if verbose:
        n_genes = pvalues['GENE'].nunique()
        n_markers = pvalues['SNP'].nunique()
        print(f"Bonferroni threshold: -log10(p) > {threshold:.3f} "
              f"(alpha={alpha}, {len(pvalues)} tests = {n_genes} genes x {n_markers} markers)")
    return table, threshold


def summarize_by_gene(table: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """Per-gene counts; undefined tests are counted apart from non-significant ones"""
    rows = []
    for gene in dict.fromkeys(table['GENE']):
        sub = table[table['GENE'] == gene]
        pvals = sub['P'].to_numpy(dtype=np.float64)
        defined = np.isfinite(pvals)
        rows.append({
            'GENE': gene,
            'n_tests': len(sub),
            'n_defined': int(defined.sum()),
            'n_degenerate': int((sub['status'] == STATUS_DEGENERATE).sum()),
            'n_failed': int((sub['status'] == STATUS_FAILED).sum()),
            'n_significant': int((sub['observed'] > threshold).sum()),
            'min_P': float(np.min(pvals[defined])) if defined.any() else np.nan,
            'lambda_gc': genomic_inflation_factor(pvals),
        })
    return pd.DataFrame(rows)
