"""Significant-hit selection and per-chromosome grouping for annotation hand-off"""

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd

from ..utils.data_types import GeneMap
from ..utils.exceptions import MissingMetadataError
from .significance import chromosome_order

HIT_COLUMNS = ['GENE', 'SNP', 'CHROM', 'POS', 'CUM_POS', 'P', 'observed']


@dataclass
class ChromosomeHits:
    """Significant rows of one chromosome, strongest first."""

    chrom: str
    rows: pd.DataFrame

    @property
    def index_marker(self) -> str:
        """Representative marker: the top row's SNP"""
        return str(self.rows['SNP'].iloc[0])

    @property
    def index_position(self) -> int:
        return int(self.rows['POS'].iloc[0])

    @property
    def marker_ids(self):
        return list(dict.fromkeys(self.rows['SNP'].astype(str)))

    @property
    def n_hits(self) -> int:
        return len(self.rows)


def select_hits(table: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """Rows whose observed score is strictly above the threshold

    Undefined tests (NaN observed) never pass.
    """
    missing = [c for c in HIT_COLUMNS if c not in table.columns]
    if missing:
        raise ValueError(f"Table lacks columns needed for hit calling: {missing}")
    observed = table['observed'].to_numpy(dtype=np.float64)
    with np.errstate(invalid='ignore'):
        keep = observed > threshold
    return table.loc[keep].reset_index(drop=True)


def _sort_hits(rows: pd.DataFrame) -> pd.DataFrame:
    sort_cols = ['observed', 'POS', 'GENE']
    ascending = [False, True, True]
    if 'marker_index' in rows.columns:
        sort_cols.insert(2, 'marker_index')
        ascending.insert(2, True)
    return rows.sort_values(sort_cols, ascending=ascending, kind='mergesort').reset_index(drop=True)


def group_hits_by_chromosome(hits: pd.DataFrame) -> Dict[str, ChromosomeHits]:
    """Hits grouped per chromosome in natural chromosome order"""
    groups: Dict[str, ChromosomeHits] = {}
    if hits.empty:
        return groups
    chrom = hits['CHROM'].astype(str)
    for label in chromosome_order(chrom):
        groups[label] = ChromosomeHits(label, _sort_hits(hits[chrom == label]))
    return groups


def resolve_chromosome(hits: pd.DataFrame, chrom) -> ChromosomeHits:
    """Hits of one requested chromosome, strongest first

    Raises:
        MissingMetadataError: no significant rows on that chromosome, whether
            the label is unknown or its markers simply missed the threshold
    """
    label = str(chrom)
    rows = hits[hits['CHROM'].astype(str) == label]
    if rows.empty:
        raise MissingMetadataError('chromosome', [label], reason="without significant hits")
    return ChromosomeHits(label, _sort_hits(rows))


def annotation_queries(groups: Dict[str, ChromosomeHits],
                       gene_map: Optional[GeneMap] = None,
                       window: int = 500_000) -> pd.DataFrame:
    """Marker lists per chromosome for external annotation services

    One row per chromosome: its hit markers and positions, the index marker,
    a region window around the index marker (clamped at 1), and the genes
    (with symbols when a gene map is given). No service is contacted here.

    Raises:
        MissingMetadataError: a hit gene is absent from the gene map
    """
    symbols = gene_map.symbols() if gene_map is not None else None
    rows = []
    for label, group in groups.items():
        genes = list(dict.fromkeys(group.rows['GENE'].astype(str)))
        if symbols is not None:
            unknown = [g for g in genes if g not in symbols]
            if unknown:
                raise MissingMetadataError('gene', unknown)
            gene_symbols = [symbols[g] for g in genes]
        else:
            gene_symbols = genes
        positions = group.rows.drop_duplicates('SNP')['POS'].astype(int).tolist()
        rows.append({
            'CHROM': label,
            'index_marker': group.index_marker,
            'index_position': group.index_position,
            'region_start': max(1, group.index_position - window),
            'region_end': group.index_position + window,
            'n_hits': group.n_hits,
            'markers': ';'.join(group.marker_ids),
            'positions': ';'.join(str(p) for p in positions),
            'genes': ';'.join(genes),
            'symbols': ';'.join(gene_symbols),
        })
    return pd.DataFrame(rows, columns=[
        'CHROM', 'index_marker', 'index_position', 'region_start', 'region_end',
        'n_hits', 'markers', 'positions', 'genes', 'symbols',
    ])
