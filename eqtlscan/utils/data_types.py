"""
Core data structures for eqtlscan
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Dict, List, Sequence

import numpy as np
import pandas as pd

MISSING_CALL = -9
STATUS_OK = 'ok'
STATUS_DEGENERATE = 'degenerate'
STATUS_FAILED = 'failed'


def _as_id_list(ids) -> List[str]:
    return [str(i) for i in ids]


def categorical_design(rows: Optional[pd.DataFrame],
                       columns: Optional[Sequence[str]] = None,
                       n: Optional[int] = None) -> np.ndarray:
    """Intercept plus treatment-coded dummies (first sorted level dropped)

    With no covariate rows the design is the intercept column alone.
    """
    if rows is None:
        if n is None:
            raise ValueError("Need the number of individuals when no covariates are given")
        return np.ones((n, 1))
    if columns is None:
        columns = [c for c in rows.columns if c != 'ID']
    parts = [np.ones((len(rows), 1))]
    for col in columns:
        values = rows[col].astype(str).to_numpy()
        for level in sorted(set(values))[1:]:
            parts.append((values == level).astype(np.float64)[:, None])
    return np.hstack(parts)


class PhenotypeMatrix:
    """Expression phenotypes: individuals × genes, keyed by sample ID.

    Expected format: DataFrame with an 'ID' column followed by one numeric
    column per gene.
    """

    def __init__(self, data: pd.DataFrame):
        if not isinstance(data, pd.DataFrame):
            raise ValueError("Phenotype data must be a DataFrame")
        if 'ID' not in data.columns:
            raise ValueError("Phenotype table must contain an 'ID' column")

        self.data = data.copy()
        self.data['ID'] = self.data['ID'].astype(str)
        gene_cols = [c for c in self.data.columns if c != 'ID']
        if not gene_cols:
            raise ValueError("Phenotype table has no gene columns")
        for col in gene_cols:
            if not pd.api.types.is_numeric_dtype(self.data[col]):
                raise ValueError(f"Phenotype column '{col}' is not numeric")
        self.data = self.data[['ID'] + gene_cols]

    @property
    def ids(self) -> List[str]:
        """Individual IDs"""
        return self.data['ID'].tolist()

    @property
    def genes(self) -> List[str]:
        """Gene identifiers (column order)"""
        return [str(c) for c in self.data.columns if c != 'ID']

    @property
    def n_individuals(self) -> int:
        return len(self.data)

    @property
    def n_genes(self) -> int:
        return len(self.genes)

    def values(self, gene: str) -> np.ndarray:
        """Expression vector of one gene in sample order"""
        if gene not in self.data.columns:
            raise KeyError(f"Unknown gene: {gene}")
        return self.data[gene].to_numpy(dtype=np.float64)

    def to_numpy(self) -> np.ndarray:
        """Expression matrix (individuals × genes)"""
        return self.data[self.genes].to_numpy(dtype=np.float64)

    def subset(self, ids: Sequence[str]) -> "PhenotypeMatrix":
        """Return rows for the given IDs in the given order"""
        indexed = self.data.set_index('ID').loc[_as_id_list(ids)].reset_index()
        return PhenotypeMatrix(indexed)


class GenotypeMap:
    """SNP map information

    Expected columns: [SNP, CHROM, POS]
    """

    def __init__(self, data: pd.DataFrame):
        if not isinstance(data, pd.DataFrame):
            raise ValueError("Map data must be a DataFrame")
        self.data = data.copy()

        required_cols = ['SNP', 'CHROM', 'POS']
        for col in required_cols:
            if col not in self.data.columns:
                raise ValueError(f"Missing required column: {col}")
        self.data['SNP'] = self.data['SNP'].astype(str)
        self.data['CHROM'] = self.data['CHROM'].astype(str)
        if self.data['SNP'].duplicated().any():
            dups = self.data.loc[self.data['SNP'].duplicated(), 'SNP'].tolist()
            raise ValueError(f"Duplicated SNP identifiers in map: {dups[:5]}")

    @property
    def snp_ids(self) -> pd.Series:
        """SNP identifiers"""
        return self.data['SNP']

    @property
    def chromosomes(self) -> pd.Series:
        """Chromosome labels"""
        return self.data['CHROM']

    @property
    def positions(self) -> pd.Series:
        """Physical positions"""
        return self.data['POS']

    @property
    def n_markers(self) -> int:
        """Number of markers"""
        return len(self.data)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to pandas DataFrame"""
        return self.data.copy()


class GeneMap:
    """Gene metadata: gene id -> display symbol

    Expected columns: [GENE, SYMBOL]. Only the annotation hand-off reads it.
    """

    def __init__(self, data: pd.DataFrame):
        if not isinstance(data, pd.DataFrame):
            raise ValueError("Gene map must be a DataFrame")
        for col in ('GENE', 'SYMBOL'):
            if col not in data.columns:
                raise ValueError(f"Missing required column: {col}")
        self.data = data.copy()
        self.data['GENE'] = self.data['GENE'].astype(str)

    def symbols(self) -> Dict[str, str]:
        return dict(zip(self.data['GENE'], self.data['SYMBOL'].astype(str)))


class GenotypeMatrix:
    """Genotype calls: individuals × markers

    Calls are 0/1/2 copies of the reference allele; -9 or NaN marks a
    missing call. Anything else is rejected on construction.
    """

    def __init__(self, data: np.ndarray,
                 individual_ids: Sequence[str],
                 marker_ids: Sequence[str]):
        data = np.asarray(data)
        if data.ndim != 2:
            raise ValueError("Genotype matrix must be 2D")
        if data.shape[0] != len(individual_ids):
            raise ValueError(
                f"Genotype rows ({data.shape[0]}) != number of individual IDs ({len(individual_ids)})"
            )
        if data.shape[1] != len(marker_ids):
            raise ValueError(
                f"Genotype columns ({data.shape[1]}) != number of marker IDs ({len(marker_ids)})"
            )

        self._data = data
        self.individual_ids = _as_id_list(individual_ids)
        self.marker_ids = _as_id_list(marker_ids)

        if len(set(self.marker_ids)) != len(self.marker_ids):
            raise ValueError("Duplicated marker identifiers in genotype matrix")

        missing = self.missing_mask()
        observed = np.where(missing, 0, data)
        bad = ~np.isin(observed, (0, 1, 2))
        if bad.any():
            cols = np.unique(np.where(bad)[1])
            names = [self.marker_ids[j] for j in cols[:5]]
            raise ValueError(f"Genotype calls must be 0, 1, 2 or missing; invalid values in markers {names}")

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, id_column: str = 'ID') -> "GenotypeMatrix":
        """Build from a DataFrame with an ID column and one column per marker"""
        if id_column not in df.columns:
            raise ValueError(f"Genotype table must contain an '{id_column}' column")
        markers = [c for c in df.columns if c != id_column]
        values = df[markers].to_numpy(dtype=np.float64)
        return cls(values, df[id_column].tolist(), markers)

    @property
    def shape(self) -> Tuple[int, int]:
        """Matrix shape (n_individuals, n_markers)"""
        return self._data.shape

    @property
    def n_individuals(self) -> int:
        return self.shape[0]

    @property
    def n_markers(self) -> int:
        return self.shape[1]

    def to_numpy(self) -> np.ndarray:
        return self._data

    def missing_mask(self) -> np.ndarray:
        mask = self._data == MISSING_CALL
        if np.issubdtype(self._data.dtype, np.floating):
            mask = mask | np.isnan(self._data)
        return mask

    def subset_individuals(self, ids: Sequence[str]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix with rows for the given IDs, in that order"""
        lookup = {sid: i for i, sid in enumerate(self.individual_ids)}
        ids = _as_id_list(ids)
        missing = [sid for sid in ids if sid not in lookup]
        if missing:
            raise KeyError(f"Individuals not in genotype matrix: {missing[:5]}")
        rows = np.array([lookup[sid] for sid in ids], dtype=int)
        return GenotypeMatrix(self._data[rows, :], ids, self.marker_ids)

    def subset_markers(self, marker_ids: Sequence[str]) -> "GenotypeMatrix":
        """Return a GenotypeMatrix with the given markers, in that order"""
        lookup = {m: j for j, m in enumerate(self.marker_ids)}
        marker_ids = _as_id_list(marker_ids)
        cols = np.array([lookup[m] for m in marker_ids], dtype=int)
        return GenotypeMatrix(self._data[:, cols], self.individual_ids, marker_ids)

    def calculate_allele_frequencies(self, max_dosage: float = 2.0) -> np.ndarray:
        """Reference allele frequency per marker over non-missing calls"""
        masked = np.ma.array(self._data.astype(np.float64), mask=self.missing_mask())
        return np.asarray(masked.mean(axis=0).filled(0.0)) / max(max_dosage, 1e-12)

    def calculate_maf(self, max_dosage: float = 2.0) -> np.ndarray:
        """Minor allele frequency per marker"""
        freq = self.calculate_allele_frequencies(max_dosage=max_dosage)
        return np.minimum(freq, 1.0 - freq)

    def calculate_missing_rate(self) -> np.ndarray:
        """Fraction of missing calls per marker"""
        if self.n_individuals == 0:
            return np.zeros(self.n_markers)
        return self.missing_mask().mean(axis=0)


class CovariateTable:
    """Categorical covariates keyed by sample ID

    Default columns are 'sex' and 'population'; population may be absent.
    The table may hold more individuals than are genotyped.
    """

    def __init__(self, data: pd.DataFrame, columns: Optional[Sequence[str]] = None):
        if 'ID' not in data.columns:
            raise ValueError("Covariate table must contain an 'ID' column")
        if columns is None:
            columns = [c for c in ('sex', 'population') if c in data.columns]
        missing = [c for c in columns if c not in data.columns]
        if missing:
            raise ValueError(f"Requested covariate columns missing from table: {missing}")

        self.columns: List[str] = list(columns)
        self.data = data[['ID'] + self.columns].copy()
        self.data['ID'] = self.data['ID'].astype(str)
        if self.data['ID'].duplicated().any():
            raise ValueError("Duplicated sample IDs in covariate table")
        for col in self.columns:
            self.data[col] = self.data[col].astype(str)

    @property
    def ids(self) -> List[str]:
        return self.data['ID'].tolist()

    def lookup(self, ids: Sequence[str]) -> pd.DataFrame:
        """Covariate rows for the given IDs, in that order"""
        return self.data.set_index('ID').loc[_as_id_list(ids)].reset_index()


@dataclass(frozen=True)
class EncodedGenotypes:
    """Additive (Xa) and dominance (Xd) encodings of every marker."""

    Xa: np.ndarray
    Xd: np.ndarray
    individual_ids: Tuple[str, ...]
    marker_ids: Tuple[str, ...]

    @property
    def n_individuals(self) -> int:
        return self.Xa.shape[0]

    @property
    def n_markers(self) -> int:
        return self.Xa.shape[1]

    def marker_columns(self, marker_idx: int) -> Tuple[np.ndarray, np.ndarray]:
        return self.Xa[:, marker_idx], self.Xd[:, marker_idx]


@dataclass(frozen=True)
class LocusTest:
    """Result of one nested-model test for a (phenotype, marker) pair."""

    marker_index: int
    pvalue: float
    f_stat: float = np.nan
    df_num: int = 0
    df_den: int = 0
    rank_gain: int = 0
    sse_reduced: float = np.nan
    sse_full: float = np.nan
    status: str = STATUS_OK
    message: str = ''

    @property
    def is_defined(self) -> bool:
        return self.status == STATUS_OK and np.isfinite(self.pvalue)


class ScanResults:
    """Marker-indexed results of one phenotype's scan"""

    def __init__(self, gene: str, tests: Sequence[LocusTest], marker_ids: Sequence[str]):
        if len(tests) != len(marker_ids):
            raise ValueError("All result arrays must have same length")
        for j, test in enumerate(tests):
            if test.marker_index != j:
                raise ValueError(f"Result at position {j} belongs to marker {test.marker_index}")
        self.gene = gene
        self.tests = list(tests)
        self.marker_ids = _as_id_list(marker_ids)

    @property
    def n_markers(self) -> int:
        return len(self.tests)

    @property
    def pvalues(self) -> np.ndarray:
        return np.array([t.pvalue for t in self.tests], dtype=np.float64)

    @property
    def f_stats(self) -> np.ndarray:
        return np.array([t.f_stat for t in self.tests], dtype=np.float64)

    @property
    def statuses(self) -> np.ndarray:
        return np.array([t.status for t in self.tests], dtype=object)

    def status_counts(self) -> Dict[str, int]:
        counts = {STATUS_OK: 0, STATUS_DEGENERATE: 0, STATUS_FAILED: 0}
        for t in self.tests:
            counts[t.status] = counts.get(t.status, 0) + 1
        return counts

    def pvalue_map(self) -> Dict[str, float]:
        """marker id -> p-value"""
        return dict(zip(self.marker_ids, self.pvalues.tolist()))

    def to_dataframe(self) -> pd.DataFrame:
        """One row per marker: gene, SNP, marker_index, F, df, P, status"""
        return pd.DataFrame({
            'GENE': self.gene,
            'SNP': self.marker_ids,
            'marker_index': np.arange(self.n_markers, dtype=int),
            'F': self.f_stats,
            'df_num': [t.df_num for t in self.tests],
            'df_den': [t.df_den for t in self.tests],
            'P': self.pvalues,
            'status': self.statuses,
        })
