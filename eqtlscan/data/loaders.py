"""
Table loaders and sample matching for eQTL inputs
"""

import warnings
from pathlib import Path
from typing import List, Optional, Tuple, Dict, Union, Sequence

import pandas as pd

from ..utils.data_types import (
    PhenotypeMatrix, GenotypeMatrix, GenotypeMap, GeneMap, CovariateTable
)
from ..utils.exceptions import SampleAlignmentError, _preview

NA_VALUES = [
    '', 'NA', 'NaN', 'nan', 'NAN', 'na', 'N/A', 'n/a', 'Null', 'NULL',
    '.', '-', '--'
]

ID_CANDIDATES = ['ID', 'id', 'IID', 'sample', 'Sample', 'BXD', 'strain', 'Strain']


def detect_file_format(filepath: Union[str, Path]) -> str:
    """Detect delimited text format from extension ('csv' or 'tsv')"""
    name = Path(filepath).name.lower()
    if name.endswith('.gz'):
        name = name[:-3]
    if name.endswith('.csv'):
        return 'csv'
    if name.endswith(('.tsv', '.txt', '.tab')):
        return 'tsv'
    raise ValueError(f"Unsupported table format: {filepath}")


def _read_table(filepath: Union[str, Path]) -> pd.DataFrame:
    sep = ',' if detect_file_format(filepath) == 'csv' else '\t'
    return pd.read_csv(filepath, sep=sep, na_values=NA_VALUES, keep_default_na=True)


def _normalize_id_column(df: pd.DataFrame, id_column: str) -> pd.DataFrame:
    """Rename the sample ID column to 'ID'"""
    if id_column in df.columns:
        if id_column != 'ID':
            df = df.rename(columns={id_column: 'ID'})
    else:
        present = [c for c in df.columns if c in ID_CANDIDATES]
        if present:
            if len(present) > 1:
                warnings.warn(
                    "Multiple potential ID columns found: {}. Selecting leftmost '{}' as ID.".format(
                        present, present[0]
                    )
                )
            df = df.rename(columns={present[0]: 'ID'})
        else:
            first_col = df.columns[0]
            warnings.warn(f"No recognized ID column found; using first column '{first_col}' as ID.")
            df = df.rename(columns={first_col: 'ID'})
    df['ID'] = df['ID'].astype(str)
    return df


def load_phenotype_file(filepath: Union[str, Path],
                        genes: Optional[List[str]] = None,
                        id_column: str = 'ID',
                        transpose: bool = False) -> PhenotypeMatrix:
    """Load an expression table

    Args:
        filepath: CSV/TSV file
        genes: Gene columns to keep (default: all numeric columns)
        id_column: Sample ID column (or gene ID column when transposed)
        transpose: File is genes × samples (first column gene IDs)
    """
    df = _read_table(filepath)
    if transpose:
        gene_col = id_column if id_column in df.columns else df.columns[0]
        df = df.set_index(gene_col).T
        df.index = df.index.astype(str)
        df = df.rename_axis('ID').reset_index()
        df.columns = [str(c) for c in df.columns]
        for col in df.columns[1:]:
            df[col] = pd.to_numeric(df[col], errors='coerce')
    else:
        df = _normalize_id_column(df, id_column)

    if genes is not None:
        missing = [g for g in genes if g not in df.columns]
        if missing:
            raise ValueError(f"Requested genes missing from phenotype file: {missing}")
        df = df[['ID'] + list(genes)]
    else:
        numeric = [c for c in df.columns if c != 'ID' and pd.api.types.is_numeric_dtype(df[c])]
        dropped = [c for c in df.columns if c != 'ID' and c not in numeric]
        if dropped:
            warnings.warn(f"Dropping non-numeric phenotype columns: {dropped}")
        df = df[['ID'] + numeric]

    if df['ID'].duplicated().any():
        raise ValueError(f"Duplicated sample IDs in phenotype file '{filepath}'")
    return PhenotypeMatrix(df)


def load_genotype_file(filepath: Union[str, Path],
                       id_column: str = 'ID',
                       transpose: bool = False) -> GenotypeMatrix:
    """Load numeric genotype calls (0/1/2, missing as NA or -9)

    By default the file is individuals × markers with an ID column; set
    transpose=True for markers × individuals with the marker ID first.
    """
    df = _read_table(filepath)
    if transpose:
        marker_col = df.columns[0]
        df = df.set_index(marker_col).T
        df = df.rename_axis('ID').reset_index()
        df.columns = [str(c) for c in df.columns]
    else:
        df = _normalize_id_column(df, id_column)

    if df['ID'].duplicated().any():
        raise ValueError(f"Duplicated sample IDs in genotype file '{filepath}'")
    markers = [c for c in df.columns if c != 'ID']
    df[markers] = df[markers].apply(pd.to_numeric, errors='coerce')
    return GenotypeMatrix.from_dataframe(df)


def load_covariate_file(filepath: Union[str, Path],
                        covariate_columns: Optional[List[str]] = None,
                        id_column: str = 'ID') -> CovariateTable:
    """Load categorical covariates (sex, population, ...)"""
    df = _normalize_id_column(_read_table(filepath), id_column)

    if df['ID'].duplicated().any():
        n_dups = int(df['ID'].duplicated().sum())
        df = df.drop_duplicates(subset='ID', keep='first')
        warnings.warn(f"Detected {n_dups} duplicated covariate records by ID; keeping the first record.")

    return CovariateTable(df, columns=covariate_columns)


def load_map_file(filepath: Union[str, Path]) -> GenotypeMap:
    """Load marker metadata; accepts common column aliases"""
    df = _read_table(filepath)
    aliases = {
        'SNP': ['SNP', 'snp', 'rsid', 'rsID', 'ID', 'Locus', 'marker'],
        'CHROM': ['CHROM', 'Chr', 'chr', 'chrom', 'Chromosome', 'chromosome'],
        'POS': ['POS', 'Pos', 'pos', 'Position', 'position', 'bp', 'Build37_position'],
    }
    rename = {}
    for target, names in aliases.items():
        found = [c for c in df.columns if c in names]
        if not found:
            raise ValueError(f"Map file '{filepath}' lacks a {target} column (tried {names})")
        rename[found[0]] = target
    df = df.rename(columns=rename)
    df['POS'] = pd.to_numeric(df['POS'], errors='raise')
    return GenotypeMap(df[['SNP', 'CHROM', 'POS']])


def load_gene_file(filepath: Union[str, Path]) -> GeneMap:
    """Load gene metadata (gene id -> symbol)"""
    df = _read_table(filepath)
    aliases = {
        'GENE': ['GENE', 'gene', 'gene_id', 'ID', 'probe', 'ProbeSet'],
        'SYMBOL': ['SYMBOL', 'symbol', 'GENE_SYMBOL', 'gene_symbol', 'Symbol'],
    }
    rename = {}
    for target, names in aliases.items():
        found = [c for c in df.columns if c in names]
        if not found:
            raise ValueError(f"Gene file '{filepath}' lacks a {target} column (tried {names})")
        rename[found[0]] = target
    return GeneMap(df.rename(columns=rename)[['GENE', 'SYMBOL']])


def match_individuals(phenotypes: PhenotypeMatrix,
                      genotypes: GenotypeMatrix,
                      covariates: Optional[CovariateTable] = None,
                      intersect: bool = False
                      ) -> Tuple[PhenotypeMatrix, GenotypeMatrix, Dict[str, int]]:
    """Put phenotypes and genotypes in one sample order (genotype order)

    Phenotype and genotype tables must hold the same individuals. With
    intersect=True they are restricted to their common individuals instead.
    Covariates may hold more individuals but must cover every matched one.

    Raises:
        SampleAlignmentError: sample keys differ (without intersect), no
            overlap, or covariates incomplete
    """
    phe_ids = set(phenotypes.ids)
    geno_ids = set(genotypes.individual_ids)
    common = phe_ids & geno_ids

    summary: Dict[str, int] = {
        'n_phenotype_original': len(phe_ids),
        'n_genotype_original': len(geno_ids),
        'n_common': len(common),
        'n_phenotype_dropped': len(phe_ids - common),
        'n_genotype_dropped': len(geno_ids - common),
    }
    if not intersect:
        if phe_ids != geno_ids:
            raise SampleAlignmentError(
                "Sample keys differ between phenotype and genotype tables "
                f"(phenotype only: {_preview(sorted(phe_ids - common))}; "
                f"genotype only: {_preview(sorted(geno_ids - common))})"
            )
        if len(phenotypes.ids) != len(genotypes.individual_ids):
            raise SampleAlignmentError(
                f"Phenotype table has {len(phenotypes.ids)} rows but genotype table has "
                f"{len(genotypes.individual_ids)}; sample keys must be unique"
            )
    if not common:
        raise SampleAlignmentError("No common individuals found between phenotype and genotype data")

    ordered = [sid for sid in genotypes.individual_ids if sid in common]

    if covariates is not None:
        missing = sorted(common - set(covariates.ids))
        if missing:
            raise SampleAlignmentError(
                "Covariate table is missing {} individuals required after phenotype/genotype matching: {}".format(
                    len(missing), _preview(missing)
                )
            )
        summary['n_covariate_unused'] = len(set(covariates.ids) - common)

    return phenotypes.subset(ordered), genotypes.subset_individuals(ordered), summary


def check_alignment(phenotype_ids: Sequence[str],
                    genotype_ids: Sequence[str],
                    covariate_ids: Optional[Sequence[str]] = None) -> None:
    """Require identical sample keys (same set, count and order)

    Covariate keys are looked up, so they only need to be a superset.

    Raises:
        SampleAlignmentError: on any mismatch
    """
    phenotype_ids = [str(i) for i in phenotype_ids]
    genotype_ids = [str(i) for i in genotype_ids]

    if len(phenotype_ids) != len(genotype_ids):
        raise SampleAlignmentError(
            f"Phenotype table has {len(phenotype_ids)} individuals but genotype table has {len(genotype_ids)}"
        )
    only_phe = sorted(set(phenotype_ids) - set(genotype_ids))
    only_geno = sorted(set(genotype_ids) - set(phenotype_ids))
    if only_phe or only_geno:
        raise SampleAlignmentError(
            "Sample keys differ between phenotype and genotype tables "
            f"(phenotype only: {_preview(only_phe)}; genotype only: {_preview(only_geno)})"
        )
    if phenotype_ids != genotype_ids:
        first = next(i for i, (a, b) in enumerate(zip(phenotype_ids, genotype_ids)) if a != b)
        raise SampleAlignmentError(
            f"Sample order differs at row {first}: phenotype '{phenotype_ids[first]}' vs genotype '{genotype_ids[first]}'"
        )
    if covariate_ids is not None:
        missing = sorted(set(genotype_ids) - {str(i) for i in covariate_ids})
        if missing:
            raise SampleAlignmentError(
                f"Covariate table lacks {len(missing)} genotyped individuals: {_preview(missing)}"
            )
