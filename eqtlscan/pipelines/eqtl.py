"""
eQTL Pipeline Module

Wraps loading, sample alignment, genotype QC reporting, the per-gene
association scans, pooled significance analysis, hit resolution and
reporting into one reusable class.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from ..data.loaders import (
    load_phenotype_file, load_genotype_file, load_covariate_file,
    load_map_file, load_gene_file, match_individuals
)
from ..data.encoding import EQTL_Encode, genotype_qc_report, summarize_qc
from ..association.scan import EQTL_ScanAll, pvalue_table
from ..analysis.significance import EQTL_Significance, summarize_by_gene
from ..analysis.hits import select_hits, group_hits_by_chromosome, annotation_queries
from ..utils.data_types import (
    PhenotypeMatrix, GenotypeMatrix, GenotypeMap, GeneMap, CovariateTable, ScanResults
)
from ..utils.exceptions import MissingMetadataError

OUTPUT_CHOICES = (
    'all_pvalues',
    'significant_hits',
    'annotation_queries',
    'manhattan',
    'qq',
    'histograms',
    'pca',
    'locuszoom',
)

PLOT_OUTPUTS = ('manhattan', 'qq', 'histograms', 'pca', 'locuszoom')


class EQTLPipeline:
    """
    High-level pipeline for expression QTL scans.

    Typical workflow:
        1. Initialize pipeline with output directory
        2. Load phenotype (expression), genotype, covariate and map data
        3. Align samples across tables
        4. Report genotype QC against fixed thresholds
        5. Run the scan; results are written once every gene is done

    Attributes:
        phenotypes (PhenotypeMatrix): Expression, individuals × genes
        genotypes (GenotypeMatrix): Calls, individuals × markers
        covariates (CovariateTable): Categorical covariates (optional)
        geno_map (GenotypeMap): Marker metadata (SNP, CHROM, POS)
        gene_map (GeneMap): Gene symbols (optional, annotation hand-off only)
        results (dict): gene -> ScanResults from the last run
        significance_table (DataFrame): Enriched table from the last run
        threshold (float): Global Bonferroni threshold (-log10) of the last run

    Example:
        >>> pipeline = EQTLPipeline(output_dir='./my_eqtl')
        >>> pipeline.load_data(
        ...     phenotype_file='expression.csv',
        ...     genotype_file='genotypes.csv',
        ...     map_file='markers.csv',
        ...     covariate_file='covariates.csv',
        ... )
        >>> pipeline.align_samples()
        >>> pipeline.run_analysis(cpu=4)
    """

    def __init__(self, output_dir: str = "./eQTL_results"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        # Data storage
        self.phenotypes: Optional[PhenotypeMatrix] = None
        self.genotypes: Optional[GenotypeMatrix] = None
        self.covariates: Optional[CovariateTable] = None
        self.geno_map: Optional[GenotypeMap] = None
        self.gene_map: Optional[GeneMap] = None

        # QC / analysis state
        self.qc_report: Optional[pd.DataFrame] = None
        self.results: Dict[str, ScanResults] = {}
        self.significance_table: Optional[pd.DataFrame] = None
        self.threshold: Optional[float] = None

    def log(self, message: str):
        """Internal logger"""
        print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  phenotype_file: str,
                  genotype_file: str,
                  map_file: str,
                  covariate_file: Optional[str] = None,
                  gene_file: Optional[str] = None,
                  genes: Optional[List[str]] = None,
                  covariate_columns: Optional[List[str]] = None,
                  phenotype_id_column: str = 'ID',
                  covariate_id_column: str = 'ID',
                  phenotype_transpose: bool = False,
                  genotype_transpose: bool = False):
        """
        Load expression, genotype, marker map and optional covariate/gene tables.

        Raises:
            ValueError: If a file cannot be loaded or validated
        """
        step_start = time.time()
        self.log_step("Step 1: Loading and validating input data")

        try:
            phenotypes = load_phenotype_file(phenotype_file, genes=genes,
                                             id_column=phenotype_id_column,
                                             transpose=phenotype_transpose)
        except Exception as e:
            raise ValueError(f"Error loading phenotype file: {e}")
        self.log(f"   Loaded {phenotypes.n_individuals} individuals with {phenotypes.n_genes} genes")

        try:
            genotypes = load_genotype_file(genotype_file, transpose=genotype_transpose)
        except Exception as e:
            raise ValueError(f"Error loading genotype file: {e}")
        self.log(f"   Loaded {genotypes.n_individuals} individuals x {genotypes.n_markers} markers")

        try:
            geno_map = load_map_file(map_file)
        except Exception as e:
            raise ValueError(f"Error loading map file: {e}")
        self.log(f"   Loaded map for {geno_map.n_markers} markers")

        covariates = None
        if covariate_file:
            try:
                covariates = load_covariate_file(covariate_file,
                                                 covariate_columns=covariate_columns,
                                                 id_column=covariate_id_column)
            except Exception as e:
                raise ValueError(f"Error loading covariate file: {e}")
            self.log(f"   Loaded {len(covariates.ids)} individuals with covariates {covariates.columns}")

        gene_map = None
        if gene_file:
            try:
                gene_map = load_gene_file(gene_file)
            except Exception as e:
                raise ValueError(f"Error loading gene file: {e}")

        self.set_data(phenotypes, genotypes, geno_map, covariates=covariates, gene_map=gene_map)
        self.log_step("Data loading", step_start)

    def set_data(self,
                 phenotypes: PhenotypeMatrix,
                 genotypes: GenotypeMatrix,
                 geno_map: GenotypeMap,
                 covariates: Optional[CovariateTable] = None,
                 gene_map: Optional[GeneMap] = None):
        """Use in-memory tables

        Raises:
            MissingMetadataError: genotyped markers absent from the map
        """
        known = set(geno_map.snp_ids)
        unknown = [m for m in genotypes.marker_ids if m not in known]
        if unknown:
            raise MissingMetadataError('marker', unknown)

        self.phenotypes = phenotypes
        self.genotypes = genotypes
        self.geno_map = geno_map
        self.covariates = covariates
        self.gene_map = gene_map

    def align_samples(self, intersect: bool = False):
        """
        Put phenotype and genotype tables in one sample order (genotype order).
        Covariates must cover every retained individual.

        Args:
            intersect: Keep only individuals present in both tables instead of
                failing when their sample keys differ

        Raises:
            ValueError: If data has not been loaded
            SampleAlignmentError: Sample keys differ (unless intersect), no
                overlap, or covariates incomplete
        """
        if self.phenotypes is None or self.genotypes is None:
            raise ValueError("Data not loaded. Call load_data() first.")

        step_start = time.time()
        self.log_step("Step 2: Matching individuals between datasets")

        self.phenotypes, self.genotypes, summary = match_individuals(
            self.phenotypes, self.genotypes, covariates=self.covariates, intersect=intersect
        )
        self.log(f"   Original phenotypes: {summary['n_phenotype_original']}")
        self.log(f"   Original genotypes: {summary['n_genotype_original']}")
        self.log(f"   Matched individuals: {summary['n_common']}")
        if intersect:
            self.log(f"   Dropped: {summary['n_phenotype_dropped']} phenotype-only, "
                     f"{summary['n_genotype_dropped']} genotype-only")
        if self.covariates is not None:
            self.log(f"   Covariate records unused: {summary['n_covariate_unused']}")

        self.log_step("Individual matching", step_start)

    def run_qc(self, maf_threshold: float = 0.05, missing_threshold: float = 0.1) -> pd.DataFrame:
        """Report MAF and missingness against fixed thresholds (nothing is filtered)"""
        if self.genotypes is None:
            raise ValueError("Genotype data missing.")

        self.log_step("Step 3: Genotype QC report")
        self.qc_report = genotype_qc_report(self.genotypes, maf_threshold=maf_threshold,
                                            missing_threshold=missing_threshold)
        counts = summarize_qc(self.qc_report)
        self.log(f"   MAF < {maf_threshold}: {counts['n_fail_maf']} markers")
        self.log(f"   Missingness > {missing_threshold}: {counts['n_fail_missing']} markers")
        self.log(f"   Passing both thresholds: {counts['n_pass']}/{counts['n_markers']}")
        self.qc_report.to_csv(self.output_dir / "eQTL_genotype_qc.csv", index=False)
        return self.qc_report

    def run_analysis(self,
                     genes: Optional[Sequence[str]] = None,
                     cpu: int = 1,
                     batch_size: int = 500,
                     alpha: float = 0.05,
                     window: int = 500_000,
                     outputs: Sequence[str] = OUTPUT_CHOICES,
                     verbose_scan: bool = False) -> Dict[str, Any]:
        """
        Scan every gene against every marker, then analyze and write results.

        Files are written only after all scans and the significance analysis
        succeed.

        Returns:
            Dict with 'threshold', 'table', 'hits', 'groups', 'queries', 'summary'
        """
        if self.phenotypes is None or self.genotypes is None or self.geno_map is None:
            raise ValueError("Data not loaded.")

        step_start = time.time()
        self.log_step("Step 4: Running eQTL scan")

        encoded, cov_rows = EQTL_Encode(self.genotypes, self.covariates,
                                        sample_ids=self.phenotypes.ids)
        cov_design = None
        if cov_rows is not None:
            cov_design = cov_rows[['ID'] + self.covariates.columns]
            self.log(f"   Covariates: {self.covariates.columns}")

        results = EQTL_ScanAll(self.phenotypes, encoded, covariates=cov_design, genes=genes,
                               cpu=cpu, batch_size=batch_size, verbose=verbose_scan)
        for gene, res in results.items():
            counts = res.status_counts()
            self.log(f"   {gene}: {counts['ok']} tested, {counts['degenerate']} degenerate, "
                     f"{counts['failed']} failed")
        self.log_step("Association scan", step_start)

        step_start = time.time()
        self.log_step("Step 5: Significance analysis")
        table, threshold = EQTL_Significance(pvalue_table(results), self.geno_map,
                                             alpha=alpha, verbose=False)
        self.log(f"   Bonferroni threshold (-log10): {threshold:.3f} over {len(table)} tests")

        hits = select_hits(table, threshold)
        groups = group_hits_by_chromosome(hits)
        queries = annotation_queries(groups, gene_map=self.gene_map, window=window)
        summary = summarize_by_gene(table, threshold)
        self.log(f"   Significant (gene, marker) pairs: {len(hits)} on {len(groups)} chromosomes")
        for chrom, group in groups.items():
            self.log(f"   Chr {chrom}: {group.n_hits} hits, index marker {group.index_marker}")

        self.results = results
        self.significance_table = table
        self.threshold = threshold

        self._save_outputs(table, hits, queries, summary, groups, outputs)
        self.log_step("Significance analysis", step_start)
        self.log("\neQTL Analysis Completed Successfully.")

        return {
            'threshold': threshold,
            'table': table,
            'hits': hits,
            'groups': groups,
            'queries': queries,
            'summary': summary,
        }

    def _save_outputs(self, table, hits, queries, summary, groups, outputs):
        """Write tables and plots"""
        summary.to_csv(self.output_dir / "eQTL_summary_by_gene.csv", index=False)
        if 'all_pvalues' in outputs:
            table.to_csv(self.output_dir / "eQTL_all_pvalues.csv", index=False)
        if 'significant_hits' in outputs:
            hits.to_csv(self.output_dir / "eQTL_significant_hits.csv", index=False)
        if 'annotation_queries' in outputs:
            queries.to_csv(self.output_dir / "eQTL_annotation_queries.csv", index=False)

        plot_types = [o for o in outputs if o in PLOT_OUTPUTS]
        if plot_types:
            from ..visualization.plots import EQTL_Report

            hue = None
            if self.covariates is not None and self.covariates.columns:
                hue = self.covariates.lookup(self.phenotypes.ids)[self.covariates.columns[-1]]
            try:
                report = EQTL_Report(
                    table, self.threshold, plot_types=plot_types, hit_groups=groups,
                    phenotypes=self.phenotypes, pca_hue=hue,
                    output_prefix=str(self.output_dir / "eQTL"), verbose=False,
                )
                self.log(f"   Wrote {len(report['files_created'])} plots")
            except Exception as e:
                self.log(f"   Plotting error: {e}")
