#!/usr/bin/env python3
"""
Example 01: Basic eQTL Scan

Scans every expression phenotype against every marker with sex and
population as categorical covariates, then writes the pooled p-value table,
the Bonferroni hits, per-chromosome annotation queries and Manhattan/Q-Q
plots.

Input files:
- example_expression.csv   ID column + one column per gene
- example_genotypes.csv    ID column + one column per marker (0/1/2)
- example_markers.csv      SNP, CHROM, POS
- example_covariates.csv   ID, sex, population
"""

from eqtlscan.pipelines.eqtl import EQTLPipeline


def main():
    print("=" * 70)
    print("EXAMPLE 01: Basic eQTL Scan")
    print("=" * 70)

    pipeline = EQTLPipeline(output_dir='./example01_results')

    print("\n1. Loading data...")
    pipeline.load_data(
        phenotype_file='example_expression.csv',
        genotype_file='example_genotypes.csv',
        map_file='example_markers.csv',
        covariate_file='example_covariates.csv',
        covariate_columns=['sex', 'population'],
    )

    print("\n2. Aligning samples...")
    pipeline.align_samples()

    print("\n3. Genotype QC report...")
    pipeline.run_qc(maf_threshold=0.05, missing_threshold=0.1)

    print("\n4. Scanning all genes...")
    results = pipeline.run_analysis(cpu=4, alpha=0.05)

    print("\n" + "=" * 70)
    print("Analysis Complete!")
    print("=" * 70)
    print(f"\nBonferroni threshold (-log10 p): {results['threshold']:.2f}")
    print(f"Significant (gene, marker) pairs: {len(results['hits'])}")
    print("\nResults saved to: ./example01_results/")


if __name__ == '__main__':
    main()
