"""Command line driver for the eQTL pipeline"""

from typing import List, Optional

from .utils import parse_args, normalize_outputs, split_list
from ..pipelines.eqtl import EQTLPipeline


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)

    pipeline = EQTLPipeline(output_dir=args.outputdir)

    # 1. Load Data
    genes = split_list(args.genes)
    pipeline.load_data(
        phenotype_file=args.phenotype,
        genotype_file=args.genotype,
        map_file=args.map,
        covariate_file=args.covariates,
        gene_file=args.genes_file,
        genes=genes,
        covariate_columns=split_list(args.covariate_columns),
        phenotype_id_column=args.phenotype_id_column,
        covariate_id_column=args.covariate_id_column,
        phenotype_transpose=args.phenotype_transpose,
        genotype_transpose=args.genotype_transpose,
    )

    # 2. Align
    pipeline.align_samples(intersect=args.intersect_samples)

    # 3. QC report (thresholds are reported, never applied)
    if not args.skip_qc:
        pipeline.run_qc(maf_threshold=args.min_maf, missing_threshold=args.max_missing)

    # 4. Scan and report
    return pipeline.run_analysis(
        genes=genes,
        cpu=args.cpu,
        batch_size=args.batch_size,
        alpha=args.alpha,
        window=args.window,
        outputs=normalize_outputs(args.outputs),
    )
