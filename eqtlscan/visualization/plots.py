"""
Manhattan, Q-Q, expression histogram, PCA and locus-zoom plots for eQTL results

All plots consume the numeric series produced by the analysis modules
(CUM_POS / observed / expected columns, the -log10 threshold); nothing is
recomputed here except the expression PCA.
"""

import warnings
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from ..utils.data_types import PhenotypeMatrix
from ..analysis.hits import ChromosomeHits
from ..analysis.significance import chromosome_ticks

DEFAULT_COLORS = ['#1f77b4', '#ff7f0e']


def expression_pca(phenotypes: PhenotypeMatrix, n_components: int = 2) -> Tuple[pd.DataFrame, np.ndarray]:
    """PCA of centred expression (individuals as observations)

    Genes with missing values are left out.

    Returns:
        (DataFrame with ID and PC1..PCk, explained variance ratio per PC)
    """
    X = phenotypes.to_numpy()
    complete = np.all(np.isfinite(X), axis=0)
    if not complete.any():
        raise ValueError("No gene without missing values available for PCA")
    X = X[:, complete]
    X = X - X.mean(axis=0)
    U, S, _ = np.linalg.svd(X, full_matrices=False)
    k = min(n_components, S.shape[0])
    scores = U[:, :k] * S[:k]
    total = float(np.sum(S ** 2))
    explained = (S[:k] ** 2) / total if total > 0 else np.zeros(k)
    df = pd.DataFrame(scores, columns=[f'PC{i + 1}' for i in range(k)])
    df.insert(0, 'ID', phenotypes.ids)
    return df, explained


def create_expression_histograms(phenotypes: PhenotypeMatrix,
                                 genes: Optional[Sequence[str]] = None,
                                 bins: int = 30,
                                 figsize: Tuple[int, int] = (10, 6)) -> plt.Figure:
    """Histograms of expression values, one panel per gene"""
    genes = list(genes) if genes is not None else phenotypes.genes
    n_cols = min(3, max(1, len(genes)))
    n_rows = int(np.ceil(len(genes) / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    for ax, gene in zip(axes.flat, genes):
        values = phenotypes.values(gene)
        sns.histplot(values[np.isfinite(values)], bins=bins, ax=ax, color='skyblue', edgecolor='black')
        ax.set_title(gene)
        ax.set_xlabel('Expression')
    for ax in list(axes.flat)[len(genes):]:
        ax.set_visible(False)
    plt.tight_layout()
    return fig


def create_pca_plot(pcs: pd.DataFrame,
                    explained: Optional[np.ndarray] = None,
                    hue: Optional[pd.Series] = None,
                    title: str = "Expression PCA",
                    figsize: Tuple[int, int] = (6, 5)) -> plt.Figure:
    """Scatter of PC1 vs PC2, optionally coloured by a covariate"""
    if 'PC2' not in pcs.columns:
        raise ValueError("Need at least two principal components to plot")
    fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(x=pcs['PC1'], y=pcs['PC2'],
                    hue=None if hue is None else hue.to_numpy(),
                    ax=ax, s=25, edgecolor='none')
    if explained is not None and len(explained) >= 2:
        ax.set_xlabel(f'PC1 ({explained[0]:.1%})')
        ax.set_ylabel(f'PC2 ({explained[1]:.1%})')
    ax.set_title(title)
    plt.tight_layout()
    return fig


def create_qq_plot(table: pd.DataFrame,
                   gene: str,
                   title: Optional[str] = None,
                   figsize: Tuple[int, int] = (6, 6)) -> plt.Figure:
    """Observed vs expected -log10(p) for one gene"""
    fig, ax = plt.subplots(figsize=figsize)
    sub = table[(table['GENE'] == gene) & np.isfinite(table['expected'])]
    title = title or f"Q-Q Plot: {gene}"

    if sub.empty:
        ax.text(0.5, 0.5, 'No valid p-values for Q-Q plot',
                ha='center', va='center', transform=ax.transAxes)
        ax.set_title(title)
        return fig

    expected = sub['expected'].to_numpy()
    observed = sub['observed'].to_numpy()
    finite_obs = observed[np.isfinite(observed)]
    ax.scatter(expected, observed, alpha=0.6, s=4, edgecolors='none')

    max_val = max(np.max(expected), np.max(finite_obs) if finite_obs.size else 0.0)
    ax.plot([0, max_val], [0, max_val], 'r--', alpha=0.8, label='Null hypothesis')
    ax.set_xlabel(r'Expected $-\log_{10}(P)$')
    ax.set_ylabel(r'Observed $-\log_{10}(P)$')
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    ax.legend()
    plt.tight_layout()
    return fig


def create_manhattan_plot(table: pd.DataFrame,
                          threshold: float,
                          gene: Optional[str] = None,
                          title: Optional[str] = None,
                          colors: Optional[List[str]] = None,
                          point_size: float = 6.0,
                          figsize: Tuple[int, int] = (12, 4)) -> plt.Figure:
    """Manhattan plot on the concatenated genome axis

    Args:
        table: Enriched significance table (CUM_POS, observed, CHROM)
        threshold: Global Bonferroni threshold (-log10 scale)
        gene: Plot one gene; None overlays every gene
    """
    colors = colors or DEFAULT_COLORS
    sub = table if gene is None else table[table['GENE'] == gene]
    sub = sub[np.isfinite(sub['observed'])]
    fig, ax = plt.subplots(figsize=figsize)

    # ticks come from every marker so the axis is identical across genes
    ticks = chromosome_ticks(table.drop_duplicates('SNP'))
    for i, chrom in enumerate(ticks['CHROM']):
        rows = sub[sub['CHROM'].astype(str) == chrom]
        if rows.empty:
            continue
        ax.scatter(rows['CUM_POS'], rows['observed'], c=colors[i % len(colors)],
                   s=point_size, alpha=0.8, edgecolors='none')

    ax.axhline(y=threshold, color='red', linestyle='--', alpha=0.8,
               label=f'Bonferroni ({threshold:.2f})')
    ax.set_xticks(ticks['center'])
    ax.set_xticklabels(ticks['CHROM'].astype(str))
    ax.set_xlabel('Chromosome', fontsize=12)
    ax.set_ylabel(r'$-\log_{10}(P)$', fontsize=12)
    ax.set_title(title or (f"Manhattan Plot: {gene}" if gene else "Manhattan Plot"))
    ax.legend(loc='upper right', fontsize=8)
    plt.tight_layout()
    return fig


def create_locus_zoom_plot(table: pd.DataFrame,
                           group: ChromosomeHits,
                           threshold: float,
                           window: int = 500_000,
                           figsize: Tuple[int, int] = (8, 4)) -> plt.Figure:
    """Region around a chromosome's index marker, for the index marker's gene"""
    top = group.rows.iloc[0]
    center = int(top['POS'])
    sub = table[(table['GENE'] == top['GENE'])
                & (table['CHROM'].astype(str) == group.chrom)
                & (table['POS'] >= center - window)
                & (table['POS'] <= center + window)
                & np.isfinite(table['observed'])]

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(sub['POS'] / 1e6, sub['observed'], s=12, alpha=0.8, edgecolors='none')
    ax.scatter([center / 1e6], [top['observed']], marker='D', s=40, c='purple',
               edgecolors='black', linewidths=0.5, zorder=10, label=group.index_marker)
    ax.axhline(y=threshold, color='red', linestyle='--', alpha=0.8)
    ax.set_xlabel(f'Position on chromosome {group.chrom} (Mb)')
    ax.set_ylabel(r'$-\log_{10}(P)$')
    ax.set_title(f"{top['GENE']}: {group.index_marker}")
    ax.legend(loc='upper right', fontsize=8)
    plt.tight_layout()
    return fig


def EQTL_Report(table: pd.DataFrame,
                threshold: float,
                plot_types: Sequence[str] = ("manhattan", "qq"),
                genes: Optional[Sequence[str]] = None,
                hit_groups: Optional[Dict[str, ChromosomeHits]] = None,
                phenotypes: Optional[PhenotypeMatrix] = None,
                pca_hue: Optional[pd.Series] = None,
                output_prefix: str = "eQTL",
                dpi: int = 150,
                save_plots: bool = True,
                verbose: bool = True) -> Dict:
    """Render the requested plots

    Args:
        table: Enriched significance table
        threshold: Global threshold (-log10 scale)
        plot_types: Any of "manhattan", "qq", "histograms", "pca", "locuszoom"
        genes: Genes to plot (default: all in table)
        hit_groups: Output of group_hits_by_chromosome (for "locuszoom")
        phenotypes: Expression table (for "histograms" and "pca")
        pca_hue: Per-individual labels to colour the PCA scatter
        output_prefix: Prefix for output files
        dpi: Plot resolution
        save_plots: Save figures as PNG and close them

    Returns:
        Dictionary with 'plots' (name -> Figure, when not saved) and
        'files_created'
    """
    report: Dict = {'plots': {}, 'files_created': []}
    genes = list(genes) if genes is not None else list(dict.fromkeys(table['GENE']))

    def _emit(name: str, fig: plt.Figure) -> None:
        if save_plots:
            filename = f"{output_prefix}_{name}.png"
            fig.savefig(filename, dpi=dpi, bbox_inches='tight')
            plt.close(fig)
            report['files_created'].append(filename)
        else:
            report['plots'][name] = fig

    if "manhattan" in plot_types:
        for gene in genes:
            _emit(f"{gene}_manhattan", create_manhattan_plot(table, threshold, gene=gene))
    if "qq" in plot_types:
        for gene in genes:
            _emit(f"{gene}_qq", create_qq_plot(table, gene))
    if "histograms" in plot_types:
        if phenotypes is None:
            warnings.warn("Expression histograms requested without a phenotype table; skipped")
        else:
            _emit("expression_histograms", create_expression_histograms(phenotypes, genes))
    if "pca" in plot_types:
        if phenotypes is None:
            warnings.warn("Expression PCA requested without a phenotype table; skipped")
        else:
            pcs, explained = expression_pca(phenotypes)
            _emit("expression_pca", create_pca_plot(pcs, explained, hue=pca_hue))
    if "locuszoom" in plot_types and hit_groups:
        for chrom, group in hit_groups.items():
            _emit(f"chr{chrom}_{group.index_marker}_locuszoom",
                  create_locus_zoom_plot(table, group, threshold))

    if verbose:
        print(f"Generated {len(report['files_created']) or len(report['plots'])} plots")
    return report
