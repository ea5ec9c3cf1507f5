"""
Plots of the classification, differential expression and enrichment results.
"""

from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
import seaborn as sns
from sklearn.decomposition import PCA

from rankenrich.data import sample_columns
from rankenrich.models import Group, NullDistribution

GROUP_COLOURS = {Group.CONTROL.value: 'steelblue', Group.DISEASE.value: 'salmon'}


def prettify_geneset_name(name: str) -> str:
    """Drop a leading ``GO_`` and replace underscores with spaces."""
    if name.startswith('GO_'):
        name = name[3:]
    return name.replace('_', ' ')

def _save(fig, output_path: Optional[Union[str, Path]]):
    if output_path is not None:
        fig.savefig(output_path, dpi=300, bbox_inches='tight')
        plt.close(fig)
    return fig


def plot_auroc(
    classification: pl.DataFrame,
    null: NullDistribution,
    output_path: Optional[Union[str, Path]] = None
):
    """
    Bar chart of biomarker AUROCs with the null critical bounds.

    Args:
        classification: DataFrame with gene and auroc columns
        null: Permutation null distribution
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    if classification.height == 0:
        raise ValueError("Input data cannot be empty")

    genes = classification['gene'].to_list()
    aurocs = classification['auroc'].to_list()

    fig, ax = plt.subplots(figsize=(6, 4))
    sns.barplot(x=genes, y=aurocs, hue=genes, palette='Set2', legend=False, ax=ax)
    ax.axhline(0.5, linestyle=':', color='black')
    for bound, label in [(null.upper_bound, 'top'), (null.lower_bound, 'bottom')]:
        ax.axhline(bound, linestyle='--', color='steelblue')
        ax.text(len(genes) - 0.5, bound, f'{label} {null.tail_fraction:.1%}',
                color='steelblue', ha='right', va='bottom', fontsize=9)

    ax.set_yticks(sorted(set(np.linspace(0, 1, 5).tolist() + [null.lower_bound, null.upper_bound])))
    ax.set_ylim(0, 1.05)
    ax.set_ylabel('AUROC')
    ax.set_title('Classification of disease samples')
    ax.tick_params(axis='x', rotation=90)
    sns.despine(ax=ax)
    return _save(fig, output_path)

def plot_biomarker_boxplots(
    zscores: pl.DataFrame,
    ttests: Optional[pl.DataFrame] = None,
    ncols: int = 4,
    output_path: Optional[Union[str, Path]] = None
):
    """
    Box plots of biomarker z-scores by group, one panel per gene.

    Args:
        zscores: Output of ``zscore_biomarkers``
        ttests: Output of ``biomarker_ttests``; adds the adjusted p-value to each title
        ncols: Maximum number of panels per row
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    if zscores.height == 0:
        raise ValueError("Input data cannot be empty")

    genes = zscores['gene'].unique(maintain_order=True).to_list()
    padj = {}
    if ttests is not None:
        padj = {gene: (p, signif) for gene, p, signif
                in ttests.select(['gene', 'p_adj', 'p_adj_signif']).iter_rows()}

    ncols = max(1, min(ncols, len(genes)))
    nrows = int(np.ceil(len(genes) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(3 * ncols, 3.5 * nrows), squeeze=False)
    order = list(GROUP_COLOURS)

    for ax, gene in zip(axes.flat, genes):
        rows = zscores.filter(pl.col('gene') == gene)
        groups = rows['group'].to_list()
        values = rows['z'].to_numpy()
        sns.boxplot(x=groups, y=values, order=order, hue=groups, hue_order=order,
                    palette=GROUP_COLOURS, legend=False, showfliers=False, ax=ax)
        sns.stripplot(x=groups, y=values, order=order, color='black', size=3, jitter=0.15, ax=ax)
        title = gene
        if gene in padj:
            title += f'\np.adj = {padj[gene][0]:.2g} {padj[gene][1]}'
        ax.set_title(title, fontsize=10)
        ax.set_xlabel('')
        ax.set_ylabel('Z-score')
        sns.despine(ax=ax)

    for ax in axes.flat[len(genes):]:
        ax.set_visible(False)
    fig.tight_layout()
    return _save(fig, output_path)

def plot_biomarker_heatmap(
    zscores: pl.DataFrame,
    output_path: Optional[Union[str, Path]] = None
):
    """
    Clustered heatmap of biomarker z-scores (genes by samples).

    Columns are annotated with the sample group. Genes are clustered only when
    there is more than one.

    Args:
        zscores: Output of ``zscore_biomarkers``
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    if zscores.height == 0:
        raise ValueError("Input data cannot be empty")

    genes = zscores['gene'].unique(maintain_order=True).to_list()
    samples = zscores['sample'].unique(maintain_order=True).to_list()
    sample_groups = dict(zscores.select(['sample', 'group']).unique().iter_rows())

    gene_idx = {gene: i for i, gene in enumerate(genes)}
    sample_idx = {sample: j for j, sample in enumerate(samples)}
    matrix = np.zeros((len(genes), len(samples)))
    for gene, sample, z in zscores.select(['gene', 'sample', 'z']).iter_rows():
        # Constant genes have no z-score
        matrix[gene_idx[gene], sample_idx[sample]] = 0.0 if z is None or np.isnan(z) else z

    grid = sns.clustermap(
        matrix,
        row_cluster=len(genes) > 1,
        col_cluster=len(samples) > 1,
        col_colors=[GROUP_COLOURS[sample_groups[s]] for s in samples],
        cmap='RdBu_r',
        center=0,
        xticklabels=samples,
        yticklabels=genes,
        cbar_kws={'label': 'Z-score'},
        figsize=(max(6, 0.4 * len(samples) + 3), max(4, 0.4 * len(genes) + 3)),
    )
    grid.ax_heatmap.set_xlabel('Sample')
    grid.ax_heatmap.set_ylabel('')
    grid.figure.suptitle('Biomarker z-scores', y=1.02)
    return _save(grid.figure, output_path)

def plot_volcano(
    de_calls: pl.DataFrame,
    biomarkers: Sequence[str] = (),
    lfc_threshold: float = 1.0,
    padj_threshold: float = 0.05,
    output_path: Optional[Union[str, Path]] = None
):
    """
    Volcano plot of log2 fold change against -log2 adjusted p-value.

    Args:
        de_calls: Output of ``call_differential_genes``
        biomarkers: Genes to highlight and label
        lfc_threshold: Fold change threshold drawn as vertical lines
        padj_threshold: Adjusted p-value threshold drawn as a horizontal line
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    # padj of exactly 0 would plot at infinity
    frame = de_calls.with_columns(
        (-pl.col('padj').clip(lower_bound=np.finfo(np.float64).tiny).log(base=2)).alias('neg_log2_padj')
    )
    is_biomarker = pl.col('gene').is_in(list(biomarkers))

    fig, ax = plt.subplots(figsize=(10, 6))
    layers = [
        (frame.filter((pl.col('de_status') == 'not_de') & ~is_biomarker), 'grey', 'Not DE'),
        (frame.filter((pl.col('de_status') == 'not_de') & is_biomarker), 'steelblue', 'Putative biomarker'),
        (frame.filter(pl.col('de_status') != 'not_de'), 'salmon', 'Differentially expressed'),
    ]
    for subset, colour, label in layers:
        ax.scatter(subset['log2FoldChange'].to_numpy(), subset['neg_log2_padj'].to_numpy(),
                   s=12, color=colour, label=label, alpha=0.8)

    labelled = frame.filter((pl.col('de_status') != 'not_de') | is_biomarker)
    for gene, x, y in labelled.select(['gene', 'log2FoldChange', 'neg_log2_padj']).iter_rows():
        ax.annotate(gene, (x, y), fontsize=8, xytext=(3, 3), textcoords='offset points')

    ax.axvline(-lfc_threshold, color='blue', linestyle=':')
    ax.axvline(lfc_threshold, color='blue', linestyle=':')
    ax.axhline(-np.log2(padj_threshold), color='red', linestyle=':')
    ax.set_xlabel('Log2 (F.C.)')
    ax.set_ylabel('-Log2 (adj. P)')
    ax.set_title('Differential expression - disease vs. control')
    ax.legend(title='Legend', frameon=False)
    sns.despine(ax=ax)
    return _save(fig, output_path)

def plot_enrichment(
    enrichment: pl.DataFrame,
    direction: str,
    padj_cutoff: float = 0.1,
    top_n: int = 25,
    output_path: Optional[Union[str, Path]] = None
):
    """
    Dot plot of the most enriched gene sets in one direction.

    Args:
        enrichment: Output of ``enrichment_to_frame``
        direction: 'up' or 'down'
        padj_cutoff: Only sets with adjusted p-value at or below this are shown
        top_n: Maximum number of sets shown
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    top = (
        enrichment
        .filter((pl.col('dir') == direction) & (pl.col('padj') <= padj_cutoff))
        .sort('padj')
        .head(top_n)
        .with_columns((-pl.col('padj').log(base=2)).alias('score'))
        .sort('score')
    )

    label = 'up-regulated' if direction == 'up' else 'down-regulated'
    fig, ax = plt.subplots(figsize=(9, 7))
    if top.height > 0:
        names = [prettify_geneset_name(n) for n in top['geneset'].to_list()]
        scores = top['score'].to_numpy()
        points = ax.scatter(scores, np.arange(len(names)), s=40 + 20 * scores, c=scores, cmap='Blues')
        ax.set_yticks(np.arange(len(names)))
        ax.set_yticklabels(names, fontsize=10)
        fig.colorbar(points, ax=ax, label='-Log2 (adj. P)')
    else:
        ax.text(0.5, 0.5, f'No gene sets with adj. P <= {padj_cutoff}',
                ha='center', va='center', transform=ax.transAxes)
    ax.set_xlabel('-Log2 (adj. P)')
    ax.set_title(f'Enriched gene sets ({label} genes)')
    return _save(fig, output_path)

def plot_pca(
    normalised: pl.DataFrame,
    groups: Mapping[str, Group],
    ntop: int = 500,
    output_path: Optional[Union[str, Path]] = None
):
    """
    PCA of samples on the most variable log2-transformed normalised genes.

    Args:
        normalised: Wide normalised count matrix
        groups: Sample to group mapping
        ntop: Number of most variable genes used
        output_path: Where to save the figure, or None to return it open

    Returns:
        The matplotlib figure
    """
    samples = sample_columns(normalised)
    log_counts = np.log2(normalised.select(samples).to_numpy().astype(np.float64) + 1.0)
    order = np.argsort(log_counts.var(axis=1))[::-1][:min(ntop, log_counts.shape[0])]

    model = PCA(n_components=2)
    coords = model.fit_transform(log_counts[order].T)
    variance = model.explained_variance_ratio_

    fig, ax = plt.subplots(figsize=(6, 4))
    for group, colour in GROUP_COLOURS.items():
        idx = [i for i, s in enumerate(samples) if Group(groups[s]).value == group]
        ax.scatter(coords[idx, 0], coords[idx, 1], s=40, color=colour, label=group)
    ax.set_xlabel(f'PC1: {round(variance[0] * 100)}% variance')
    ax.set_ylabel(f'PC2: {round(variance[1] * 100)}% variance')
    ax.set_title('Principal Component Analysis - bulk RNA-seq samples')
    ax.legend(title='Group', frameon=False)
    return _save(fig, output_path)
