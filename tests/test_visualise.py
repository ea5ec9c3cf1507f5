import pytest
import numpy as np
import matplotlib.pyplot as plt
import polars as pl

from rankenrich.models import Group, NullDistribution
from rankenrich.visualise import (
    plot_auroc,
    plot_biomarker_boxplots,
    plot_biomarker_heatmap,
    plot_enrichment,
    plot_pca,
    plot_volcano,
    prettify_geneset_name,
)

@pytest.fixture
def classification():
    return pl.DataFrame({'gene': ['G1', 'G2', 'G3'], 'auroc': [0.96, 0.12, 0.5]})

@pytest.fixture
def null():
    return NullDistribution(tuple(np.linspace(0.0, 1.0, 101)))

@pytest.fixture
def enrichment():
    return pl.DataFrame({
        'geneset': ['GO_IMMUNE_RESPONSE', 'GO_CELL_CYCLE', 'KEGG_RIBOSOME', 'GO_IMMUNE_RESPONSE'],
        'n_shared': [12, 15, 20, 12],
        'n_not_shared': [100, 97, 92, 100],
        'avg_rank_shared': [80.0, 70.0, 50.0, 80.0],
        'avg_rank_not_shared': [50.0, 51.0, 56.0, 50.0],
        'pval': [0.0001, 0.001, 0.5, 0.99],
        'padj': [0.0003, 0.0015, 0.5, 0.99],
        'dir': ['up', 'up', 'up', 'down'],
    })

def test_prettify_geneset_name():
    """GO prefixes and underscores are removed."""
    assert prettify_geneset_name('GO_IMMUNE_RESPONSE') == 'IMMUNE RESPONSE'
    assert prettify_geneset_name('KEGG_RIBOSOME') == 'KEGG RIBOSOME'

def test_plot_auroc(classification, null, tmp_path):
    """Bar chart with the null bounds."""
    fig = plot_auroc(classification, null)
    ax = fig.axes[0]
    assert ax.get_ylabel() == 'AUROC'
    assert len(ax.patches) >= 3
    plt.close(fig)

    output = tmp_path / 'auroc.png'
    plot_auroc(classification, null, output_path=output)
    assert output.exists()

def test_plot_auroc_empty(null):
    """Test error handling for empty data."""
    with pytest.raises(ValueError, match="Input data cannot be empty"):
        plot_auroc(pl.DataFrame(schema={"gene": pl.Utf8, "auroc": pl.Float64}), null)

def test_plot_volcano(tmp_path):
    """Volcano plot, including an adjusted p-value of zero."""
    de_calls = pl.DataFrame({
        'gene': ['G1', 'G2', 'G3', 'G4'],
        'log2FoldChange': [2.5, -3.0, 0.1, 0.4],
        'padj': [0.001, 0.0, 0.8, 0.3],
        'de_status': ['up', 'down', 'not_de', 'not_de'],
    })
    output = tmp_path / 'volcano.png'
    fig = plot_volcano(de_calls, biomarkers=['G4'], output_path=output)
    assert output.exists()
    assert fig.axes[0].get_xlabel() == 'Log2 (F.C.)'

def test_plot_enrichment(enrichment, tmp_path):
    """Only significant sets of the requested direction are drawn."""
    fig = plot_enrichment(enrichment, 'up')
    ax = fig.axes[0]
    labels = [t.get_text() for t in ax.get_yticklabels()]
    assert labels == ['CELL CYCLE', 'IMMUNE RESPONSE']
    plt.close(fig)

    # Nothing significant downwards still renders
    output = tmp_path / 'enrich_down.png'
    plot_enrichment(enrichment, 'down', output_path=output)
    assert output.exists()

def test_plot_pca(tmp_path):
    """PCA of samples coloured by group."""
    rng = np.random.default_rng(0)
    samples = ['A1', 'A2', 'A3', 'K1', 'K2', 'K3']
    columns = {'gene': [f'G{i}' for i in range(30)]}
    columns.update({s: rng.uniform(1, 1000, size=30) for s in samples})
    normalised = pl.DataFrame(columns)
    groups = {s: Group.DISEASE if s.startswith('A') else Group.CONTROL for s in samples}

    output = tmp_path / 'pca.png'
    fig = plot_pca(normalised, groups, ntop=20, output_path=output)
    assert output.exists()
    assert fig.axes[0].get_xlabel().startswith('PC1:')

@pytest.fixture
def zscores():
    """Z-scores of two biomarkers over three disease and three control samples."""
    samples = ['A1', 'A2', 'A3', 'K1', 'K2', 'K3']
    groups = ['disease'] * 3 + ['control'] * 3
    return pl.DataFrame({
        'gene': ['G1'] * 6 + ['G2'] * 6,
        'sample': samples * 2,
        'group': groups * 2,
        'z': [1.2, 0.9, 1.1, -1.0, -1.1, -1.1, 0.1, -0.3, 0.2, 0.0, float('nan'), 0.0],
    })

def test_plot_biomarker_boxplots(zscores, tmp_path):
    """One panel per gene titled with its adjusted p-value."""
    ttests = pl.DataFrame({
        'gene': ['G1', 'G2'],
        'p_adj': [0.0012, 0.8],
        'p_adj_signif': ['**', 'ns'],
    })
    fig = plot_biomarker_boxplots(zscores, ttests, ncols=4)
    visible = [ax for ax in fig.axes if ax.get_visible()]
    assert [ax.get_title() for ax in visible] == ['G1\np.adj = 0.0012 **', 'G2\np.adj = 0.8 ns']
    assert [t.get_text() for t in visible[0].get_xticklabels()] == ['control', 'disease']
    plt.close(fig)

    output = tmp_path / 'boxplots.png'
    plot_biomarker_boxplots(zscores, output_path=output)
    assert output.exists()

def test_plot_biomarker_heatmap(zscores, tmp_path):
    """Clustered gene by sample heatmap, a NaN z-score included."""
    output = tmp_path / 'heatmap.png'
    fig = plot_biomarker_heatmap(zscores, output_path=output)
    assert output.exists()
    assert fig.axes

    # A single gene is not clustered
    fig = plot_biomarker_heatmap(zscores.filter(pl.col('gene') == 'G1'))
    assert fig.axes
    plt.close(fig)

def test_biomarker_plots_empty():
    """Test error handling for empty data."""
    empty = pl.DataFrame(schema={'gene': pl.Utf8, 'sample': pl.Utf8, 'group': pl.Utf8, 'z': pl.Float64})
    with pytest.raises(ValueError, match="Input data cannot be empty"):
        plot_biomarker_boxplots(empty)
    with pytest.raises(ValueError, match="Input data cannot be empty"):
        plot_biomarker_heatmap(empty)
