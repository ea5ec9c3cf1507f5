"""
Test cases for the RNA-seq rank analysis pipeline.
"""

import pytest
import json
import polars as pl
import tomli
from tomli_w import dump as tomli_w_dump

from rankenrich.config import PipelineConfig
from rankenrich.exceptions import InvalidInputError
from rankenrich.models import Group, NullDistribution
from rankenrich.pipeline import RnaSeqAnalysisPipeline

def _rewrite(config_file, section, key, value):
    with open(config_file, 'rb') as f:
        config = tomli.load(f)
    config[section][key] = value
    with open(config_file, 'wb') as f:
        tomli_w_dump(config, f)

def test_pipeline_initialization(study_config):
    """Test pipeline initialization with valid config."""
    pipeline = RnaSeqAnalysisPipeline(study_config)

    assert isinstance(pipeline.config, PipelineConfig)
    # The all-zero gene is dropped on loading
    assert pipeline.raw_counts.height == 59
    assert list(pipeline.groups.values()).count(Group.DISEASE) == 5
    assert pipeline.biomarkers == ["GENE1", "GENE2", "GENE3"]
    assert pipeline.de_results.height == 59
    assert set(pipeline.gene_sets) == {
        "GO_HIGH_FOLD_CHANGE", "GO_LOW_FOLD_CHANGE", "MIXED_SET", "TINY_SET"
    }
    assert pipeline.results == {}

def test_missing_input_file(study_config, tmp_path):
    """Test error handling for missing input files."""
    _rewrite(study_config, 'input', 'gene_sets_file', str(tmp_path / 'missing.gmt'))
    with pytest.raises(FileNotFoundError, match="gene_sets_file"):
        RnaSeqAnalysisPipeline(study_config)

def test_unmatched_sample_prefix(study_config):
    """Samples outside both groups stop the pipeline."""
    _rewrite(study_config, 'analysis', 'control_prefix', 'C')
    with pytest.raises(InvalidInputError, match="K1"):
        RnaSeqAnalysisPipeline(study_config)

def test_save_before_run(study_config, tmp_path, caplog):
    """Saving without results only warns."""
    pipeline = RnaSeqAnalysisPipeline(study_config)
    pipeline.save_results(tmp_path / 'early')
    assert not (tmp_path / 'early').exists()
    assert "No results to save" in caplog.text

def test_full_run(study_config, tmp_path):
    """End-to-end run on the synthetic study."""
    pipeline = RnaSeqAnalysisPipeline(study_config)
    results = pipeline.run()

    assert set(results) == {
        'summary_stats', 'biomarker_ttests', 'classification', 'de_calls', 'enrichment'
    }

    # Biomarker summaries: one row per gene and group
    assert results['summary_stats'].height == 6
    assert results['biomarker_ttests']['gene'].to_list() == ["GENE1", "GENE2", "GENE3"]

    # Classification against the permutation null
    classification = results['classification']
    assert classification.columns == ['gene', 'auroc', 'p', 'n', 'outside_null']
    auroc = dict(zip(classification['gene'].to_list(), classification['auroc'].to_list()))
    assert auroc['GENE1'] >= 0.9
    assert auroc['GENE2'] <= 0.1
    assert classification.filter(pl.col('gene') == 'GENE1')['outside_null'].item() is True

    null = pipeline.null_distribution
    assert isinstance(null, NullDistribution)
    assert null.n_iterations == 200
    assert null.lower_bound < 0.5 < null.upper_bound

    # DE calls exclude genes without an adjusted p-value
    assert results['de_calls'].height == 57
    assert set(results['de_calls']['de_status'].unique().to_list()) <= {'up', 'down', 'not_de'}

    # Enrichment: TINY_SET is filtered out, the others are tested in both directions
    enrichment = results['enrichment']
    assert enrichment.height == 6
    assert set(enrichment['geneset'].to_list()) == {
        "GO_HIGH_FOLD_CHANGE", "GO_LOW_FOLD_CHANGE", "MIXED_SET"
    }
    high_up = enrichment.filter(
        (pl.col('geneset') == 'GO_HIGH_FOLD_CHANGE') & (pl.col('dir') == 'up')
    ).row(0, named=True)
    low_down = enrichment.filter(
        (pl.col('geneset') == 'GO_LOW_FOLD_CHANGE') & (pl.col('dir') == 'down')
    ).row(0, named=True)
    assert high_up['padj'] < 0.05
    assert low_down['padj'] < 0.05
    assert high_up['avg_rank_shared'] > high_up['avg_rank_not_shared']

def test_outputs_written(study_config, tmp_path):
    """Tables, summary, configuration and plots are saved."""
    pipeline = RnaSeqAnalysisPipeline(study_config)
    pipeline.run()

    data_dir = tmp_path / 'results' / 'data'
    for name in ['summary_stats', 'biomarker_ttests', 'classification', 'de_calls',
                 'enrichment', 'null_distribution']:
        assert (data_dir / f'{name}.csv').exists()

    null = pl.read_csv(data_dir / 'null_distribution.csv')
    assert null.columns == ['iteration', 'auroc']
    assert null.height == 200

    with open(data_dir / 'results.json') as f:
        summary = json.load(f)
    assert summary['samples'] == {'disease': 5, 'control': 5}
    assert summary['null_distribution']['iterations'] == 200
    assert set(summary['enrichment']) == {'up', 'down'}
    assert summary['enrichment']['up']['tested'] == 3

    saved = PipelineConfig(data_dir / 'pipeline_config.toml')
    assert saved.permutations == 200

    plots_dir = tmp_path / 'results' / 'plots'
    for name in ['biomarker_aurocs', 'biomarker_boxplots', 'biomarker_heatmap', 'dataset_pca',
                 'volcano_plot', 'enrich_up', 'enrich_down']:
        assert (plots_dir / f'{name}.png').exists()

def test_run_without_plots(study_config, tmp_path):
    """No plots directory when plotting is disabled."""
    _rewrite(study_config, 'output', 'plots', False)
    RnaSeqAnalysisPipeline(study_config).run()
    assert (tmp_path / 'results' / 'data' / 'results.json').exists()
    assert not (tmp_path / 'results' / 'plots').exists()
