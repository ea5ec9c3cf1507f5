"""Tests for the command line interface."""

import pytest
import json
import logging

from rankenrich.cli import main, parse_args, update_config

@pytest.fixture(autouse=True)
def restore_root_handlers():
    """Remove handlers added by setup_logging after each test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    root_logger.setLevel(level)

def test_parse_args_defaults():
    """Only the configuration file is required."""
    args = parse_args(['config.toml'])
    assert args.config_file == 'config.toml'
    assert args.counts is None
    assert args.no_plots is False
    assert args.num_threads is None
    assert args.verbose is False

def test_update_config():
    """Command line values override the configuration file."""
    args = parse_args([
        'config.toml',
        '--counts', 'other_counts.csv',
        '--gene-sets', 'other.gmt',
        '--output-dir', 'elsewhere',
        '--no-plots',
        '--num-threads', '3',
        '--permutations', '100',
        '--min-set-size', '0',
        '--max-set-size', '50',
    ])
    config = update_config({'input': {'counts_file': 'counts.csv'}}, args)

    assert config['input'] == {'counts_file': 'other_counts.csv', 'gene_sets_file': 'other.gmt'}
    assert config['output'] == {'directory': 'elsewhere', 'plots': False}
    assert config['analysis'] == {'num_threads': 3}
    assert config['classification'] == {'permutations': 100}
    assert config['enrichment'] == {'min_size': 0, 'max_size': 50}

def test_update_config_without_overrides():
    """Without flags the configuration is unchanged apart from empty sections."""
    config = update_config({'analysis': {'num_threads': 8}}, parse_args(['config.toml']))
    assert config['analysis'] == {'num_threads': 8}
    assert config['input'] == {}

def test_main_runs_pipeline(study_config, tmp_path):
    """A full run from the command line."""
    output_dir = tmp_path / 'cli_results'
    main([str(study_config), '--output-dir', str(output_dir), '--no-plots', '--permutations', '100'])

    with open(output_dir / 'data' / 'results.json') as f:
        summary = json.load(f)
    assert summary['null_distribution']['iterations'] == 100
    assert (output_dir / 'logs' / 'pipeline.log').exists()
    assert not (output_dir / 'plots').exists()
    assert not (study_config.parent / 'temp_config.toml').exists()

def test_main_missing_config(tmp_path):
    """An unreadable configuration exits with status 1."""
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / 'missing.toml')])
    assert excinfo.value.code == 1

def test_main_pipeline_failure(study_config, tmp_path):
    """Pipeline errors exit with status 1 and remove the temporary configuration."""
    with pytest.raises(SystemExit) as excinfo:
        main([str(study_config), '--counts', str(tmp_path / 'missing.csv'),
              '--output-dir', str(tmp_path / 'failed')])
    assert excinfo.value.code == 1
    assert not (study_config.parent / 'temp_config.toml').exists()

def test_update_config_zero_overrides():
    """Zero on the command line still overrides the configuration file."""
    args = parse_args(['config.toml', '--permutations', '0', '--num-threads', '0', '--max-set-size', '0'])
    config = update_config({
        'analysis': {'num_threads': 8},
        'classification': {'permutations': 1000},
        'enrichment': {'max_size': 500},
    }, args)

    assert config['analysis'] == {'num_threads': 0}
    assert config['classification'] == {'permutations': 0}
    assert config['enrichment'] == {'max_size': 0}

def test_main_rejects_zero_permutations(study_config, tmp_path):
    """An explicit zero permutation count is an error, not the file's value."""
    with pytest.raises(SystemExit) as excinfo:
        main([str(study_config), '--permutations', '0', '--no-plots',
              '--output-dir', str(tmp_path / 'zero')])
    assert excinfo.value.code == 1
    assert not (tmp_path / 'zero' / 'data' / 'results.json').exists()
