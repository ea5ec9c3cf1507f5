#!/usr/bin/env python3
"""
Command line interface for the rankenrich pipeline.
"""

import argparse
import logging
import sys
from pathlib import Path
import tomli
from tomli_w import dump
from .pipeline import RnaSeqAnalysisPipeline
from .utils import setup_logging

def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run rank-based biomarker classification and gene set enrichment"
    )

    # Required arguments
    parser.add_argument(
        "config_file",
        type=str,
        help="Path to TOML configuration file"
    )

    # Input file overrides
    input_group = parser.add_argument_group("Input file overrides")
    input_group.add_argument(
        "--counts",
        type=str,
        help="Override count matrix file path"
    )
    input_group.add_argument(
        "--biomarkers",
        type=str,
        help="Override biomarker list file path"
    )
    input_group.add_argument(
        "--de-results",
        type=str,
        help="Override differential expression results file path"
    )
    input_group.add_argument(
        "--gene-sets",
        type=str,
        help="Override GMT gene set file path"
    )

    # Output configuration overrides
    output_group = parser.add_argument_group("Output configuration overrides")
    output_group.add_argument(
        "--output-dir",
        type=str,
        help="Override output directory"
    )
    output_group.add_argument(
        "--no-plots",
        action="store_true",
        help="Do not render plots"
    )

    # Analysis parameter overrides
    analysis_group = parser.add_argument_group("Analysis parameter overrides")
    analysis_group.add_argument(
        "--num-threads",
        type=int,
        help="Override number of worker processes"
    )
    analysis_group.add_argument(
        "--permutations",
        type=int,
        help="Override number of AUROC permutations"
    )
    analysis_group.add_argument(
        "--min-set-size",
        type=int,
        help="Override exclusive minimum gene set size"
    )
    analysis_group.add_argument(
        "--max-set-size",
        type=int,
        help="Override exclusive maximum gene set size"
    )
    analysis_group.add_argument(
        "--verbose",
        action="store_true",
        help="Log debug messages"
    )

    return parser.parse_args(argv)

def update_config(config: dict, args: argparse.Namespace):
    """Update configuration with command line overrides."""
    for section in ('input', 'output', 'analysis', 'classification', 'enrichment'):
        config.setdefault(section, {})

    # Input file overrides
    if args.counts:
        config['input']['counts_file'] = args.counts
    if args.biomarkers:
        config['input']['biomarkers_file'] = args.biomarkers
    if args.de_results:
        config['input']['de_results_file'] = args.de_results
    if args.gene_sets:
        config['input']['gene_sets_file'] = args.gene_sets

    # Output configuration overrides
    if args.output_dir:
        config['output']['directory'] = args.output_dir
    if args.no_plots:
        config['output']['plots'] = False

    # Analysis parameter overrides
    if args.num_threads is not None:
        config['analysis']['num_threads'] = args.num_threads
    if args.permutations is not None:
        config['classification']['permutations'] = args.permutations
    if args.min_set_size is not None:
        config['enrichment']['min_size'] = args.min_set_size
    if args.max_set_size is not None:
        config['enrichment']['max_size'] = args.max_set_size

    return config

def main(argv=None):
    """Main entry point for the CLI."""
    args = parse_args(argv)

    # Load and validate config file
    try:
        with open(args.config_file, 'rb') as f:
            config = tomli.load(f)
    except Exception as e:
        print(f"Error loading configuration file: {str(e)}")
        sys.exit(1)

    # Update config with command line overrides
    config = update_config(config, args)

    # Set up logging first, before any pipeline operations
    output_dir = Path(config['output'].get('directory', 'results'))
    setup_logging(output_dir / 'logs', level=logging.DEBUG if args.verbose else logging.INFO)

    logging.info("Starting rankenrich pipeline")
    logging.info(f"Using configuration file: {args.config_file}")

    # Save updated config to a temporary file
    temp_config_path = Path(args.config_file).parent / "temp_config.toml"
    with open(temp_config_path, 'wb') as f:
        dump(config, f)

    try:
        pipeline = RnaSeqAnalysisPipeline(str(temp_config_path))
        pipeline.run()
        logging.info("Pipeline execution completed successfully")
    except Exception as e:
        logging.error(f"Pipeline execution failed: {str(e)}")
        sys.exit(1)
    finally:
        # Clean up temporary config file
        temp_config_path.unlink()

if __name__ == "__main__":
    main()
