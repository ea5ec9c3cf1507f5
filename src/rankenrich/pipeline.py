"""Main pipeline for rank-based biomarker classification and gene set enrichment."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

import polars as pl

from rankenrich.classification import (
    biomarker_ttests,
    classification_to_frame,
    classify_biomarkers,
    summarise_biomarkers,
    zscore_biomarkers,
)
from rankenrich.config import PipelineConfig
from rankenrich.data import (
    assign_groups,
    call_differential_genes,
    check_genes_present,
    clean_de_results,
    drop_zero_count_genes,
    estimate_size_factors,
    filter_gene_sets,
    load_biomarkers,
    load_count_matrix,
    load_de_results,
    load_gmt,
    melt_counts,
    normalise_counts,
    rank_genes,
    sample_columns,
)
from rankenrich.enrichment import enrichment_to_frame, run_directional_enrichment
from rankenrich.models import Group
from rankenrich.permutation import estimate_null_distribution
from rankenrich.utils import ensure_dir
from rankenrich.visualise import (
    plot_auroc,
    plot_biomarker_boxplots,
    plot_biomarker_heatmap,
    plot_enrichment,
    plot_pca,
    plot_volcano,
)


class RnaSeqAnalysisPipeline:
    """Main class for running the disease-vs-control rank analyses."""

    def __init__(self, config_path: str):
        """Initialise the pipeline with a configuration file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config = PipelineConfig(config_path)
        self.logger = logging.getLogger(__name__)
        self.results: Dict[str, Any] = {}
        self._load_input_data()

    def _load_input_data(self):
        """Load and validate input data files."""
        self.logger.debug("Starting to load input data files")

        # Check if required input files exist
        for file_key, file_path in self.config.input_files.items():
            if isinstance(file_path, (str, bytes, os.PathLike)) and not Path(file_path).is_file():
                error_msg = f"Input file not found: {file_path} (specified as {file_key})"
                self.logger.error(error_msg)
                raise FileNotFoundError(error_msg)

        self.raw_counts = drop_zero_count_genes(load_count_matrix(self.config.input_files['counts_file']))
        self.groups = assign_groups(
            sample_columns(self.raw_counts),
            disease_prefix=self.config.disease_prefix,
            control_prefix=self.config.control_prefix
        )
        self.biomarkers = load_biomarkers(self.config.input_files['biomarkers_file'])
        self.de_results = load_de_results(self.config.input_files['de_results_file'])
        self.gene_sets = load_gmt(self.config.input_files['gene_sets_file'])

        n_disease = sum(group is Group.DISEASE for group in self.groups.values())
        self.logger.info(f"Loaded {self.raw_counts.height} expressed genes")
        self.logger.info(f"Samples: {n_disease} disease, {len(self.groups) - n_disease} control")
        self.logger.info(f"Loaded {self.de_results.height} genes with DE results")
        self.logger.debug("Finished loading input data files")

    def run(self):
        """Run the full analysis and save the results."""
        self.logger.info("Starting RNA-seq rank analysis pipeline")
        start_time = time.time()

        # Step 1: Normalise counts and build the long expression table
        self.logger.info("Step 1: Normalising counts (median of ratios)")
        self.size_factors = estimate_size_factors(self.raw_counts)
        self.normalised_counts = normalise_counts(self.raw_counts, self.size_factors)
        self.expression = melt_counts(self.raw_counts, self.normalised_counts, self.groups)
        check_genes_present(self.raw_counts['gene'].to_list(), self.biomarkers)

        # Step 2: Biomarker summaries and group comparisons
        self.logger.info(f"Step 2: Summarising {len(self.biomarkers)} biomarkers")
        self.results['summary_stats'] = summarise_biomarkers(self.expression, self.biomarkers)
        self.zscores = zscore_biomarkers(self.expression, self.biomarkers)
        self.results['biomarker_ttests'] = biomarker_ttests(self.zscores)

        # Step 3: AUROC of each biomarker and its permutation null
        self.logger.info("Step 3: Classifying disease samples by biomarker AUROC")
        classification = classify_biomarkers(self.expression, self.biomarkers)
        samples = sample_columns(self.raw_counts)
        self.null_distribution = estimate_null_distribution(
            [self.groups[s] is Group.DISEASE for s in samples],
            n_iterations=self.config.permutations,
            tail_fraction=self.config.tail_fraction,
            num_workers=self.config.num_threads
        )
        self.results['classification'] = classification_to_frame(classification).with_columns(
            pl.Series(
                'outside_null',
                [self.null_distribution.is_extreme(r.statistic) for r in classification],
                dtype=pl.Boolean
            )
        )

        # Step 4: Differential expression calls on the cleaned DE table
        self.logger.info("Step 4: Calling differentially expressed genes")
        de_clean = clean_de_results(self.de_results)
        self.results['de_calls'] = call_differential_genes(
            de_clean,
            lfc_threshold=self.config.lfc_threshold,
            padj_threshold=self.config.padj_threshold
        )

        # Step 5: Rank-sum enrichment, one corrected batch per direction
        self.logger.info("Step 5: Gene set enrichment on log2 fold change ranks")
        ranked = rank_genes(de_clean)
        retained = filter_gene_sets(
            self.gene_sets,
            ranked.genes,
            min_size=self.config.min_set_size,
            max_size=self.config.max_set_size
        )
        enrichment = run_directional_enrichment(ranked, retained, num_workers=self.config.num_threads)
        self.results['enrichment'] = enrichment_to_frame(enrichment['up'] + enrichment['down'])

        self.logger.info("Saving results")
        self.save_results()

        elapsed_time = time.time() - start_time
        self.logger.info(f"Pipeline completed in {elapsed_time:.2f} seconds")
        return self.results

    def save_results(self, output_dir: Optional[str] = None):
        """Save analysis results.

        Args:
            output_dir: Optional output directory path. If not provided,
                        uses the directory from the configuration.
        """
        if not self.results:
            self.logger.warning("No results to save. Run the pipeline first.")
            return

        output_path = Path(output_dir) if output_dir is not None else self.config.get_output_path()
        data_path = ensure_dir(output_path / 'data')

        # 1. Tables
        for name, frame in self.results.items():
            frame_file = data_path / f'{name}.csv'
            frame.write_csv(frame_file)
            self.logger.info(f"Saved {name} to {frame_file}")

        null_file = data_path / 'null_distribution.csv'
        pl.DataFrame({
            'iteration': list(range(1, self.null_distribution.n_iterations + 1)),
            'auroc': list(self.null_distribution.values),
        }).write_csv(null_file)

        # 2. JSON summary
        enrichment = self.results['enrichment']
        summary = {
            'samples': {
                'disease': sum(g is Group.DISEASE for g in self.groups.values()),
                'control': sum(g is Group.CONTROL for g in self.groups.values()),
            },
            'size_factors': self.size_factors,
            'null_distribution': {
                'iterations': self.null_distribution.n_iterations,
                'tail_fraction': self.null_distribution.tail_fraction,
                'lower_bound': self.null_distribution.lower_bound,
                'upper_bound': self.null_distribution.upper_bound,
            },
            'de_calls': {
                status: int(self.results['de_calls'].filter(pl.col('de_status') == status).height)
                for status in ('up', 'down', 'not_de')
            },
            'enrichment': {
                direction: {
                    'tested': int(enrichment.filter(pl.col('dir') == direction).height),
                    'significant': int(enrichment.filter(
                        (pl.col('dir') == direction) & (pl.col('padj') <= 0.05)
                    ).height),
                }
                for direction in ('up', 'down')
            },
        }
        json_file = data_path / 'results.json'
        with open(json_file, 'w') as f:
            json.dump(summary, f, indent=2)
        self.logger.info(f"Saved results summary to {json_file}")

        # 3. Effective configuration
        self.config.save_config(data_path / 'pipeline_config.toml')

        # 4. Plots
        if self.config.make_plots:
            self._save_plots(ensure_dir(output_path / 'plots'))

    def _save_plots(self, plots_path: Path):
        """Render all figures into ``plots_path``."""
        plot_auroc(self.results['classification'], self.null_distribution,
                   output_path=plots_path / 'biomarker_aurocs.png')
        plot_biomarker_boxplots(self.zscores, self.results['biomarker_ttests'],
                                output_path=plots_path / 'biomarker_boxplots.png')
        plot_biomarker_heatmap(self.zscores, output_path=plots_path / 'biomarker_heatmap.png')
        plot_pca(self.normalised_counts, self.groups, output_path=plots_path / 'dataset_pca.png')
        plot_volcano(self.results['de_calls'], self.biomarkers,
                     lfc_threshold=self.config.lfc_threshold,
                     padj_threshold=self.config.padj_threshold,
                     output_path=plots_path / 'volcano_plot.png')
        for direction in ('up', 'down'):
            plot_enrichment(self.results['enrichment'], direction,
                            output_path=plots_path / f'enrich_{direction}.png')
        self.logger.info(f"Saved plots to {plots_path}")
