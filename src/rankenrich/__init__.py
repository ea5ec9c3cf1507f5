"""
rankenrich
==========

Rank-based biomarker classification and gene set enrichment for bulk
RNA-seq disease-vs-control studies.
"""

from .pipeline import RnaSeqAnalysisPipeline
from .config import PipelineConfig
from .exceptions import InvalidInputError, MissingDataError
from .models import (
    ClassificationResult,
    EnrichmentResult,
    ExpressionValue,
    GeneSet,
    Group,
    NullDistribution,
    RankedList,
)
from .stats import (
    auroc_from_ranks,
    benjamini_hochberg,
    calculate_auroc,
    empirical_bounds,
    perform_fdr_analysis,
    rank_values,
)
from .permutation import estimate_null_distribution
from .enrichment import run_enrichment, run_directional_enrichment
from .data import filter_gene_sets, load_gmt, rank_genes
from .classification import classify_biomarkers, classify_gene
from .utils import setup_logging, ensure_dir

__version__ = "0.1.0"

__all__ = [
    "RnaSeqAnalysisPipeline",
    "PipelineConfig",
    "InvalidInputError",
    "MissingDataError",
    "ClassificationResult",
    "EnrichmentResult",
    "ExpressionValue",
    "GeneSet",
    "Group",
    "NullDistribution",
    "RankedList",
    "auroc_from_ranks",
    "benjamini_hochberg",
    "calculate_auroc",
    "empirical_bounds",
    "perform_fdr_analysis",
    "rank_values",
    "estimate_null_distribution",
    "run_enrichment",
    "run_directional_enrichment",
    "filter_gene_sets",
    "load_gmt",
    "rank_genes",
    "classify_biomarkers",
    "classify_gene",
    "setup_logging",
    "ensure_dir",
]
