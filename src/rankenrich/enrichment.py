"""
Rank-sum gene set enrichment.

Genes are ranked once (e.g. by log2 fold change). For every gene set the ranks
of its members are compared with the ranks of all other genes using a
Mann-Whitney/Wilcoxon rank-sum test, in the manner of GSEA but with a rank-sum
instead of a Kolmogorov-Smirnov statistic. Raw p-values of one batch are
Benjamini-Hochberg adjusted together once every set has been tested.

Worker tasks receive contiguous blocks of gene sets as member index arrays
together with the rank vector, never the gene identifiers of the universe.
"""

import logging
from dataclasses import replace
from functools import partial
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import polars as pl
from scipy import stats

from rankenrich.exceptions import InvalidInputError
from rankenrich.models import DIRECTIONS, EnrichmentResult, GeneSet, RankedList
from rankenrich.stats import benjamini_hochberg, partition_mean_ranks
from rankenrich.utils import index_blocks, run_tasks

logger = logging.getLogger(__name__)

ALTERNATIVES = ('greater', 'less', 'two-sided')

# "up": members cluster towards high ranks, "down": towards low ranks
DIRECTION_ALTERNATIVES = {
    'up': 'greater',
    'down': 'less',
}

# Exact null distribution below this many values in both partitions, as wilcox.test
EXACT_SIZE_LIMIT = 50


def rank_sum_method(n_in_set: int, n_out_of_set: int, has_ties: bool) -> str:
    """Exact test for small untied samples, normal approximation otherwise."""
    if not has_ties and n_in_set < EXACT_SIZE_LIMIT and n_out_of_set < EXACT_SIZE_LIMIT:
        return 'exact'
    return 'asymptotic'

def _test_members(
    name: str,
    member_idx: np.ndarray,
    ranks: np.ndarray,
    has_ties: bool,
    alternative: str,
    direction: Optional[str]
) -> EnrichmentResult:
    """
    Rank-sum test of one gene set against the rest of the universe.

    Args:
        name: Gene set name
        member_idx: Positions of the set members in the rank vector
        ranks: Ranks of the whole universe
        has_ties: Whether any two genes of the universe share a rank
        alternative: Alternative hypothesis for the in-set ranks
        direction: Direction tag stored on the result

    Returns:
        EnrichmentResult without an adjusted p-value
    """
    mask = np.zeros(ranks.shape[0], dtype=np.bool_)
    mask[member_idx] = True
    in_set = ranks[mask]
    out_of_set = ranks[~mask]

    if in_set.shape[0] < 2 or out_of_set.shape[0] < 2:
        raise InvalidInputError(
            f"Gene set '{name}' (direction {direction or alternative}) has "
            f"{in_set.shape[0]} genes in set and {out_of_set.shape[0]} out of set; "
            f"the rank-sum test needs at least 2 in each"
        )

    method = rank_sum_method(in_set.shape[0], out_of_set.shape[0], has_ties)
    test = stats.mannwhitneyu(in_set, out_of_set, alternative=alternative, method=method)
    mean_in, mean_out = partition_mean_ranks(ranks, mask)

    return EnrichmentResult(
        geneset=name,
        n_in_set=int(in_set.shape[0]),
        n_out_of_set=int(out_of_set.shape[0]),
        mean_rank_in_set=mean_in,
        mean_rank_out_of_set=mean_out,
        p_value=float(test.pvalue),
        direction=direction,
    )

def _test_block(
    block: Sequence[Tuple[str, np.ndarray]],
    ranks: np.ndarray,
    has_ties: bool,
    alternative: str,
    direction: Optional[str]
) -> List[EnrichmentResult]:
    """Test a contiguous block of (name, member positions) pairs in order."""
    return [
        _test_members(name, member_idx, ranks, has_ties, alternative, direction)
        for name, member_idx in block
    ]

def _as_gene_sets(gene_sets: Union[Mapping[str, Iterable[str]], Iterable[GeneSet]]) -> List[GeneSet]:
    if isinstance(gene_sets, Mapping):
        return [
            members if isinstance(members, GeneSet) else GeneSet(name, members)
            for name, members in gene_sets.items()
        ]
    return list(gene_sets)


def run_enrichment(
    ranked: RankedList,
    gene_sets: Union[Mapping[str, Iterable[str]], Iterable[GeneSet]],
    alternative: str = 'two-sided',
    direction: Optional[str] = None,
    num_workers: int = 1
) -> List[EnrichmentResult]:
    """
    Test every gene set and BH-adjust the batch.

    Gene sets are expected to have passed ``filter_gene_sets``. The exact
    rank-sum distribution is used when the universe has no tied ranks and
    both partitions hold fewer than 50 genes; otherwise the normal
    approximation with continuity correction.

    Args:
        ranked: Ranked gene universe
        gene_sets: Gene sets to test
        alternative: 'greater', 'less' or 'two-sided'
        direction: Tag stored on each result ('up', 'down' or None)
        num_workers: Number of worker processes

    Returns:
        List of EnrichmentResult in gene set order
    """
    if alternative not in ALTERNATIVES:
        raise InvalidInputError(
            f"Unknown alternative '{alternative}', expected one of {', '.join(ALTERNATIVES)}"
        )
    if direction not in DIRECTIONS:
        raise InvalidInputError(f"Unknown direction {direction!r}, expected 'up', 'down' or None")

    sets = _as_gene_sets(gene_sets)
    label = direction or alternative
    logger.info(f"Testing {len(sets)} gene sets ({label}) against {len(ranked)} ranked genes")

    members = [
        (gene_set.name, np.flatnonzero(ranked.membership_mask(gene_set.members)))
        for gene_set in sets
    ]
    ranks = np.asarray(ranked.ranks)
    has_ties = np.unique(ranks).shape[0] < ranks.shape[0]
    blocks = [members[start:stop] for start, stop in index_blocks(0, len(members), num_workers)]

    block_results = run_tasks(
        partial(_test_block, ranks=ranks, has_ties=has_ties, alternative=alternative, direction=direction),
        blocks,
        num_workers=num_workers,
        desc=f"Gene sets ({label})",
        unit="block",
    )
    raw_results = [result for block in block_results for result in block]

    # Correction only once the whole batch is in
    adjusted = benjamini_hochberg([r.p_value for r in raw_results])
    results = [
        replace(result, adjusted_p_value=float(padj))
        for result, padj in zip(raw_results, adjusted)
    ]

    n_significant = sum(r.adjusted_p_value <= 0.05 for r in results)
    logger.info(f"{n_significant} of {len(results)} gene sets ({label}) with adjusted p <= 0.05")
    return results

def run_directional_enrichment(
    ranked: RankedList,
    gene_sets: Union[Mapping[str, Iterable[str]], Iterable[GeneSet]],
    num_workers: int = 1
) -> Dict[str, List[EnrichmentResult]]:
    """
    Run the "up" and "down" batches over the same ranking.

    Each batch is corrected on its own; p-values are not pooled across
    directions.

    Args:
        ranked: Ranked gene universe
        gene_sets: Gene sets to test
        num_workers: Number of worker processes

    Returns:
        Dictionary with 'up' and 'down' result lists
    """
    sets = _as_gene_sets(gene_sets)
    return {
        direction: run_enrichment(
            ranked,
            sets,
            alternative=alternative,
            direction=direction,
            num_workers=num_workers
        )
        for direction, alternative in DIRECTION_ALTERNATIVES.items()
    }

def enrichment_to_frame(results: Iterable[EnrichmentResult]) -> pl.DataFrame:
    """Tabulate enrichment results, one row per gene set and direction."""
    schema = {
        'geneset': pl.Utf8,
        'n_shared': pl.Int64,
        'n_not_shared': pl.Int64,
        'avg_rank_shared': pl.Float64,
        'avg_rank_not_shared': pl.Float64,
        'pval': pl.Float64,
        'padj': pl.Float64,
        'dir': pl.Utf8,
    }
    rows = [
        {
            'geneset': r.geneset,
            'n_shared': r.n_in_set,
            'n_not_shared': r.n_out_of_set,
            'avg_rank_shared': r.mean_rank_in_set,
            'avg_rank_not_shared': r.mean_rank_out_of_set,
            'pval': r.p_value,
            'padj': r.adjusted_p_value,
            'dir': r.direction,
        }
        for r in results
    ]
    return pl.DataFrame(rows, schema=schema)
