"""
Label-permutation null distribution of the AUROC statistic.

Each iteration ``i`` (1-based) draws a random assignment of the rank positions
1..N to the N samples from ``numpy.random.default_rng(i)``. The seed depends on
the iteration index only, so the null distribution is reproducible whatever
the number of workers or the order in which they finish.
"""

import logging
from functools import partial
from typing import List, Sequence, Tuple

import numpy as np

from rankenrich.exceptions import InvalidInputError
from rankenrich.models import NullDistribution
from rankenrich.stats import auroc_from_ranks
from rankenrich.utils import index_blocks, run_tasks

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 5000
DEFAULT_TAIL_FRACTION = 0.025


def permuted_auroc(iteration: int, is_positive: np.ndarray) -> float:
    """
    AUROC of the positive samples under the permutation seeded by ``iteration``.

    Args:
        iteration: 1-based iteration index, used as the seed
        is_positive: Boolean labels, True for the positive (disease) group

    Returns:
        AUROC under the permuted ranks
    """
    rng = np.random.default_rng(iteration)
    ranks = rng.permutation(is_positive.shape[0]).astype(np.float64) + 1.0
    return auroc_from_ranks(ranks, is_positive)

def _permutation_block(block: Tuple[int, int], is_positive: np.ndarray) -> List[Tuple[int, float]]:
    """
    Run the iterations ``start..stop-1`` of one block.

    Args:
        block: Tuple of (start, stop) iteration indices
        is_positive: Boolean sample labels

    Returns:
        List of (iteration, auroc) pairs
    """
    start, stop = block
    return [(i, permuted_auroc(i, is_positive)) for i in range(start, stop)]

def _iteration_blocks(n_iterations: int, num_workers: int) -> List[Tuple[int, int]]:
    """Split iterations 1..n into contiguous blocks, a few per worker."""
    return index_blocks(1, n_iterations + 1, num_workers)


def estimate_null_distribution(
    is_positive: Sequence[bool],
    n_iterations: int = DEFAULT_ITERATIONS,
    tail_fraction: float = DEFAULT_TAIL_FRACTION,
    num_workers: int = 1,
) -> NullDistribution:
    """
    Build the empirical null of the AUROC by permuting sample ranks.

    Args:
        is_positive: Boolean labels of the samples, True for disease
        n_iterations: Number of permutations (K)
        tail_fraction: Fraction of draws in each tail used for the bounds
        num_workers: Number of worker processes

    Returns:
        NullDistribution with values in iteration order
    """
    if n_iterations < 1:
        raise InvalidInputError(f"Number of permutations must be at least 1, got {n_iterations}")

    mask = np.asarray(is_positive, dtype=np.bool_)
    p = int(mask.sum())
    n = int(mask.shape[0] - p)
    if p == 0 or n == 0:
        raise InvalidInputError(
            f"Permutation null needs both groups (positives={p}, negatives={n})"
        )

    blocks = _iteration_blocks(n_iterations, num_workers)
    logger.info(
        f"Running {n_iterations} permutations ({p} positive, {n} negative samples) "
        f"in {len(blocks)} blocks with {num_workers} workers"
    )

    block_results = run_tasks(
        partial(_permutation_block, is_positive=mask),
        blocks,
        num_workers=num_workers,
        desc="AUROC permutations",
        unit="block",
    )

    # Merge by iteration index
    values = np.empty(n_iterations, dtype=np.float64)
    for block_result in block_results:
        for iteration, value in block_result:
            values[iteration - 1] = value

    null = NullDistribution(tuple(values.tolist()), tail_fraction=tail_fraction)
    logger.info(
        f"Null AUROC bounds: bottom {tail_fraction:.1%} <= {null.lower_bound}, "
        f"top {tail_fraction:.1%} >= {null.upper_bound}"
    )
    return null
