"""
Statistical functions for rank-based classification and enrichment.
"""

from typing import Dict, List, Sequence, Tuple

import numba as nb
import numpy as np
from scipy import stats
from statsmodels.stats.multitest import multipletests

from rankenrich.exceptions import InvalidInputError


#  Core numba-optimised functions for inner loops

@nb.njit
def _positive_rank_sum(ranks, is_positive) -> float:
    """
    Sum the ranks of positive-labelled entries.

    Args:
        ranks: Array of ranks
        is_positive: Boolean array, True for positive entries

    Returns:
        Sum of ranks over positive entries
    """
    total = 0.0
    for i in range(ranks.shape[0]):
        if is_positive[i]:
            total += ranks[i]
    return total

@nb.njit
def _masked_mean(values, mask, keep: bool) -> float:
    """Mean of ``values`` where ``mask == keep``; NaN if nothing is selected."""
    total = 0.0
    count = 0
    for i in range(values.shape[0]):
        if mask[i] == keep:
            total += values[i]
            count += 1
    if count == 0:
        return np.nan
    return total / count


def _as_finite_array(values, what: str = "values") -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise InvalidInputError(f"Expected a one-dimensional vector of {what}")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"All {what} must be finite")
    return arr

def _as_label_mask(is_positive, n_values: int) -> np.ndarray:
    mask = np.asarray(is_positive, dtype=np.bool_)
    if mask.ndim != 1 or mask.shape[0] != n_values:
        raise InvalidInputError(
            f"Expected {n_values} group labels, got {mask.shape[0] if mask.ndim == 1 else mask.shape}"
        )
    return mask


def rank_values(values: Sequence[float]) -> np.ndarray:
    """
    Rank a numeric vector, giving tied values the average of their positions.

    Args:
        values: Finite numeric values

    Returns:
        Float array of ranks in [1, N]
    """
    arr = _as_finite_array(values)
    return stats.rankdata(arr, method="average").astype(np.float64)

def auroc_from_ranks(ranks, is_positive) -> float:
    """
    Compute the AUROC of positive vs negative entries from their ranks.

    Uses the Mann-Whitney identity

        AUROC = R+ / (p*n) - (p+1) / (2n) = (R+ - p(p+1)/2) / (p*n)

    where R+ is the sum of positive ranks. The second form is evaluated so that
    perfectly separated groups give exactly 0.0 or 1.0.

    Args:
        ranks: Ranks of all N entries
        is_positive: Boolean labels, True for the positive (disease) group

    Returns:
        AUROC in [0, 1]
    """
    ranks = _as_finite_array(ranks, "ranks")
    mask = _as_label_mask(is_positive, ranks.shape[0])

    p = int(mask.sum())
    n = int(mask.shape[0] - p)
    if p == 0 or n == 0:
        raise InvalidInputError(
            f"AUROC is undefined without both groups (positives={p}, negatives={n})"
        )

    rank_sum = _positive_rank_sum(ranks, mask)
    return float((rank_sum - p * (p + 1) / 2.0) / (p * n))

def calculate_auroc(values: Sequence[float], is_positive: Sequence[bool]) -> float:
    """
    Compute the AUROC of a single feature for separating two groups.

    Args:
        values: Feature values for every sample
        is_positive: Boolean labels, True for the positive (disease) group

    Returns:
        Probability that a random positive sample ranks above a random negative one
    """
    arr = _as_finite_array(values)
    mask = _as_label_mask(is_positive, arr.shape[0])
    return auroc_from_ranks(rank_values(arr), mask)

def partition_mean_ranks(ranks, in_set) -> Tuple[float, float]:
    """Mean rank inside and outside a boolean partition."""
    ranks = np.asarray(ranks, dtype=np.float64)
    mask = np.asarray(in_set, dtype=np.bool_)
    return float(_masked_mean(ranks, mask, True)), float(_masked_mean(ranks, mask, False))


def empirical_bounds(null_scores: Sequence[float], tail_fraction: float = 0.025) -> Tuple[float, float]:
    """
    Two-sided critical bounds of an empirical null distribution.

    The upper bound is the smallest value of the top ``tail_fraction`` of draws
    and the lower bound the largest value of the bottom ``tail_fraction``, each
    rounded to 2 decimal places.

    Args:
        null_scores: Null statistic values
        tail_fraction: Fraction of draws in each tail

    Returns:
        Tuple of (lower_bound, upper_bound)
    """
    arr = _as_finite_array(null_scores, "null scores")
    if arr.shape[0] == 0:
        raise InvalidInputError("Null scores array cannot be empty")
    if not 0 < tail_fraction < 0.5:
        raise InvalidInputError(f"tail_fraction must be in (0, 0.5), got {tail_fraction}")

    sorted_scores = np.sort(arr)
    # Number of draws in each tail, at least one
    k = max(1, int(np.floor(tail_fraction * sorted_scores.shape[0] + 1e-9)))
    lower = sorted_scores[k - 1]
    upper = sorted_scores[-k]
    return float(np.round(lower, 2)), float(np.round(upper, 2))


def benjamini_hochberg(p_values: Sequence[float]) -> np.ndarray:
    """
    Benjamini-Hochberg step-up adjustment.

    Args:
        p_values: Raw p-values in hypothesis order

    Returns:
        Adjusted p-values in the same order, clipped to [0, 1]
    """
    arr = np.asarray(p_values, dtype=np.float64)
    if arr.size == 0:
        return np.array([], dtype=np.float64)

    arr = _as_finite_array(arr, "p-values")
    if np.any(arr < 0) or np.any(arr > 1):
        raise InvalidInputError("P-values must lie in [0, 1]")

    _, pvals_corrected, _, _ = multipletests(arr, method="fdr_bh")
    return np.clip(pvals_corrected, 0.0, 1.0)

def perform_fdr_analysis(p_values, alpha: float = 0.05) -> Dict[str, list]:
    """
    Perform FDR analysis on p-values.

    Args:
        p_values: Array of p-values
        alpha: Significance level

    Returns:
        Dictionary with FDR results
    """
    pvals_corrected = benjamini_hochberg(p_values)

    return {
        'reject': [bool(p <= alpha) for p in pvals_corrected],
        'pvals_corrected': pvals_corrected.tolist()
    }


def welch_ttest(group_a: Sequence[float], group_b: Sequence[float]) -> Dict[str, float]:
    """
    Welch two-sample t-test (unequal variances).

    Args:
        group_a: Values of the first group
        group_b: Values of the second group

    Returns:
        Dictionary with statistic, p_value and group sizes
    """
    a = _as_finite_array(group_a)
    b = _as_finite_array(group_b)
    if a.shape[0] < 2 or b.shape[0] < 2:
        raise InvalidInputError(
            f"Each group needs at least 2 values for a t-test (got {a.shape[0]} and {b.shape[0]})"
        )

    # Constant, identical groups have no variance to test against
    if abs(a.mean() - b.mean()) < 1e-10 and a.std() < 1e-10 and b.std() < 1e-10:
        statistic, p_value = 0.0, 1.0
    else:
        statistic, p_value = stats.ttest_ind(a, b, equal_var=False)

    return {
        'statistic': float(statistic),
        'p_value': float(p_value),
        'n1': int(a.shape[0]),
        'n2': int(b.shape[0]),
    }

def significance_label(p_value: float) -> str:
    """Star notation for an (adjusted) p-value."""
    cutoffs: List[Tuple[float, str]] = [
        (1e-4, "****"),
        (1e-3, "***"),
        (1e-2, "**"),
        (5e-2, "*"),
    ]
    for cutoff, label in cutoffs:
        if p_value <= cutoff:
            return label
    return "ns"
