"""
Typed records shared by the classification and enrichment engines.

All records are immutable. Results are built from plain values and hold no
references to the inputs they were computed from.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from rankenrich.exceptions import InvalidInputError, MissingDataError
from rankenrich.stats import empirical_bounds, rank_values


class Group(str, Enum):
    """Sample group label."""

    CONTROL = "control"
    DISEASE = "disease"


# Test directions of an enrichment batch; None for a two-sided test
DIRECTIONS = (None, "up", "down")


@dataclass(frozen=True)
class ExpressionValue:
    """A single raw or normalised count for one gene in one sample."""

    gene: str
    sample: str
    group: Group
    value: float

    def __post_init__(self):
        # Accept plain strings for the group and validate the value
        try:
            group = Group(self.group)
        except ValueError:
            raise InvalidInputError(
                f"Unknown group '{self.group}' for gene {self.gene} in sample {self.sample}"
            ) from None
        object.__setattr__(self, "group", group)
        value = float(self.value)
        if not math.isfinite(value):
            raise InvalidInputError(
                f"Non-finite expression value for gene {self.gene} in sample {self.sample}"
            )
        if value < 0:
            raise InvalidInputError(
                f"Negative expression value {value} for gene {self.gene} in sample {self.sample}"
            )
        object.__setattr__(self, "value", value)


@dataclass(frozen=True)
class GeneSet:
    """A named collection of gene identifiers."""

    name: str
    members: frozenset

    def __post_init__(self):
        object.__setattr__(self, "members", frozenset(self.members))

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True, eq=False)
class RankedList:
    """Average-tie ranks over a fixed gene universe.

    Ranks span [1, N] and always sum to N(N+1)/2.
    """

    genes: Tuple[str, ...]
    ranks: np.ndarray
    _index: Dict[str, int] = field(init=False, repr=False)

    def __post_init__(self):
        genes = tuple(self.genes)
        ranks = np.asarray(self.ranks, dtype=np.float64).copy()
        if len(genes) != len(ranks):
            raise InvalidInputError(
                f"Got {len(genes)} genes but {len(ranks)} ranks"
            )
        index = {gene: i for i, gene in enumerate(genes)}
        if len(index) != len(genes):
            duplicates = sorted(g for g, count in Counter(genes).items() if count > 1)
            raise InvalidInputError(
                f"Gene identifiers must be unique, duplicated: {', '.join(duplicates[:10])}"
            )

        n_genes = len(genes)
        if not np.all(np.isfinite(ranks)):
            raise InvalidInputError("Ranks must be finite")
        if n_genes and (ranks.min() < 1 or ranks.max() > n_genes):
            raise InvalidInputError(
                f"Ranks must lie in [1, {n_genes}], got [{ranks.min()}, {ranks.max()}]"
            )
        expected_sum = n_genes * (n_genes + 1) / 2.0
        if abs(ranks.sum() - expected_sum) > 1e-6 * max(1.0, expected_sum):
            raise InvalidInputError(
                f"Ranks of {n_genes} genes must sum to {expected_sum:g}, got {ranks.sum():g}"
            )
        ranks.setflags(write=False)
        object.__setattr__(self, "genes", genes)
        object.__setattr__(self, "ranks", ranks)
        object.__setattr__(self, "_index", index)

    @classmethod
    def from_values(cls, genes: Sequence[str], values: Sequence[float]) -> "RankedList":
        """Rank a numeric vector over genes (ties receive their average rank)."""
        return cls(tuple(genes), rank_values(values))

    def __len__(self) -> int:
        return len(self.genes)

    def __contains__(self, gene: str) -> bool:
        return gene in self._index

    def rank_of(self, gene: str) -> float:
        """Return the rank of a gene in the universe."""
        try:
            return float(self.ranks[self._index[gene]])
        except KeyError:
            raise MissingDataError(f"Gene {gene} is not in the ranked universe") from None

    def membership_mask(self, members: Iterable[str]) -> np.ndarray:
        """Boolean mask over the universe marking genes found in ``members``."""
        mask = np.zeros(len(self.genes), dtype=np.bool_)
        for gene in members:
            idx = self._index.get(gene)
            if idx is not None:
                mask[idx] = True
        return mask

    def to_frame(self) -> pl.DataFrame:
        return pl.DataFrame({"gene": list(self.genes), "rank": self.ranks.tolist()})


@dataclass(frozen=True)
class ClassificationResult:
    """AUROC of one gene separating disease (positive) from control samples."""

    gene: str
    statistic: float
    p: int
    n: int

    def __post_init__(self):
        if not 0.0 <= self.statistic <= 1.0:
            raise InvalidInputError(f"AUROC of {self.gene} must lie in [0, 1], got {self.statistic}")
        if self.p < 1 or self.n < 1:
            raise InvalidInputError(
                f"AUROC of {self.gene} needs both groups (positives={self.p}, negatives={self.n})"
            )


@dataclass(frozen=True)
class EnrichmentResult:
    """Rank-sum enrichment of one gene set in one test direction."""

    geneset: str
    n_in_set: int
    n_out_of_set: int
    mean_rank_in_set: float
    mean_rank_out_of_set: float
    p_value: float
    adjusted_p_value: float = float("nan")
    direction: Optional[str] = None

    def __post_init__(self):
        if self.n_in_set < 2 or self.n_out_of_set < 2:
            raise InvalidInputError(
                f"Gene set '{self.geneset}' needs at least 2 genes in and out of set, "
                f"got {self.n_in_set} and {self.n_out_of_set}"
            )
        if not 0.0 <= self.p_value <= 1.0:
            raise InvalidInputError(f"p-value of '{self.geneset}' must lie in [0, 1], got {self.p_value}")
        # NaN until the batch has been corrected
        if not (math.isnan(self.adjusted_p_value) or 0.0 <= self.adjusted_p_value <= 1.0):
            raise InvalidInputError(
                f"Adjusted p-value of '{self.geneset}' must lie in [0, 1], got {self.adjusted_p_value}"
            )
        if self.direction not in DIRECTIONS:
            raise InvalidInputError(
                f"Direction of '{self.geneset}' must be one of up, down or None, got {self.direction!r}"
            )


@dataclass(frozen=True)
class NullDistribution:
    """Empirical null of the AUROC statistic under label permutation.

    ``values`` are kept in iteration order (iteration 1 first).
    """

    values: Tuple[float, ...]
    tail_fraction: float = 0.025

    def __post_init__(self):
        object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        if not self.values:
            raise InvalidInputError("A null distribution needs at least one value")
        if not 0 < self.tail_fraction < 0.5:
            raise InvalidInputError(
                f"tail_fraction must be in (0, 0.5), got {self.tail_fraction}"
            )

    @property
    def n_iterations(self) -> int:
        return len(self.values)

    @property
    def lower_bound(self) -> float:
        return empirical_bounds(self.values, self.tail_fraction)[0]

    @property
    def upper_bound(self) -> float:
        return empirical_bounds(self.values, self.tail_fraction)[1]

    def is_extreme(self, statistic: float) -> bool:
        """True when ``statistic`` falls outside the two-sided null range."""
        lower, upper = empirical_bounds(self.values, self.tail_fraction)
        return bool(statistic > upper or statistic < lower)
