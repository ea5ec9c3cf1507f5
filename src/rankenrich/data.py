"""
Data loading and processing functions for the rankenrich pipeline.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Set, Union
import logging

import numpy as np
import polars as pl

from rankenrich.exceptions import InvalidInputError, MissingDataError
from rankenrich.models import GeneSet, Group, RankedList

logger = logging.getLogger(__name__)

GENE_COL = 'gene'


def _separator_for(file_path: Path) -> str:
    """Tab for .tsv/.txt/.tab files, comma otherwise."""
    return '\t' if Path(file_path).suffix.lower() in {'.tsv', '.txt', '.tab'} else ','

def sample_columns(counts: pl.DataFrame) -> List[str]:
    """Names of the sample columns of a wide count matrix."""
    return [col for col in counts.columns if col != GENE_COL]

def load_count_matrix(file_path: Union[str, Path]) -> pl.DataFrame:
    """
    Load a gene count matrix.

    The file has one row per gene and one column per sample. When both
    ``GeneID`` and ``GeneSymbol`` columns are present the symbol is used as
    the gene identifier.

    Args:
        file_path: Path to the delimited count matrix

    Returns:
        DataFrame with a ``gene`` column followed by one column per sample
    """
    df = pl.read_csv(file_path, separator=_separator_for(file_path), has_header=True)

    if 'GeneSymbol' in df.columns:
        df = df.drop([col for col in ['GeneID'] if col in df.columns])
        df = df.rename({'GeneSymbol': GENE_COL})
    elif GENE_COL not in df.columns:
        # Assume the first column holds the gene identifiers
        df = df.rename({df.columns[0]: GENE_COL})

    df = df.select([GENE_COL] + sample_columns(df))

    duplicated = df.filter(pl.col(GENE_COL).is_duplicated())[GENE_COL].unique().to_list()
    if duplicated:
        raise InvalidInputError(
            f"Gene identifiers must be unique in {file_path}, duplicated: {', '.join(map(str, duplicated[:10]))}"
        )

    logger.info(f"Loaded count matrix with {df.height} genes and {len(sample_columns(df))} samples")
    return df

def drop_zero_count_genes(counts: pl.DataFrame) -> pl.DataFrame:
    """Remove genes whose counts are zero across all samples."""
    filtered = counts.filter(pl.sum_horizontal(sample_columns(counts)) > 0)
    logger.info(f"Removed {counts.height - filtered.height} genes with zero counts in every sample")
    return filtered

def assign_groups(
    samples: Iterable[str],
    disease_prefix: str = 'A',
    control_prefix: str = 'K'
) -> Dict[str, Group]:
    """
    Label samples as disease or control from their name prefix.

    Args:
        samples: Sample names
        disease_prefix: Prefix of disease samples
        control_prefix: Prefix of control samples

    Returns:
        Dictionary mapping sample name to Group
    """
    groups = {}
    unlabelled = []
    for sample in samples:
        if sample.startswith(disease_prefix):
            groups[sample] = Group.DISEASE
        elif sample.startswith(control_prefix):
            groups[sample] = Group.CONTROL
        else:
            unlabelled.append(sample)

    if unlabelled:
        raise InvalidInputError(
            f"Samples match neither the disease prefix '{disease_prefix}' nor the control "
            f"prefix '{control_prefix}': {', '.join(unlabelled)}"
        )
    return groups

def estimate_size_factors(counts: pl.DataFrame) -> Dict[str, float]:
    """
    Median-of-ratios size factors.

    Each sample's factor is the median, over genes expressed in every sample,
    of the ratio between its count and the gene's geometric mean.

    Args:
        counts: Wide count matrix

    Returns:
        Dictionary mapping sample name to size factor
    """
    samples = sample_columns(counts)
    matrix = counts.select(samples).to_numpy().astype(np.float64)

    expressed = np.all(matrix > 0, axis=1)
    if not expressed.any():
        raise InvalidInputError(
            "Cannot estimate size factors: no gene has a non-zero count in every sample"
        )

    log_counts = np.log(matrix[expressed])
    log_geo_means = log_counts.mean(axis=1)
    log_ratios = log_counts - log_geo_means[:, None]
    factors = np.exp(np.median(log_ratios, axis=0))

    logger.debug(f"Size factors estimated from {int(expressed.sum())} genes")
    return {sample: float(factor) for sample, factor in zip(samples, factors)}

def normalise_counts(counts: pl.DataFrame, size_factors: Mapping[str, float]) -> pl.DataFrame:
    """Divide every sample column by its size factor."""
    missing = [s for s in sample_columns(counts) if s not in size_factors]
    if missing:
        raise MissingDataError(f"No size factor for samples: {', '.join(missing)}")

    return counts.with_columns([
        (pl.col(sample).cast(pl.Float64) / size_factors[sample]).alias(sample)
        for sample in sample_columns(counts)
    ])

def melt_counts(
    raw: pl.DataFrame,
    normalised: pl.DataFrame,
    groups: Mapping[str, Group]
) -> pl.DataFrame:
    """
    Combine raw and normalised matrices into one long table.

    Args:
        raw: Wide raw count matrix
        normalised: Wide normalised count matrix with the same genes and samples
        groups: Sample to group mapping

    Returns:
        DataFrame with gene, sample, group, value_raw and value_norm columns
    """
    missing = [s for s in sample_columns(raw) if s not in groups]
    if missing:
        raise MissingDataError(f"No group label for samples: {', '.join(missing)}")

    groups_df = pl.DataFrame({
        'sample': list(groups.keys()),
        'group': [Group(g).value for g in groups.values()],
    })

    raw_long = raw.unpivot(index=GENE_COL, variable_name='sample', value_name='value_raw')
    norm_long = normalised.unpivot(index=GENE_COL, variable_name='sample', value_name='value_norm')

    return (
        raw_long
        .with_columns(pl.col('value_raw').cast(pl.Float64))
        .join(norm_long, on=[GENE_COL, 'sample'], how='inner')
        .join(groups_df, on='sample', how='inner')
        .select([GENE_COL, 'sample', 'group', 'value_raw', 'value_norm'])
        .sort([GENE_COL, 'sample'])
    )

def check_genes_present(universe: Iterable[str], genes: Iterable[str]) -> None:
    """Raise MissingDataError if any of ``genes`` is absent from ``universe``."""
    universe = set(universe)
    missing = [gene for gene in genes if gene not in universe]
    if missing:
        raise MissingDataError(f"Genes not found in the analysed universe: {', '.join(missing)}")

def load_biomarkers(file_path: Union[str, Path]) -> List[str]:
    """
    Load a list of biomarker genes, one identifier per line, no header.

    Args:
        file_path: Path to biomarker file

    Returns:
        List of gene identifiers in file order
    """
    with open(file_path, 'r') as f:
        genes = [line.strip().strip('"') for line in f]
    genes = [gene for gene in genes if gene]
    logger.info(f"Loaded {len(genes)} biomarkers")
    return genes

def load_de_results(file_path: Union[str, Path]) -> pl.DataFrame:
    """
    Load a differential-expression results table.

    Args:
        file_path: Path to delimited DE table with gene, log2FoldChange and padj columns

    Returns:
        DataFrame with the DE results; NA values become nulls
    """
    df = pl.read_csv(
        file_path,
        separator=_separator_for(file_path),
        has_header=True,
        null_values=['NA'],
        infer_schema_length=10000
    )

    if GENE_COL not in df.columns:
        df = df.rename({df.columns[0]: GENE_COL})

    missing = [col for col in ['log2FoldChange', 'padj'] if col not in df.columns]
    if missing:
        raise MissingDataError(f"DE table {file_path} lacks columns: {', '.join(missing)}")

    return df.with_columns([
        pl.col('log2FoldChange').cast(pl.Float64),
        pl.col('padj').cast(pl.Float64),
    ])

def clean_de_results(de_results: pl.DataFrame) -> pl.DataFrame:
    """Drop genes without a valid adjusted p-value."""
    cleaned = de_results.filter(pl.col('padj').is_not_null() & pl.col('padj').is_not_nan())
    logger.info(f"Excluded {de_results.height - cleaned.height} genes with NA adjusted p-values")
    return cleaned

def call_differential_genes(
    de_results: pl.DataFrame,
    lfc_threshold: float = 1.0,
    padj_threshold: float = 0.05
) -> pl.DataFrame:
    """
    Label genes as up, down or not differentially expressed.

    Args:
        de_results: Cleaned DE table
        lfc_threshold: Minimum absolute log2 fold change
        padj_threshold: Maximum adjusted p-value

    Returns:
        DE table with an added ``de_status`` column
    """
    significant = (pl.col('log2FoldChange').abs() > lfc_threshold) & (pl.col('padj') < padj_threshold)
    return de_results.with_columns(
        pl.when(significant & (pl.col('log2FoldChange') > 0)).then(pl.lit('up'))
        .when(significant).then(pl.lit('down'))
        .otherwise(pl.lit('not_de'))
        .alias('de_status')
    )

def rank_genes(de_results: pl.DataFrame, value_col: str = 'log2FoldChange') -> RankedList:
    """
    Rank genes of a DE table by ``value_col`` (average ranks for ties).

    The table must already be cleaned of genes without an adjusted p-value.

    Args:
        de_results: Cleaned DE table
        value_col: Column to rank by

    Returns:
        RankedList over the genes of the table
    """
    invalid = de_results.filter(pl.col('padj').is_null() | pl.col('padj').is_nan())
    if invalid.height > 0:
        genes = invalid[GENE_COL].to_list()
        raise MissingDataError(
            f"{len(genes)} genes lack a valid adjusted p-value: {', '.join(map(str, genes[:10]))}"
        )

    values = de_results[value_col].cast(pl.Float64)
    if values.null_count() > 0:
        raise InvalidInputError(f"Column {value_col} contains missing values")

    return RankedList.from_values(de_results[GENE_COL].cast(pl.Utf8).to_list(), values.to_numpy())

def load_gmt(file_path: Union[str, Path]) -> Dict[str, List[str]]:
    """
    Load gene sets from a GMT file.

    Each line is tab-separated: name, description, then the member genes.

    Args:
        file_path: Path to GMT file

    Returns:
        Dictionary mapping gene set names to member lists
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"GMT file not found: {file_path}")

    gene_sets: Dict[str, List[str]] = {}
    with open(file_path, 'r', encoding='utf-8') as f:
        for line_num, line in enumerate(f, start=1):
            line = line.rstrip('\n\r')
            if not line.strip() or line.startswith('#'):
                continue

            parts = line.split('\t')
            if len(parts) < 2:
                raise InvalidInputError(
                    f"{file_path}:{line_num}: expected a name and a description, got {len(parts)} fields"
                )

            name = parts[0].strip()
            genes = [g.strip() for g in parts[2:] if g.strip()]
            if name in gene_sets:
                logger.warning(f"{file_path}:{line_num}: duplicate gene set '{name}', merging members")
                gene_sets[name].extend(g for g in genes if g not in gene_sets[name])
            else:
                gene_sets[name] = genes

    logger.info(f"Loaded {len(gene_sets)} gene sets from {file_path}")
    return gene_sets

def filter_gene_sets(
    gene_sets: Mapping[str, Iterable[str]],
    universe: Iterable[str],
    min_size: int = 10,
    max_size: int = 200
) -> Dict[str, GeneSet]:
    """
    Restrict gene sets to the universe and keep those of usable size.

    A set is kept when its number of members found in the universe is strictly
    greater than ``min_size`` and strictly less than ``max_size``.

    Args:
        gene_sets: Mapping from gene set name to member genes
        universe: Gene identifiers present in the analysis
        min_size: Exclusive lower size bound
        max_size: Exclusive upper size bound

    Returns:
        Dictionary of retained GeneSet objects, in input order
    """
    universe_set: Set[str] = set(universe)
    retained: Dict[str, GeneSet] = {}

    for name, members in gene_sets.items():
        if isinstance(members, GeneSet):
            members = members.members
        filtered = GeneSet(name, [gene for gene in members if gene in universe_set])
        if min_size < len(filtered) < max_size:
            retained[name] = filtered

    logger.info(
        f"Retained {len(retained)} of {len(gene_sets)} gene sets with "
        f"{min_size} < size < {max_size} in a universe of {len(universe_set)} genes"
    )
    return retained
