"""
Per-biomarker analyses on long-format expression tables.

Expression tables have one row per (gene, sample) with ``group``,
``value_raw`` and ``value_norm`` columns, as produced by
``rankenrich.data.melt_counts``.
"""

import logging
from typing import Iterable, List, Sequence

import polars as pl

from rankenrich.data import check_genes_present
from rankenrich.exceptions import InvalidInputError
from rankenrich.models import ClassificationResult, ExpressionValue, Group
from rankenrich.stats import (
    benjamini_hochberg,
    calculate_auroc,
    significance_label,
    welch_ttest,
)

logger = logging.getLogger(__name__)


def classify_gene(gene: str, records: Iterable[ExpressionValue]) -> ClassificationResult:
    """
    AUROC of one gene for ranking disease samples above controls.

    Args:
        gene: Gene identifier
        records: Expression values of the gene, one per sample

    Returns:
        ClassificationResult with the group sizes
    """
    records = list(records)
    foreign = {r.gene for r in records if r.gene != gene}
    if foreign:
        raise InvalidInputError(f"Records for {gene} include other genes: {', '.join(sorted(foreign))}")

    is_disease = [r.group is Group.DISEASE for r in records]
    p = sum(is_disease)
    n = len(is_disease) - p
    if p == 0 or n == 0:
        raise InvalidInputError(
            f"Cannot classify {gene}: {p} disease and {n} control samples"
        )

    statistic = calculate_auroc([r.value for r in records], is_disease)
    return ClassificationResult(gene=gene, statistic=statistic, p=p, n=n)

def classify_biomarkers(
    expression: pl.DataFrame,
    biomarkers: Sequence[str],
    value_col: str = 'value_norm'
) -> List[ClassificationResult]:
    """
    Compute the AUROC of every biomarker.

    Args:
        expression: Long expression table
        biomarkers: Genes to classify
        value_col: Column holding the values to rank

    Returns:
        List of ClassificationResult in biomarker order
    """
    check_genes_present(expression['gene'].unique().to_list(), biomarkers)

    results = []
    for gene in biomarkers:
        rows = expression.filter(pl.col('gene') == gene).select(['sample', 'group', value_col])
        records = [
            ExpressionValue(gene=gene, sample=sample, group=group, value=value)
            for sample, group, value in rows.iter_rows()
        ]
        result = classify_gene(gene, records)
        logger.debug(f"{gene}: AUROC={result.statistic:.3f} (p={result.p}, n={result.n})")
        results.append(result)

    return results

def classification_to_frame(results: Iterable[ClassificationResult]) -> pl.DataFrame:
    """Tabulate classification results."""
    return pl.DataFrame(
        [{'gene': r.gene, 'auroc': r.statistic, 'p': r.p, 'n': r.n} for r in results],
        schema={'gene': pl.Utf8, 'auroc': pl.Float64, 'p': pl.Int64, 'n': pl.Int64},
    )


def summarise_biomarkers(expression: pl.DataFrame, biomarkers: Sequence[str]) -> pl.DataFrame:
    """
    Max, min, mean and median of raw and normalised values per gene and group.

    Args:
        expression: Long expression table
        biomarkers: Genes to summarise

    Returns:
        DataFrame with one row per gene and group, values rounded to 2 decimals
    """
    aggregations = []
    for source, col in [('raw', 'value_raw'), ('norm', 'value_norm')]:
        aggregations.extend([
            pl.col(col).max().alias(f'{source}_max'),
            pl.col(col).min().alias(f'{source}_min'),
            pl.col(col).mean().alias(f'{source}_mean'),
            pl.col(col).median().alias(f'{source}_median'),
        ])

    summary = (
        expression
        .filter(pl.col('gene').is_in(list(biomarkers)))
        .group_by(['gene', 'group'])
        .agg(aggregations)
        .sort(['gene', 'group'])
    )
    value_cols = [col for col in summary.columns if col not in ('gene', 'group')]
    return summary.with_columns([pl.col(col).cast(pl.Float64).round(2) for col in value_cols])

def zscore_biomarkers(expression: pl.DataFrame, biomarkers: Sequence[str]) -> pl.DataFrame:
    """Standardise normalised values within each biomarker (sample standard deviation)."""
    return (
        expression
        .filter(pl.col('gene').is_in(list(biomarkers)))
        .with_columns(
            ((pl.col('value_norm') - pl.col('value_norm').mean().over('gene'))
             / pl.col('value_norm').std(ddof=1).over('gene')).alias('z')
        )
    )

def biomarker_ttests(zscores: pl.DataFrame) -> pl.DataFrame:
    """
    Welch t-test of z-scores between disease and control for each gene.

    P-values are Benjamini-Hochberg adjusted across genes.

    Args:
        zscores: Output of ``zscore_biomarkers``

    Returns:
        DataFrame with gene, statistic, n1, n2, p, p_adj and p_adj_signif
    """
    rows = []
    for gene in zscores['gene'].unique(maintain_order=True).to_list():
        gene_rows = zscores.filter(pl.col('gene') == gene)
        disease = gene_rows.filter(pl.col('group') == Group.DISEASE.value)['z'].to_numpy()
        control = gene_rows.filter(pl.col('group') == Group.CONTROL.value)['z'].to_numpy()
        test = welch_ttest(disease, control)
        rows.append({
            'gene': gene,
            'statistic': test['statistic'],
            'n1': test['n1'],
            'n2': test['n2'],
            'p': test['p_value'],
        })

    adjusted = benjamini_hochberg([row['p'] for row in rows])
    for row, padj in zip(rows, adjusted):
        row['p_adj'] = float(padj)
        row['p_adj_signif'] = significance_label(float(padj))

    return pl.DataFrame(rows, schema={
        'gene': pl.Utf8,
        'statistic': pl.Float64,
        'n1': pl.Int64,
        'n2': pl.Int64,
        'p': pl.Float64,
        'p_adj': pl.Float64,
        'p_adj_signif': pl.Utf8,
    })
