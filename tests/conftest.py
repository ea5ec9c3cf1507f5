"""Shared fixtures: a small synthetic RNA-seq study on disk."""

import pytest
import matplotlib
import numpy as np
from tomli_w import dump as tomli_w_dump

matplotlib.use("Agg")

N_GENES = 60
BIOMARKERS = ["GENE1", "GENE2", "GENE3"]


@pytest.fixture
def study_files(tmp_path):
    """Write counts, biomarkers, DE results and gene sets for five cases and five controls."""
    rng = np.random.default_rng(42)
    genes = [f"GENE{i}" for i in range(1, N_GENES + 1)]
    samples = [f"A{i}" for i in range(1, 6)] + [f"K{i}" for i in range(1, 6)]
    depth = rng.uniform(0.5, 2.0, size=len(samples))

    counts = rng.poisson(200, size=(N_GENES, len(samples))) * depth
    counts = np.maximum(np.round(counts), 1).astype(int)
    # GENE1 is raised in disease samples, GENE2 lowered
    counts[0, :5] *= 4
    counts[1, 5:] *= 4
    # An unexpressed gene is dropped on loading
    counts[-1, :] = 0

    counts_file = tmp_path / "counts.csv"
    lines = ["GeneID,GeneSymbol," + ",".join(samples)]
    for i, gene in enumerate(genes):
        lines.append(f"{i + 1},{gene}," + ",".join(str(c) for c in counts[i]))
    counts_file.write_text("\n".join(lines) + "\n")

    biomarkers_file = tmp_path / "biomarkers.txt"
    biomarkers_file.write_text("\n".join(BIOMARKERS) + "\n")

    lfc = rng.normal(0.0, 1.5, size=N_GENES - 1)
    padj = rng.uniform(0.001, 0.2, size=N_GENES - 1)
    de_file = tmp_path / "de_results.csv"
    lines = ["gene,baseMean,log2FoldChange,pvalue,padj"]
    for i, gene in enumerate(genes[:-1]):
        if i in (10, 11):
            lines.append(f"{gene},5.0,{lfc[i]:.4f},NA,NA")
        else:
            lines.append(f"{gene},100.0,{lfc[i]:.4f},{padj[i] / 2:.5f},{padj[i]:.5f}")
    de_file.write_text("\n".join(lines) + "\n")

    order = np.argsort(lfc)
    top = [genes[i] for i in order[-15:] if i not in (10, 11)]
    bottom = [genes[i] for i in order[:15] if i not in (10, 11)]
    gene_sets_file = tmp_path / "gene_sets.gmt"
    gene_sets_file.write_text(
        "GO_HIGH_FOLD_CHANGE\tna\t" + "\t".join(top) + "\n"
        + "GO_LOW_FOLD_CHANGE\tna\t" + "\t".join(bottom) + "\n"
        + "MIXED_SET\tna\t" + "\t".join(genes[20:35]) + "\n"
        + "TINY_SET\tna\tGENE1\tGENE2\n"
    )

    return {
        "counts_file": counts_file,
        "biomarkers_file": biomarkers_file,
        "de_results_file": de_file,
        "gene_sets_file": gene_sets_file,
    }


@pytest.fixture
def study_config(tmp_path, study_files):
    """Configuration for a fast run of the synthetic study."""
    config = {
        "input": {key: str(path) for key, path in study_files.items()},
        "output": {"directory": str(tmp_path / "results"), "plots": True},
        "analysis": {"num_threads": 1},
        "classification": {"permutations": 200},
        "enrichment": {"min_size": 10, "max_size": 100},
    }
    config_file = tmp_path / "config.toml"
    with open(config_file, "wb") as f:
        tomli_w_dump(config, f)
    return config_file
