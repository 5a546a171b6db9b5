"""
End-to-end core: metadata → counts → {PCA, clustering}.

Every parameter that changes the numbers is passed in explicitly; the
defaults come from gbm_panel.config.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

import pandas as pd

from .clustering import ClusterTree, cluster_genes, cluster_samples
from .config import GENE_PANEL, K_GENES, K_SAMPLES, SEED
from .counts import filter_gene_panel, normalize_counts
from .errors import SampleMismatchError
from .metadata import normalize_sample_metadata
from .pca import PCAResult, run_pca

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CoreResult:
    normalized: pd.DataFrame       # panel genes × samples, log2(CPM + 1)
    sample_metadata: pd.DataFrame
    gene_metadata: pd.DataFrame    # filtered to the panel
    pca: PCAResult
    gene_tree: ClusterTree
    gene_clusters: pd.Series
    sample_tree: ClusterTree
    sample_clusters: pd.Series


def check_sample_alignment(raw_counts: pd.DataFrame,
                           raw_clinical: pd.DataFrame) -> None:
    """Every count column needs exactly one clinical row, and vice versa."""
    dup = raw_clinical.index[raw_clinical.index.duplicated()]
    if len(dup):
        raise SampleMismatchError(set(dup), "clinical table (duplicated barcodes)")

    counts, clin = set(raw_counts.columns), set(raw_clinical.index)
    if counts - clin:
        raise SampleMismatchError(counts - clin, "clinical table")
    if clin - counts:
        raise SampleMismatchError(clin - counts, "raw count matrix")


def run_core(raw_counts: pd.DataFrame,
             raw_clinical: pd.DataFrame,
             raw_genes: pd.DataFrame,
             panel: Iterable[str] = GENE_PANEL,
             k_genes: int = K_GENES,
             k_samples: int = K_SAMPLES,
             seed: int = SEED) -> CoreResult:
    log.info("Checking sample alignment...")
    check_sample_alignment(raw_counts, raw_clinical)
    # clinical rows follow the count-matrix column order
    raw_clinical = raw_clinical.loc[raw_counts.columns]

    log.info("Normalising sample metadata...")
    sample_meta = normalize_sample_metadata(raw_clinical)

    log.info("Filtering gene annotation to the panel...")
    gene_meta = filter_gene_panel(raw_genes, panel)

    normalized = normalize_counts(raw_counts, gene_meta)
    pca = run_pca(normalized, seed=seed)

    gene_tree = cluster_genes(normalized)
    sample_tree = cluster_samples(normalized)

    return CoreResult(
        normalized=normalized,
        sample_metadata=sample_meta,
        gene_metadata=gene_meta,
        pca=pca,
        gene_tree=gene_tree,
        gene_clusters=gene_tree.cut(k_genes),
        sample_tree=sample_tree,
        sample_clusters=sample_tree.cut(k_samples),
    )
