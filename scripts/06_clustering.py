"""
06_clustering.py
----------------
Complete-linkage hierarchical clustering of the 24-gene panel, run twice:
genes clustered across samples, and samples clustered across genes.

Pipeline
────────
  1.  Load rna_panel_normalized.parquet (genes × samples) + sample metadata
  2.  Gene tree:   genes as items, samples as features
      → z-score per sample across genes, Euclidean distance, complete linkage
  3.  Sample tree: samples as items, genes as features (explicit transpose)
      → z-score per gene across samples, Euclidean distance, complete linkage
  4.  Primary cuts: gene tree → K_GENES groups, sample tree → K_SAMPLES groups
  5.  Supplementary sweep k=2..6 on both trees: silhouette (in the
      standardised feature space); for samples also ARI/NMI vs tissue type
      and the cluster × sample_type contingency table
  6.  Save linkage matrices, cluster assignments and metrics

Design decisions
────────────────
  - Merge ties: SciPy's nearest-neighbour-chain complete linkage is a
    deterministic function of item order; items stay in matrix order, so
    reruns on the same input give the same tree and the same labels.
  - Cuts are taken after n - k merges (scipy cut_tree), which always yields
    exactly k groups even when merge heights tie.

Outputs
───────
  data/processed/
    gene_linkage.npy / sample_linkage.npy
    gene_clusters.tsv            gene_id → cluster_k{k} for every k in the sweep
    sample_clusters.tsv          barcode → cluster_k{k} for every k in the sweep
  results/tables/
    clustering_metrics.tsv       tree, k, silhouette, ARI/NMI vs tissue type
    sample_cluster_vs_type.tsv   contingency at K_SAMPLES

Run from project root:
  python scripts/06_clustering.py
"""

import logging
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.metrics import adjusted_rand_score, normalized_mutual_info_score
from sklearn.metrics import silhouette_score

from gbm_panel.clustering import cluster_genes, cluster_samples, standardize_features
from gbm_panel.config import K_GENES, K_SAMPLES
from gbm_panel.errors import PanelDataError

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
K_RANGE   = range(2, 7)   # supplementary k sweep

PROCESSED = Path("data/processed")
TABLE_OUT = Path("results/tables")
LOG_DIR   = Path("logs")
TABLE_OUT.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "06_clustering.log"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def sweep(tree, X: np.ndarray, primary_k: int, truth: pd.Series | None = None):
    """
    Cut tree for every k in K_RANGE (plus primary_k).
    Returns (assignments DataFrame, list of metric dicts).
    """
    ks = sorted(set(K_RANGE) | {primary_k})
    assignments, metrics = {}, []
    for k in ks:
        if k > tree.n_items:
            continue
        labels = tree.cut(k)
        assignments[labels.name] = labels
        row = {
            "tree": tree.axis, "k": k, "primary": k == primary_k,
            "cut_height": tree.cut_height(k),
            "sizes": np.bincount(labels.to_numpy())[1:].tolist(),
            # silhouette undefined for k = 1 and k = n
            "silhouette": (float(silhouette_score(X, labels, metric="euclidean"))
                           if 1 < k < tree.n_items else np.nan),
        }
        if truth is not None:
            row["ari_sample_type"] = adjusted_rand_score(truth, labels)
            row["nmi_sample_type"] = normalized_mutual_info_score(
                truth, labels, average_method="arithmetic")
        log.info(f"  {tree.axis:7s} k={k}  sizes={row['sizes']}  "
                 f"silhouette={row['silhouette']:.4f}"
                 + (f"  ARI(type)={row['ari_sample_type']:.4f}" if truth is not None else ""))
        metrics.append(row)
    return pd.DataFrame(assignments), metrics


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║     STEP 6: HIERARCHICAL CLUSTERING (COMPLETE LINKAGE)   ║")
    log.info("╚══════════════════════════════════════════════════════════╝")
    log.info(f"Gene tree cut:   k={K_GENES}")
    log.info(f"Sample tree cut: k={K_SAMPLES}")
    log.info(f"k range evaluated: k={K_RANGE.start}..{K_RANGE.stop-1}")

    norm = pd.read_parquet(PROCESSED / "rna_panel_normalized.parquet")
    meta = pd.read_parquet(PROCESSED / "sample_metadata.parquet").loc[norm.columns]
    log.info(f"  Normalised panel: {norm.shape}")

    try:
        log.info("")
        log.info("=" * 60)
        log.info("GENE TREE (genes × samples)")
        log.info("=" * 60)
        gene_tree = cluster_genes(norm)
        gene_asg, gene_metrics = sweep(gene_tree, standardize_features(norm), K_GENES)

        log.info("")
        log.info("=" * 60)
        log.info("SAMPLE TREE (samples × genes)")
        log.info("=" * 60)
        sample_tree = cluster_samples(norm)
        sample_asg, sample_metrics = sweep(
            sample_tree, standardize_features(norm.T), K_SAMPLES,
            truth=meta["sample_type"],
        )
    except PanelDataError as e:
        log.error(f"Clustering aborted: {e}")
        sys.exit(1)

    # ── Primary sample clusters vs tissue type ────────────────────────────────
    primary_col = f"cluster_k{K_SAMPLES}"
    contingency = pd.crosstab(sample_asg[primary_col], meta["sample_type"])
    log.info("")
    log.info(f"Sample clusters (k={K_SAMPLES}) vs sample type:\n{contingency.to_string()}")

    # ── Save ──────────────────────────────────────────────────────────────────
    np.save(PROCESSED / "gene_linkage.npy", gene_tree.linkage)
    np.save(PROCESSED / "sample_linkage.npy", sample_tree.linkage)
    gene_asg.to_csv(PROCESSED / "gene_clusters.tsv", sep="\t")
    sample_asg.to_csv(PROCESSED / "sample_clusters.tsv", sep="\t")

    metrics = pd.DataFrame(gene_metrics + sample_metrics)
    metrics.to_csv(TABLE_OUT / "clustering_metrics.tsv", sep="\t",
                   index=False, float_format="%.4f")
    contingency.to_csv(TABLE_OUT / "sample_cluster_vs_type.tsv", sep="\t")
    log.info(f"  Linkage matrices + assignments saved → {PROCESSED}")
    log.info(f"  Metrics table saved → {TABLE_OUT / 'clustering_metrics.tsv'}")

    log.info("")
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║              CLUSTERING COMPLETE — SUMMARY               ║")
    log.info("╠══════════════════════════════════════════════════════════╣")
    log.info(f"║  Gene clusters (k={K_GENES}):   "
             f"{gene_asg[f'cluster_k{K_GENES}'].value_counts().sort_index().tolist()}")
    log.info(f"║  Sample clusters (k={K_SAMPLES}): "
             f"{sample_asg[primary_col].value_counts().sort_index().tolist()}")
    primary = next(m for m in sample_metrics if m["primary"])
    log.info(f"║  ARI vs sample type:    {primary['ari_sample_type']:.4f}")
    log.info("╚══════════════════════════════════════════════════════════╝")
    log.info("\n✓ Next: python scripts/07_figures.py")
