"""
Complete-linkage hierarchical clustering of the panel matrix.

Two independent trees are built from the normalised genes × samples matrix:
  - genes   as items, samples as features  (rows as stored)
  - samples as items, genes   as features  (explicit transpose)

Each call standardises its own features across its own items, computes
pairwise Euclidean distances and runs SciPy's complete linkage. SciPy's
nearest-neighbour-chain algorithm resolves equal-distance merges
deterministically for a fixed item order, and items are never reordered,
so the same input always yields the same tree.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cut_tree, leaves_list, linkage
from scipy.spatial.distance import pdist

from .config import DISTANCE_METRIC, LINKAGE_METHOD
from .pca import scale_columns

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ClusterTree:
    items: tuple          # item labels, in linkage order
    axis: str             # "genes" or "samples"
    linkage: np.ndarray   # SciPy (n-1) × 4 linkage matrix

    @property
    def n_items(self) -> int:
        return len(self.items)

    @property
    def heights(self) -> np.ndarray:
        return self.linkage[:, 2]

    def _check_k(self, k: int) -> None:
        if not 1 <= k <= self.n_items:
            raise ValueError(f"k must be in [1, {self.n_items}], got {k}")

    def cut(self, k: int) -> pd.Series:
        """
        Flat partition into exactly k groups (1-based labels).

        The tree is cut after n - k merges, which always leaves k connected
        components even when several merges share a height.
        """
        self._check_k(k)
        labels = cut_tree(self.linkage, n_clusters=k).ravel() + 1
        return pd.Series(labels, index=pd.Index(self.items, name=self.axis),
                         name=f"cluster_k{k}")

    def cut_height(self, k: int) -> float:
        """Height of the last merge below the k-group cut (0 for k = n)."""
        self._check_k(k)
        n_merges = self.n_items - k
        return 0.0 if n_merges == 0 else float(self.heights[n_merges - 1])

    def leaf_order(self) -> list:
        """Items in dendrogram leaf order."""
        return [self.items[i] for i in leaves_list(self.linkage)]


def standardize_features(data: pd.DataFrame) -> np.ndarray:
    """Zero mean / unit variance per feature column across item rows."""
    return scale_columns(data)


def build_tree(data: pd.DataFrame, axis: str,
               method: str = LINKAGE_METHOD,
               metric: str = DISTANCE_METRIC) -> ClusterTree:
    """Items are the rows of data, features its columns."""
    if data.shape[0] < 2:
        raise ValueError(f"need at least 2 {axis} to cluster, got {data.shape[0]}")

    log.info(f"Clustering {data.shape[0]} {axis} on {data.shape[1]} features "
             f"({metric} distance, {method} linkage)...")
    X = standardize_features(data)
    dist = pdist(X, metric=metric)
    Z = linkage(dist, method=method)
    log.info(f"  Merge heights: [{Z[:, 2].min():.3f}, {Z[:, 2].max():.3f}]")
    return ClusterTree(items=tuple(data.index), axis=axis, linkage=Z)


def cluster_genes(normalized: pd.DataFrame, **kwargs) -> ClusterTree:
    """Genes as items, samples as features."""
    return build_tree(normalized, axis="genes", **kwargs)


def cluster_samples(normalized: pd.DataFrame, **kwargs) -> ClusterTree:
    """Samples as items, genes as features."""
    return build_tree(normalized.T, axis="samples", **kwargs)
