"""
PCA of the normalised panel matrix.

The stored matrix is genes × samples; PCA treats samples as observations, so
the transpose happens here and nowhere else. Each gene is centred and scaled
to unit variance before decomposition.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from .config import SEED, VAR_THRESHOLD
from .errors import ZeroVarianceError

log = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PCAResult:
    explained_variance: pd.Series        # per component, PC1..PCn
    explained_variance_ratio: pd.Series  # sums to 1 over all components
    scores: pd.DataFrame                 # samples × components
    loadings: pd.DataFrame               # genes × components

    @property
    def n_components(self) -> int:
        return len(self.explained_variance_ratio)

    def cumulative_variance(self) -> pd.Series:
        return self.explained_variance_ratio.cumsum()

    def n_pc(self, threshold: float = VAR_THRESHOLD) -> int:
        """
        Smallest number of leading components whose cumulative variance
        proportion reaches threshold; all components if none does.
        """
        total = 0.0
        for i, ratio in enumerate(self.explained_variance_ratio, start=1):
            total += ratio
            if total >= threshold:
                return i
        return self.n_components

    def top_genes(self, component: str = "PC1", n: int = 10) -> pd.Series:
        """Loadings on one component, largest absolute weight first."""
        col = self.loadings[component]
        return col.reindex(col.abs().sort_values(ascending=False).index[:n])

    def variance_table(self) -> pd.DataFrame:
        return pd.DataFrame({
            "variance": self.explained_variance,
            "ratio": self.explained_variance_ratio,
            "cumulative": self.cumulative_variance(),
        })


def eta_squared(scores: pd.DataFrame, labels: pd.Series) -> pd.Series:
    """
    Per-component η² = SS_between / SS_total: the share of each component's
    score variance explained by a sample grouping (e.g. tissue source site).
    """
    labels = labels.reindex(scores.index)
    grand_mean = scores.mean(axis=0)
    ss_total = ((scores - grand_mean) ** 2).sum(axis=0)
    ss_between = pd.Series(0.0, index=scores.columns)
    for _, group in scores.groupby(labels.to_numpy()):
        ss_between += len(group) * (group.mean(axis=0) - grand_mean) ** 2
    # constant components carry no variance to explain
    return (ss_between / ss_total.where(ss_total > 0)).fillna(0.0).rename("eta2")


def scale_columns(obs: pd.DataFrame) -> np.ndarray:
    """
    Centre and scale each column (feature) across rows (observations).
    Zero-variance columns raise ZeroVarianceError naming them.
    """
    std = obs.std(axis=0, ddof=0)
    flat = std.index[~(std > 0)]
    if len(flat):
        raise ZeroVarianceError(flat)
    return StandardScaler().fit_transform(obs.to_numpy(dtype=np.float64))


def run_pca(normalized: pd.DataFrame, seed: int = SEED) -> PCAResult:
    """
    PCA on a genes × samples matrix, samples as observations.
    Number of components = min(samples, genes).
    """
    obs = normalized.T          # samples × genes
    X = scale_columns(obs)

    n_comp = min(X.shape)
    log.info(f"Running PCA on {X.shape[0]} samples × {X.shape[1]} genes "
             f"(n_components={n_comp})...")
    pca = PCA(n_components=n_comp, svd_solver="full", random_state=seed)
    scores = pca.fit_transform(X)

    pcs = [f"PC{i + 1}" for i in range(n_comp)]
    var = pd.Series(pca.explained_variance_, index=pcs, name="variance")
    ratio = (var / var.sum()).rename("ratio")

    log.info("  Variance explained: "
             + ", ".join(f"{pc}={r * 100:.1f}%" for pc, r in ratio.head(5).items()))

    return PCAResult(
        explained_variance=var,
        explained_variance_ratio=ratio,
        scores=pd.DataFrame(scores, index=obs.index, columns=pcs),
        loadings=pd.DataFrame(pca.components_.T, index=obs.columns, columns=pcs),
    )
