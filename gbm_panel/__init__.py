"""
Core computations for the TCGA-GBM 24-gene panel analysis.

Metadata normalisation, CPM/log2 count normalisation, PCA and complete-linkage
hierarchical clustering. Retrieval and plotting live in scripts/.
"""

from .clustering import ClusterTree, build_tree, cluster_genes, cluster_samples
from .counts import counts_per_million, filter_gene_panel, normalize_counts
from .errors import (
    GeneMismatchError,
    NegativeCountError,
    PanelDataError,
    SampleMismatchError,
    ZeroLibrarySizeError,
    ZeroVarianceError,
)
from .metadata import normalize_sample_metadata
from .pca import PCAResult, eta_squared, run_pca
from .pipeline import CoreResult, check_sample_alignment, run_core
from .subgroups import compare_subgroups, long_format

__version__ = "0.1.0"
