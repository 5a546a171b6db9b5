"""
Library-size normalisation of raw STAR counts and gene-panel restriction.

  1. CPM normalisation   (per-sample total over ALL genes, before filtering)
  2. log2(CPM + 1)
  3. Restrict rows to the panel gene identifiers, input row order preserved

RawCountMatrix is genes × samples; so is the output.
"""

import logging
from typing import Iterable

import numpy as np
import pandas as pd

from .config import CPM_SCALE, GENE_PANEL, PSEUDOCOUNT
from .errors import GeneMismatchError, NegativeCountError, ZeroLibrarySizeError

log = logging.getLogger(__name__)


def filter_gene_panel(gene_metadata: pd.DataFrame,
                      panel: Iterable[str] = GENE_PANEL) -> pd.DataFrame:
    """
    Keep one annotation row per panel symbol.

    gene_metadata is indexed by gene identifier with a ``gene_name`` column.
    A symbol mapped to several identifiers (e.g. PAR_Y copies) keeps the
    first one. Raises GeneMismatchError if any panel symbol is absent.
    """
    panel = list(dict.fromkeys(panel))
    hits = gene_metadata.loc[gene_metadata["gene_name"].isin(panel)]

    dupes = hits["gene_name"].duplicated(keep="first")
    if dupes.any():
        log.warning(f"  {int(dupes.sum())} duplicate gene_name row(s) dropped: "
                    f"{sorted(hits.index[dupes])}")
        hits = hits.loc[~dupes]

    missing = set(panel) - set(hits["gene_name"])
    if missing:
        raise GeneMismatchError(missing, "gene annotation")

    log.info(f"  Gene panel: {len(hits)}/{len(panel)} symbols matched")
    return hits.copy()


def counts_per_million(raw_counts: pd.DataFrame,
                       scale: float = CPM_SCALE) -> pd.DataFrame:
    """
    Per-sample library-size correction. Every output column sums to ``scale``.
    Zero-total samples raise ZeroLibrarySizeError rather than yielding NaN/Inf.
    """
    values = raw_counts.to_numpy(dtype=np.float64)

    negative = raw_counts.columns[(values < 0).any(axis=0)]
    if len(negative):
        raise NegativeCountError(negative)

    lib_sizes = values.sum(axis=0)
    zero = raw_counts.columns[lib_sizes == 0]
    if len(zero):
        raise ZeroLibrarySizeError(zero)

    log.info(f"  Median library size: {np.median(lib_sizes):,.0f} counts")
    return pd.DataFrame(values / lib_sizes * scale,
                        index=raw_counts.index, columns=raw_counts.columns)


def normalize_counts(raw_counts: pd.DataFrame,
                     gene_panel: pd.DataFrame,
                     scale: float = CPM_SCALE,
                     pseudocount: float = PSEUDOCOUNT) -> pd.DataFrame:
    """
    log2(count / total * scale + pseudocount), restricted to the panel rows.

    gene_panel is the output of filter_gene_panel (indexed by gene id).
    Raises GeneMismatchError when a panel id is not a row of raw_counts.
    """
    missing = set(gene_panel.index) - set(raw_counts.index)
    if missing:
        raise GeneMismatchError(missing, "raw count matrix")

    log.info(f"CPM normalisation over {raw_counts.shape[0]:,} genes × "
             f"{raw_counts.shape[1]} samples...")
    cpm = counts_per_million(raw_counts, scale=scale)

    log.info(f"log2(CPM + {pseudocount:g}) transformation...")
    logged = np.log2(cpm + pseudocount)

    panel = logged.loc[logged.index.isin(gene_panel.index)]
    log.info(f"  Restricted to gene panel: {panel.shape}")
    return panel
