"""
Expression comparisons across clinical subgroups (sex, age group, tissue type).

Feeds the boxplot figures and the per-gene test table of 07_figures.py.
"""

import logging

import numpy as np
import pandas as pd
from scipy.stats import false_discovery_control, mannwhitneyu

from .config import UNKNOWN

log = logging.getLogger(__name__)


def long_format(normalized: pd.DataFrame, metadata: pd.DataFrame,
                symbols: pd.Series | None = None,
                columns=("gender", "age_group", "sample_type")) -> pd.DataFrame:
    """
    One row per (gene, sample): gene_id, gene_name, sample, expression and
    the requested metadata columns.
    """
    tidy = (normalized.rename_axis(index="gene_id", columns="sample")
                      .stack()
                      .rename("expression")
                      .reset_index())
    names = symbols if symbols is not None else pd.Series(dtype=object)
    tidy["gene_name"] = tidy["gene_id"].map(names).fillna(tidy["gene_id"])
    present = [c for c in columns if c in metadata.columns]
    return tidy.join(metadata[present], on="sample")


def compare_subgroups(normalized: pd.DataFrame, metadata: pd.DataFrame,
                      column: str, groups: tuple | None = None,
                      symbols: pd.Series | None = None) -> pd.DataFrame:
    """
    Two-sided Mann-Whitney U per gene between two levels of a metadata column,
    Benjamini-Hochberg adjusted across genes.

    groups defaults to the two levels of the column (excluding "Unknown"/NaN);
    a column with any other number of levels raises ValueError.
    """
    labels = metadata[column].reindex(normalized.columns)
    if groups is None:
        levels = sorted(v for v in labels.dropna().unique() if v != UNKNOWN)
        if len(levels) != 2:
            raise ValueError(f"{column!r} has {len(levels)} usable levels "
                             f"({levels}); pass groups explicitly")
        groups = tuple(levels)
    a_mask = (labels == groups[0]).to_numpy()
    b_mask = (labels == groups[1]).to_numpy()

    rows = []
    for gene_id, values in normalized.iterrows():
        a, b = values.to_numpy()[a_mask], values.to_numpy()[b_mask]
        if len(a) == 0 or len(b) == 0:
            stat, p = np.nan, np.nan
        else:
            stat, p = mannwhitneyu(a, b, alternative="two-sided")
        rows.append({
            "gene_id": gene_id,
            "gene_name": symbols.get(gene_id, gene_id) if symbols is not None else gene_id,
            "comparison": column,
            "group_a": groups[0],
            "group_b": groups[1],
            "n_a": len(a),
            "n_b": len(b),
            "median_a": float(np.median(a)) if len(a) else np.nan,
            "median_b": float(np.median(b)) if len(b) else np.nan,
            "u_stat": stat,
            "p_value": p,
        })
    table = pd.DataFrame(rows)
    table["median_diff"] = table["median_a"] - table["median_b"]

    tested = table["p_value"].notna()
    table["p_adj"] = np.nan
    if tested.any():
        table.loc[tested, "p_adj"] = false_discovery_control(
            table.loc[tested, "p_value"].to_numpy(), method="bh")

    n_sig = int((table["p_adj"] < 0.05).sum())
    log.info(f"  {column}: {groups[0]} (n={int(a_mask.sum())}) vs "
             f"{groups[1]} (n={int(b_mask.sum())}) — {n_sig} genes with BH p < 0.05")
    return table.sort_values("p_value", na_position="last").reset_index(drop=True)
