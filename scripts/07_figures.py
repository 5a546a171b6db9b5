"""
Step 7 – Report Figures
=======================
Renders the outputs of steps 4–6. Nothing here feeds back into the analysis.

Outputs (results/figures/):
  fig_pca.pdf               — PC1 vs PC2 by tissue type, scree, PC1/PC2 loadings
  fig_dendrograms.pdf       — gene and sample trees with the k-cut line
  fig_heatmap.pdf           — panel heatmap in dendrogram leaf order + type bar
  fig_box_<column>.pdf      — per-gene expression by sex / age group / tissue type
  fig_km_age_group.pdf      — Kaplan-Meier by age group, primary tumours only

Outputs (results/tables/):
  subgroup_tests.tsv        — Mann-Whitney U per gene and comparison, BH-adjusted
"""

import logging
import sys
import warnings
from pathlib import Path

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.gridspec as gridspec
import matplotlib.patches as mpatches
from matplotlib.colors import ListedColormap
from scipy.cluster.hierarchy import dendrogram

from lifelines import KaplanMeierFitter
from lifelines.statistics import logrank_test

from gbm_panel.clustering import ClusterTree
from gbm_panel.config import K_GENES, K_SAMPLES, NORMAL_SAMPLE_TYPE, VAR_THRESHOLD
from gbm_panel.pca import PCAResult
from gbm_panel.subgroups import compare_subgroups, long_format

warnings.filterwarnings("ignore")

# ── paths ─────────────────────────────────────────────────────────────────────
ROOT    = Path(__file__).resolve().parents[1]
PROC    = ROOT / "data" / "processed"
OUT_TAB = ROOT / "results" / "tables"
OUT_FIG = ROOT / "results" / "figures"
LOG_DIR = ROOT / "logs"
OUT_FIG.mkdir(parents=True, exist_ok=True)
OUT_TAB.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

# ── logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.FileHandler(LOG_DIR / "07_figures.log"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger(__name__)

# ── matplotlib style ──────────────────────────────────────────────────────────
plt.rcParams.update({
    "font.family": "sans-serif",
    "font.size": 9,
    "axes.titlesize": 10,
    "axes.labelsize": 9,
    "xtick.labelsize": 8,
    "ytick.labelsize": 8,
    "legend.fontsize": 8,
    "figure.dpi": 150,
    "pdf.fonttype": 42,          # editable text in PDF
    "ps.fonttype": 42,
    "axes.spines.top": False,
    "axes.spines.right": False,
})

TYPE_COLORS = {"Primary Tumor": "#D65F5F", NORMAL_SAMPLE_TYPE: "#4878D0"}
AGE_COLORS  = {">50": "#D65F5F", "<=50": "#4878D0"}
BOX_COLUMNS = {
    "gender":      ("Sex", None),
    "age_group":   ("Age group", ("<=50", ">50")),
    "sample_type": ("Tissue type", ("Primary Tumor", NORMAL_SAMPLE_TYPE)),
}

# ═══════════════════════════════════════════════════════════════════════════════
# DATA LOADING
# ═══════════════════════════════════════════════════════════════════════════════

def load_data():
    log.info("Loading data…")
    norm  = pd.read_parquet(PROC / "rna_panel_normalized.parquet")
    meta  = pd.read_parquet(PROC / "sample_metadata.parquet").loc[norm.columns]
    panel = pd.read_parquet(PROC / "gene_panel.parquet")

    var = pd.read_csv(OUT_TAB / "pca_variance.tsv", sep="\t", index_col=0)
    pca = PCAResult(
        explained_variance=var["variance"],
        explained_variance_ratio=var["ratio"],
        scores=pd.read_parquet(PROC / "pca_scores.parquet"),
        loadings=pd.read_parquet(PROC / "pca_loadings.parquet").drop(columns="gene_name"),
    )

    trees = {}
    for axis in ("gene", "sample"):
        asg = pd.read_csv(PROC / f"{axis}_clusters.tsv", sep="\t", index_col=0)
        trees[axis] = (
            ClusterTree(items=tuple(asg.index), axis=f"{axis}s",
                        linkage=np.load(PROC / f"{axis}_linkage.npy")),
            asg,
        )

    log.info("  normalised panel: %s", norm.shape)
    log.info("  sample types:\n%s", meta["sample_type"].value_counts().to_string())
    return dict(norm=norm, meta=meta, symbols=panel["gene_name"], pca=pca,
                gene_tree=trees["gene"][0], sample_tree=trees["sample"][0])


# ═══════════════════════════════════════════════════════════════════════════════
# PCA
# ═══════════════════════════════════════════════════════════════════════════════

def _loading_bar(ax, pca: PCAResult, symbols: pd.Series, pc: str, n: int = 10):
    top = pca.top_genes(pc, n)[::-1]
    colours = ["#D65F5F" if w > 0 else "#4878D0" for w in top.values]
    ax.barh([symbols.get(g, g) for g in top.index], top.values, color=colours)
    ax.axvline(0, color="gray", linewidth=0.6)
    ax.set_xlabel("Loading")
    ax.set_title(f"Top |loading| genes on {pc}")


def plot_pca(data: dict):
    log.info("Plotting PCA panel…")
    pca, meta, symbols = data["pca"], data["meta"], data["symbols"]
    ratio = pca.explained_variance_ratio
    n_keep = pca.n_pc(VAR_THRESHOLD)

    fig = plt.figure(figsize=(12, 9))
    gs  = gridspec.GridSpec(2, 2, figure=fig, wspace=0.38, hspace=0.45)

    # ── A: PC1 vs PC2 by tissue type ─────────────────────────────────────────
    ax_a = fig.add_subplot(gs[0, 0])
    for st, col in TYPE_COLORS.items():
        mask = (meta["sample_type"] == st).reindex(pca.scores.index).fillna(False).values
        ax_a.scatter(pca.scores.loc[mask, "PC1"], pca.scores.loc[mask, "PC2"],
                     c=col, s=14, alpha=0.75, linewidths=0,
                     label=f"{st} (n={mask.sum()})")
    ax_a.set_xlabel(f"PC1 ({ratio.iloc[0]*100:.1f}%)")
    ax_a.set_ylabel(f"PC2 ({ratio.iloc[1]*100:.1f}%)")
    ax_a.set_title("(A) Samples on PC1/PC2")
    ax_a.legend(frameon=False, loc="best")

    # ── B: scree + cumulative ────────────────────────────────────────────────
    ax_b = fig.add_subplot(gs[0, 1])
    idx = np.arange(1, len(ratio) + 1)
    ax_b.bar(idx, ratio.values * 100, color="#4878D0", edgecolor="white")
    ax_b.plot(idx, pca.cumulative_variance().values * 100, "o-",
              color="#EE854A", markersize=3, label="Cumulative")
    ax_b.axhline(VAR_THRESHOLD * 100, color="gray", linestyle=":", linewidth=0.8)
    ax_b.axvline(n_keep, color="#D65F5F", linestyle="--", linewidth=1.2,
                 label=f"n_pc = {n_keep} (≥{VAR_THRESHOLD:.0%})")
    ax_b.set_xlabel("Component")
    ax_b.set_ylabel("Variance explained (%)")
    ax_b.set_title("(B) Scree plot")
    ax_b.legend(frameon=False, loc="center right")

    # ── C/D: loadings ────────────────────────────────────────────────────────
    _loading_bar(fig.add_subplot(gs[1, 0]), pca, symbols, "PC1")
    _loading_bar(fig.add_subplot(gs[1, 1]), pca, symbols, "PC2")

    fig.suptitle("PCA of the 24-gene panel (TCGA-GBM)", fontsize=11, y=1.01)
    out = OUT_FIG / "fig_pca.pdf"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    log.info("  Saved → %s", out)


# ═══════════════════════════════════════════════════════════════════════════════
# CLUSTERING
# ═══════════════════════════════════════════════════════════════════════════════

def plot_dendrograms(data: dict):
    log.info("Plotting dendrograms…")
    symbols = data["symbols"]
    fig, (ax_g, ax_s) = plt.subplots(1, 2, figsize=(14, 5))

    for ax, tree, k, labels in [
        (ax_g, data["gene_tree"], K_GENES,
         [symbols.get(g, g) for g in data["gene_tree"].items]),
        (ax_s, data["sample_tree"], K_SAMPLES, None),
    ]:
        h = tree.cut_height(k)
        dendrogram(tree.linkage, ax=ax, labels=labels,
                   no_labels=labels is None, color_threshold=h,
                   above_threshold_color="gray")
        ax.axhline(h, color="#D65F5F", linestyle="--", linewidth=1.0,
                   label=f"cut k={k}")
        ax.set_ylabel("Complete-linkage distance")
        ax.set_title(f"{tree.axis.capitalize()} (n={tree.n_items})")
        ax.legend(frameon=False, loc="upper right")

    plt.tight_layout()
    out = OUT_FIG / "fig_dendrograms.pdf"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    log.info("  Saved → %s", out)


def plot_heatmap(data: dict):
    """
    Panel heatmap, rows/columns in dendrogram leaf order, z-scored per gene
    for display, with a tissue-type annotation bar above.
    """
    log.info("Plotting clustered heatmap…")
    norm, meta, symbols = data["norm"], data["meta"], data["symbols"]
    rows = data["gene_tree"].leaf_order()
    cols = data["sample_tree"].leaf_order()
    M = norm.loc[rows, cols]
    M = M.sub(M.mean(axis=1), axis=0).div(M.std(axis=1, ddof=0), axis=0)

    fig = plt.figure(figsize=(12, 7))
    gs  = gridspec.GridSpec(2, 2, figure=fig, height_ratios=[0.04, 1],
                            width_ratios=[1, 0.02], hspace=0.02, wspace=0.02)
    ax_bar = fig.add_subplot(gs[0, 0])
    ax_hm  = fig.add_subplot(gs[1, 0])
    ax_cb  = fig.add_subplot(gs[1, 1])

    types = list(TYPE_COLORS)
    codes = meta.loc[cols, "sample_type"].map({t: i for i, t in enumerate(types)})
    ax_bar.imshow(codes.fillna(-1).to_numpy()[None, :], aspect="auto",
                  cmap=ListedColormap([TYPE_COLORS[t] for t in types]),
                  vmin=0, vmax=len(types) - 1, interpolation="nearest")
    ax_bar.set_xticks([]); ax_bar.set_yticks([])

    im = ax_hm.imshow(M.to_numpy(), aspect="auto", cmap="RdBu_r",
                      vmin=-3, vmax=3, interpolation="nearest")
    ax_hm.set_yticks(range(len(rows)))
    ax_hm.set_yticklabels([symbols.get(g, g) for g in rows])
    ax_hm.set_xticks([])
    ax_hm.set_xlabel(f"Samples (n={len(cols)}, dendrogram order)")
    plt.colorbar(im, cax=ax_cb, label="z-score (per gene)")

    patches = [mpatches.Patch(color=c, label=t) for t, c in TYPE_COLORS.items()]
    ax_bar.legend(handles=patches, bbox_to_anchor=(1.0, 4.0), loc="upper right",
                  ncol=2, frameon=False)

    out = OUT_FIG / "fig_heatmap.pdf"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    log.info("  Saved → %s", out)


# ═══════════════════════════════════════════════════════════════════════════════
# SUBGROUPS
# ═══════════════════════════════════════════════════════════════════════════════

def plot_boxplots(data: dict, tidy: pd.DataFrame, column: str, title: str):
    genes = data["norm"].index.tolist()
    levels = sorted(v for v in tidy[column].dropna().unique())
    ncols = 6
    nrows = int(np.ceil(len(genes) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(ncols * 2.2, nrows * 2.2),
                             squeeze=False)
    for ax, gene_id in zip(axes.ravel(), genes):
        sub = tidy[tidy["gene_id"] == gene_id]
        ax.boxplot([sub.loc[sub[column] == lv, "expression"] for lv in levels],
                   widths=0.6, showfliers=False)
        ax.set_xticks(range(1, len(levels) + 1))
        ax.set_xticklabels(levels, rotation=30, ha="right", fontsize=6)
        ax.set_title(data["symbols"].get(gene_id, gene_id), fontsize=8)
    for ax in axes.ravel()[len(genes):]:
        ax.set_visible(False)
    fig.supylabel("log2(CPM + 1)")
    fig.suptitle(f"Panel expression by {title.lower()}", fontsize=11)
    plt.tight_layout()
    out = OUT_FIG / f"fig_box_{column}.pdf"
    fig.savefig(out, bbox_inches="tight")
    plt.close(fig)
    log.info("  Saved → %s", out)


def run_subgroups(data: dict):
    log.info("Subgroup comparisons…")
    tidy = long_format(data["norm"], data["meta"], data["symbols"],
                       columns=tuple(BOX_COLUMNS))
    tables = []
    for column, (title, groups) in BOX_COLUMNS.items():
        if column not in data["meta"].columns:
            log.warning("  %s not in sample metadata — skipped", column)
            continue
        plot_boxplots(data, tidy, column, title)
        try:
            tables.append(compare_subgroups(data["norm"], data["meta"], column,
                                            groups=groups, symbols=data["symbols"]))
        except ValueError as e:
            log.warning("  %s: %s", column, e)
    if tables:
        out = OUT_TAB / "subgroup_tests.tsv"
        pd.concat(tables).to_csv(out, sep="\t", index=False, float_format="%.4g")
        log.info("  Saved → %s", out)


# ═══════════════════════════════════════════════════════════════════════════════
# SURVIVAL
# ═══════════════════════════════════════════════════════════════════════════════

def plot_km_age(data: dict):
    meta = data["meta"]
    if "survival_time" not in meta.columns:
        log.warning("No survival_time in sample metadata — KM skipped")
        return
    log.info("Plotting Kaplan-Meier by age group…")
    surv = meta[(meta["sample_type"] == "Primary Tumor")
                & meta["survival_time"].notna()
                & meta["age_group"].isin(AGE_COLORS)].copy()
    surv["event"] = surv["vital_status"] == "Dead"

    fig, ax = plt.subplots(figsize=(7, 5))
    for grp, col in AGE_COLORS.items():
        sub = surv[surv["age_group"] == grp]
        if sub.empty:
            continue
        kmf = KaplanMeierFitter()
        kmf.fit(sub["survival_time"], event_observed=sub["event"],
                label=f"Age {grp} (n={len(sub)})")
        kmf.plot_survival_function(ax=ax, ci_show=True, color=col)

    a = surv[surv["age_group"] == ">50"]
    b = surv[surv["age_group"] == "<=50"]
    title = "Kaplan-Meier — primary tumours by age group"
    if len(a) and len(b):
        lr = logrank_test(a["survival_time"], b["survival_time"],
                          event_observed_A=a["event"], event_observed_B=b["event"])
        p_str = f"p = {lr.p_value:.4f}" if lr.p_value >= 0.0001 else "p < 0.0001"
        title += f"\nLog-rank {p_str}"
        log.info("  Log-rank %s", p_str)

    ax.set_xlabel("Time (days)")
    ax.set_ylabel("Survival probability")
    ax.set_title(title, fontsize=11)
    ax.set_ylim(0, 1.05)
    ax.legend(loc="upper right", fontsize=8)
    plt.tight_layout()
    out = OUT_FIG / "fig_km_age_group.pdf"
    fig.savefig(out, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info("  Saved → %s", out)


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════════

def main():
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║              STEP 7: REPORT FIGURES                      ║")
    log.info("╚══════════════════════════════════════════════════════════╝")

    data = load_data()
    plot_pca(data)
    plot_dendrograms(data)
    plot_heatmap(data)
    run_subgroups(data)
    plot_km_age(data)

    log.info("")
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║              STEP 7 COMPLETE                             ║")
    log.info("╠══════════════════════════════════════════════════════════╣")
    log.info("║  Figures saved to results/figures/                       ║")
    log.info("║  Tables saved to results/tables/subgroup_tests.tsv       ║")
    log.info("╚══════════════════════════════════════════════════════════╝")


if __name__ == "__main__":
    main()
