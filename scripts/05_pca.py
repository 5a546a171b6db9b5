"""
05_pca.py
---------
PCA of the 24-gene panel, samples as observations.

Pipeline
────────
  1. Load rna_panel_normalized.parquet (genes × samples) + sample metadata
  2. Transpose → samples × genes, z-score each gene, full PCA
     (n_components = min(samples, genes))
  3. Variance explained per component, cumulative variance, n_pc(0.90)
  4. Top-loading genes on the leading components
  5. η² of each component against tissue type and tissue source site
     (TSS, batch proxy). Decision rule, as for the batch check:
       η² < 0.02  → OK
       0.02–0.05  → weak TSS signal (warning)
       ≥ 0.05     → TSS structure in that PC (warning, reported in table)

Outputs
───────
  data/processed/
    pca_scores.parquet        samples × PCs
    pca_loadings.parquet      genes × PCs (gene symbol column added)
  results/tables/
    pca_variance.tsv          variance / ratio / cumulative per PC
    pca_top_genes.tsv         top loadings on PC1..PC{N_TOP_PCS}
    pca_eta2.tsv              η² per PC for tissue type and TSS

Run from project root:
  python scripts/05_pca.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

from gbm_panel.config import SEED, VAR_THRESHOLD
from gbm_panel.errors import PanelDataError
from gbm_panel.pca import eta_squared, run_pca

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
N_TOP_PCS    = 3      # components reported in pca_top_genes.tsv
N_TOP_GENES  = 10     # genes per component
TSS_ETA2_WARN    = 0.02
TSS_ETA2_FLAG    = 0.05

PROCESSED = Path("data/processed")
TABLE_OUT = Path("results/tables")
LOG_DIR   = Path("logs")
TABLE_OUT.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

SCORES_OUT   = PROCESSED / "pca_scores.parquet"
LOADINGS_OUT = PROCESSED / "pca_loadings.parquet"

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "05_pca.log"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def top_gene_table(result, symbols: pd.Series) -> pd.DataFrame:
    rows = []
    for pc in result.loadings.columns[:N_TOP_PCS]:
        for rank, (gene_id, weight) in enumerate(
                result.top_genes(pc, N_TOP_GENES).items(), start=1):
            rows.append({
                "component": pc,
                "rank": rank,
                "gene_id": gene_id,
                "gene_name": symbols.get(gene_id, gene_id),
                "loading": weight,
            })
    return pd.DataFrame(rows)


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║              STEP 5: PCA OF THE GENE PANEL               ║")
    log.info("╚══════════════════════════════════════════════════════════╝")

    norm = pd.read_parquet(PROCESSED / "rna_panel_normalized.parquet")
    meta = pd.read_parquet(PROCESSED / "sample_metadata.parquet")
    panel = pd.read_parquet(PROCESSED / "gene_panel.parquet")
    symbols = panel["gene_name"]
    log.info(f"  Normalised panel: {norm.shape}   metadata: {meta.shape}")

    try:
        result = run_pca(norm, seed=SEED)
    except PanelDataError as e:
        log.error(f"PCA aborted: {e}")
        sys.exit(1)

    # ── Variance explained ────────────────────────────────────────────────────
    var_table = result.variance_table()
    n_keep = result.n_pc(VAR_THRESHOLD)
    log.info("")
    log.info("=" * 60)
    log.info("VARIANCE EXPLAINED")
    log.info("=" * 60)
    for pc, row in var_table.head(10).iterrows():
        log.info(f"  {pc:5s}  {row['ratio']*100:5.1f}%   cumulative {row['cumulative']*100:5.1f}%")
    log.info(f"  Components needed for ≥ {VAR_THRESHOLD:.0%} variance: {n_keep}")

    # ── Top loadings ─────────────────────────────────────────────────────────
    top = top_gene_table(result, symbols)
    for pc in result.loadings.columns[:N_TOP_PCS]:
        genes = top.loc[top["component"] == pc, "gene_name"].head(5).tolist()
        log.info(f"  {pc} top genes: {', '.join(genes)}")

    # ── η² vs tissue type / TSS ──────────────────────────────────────────────
    log.info("")
    log.info("=" * 60)
    log.info("η² OF COMPONENTS VS SAMPLE GROUPINGS")
    log.info("=" * 60)
    eta2 = pd.DataFrame({
        "sample_type": eta_squared(result.scores, meta["sample_type"]),
        "tissue_source_site": eta_squared(result.scores, meta["tissue_source_site"]),
    })
    for pc in eta2.index[:n_keep]:
        tss = eta2.loc[pc, "tissue_source_site"]
        msg = (f"  {pc}: η²(sample_type)={eta2.loc[pc, 'sample_type']:.3f}  "
               f"η²(TSS)={tss:.3f}")
        if tss >= TSS_ETA2_FLAG:
            log.warning(msg + f"  ⚠ TSS structure (≥ {TSS_ETA2_FLAG})")
        elif tss >= TSS_ETA2_WARN:
            log.warning(msg + "  weak TSS signal")
        else:
            log.info(msg)

    # ── Save ──────────────────────────────────────────────────────────────────
    result.scores.to_parquet(SCORES_OUT)
    loadings = result.loadings.copy()
    loadings.insert(0, "gene_name", symbols.reindex(loadings.index))
    loadings.to_parquet(LOADINGS_OUT)
    var_table.to_csv(TABLE_OUT / "pca_variance.tsv", sep="\t", float_format="%.6f")
    top.to_csv(TABLE_OUT / "pca_top_genes.tsv", sep="\t", index=False, float_format="%.4f")
    eta2.to_csv(TABLE_OUT / "pca_eta2.tsv", sep="\t", float_format="%.4f")
    log.info(f"  Saved → {SCORES_OUT}, {LOADINGS_OUT}, {TABLE_OUT}/pca_*.tsv")

    log.info("")
    log.info("╔══════════════════════════════════════════════════════════╗")
    log.info("║                    PCA COMPLETE                          ║")
    log.info("╠══════════════════════════════════════════════════════════╣")
    log.info(f"║  Samples × genes:       {norm.shape[1]} × {norm.shape[0]}")
    log.info(f"║  PC1 variance:          {var_table['ratio'].iloc[0]*100:.1f}%")
    log.info(f"║  n_pc(≥{VAR_THRESHOLD:.0%}):           {n_keep}")
    log.info("╚══════════════════════════════════════════════════════════╝")
    log.info("\n✓ Next: python scripts/06_clustering.py")
