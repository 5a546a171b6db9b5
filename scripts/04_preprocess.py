"""
04_preprocess.py
----------------
Turn the raw artefacts into analysis-ready tables.

Pipeline
────────
  Clinical
    1. Check that count-matrix columns and clinical rows hold the same barcodes
    2. vital_status: missing / "Not Reported" → "Unknown"
    3. sample_subtype: transcriptome subtype, "Unknown" if missing,
       "Solid Tissue Normal" for every normal-tissue sample
    4. age_group: ">50" / "<=50" / "Unknown"
    5. survival_time: days_to_death if Dead, else days_to_last_follow_up

  Genes
    1. Filter gene annotation to the 24-gene panel (one id per symbol)

  RNA-seq
    1. CPM normalisation (library size over ALL genes)
    2. log2(CPM + 1)
    3. Restrict to panel genes

Outputs  (data/processed/)
──────────────────────────
  sample_metadata.parquet
  gene_panel.parquet
  rna_panel_normalized.parquet   (24 genes × samples)

Run from project root:
  python scripts/04_preprocess.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

from gbm_panel.config import GENE_PANEL
from gbm_panel.counts import filter_gene_panel, normalize_counts
from gbm_panel.errors import PanelDataError
from gbm_panel.metadata import normalize_sample_metadata
from gbm_panel.pipeline import check_sample_alignment

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
PROCESSED = Path("data/processed")
LOG_DIR   = Path("logs")

META_OUT  = PROCESSED / "sample_metadata.parquet"
PANEL_OUT = PROCESSED / "gene_panel.parquet"
NORM_OUT  = PROCESSED / "rna_panel_normalized.parquet"

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────
LOG_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "04_preprocess.log"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def checkpoint_exists(path: Path) -> bool:
    if path.exists():
        log.info(f"CHECKPOINT HIT — skipping, already exists: {path}")
        return True
    return False


def load_raw():
    paths = {
        "counts":   PROCESSED / "rna_counts_raw.parquet",
        "clinical": PROCESSED / "clinical_raw.parquet",
        "genes":    PROCESSED / "gene_metadata.parquet",
    }
    for p in paths.values():
        if not p.exists():
            log.error(f"{p} not found — run 03_build_matrices.py first")
            sys.exit(1)
    raw = {k: pd.read_parquet(p) for k, p in paths.items()}
    log.info(f"Loaded counts {raw['counts'].shape}, clinical {raw['clinical'].shape}, "
             f"genes {raw['genes'].shape}")
    return raw


# ──────────────────────────────────────────────────────────────────────────────
# 1. Clinical
# ──────────────────────────────────────────────────────────────────────────────

def preprocess_clinical(counts: pd.DataFrame, clinical: pd.DataFrame) -> pd.DataFrame:
    log.info("=" * 60)
    log.info("PREPROCESSING CLINICAL")
    log.info("=" * 60)

    check_sample_alignment(counts, clinical)
    log.info(f"  ✓ {len(clinical)} samples aligned with the count matrix")

    meta = normalize_sample_metadata(clinical.loc[counts.columns])
    n_surv = int(meta["survival_time"].notna().sum()) if "survival_time" in meta else 0
    log.info(f"  Samples with survival time: {n_surv}/{len(meta)}")

    meta.to_parquet(META_OUT)
    log.info(f"Saved {META_OUT}")
    return meta


# ──────────────────────────────────────────────────────────────────────────────
# 2. RNA-seq
# ──────────────────────────────────────────────────────────────────────────────

def preprocess_rna(counts: pd.DataFrame, genes: pd.DataFrame) -> pd.DataFrame:
    log.info("=" * 60)
    log.info("PREPROCESSING RNA-SEQ")
    log.info("=" * 60)

    panel = filter_gene_panel(genes, GENE_PANEL)
    panel.to_parquet(PANEL_OUT)
    log.info(f"Saved {PANEL_OUT}")

    norm = normalize_counts(counts, panel)
    norm.to_parquet(NORM_OUT)
    log.info(f"Saved {NORM_OUT} ...  shape: {norm.shape}")
    log.info(f"  Value range: [{norm.values.min():.3f}, {norm.values.max():.3f}]")
    return norm


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    log.info("╔═══════════════════════════════════════════════════════╗")
    log.info("║         STEP 4: PREPROCESS CLINICAL + RNA-SEQ        ║")
    log.info("╚═══════════════════════════════════════════════════════╝")

    raw = load_raw()
    try:
        if not checkpoint_exists(META_OUT):
            preprocess_clinical(raw["counts"], raw["clinical"])
        if not checkpoint_exists(NORM_OUT) or not checkpoint_exists(PANEL_OUT):
            preprocess_rna(raw["counts"], raw["genes"])
    except PanelDataError as e:
        log.error(f"Preprocessing aborted: {e}")
        sys.exit(1)

    log.info("\n✓ Next: python scripts/05_pca.py")
