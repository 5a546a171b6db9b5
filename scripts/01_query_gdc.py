"""
01_query_gdc.py
---------------
Query the GDC API for TCGA-GBM RNA-seq (STAR - Counts) files, download them,
and fetch case-level clinical fields.

Scope
─────
  - Project:       TCGA-GBM
  - Sample types:  Primary Tumor, Solid Tissue Normal
  - Workflow:      STAR - Counts (open access)
  - Barcodes:      if metadata/sample_barcodes.txt exists, only the listed
                   sample barcodes (one per line) are queried

Outputs
───────
  metadata/manifest_rnaseq.tsv     file_id → case / sample barcode / sample type
  metadata/clinical_cases.tsv      case-level demographic + diagnosis fields
  data/raw/rnaseq/<file_id>/       one augmented STAR counts TSV per file

Run from project root:
  python scripts/01_query_gdc.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

from gbm_panel.config import PROJECT_ID, SAMPLE_TYPES
from gbm_panel.gdc import (
    download_files,
    query_cases,
    query_rnaseq_files,
    rnaseq_filters,
)

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
RAW_DIR      = Path("data/raw")
METADATA_DIR = Path("metadata")
LOG_DIR      = Path("logs")

BARCODES_IN  = METADATA_DIR / "sample_barcodes.txt"
MANIFEST_OUT = METADATA_DIR / "manifest_rnaseq.tsv"
CLINICAL_OUT = METADATA_DIR / "clinical_cases.tsv"
RNA_RAW_DIR  = RAW_DIR / "rnaseq"

METADATA_DIR.mkdir(exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

# ──────────────────────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "01_query_gdc.log"),
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


def load_barcodes() -> list | None:
    """Optional barcode scope; None means the whole project."""
    if not BARCODES_IN.exists():
        log.info(f"No {BARCODES_IN} — querying all {PROJECT_ID} samples")
        return None
    with open(BARCODES_IN) as f:
        barcodes = [line.strip() for line in f if line.strip()]
    log.info(f"Loaded {len(barcodes)} sample barcodes from {BARCODES_IN}")
    return barcodes


# ──────────────────────────────────────────────────────────────────────────────
# 1. RNA-seq manifest
# ──────────────────────────────────────────────────────────────────────────────

def build_manifest(barcodes: list | None) -> pd.DataFrame:
    log.info("=" * 60)
    log.info("RNA-SEQ MANIFEST")
    log.info("=" * 60)

    manifest = query_rnaseq_files(rnaseq_filters(PROJECT_ID, SAMPLE_TYPES, barcodes))
    if manifest.empty:
        log.error("GDC returned no RNA-seq files for this scope")
        sys.exit(1)

    log.info(f"Sample types:\n{manifest['sample_type'].value_counts().to_string()}")
    if barcodes:
        found = set(manifest["sample_barcode"])
        absent = sorted({b[:16] for b in barcodes} - found)
        if absent:
            log.warning(f"{len(absent)} requested barcodes have no STAR counts file: "
                        f"{absent[:10]}")

    manifest.to_csv(MANIFEST_OUT, sep="\t", index=False)
    log.info(f"Saved manifest -> {MANIFEST_OUT} ({len(manifest)} rows)")
    return manifest


# ──────────────────────────────────────────────────────────────────────────────
# 2. Download
# ──────────────────────────────────────────────────────────────────────────────

def download_counts(manifest: pd.DataFrame) -> None:
    log.info("=" * 60)
    log.info("DOWNLOADING STAR COUNTS")
    log.info("=" * 60)

    todo = [fid for fid in manifest["file_id"]
            if not (RNA_RAW_DIR / fid).is_dir()]
    log.info(f"{len(manifest) - len(todo)} files already present, "
             f"{len(todo)} to download")
    if todo:
        download_files(todo, RNA_RAW_DIR)


# ──────────────────────────────────────────────────────────────────────────────
# 3. Clinical
# ──────────────────────────────────────────────────────────────────────────────

def build_clinical() -> pd.DataFrame:
    log.info("=" * 60)
    log.info("CASE CLINICAL FIELDS")
    log.info("=" * 60)

    clinical = query_cases(PROJECT_ID)
    log.info(f"Vital status:\n{clinical['vital_status'].value_counts(dropna=False).to_string()}")
    clinical.to_csv(CLINICAL_OUT, sep="\t", index=False)
    log.info(f"Saved -> {CLINICAL_OUT} ({len(clinical)} rows)")
    return clinical


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    log.info("╔══════════════════════════════════════════════════════╗")
    log.info("║         STEP 1: QUERY + DOWNLOAD GDC DATA           ║")
    log.info("╚══════════════════════════════════════════════════════╝")

    if checkpoint_exists(MANIFEST_OUT):
        manifest = pd.read_csv(MANIFEST_OUT, sep="\t", dtype=str)
    else:
        manifest = build_manifest(load_barcodes())

    download_counts(manifest)

    if not checkpoint_exists(CLINICAL_OUT):
        build_clinical()

    log.info("\n✓ Next: python scripts/02_fetch_subtypes.py")
