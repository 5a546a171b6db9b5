"""
02_fetch_subtypes.py
--------------------
Transcriptome subtype labels are NOT stored in GDC clinical files.
This script fetches them from cBioPortal, which hosts the TCGA PanCancer
Atlas GBM subtype calls.

Source: cBioPortal API — Glioblastoma Multiforme (TCGA, PanCancer Atlas)
Study ID: gbm_tcga_pan_can_atlas_2018

Output: metadata/transcriptome_subtypes.tsv
Columns: patient_id, sample_id, transcriptome_subtype

Run from project root:
  python scripts/02_fetch_subtypes.py
"""

import logging
import sys
from pathlib import Path

from gbm_panel.config import SUBTYPE_ATTR_ID, SUBTYPE_STUDY_ID
from gbm_panel.gdc import fetch_cbioportal_attribute

METADATA_DIR = Path("metadata")
LOG_DIR      = Path("logs")
OUT_PATH     = METADATA_DIR / "transcriptome_subtypes.tsv"

METADATA_DIR.mkdir(exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "02_fetch_subtypes.log"),
        logging.StreamHandler(sys.stdout),
    ],
)
log = logging.getLogger(__name__)


if __name__ == "__main__":
    log.info("Fetching transcriptome subtypes from cBioPortal...")
    log.info(f"Study: {SUBTYPE_STUDY_ID}")
    log.info(f"Attribute: {SUBTYPE_ATTR_ID}")

    df = fetch_cbioportal_attribute(SUBTYPE_STUDY_ID, SUBTYPE_ATTR_ID)
    df = df.rename(columns={"value": "transcriptome_subtype"})

    # PanCancer Atlas values look like "GBM_Mesenchymal"; keep the subtype only
    df["transcriptome_subtype"] = (
        df["transcriptome_subtype"].str.replace(r"^GBM_", "", regex=True)
    )

    log.info("\nSubtype distribution:")
    log.info("\n" + df["transcriptome_subtype"].value_counts().to_string())

    df.to_csv(OUT_PATH, sep="\t", index=False)
    log.info(f"\nSaved -> {OUT_PATH} ({len(df)} rows)")
    log.info("\n✓ Next: python scripts/03_build_matrices.py")
