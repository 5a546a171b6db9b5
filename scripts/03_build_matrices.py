"""
03_build_matrices.py
--------------------
Parse the downloaded STAR count files and build the three raw artefacts the
analysis core consumes:
  1. RNA-seq     → genes × samples  (unstranded STAR counts)
  2. Gene table  → genes × {gene_name, gene_type}
  3. Clinical    → samples × fields (sample type, case fields, subtype)

Format notes:
  - STAR counts: TSV, skip '#' comment line + 4 N_* summary rows, use 'unstranded'
  - Every STAR file carries the same gene_id / gene_name / gene_type columns;
    the gene table is taken from the first parsed file

ID mapping:
  - Files live in data/raw/rnaseq/<file_uuid>/<filename>
  - metadata/manifest_rnaseq.tsv maps file_id → sample barcode (TCGA-XX-XXXX-01A)
  - Case clinical fields join on patient ID = first 12 chars of the barcode
  - If a sample has several files (duplicate aliquots), keep the first only

Outputs (data/processed/):
  - rna_counts_raw.parquet      (genes × samples, raw counts)
  - gene_metadata.parquet       (genes × annotation)
  - clinical_raw.parquet        (samples × clinical fields)

Run from project root:
  python scripts/03_build_matrices.py
"""

import logging
import sys
from pathlib import Path

import pandas as pd

from gbm_panel.gdc import parse_star_counts, patient_id, tissue_source_site

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
RAW_DIR      = Path("data/raw")
PROCESSED    = Path("data/processed")
METADATA_DIR = Path("metadata")
LOG_DIR      = Path("logs")

PROCESSED.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(exist_ok=True)

RNA_OUT      = PROCESSED / "rna_counts_raw.parquet"
GENES_OUT    = PROCESSED / "gene_metadata.parquet"
CLINICAL_OUT = PROCESSED / "clinical_raw.parquet"

NUMERIC_COLS = ["age_at_index", "days_to_death", "days_to_last_follow_up"]

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.FileHandler(LOG_DIR / "03_build_matrices.log"),
        logging.StreamHandler(sys.stdout),
    ]
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


def load_manifest() -> pd.DataFrame:
    """
    Load the RNA-seq manifest, one row per sample barcode.
    Handles duplicate aliquots by keeping only the first file per sample.
    """
    path = METADATA_DIR / "manifest_rnaseq.tsv"
    if not path.exists():
        log.error(f"{path} not found — run 01_query_gdc.py first")
        sys.exit(1)
    df = pd.read_csv(path, sep="\t", dtype=str)
    df = df.dropna(subset=["file_id", "sample_barcode"])
    n_before = len(df)
    df = df.drop_duplicates(subset="sample_barcode", keep="first")
    if len(df) < n_before:
        log.info(f"Dropped {n_before - len(df)} duplicate aliquot files")
    return df


# ──────────────────────────────────────────────────────────────────────────────
# 1. RNA-seq matrix + gene table
# ──────────────────────────────────────────────────────────────────────────────

def build_rna_matrix(manifest: pd.DataFrame):
    log.info("=" * 60)
    log.info("BUILDING RNA-SEQ MATRIX")
    log.info("=" * 60)

    id_map = dict(zip(manifest["file_id"], manifest["sample_barcode"]))
    log.info(f"Manifest: {len(id_map)} samples mapped")

    rna_dir = RAW_DIR / "rnaseq"
    columns = {}   # sample barcode → pd.Series(gene_id → count)
    genes = None
    skipped = 0

    for i, (file_id, barcode) in enumerate(id_map.items()):
        tsv_files = list((rna_dir / file_id).glob("*.rna_seq.augmented_star_gene_counts.tsv"))
        if not tsv_files:
            tsv_files = list((rna_dir / file_id).glob("*.tsv"))
        if not tsv_files:
            log.warning(f"No TSV found for {file_id} ({barcode})")
            skipped += 1
            continue

        df = parse_star_counts(tsv_files[0])
        columns[barcode] = df["unstranded"]
        if genes is None:
            genes = df[["gene_name", "gene_type"]]

        if (i + 1) % 50 == 0:
            log.info(f"  RNA-seq: processed {i+1}/{len(id_map)} files...")

    if not columns:
        log.error("No STAR count files could be parsed")
        sys.exit(1)

    log.info(f"Loaded {len(columns)} samples, skipped {skipped}")
    matrix = pd.DataFrame(columns)  # genes × samples
    n_missing = int(matrix.isnull().sum().sum())
    if n_missing:
        log.error(f"{n_missing} missing counts — STAR files disagree on gene set")
        sys.exit(1)
    matrix = matrix.astype("int64")
    log.info(f"RNA-seq matrix shape: {matrix.shape}")

    matrix.to_parquet(RNA_OUT)
    log.info(f"Saved -> {RNA_OUT}")
    genes.to_parquet(GENES_OUT)
    log.info(f"Saved -> {GENES_OUT}  ({len(genes):,} genes)")
    return matrix


# ──────────────────────────────────────────────────────────────────────────────
# 2. Clinical table (one row per sample)
# ──────────────────────────────────────────────────────────────────────────────

def build_clinical(manifest: pd.DataFrame, samples: list) -> pd.DataFrame:
    log.info("=" * 60)
    log.info("BUILDING CLINICAL TABLE")
    log.info("=" * 60)

    clin = (manifest.set_index("sample_barcode")
                    .loc[samples, ["sample_type"]]
                    .copy())
    clin.index.name = "sample_barcode"
    clin["patient_id"] = [patient_id(b) for b in clin.index]
    clin["tissue_source_site"] = [tissue_source_site(b) for b in clin.index]

    cases = pd.read_csv(METADATA_DIR / "clinical_cases.tsv", sep="\t", dtype=str)
    cases = cases.drop_duplicates(subset="patient_id").drop(columns=["case_id"])
    clin = clin.reset_index().merge(cases, on="patient_id", how="left")

    subtype_path = METADATA_DIR / "transcriptome_subtypes.tsv"
    if subtype_path.exists():
        subtypes = (pd.read_csv(subtype_path, sep="\t", dtype=str)
                      .drop_duplicates(subset="patient_id")
                      [["patient_id", "transcriptome_subtype"]])
        clin = clin.merge(subtypes, on="patient_id", how="left")
    else:
        log.warning(f"{subtype_path} not found — subtype will be 'Unknown' "
                    f"(run 02_fetch_subtypes.py)")
        clin["transcriptome_subtype"] = pd.NA

    clin = clin.set_index("sample_barcode")
    for col in NUMERIC_COLS:
        clin[col] = pd.to_numeric(clin[col], errors="coerce")

    log.info(f"Clinical table shape: {clin.shape}")
    log.info(f"Sample types:\n{clin['sample_type'].value_counts().to_string()}")
    log.info(f"Patients without case record: "
             f"{int(clin['vital_status'].isna().sum())}")

    clin.to_parquet(CLINICAL_OUT)
    log.info(f"Saved -> {CLINICAL_OUT}")
    return clin


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    log.info("╔══════════════════════════════════════════════════════╗")
    log.info("║         STEP 3: BUILD MATRICES                      ║")
    log.info("╚══════════════════════════════════════════════════════╝")

    manifest = load_manifest()

    if checkpoint_exists(RNA_OUT) and checkpoint_exists(GENES_OUT):
        samples = pd.read_parquet(RNA_OUT).columns.tolist()
    else:
        samples = build_rna_matrix(manifest).columns.tolist()

    if not checkpoint_exists(CLINICAL_OUT):
        build_clinical(manifest, samples)

    log.info("\n✓ All matrices built. Next: python scripts/04_preprocess.py")
