"""
GDC / cBioPortal retrieval helpers used by the step scripts.

Barcode helpers, GDC filter builders, hit flatteners and the STAR counts
parser. HTTP calls go through requests with a timeout and
raise_for_status(); failures propagate to the calling script.
"""

import io
import json
import logging
import tarfile
from pathlib import Path

import pandas as pd
import requests

from .config import (
    CBIOPORTAL_API,
    GDC_CASES_ENDPOINT,
    GDC_DATA_ENDPOINT,
    GDC_FILES_ENDPOINT,
    HTTP_TIMEOUT,
    PROJECT_ID,
    SAMPLE_TYPES,
)

log = logging.getLogger(__name__)

# ──────────────────────────────────────────────────────────────────────────────
# Barcodes
# ──────────────────────────────────────────────────────────────────────────────

def patient_id(barcode: str) -> str:
    """12-char patient ID from a TCGA barcode (TCGA-XX-XXXX-...)."""
    return "-".join(barcode.split("-")[:3])


def sample_barcode(barcode: str) -> str:
    """16-char sample barcode (TCGA-XX-XXXX-01A) from any longer barcode."""
    return "-".join(barcode.split("-")[:4])


def tissue_source_site(barcode: str) -> str:
    """Tissue Source Site code, field 2 of the barcode ('TCGA-06-0125' → '06')."""
    parts = barcode.split("-")
    return parts[1] if len(parts) > 1 else "UNK"


# ──────────────────────────────────────────────────────────────────────────────
# Filters
# ──────────────────────────────────────────────────────────────────────────────

def eq_filter(field: str, value) -> dict:
    return {"op": "=", "content": {"field": field, "value": value}}


def in_filter(field: str, values) -> dict:
    return {"op": "in", "content": {"field": field, "value": list(values)}}


def and_filter(*filters: dict) -> dict:
    return {"op": "and", "content": list(filters)}


def rnaseq_filters(project_id: str = PROJECT_ID,
                   sample_types=SAMPLE_TYPES,
                   barcodes=None) -> dict:
    """Open-access STAR - Counts files for the project, optionally scoped to barcodes."""
    filters = [
        eq_filter("cases.project.project_id", project_id),
        in_filter("cases.samples.sample_type", sample_types),
        eq_filter("access", "open"),
        eq_filter("data_category", "Transcriptome Profiling"),
        eq_filter("data_type", "Gene Expression Quantification"),
        eq_filter("experimental_strategy", "RNA-Seq"),
        eq_filter("analysis.workflow_type", "STAR - Counts"),
    ]
    if barcodes:
        filters.append(in_filter("cases.samples.submitter_id",
                                 sorted({sample_barcode(b) for b in barcodes})))
    return and_filter(*filters)


RNASEQ_FIELDS = [
    "file_id", "file_name", "cases.case_id", "cases.submitter_id",
    "cases.samples.sample_type", "cases.samples.submitter_id",
]

CASE_FIELDS = [
    "case_id", "submitter_id",
    "demographic.gender", "demographic.race", "demographic.age_at_index",
    "demographic.vital_status", "demographic.days_to_death",
    "diagnoses.vital_status", "diagnoses.days_to_death",
    "diagnoses.days_to_last_follow_up",
]


# ──────────────────────────────────────────────────────────────────────────────
# Hit flattening
# ──────────────────────────────────────────────────────────────────────────────

def flatten_file_hit(hit: dict) -> dict:
    """One manifest row per file: ids plus the first case/sample."""
    row = {"file_id": hit["file_id"], "file_name": hit.get("file_name", "")}
    cases = hit.get("cases", [])
    if cases:
        case = cases[0]
        row["case_id"] = case.get("case_id", "")
        row["patient_id"] = case.get("submitter_id", "")
        samples = case.get("samples", [])
        if samples:
            row["sample_type"] = samples[0].get("sample_type", "")
            row["sample_barcode"] = samples[0].get("submitter_id", "")
    return row


def flatten_case(hit: dict) -> dict:
    """
    Case-level clinical fields. Newer GDC releases keep vital_status and
    days_to_death under demographic; older ones under diagnoses.
    """
    demo = hit.get("demographic") or {}
    diags = hit.get("diagnoses") or [{}]
    diag = diags[0] if diags else {}

    def pick(field):
        value = demo.get(field)
        return diag.get(field) if value is None else value

    return {
        "case_id": hit.get("case_id", ""),
        "patient_id": hit.get("submitter_id", ""),
        "gender": demo.get("gender"),
        "race": demo.get("race"),
        "age_at_index": demo.get("age_at_index"),
        "vital_status": pick("vital_status"),
        "days_to_death": pick("days_to_death"),
        "days_to_last_follow_up": diag.get("days_to_last_follow_up"),
    }


# ──────────────────────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────────────────────

def query_gdc(endpoint: str, filters: dict, fields, label: str,
              size: int = 5000) -> list:
    """Single-page GDC query; warns if the page did not hold every hit."""
    params = {
        "filters": json.dumps(filters),
        "fields": ",".join(fields),
        "format": "JSON",
        "size": size,
    }
    log.info(f"[{label}] Querying {endpoint} ...")
    response = requests.get(endpoint, params=params, timeout=HTTP_TIMEOUT)
    response.raise_for_status()

    data = response.json()["data"]
    hits = data["hits"]
    total = data["pagination"]["total"]
    log.info(f"[{label}] Total hits: {total} (retrieved: {len(hits)})")
    if len(hits) < total:
        log.warning(f"[{label}] retrieved {len(hits)} of {total}. Increase size.")
    return hits


def query_rnaseq_files(filters: dict, size: int = 5000) -> pd.DataFrame:
    hits = query_gdc(GDC_FILES_ENDPOINT, filters, RNASEQ_FIELDS, "RNA-seq", size)
    return pd.DataFrame([flatten_file_hit(h) for h in hits])


def query_cases(project_id: str = PROJECT_ID, size: int = 5000) -> pd.DataFrame:
    hits = query_gdc(GDC_CASES_ENDPOINT,
                     eq_filter("project.project_id", project_id),
                     CASE_FIELDS, "Clinical", size)
    return pd.DataFrame([flatten_case(h) for h in hits])


def download_files(file_ids, dest: Path, chunk: int = 50) -> int:
    """
    Download files through the GDC /data endpoint into dest/<file_id>/.
    Multi-file requests come back as a tar.gz whose members are already
    laid out as <file_id>/<file_name>.
    """
    file_ids = list(file_ids)
    dest.mkdir(parents=True, exist_ok=True)
    n_done = 0
    for start in range(0, len(file_ids), chunk):
        batch = file_ids[start:start + chunk]
        response = requests.post(GDC_DATA_ENDPOINT,
                                 data=json.dumps({"ids": batch}),
                                 headers={"Content-Type": "application/json"},
                                 timeout=HTTP_TIMEOUT * 10)
        response.raise_for_status()

        if len(batch) == 1:
            name = _attachment_name(response) or f"{batch[0]}.tsv"
            out_dir = dest / batch[0]
            out_dir.mkdir(exist_ok=True)
            (out_dir / name).write_bytes(response.content)
        else:
            with tarfile.open(fileobj=io.BytesIO(response.content), mode="r:gz") as tar:
                tar.extractall(dest, filter="data")
        n_done += len(batch)
        log.info(f"  Downloaded {n_done}/{len(file_ids)} files")
    return n_done


def _attachment_name(response) -> str | None:
    disposition = response.headers.get("Content-Disposition", "")
    if "filename=" in disposition:
        return disposition.split("filename=")[-1].strip('"; ')
    return None


def fetch_cbioportal_attribute(study_id: str, attribute_id: str) -> pd.DataFrame:
    """
    One clinical attribute for every sample of a cBioPortal study.
    Falls back to PATIENT-level data when the study has no SAMPLE-level values.
    """
    url = f"{CBIOPORTAL_API}/studies/{study_id}/clinical-data"
    params = {
        "clinicalDataType": "SAMPLE",
        "attributeId": attribute_id,
        "projection": "SUMMARY",
        "pageSize": 10000,
        "pageNumber": 0,
    }
    response = requests.get(url, params=params, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    data = response.json()
    log.info(f"Records returned (sample level): {len(data)}")

    if len(data) == 0:
        log.info("No SAMPLE-level data. Trying PATIENT level...")
        params["clinicalDataType"] = "PATIENT"
        response = requests.get(url, params=params, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
        data = response.json()
        log.info(f"Records returned (patient level): {len(data)}")

    return pd.DataFrame([
        {"patient_id": r.get("patientId", ""),
         "sample_id": r.get("sampleId", ""),
         "value": r.get("value", "")}
        for r in data
    ])


# ──────────────────────────────────────────────────────────────────────────────
# STAR counts
# ──────────────────────────────────────────────────────────────────────────────

def parse_star_counts(path: Path) -> pd.DataFrame:
    """
    Parse a GDC augmented STAR gene counts TSV.
    Skips the leading '#' comment line and the four N_* summary rows.
    Returns gene_id-indexed frame with gene_name, gene_type, unstranded.
    """
    df = pd.read_csv(
        path, sep="\t", comment="#",
        usecols=lambda c: c in {"gene_id", "gene_name", "gene_type", "unstranded"},
        dtype={"gene_id": str, "gene_name": str, "gene_type": str},
    )
    df = df.loc[~df["gene_id"].str.startswith("N_")].copy()
    df["unstranded"] = df["unstranded"].astype("int64")
    return df.set_index("gene_id")
