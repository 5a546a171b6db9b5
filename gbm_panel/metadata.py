"""
Per-sample clinical metadata cleaning.

Input is the raw clinical table built by 03_build_matrices.py (one row per
sample barcode). The output is a new DataFrame with three cleaned/derived
categorical fields (vital_status, sample_subtype, age_group) plus the
survival time used by the Kaplan-Meier figure. Missing categorical values
become the "Unknown" sentinel; nothing here is fatal.
"""

import logging

import numpy as np
import pandas as pd

from .config import AGE_CUTOFF, NORMAL_SAMPLE_TYPE, UNKNOWN
from .gdc import tissue_source_site

log = logging.getLogger(__name__)

SUBTYPE_COL = "transcriptome_subtype"


def _is_blank(values: pd.Series) -> np.ndarray:
    """True where a value is missing or an empty string."""
    as_str = values.astype("string").fillna("").str.strip()
    return as_str.eq("").to_numpy(dtype=bool)


def clean_vital_status(values: pd.Series) -> pd.Series:
    """Absent or "Not Reported…" vital status → "Unknown"."""
    as_str = values.astype("string").fillna("")
    not_reported = as_str.str.startswith("Not Reported").to_numpy(dtype=bool)
    out = values.astype(object).copy()
    out.loc[_is_blank(values) | not_reported] = UNKNOWN
    return out


def derive_sample_subtype(subtype: pd.Series, sample_type: pd.Series) -> pd.Series:
    """
    Reported subtype, "Unknown" when missing, forced to "Solid Tissue Normal"
    for normal tissue samples whatever the reported value.
    """
    out = subtype.astype(object).copy()
    out.loc[_is_blank(subtype)] = UNKNOWN
    out.loc[(sample_type == NORMAL_SAMPLE_TYPE).to_numpy(dtype=bool)] = NORMAL_SAMPLE_TYPE
    return out


def derive_age_group(age: pd.Series, cutoff: float = AGE_CUTOFF) -> pd.Series:
    """">50" / "<=50" / "Unknown" from age at index."""
    age = pd.to_numeric(age, errors="coerce")
    groups = np.select(
        [age > cutoff, age <= cutoff],
        [f">{cutoff}", f"<={cutoff}"],
        default=UNKNOWN,
    )
    return pd.Series(groups, index=age.index, dtype=object)


def derive_survival_time(vital_status: pd.Series,
                         days_to_death: pd.Series,
                         days_to_last_follow_up: pd.Series) -> pd.Series:
    """Days to death for Dead samples, days to last follow-up otherwise."""
    dtd  = pd.to_numeric(days_to_death, errors="coerce")
    dtlf = pd.to_numeric(days_to_last_follow_up, errors="coerce")
    return pd.Series(
        np.where(vital_status == "Dead", dtd, dtlf),
        index=vital_status.index,
        dtype="float64",
    )


def normalize_sample_metadata(raw: pd.DataFrame,
                              age_cutoff: float = AGE_CUTOFF) -> pd.DataFrame:
    """
    Return a cleaned copy of the raw per-sample clinical table.

    raw must be indexed by sample barcode and carry at least ``sample_type``.
    ``vital_status``, ``transcriptome_subtype`` and ``age_at_index`` are
    treated as all-missing when the column is absent.
    """
    if "sample_type" not in raw.columns:
        raise KeyError("raw clinical table has no 'sample_type' column")

    meta = raw.copy()
    missing_col = pd.Series(np.nan, index=meta.index, dtype=object)

    meta["vital_status"] = clean_vital_status(
        meta["vital_status"] if "vital_status" in meta else missing_col
    )
    meta["sample_subtype"] = derive_sample_subtype(
        meta[SUBTYPE_COL] if SUBTYPE_COL in meta else missing_col,
        meta["sample_type"],
    )
    meta["age_group"] = derive_age_group(
        meta["age_at_index"] if "age_at_index" in meta else missing_col,
        cutoff=age_cutoff,
    )

    if {"days_to_death", "days_to_last_follow_up"} <= set(meta.columns):
        meta["survival_time"] = derive_survival_time(
            meta["vital_status"],
            meta["days_to_death"],
            meta["days_to_last_follow_up"],
        )

    if "tissue_source_site" not in meta.columns:
        meta["tissue_source_site"] = [tissue_source_site(b) for b in meta.index]

    log.info(f"  Sample metadata: {len(meta)} samples")
    log.info(f"  age_group:      {meta['age_group'].value_counts().to_dict()}")
    log.info(f"  sample_subtype: {meta['sample_subtype'].value_counts().to_dict()}")
    log.info(f"  vital_status:   {meta['vital_status'].value_counts().to_dict()}")
    return meta
