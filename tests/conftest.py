"""
Shared fixtures: a small synthetic TCGA-GBM-like cohort.
"""
import numpy as np
import pandas as pd
import pytest

TEST_PANEL = ["EGFR", "PTEN", "TP53", "IDH1", "MGMT", "SOX2"]

TUMOR_BARCODES = [f"TCGA-06-{i:04d}-01A" for i in range(1, 6)]
NORMAL_BARCODES = [f"TCGA-14-{i:04d}-11A" for i in range(1, 4)]


@pytest.fixture
def panel():
    return list(TEST_PANEL)


@pytest.fixture
def raw_genes():
    """Gene annotation: panel genes, a PAR_Y duplicate of SOX2 and background genes."""
    rows = [(f"ENSG{i:011d}.1", sym, "protein_coding")
            for i, sym in enumerate(TEST_PANEL, start=1)]
    rows.append(("ENSG00000000006.1_PAR_Y", "SOX2", "protein_coding"))
    rows += [(f"ENSG{i:011d}.1", f"BG{i}", "lncRNA") for i in range(100, 110)]
    df = pd.DataFrame(rows, columns=["gene_id", "gene_name", "gene_type"])
    return df.set_index("gene_id")


@pytest.fixture
def raw_counts(raw_genes):
    """Genes × samples STAR counts; panel genes higher in tumours."""
    rng = np.random.default_rng(42)
    samples = TUMOR_BARCODES + NORMAL_BARCODES
    counts = rng.negative_binomial(n=10, p=0.3, size=(len(raw_genes), len(samples)))
    counts[:6, :5] = counts[:6, :5] * 4 + 50
    df = pd.DataFrame(counts, index=raw_genes.index, columns=samples)
    df.index.name = "gene_id"
    return df


@pytest.fixture
def raw_clinical():
    """Per-sample clinical table as written by 03_build_matrices.py."""
    samples = TUMOR_BARCODES + NORMAL_BARCODES
    df = pd.DataFrame({
        "sample_type": ["Primary Tumor"] * 5 + ["Solid Tissue Normal"] * 3,
        "gender": ["male", "female", "male", "female", "male",
                   "female", "male", "female"],
        "age_at_index": [45, 50, 51, 72, np.nan, 38, 66, 55],
        "vital_status": ["Dead", "Alive", "Not Reported", None, "Dead",
                         "Alive", "Dead", "Alive"],
        "days_to_death": [400, np.nan, np.nan, np.nan, 120, np.nan, 900, np.nan],
        "days_to_last_follow_up": [np.nan, 800, 300, np.nan, np.nan, 1500, np.nan, 60],
        "transcriptome_subtype": ["Classical", "Mesenchymal", None, "Proneural",
                                  "", "Mesenchymal", None, "Neural"],
    }, index=pd.Index(samples, name="sample_barcode"))
    return df


@pytest.fixture
def two_group_panel():
    """
    24 genes × 6 samples, log scale: 3 normals uniformly low, 3 tumours
    uniformly high on every gene, plus small gene-specific jitter.
    """
    rng = np.random.default_rng(7)
    genes = [f"G{i:02d}" for i in range(24)]
    samples = ["T1", "T2", "T3", "N1", "N2", "N3"]
    base = np.array([10.0, 10.0, 10.0, 2.0, 2.0, 2.0])
    values = base + rng.normal(0, 0.05, size=(24, 6))
    return pd.DataFrame(values, index=genes, columns=samples)
