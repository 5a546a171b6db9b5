"""
Shared analysis constants for the TCGA-GBM panel analysis.

Step scripts keep their own paths; everything that changes the numbers
(gene panel, seed, normalisation constants, cluster counts) lives here so
the scripts and the core package agree on them.
"""

# ──────────────────────────────────────────────────────────────────────────────
# Cohort
# ──────────────────────────────────────────────────────────────────────────────
PROJECT_ID   = "TCGA-GBM"
SAMPLE_TYPES = ("Primary Tumor", "Solid Tissue Normal")
NORMAL_SAMPLE_TYPE = "Solid Tissue Normal"

# 24 candidate genes (HGNC symbols) selected a priori for the analysis
GENE_PANEL = (
    "EGFR", "PTEN", "TP53", "IDH1", "IDH2", "PDGFRA",
    "CDKN2A", "CDK4", "MDM2", "NF1", "PIK3CA", "PIK3R1",
    "RB1", "MGMT", "ATRX", "TERT", "MET", "SOX2",
    "OLIG2", "GFAP", "VEGFA", "CHI3L1", "PROM1", "NES",
)

# ──────────────────────────────────────────────────────────────────────────────
# Normalisation / analysis
# ──────────────────────────────────────────────────────────────────────────────
CPM_SCALE    = 1_000_000    # counts-per-million scale factor
PSEUDOCOUNT  = 1.0          # added before log2
AGE_CUTOFF   = 50           # age_group: ">50" vs "<=50"
UNKNOWN      = "Unknown"    # sentinel for missing categorical metadata

SEED         = 42
VAR_THRESHOLD = 0.90        # cumulative variance target for n_pc
K_GENES      = 4            # flat groups cut from the gene tree
K_SAMPLES    = 2            # flat groups cut from the sample tree
LINKAGE_METHOD = "complete"
DISTANCE_METRIC = "euclidean"

# ──────────────────────────────────────────────────────────────────────────────
# Remote endpoints
# ──────────────────────────────────────────────────────────────────────────────
GDC_FILES_ENDPOINT = "https://api.gdc.cancer.gov/files"
GDC_CASES_ENDPOINT = "https://api.gdc.cancer.gov/cases"
GDC_DATA_ENDPOINT  = "https://api.gdc.cancer.gov/data"
CBIOPORTAL_API     = "https://www.cbioportal.org/api"
SUBTYPE_STUDY_ID   = "gbm_tcga_pan_can_atlas_2018"
SUBTYPE_ATTR_ID    = "SUBTYPE"
HTTP_TIMEOUT       = 60     # seconds
