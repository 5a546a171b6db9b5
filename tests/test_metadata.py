"""
Sample metadata normalisation tests.
"""
import numpy as np
import pandas as pd
import pytest

from gbm_panel.metadata import (
    clean_vital_status,
    derive_age_group,
    derive_sample_subtype,
    derive_survival_time,
    normalize_sample_metadata,
)


class TestAgeGroup:
    """Age-group partition around the cutoff."""

    def test_boundaries(self):
        ages = pd.Series([49, 50, 50.5, 51, 80])
        assert derive_age_group(ages).tolist() == ["<=50", "<=50", ">50", ">50", ">50"]

    def test_missing_and_unparseable_are_unknown(self):
        ages = pd.Series([np.nan, None, "not a number", 30], dtype=object)
        assert derive_age_group(ages).tolist() == ["Unknown", "Unknown", "Unknown", "<=50"]

    def test_custom_cutoff(self):
        ages = pd.Series([59, 60, 61])
        assert derive_age_group(ages, cutoff=60).tolist() == ["<=60", "<=60", ">60"]

    def test_every_sample_in_exactly_one_group(self, raw_clinical):
        groups = derive_age_group(raw_clinical["age_at_index"])
        assert set(groups) <= {">50", "<=50", "Unknown"}
        assert len(groups) == len(raw_clinical)


class TestSubtypeAndVitalStatus:

    def test_normal_tissue_overrides_reported_subtype(self):
        subtype = pd.Series(["Mesenchymal", None, "Classical"])
        sample_type = pd.Series(["Solid Tissue Normal", "Solid Tissue Normal", "Primary Tumor"])
        out = derive_sample_subtype(subtype, sample_type)
        assert out.tolist() == ["Solid Tissue Normal", "Solid Tissue Normal", "Classical"]

    def test_missing_subtype_is_unknown(self):
        subtype = pd.Series([None, "", "  ", "Proneural"])
        sample_type = pd.Series(["Primary Tumor"] * 4)
        assert derive_sample_subtype(subtype, sample_type).tolist() == [
            "Unknown", "Unknown", "Unknown", "Proneural"]

    def test_vital_status_cleaning(self):
        values = pd.Series(["Dead", "Alive", "Not Reported", None, ""])
        assert clean_vital_status(values).tolist() == [
            "Dead", "Alive", "Unknown", "Unknown", "Unknown"]


class TestSurvivalTime:

    def test_dead_uses_days_to_death(self):
        vital = pd.Series(["Dead", "Alive", "Unknown"])
        dtd = pd.Series([100, np.nan, 5])
        dtlf = pd.Series([np.nan, 250, np.nan])
        out = derive_survival_time(vital, dtd, dtlf)
        assert out.iloc[0] == 100
        assert out.iloc[1] == 250
        assert np.isnan(out.iloc[2])


class TestNormalizeSampleMetadata:

    def test_derived_columns(self, raw_clinical):
        meta = normalize_sample_metadata(raw_clinical)
        for col in ("vital_status", "sample_subtype", "age_group",
                    "survival_time", "tissue_source_site"):
            assert col in meta.columns
        assert meta.index.equals(raw_clinical.index)

    def test_values(self, raw_clinical):
        meta = normalize_sample_metadata(raw_clinical)
        row = meta.loc["TCGA-06-0003-01A"]
        assert row["vital_status"] == "Unknown"
        assert row["sample_subtype"] == "Unknown"
        assert row["age_group"] == ">50"
        assert meta.loc["TCGA-06-0005-01A", "age_group"] == "Unknown"
        assert meta.loc["TCGA-14-0001-11A", "sample_subtype"] == "Solid Tissue Normal"
        assert meta.loc["TCGA-06-0001-01A", "survival_time"] == 400
        assert meta.loc["TCGA-06-0002-01A", "survival_time"] == 800
        assert meta["tissue_source_site"].tolist() == ["06"] * 5 + ["14"] * 3

    def test_input_not_mutated(self, raw_clinical):
        before = raw_clinical.copy()
        normalize_sample_metadata(raw_clinical)
        pd.testing.assert_frame_equal(raw_clinical, before)

    def test_absent_optional_columns(self):
        raw = pd.DataFrame({"sample_type": ["Primary Tumor", "Solid Tissue Normal"]},
                           index=["TCGA-02-0001-01A", "TCGA-02-0002-11A"])
        meta = normalize_sample_metadata(raw)
        assert meta["vital_status"].tolist() == ["Unknown", "Unknown"]
        assert meta["age_group"].tolist() == ["Unknown", "Unknown"]
        assert meta["sample_subtype"].tolist() == ["Unknown", "Solid Tissue Normal"]
        assert "survival_time" not in meta.columns

    def test_missing_sample_type_raises(self):
        with pytest.raises(KeyError):
            normalize_sample_metadata(pd.DataFrame({"age_at_index": [40]}, index=["S1"]))
