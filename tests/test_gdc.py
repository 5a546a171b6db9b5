"""
GDC / cBioPortal helper tests. HTTP is mocked; nothing touches the network.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from gbm_panel import gdc


class TestBarcodes:

    def test_split(self):
        aliquot = "TCGA-06-0125-01A-01R-1849-01"
        assert gdc.patient_id(aliquot) == "TCGA-06-0125"
        assert gdc.sample_barcode(aliquot) == "TCGA-06-0125-01A"
        assert gdc.tissue_source_site(aliquot) == "06"

    def test_unparseable_tss(self):
        assert gdc.tissue_source_site("nodashes") == "UNK"


class TestFilters:

    def test_rnaseq_filters_default(self):
        filters = gdc.rnaseq_filters()
        assert filters["op"] == "and"
        fields = [f["content"]["field"] for f in filters["content"]]
        assert "cases.project.project_id" in fields
        assert "analysis.workflow_type" in fields
        assert "cases.samples.submitter_id" not in fields

    def test_rnaseq_filters_scoped_to_barcodes(self):
        filters = gdc.rnaseq_filters(barcodes=["TCGA-06-0125-01A-01R", "TCGA-02-0001-01A"])
        last = filters["content"][-1]
        assert last["op"] == "in"
        assert last["content"]["field"] == "cases.samples.submitter_id"
        assert last["content"]["value"] == ["TCGA-02-0001-01A", "TCGA-06-0125-01A"]


class TestFlatten:

    def test_file_hit(self):
        hit = {
            "file_id": "f1", "file_name": "x.tsv",
            "cases": [{"case_id": "c1", "submitter_id": "TCGA-06-0125",
                       "samples": [{"sample_type": "Primary Tumor",
                                    "submitter_id": "TCGA-06-0125-01A"}]}],
        }
        row = gdc.flatten_file_hit(hit)
        assert row == {"file_id": "f1", "file_name": "x.tsv", "case_id": "c1",
                       "patient_id": "TCGA-06-0125", "sample_type": "Primary Tumor",
                       "sample_barcode": "TCGA-06-0125-01A"}

    def test_case_falls_back_to_diagnoses(self):
        hit = {
            "case_id": "c1", "submitter_id": "TCGA-06-0125",
            "demographic": {"gender": "male", "age_at_index": 61},
            "diagnoses": [{"vital_status": "Dead", "days_to_death": 410,
                           "days_to_last_follow_up": None}],
        }
        row = gdc.flatten_case(hit)
        assert row["vital_status"] == "Dead"
        assert row["days_to_death"] == 410
        assert row["age_at_index"] == 61

    def test_case_prefers_demographic(self):
        hit = {
            "case_id": "c1", "submitter_id": "P1",
            "demographic": {"vital_status": "Alive"},
            "diagnoses": [{"vital_status": "Dead"}],
        }
        assert gdc.flatten_case(hit)["vital_status"] == "Alive"


class TestHTTP:

    def _response(self, payload):
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        return response

    def test_query_gdc(self):
        payload = {"data": {"hits": [{"file_id": "f1"}], "pagination": {"total": 1}}}
        with patch("gbm_panel.gdc.requests.get", return_value=self._response(payload)) as get:
            hits = gdc.query_gdc("https://example.org/files", gdc.eq_filter("a", 1),
                                 ["file_id"], "test")
        assert hits == [{"file_id": "f1"}]
        params = get.call_args.kwargs["params"]
        assert json.loads(params["filters"]) == gdc.eq_filter("a", 1)
        assert params["fields"] == "file_id"

    def test_cbioportal_patient_fallback(self):
        patient = [{"patientId": "TCGA-06-0125", "value": "GBM_Mesenchymal"}]
        responses = [self._response([]), self._response(patient)]
        with patch("gbm_panel.gdc.requests.get", side_effect=responses) as get:
            df = gdc.fetch_cbioportal_attribute("study", "SUBTYPE")
        assert get.call_count == 2
        assert get.call_args.kwargs["params"]["clinicalDataType"] == "PATIENT"
        assert df.to_dict("records") == [
            {"patient_id": "TCGA-06-0125", "sample_id": "", "value": "GBM_Mesenchymal"}]


class TestParseStarCounts:

    def test_parse(self, tmp_path):
        path = tmp_path / "star.tsv"
        path.write_text(
            "# gene-model: GENCODE v36\n"
            "gene_id\tgene_name\tgene_type\tunstranded\tstranded_first\tstranded_second\ttpm_unstranded\n"
            "N_unmapped\t\t\t100\t100\t100\t\n"
            "N_multimapping\t\t\t50\t50\t50\t\n"
            "ENSG00000146648.18\tEGFR\tprotein_coding\t1234\t600\t634\t12.5\n"
            "ENSG00000171862.11\tPTEN\tprotein_coding\t0\t0\t0\t0.0\n"
        )
        df = gdc.parse_star_counts(path)
        assert df.index.tolist() == ["ENSG00000146648.18", "ENSG00000171862.11"]
        assert df.columns.tolist() == ["gene_name", "gene_type", "unstranded"]
        assert df.loc["ENSG00000146648.18", "unstranded"] == 1234
        assert str(df["unstranded"].dtype) == "int64"
