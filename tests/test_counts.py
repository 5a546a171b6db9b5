"""
Count normalisation and gene-panel filtering tests.
"""
import numpy as np
import pandas as pd
import pytest

from gbm_panel.counts import counts_per_million, filter_gene_panel, normalize_counts
from gbm_panel.errors import (
    GeneMismatchError,
    NegativeCountError,
    PanelDataError,
    ZeroLibrarySizeError,
)


@pytest.fixture
def tiny_annotation():
    return pd.DataFrame({"gene_name": ["A", "B"]}, index=["g1", "g2"])


class TestCountsPerMillion:

    def test_columns_sum_to_scale(self, raw_counts):
        cpm = counts_per_million(raw_counts)
        np.testing.assert_allclose(cpm.sum(axis=0).to_numpy(), 1e6)

    def test_zero_library_raises(self):
        raw = pd.DataFrame({"S1": [3, 1], "S2": [0, 0]}, index=["g1", "g2"])
        with pytest.raises(ZeroLibrarySizeError) as exc:
            counts_per_million(raw)
        assert exc.value.identifiers == ["S2"]

    def test_negative_count_raises(self):
        raw = pd.DataFrame({"S1": [3, -1]}, index=["g1", "g2"])
        with pytest.raises(NegativeCountError):
            counts_per_million(raw)


class TestNormalizeCounts:

    def test_two_gene_one_sample(self, tiny_annotation):
        raw = pd.DataFrame({"S1": [3, 1]}, index=["g1", "g2"])
        out = normalize_counts(raw, tiny_annotation)
        assert out.loc["g1", "S1"] == pytest.approx(np.log2(3 / 4 * 1e6 + 1))
        assert out.loc["g2", "S1"] == pytest.approx(np.log2(1 / 4 * 1e6 + 1))
        assert round(out.loc["g1", "S1"], 2) == 19.52
        assert round(out.loc["g2", "S1"], 2) == 17.93

    def test_library_size_uses_all_genes(self, raw_counts, raw_genes, panel):
        gene_panel = filter_gene_panel(raw_genes, panel)
        out = normalize_counts(raw_counts, gene_panel)
        gene_id = gene_panel.index[0]
        sample = raw_counts.columns[0]
        expected = np.log2(raw_counts.loc[gene_id, sample]
                           / raw_counts[sample].sum() * 1e6 + 1)
        assert out.loc[gene_id, sample] == pytest.approx(expected)

    def test_panel_rows_in_input_order(self, raw_counts, raw_genes, panel):
        gene_panel = filter_gene_panel(raw_genes, panel).iloc[::-1]
        out = normalize_counts(raw_counts, gene_panel)
        expected = [g for g in raw_counts.index if g in set(gene_panel.index)]
        assert out.index.tolist() == expected
        assert out.columns.tolist() == raw_counts.columns.tolist()

    def test_missing_panel_gene_raises(self, tiny_annotation):
        raw = pd.DataFrame({"S1": [3, 1]}, index=["g1", "g3"])
        with pytest.raises(GeneMismatchError) as exc:
            normalize_counts(raw, tiny_annotation)
        assert exc.value.missing == ["g2"]
        assert exc.value.where == "raw count matrix"
        assert isinstance(exc.value, PanelDataError)


class TestFilterGenePanel:

    def test_keeps_first_duplicate(self, raw_genes, panel):
        out = filter_gene_panel(raw_genes, panel)
        assert len(out) == len(panel)
        assert sorted(out["gene_name"]) == sorted(panel)
        assert "ENSG00000000006.1_PAR_Y" not in out.index

    def test_missing_symbol_raises(self, raw_genes, panel):
        with pytest.raises(GeneMismatchError) as exc:
            filter_gene_panel(raw_genes, panel + ["NOTAGENE"])
        assert exc.value.missing == ["NOTAGENE"]
        assert "NOTAGENE" in str(exc.value)
