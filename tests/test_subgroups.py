"""
Subgroup comparison tests.
"""
import numpy as np
import pandas as pd
import pytest

from gbm_panel.subgroups import compare_subgroups, long_format


@pytest.fixture
def expr():
    samples = [f"S{i}" for i in range(10)]
    values = np.vstack([
        np.r_[np.arange(5) + 10.0, np.arange(5) + 1.0],   # split by group
        np.tile([1.0, 2.0], 5),                           # no signal
    ])
    return pd.DataFrame(values, index=["gA", "gB"], columns=samples)


@pytest.fixture
def meta(expr):
    return pd.DataFrame({
        "group": ["hi"] * 5 + ["lo"] * 5,
        "three": ["x", "y", "z"] * 3 + ["x"],
        "with_unknown": ["a"] * 4 + ["Unknown"] + ["b"] * 5,
    }, index=expr.columns)


class TestCompareSubgroups:

    def test_table(self, expr, meta):
        table = compare_subgroups(expr, meta, "group",
                                  symbols=pd.Series({"gA": "EGFR", "gB": "PTEN"}))
        assert table["gene_id"].tolist() == ["gA", "gB"]
        assert table.loc[0, "gene_name"] == "EGFR"
        assert table.loc[0, "p_value"] < 0.05
        assert table.loc[0, "median_diff"] > 0
        assert (table["p_adj"] >= table["p_value"]).all()
        assert (table[["n_a", "n_b"]] == 5).all().all()
        assert table["comparison"].unique().tolist() == ["group"]

    def test_unknown_excluded(self, expr, meta):
        table = compare_subgroups(expr, meta, "with_unknown")
        assert set(table["group_a"]) == {"a"}
        assert set(table["group_b"]) == {"b"}
        assert (table["n_a"] == 4).all()

    def test_more_than_two_levels_needs_groups(self, expr, meta):
        with pytest.raises(ValueError):
            compare_subgroups(expr, meta, "three")
        table = compare_subgroups(expr, meta, "three", groups=("x", "y"))
        assert (table["n_a"] == 4).all()
        assert (table["n_b"] == 3).all()


class TestLongFormat:

    def test_shape_and_columns(self, expr, meta):
        tidy = long_format(expr, meta, columns=("group", "absent"))
        assert len(tidy) == expr.size
        assert {"gene_id", "gene_name", "sample", "expression", "group"} <= set(tidy.columns)
        assert "absent" not in tidy.columns
        row = tidy[(tidy["gene_id"] == "gA") & (tidy["sample"] == "S0")].iloc[0]
        assert row["expression"] == 10.0
        assert row["group"] == "hi"
        assert row["gene_name"] == "gA"
