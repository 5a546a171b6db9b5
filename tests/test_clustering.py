"""
Complete-linkage clustering tests.
"""
import numpy as np
import pandas as pd
import pytest

from gbm_panel.clustering import ClusterTree, build_tree, cluster_genes, cluster_samples


@pytest.fixture
def two_blobs():
    """Six items, three features: a* near the origin, b* far away."""
    data = np.array([
        [0.0, 0.1, 0.2],
        [0.3, 0.0, 0.1],
        [0.1, 0.4, 0.0],
        [10.0, 10.2, 9.9],
        [10.4, 9.8, 10.1],
        [9.7, 10.1, 10.3],
    ])
    return pd.DataFrame(data, index=["a1", "a2", "a3", "b1", "b2", "b3"],
                        columns=["f1", "f2", "f3"])


class TestBuildTree:

    def test_linkage_shape_and_monotone_heights(self, two_blobs):
        tree = build_tree(two_blobs, axis="items")
        assert isinstance(tree, ClusterTree)
        assert tree.linkage.shape == (5, 4)
        assert tree.n_items == 6
        assert (np.diff(tree.heights) >= 0).all()

    def test_two_groups_recovered(self, two_blobs):
        labels = build_tree(two_blobs, axis="items").cut(2)
        assert labels["a1"] == labels["a2"] == labels["a3"]
        assert labels["b1"] == labels["b2"] == labels["b3"]
        assert labels["a1"] != labels["b1"]

    def test_fewer_than_two_items_raises(self, two_blobs):
        with pytest.raises(ValueError):
            build_tree(two_blobs.iloc[:1], axis="items")

    def test_deterministic(self, two_blobs):
        a = build_tree(two_blobs, axis="items")
        b = build_tree(two_blobs, axis="items")
        assert np.array_equal(a.linkage, b.linkage)
        pd.testing.assert_series_equal(a.cut(3), b.cut(3))


class TestCut:

    @pytest.mark.parametrize("k", [1, 2, 3, 6])
    def test_exactly_k_groups(self, two_blobs, k):
        labels = build_tree(two_blobs, axis="items").cut(k)
        assert labels.nunique() == k
        assert set(labels) == set(range(1, k + 1))
        assert labels.index.tolist() == two_blobs.index.tolist()
        assert labels.name == f"cluster_k{k}"

    @pytest.mark.parametrize("k", [0, 7, -1])
    def test_k_out_of_range(self, two_blobs, k):
        tree = build_tree(two_blobs, axis="items")
        with pytest.raises(ValueError):
            tree.cut(k)

    def test_tied_distances_still_give_k_groups(self):
        # four corners of a square: every side has the same length
        square = pd.DataFrame([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]],
                              index=list("pqrs"), columns=["x", "y"])
        tree = build_tree(square, axis="corners")
        for k in range(1, 5):
            assert tree.cut(k).nunique() == k

    def test_cut_height(self, two_blobs):
        tree = build_tree(two_blobs, axis="items")
        assert tree.cut_height(6) == 0.0
        assert tree.cut_height(1) == tree.heights[-1]
        assert tree.cut_height(2) == tree.heights[3]

    def test_leaf_order_is_permutation(self, two_blobs):
        order = build_tree(two_blobs, axis="items").leaf_order()
        assert sorted(order) == sorted(two_blobs.index)


class TestOrientation:

    def test_genes_and_samples(self, two_group_panel):
        genes = cluster_genes(two_group_panel)
        samples = cluster_samples(two_group_panel)
        assert genes.axis == "genes"
        assert genes.items == tuple(two_group_panel.index)
        assert samples.axis == "samples"
        assert samples.items == tuple(two_group_panel.columns)

    def test_samples_split_by_tissue_type(self, two_group_panel):
        labels = cluster_samples(two_group_panel).cut(2)
        assert labels[["T1", "T2", "T3"]].nunique() == 1
        assert labels[["N1", "N2", "N3"]].nunique() == 1
        assert labels["T1"] != labels["N1"]
