import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from ambientmarkers.core.compute import infer_non_expressed_genes, score_table
from ambientmarkers.core.nonexpressing import NonExpressingClassifier
from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import MarkerConfig, MarkerScores, SoupChannel
from ambientmarkers.errors import InvalidInput, OracleFailure


class _Membership(NonExpressingClassifier):
    """All cells non-expressing except for genes listed in `silent`."""

    def __init__(self, silent=()):
        self.silent = set(silent)
        self.calls: list[list[str]] = []

    def classify(self, channel, genes, config=None):
        self.calls.append(list(genes))
        data = {g: [g not in self.silent] * channel.counts.n_cells for g in genes}
        return pd.DataFrame(data, index=channel.counts.cell_ids, columns=list(genes))


def _random_channel(seed: int = 0, n_genes: int = 40, n_cells: int = 60) -> SoupChannel:
    rng = np.random.default_rng(seed)
    dense = rng.poisson(0.6, size=(n_genes, n_cells))
    genes = [f"G{i:02d}" for i in range(n_genes)]
    cells = [f"cell{i:02d}" for i in range(n_cells)]
    counts = CountMatrix.from_matrix(sp.csr_matrix(dense), genes, cells)
    est = pd.Series(rng.dirichlet(np.ones(n_genes)), index=genes)
    est.iloc[[3, 11]] = 0.0
    sizes = pd.Series(rng.integers(500, 2000, size=n_cells).astype(float), index=cells)
    return SoupChannel.build(counts, est, size_factors=sizes)


def test_single_gene_ten_cells():
    x = np.zeros((1, 10), dtype=np.int64)
    x[0, [1, 4, 7]] = [5, 8, 20]
    counts = CountMatrix.from_matrix(x, ["HBB"], [f"c{i}" for i in range(10)])
    channel = SoupChannel.build(
        counts,
        pd.Series({"HBB": 0.1}),
        size_factors=pd.Series(100.0, index=counts.cell_ids),
    )

    scores = infer_non_expressed_genes(channel, _Membership())
    row = scores.table.loc["HBB"]
    assert row["nCells"] == 3
    assert row["lowCount"] == 2
    assert np.isclose(row["lowFrac"], 0.667, atol=1e-3)
    assert bool(row["isUseful"]) is True


def test_table_invariants_hold():
    channel = _random_channel()
    scores = infer_non_expressed_genes(channel, _Membership())
    table = scores.table

    assert not table.empty
    assert "G03" not in table.index
    assert "G11" not in table.index
    assert np.all(table["nCells"] >= 1)
    assert np.all((table["lowCount"] >= 0) & (table["lowCount"] <= table["nCells"]))
    assert (table["lowFrac"] == table["lowCount"] / table["nCells"]).all()
    assert (table["isUseful"] == (table["lowCount"] > 0.1 * table["nCells"])).all()
    assert np.all(table["extremity"] >= 0)
    assert np.all((table["centrality"] > 0) & (table["centrality"] <= 1))


def test_zero_estimate_genes_never_reach_classifier():
    channel = _random_channel()
    oracle = _Membership()
    infer_non_expressed_genes(channel, oracle)
    assert len(oracle.calls) == 1
    assert "G03" not in oracle.calls[0]
    assert "G11" not in oracle.calls[0]


def test_all_false_membership_gene_is_absent():
    channel = _random_channel()
    baseline = infer_non_expressed_genes(channel, _Membership())
    target = baseline.genes[0]

    scores = infer_non_expressed_genes(channel, _Membership(silent={target}))
    assert target in scores.shortlist
    assert target not in scores.retained
    assert target not in scores.table.index
    assert len(scores) == len(baseline) - 1


def test_ranking_order():
    scores = infer_non_expressed_genes(_random_channel(), _Membership())
    table = scores.table
    useful = table["isUseful"].to_numpy()
    assert np.all(np.diff(useful.astype(int)) <= 0)
    for flag in (True, False):
        ext = table.loc[table["isUseful"] == flag, "extremity"].to_numpy()
        assert np.all(np.diff(ext) <= 0)


def test_ties_keep_input_gene_order():
    row = [0, 3, 0, 1, 0, 6]
    x = np.array([row, row, row])
    counts = CountMatrix.from_matrix(x, ["ZZZ", "AAA", "MMM"], [f"c{i}" for i in range(6)])
    channel = SoupChannel.build(
        counts,
        pd.Series({"ZZZ": 0.2, "AAA": 0.2, "MMM": 0.2}),
        size_factors=pd.Series(20.0, index=counts.cell_ids),
    )
    scores = infer_non_expressed_genes(channel, _Membership())
    assert scores.genes == ["ZZZ", "AAA", "MMM"]


def test_exact_ambient_rate_gene():
    x = np.array([[2, 0, 4, 0, 1]])
    cells = [f"c{i}" for i in range(5)]
    counts = CountMatrix.from_matrix(x, ["G"], cells)
    sizes = pd.Series([20.0, 7.0, 40.0, 3.0, 10.0], index=cells)
    channel = SoupChannel.build(counts, pd.Series({"G": 0.1}), size_factors=sizes)

    row = infer_non_expressed_genes(channel, _Membership()).table.loc["G"]
    assert row["extremity"] == 0.0
    assert row["centrality"] == 1.0
    assert row["lowCount"] == 0


def test_repeated_runs_are_identical():
    channel = _random_channel(seed=3)
    first = score_table(infer_non_expressed_genes(channel, _Membership()))
    second = score_table(infer_non_expressed_genes(channel, _Membership()))
    pd.testing.assert_frame_equal(first, second)
    assert first.to_csv(sep="\t", index=False) == second.to_csv(sep="\t", index=False)
    assert list(first.columns[:2]) == ["gene", "nCells"]


def test_inputs_are_not_mutated():
    channel = _random_channel()
    before_counts = channel.counts.data.copy()
    before_profile = channel.soup_profile.copy()
    before_sizes = channel.size_factors.copy()

    infer_non_expressed_genes(channel, _Membership())

    assert (channel.counts.data != before_counts).nnz == 0
    pd.testing.assert_frame_equal(channel.soup_profile, before_profile)
    pd.testing.assert_series_equal(channel.size_factors, before_sizes)


def test_result_table_is_a_copy():
    scores = infer_non_expressed_genes(_random_channel(), _Membership())
    table = scores.table
    table.loc[:, "nCells"] = 0
    assert np.all(scores.table["nCells"] >= 1)


def test_shortlist_cap_from_config():
    channel = _random_channel()
    scores = infer_non_expressed_genes(
        channel, _Membership(), config=MarkerConfig(max_candidates=5)
    )
    assert len(scores.shortlist) == 5
    assert set(scores.table.index) <= set(scores.shortlist)
    assert scores.metadata["max_candidates"] == 5


def test_invalid_input_fails_before_classifier():
    channel = _random_channel()
    bad_sizes = channel.size_factors.copy()
    bad_sizes.iloc[0] = -1.0
    bad = SoupChannel.build(channel.counts, channel.soup_profile, size_factors=bad_sizes)
    oracle = _Membership()

    with pytest.raises(InvalidInput) as info:
        infer_non_expressed_genes(bad, oracle)
    assert info.value.cell == "cell00"
    assert oracle.calls == []


def test_oracle_failure_aborts_pipeline():
    class _Broken(NonExpressingClassifier):
        def classify(self, channel, genes, config=None):
            return pd.DataFrame({"x": [True]})

    with pytest.raises(OracleFailure):
        infer_non_expressed_genes(_random_channel(), _Broken())


def test_default_poisson_classifier_runs_end_to_end():
    channel = _random_channel()
    clusters = pd.Series(
        np.where(np.arange(channel.counts.n_cells) % 2 == 0, "even", "odd"),
        index=channel.counts.cell_ids,
    )
    channel = SoupChannel.build(
        channel.counts, channel.soup_profile, channel.size_factors, clusters=clusters
    )
    scores = infer_non_expressed_genes(channel)
    assert set(scores.retained) <= set(scores.shortlist)
    assert set(scores.table.index) <= set(scores.retained)
    assert scores.metadata["classifier"] == "PoissonNonExpressingClassifier"


def test_non_numeric_ambient_estimate_is_invalid_input():
    counts = CountMatrix.from_matrix(np.array([[1, 2]]), ["a"], ["c1", "c2"])
    channel = SoupChannel.build(counts, pd.DataFrame({"est": ["x"]}, index=["a"]))
    oracle = _Membership()

    with pytest.raises(InvalidInput, match="numeric") as info:
        infer_non_expressed_genes(channel, oracle)
    assert info.value.gene == "a"
    assert oracle.calls == []


def test_non_numeric_size_factor_is_invalid_input():
    channel = _random_channel()
    sizes = channel.size_factors.astype(object)
    sizes.iloc[2] = "big"
    bad = SoupChannel.build(channel.counts, channel.soup_profile, size_factors=sizes)

    with pytest.raises(InvalidInput, match="numeric") as info:
        infer_non_expressed_genes(bad, _Membership())
    assert info.value.cell == "cell02"


def test_missing_membership_values_abort_pipeline():
    class _Gappy(_Membership):
        def classify(self, channel, genes, config=None):
            frame = super().classify(channel, genes, config).astype("boolean")
            frame.iloc[0, 0] = pd.NA
            return frame

    oracle = _Gappy()
    with pytest.raises(OracleFailure, match="missing values") as info:
        infer_non_expressed_genes(_random_channel(), oracle)
    assert info.value.gene == oracle.calls[0][0]


def test_useful_genes_follow_is_useful_column():
    scores = infer_non_expressed_genes(_random_channel(), _Membership())
    table = scores.table
    assert scores.useful_genes() == [str(g) for g in table.index[table["isUseful"]]]
    assert set(scores.useful_genes()) <= set(scores.genes)


def test_scores_frame_is_copied_on_construction():
    scores = infer_non_expressed_genes(_random_channel(), _Membership())
    source = scores.table
    rebuilt = MarkerScores(
        scores=source,
        shortlist=scores.shortlist,
        retained=scores.retained,
        metadata=scores.metadata,
    )
    source.loc[:, "nCells"] = -1
    assert np.all(rebuilt.table["nCells"] >= 1)
    pd.testing.assert_frame_equal(rebuilt.table, scores.table)
