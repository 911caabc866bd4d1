import numpy as np
import pandas as pd
import pytest

from ambientmarkers.core.nonexpressing import (
    NonExpressingClassifier,
    PoissonNonExpressingClassifier,
    drop_uninformative_genes,
    estimate_non_expressing_cells,
    query_non_expressing,
)
from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import NonExpressingConfig, SoupChannel
from ambientmarkers.errors import OracleFailure

CELLS = ["a1", "a2", "b1", "b2"]


def _channel(clusters=None) -> SoupChannel:
    # HBB: heavy in cluster a, at ambient level in cluster b
    x = np.array(
        [
            [100, 120, 5, 8],
            [900, 880, 995, 992],
        ]
    )
    counts = CountMatrix.from_matrix(x, ["HBB", "ACTB"], CELLS)
    est = pd.Series({"HBB": 0.01, "ACTB": 0.99})
    sizes = pd.Series(1000.0, index=CELLS)
    return SoupChannel.build(counts, est, size_factors=sizes, clusters=clusters)


def test_cluster_flags_follow_expression():
    clusters = pd.Series(["A", "A", "B", "B"], index=CELLS)
    membership = PoissonNonExpressingClassifier().classify(
        _channel(clusters), ["HBB", "ACTB"]
    )

    assert list(membership.index) == CELLS
    assert list(membership.columns) == ["HBB", "ACTB"]
    assert membership["HBB"].tolist() == [False, False, True, True]
    assert membership["ACTB"].tolist() == [True, True, True, True]


def test_one_expressing_cell_disqualifies_its_cluster():
    clusters = pd.Series(["A", "B", "B", "C"], index=CELLS)
    membership = PoissonNonExpressingClassifier(clusters=clusters).classify(
        _channel(), ["HBB"]
    )
    assert membership["HBB"].tolist() == [False, False, False, True]


def test_missing_clusters_warn_and_use_single_cells():
    with pytest.warns(RuntimeWarning, match="own cluster"):
        membership = PoissonNonExpressingClassifier().classify(_channel(), ["HBB"])
    assert membership["HBB"].tolist() == [False, False, True, True]


def test_lower_maximum_contamination_flags_fewer_cells():
    clusters = pd.Series(["A", "A", "B", "B"], index=CELLS)
    cfg = NonExpressingConfig(maximum_contamination=0.1)
    membership = PoissonNonExpressingClassifier().classify(
        _channel(clusters), ["HBB"], cfg
    )
    # expected soup counts drop to 1, so 5 and 8 counts look expressed
    assert not membership["HBB"].any()


def test_gene_sets_pool_counts():
    clusters = pd.Series(["A", "A", "B", "B"], index=CELLS)
    membership = estimate_non_expressing_cells(
        _channel(clusters), {"both": ["HBB", "ACTB"]}
    )
    assert list(membership.columns) == ["both"]
    assert membership.dtypes["both"] == bool


class _Raising(NonExpressingClassifier):
    def classify(self, channel, genes, config=None):
        raise RuntimeError("classifier exploded")


class _Fixed(NonExpressingClassifier):
    def __init__(self, frame):
        self.frame = frame

    def classify(self, channel, genes, config=None):
        return self.frame


def test_query_wraps_classifier_errors():
    with pytest.raises(OracleFailure, match="classifier exploded") as info:
        query_non_expressing(_Raising(), _channel(), ["HBB"])
    assert isinstance(info.value.__cause__, RuntimeError)


def test_query_rejects_wrong_dimensions():
    frame = pd.DataFrame({"HBB": [True, False]}, index=CELLS[:2])
    with pytest.raises(OracleFailure, match="shape"):
        query_non_expressing(_Fixed(frame), _channel(), ["HBB"])


def test_query_rejects_wrong_columns_and_dtype():
    frame = pd.DataFrame({"OTHER": [True] * 4}, index=CELLS)
    with pytest.raises(OracleFailure, match="columns") as info:
        query_non_expressing(_Fixed(frame), _channel(), ["HBB"])
    assert info.value.gene == "HBB"

    frame = pd.DataFrame({"HBB": [1, 0, 1, 0]}, index=CELLS)
    with pytest.raises(OracleFailure, match="boolean"):
        query_non_expressing(_Fixed(frame), _channel(), ["HBB"])


def test_query_rejects_non_frame_output():
    with pytest.raises(OracleFailure, match="expected a DataFrame"):
        query_non_expressing(_Fixed(np.ones((4, 1), dtype=bool)), _channel(), ["HBB"])


def test_query_rejects_missing_membership_values():
    frame = pd.DataFrame(
        {"HBB": pd.array([pd.NA, True, True, False], dtype="boolean")}, index=CELLS
    )
    with pytest.raises(OracleFailure, match="missing values") as info:
        query_non_expressing(_Fixed(frame), _channel(), ["HBB"])
    assert info.value.gene == "HBB"


def test_query_accepts_complete_nullable_boolean():
    frame = pd.DataFrame(
        {"HBB": pd.array([True, True, False, False], dtype="boolean")}, index=CELLS
    )
    out = query_non_expressing(_Fixed(frame), _channel(), ["HBB"])
    assert out["HBB"].dtype == bool
    assert out["HBB"].tolist() == [True, True, False, False]


def test_drop_uninformative_genes():
    membership = pd.DataFrame(
        {"g1": [False, False], "g2": [True, False], "g3": [False, True]},
        index=["c1", "c2"],
    )
    kept = drop_uninformative_genes(membership)
    assert list(kept.columns) == ["g2", "g3"]
