"""Non-expressing cell classification for candidate marker genes."""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from ambientmarkers.core.types import NonExpressingConfig, SoupChannel
from ambientmarkers.core.validation import validate_size_factors, validate_soup_profile
from ambientmarkers.errors import InvalidInput, OracleFailure
from ambientmarkers.stats import bh_fdr, poisson_upper_tail


def _resolve_clusters(channel: SoupChannel, clusters: pd.Series | None) -> np.ndarray:
    labels = clusters if clusters is not None else channel.clusters
    cell_ids = channel.counts.cell_ids
    if labels is None:
        warnings.warn(
            "No clusters found or supplied; using every cell as its own cluster.",
            RuntimeWarning,
            stacklevel=3,
        )
        return np.asarray(cell_ids, dtype=str)
    labels = pd.Series(labels, copy=True).astype(str)
    labels.index = labels.index.astype(str)
    aligned = labels.reindex(cell_ids)
    if aligned.isna().any():
        missing = aligned.index[aligned.isna().to_numpy()][0]
        raise InvalidInput("Cluster labels are missing cells.", cell=str(missing))
    return aligned.to_numpy(dtype=str)


def estimate_non_expressing_cells(
    channel: SoupChannel,
    gene_sets: Mapping[str, Sequence[str]],
    clusters: pd.Series | None = None,
    config: NonExpressingConfig | None = None,
) -> pd.DataFrame:
    """Flag, per gene set, the cells whose clusters show no sign of expressing it.

    For every cell the expected count of a set, if the droplet were entirely
    ambient, is `size * sum(est) * maximum_contamination`. A cell expresses
    the set when the Poisson upper tail of its observed count, BH-adjusted
    over all cells and sets, falls below `fdr`. A cluster is non-expressing
    for a set when none of its cells express it, and all of its cells are
    then flagged. Returns a cells x sets boolean frame.
    """
    cfg = config or NonExpressingConfig()
    counts = channel.counts
    est = validate_soup_profile(counts, channel.soup_profile).to_numpy(dtype=float)
    sizes = validate_size_factors(counts, channel.size_factors).to_numpy(dtype=float)
    labels = _resolve_clusters(channel, clusters)

    set_names = [str(k) for k in gene_sets]
    n_cells = counts.n_cells
    observed = np.zeros((n_cells, len(set_names)), dtype=float)
    soup_frac = np.zeros(len(set_names), dtype=float)
    for j, name in enumerate(set_names):
        genes = [str(g) for g in gene_sets[name]]
        if not genes:
            raise InvalidInput(f"Gene set '{name}' is empty.")
        pos = counts.gene_positions(genes)
        soup_frac[j] = float(np.sum(est[pos]))
        observed[:, j] = np.asarray(counts.data[pos, :].sum(axis=0)).ravel()

    expected = np.outer(sizes, soup_frac) * float(cfg.maximum_contamination)
    pvals = poisson_upper_tail(observed, expected)
    qvals = bh_fdr(pvals)
    expressed = qvals < float(cfg.fdr)

    uniq, inverse = np.unique(labels, return_inverse=True)
    inverse = inverse.ravel()
    hits = np.zeros((uniq.size, len(set_names)), dtype=np.int64)
    np.add.at(hits, inverse, expressed.astype(np.int64))
    cluster_ok = hits == 0
    return pd.DataFrame(
        cluster_ok[inverse],
        index=counts.cell_ids.copy(),
        columns=pd.Index(set_names),
    )


class NonExpressingClassifier(ABC):
    """Decides which cells count as non-expressing for each candidate gene."""

    @abstractmethod
    def classify(
        self,
        channel: SoupChannel,
        genes: Sequence[str],
        config: NonExpressingConfig | None = None,
    ) -> pd.DataFrame:
        """Return a cells x genes boolean membership frame."""


class PoissonNonExpressingClassifier(NonExpressingClassifier):
    """Each gene is its own set for `estimate_non_expressing_cells`."""

    def __init__(self, clusters: pd.Series | None = None) -> None:
        self.clusters = clusters

    def classify(
        self,
        channel: SoupChannel,
        genes: Sequence[str],
        config: NonExpressingConfig | None = None,
    ) -> pd.DataFrame:
        gene_sets = {str(g): [str(g)] for g in genes}
        return estimate_non_expressing_cells(
            channel, gene_sets, clusters=self.clusters, config=config
        )


def query_non_expressing(
    classifier: NonExpressingClassifier,
    channel: SoupChannel,
    genes: Sequence[str],
    config: NonExpressingConfig | None = None,
) -> pd.DataFrame:
    """Run the classifier and check its membership frame is well formed."""
    genes = [str(g) for g in genes]
    try:
        membership = classifier.classify(channel, genes, config)
    except Exception as exc:
        raise OracleFailure(
            f"{type(classifier).__name__} failed: {exc}"
        ) from exc

    if not isinstance(membership, pd.DataFrame):
        raise OracleFailure(
            f"Classifier returned {type(membership).__name__}, expected a DataFrame."
        )
    expected_shape = (channel.counts.n_cells, len(genes))
    if membership.shape != expected_shape:
        raise OracleFailure(
            f"Membership shape {membership.shape} does not match cells x genes {expected_shape}."
        )
    if not membership.index.astype(str).equals(channel.counts.cell_ids):
        raise OracleFailure("Membership rows do not match the count matrix cells.")
    columns = membership.columns.astype(str)
    if list(columns) != genes:
        missing = [g for g in genes if g not in set(columns)]
        raise OracleFailure(
            "Membership columns do not match the queried genes.",
            gene=missing[0] if missing else None,
        )
    if not all(pd.api.types.is_bool_dtype(dt) for dt in membership.dtypes):
        raise OracleFailure("Membership must be boolean.")
    missing_values = membership.isna().any(axis=0)
    if missing_values.any():
        raise OracleFailure(
            "Membership has missing values.",
            gene=str(columns[int(np.flatnonzero(missing_values.to_numpy())[0])]),
        )
    out = membership.astype(bool)
    out.columns = columns
    out.index = channel.counts.cell_ids.copy()
    return out


def drop_uninformative_genes(membership: pd.DataFrame) -> pd.DataFrame:
    """Remove genes with no non-expressing cell."""
    informative = membership.any(axis=0).to_numpy(dtype=bool)
    return membership.loc[:, informative]
