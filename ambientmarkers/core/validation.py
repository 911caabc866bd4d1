"""Fail-fast consistency checks run before any scoring computation."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import SoupChannel, coerce_numeric, soup_estimates
from ambientmarkers.errors import InvalidInput


def validate_counts(counts: CountMatrix) -> None:
    if not isinstance(counts, CountMatrix):
        raise InvalidInput(f"Expected a CountMatrix, got {type(counts).__name__}.")
    if counts.n_genes == 0:
        raise InvalidInput("Count matrix has zero genes.")
    if counts.n_cells == 0:
        raise InvalidInput("Count matrix has zero cells.")


def validate_soup_profile(counts: CountMatrix, soup_profile: pd.DataFrame | pd.Series) -> pd.Series:
    """Check the ambient profile covers every gene with a finite `est >= 0`.

    Returns the estimates aligned to the count matrix rows.
    """
    est = soup_estimates(soup_profile)
    if est.index.has_duplicates:
        dup = est.index[est.index.duplicated()][0]
        raise InvalidInput("Ambient profile has duplicate genes.", gene=str(dup))
    est.index = est.index.astype(str)
    missing = counts.gene_names.difference(est.index, sort=False)
    if missing.size:
        raise InvalidInput(
            f"Ambient profile is missing {missing.size} gene(s) of the count matrix.",
            gene=str(missing[0]),
        )
    aligned = est.reindex(counts.gene_names)
    values = aligned.to_numpy(dtype=float)
    bad = ~np.isfinite(values) | (values < 0)
    if np.any(bad):
        raise InvalidInput(
            "Ambient estimates must be finite and non-negative.",
            gene=str(aligned.index[int(np.flatnonzero(bad)[0])]),
        )
    return aligned


def validate_size_factors(counts: CountMatrix, size_factors: pd.Series) -> pd.Series:
    """Check there is one strictly positive size factor per cell."""
    sizes = pd.Series(size_factors, copy=True)
    sizes.index = sizes.index.astype(str)
    if sizes.index.has_duplicates:
        dup = sizes.index[sizes.index.duplicated()][0]
        raise InvalidInput("Size factors have duplicate cells.", cell=str(dup))
    missing = counts.cell_ids.difference(sizes.index, sort=False)
    if missing.size:
        raise InvalidInput(
            f"Size factors are missing {missing.size} cell(s) of the count matrix.",
            cell=str(missing[0]),
        )
    aligned = coerce_numeric(
        sizes.reindex(counts.cell_ids), "Size factors must be numeric.", "cell"
    )
    values = aligned.to_numpy()
    bad = ~np.isfinite(values) | (values <= 0)
    if np.any(bad):
        raise InvalidInput(
            "Size factors must be finite and strictly positive.",
            cell=str(aligned.index[int(np.flatnonzero(bad)[0])]),
        )
    return aligned


def validate_channel(channel: SoupChannel) -> None:
    validate_counts(channel.counts)
    validate_soup_profile(channel.counts, channel.soup_profile)
    validate_size_factors(channel.counts, channel.size_factors)
    if channel.clusters is not None:
        missing = channel.counts.cell_ids.difference(
            channel.clusters.index.astype(str), sort=False
        )
        if missing.size:
            raise InvalidInput("Cluster labels are missing cells.", cell=str(missing[0]))
