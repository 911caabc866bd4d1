"""Ambient profile estimation from empty droplets."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import coerce_numeric
from ambientmarkers.errors import InvalidInput

DEFAULT_SOUP_RANGE: tuple[float, float] = (0.0, 100.0)


def estimate_soup_profile(
    raw_counts: CountMatrix,
    soup_range: tuple[float, float] = DEFAULT_SOUP_RANGE,
) -> pd.DataFrame:
    """Estimate the ambient profile from droplets with few counts.

    Droplets whose total count lies strictly inside `soup_range` are pooled.
    Returns a gene-indexed frame with `est` (share of pooled counts) and
    `counts` (pooled counts).
    """
    lo, hi = (float(v) for v in soup_range)
    if not lo < hi:
        raise InvalidInput(f"soup_range must be increasing, got {soup_range}.")
    totals = raw_counts.column_sums()
    in_range = (totals > lo) & (totals < hi)
    if not np.any(in_range):
        raise InvalidInput(f"No droplets with total counts in {soup_range}.")
    pooled = np.asarray(raw_counts.data[:, np.flatnonzero(in_range)].sum(axis=1)).ravel()
    total = float(pooled.sum())
    if total <= 0:
        raise InvalidInput("Droplets selected for the ambient profile carry no counts.")
    return pd.DataFrame(
        {"est": pooled.astype(float) / total, "counts": pooled.astype(float)},
        index=pd.Index(raw_counts.gene_names, name="gene"),
    )


def profile_from_var(adata: Any, column: str) -> pd.DataFrame:
    """Read a precomputed ambient profile from `adata.var[column]`."""
    if column not in adata.var.columns:
        raise KeyError(f"adata.var['{column}'] not found.")
    genes = pd.Index([str(g) for g in adata.var_names], name="gene")
    est = coerce_numeric(
        pd.Series(adata.var[column].to_numpy(), index=genes),
        f"adata.var['{column}'] must be numeric.",
        "gene",
    )
    return pd.DataFrame({"est": est.to_numpy()}, index=genes)
