"""Sparse observed-to-ambient expression ratios."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np
import pandas as pd
import scipy.sparse as sp

from ambientmarkers.core.sparse import CountMatrix, iter_csr_rows
from ambientmarkers.core.validation import (
    validate_counts,
    validate_size_factors,
    validate_soup_profile,
)
from ambientmarkers.errors import NumericInvariantViolation


@dataclass(frozen=True)
class SoupRatios:
    """Genes x cells CSR matrix of `(count / size) / est`.

    Only cells with a nonzero count carry an entry; an absent entry is never
    scored.
    """

    data: sp.csr_matrix
    gene_names: pd.Index
    cell_ids: pd.Index

    @property
    def n_genes(self) -> int:
        return int(self.data.shape[0])

    @property
    def nnz(self) -> int:
        return int(self.data.nnz)

    def iter_rows(self) -> Iterator[tuple[str, np.ndarray, np.ndarray]]:
        """Fresh iterator over `(gene, cell_positions, ratios)`, cells ascending."""
        return iter_csr_rows(self.data, self.gene_names, np.arange(self.n_genes))


def check_positive_ratios(
    values: np.ndarray,
    rows: np.ndarray,
    cols: np.ndarray,
    gene_names: pd.Index,
    cell_ids: pd.Index,
) -> None:
    bad = ~np.isfinite(values) | (values <= 0)
    if np.any(bad):
        k = int(np.flatnonzero(bad)[0])
        raise NumericInvariantViolation(
            f"Ratio {values[k]!r} is not a finite positive number.",
            gene=str(gene_names[int(rows[k])]),
            cell=str(cell_ids[int(cols[k])]),
        )


def compute_soup_ratios(
    counts: CountMatrix,
    soup_profile: pd.DataFrame | pd.Series,
    size_factors: pd.Series,
    genes: Iterable[str] | None = None,
) -> SoupRatios:
    """Ratio of each nonzero count's cell fraction to the gene's ambient estimate.

    Genes with `est == 0` are dropped before any division. With `genes`
    given, only those rows are touched, in count matrix row order, so the
    work scales with their stored nonzeros.
    """
    validate_counts(counts)
    est_all = validate_soup_profile(counts, soup_profile).to_numpy(dtype=float)
    sizes = validate_size_factors(counts, size_factors).to_numpy(dtype=float)

    if genes is None:
        rows = np.arange(counts.n_genes)
    else:
        rows = np.unique(counts.gene_positions(genes))
    rows = rows[est_all[rows] > 0]

    sub = counts.data[rows, :].tocsr()
    sub.sort_indices()
    est = est_all[rows]
    row_of_entry = np.repeat(np.arange(rows.size), np.diff(sub.indptr))

    values = (sub.data.astype(float) / sizes[sub.indices]) / est[row_of_entry]
    gene_names = counts.gene_names[rows]
    check_positive_ratios(values, row_of_entry, sub.indices, gene_names, counts.cell_ids)

    ratio = sp.csr_matrix(
        (values, sub.indices.copy(), sub.indptr.copy()),
        shape=sub.shape,
    )
    return SoupRatios(data=ratio, gene_names=gene_names, cell_ids=counts.cell_ids)
