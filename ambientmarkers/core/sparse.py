"""Gene-by-cell sparse count matrix with row-grouped nonzero iteration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp

from ambientmarkers.errors import InvalidInput


def _to_csr(matrix: Any) -> sp.csr_matrix:
    """Return a canonical CSR copy without densifying sparse input."""
    if sp.issparse(matrix):
        csr = sp.csr_matrix(matrix, copy=True)
    else:
        arr = np.asarray(matrix)
        if arr.ndim != 2:
            raise InvalidInput(f"Count matrix must be 2D, got shape {arr.shape}.")
        csr = sp.csr_matrix(arr)
    csr.sum_duplicates()
    csr.eliminate_zeros()
    csr.sort_indices()
    return csr


def _unique_index(name: str, labels: Iterable[Any]) -> pd.Index:
    idx = pd.Index([str(v) for v in labels])
    if idx.has_duplicates:
        dup = idx[idx.duplicated()][0]
        raise InvalidInput(f"{name} must be unique; '{dup}' is repeated.")
    return idx


def iter_csr_rows(
    matrix: sp.csr_matrix,
    row_names: pd.Index,
    positions: Sequence[int] | np.ndarray,
) -> Iterator[tuple[str, np.ndarray, np.ndarray]]:
    """Yield `(row_name, column_positions, values)` for each requested row."""
    indptr = matrix.indptr
    for pos in positions:
        lo, hi = int(indptr[pos]), int(indptr[pos + 1])
        yield str(row_names[pos]), matrix.indices[lo:hi], matrix.data[lo:hi]


@dataclass(frozen=True)
class CountMatrix:
    """Read-only genes x cells count matrix.

    Construct through `from_matrix` or `from_anndata`; both copy the input
    and store it with summed duplicates, no explicit zeros and ascending
    column indices within each row.
    """

    data: sp.csr_matrix
    gene_names: pd.Index
    cell_ids: pd.Index

    @classmethod
    def from_matrix(
        cls,
        matrix: Any,
        gene_names: Iterable[Any],
        cell_ids: Iterable[Any],
    ) -> "CountMatrix":
        csr = _to_csr(matrix)
        genes = _unique_index("Gene names", gene_names)
        cells = _unique_index("Cell ids", cell_ids)
        if csr.shape != (genes.size, cells.size):
            raise InvalidInput(
                f"Count matrix shape {csr.shape} does not match "
                f"{genes.size} genes x {cells.size} cells."
            )
        values = csr.data
        if values.size:
            if not np.all(np.isfinite(values)):
                pos = int(np.flatnonzero(~np.isfinite(values))[0])
                raise InvalidInput("Counts must be finite.", **cls._locate(csr, genes, cells, pos))
            if np.any(values < 0):
                pos = int(np.flatnonzero(values < 0)[0])
                raise InvalidInput("Counts must be non-negative.", **cls._locate(csr, genes, cells, pos))
            if np.any(values != np.round(values)):
                pos = int(np.flatnonzero(values != np.round(values))[0])
                raise InvalidInput("Counts must be integers.", **cls._locate(csr, genes, cells, pos))
        return cls(data=csr, gene_names=genes, cell_ids=cells)

    @classmethod
    def from_anndata(cls, adata: Any, layer: str | None = None) -> "CountMatrix":
        """Build from an AnnData (cells x genes); `layer=None` reads `.X`."""
        if layer is None:
            matrix = adata.X
        else:
            if layer not in adata.layers:
                raise KeyError(f"Layer '{layer}' not found in adata.layers.")
            matrix = adata.layers[layer]
        if sp.issparse(matrix):
            transposed = sp.csr_matrix(matrix).T
        else:
            transposed = np.asarray(matrix).T
        return cls.from_matrix(transposed, adata.var_names, adata.obs_names)

    @staticmethod
    def _locate(
        csr: sp.csr_matrix, genes: pd.Index, cells: pd.Index, pos: int
    ) -> dict[str, str]:
        row = int(np.searchsorted(csr.indptr, pos, side="right") - 1)
        return {"gene": str(genes[row]), "cell": str(cells[int(csr.indices[pos])])}

    @property
    def shape(self) -> tuple[int, int]:
        return (int(self.data.shape[0]), int(self.data.shape[1]))

    @property
    def n_genes(self) -> int:
        return self.shape[0]

    @property
    def n_cells(self) -> int:
        return self.shape[1]

    @property
    def nnz(self) -> int:
        return int(self.data.nnz)

    def gene_positions(self, genes: Iterable[str]) -> np.ndarray:
        """Row positions of `genes`, in the order given."""
        genes = [str(g) for g in genes]
        pos = self.gene_names.get_indexer(genes)
        if np.any(pos < 0):
            missing = genes[int(np.flatnonzero(pos < 0)[0])]
            raise InvalidInput("Gene not present in count matrix.", gene=missing)
        return pos.astype(np.int64)

    def column_sums(self) -> np.ndarray:
        return np.asarray(self.data.sum(axis=0)).ravel().astype(float)

    def row_sums(self) -> np.ndarray:
        return np.asarray(self.data.sum(axis=1)).ravel().astype(float)

    def iter_rows(
        self, genes: Iterable[str] | None = None
    ) -> Iterator[tuple[str, np.ndarray, np.ndarray]]:
        """Iterate nonzero entries grouped by gene.

        Each call returns a fresh iterator over `(gene, cell_positions,
        counts)`, cells ascending. Genes without nonzero counts yield empty
        arrays.
        """
        if genes is None:
            positions = np.arange(self.n_genes)
        else:
            positions = self.gene_positions(genes)
        return iter_csr_rows(self.data, self.gene_names, positions)
