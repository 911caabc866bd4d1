"""Per-gene summary statistics over soup ratios, ranking and filtering."""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd

from ambientmarkers.core.ratios import SoupRatios
from ambientmarkers.core.types import SCORE_COLUMNS
from ambientmarkers.errors import NumericInvariantViolation

DEFAULT_USEFUL_FRAC = 0.1


def _log10_ratios(gene: str, ratios: np.ndarray) -> np.ndarray:
    if np.any(~np.isfinite(ratios) | (ratios <= 0)):
        raise NumericInvariantViolation(
            "Non-positive ratio reached log10.", gene=gene
        )
    return np.log10(ratios)


def summarize_gene(
    gene: str, ratios: np.ndarray, useful_frac: float = DEFAULT_USEFUL_FRAC
) -> dict[str, object]:
    """Statistics for one gene over its expressing cells (ratios in cell order)."""
    r = np.asarray(ratios, dtype=float)
    n_cells = int(r.size)
    if n_cells == 0:
        raise ValueError(f"Gene '{gene}' has no ratios to summarize.")
    log_r = _log10_ratios(gene, r)
    sq = log_r * log_r
    low_count = int(np.count_nonzero(r < 1.0))
    return {
        "nCells": n_cells,
        "lowCount": low_count,
        "lowFrac": low_count / n_cells,
        "extremity": float(np.sum(sq) / n_cells),
        "centrality": float(np.sum(1.0 / (1.0 + sq)) / n_cells),
        "minFrac": float(np.min(log_r)),
        "isUseful": bool(low_count > float(useful_frac) * n_cells),
    }


def empty_score_table() -> pd.DataFrame:
    table = pd.DataFrame(
        {col: [] for col in SCORE_COLUMNS}, index=pd.Index([], dtype=object, name="gene")
    )
    return table.astype(
        {
            "nCells": np.int64,
            "lowCount": np.int64,
            "lowFrac": float,
            "extremity": float,
            "centrality": float,
            "minFrac": float,
            "isUseful": bool,
        }
    )


def summarize_ratios(
    ratios: SoupRatios, useful_frac: float = DEFAULT_USEFUL_FRAC
) -> pd.DataFrame:
    """One row per gene with at least one ratio, in ratio-matrix row order."""
    rows: list[dict[str, object]] = []
    names: list[str] = []
    for gene, _cells, values in ratios.iter_rows():
        if values.size == 0:
            continue
        rows.append(summarize_gene(gene, values, useful_frac=useful_frac))
        names.append(gene)
    if not rows:
        return empty_score_table()
    table = pd.DataFrame(rows, index=pd.Index(names, name="gene"), columns=list(SCORE_COLUMNS))
    return table.astype({"nCells": np.int64, "lowCount": np.int64, "isUseful": bool})


def rank_gene_scores(table: pd.DataFrame) -> pd.DataFrame:
    """Stable sort: useful genes first, then by extremity, both descending."""
    if table.empty:
        return table.copy()
    useful = table["isUseful"].to_numpy(dtype=bool)
    extremity = table["extremity"].to_numpy(dtype=float)
    # np.lexsort is stable; the last key is primary.
    order = np.lexsort((-extremity, ~useful))
    return table.iloc[order].copy()


def restrict_to_genes(table: pd.DataFrame, genes: Iterable[str]) -> pd.DataFrame:
    keep = set(str(g) for g in genes)
    return table[table.index.isin(keep)].copy()
