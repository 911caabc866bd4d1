"""Pipeline I/O, logging, and AnnData loading helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

import pandas as pd

from ambientmarkers.core.compute import score_table
from ambientmarkers.core.soup import DEFAULT_SOUP_RANGE, estimate_soup_profile, profile_from_var
from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import MarkerScores, SoupChannel

TABLE_NAME = "non_expressed_genes.tsv"
METADATA_NAME = "metadata.json"
CLUSTER_CANDIDATES: tuple[str, ...] = ("clusters", "leiden", "louvain", "cluster")


def ensure_dir(path: str | Path) -> None:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)


def setup_logger(log_path: Path, logger_name: str) -> logging.Logger:
    ensure_dir(log_path.parent)
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger


def read_h5ad(h5ad_path: str | Path):
    path = Path(h5ad_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file '{h5ad_path}' not found.")
    import scanpy as sc

    return sc.read_h5ad(path)


def detect_obs_col(adata, provided: str | None, candidates: Iterable[str]) -> str | None:
    """Return the requested obs column, else the first candidate present, else None."""
    if provided is not None:
        if provided in adata.obs.columns:
            return str(provided)
        raise KeyError(f"adata.obs['{provided}'] not found.")
    for c in candidates:
        if c in adata.obs.columns:
            return str(c)
    return None


def load_soup_channel(
    h5ad_path: str | Path,
    raw_h5ad_path: str | Path | None = None,
    *,
    soup_col: str | None = None,
    cluster_col: str | None = None,
    layer: str | None = None,
    soup_range: tuple[float, float] = DEFAULT_SOUP_RANGE,
    logger: logging.Logger | None = None,
) -> SoupChannel:
    """Build a SoupChannel from a filtered `.h5ad` and its ambient source.

    The ambient profile comes from `adata.var[soup_col]` when given, else it
    is estimated from the raw droplets in `raw_h5ad_path`.
    """
    log = logger or logging.getLogger(__name__)
    adata = read_h5ad(h5ad_path)
    counts = CountMatrix.from_anndata(adata, layer=layer)
    log.info("Loaded %s: %d cells x %d genes", h5ad_path, counts.n_cells, counts.n_genes)

    if soup_col is not None:
        profile = profile_from_var(adata, soup_col)
        log.info("Ambient profile read from adata.var['%s']", soup_col)
    elif raw_h5ad_path is not None:
        raw = read_h5ad(raw_h5ad_path)
        raw_counts = CountMatrix.from_anndata(raw, layer=layer)
        profile = estimate_soup_profile(raw_counts, soup_range=soup_range)
        profile = profile.reindex(counts.gene_names)
        log.info(
            "Ambient profile estimated from %s (%d droplets)",
            raw_h5ad_path,
            raw_counts.n_cells,
        )
    else:
        raise ValueError("Provide either soup_col or raw_h5ad_path for the ambient profile.")

    clusters = None
    col = detect_obs_col(adata, cluster_col, CLUSTER_CANDIDATES)
    if col is not None:
        clusters = pd.Series(
            adata.obs[col].astype(str).to_numpy(), index=counts.cell_ids, name=col
        )
        log.info("Using clusters from adata.obs['%s']", col)
    return SoupChannel.build(counts, profile, clusters=clusters)


def write_marker_outputs(outdir: str | Path, scores: MarkerScores) -> tuple[Path, Path]:
    out = Path(outdir)
    ensure_dir(out)
    table_path = out / TABLE_NAME
    metadata_path = out / METADATA_NAME
    score_table(scores).to_csv(table_path, sep="\t", index=False)
    write_json(
        metadata_path,
        {
            **scores.metadata,
            "shortlist": list(scores.shortlist),
            "retained": list(scores.retained),
        },
    )
    return table_path, metadata_path
