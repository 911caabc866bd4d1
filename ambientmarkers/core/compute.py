"""Candidate marker scoring pipeline (no plotting, no filesystem I/O)."""

from __future__ import annotations

import logging
from typing import Any

import pandas as pd

from ambientmarkers.core.aggregate import rank_gene_scores, restrict_to_genes, summarize_ratios
from ambientmarkers.core.nonexpressing import (
    NonExpressingClassifier,
    PoissonNonExpressingClassifier,
    drop_uninformative_genes,
    query_non_expressing,
)
from ambientmarkers.core.ratios import compute_soup_ratios
from ambientmarkers.core.shortlist import shortlist_candidates
from ambientmarkers.core.types import (
    MarkerConfig,
    MarkerScores,
    NonExpressingConfig,
    SoupChannel,
)
from ambientmarkers.core.validation import validate_channel

LOGGER = logging.getLogger(__name__)


def infer_non_expressed_genes(
    channel: SoupChannel,
    classifier: NonExpressingClassifier | None = None,
    *,
    config: MarkerConfig | None = None,
    oracle_config: NonExpressingConfig | None = None,
    logger: logging.Logger | None = None,
) -> MarkerScores:
    """Score and rank genes as candidates for contamination estimation.

    The shortlist holds the most abundant ambient genes. Genes for which the
    classifier finds no non-expressing cell are dropped. For the rest, each
    expressing cell's count fraction is compared to the ambient estimate and
    summarised; useful genes (enough cells below the ambient rate) come
    first, then by extremity. The ranking is a guide for manual selection.
    """
    log = logger or LOGGER
    cfg = config or MarkerConfig()
    oracle_cfg = oracle_config or NonExpressingConfig()
    classifier = classifier or PoissonNonExpressingClassifier()

    validate_channel(channel)
    counts = channel.counts
    log.info(
        "Scoring candidate markers: genes=%d cells=%d nnz=%d",
        counts.n_genes,
        counts.n_cells,
        counts.nnz,
    )

    shortlist = shortlist_candidates(
        counts, channel.soup_profile, max_candidates=cfg.max_candidates
    )
    log.info("Shortlisted %d gene(s) by ambient abundance.", len(shortlist))
    if not shortlist:
        log.warning("No gene has a positive ambient estimate; nothing to score.")

    membership = query_non_expressing(classifier, channel, shortlist, oracle_cfg)
    informative = drop_uninformative_genes(membership)
    retained = tuple(str(g) for g in informative.columns)
    log.info(
        "Classifier kept %d of %d shortlisted gene(s).", len(retained), len(shortlist)
    )

    ratios = compute_soup_ratios(
        counts, channel.soup_profile, channel.size_factors, genes=shortlist
    )
    table = summarize_ratios(ratios, useful_frac=cfg.useful_frac)
    table = rank_gene_scores(table)
    table = restrict_to_genes(table, retained)
    log.info(
        "Scored %d gene(s); %d flagged useful.",
        int(table.shape[0]),
        int(table["isUseful"].sum()),
    )

    metadata: dict[str, Any] = {
        "n_genes": counts.n_genes,
        "n_cells": counts.n_cells,
        "max_candidates": int(cfg.max_candidates),
        "useful_frac": float(cfg.useful_frac),
        "maximum_contamination": float(oracle_cfg.maximum_contamination),
        "fdr": float(oracle_cfg.fdr),
        "classifier": type(classifier).__name__,
        "n_shortlisted": len(shortlist),
        "n_retained": len(retained),
        "n_scored": int(table.shape[0]),
    }
    return MarkerScores(
        scores=table,
        shortlist=shortlist,
        retained=retained,
        metadata=metadata,
    )


def score_table(scores: MarkerScores) -> pd.DataFrame:
    """Ranked table with the gene index as a leading column."""
    return scores.table.reset_index().rename(columns={"index": "gene"})
