"""Core scoring subpackage."""

from ambientmarkers.core.aggregate import rank_gene_scores, restrict_to_genes, summarize_ratios
from ambientmarkers.core.compute import infer_non_expressed_genes, score_table
from ambientmarkers.core.nonexpressing import (
    NonExpressingClassifier,
    PoissonNonExpressingClassifier,
    drop_uninformative_genes,
    estimate_non_expressing_cells,
    query_non_expressing,
)
from ambientmarkers.core.ratios import SoupRatios, compute_soup_ratios
from ambientmarkers.core.shortlist import shortlist_candidates
from ambientmarkers.core.soup import estimate_soup_profile, profile_from_var
from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import (
    MarkerConfig,
    MarkerScores,
    NonExpressingConfig,
    SoupChannel,
)

__all__ = [
    "CountMatrix",
    "SoupChannel",
    "SoupRatios",
    "MarkerConfig",
    "MarkerScores",
    "NonExpressingConfig",
    "NonExpressingClassifier",
    "PoissonNonExpressingClassifier",
    "shortlist_candidates",
    "estimate_non_expressing_cells",
    "query_non_expressing",
    "drop_uninformative_genes",
    "compute_soup_ratios",
    "summarize_ratios",
    "rank_gene_scores",
    "restrict_to_genes",
    "infer_non_expressed_genes",
    "score_table",
    "estimate_soup_profile",
    "profile_from_var",
]
