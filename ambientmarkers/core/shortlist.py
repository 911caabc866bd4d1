"""Candidate shortlisting by ambient abundance."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.validation import validate_counts, validate_soup_profile
from ambientmarkers.errors import InvalidInput

DEFAULT_MAX_CANDIDATES = 500


def shortlist_candidates(
    counts: CountMatrix,
    soup_profile: pd.DataFrame | pd.Series,
    max_candidates: int = DEFAULT_MAX_CANDIDATES,
) -> tuple[str, ...]:
    """Top `max_candidates` genes by ambient estimate, zero estimates dropped.

    The cap is applied before the zero filter, so fewer than `max_candidates`
    genes come back when the profile has fewer positive estimates. Ties keep
    the count matrix row order.
    """
    if int(max_candidates) < 1:
        raise InvalidInput(f"max_candidates must be >= 1, got {max_candidates}.")
    validate_counts(counts)
    est = validate_soup_profile(counts, soup_profile).to_numpy(dtype=float)

    order = np.argsort(-est, kind="mergesort")[: int(max_candidates)]
    order = order[est[order] > 0]
    return tuple(str(g) for g in counts.gene_names[order])
