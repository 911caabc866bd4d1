"""Typed configuration, input and result containers for marker scoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.errors import InvalidInput

SCORE_COLUMNS: tuple[str, ...] = (
    "nCells",
    "lowCount",
    "lowFrac",
    "extremity",
    "centrality",
    "minFrac",
    "isUseful",
)


@dataclass(frozen=True)
class MarkerConfig:
    """Shortlisting and usefulness settings."""

    max_candidates: int = 500
    useful_frac: float = 0.1

    def __post_init__(self) -> None:
        if int(self.max_candidates) < 1:
            raise InvalidInput(
                f"max_candidates must be >= 1, got {self.max_candidates}."
            )
        if not 0.0 <= float(self.useful_frac) < 1.0:
            raise InvalidInput(f"useful_frac must be in [0, 1), got {self.useful_frac}.")


@dataclass(frozen=True)
class NonExpressingConfig:
    """Settings for the Poisson non-expressing cell classifier."""

    maximum_contamination: float = 1.0
    fdr: float = 0.05

    def __post_init__(self) -> None:
        if not 0.0 < float(self.maximum_contamination) <= 1.0:
            raise InvalidInput(
                "maximum_contamination must be in (0, 1], "
                f"got {self.maximum_contamination}."
            )
        if not 0.0 < float(self.fdr) < 1.0:
            raise InvalidInput(f"fdr must be in (0, 1), got {self.fdr}.")


def coerce_numeric(values: pd.Series, message: str, label: str) -> pd.Series:
    """Cast `values` to float, raising InvalidInput on the first non-numeric entry.

    `label` names the index axis ("gene" or "cell") reported on the error.
    """
    coerced = pd.to_numeric(values, errors="coerce")
    bad = (coerced.isna() & values.notna()).to_numpy()
    if bad.any():
        raise InvalidInput(message, **{label: str(values.index[int(bad.nonzero()[0][0])])})
    return coerced.astype(float)


def soup_estimates(soup_profile: pd.DataFrame | pd.Series) -> pd.Series:
    """Return the `est` column of an ambient profile as a float Series."""
    if isinstance(soup_profile, pd.DataFrame):
        if "est" not in soup_profile.columns:
            raise InvalidInput("Ambient profile must have an 'est' column.")
        est = soup_profile["est"]
    elif isinstance(soup_profile, pd.Series):
        est = soup_profile
    else:
        raise InvalidInput(
            f"Ambient profile must be a DataFrame or Series, got {type(soup_profile).__name__}."
        )
    return coerce_numeric(est, "Ambient estimates must be numeric.", "gene")


@dataclass(frozen=True)
class SoupChannel:
    """One channel: cell counts, its ambient profile and per-cell sizes.

    - `soup_profile`: gene-indexed frame with an `est` column (and usually
      `counts`), or a bare Series of estimates.
    - `size_factors`: cell-indexed totals used to turn counts into fractions.
    - `clusters`: optional cell-indexed cluster labels used by the classifier.
    """

    counts: CountMatrix
    soup_profile: pd.DataFrame
    size_factors: pd.Series
    clusters: pd.Series | None = None

    @classmethod
    def build(
        cls,
        counts: CountMatrix,
        soup_profile: pd.DataFrame | pd.Series,
        size_factors: pd.Series | None = None,
        clusters: pd.Series | None = None,
    ) -> "SoupChannel":
        """Bundle inputs, defaulting size factors to total counts per cell."""
        if isinstance(soup_profile, pd.Series):
            profile = soup_profile.to_frame("est")
        else:
            profile = soup_profile.copy()
        profile.index = profile.index.astype(str)
        if size_factors is None:
            sizes = pd.Series(counts.column_sums(), index=counts.cell_ids, name="nUMIs")
        else:
            sizes = pd.Series(size_factors, copy=True)
            sizes.index = sizes.index.astype(str)
        if clusters is not None:
            clusters = pd.Series(clusters, copy=True).astype(str)
            clusters.index = clusters.index.astype(str)
        return cls(counts=counts, soup_profile=profile, size_factors=sizes, clusters=clusters)


@dataclass(frozen=True)
class MarkerScores:
    """Ranked suitability table for candidate marker genes.

    The frame passed in is copied on construction. `table` hands out a
    further copy; `scores` is the stored frame and is treated as read-only.
    """

    scores: pd.DataFrame = field(repr=False)
    shortlist: tuple[str, ...]
    retained: tuple[str, ...]
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "scores", self.scores.copy())
        object.__setattr__(self, "metadata", dict(self.metadata))

    @property
    def table(self) -> pd.DataFrame:
        return self.scores.copy()

    @property
    def genes(self) -> list[str]:
        return [str(g) for g in self.scores.index]

    def useful_genes(self) -> list[str]:
        return [str(g) for g in self.scores.index[self.scores["isUseful"].to_numpy()]]

    def __len__(self) -> int:
        return int(self.scores.shape[0])
