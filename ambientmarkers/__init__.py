"""ambientmarkers public API."""

from ambientmarkers._version import __version__
from ambientmarkers.core.compute import infer_non_expressed_genes
from ambientmarkers.core.nonexpressing import (
    NonExpressingClassifier,
    PoissonNonExpressingClassifier,
)
from ambientmarkers.core.soup import estimate_soup_profile
from ambientmarkers.core.sparse import CountMatrix
from ambientmarkers.core.types import (
    MarkerConfig,
    MarkerScores,
    NonExpressingConfig,
    SoupChannel,
)
from ambientmarkers.errors import (
    AmbientMarkerError,
    InvalidInput,
    NumericInvariantViolation,
    OracleFailure,
)


def run_marker_pipeline(*args, **kwargs):
    """Lazy wrapper to avoid importing scanpy at import time."""
    from ambientmarkers.pipeline.run import run_marker_pipeline as _run_marker_pipeline

    return _run_marker_pipeline(*args, **kwargs)


__all__ = [
    "__version__",
    "CountMatrix",
    "SoupChannel",
    "MarkerConfig",
    "MarkerScores",
    "NonExpressingConfig",
    "NonExpressingClassifier",
    "PoissonNonExpressingClassifier",
    "infer_non_expressed_genes",
    "estimate_soup_profile",
    "run_marker_pipeline",
    "AmbientMarkerError",
    "InvalidInput",
    "OracleFailure",
    "NumericInvariantViolation",
]
