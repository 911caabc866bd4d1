"""Command-line interface for candidate marker scoring."""

from __future__ import annotations

import argparse
import logging
from typing import Any, Iterable

from ambientmarkers.config import load_json_config
from ambientmarkers.errors import AmbientMarkerError
from ambientmarkers.pipeline.run import LOGGER_NAME, run_marker_config

EXIT_SCORING_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rank genes as candidates for ambient contamination estimation"
    )
    parser.add_argument("--config", default=None, help="Path to JSON config")
    parser.add_argument("--h5ad", dest="h5ad_path", default=None, help="Filtered cells .h5ad")
    parser.add_argument(
        "--raw-h5ad", dest="raw_h5ad_path", default=None, help="Raw droplets .h5ad"
    )
    parser.add_argument(
        "--soup-col", dest="soup_col", default=None, help="adata.var column holding ambient estimates"
    )
    parser.add_argument(
        "--cluster-col", dest="cluster_col", default=None, help="adata.obs column with cluster labels"
    )
    parser.add_argument("--layer", default=None, help="Counts layer (default: .X)")
    parser.add_argument("--outdir", default=None, help="Output directory")
    parser.add_argument(
        "--max-candidates", dest="max_candidates", type=int, default=None,
        help="Number of top ambient genes to consider (default 500)",
    )
    parser.add_argument(
        "--useful-frac", dest="useful_frac", type=float, default=None,
        help="Fraction of expressing cells below ambient needed to flag a gene useful",
    )
    parser.add_argument(
        "--maximum-contamination", dest="maximum_contamination", type=float, default=None,
        help="Largest contamination fraction assumed by the classifier",
    )
    parser.add_argument("--fdr", type=float, default=None, help="Classifier FDR cutoff")
    return parser


def _merge_args(cfg: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    merged = dict(cfg)
    for key, value in vars(args).items():
        if key == "config" or value is None:
            continue
        merged[key] = value
    return merged


def main(argv: Iterable[str] | None = None) -> int:
    """Run marker scoring.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success, 2 when scoring aborts).
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    cfg = load_json_config(args.config) if args.config else {}
    cfg = _merge_args(cfg, args)
    if not cfg.get("h5ad_path"):
        parser.error("--h5ad is required when the config does not set h5ad_path.")

    try:
        run_marker_config(cfg)
    except AmbientMarkerError as exc:
        logging.getLogger(LOGGER_NAME).error("Marker scoring aborted: %s", exc.describe())
        return EXIT_SCORING_ERROR
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
