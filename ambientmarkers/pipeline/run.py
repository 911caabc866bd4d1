"""Run marker scoring from a JSON config."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from ambientmarkers.config import (
    load_json_config,
    marker_config_from_dict,
    nonexpressing_config_from_dict,
)
from ambientmarkers.core.compute import infer_non_expressed_genes
from ambientmarkers.core.nonexpressing import PoissonNonExpressingClassifier
from ambientmarkers.core.soup import DEFAULT_SOUP_RANGE
from ambientmarkers.core.types import MarkerScores
from ambientmarkers.errors import InvalidInput
from ambientmarkers.pipeline.io import load_soup_channel, setup_logger, write_marker_outputs

LOGGER_NAME = "ambientmarkers"


def _soup_range(cfg: dict[str, Any]) -> tuple[float, float]:
    value = cfg.get("soup_range") or DEFAULT_SOUP_RANGE
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise InvalidInput(f"soup_range must be a pair of numbers, got {value!r}.")
    return float(value[0]), float(value[1])


def run_marker_config(cfg: dict[str, Any]) -> MarkerScores:
    """Load inputs named in `cfg`, score candidates and write the outputs."""
    outdir = Path(cfg.get("outdir", "."))
    logger = setup_logger(outdir / "logs" / "ambientmarkers.log", LOGGER_NAME)

    h5ad_path = cfg.get("h5ad_path")
    if not h5ad_path:
        raise ValueError("Config missing h5ad_path.")
    if not Path(h5ad_path).exists():
        raise FileNotFoundError(f"Input file not found: {h5ad_path}.")

    marker_cfg = marker_config_from_dict(cfg)
    oracle_cfg = nonexpressing_config_from_dict(cfg)

    channel = load_soup_channel(
        h5ad_path,
        cfg.get("raw_h5ad_path"),
        soup_col=cfg.get("soup_col"),
        cluster_col=cfg.get("cluster_col"),
        layer=cfg.get("layer"),
        soup_range=_soup_range(cfg),
        logger=logger,
    )
    scores = infer_non_expressed_genes(
        channel,
        PoissonNonExpressingClassifier(),
        config=marker_cfg,
        oracle_config=oracle_cfg,
        logger=logger,
    )
    table_path, _ = write_marker_outputs(outdir, scores)
    logger.info("Marker scoring complete. Table written to %s", table_path.as_posix())
    return scores


def run_marker_pipeline(config_path: str | Path) -> MarkerScores:
    return run_marker_config(load_json_config(config_path))
