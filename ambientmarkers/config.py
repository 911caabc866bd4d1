"""Configuration loading utilities for marker scoring runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ambientmarkers.core.types import MarkerConfig, NonExpressingConfig
from ambientmarkers.errors import InvalidInput


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a pipeline config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


def _number(cfg: dict[str, Any], key: str, default: float, cast=float):
    value = cfg.get(key, default)
    if value is None:
        return default
    try:
        return cast(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"Config key '{key}' must be numeric, got {value!r}.") from exc


def marker_config_from_dict(cfg: dict[str, Any]) -> MarkerConfig:
    defaults = MarkerConfig()
    return MarkerConfig(
        max_candidates=_number(cfg, "max_candidates", defaults.max_candidates, int),
        useful_frac=_number(cfg, "useful_frac", defaults.useful_frac),
    )


def nonexpressing_config_from_dict(cfg: dict[str, Any]) -> NonExpressingConfig:
    defaults = NonExpressingConfig()
    return NonExpressingConfig(
        maximum_contamination=_number(
            cfg, "maximum_contamination", defaults.maximum_contamination
        ),
        fdr=_number(cfg, "fdr", defaults.fdr),
    )
