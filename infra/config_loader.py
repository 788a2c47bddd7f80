# infra/config_loader.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from infra.config import RunConfig

_YAML_SUFFIXES = {".yaml", ".yml"}


def _load_raw(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()

    if suffix in _YAML_SUFFIXES:
        raw = yaml.safe_load(text)
    elif suffix == ".json":
        raw = json.loads(text)
    else:
        raise ValueError(f"Backtest config {path} must be .yml/.yaml or .json, got {suffix or 'no suffix'!r}")

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Backtest config {path} must hold a mapping at top level, got {type(raw).__name__}")
    return raw


def load_run_config(path: Union[str, Path]) -> RunConfig:
    """
    Read a backtest run (data window, engine fees/capital, logging) from YAML or JSON.

    The engine date range falls back to the data window when left empty.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Backtest config not found: {p}")

    raw = _load_raw(p)
    try:
        return RunConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid backtest config {p}:\n{exc}") from exc
