from __future__ import annotations

from .data_config import DataConfig, LocalDataConfig
from .engine_config import EngineConfig, BacktestEngineConfig
from .logging_config import LoggingConfig
from .run_config import RunConfig

__all__ = [
    # Data
    "DataConfig",
    "LocalDataConfig",

    # Engine
    "EngineConfig",
    "BacktestEngineConfig",

    # Logging
    "LoggingConfig",

    # Top-level run config
    "RunConfig",
]
