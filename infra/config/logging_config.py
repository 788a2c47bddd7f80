# infra/config/logging_config.py
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class LoggingConfig(BaseModel):
    """
    Where a backtest run writes its log: per-run file under log_dir and/or console.

    Per-order and per-bar equity lines are emitted at DEBUG; run start/finish
    and the result summary at INFO.
    """

    name: str = Field(
        "dcabt",
        description="Run name; log file becomes <log_dir>/<name>_<timestamp>.log.",
    )
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO",
        description="DEBUG also traces every synthetic order and equity update.",
    )
    log_dir: str = Field(
        "logs",
        description="Directory for per-run log files; the LOG_DIR env var overrides it.",
    )
    to_console: bool = True
    to_file: bool = Field(True, description="Disable for tests and notebook runs.")
