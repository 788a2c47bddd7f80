# infra/config/run_config.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from .data_config import DataConfig
from .engine_config import EngineConfig
from .logging_config import LoggingConfig


class RunConfig(BaseModel):
    """
    Top-level configuration for a single backtest run.
    One YAML/JSON file → one RunConfig.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field("default", description="Human-readable run name.")
    description: Optional[str] = Field(None, description="Optional free-text description for this run.")

    data: DataConfig
    engine: EngineConfig
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _inherit_date_range_from_data(self) -> "RunConfig":
        # the engine filters bars by date; default it to the data window
        if self.engine.start_date is None and self.data.start is not None:
            self.engine.start_date = self.data.start
        if self.engine.end_date is None and self.data.end is not None:
            self.engine.end_date = self.data.end
        return self
