from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

_ENV_PREFIX = "SHAPEFLOW_"


@dataclass
class AnalyserConfig:
    """Settings of an analysis run.

    ``max_passes`` bounds the number of forward/backward rounds of
    ``Analyser.run``. ``None`` leaves the loop unbounded, so termination then
    depends on the operators' ``enrich`` functions being monotonic.
    """

    max_passes: int | None = None
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.max_passes is not None and self.max_passes <= 0:
            raise ValueError(f"max_passes must be positive, got {self.max_passes}")
        level = self.log_level.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{self.log_level}'")
        self.log_level = level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AnalyserConfig:
        env = os.environ if environ is None else environ
        max_passes: int | None = None
        raw = env.get(_ENV_PREFIX + "MAX_PASSES")
        if raw:
            try:
                max_passes = int(raw)
            except ValueError as e:
                raise ValueError(f"{_ENV_PREFIX}MAX_PASSES must be an integer, got '{raw}'") from e
        return cls(
            max_passes=max_passes,
            log_level=env.get(_ENV_PREFIX + "LOG_LEVEL", "WARNING"),
        )
