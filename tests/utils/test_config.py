from __future__ import annotations

import logging

import pytest

from shapeflow.utils import AnalyserConfig, configure_logging, get_logger


def test_defaults_are_unbounded() -> None:
    config = AnalyserConfig()
    assert config.max_passes is None
    assert config.log_level == "WARNING"


def test_from_env_reads_prefixed_variables() -> None:
    config = AnalyserConfig.from_env(
        {"SHAPEFLOW_MAX_PASSES": "12", "SHAPEFLOW_LOG_LEVEL": "debug"}
    )
    assert config.max_passes == 12
    assert config.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"SHAPEFLOW_MAX_PASSES": "many"},
        {"SHAPEFLOW_MAX_PASSES": "0"},
        {"SHAPEFLOW_LOG_LEVEL": "loud"},
    ],
)
def test_from_env_rejects_malformed_values(env: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        AnalyserConfig.from_env(env)


def test_loggers_live_under_package_namespace() -> None:
    assert get_logger("analyser").name == "shapeflow.analyser"
    assert get_logger("shapeflow.ir.facts").name == "shapeflow.ir.facts"
    root = configure_logging("info")
    configure_logging("info")
    assert root.level == logging.INFO
    assert sum(getattr(h, "_shapeflow", False) for h in root.handlers) == 1
