"""Utility helpers for logging and configuration."""

from .config import AnalyserConfig
from .logger import configure_logging, get_logger

__all__ = ["AnalyserConfig", "configure_logging", "get_logger"]
