"""Streaming execution of analysed models."""

from .streaming import StreamingExecutor

__all__ = ["StreamingExecutor"]
