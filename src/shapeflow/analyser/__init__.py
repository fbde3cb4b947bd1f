"""Bidirectional fact propagation over a model graph."""

from .analyser import Analyser, Edge

__all__ = ["Analyser", "Edge"]
