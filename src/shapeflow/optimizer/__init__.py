"""Graph rewriting passes over an analysed graph."""

from .passes import Pass, Pipeline
from .passes_impl import ConstantFoldingPass


def build_constant_pipeline() -> Pipeline:
    return Pipeline([ConstantFoldingPass()])


__all__ = [
    "Pipeline",
    "Pass",
    "ConstantFoldingPass",
    "build_constant_pipeline",
]
