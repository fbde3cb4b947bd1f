"""Shape, type and value inference for neural-network graphs."""

from .analyser import Analyser, Edge
from .ir import (
    AnalysisError,
    DimFact,
    Model,
    ModelBuilder,
    Node,
    Plan,
    ShapeFact,
    TensorFact,
    TypeFact,
    ValueFact,
    shapefact,
)

__version__ = "0.1.0"

__all__ = [
    "Analyser",
    "Edge",
    "AnalysisError",
    "DimFact",
    "ShapeFact",
    "TensorFact",
    "TypeFact",
    "ValueFact",
    "shapefact",
    "Model",
    "ModelBuilder",
    "Node",
    "Plan",
]
