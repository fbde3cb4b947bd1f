"""Graph IR, tensor facts and execution planning."""

from .errors import (
    AnalysisError,
    ConvergenceError,
    InvalidReferenceError,
    InvariantViolation,
    OpError,
    PlanError,
    StreamingError,
    UnificationError,
)
from .facts import (
    DimFact,
    Fact,
    GenericFact,
    ShapeFact,
    TensorFact,
    TypeFact,
    ValueFact,
    parse_fact,
    parse_shape,
    shapefact,
    unify,
)
from .graph import Model, ModelBuilder, Node
from .plan import Plan

__all__ = [
    "AnalysisError",
    "ConvergenceError",
    "InvalidReferenceError",
    "InvariantViolation",
    "OpError",
    "PlanError",
    "StreamingError",
    "UnificationError",
    "Fact",
    "GenericFact",
    "TypeFact",
    "ValueFact",
    "DimFact",
    "ShapeFact",
    "TensorFact",
    "shapefact",
    "parse_shape",
    "parse_fact",
    "unify",
    "Node",
    "Model",
    "ModelBuilder",
    "Plan",
]
