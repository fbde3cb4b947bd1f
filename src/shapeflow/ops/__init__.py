"""Operator capability surface and a small operator library."""

from .base import Op, StepInput
from .basic import Add, Const, Identity, Placeholder, Relu, Transpose, broadcast_shapes
from .conv import Conv2D, ConvStreamState, StreamPhase
from .registry import build_op, register_op, registered_ops

__all__ = [
    "Op",
    "StepInput",
    "Const",
    "Placeholder",
    "Identity",
    "Relu",
    "Add",
    "Transpose",
    "Conv2D",
    "ConvStreamState",
    "StreamPhase",
    "broadcast_shapes",
    "build_op",
    "register_op",
    "registered_ops",
]
