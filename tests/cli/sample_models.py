from __future__ import annotations

import numpy as np

from shapeflow.ir import Model, ModelBuilder
from shapeflow.ops import Add, Const, Placeholder, Relu


def build_chain() -> Model:
    b = ModelBuilder()
    x = b.add("x", Placeholder("float32", [1, 2]))
    a = b.add("a", Const(np.array([[1, 2]], dtype=np.float32)))
    c = b.add("c", Const(np.array([[3, 4]], dtype=np.float32)))
    k = b.add("k", Add(), [a, c])
    b.add("y", Add(), [x, k])
    b.add("dead", Relu(), [x])
    return b.build()


def not_a_model() -> str:
    return "nope"
