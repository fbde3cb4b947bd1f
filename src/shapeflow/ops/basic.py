from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any

import numpy as np

from shapeflow.ir.errors import OpError
from shapeflow.ir.facts import (
    DimFact,
    ShapeFact,
    TensorFact,
    TypeFact,
    ValueFact,
    parse_shape,
)
from shapeflow.ops.base import Op
from shapeflow.ops.registry import register_op


@register_op("Const")
class Const(Op):
    """A node holding a literal tensor."""

    def __init__(self, value: Any) -> None:
        self.value = np.asarray(value)

    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 0)
        return [], TensorFact.from_tensor(self.value)

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        self._expect_arity(inputs, 0)
        return self.value

    def __repr__(self) -> str:
        return f"Const(dtype={self.value.dtype.name}, shape={list(self.value.shape)})"


@register_op("Placeholder")
class Placeholder(Op):
    """A model input, optionally with a declared datatype and shape."""

    def __init__(self, dtype: Any = None, shape: Any = None) -> None:
        self.fact = TensorFact(TypeFact(dtype), _coerce_shape(shape))

    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 0)
        return [], self.fact

    def is_stateless(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Placeholder({self.fact})"


def _coerce_shape(shape: Any) -> ShapeFact:
    if shape is None:
        return ShapeFact.open()
    if isinstance(shape, ShapeFact):
        return shape
    if isinstance(shape, str):
        return parse_shape(shape)
    return ShapeFact.closed(shape)


class _Unary(Op):
    """Elementwise op with one input and an output of the same type and shape."""

    fn: Callable[[np.ndarray], np.ndarray]
    invertible = False

    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 1)
        (x,) = inputs
        merged = x.without_value().unify(output.without_value())
        value_in, value_out = ValueFact(), ValueFact()
        if x.value.is_concrete():
            value_out = ValueFact(self.eval([x.concretize()]))  # type: ignore[list-item]
        if self.invertible and output.value.is_concrete():
            value_in = output.value
        return [replace(merged, value=value_in)], replace(merged, value=value_out)

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        self._expect_arity(inputs, 1)
        return type(self).fn(inputs[0])


@register_op("Identity")
class Identity(_Unary):
    invertible = True

    @staticmethod
    def fn(x: np.ndarray) -> np.ndarray:
        return x


@register_op("Relu")
class Relu(_Unary):
    @staticmethod
    def fn(x: np.ndarray) -> np.ndarray:
        return np.maximum(x, 0).astype(x.dtype)


def _broadcast_dim(a: DimFact, b: DimFact) -> DimFact:
    if a == DimFact.only(1):
        return b
    if b == DimFact.only(1):
        return a
    if a == b:
        return a
    if a.value is not None and b.value is not None:
        raise OpError(f"Broadcast mismatch: {a} vs {b}", code="EBROADCAST")
    if a.is_streamed() or b.is_streamed():
        if DimFact.ANY in (a, b):
            # The unknown side may only be 1 or the streamed extent.
            return DimFact.STREAMED
        raise OpError(f"Broadcast mismatch: {a} vs {b}", code="EBROADCAST")
    # Any against n > 1 can only broadcast to n.
    if a == DimFact.ANY:
        return b if b.value is not None and b.value > 1 else DimFact.ANY
    return a if a.value is not None and a.value > 1 else DimFact.ANY


def broadcast_shapes(a: ShapeFact, b: ShapeFact) -> ShapeFact:
    """Numpy broadcasting over shape facts; open inputs give an open result."""
    if a.is_open or b.is_open:
        return ShapeFact.open()
    ra = list(reversed(a.dims))
    rb = list(reversed(b.dims))
    result: list[DimFact] = []
    for i in range(max(len(ra), len(rb))):
        da = ra[i] if i < len(ra) else DimFact.only(1)
        db = rb[i] if i < len(rb) else DimFact.only(1)
        result.append(_broadcast_dim(da, db))
    return ShapeFact.closed(reversed(result))


@register_op("Add")
class Add(Op):
    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 2)
        a, b = inputs
        datatype = a.datatype.unify(b.datatype).unify(output.datatype)
        shape = broadcast_shapes(a.shape, b.shape).unify(output.shape)
        value = ValueFact()
        if a.value.is_concrete() and b.value.is_concrete():
            value = ValueFact(self.eval([a.concretize(), b.concretize()]))  # type: ignore[list-item]
        operand = TensorFact(datatype)
        return [operand, operand], TensorFact(datatype, shape, value)

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        self._expect_arity(inputs, 2)
        a, b = inputs
        return np.add(a, b).astype(np.result_type(a, b))


@register_op("Transpose")
class Transpose(Op):
    def __init__(self, perm: list[int] | None = None) -> None:
        if perm is not None and sorted(perm) != list(range(len(perm))):
            raise OpError(f"Invalid Transpose perm {perm}", code="ETRANSPOSE_PERM")
        self.perm = None if perm is None else list(perm)

    def _perm(self, rank: int) -> list[int]:
        if self.perm is None:
            return list(reversed(range(rank)))
        if len(self.perm) != rank:
            raise OpError(
                f"Transpose perm {self.perm} does not match rank {rank}",
                code="ETRANSPOSE_PERM",
            )
        return self.perm

    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 1)
        (x,) = inputs
        datatype = x.datatype.unify(output.datatype)
        in_shape, out_shape = x.shape, output.shape
        rank = in_shape.rank if in_shape.rank is not None else out_shape.rank
        if rank is None and self.perm is not None:
            rank = len(self.perm)
        if rank is not None:
            perm = self._perm(rank)
            in_shape = in_shape.unify(ShapeFact.closed([None] * rank))
            out_shape = out_shape.unify(ShapeFact.closed([None] * rank))
            forward = ShapeFact.closed([in_shape.dims[p] for p in perm])
            out_shape = out_shape.unify(forward)
            backward = [DimFact.ANY] * rank
            for i, p in enumerate(perm):
                backward[p] = out_shape.dims[i]
            in_shape = in_shape.unify(ShapeFact.closed(backward))
        value = ValueFact()
        if x.value.is_concrete():
            value = ValueFact(self.eval([x.concretize()]))  # type: ignore[list-item]
        return [TensorFact(datatype, in_shape)], TensorFact(datatype, out_shape, value)

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        self._expect_arity(inputs, 1)
        x = inputs[0]
        return np.transpose(x, axes=self._perm(x.ndim))

    def __repr__(self) -> str:
        return f"Transpose(perm={self.perm})"
