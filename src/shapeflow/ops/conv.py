from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from shapeflow.ir.errors import OpError, StreamingError
from shapeflow.ir.facts import DimFact, ShapeFact, TensorFact, ValueFact
from shapeflow.ops.base import Op, StepInput
from shapeflow.ops.registry import register_op


class StreamPhase(Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    READY = "ready"
    SKIPPING = "skipping"


@dataclass
class ConvStreamState:
    """Chunks buffered along the streamed axis between two steps."""

    phase: StreamPhase = StreamPhase.EMPTY
    buffer: np.ndarray | None = None
    skip: int = 0

    def accumulate(self, chunk: np.ndarray, axis: int) -> np.ndarray:
        if self.buffer is None:
            self.buffer = chunk
        else:
            self.buffer = np.concatenate([self.buffer, chunk], axis=axis)
        self.phase = StreamPhase.ACCUMULATING
        return self.buffer

    def consume(self, stride: int, axis: int) -> None:
        """Drop the first ``stride`` chunks, skipping future ones if needed."""
        if self.buffer is None:
            raise StreamingError("Cannot consume from an empty stream buffer.")
        size = self.buffer.shape[axis]
        if stride > size:
            self.buffer = None
            self.skip = stride - size
            self.phase = StreamPhase.SKIPPING
            return
        index = [slice(None)] * self.buffer.ndim
        index[axis] = slice(stride, None)
        rest = self.buffer[tuple(index)]
        self.buffer = rest if rest.shape[axis] else None
        self.phase = StreamPhase.ACCUMULATING if self.buffer is not None else StreamPhase.EMPTY


def _conv_out_dim(data: DimFact, kernel: DimFact, stride: int) -> DimFact:
    if data.is_streamed():
        return DimFact.STREAMED
    d, k = data.concretize(), kernel.concretize()
    if d is None or k is None:
        return DimFact.ANY
    if d < k:
        raise OpError(f"Conv2D input extent {d} is smaller than the filter {k}", code="ECONV_DIMS")
    return DimFact.only((d - k) // stride + 1)


@register_op("Conv2D")
class Conv2D(Op):
    """
    2D convolution with VALID padding on NHWC data and an HWIO filter.

    Streaming is supported along the batch, height or width axis of the data.
    """

    def __init__(self, strides: tuple[int, int] | list[int] = (1, 1)) -> None:
        if len(strides) != 2 or any(s <= 0 for s in strides):
            raise OpError(f"Conv2D strides must be two positive ints, got {strides}", code="ECONV_ATTRS")
        self.strides = (int(strides[0]), int(strides[1]))

    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        self._expect_arity(inputs, 2)
        data, filt = inputs
        datatype = data.datatype.unify(filt.datatype).unify(output.datatype)

        rank4 = ShapeFact.closed([None] * 4)
        x = data.shape.unify(rank4).dims
        k = filt.shape.unify(rank4).dims
        y = output.shape.unify(rank4).dims

        batch = x[0].unify(y[0])
        channels = x[3].unify(k[2])
        features = k[3].unify(y[3])
        height = _conv_out_dim(x[1], k[0], self.strides[0]).unify(y[1])
        width = _conv_out_dim(x[2], k[1], self.strides[1]).unify(y[2])

        value = ValueFact()
        if data.value.is_concrete() and filt.value.is_concrete():
            value = ValueFact(self.eval([data.concretize(), filt.concretize()]))  # type: ignore[list-item]

        return (
            [
                TensorFact(datatype, ShapeFact.closed([batch, x[1], x[2], channels])),
                TensorFact(datatype, ShapeFact.closed([k[0], k[1], channels, features])),
            ],
            TensorFact(datatype, ShapeFact.closed([batch, height, width, features]), value),
        )

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        self._expect_arity(inputs, 2)
        data, filt = inputs
        if data.ndim != 4 or filt.ndim != 4:
            raise OpError("Conv2D expects rank-4 tensors (NHWC, HWIO)", code="ECONV_RANK")
        kh, kw, cin, _ = filt.shape
        if data.shape[3] != cin:
            raise OpError(
                f"Conv2D channel mismatch: data has {data.shape[3]}, filter expects {cin}",
                code="ECONV_DIMS",
            )
        sh, sw = self.strides
        windows = sliding_window_view(data, (kh, kw), axis=(1, 2))[:, ::sh, ::sw]
        out = np.einsum("nhwcij,ijco->nhwo", windows, filt)
        return out.astype(np.result_type(data, filt))

    def new_state(self) -> ConvStreamState:
        return ConvStreamState()

    def step(self, inputs: list[StepInput], state: ConvStreamState) -> np.ndarray | None:
        # We need at least as many chunks as the filter extent along the
        # streamed axis to compute an output chunk. After that, we drop
        # min(buffered, stride) chunks, skip max(stride - buffered, 0)
        # incoming ones, and wait for the buffer to fill up again.
        if len(inputs) != 2:
            raise StreamingError(f"Conv2D expects 2 inputs, got {len(inputs)}")
        data, filt = inputs

        if filt.axis is not None or filt.chunk is None:
            raise StreamingError("Filter input should not be streamed.")
        if data.axis is None:
            raise StreamingError("Data input should be streamed.")

        # Maybe there is no incoming chunk.
        if data.chunk is None:
            return None

        axis = data.axis
        if axis == 0:
            return self.eval([data.chunk, filt.chunk])
        if axis not in (1, 2):
            raise StreamingError("Conv2D only supports batch, height and width streaming.")

        if state.skip > 0:
            state.skip -= 1
            if state.skip == 0:
                state.phase = StreamPhase.EMPTY
            return None

        buffer = state.accumulate(data.chunk, axis)
        filter_size = filt.chunk.shape[axis - 1]
        if buffer.shape[axis] < filter_size:
            return None

        state.phase = StreamPhase.READY
        result = self.eval([buffer, filt.chunk])
        state.consume(self.strides[axis - 1], axis)
        return result

    def __repr__(self) -> str:
        return f"Conv2D(strides={list(self.strides)})"
