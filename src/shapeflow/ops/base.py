from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from shapeflow.ir.errors import OpError
from shapeflow.ir.facts import TensorFact


@dataclass(frozen=True)
class StepInput:
    """One input of a streaming step: the streamed axis and the available chunk.

    Non-streamed inputs have ``axis=None`` and carry their whole tensor.
    """

    axis: int | None = None
    chunk: np.ndarray | None = None


class Op(ABC):
    """Capability surface of an operator, as seen by the analyser and executor."""

    op_name: ClassVar[str] = "Op"

    @abstractmethod
    def enrich(
        self, inputs: list[TensorFact], output: TensorFact
    ) -> tuple[list[TensorFact], TensorFact]:
        """
        Refine the facts about the inputs and the single output of the op.
        Must return one fact per input, and must never drop information.
        """
        raise NotImplementedError

    def is_stateless(self) -> bool:
        """Whether ``eval`` computes the output from the inputs alone."""
        return True

    def eval(self, inputs: list[np.ndarray]) -> np.ndarray:
        raise OpError(f"{self.op_name} cannot be evaluated.")

    def new_state(self) -> Any:
        """Create the per-node state handed to ``step`` on each invocation."""
        return None

    def step(self, inputs: list[StepInput], state: Any) -> np.ndarray | None:
        """Evaluate one streaming step, or return None if no chunk is ready."""
        if any(i.chunk is None for i in inputs):
            return None
        return self.eval([i.chunk for i in inputs])  # type: ignore[misc]

    def _expect_arity(self, inputs: list[Any], count: int) -> None:
        if len(inputs) != count:
            raise OpError(
                f"{self.op_name} expects {count} inputs, got {len(inputs)}",
                code="EARITY",
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
