from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from shapeflow.analyser import Analyser
from shapeflow.ir.errors import StreamingError
from shapeflow.ops.base import StepInput
from shapeflow.ops.basic import Placeholder
from shapeflow.utils.logger import get_logger

logger = get_logger(__name__)


class StreamingExecutor:
    """
    Runs an analysed model chunk by chunk along its streamed dimensions.

    Nodes whose output has no streamed dimension are evaluated once, up
    front. Every other node gets a state object from its operator, owned
    here and handed to ``Op.step`` on each invocation.
    """

    def __init__(
        self, analyser: Analyser, inputs: Mapping[str, Any] | None = None
    ) -> None:
        inputs = dict(inputs or {})
        self.nodes = analyser.nodes
        self.output = analyser.output
        self.plan = analyser.plan
        self.input_axes: dict[int, list[int | None]] = {}
        self.output_axis: dict[int, int | None] = {}
        self.values: dict[int, np.ndarray] = {}
        self.states: dict[int, Any] = {}

        for idx in self.plan:
            node = self.nodes[idx]
            self.output_axis[idx] = analyser.output_fact(idx).shape.streamed_axis()
            self.input_axes[idx] = [
                analyser.edges[j].fact.shape.streamed_axis()
                for j in analyser.prev_edges[idx]
            ]

            if self.output_axis[idx] is not None:
                self.states[idx] = node.op.new_state()
                continue
            if any(axis is not None for axis in self.input_axes[idx]):
                raise StreamingError(
                    f"Node {node.name!r} consumes a streamed input but its output is not streamed."
                )
            if isinstance(node.op, Placeholder):
                if node.name not in inputs:
                    raise StreamingError(f"Missing value for input {node.name!r}.")
                self.values[idx] = np.asarray(inputs[node.name])
            else:
                args = [self.values[p] for p, _ in node.inputs]
                self.values[idx] = node.op.eval(args)

        logger.info(
            "Streaming %d of %d planned nodes.", len(self.states), len(self.plan)
        )

    def push(self, name: str, chunk: Any) -> np.ndarray | None:
        """Feeds one chunk to a streamed input; returns the output chunk, if any."""
        source = next((n.id for n in self.nodes if n.name == name), None)
        if source is None or source not in self.states:
            raise StreamingError(f"{name!r} is not a streamed input of the model.")
        if not isinstance(self.nodes[source].op, Placeholder):
            raise StreamingError(f"{name!r} is not a model input.")

        produced: dict[int, np.ndarray | None] = {source: np.asarray(chunk)}
        for idx in self.plan:
            if idx == source or idx not in self.states:
                continue
            node = self.nodes[idx]
            if isinstance(node.op, Placeholder):
                produced[idx] = None
                continue
            step_inputs = []
            for (producer, _), axis in zip(node.inputs, self.input_axes[idx]):
                if axis is None:
                    step_inputs.append(StepInput(None, self.values[producer]))
                else:
                    step_inputs.append(StepInput(axis, produced.get(producer)))
            produced[idx] = node.op.step(step_inputs, self.states[idx])

        if self.output not in self.states:
            raise StreamingError("The model output is not streamed.")
        return produced.get(self.output)

    def run(self, name: str, chunks: Any) -> list[np.ndarray]:
        """Pushes every chunk and collects the emitted output chunks."""
        outputs = []
        for chunk in chunks:
            result = self.push(name, chunk)
            if result is not None:
                outputs.append(result)
        return outputs
