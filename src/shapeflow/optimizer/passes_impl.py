from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

import numpy as np

from shapeflow.ops.basic import Const
from shapeflow.optimizer.passes import Pass

if TYPE_CHECKING:
    from shapeflow.analyser import Analyser


def _known_inputs(analyser: Analyser, node: int) -> list[np.ndarray] | None:
    values: list[np.ndarray] = []
    for j in analyser.prev_edges[node]:
        value = analyser.edges[j].fact.concretize()
        if value is None:
            return None
        values.append(value)
    return values


class ConstantFoldingPass(Pass):
    """Fold nodes whose output value is known, or whose inputs all are."""

    def match(self, analyser: Analyser) -> Iterable[int]:
        for idx in analyser.plan:
            node = analyser.nodes[idx]
            if isinstance(node.op, Const):
                continue
            if analyser.output_fact(idx).value.is_concrete():
                yield idx
                continue
            # Nodes without inputs are sources, not foldable computations.
            if not node.inputs or not node.op.is_stateless():
                continue
            if _known_inputs(analyser, idx) is not None:
                yield idx

    def apply(self, analyser: Analyser, candidate: int) -> None:
        value = analyser.output_fact(candidate).concretize()
        if value is None:
            inputs = _known_inputs(analyser, candidate)
            if inputs is None:
                return
            value = analyser.nodes[candidate].op.eval(inputs)
        analyser.fold_node(candidate, value)
