from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shapeflow.ir.errors import InvalidReferenceError

if TYPE_CHECKING:
    from shapeflow.ops.base import Op

# (producer node id, optional output slot)
NodeInput = tuple[int, "int | None"]


@dataclass
class Node:
    id: int
    name: str
    op_name: str
    op: Op
    inputs: list[NodeInput] = field(default_factory=list)


@dataclass
class Model:
    nodes: list[Node] = field(default_factory=list)
    nodes_by_name: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_nodes(cls, nodes: list[Node]) -> Model:
        model = cls(nodes=list(nodes))
        model.nodes_by_name = {n.name: n.id for n in model.nodes}
        return model

    def node(self, name: str) -> Node:
        idx = self.nodes_by_name.get(name)
        if idx is None:
            raise InvalidReferenceError(f"There is no node named '{name}'.", name)
        return self.nodes[idx]

    def validate(self) -> None:
        """Check dense ids, unique names and input references."""
        seen: set[str] = set()
        for idx, node in enumerate(self.nodes):
            if node.id != idx:
                raise InvalidReferenceError(
                    f"Node '{node.name}' has id {node.id} but sits at index {idx}.",
                    node.id,
                )
            if node.name in seen:
                raise InvalidReferenceError(
                    f"Duplicate node name '{node.name}'.", node.id
                )
            seen.add(node.name)
            for producer, _ in node.inputs:
                if not 0 <= producer < len(self.nodes):
                    raise InvalidReferenceError(
                        f"Node '{node.name}' consumes unknown node {producer}.",
                        producer,
                    )


class ModelBuilder:
    """Small helper to assemble a model node by node."""

    def __init__(self) -> None:
        self._nodes: list[Node] = []

    def add(
        self,
        name: str,
        op: Op,
        inputs: list[int | NodeInput] | None = None,
        op_name: str | None = None,
    ) -> int:
        idx = len(self._nodes)
        normalized: list[NodeInput] = []
        for inp in inputs or []:
            normalized.append(inp if isinstance(inp, tuple) else (inp, None))
        self._nodes.append(
            Node(
                id=idx,
                name=name,
                op_name=op_name or type(op).__dict__.get("op_name", type(op).__name__),
                op=op,
                inputs=normalized,
            )
        )
        return idx

    def build(self) -> Model:
        model = Model.from_nodes(self._nodes)
        model.validate()
        return model
