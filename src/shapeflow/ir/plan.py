from __future__ import annotations

import heapq
from collections.abc import Sequence
from dataclasses import dataclass, field

from shapeflow.ir.errors import PlanError
from shapeflow.ir.graph import Node


@dataclass
class Plan:
    """An execution order for the nodes required by some outputs."""

    order: list[int] = field(default_factory=list)

    @classmethod
    def for_nodes(cls, nodes: Sequence[Node], outputs: Sequence[int]) -> Plan:
        """
        Return the nodes needed to compute ``outputs``, each after its producers.
        Raise PlanError on cycles or references to unknown nodes.
        """
        count = len(nodes)
        required: set[int] = set()
        stack: list[int] = []
        for out in outputs:
            if not 0 <= out < count:
                raise PlanError(
                    f"Output {out} is not a node of the graph.",
                    code="EDANGLING",
                    node_id=out,
                )
            stack.append(out)

        # Walk the inputs backwards from the outputs.
        while stack:
            idx = stack.pop()
            if idx in required:
                continue
            required.add(idx)
            for producer, _ in nodes[idx].inputs:
                if not 0 <= producer < count:
                    raise PlanError(
                        f"Node {nodes[idx].name!r} consumes unknown node {producer}.",
                        code="EDANGLING",
                        node_id=idx,
                    )
                if producer not in required:
                    stack.append(producer)

        indegree: dict[int, int] = {i: 0 for i in required}
        adj: dict[int, set[int]] = {i: set() for i in required}
        for v in required:
            for u, _ in nodes[v].inputs:
                if v not in adj[u]:
                    adj[u].add(v)
                    indegree[v] += 1

        # Kahn's algorithm, smallest id first for a stable order
        queue: list[int] = [i for i, d in indegree.items() if d == 0]
        heapq.heapify(queue)
        order: list[int] = []
        while queue:
            u = heapq.heappop(queue)
            order.append(u)
            for v in adj[u]:
                indegree[v] -= 1
                if indegree[v] == 0:
                    heapq.heappush(queue, v)

        if len(order) != len(required):
            stuck = min(i for i, d in indegree.items() if d > 0)
            raise PlanError("Cycle detected in graph", code="ECYCLE", node_id=stuck)
        return cls(order)
