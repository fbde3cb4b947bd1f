from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from shapeflow.ir.errors import (
    AnalysisError,
    ConvergenceError,
    InvalidReferenceError,
    InvariantViolation,
    PlanError,
    UnificationError,
)
from shapeflow.ir.facts import TensorFact
from shapeflow.ir.graph import Model, Node
from shapeflow.ir.plan import Plan
from shapeflow.ops.basic import Const
from shapeflow.optimizer import build_constant_pipeline
from shapeflow.utils.config import AnalyserConfig
from shapeflow.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Edge:
    """An edge of the analysed graph, annotated by a fact."""

    id: int
    from_node: int | None
    from_out: int
    to_node: int | None
    fact: TensorFact


class Analyser:
    """
    A graph analyser, along with its current state.

    Every node input becomes an edge, plus a terminal edge leaving the output
    node so that the output fact is tracked like any other. The analyser then
    sweeps the execution plan forwards and backwards, asking each node to
    refine the facts of its incident edges, until nothing changes.
    """

    def __init__(
        self, model: Model, output: int, config: AnalyserConfig | None = None
    ) -> None:
        self.config = config or AnalyserConfig()
        self.nodes: list[Node] = model.nodes
        count = len(self.nodes)
        if not 0 <= output < count:
            raise InvalidReferenceError(f"There is no node with index {output}.", output)
        for idx, node in enumerate(self.nodes):
            if node.id != idx:
                raise InvalidReferenceError(
                    f"Node '{node.name}' has id {node.id} but sits at index {idx}.",
                    node.id,
                )

        self.output = output
        self.edges: list[Edge] = []
        self.prev_edges: list[list[int]] = [[] for _ in range(count)]
        self.next_edges: list[list[int]] = [[] for _ in range(count)]

        for node in self.nodes:
            for producer, slot in node.inputs:
                if not 0 <= producer < count:
                    raise PlanError(
                        f"Node '{node.name}' consumes unknown node {producer}.",
                        code="EDANGLING",
                        node_id=node.id,
                    )
                self._add_edge(producer, slot or 0, node.id)

        # Add a special output edge.
        self._add_edge(output, 0, None)

        self._plan = Plan.for_nodes(self.nodes, [output]).order
        self.current_pass = 0
        self.current_step = 0
        self.current_direction = True

        logger.info("Using execution plan %s.", self._plan)

    def _add_edge(self, from_node: int | None, from_out: int, to_node: int | None) -> int:
        idx = len(self.edges)
        self.edges.append(Edge(idx, from_node, from_out, to_node, TensorFact()))
        if to_node is not None:
            self.prev_edges[to_node].append(idx)
        if from_node is not None:
            self.next_edges[from_node].append(idx)
        return idx

    @property
    def plan(self) -> list[int]:
        return list(self._plan)

    def _check_node(self, node: int) -> None:
        if not 0 <= node < len(self.nodes):
            raise InvalidReferenceError(f"There is no node with index {node}.", node)

    def hint(self, node: int, fact: TensorFact) -> None:
        """Adds an user-provided tensor fact about the output of a node."""
        self._check_node(node)
        self._commit([(j, fact.unify(self.edges[j].fact)) for j in self.next_edges[node]])

    def hint_by_name(self, name: str, fact: TensorFact) -> None:
        for node in self.nodes:
            if node.name == name:
                self.hint(node.id, fact)
                return
        raise InvalidReferenceError(f"There is no node named '{name}'.", name)

    def output_fact(self, node: int) -> TensorFact:
        """Unifies the facts of every edge leaving the node."""
        self._check_node(node)
        fact = TensorFact()
        for j in self.next_edges[node]:
            fact = fact.unify(self.edges[j].fact)
        return fact

    def into_model(self) -> Model:
        """Drops the analysis bookkeeping and returns the nodes as a model."""
        return Model.from_nodes(self.nodes)

    def reset_plan(self) -> None:
        """Computes a new execution plan for the graph."""
        self._plan = Plan.for_nodes(self.nodes, [self.output]).order
        self.current_step = 0
        logger.info("Using execution plan %s.", self._plan)

    def propagate_constants(self) -> list[int]:
        """Folds the nodes with a known value and detaches their inputs."""
        folded = build_constant_pipeline().run(self)
        self.reset_plan()
        logger.info("Folded %d constant nodes.", len(folded))
        return folded

    def fold_node(self, node: int, value: np.ndarray) -> None:
        """Turns a node into a constant and detaches its input edges."""
        self._check_node(node)
        fact = TensorFact.from_tensor(value)
        self._commit([(j, fact.unify(self.edges[j].fact)) for j in self.next_edges[node]])

        target = self.nodes[node]
        for j in self.prev_edges[target.id]:
            edge = self.edges[j]
            if edge.from_node is not None:
                self.next_edges[edge.from_node].remove(j)
            edge.from_node = None
            edge.to_node = None
        self.prev_edges[target.id] = []
        target.inputs = []
        target.op = Const(value)
        target.op_name = Const.op_name

    def prune_unused(self) -> list[int | None]:
        """
        Removes the nodes and edges which are not part of the execution plan.
        Returns the mapping between the old and new node indexes.
        """
        node_used = [False] * len(self.nodes)
        edge_used = [False] * len(self.edges)
        for i in self._plan:
            node_used[i] = True
            for j in self.prev_edges[i]:
                edge_used[j] = True
            for j in self.next_edges[i]:
                edge_used[j] = True

        node_mapping = self._compact(node_used, edge_used)
        logger.info("Deleted %d unused nodes.", node_used.count(False))
        logger.info("Deleted %d unused edges.", edge_used.count(False))
        return node_mapping

    def _compact(self, node_used: list[bool], edge_used: list[bool]) -> list[int | None]:
        """Deletes unused nodes and edges, renumbering every reference."""
        node_mapping = _dense_mapping(node_used)
        edge_mapping = _dense_mapping(edge_used)

        def new_node(i: int) -> int:
            j = node_mapping[i]
            if j is None:
                raise InvariantViolation(f"A retained element references deleted node {i}.", i)
            return j

        def new_edge(i: int) -> int:
            j = edge_mapping[i]
            if j is None:
                raise InvariantViolation(f"A retained node references deleted edge {i}.")
            return j

        kept = [i for i, used in enumerate(node_used) if used]
        self.prev_edges = [[new_edge(j) for j in self.prev_edges[i]] for i in kept]
        self.next_edges = [[new_edge(j) for j in self.next_edges[i]] for i in kept]

        self.nodes = [self.nodes[i] for i in kept]
        for node in self.nodes:
            node.id = new_node(node.id)
            node.inputs = [(new_node(p), slot) for p, slot in node.inputs]

        self.edges = [e for e, used in zip(self.edges, edge_used) if used]
        for edge in self.edges:
            edge.id = new_edge(edge.id)
            if edge.from_node is not None:
                edge.from_node = node_mapping[edge.from_node]
            if edge.to_node is not None:
                edge.to_node = node_mapping[edge.to_node]

        self.output = new_node(self.output)
        self._plan = [new_node(i) for i in self._plan]
        self.current_step = 0
        return node_mapping

    def run(self) -> None:
        """Runs the entire analysis at once."""
        self.current_pass = 0
        rounds = 0
        while self.run_two_passes():
            rounds += 1
            limit = self.config.max_passes
            if limit is not None and rounds >= limit:
                raise ConvergenceError(
                    f"Analysis did not converge after {rounds} rounds.", rounds
                )

    def run_two_passes(self) -> bool:
        """Runs a forward then a backward pass; returns whether a fact changed."""
        changed = False
        self.current_direction = True

        for _ in range(2):
            logger.info(
                "Starting pass [pass=%d, direction=%s].",
                self.current_pass,
                "forward" if self.current_direction else "backward",
            )
            self.current_step = 0
            for _ in range(len(self._plan)):
                if self.run_step():
                    changed = True

        return changed

    def run_step(self) -> bool:
        """Runs a single step of the analysis."""
        if not self._plan:
            return False
        changed = self._try_step()

        # Switch to the next step.
        self.current_step += 1
        if self.current_step == len(self._plan):
            self.current_pass += 1
            self.current_direction = not self.current_direction
            self.current_step = 0

        return changed

    def _try_step(self) -> bool:
        """
        Tries to run a single step of the analysis, and returns whether
        there was any additional information gained during the step.
        """
        if self.current_direction:
            node = self.nodes[self._plan[self.current_step]]
        else:
            node = self.nodes[self._plan[len(self._plan) - 1 - self.current_step]]

        logger.debug(
            "Starting step for %s (%s) [pass=%d, direction=%s, step=%d].",
            node.name,
            node.op_name,
            self.current_pass,
            self.current_direction,
            self.current_step,
        )

        prev = self.prev_edges[node.id]
        nxt = self.next_edges[node.id]
        if len({self.edges[j].from_out for j in nxt}) > 1:
            raise InvariantViolation(
                f"Analyser only supports nodes with a single output port ({node.name!r}).",
                node.id,
            )

        inputs = [self.edges[j].fact for j in prev]
        try:
            output = TensorFact()
            for j in nxt:
                output = output.unify(self.edges[j].fact)
        except UnificationError as e:
            raise e.add_context(f"While combining outputs of node {node.name!r}")

        try:
            new_inputs, new_output = node.op.enrich(inputs, output)
        except AnalysisError as e:
            raise e.add_context(f"While enriching for {node.name}")

        if len(new_inputs) != len(prev) or not isinstance(new_output, TensorFact):
            raise InvariantViolation(
                f"Operator of node {node.name!r} must return {len(prev)} input facts "
                "and a single output fact.",
                node.id,
            )

        # Every unification must succeed before any edge is updated.
        refined: list[tuple[int, TensorFact]] = []
        for fact, j in zip(new_inputs, prev):
            try:
                refined.append((j, fact.unify(self.edges[j].fact)))
            except UnificationError as e:
                raise e.add_context(f"While unifying inputs of node {node.name!r}")

        for j in nxt:
            try:
                refined.append((j, new_output.unify(self.edges[j].fact)))
            except UnificationError as e:
                raise e.add_context(f"While unifying outputs of node {node.name!r}")

        return self._commit(refined)

    def _commit(self, refined: list[tuple[int, TensorFact]]) -> bool:
        changed = False
        for j, fact in refined:
            if fact != self.edges[j].fact:
                self.edges[j].fact = fact
                changed = True
        return changed


def _dense_mapping(used: list[bool]) -> list[int | None]:
    mapping: list[int | None] = []
    count = 0
    for flag in used:
        if flag:
            mapping.append(count)
            count += 1
        else:
            mapping.append(None)
    return mapping
