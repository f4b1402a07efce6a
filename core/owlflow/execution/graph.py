"""Pure queries over an immutable flow graph."""

from __future__ import annotations

from dataclasses import dataclass

from owlflow.domain.models import Graph, Node
from owlflow.errors import FlowStructureError


@dataclass(frozen=True, slots=True)
class Successor:
    """A downstream node reached through one outgoing edge."""

    node: Node
    branch_label: str | None = None

    def __repr__(self) -> str:
        label = f" [{self.branch_label}]" if self.branch_label else ""
        return f"→ {self.node.id}{label}"


class FlowGraph:
    """Side-effect-free view of a Graph's nodes and edges."""

    def __init__(self, graph: Graph) -> None:
        self.graph = graph
        self._nodes: dict[str, Node] = {}
        for node in graph.nodes:
            self._nodes.setdefault(node.id, node)

    @property
    def nodes(self) -> list[Node]:
        return list(self.graph.nodes)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def find_trigger_nodes(self) -> list[Node]:
        """Nodes with no incoming edge, in declaration order."""
        target_ids = {edge.target for edge in self.graph.edges}
        return [node for node in self.graph.nodes if node.id not in target_ids]

    def find_successors(self, node_id: str) -> list[Successor]:
        """One entry per outgoing edge of `node_id`, in edge order."""
        successors = []
        for edge in self.graph.edges:
            if edge.source != node_id:
                continue
            target = self._nodes.get(edge.target)
            if target is not None:
                successors.append(Successor(node=target, branch_label=edge.branch_label))
        return successors

    def validate(self) -> None:
        """Reject graphs the engine cannot run.

        Raises:
            FlowStructureError: On duplicate node ids or dangling edges
        """
        seen: set[str] = set()
        for node in self.graph.nodes:
            if node.id in seen:
                raise FlowStructureError(f"Duplicate node id: {node.id}")
            seen.add(node.id)

        for edge in self.graph.edges:
            for end, node_id in (("source", edge.source), ("target", edge.target)):
                if node_id not in self._nodes:
                    edge_name = edge.id or f"{edge.source}->{edge.target}"
                    raise FlowStructureError(
                        f"Edge {edge_name} references unknown {end} node {node_id}"
                    )
