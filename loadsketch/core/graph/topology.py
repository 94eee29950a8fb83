from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from ..models import Edge, Node, NodeType


@dataclass
class Topology:
    nodes: Dict[str, Node] = field(default_factory=dict)
    edges: Dict[str, Edge] = field(default_factory=dict)
    outgoing: Dict[str, List[Edge]] = field(default_factory=dict)
    incoming: Dict[str, List[Edge]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, graph: Mapping[str, object]) -> "Topology":
        nodes = [Node.from_dict(node) for node in graph.get("nodes", []) or []]
        edges = [Edge.from_dict(edge) for edge in graph.get("edges", []) or []]
        return build_topology(nodes, edges)

    def entry_points(self) -> List[Node]:
        return [node for node in self.nodes.values() if node.type == NodeType.TRAFFIC_SOURCE]

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return self.outgoing.get(node_id, [])

    def nodes_of_type(self, node_type: NodeType) -> List[Node]:
        return [node for node in self.nodes.values() if node.type == node_type]


def build_topology(nodes: Iterable[Node], edges: Iterable[Edge]) -> Topology:
    topology = Topology()

    for node in nodes:
        topology.nodes[node.id] = node
        topology.outgoing[node.id] = []
        topology.incoming[node.id] = []

    # Dangling endpoints are the caller's problem; such edges are simply not attached.
    for edge in edges:
        topology.edges[edge.id] = edge
        if edge.source in topology.outgoing:
            topology.outgoing[edge.source].append(edge)
        if edge.target in topology.incoming:
            topology.incoming[edge.target].append(edge)

    return topology
