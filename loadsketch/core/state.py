"""Mutable per-run counters.

A ``RunState`` is created at the start of a run and owns one record per
simulated node, edge and entry point. Records are passed by reference into
the request-path traversal and discarded once the result has been built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .behaviors import BehaviorProfile, get_behavior, get_instance_count, memory_capacity_mb
from .graph.topology import Topology
from .models import Node, NodeType


def percentile_99(samples: Sequence[float]) -> float:
    if not samples:
        return 0.0
    ordered = sorted(samples)
    index = int(len(ordered) * 0.99)
    return ordered[min(index, len(ordered) - 1)]


@dataclass
class NodeState:
    node_id: str
    node_type: NodeType
    behavior: BehaviorProfile
    instances: int
    max_memory_mb: float
    requests_received: int = 0
    requests_processed: int = 0
    total_latency_ms: float = 0.0
    latencies: List[float] = field(default_factory=list)
    peak_rps: int = 0
    current_rps: int = 0
    errors: int = 0
    cache_hits: int = 0
    rps_this_second: int = 0

    @classmethod
    def for_node(cls, node: Node) -> "NodeState":
        instances = get_instance_count(node.scaling)
        return cls(
            node_id=node.id,
            node_type=node.type,
            behavior=get_behavior(node.type),
            instances=instances,
            max_memory_mb=memory_capacity_mb(instances),
        )

    @property
    def max_rps(self) -> float:
        return self.behavior.max_rps_per_instance * self.instances

    @property
    def avg_latency_ms(self) -> float:
        if self.requests_processed == 0:
            return 0.0
        return self.total_latency_ms / self.requests_processed

    @property
    def error_rate(self) -> float:
        if self.requests_received == 0:
            return 0.0
        return self.errors / self.requests_received

    def load_factor(self) -> float:
        max_rps = self.max_rps
        return self.rps_this_second / max_rps if max_rps > 0 else 0.0


@dataclass
class EdgeState:
    edge_id: str
    source: str
    request_count: int = 0
    total_bytes_transferred: int = 0
    total_latency_ms: float = 0.0


@dataclass
class EntryPointState:
    node_id: str
    total_requests: int = 0
    successful_responses: int = 0
    failed_requests: int = 0
    total_rtt_ms: float = 0.0
    rtt_samples: List[float] = field(default_factory=list)

    def record(self, latency_ms: float, success: bool) -> None:
        self.total_requests += 1
        if success:
            self.successful_responses += 1
            self.total_rtt_ms += latency_ms
            self.rtt_samples.append(latency_ms)
        else:
            self.failed_requests += 1


@dataclass
class RunState:
    nodes: Dict[str, NodeState] = field(default_factory=dict)
    edges: Dict[str, EdgeState] = field(default_factory=dict)
    entry_points: Dict[str, EntryPointState] = field(default_factory=dict)

    @classmethod
    def for_topology(cls, topology: Topology) -> "RunState":
        state = cls()
        for node in topology.nodes.values():
            # Annotations take no part in the simulation.
            if node.type != NodeType.ANNOTATION:
                state.nodes[node.id] = NodeState.for_node(node)
        for edge in topology.edges.values():
            state.edges[edge.id] = EdgeState(edge_id=edge.id, source=edge.source)
        for node in topology.entry_points():
            state.entry_points[node.id] = EntryPointState(node_id=node.id)
        return state

    def start_second(self) -> None:
        for node_state in self.nodes.values():
            node_state.rps_this_second = 0

    def end_second(self) -> None:
        for node_state in self.nodes.values():
            node_state.current_rps = node_state.rps_this_second
            node_state.peak_rps = max(node_state.peak_rps, node_state.rps_this_second)

    def bytes_sent_by(self, node_id: str) -> int:
        return sum(edge.total_bytes_transferred for edge in self.edges.values() if edge.source == node_id)
