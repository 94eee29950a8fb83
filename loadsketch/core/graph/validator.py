from __future__ import annotations

from collections import defaultdict, deque
from typing import Dict, List, Optional, Set

from ...errors import TopologyError
from ..models import NodeType, normalize_connection_type, normalize_type

Graph = Dict[str, object]


LAYER_MAP = {
    NodeType.TRAFFIC_SOURCE: "External",
    NodeType.LOAD_BALANCER: "Edge",
    NodeType.CDN: "Edge",
    NodeType.API_SERVER: "Compute",
    NodeType.CACHE: "DataAccess",
    NodeType.DATABASE: "Storage",
    NodeType.OBJECT_STORE: "Blob",
    NodeType.QUEUE: "Async",
    NodeType.ANNOTATION: "Annotation",
}

ALLOWED_TRANSITIONS = {
    "External": {"Edge", "Compute", "Blob"},
    "Edge": {"Edge", "Compute", "Blob"},
    "Compute": {"Edge", "Compute", "DataAccess", "Storage", "Blob", "Async"},
    "DataAccess": {"DataAccess"},
    "Storage": {"Storage"},
    "Blob": set(),
    "Async": {"Async", "Compute"},
    "Annotation": set(),
}

EXPECTED_CONNECTIONS = {
    "Storage": {"database"},
    "DataAccess": {"cache"},
}

CONNECTION_WARNINGS = {
    (NodeType.TRAFFIC_SOURCE, NodeType.API_SERVER): "Consider routing clients through a load balancer for better reliability.",
    (NodeType.API_SERVER, NodeType.API_SERVER): "Service-to-service calls should typically go through a load balancer.",
}


def _detect_cycle(node_id: str, adjacency: Dict[str, List[str]], visiting: Set[str], visited: Set[str]) -> bool:
    visiting.add(node_id)
    for neighbor in adjacency.get(node_id, []):
        if neighbor in visiting:
            return True
        if neighbor not in visited:
            if _detect_cycle(neighbor, adjacency, visiting, visited):
                return True
    visiting.remove(node_id)
    visited.add(node_id)
    return False


def _resolve_type(node: Dict[str, object]) -> Optional[NodeType]:
    try:
        return normalize_type(node.get("type"))
    except TopologyError:
        return None


def _explicit_connection(edge: Dict[str, object]) -> Optional[str]:
    data = edge.get("data") or {}
    raw = (
        edge.get("connection_type")
        or edge.get("connectionType")
        or data.get("connection_type")
        or data.get("connectionType")
    )
    if not raw:
        return None
    try:
        return normalize_connection_type(raw).value
    except TopologyError:
        return str(raw)


def validate_graph(graph: Graph) -> Dict[str, object]:
    errors: List[str] = []
    warnings: List[str] = []
    nodes = graph.get("nodes", []) or []
    edges = graph.get("edges", []) or []

    if not nodes:
        return {"valid": False, "errors": ["Graph must contain at least one node."], "warnings": []}

    node_map = {node.get("id"): node for node in nodes if node.get("id")}
    if len(node_map) != len(nodes):
        errors.append("Each node must include a unique, non-empty id.")

    node_types: Dict[str, NodeType] = {}
    for node_id, node in node_map.items():
        node_type = _resolve_type(node)
        if node_type is None:
            errors.append(f"Node {node_id} has unknown type {node.get('type')!r}.")
            continue
        node_types[node_id] = node_type

    adjacency: Dict[str, List[str]] = defaultdict(list)

    for edge in edges:
        source = edge.get("source")
        target = edge.get("target")
        if source not in node_map or target not in node_map:
            errors.append("Edges must reference valid node ids.")
            continue
        if source == target:
            errors.append("Self-referential edges are not allowed.")
            continue
        adjacency[source].append(target)

        source_type = node_types.get(source)
        target_type = node_types.get(target)
        if source_type is None or target_type is None:
            continue
        source_layer = LAYER_MAP[source_type]
        target_layer = LAYER_MAP[target_type]

        if NodeType.ANNOTATION in (source_type, target_type):
            errors.append("Annotations cannot be connected to other components.")
            continue

        if source_type == NodeType.TRAFFIC_SOURCE and target_type in {NodeType.DATABASE, NodeType.CACHE}:
            errors.append("Clients cannot directly access storage or cache layers.")
        elif source_type == NodeType.LOAD_BALANCER and target_type == NodeType.DATABASE:
            errors.append("Load balancers should not connect directly to databases.")
        elif target_layer not in ALLOWED_TRANSITIONS.get(source_layer, set()):
            errors.append(f"Cannot connect {source_type.value} to {target_type.value}.")

        connection = _explicit_connection(edge)
        expected = EXPECTED_CONNECTIONS.get(target_layer, {"http", "websocket"})
        if connection is not None and connection not in expected:
            warnings.append(
                f"Connection {source} -> {target} uses {connection}; expected {', '.join(sorted(expected))}."
            )

        warning = CONNECTION_WARNINGS.get((source_type, target_type))
        if warning:
            warnings.append(warning)

    sources = [node_id for node_id, node_type in node_types.items() if node_type == NodeType.TRAFFIC_SOURCE]
    if not sources:
        errors.append("Graph must contain at least one traffic source.")

    visited: Set[str] = set()
    for node_id in node_map:
        if node_id not in visited:
            if _detect_cycle(node_id, adjacency, set(), visited):
                warnings.append("Graph contains a cycle; each request visits a node at most once.")
                break

    if sources:
        reachable: Set[str] = set()
        queue = deque(sources)
        while queue:
            node_id = queue.popleft()
            if node_id in reachable:
                continue
            reachable.add(node_id)
            for neighbor in adjacency.get(node_id, []):
                if neighbor not in reachable:
                    queue.append(neighbor)
        unreachable = [
            node_id
            for node_id in node_map
            if node_id not in reachable and node_types.get(node_id) != NodeType.ANNOTATION
        ]
        if unreachable:
            warnings.append(f"Unreachable from any traffic source: {', '.join(sorted(map(str, unreachable)))}.")

    return {
        "valid": len(errors) == 0,
        "errors": sorted(set(errors)),
        "warnings": sorted(set(warnings)),
    }
