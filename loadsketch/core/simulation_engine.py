from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple, Union

from .behaviors import calculate_latency
from .bottlenecks import detect_bottlenecks
from .cache_model import CacheAnalysis, analyze_cache_key
from .graph.topology import Topology, build_topology
from .models import Edge, Node, NodeType
from .query_cost import QueryAnalysis, analyze_query
from .results import (
    EdgeMetrics,
    EntryPointMetrics,
    NodeMetrics,
    NodeResources,
    NodeSnapshot,
    SimulationConfig,
    SimulationResult,
    TimelineSnapshot,
)
from .rng import Rng, create_rng
from .state import EdgeState, EntryPointState, NodeState, RunState, percentile_99

logger = logging.getLogger(__name__)

BYTES_PER_REQUEST = 1024
NETWORK_BANDWIDTH_MBPS = 1000
CPU_CORES_PER_INSTANCE = 2

QueryAnalyses = Dict[str, QueryAnalysis]
CacheAnalyses = Dict[str, CacheAnalysis]


@dataclass(frozen=True)
class PathResult:
    total_latency_ms: float
    success: bool


def _analysis_key(node_id: str, item_id: str) -> str:
    return f"{node_id}:{item_id}"


def pre_analyze(topology: Topology, rps: float) -> Tuple[QueryAnalyses, CacheAnalyses]:
    query_analyses: QueryAnalyses = {}
    cache_analyses: CacheAnalyses = {}
    api_servers = topology.nodes_of_type(NodeType.API_SERVER)

    for node in topology.nodes.values():
        if node.type == NodeType.DATABASE:
            for table in node.tables:
                for server in api_servers:
                    for endpoint in server.endpoints:
                        for query in endpoint.linked_queries:
                            if query.target_node_id == node.id and query.target_table_id == table.id:
                                # Only one analysis per node and table survives; the last one wins.
                                query_analyses[_analysis_key(node.id, table.id)] = analyze_query(query, table)

        elif node.type == NodeType.CACHE:
            for key in node.keys:
                cache_analyses[_analysis_key(node.id, key.id)] = analyze_cache_key(key, rps)

    logger.debug(
        "Pre-analysis produced %d query analyses and %d cache analyses",
        len(query_analyses),
        len(cache_analyses),
    )
    return query_analyses, cache_analyses


def _apply_overload(latency: float, load_factor: float) -> float:
    if load_factor > 1.0:
        return latency * (1 + (load_factor - 1.0) * 10)
    if load_factor > 0.8:
        return latency * (1 + ((load_factor - 0.8) / 0.2) * 0.5)
    return latency


def simulate_request_path(
    start: Node,
    topology: Topology,
    run_state: RunState,
    rng: Rng,
    query_analyses: QueryAnalyses,
    cache_analyses: CacheAnalyses,
) -> PathResult:
    total_latency = 0.0
    visited = set()
    queue = deque([start])

    while queue:
        node = queue.popleft()
        if node.id in visited:
            continue
        visited.add(node.id)

        state = run_state.nodes.get(node.id)
        if state is None:
            continue

        state.requests_received += 1
        latency = calculate_latency(state.behavior.latency, rng)

        if node.type == NodeType.DATABASE:
            for table in node.tables:
                analysis = query_analyses.get(_analysis_key(node.id, table.id))
                if analysis is not None:
                    latency += analysis.estimated_cost_ms

        elif node.type == NodeType.CACHE:
            # A hit is recorded but does not shorten the request or prune downstream calls.
            hit = False
            for key in node.keys:
                analysis = cache_analyses.get(_analysis_key(node.id, key.id))
                if analysis is not None and analysis.estimated_hit_rate > 0:
                    if rng() < analysis.estimated_hit_rate:
                        hit = True
            if hit:
                state.cache_hits += 1

        state.rps_this_second += 1
        load_factor = state.load_factor()
        latency = _apply_overload(latency, load_factor)

        if load_factor > 1.5 and rng() < (load_factor - 1.5):
            state.errors += 1
            return PathResult(total_latency_ms=total_latency, success=False)

        state.latencies.append(latency)
        state.total_latency_ms += latency
        state.requests_processed += 1
        total_latency += latency

        for edge in topology.outgoing_edges(node.id):
            edge_state = run_state.edges.get(edge.id)
            if edge_state is not None:
                edge_state.request_count += 1
                edge_state.total_bytes_transferred += BYTES_PER_REQUEST
                edge_state.total_latency_ms += latency

            target = topology.nodes.get(edge.target)
            if target is None or target.id in visited:
                continue
            queue.append(target)
            if node.type == NodeType.LOAD_BALANCER:
                # Always the first unvisited target; there is no rotation between requests.
                break

    return PathResult(total_latency_ms=total_latency, success=True)


def _snapshot(second: int, run_state: RunState) -> TimelineSnapshot:
    node_metrics: Dict[str, NodeSnapshot] = {}
    for node_id, state in run_state.nodes.items():
        max_rps = state.max_rps
        cpu_percent = min(100.0, (state.rps_this_second / max_rps) * 100) if max_rps > 0 else 0.0

        avg_latency_ms = state.avg_latency_ms
        concurrent_requests = state.rps_this_second * (avg_latency_ms / 1000)
        memory_used_mb = concurrent_requests * state.behavior.memory_per_request_mb
        memory_percent = (memory_used_mb / state.max_memory_mb) * 100 if state.max_memory_mb > 0 else 0.0

        node_metrics[node_id] = NodeSnapshot(
            rps=state.current_rps,
            latency_ms=avg_latency_ms,
            cpu_percent=cpu_percent,
            memory_percent=memory_percent,
            error_rate=state.error_rate,
        )
    return TimelineSnapshot(timestamp=second, node_metrics=node_metrics)


def _node_metrics(state: NodeState, run_state: RunState, duration_seconds: int) -> NodeMetrics:
    avg_rps = state.requests_received / duration_seconds if duration_seconds > 0 else 0.0
    max_rps = state.max_rps
    cpu_utilization = min(100.0, (avg_rps / max_rps) * 100) if max_rps > 0 else 0.0

    # Little's law: concurrency = arrival rate x time in system.
    concurrent_requests = avg_rps * (state.avg_latency_ms / 1000)
    memory_used_mb = concurrent_requests * state.behavior.memory_per_request_mb

    bytes_per_second = run_state.bytes_sent_by(state.node_id) / duration_seconds if duration_seconds > 0 else 0.0
    network_used_mbps = bytes_per_second * 8 / 1_000_000

    return NodeMetrics(
        node_id=state.node_id,
        node_type=state.node_type.value,
        instances=state.instances,
        requests_received=state.requests_received,
        requests_processed=state.requests_processed,
        requests_queued=state.requests_received - state.requests_processed,
        avg_latency_ms=state.avg_latency_ms,
        p99_latency_ms=percentile_99(state.latencies),
        peak_rps=state.peak_rps,
        errors=state.errors,
        cache_hits=state.cache_hits,
        resources=NodeResources(
            cpu_cores=state.instances * CPU_CORES_PER_INSTANCE,
            cpu_utilization_percent=cpu_utilization,
            memory_total_mb=state.max_memory_mb,
            memory_used_mb=memory_used_mb,
            network_bandwidth_mbps=NETWORK_BANDWIDTH_MBPS,
            network_used_mbps=network_used_mbps,
        ),
    )


def _edge_metrics(state: EdgeState) -> EdgeMetrics:
    return EdgeMetrics(
        edge_id=state.edge_id,
        request_count=state.request_count,
        total_bytes_transferred=state.total_bytes_transferred,
        avg_latency_ms=state.total_latency_ms / state.request_count if state.request_count > 0 else 0.0,
    )


def _entry_point_metrics(state: EntryPointState) -> EntryPointMetrics:
    avg_rtt = state.total_rtt_ms / state.successful_responses if state.successful_responses > 0 else 0.0
    success_rate = state.successful_responses / state.total_requests if state.total_requests > 0 else 1.0
    return EntryPointMetrics(
        node_id=state.node_id,
        total_requests=state.total_requests,
        successful_responses=state.successful_responses,
        failed_requests=state.failed_requests,
        avg_round_trip_ms=avg_rtt,
        p99_round_trip_ms=percentile_99(state.rtt_samples),
        success_rate=success_rate,
        rtt_samples=list(state.rtt_samples),
    )


def run_simulation(
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    config: Union[SimulationConfig, Mapping[str, object]],
) -> SimulationResult:
    if not isinstance(config, SimulationConfig):
        config = SimulationConfig.from_dict(config)

    topology = build_topology(nodes, edges)
    return run_topology(topology, config)


def run_topology(topology: Topology, config: SimulationConfig) -> SimulationResult:
    rng = create_rng(config.seed)
    entry_points = topology.entry_points()
    run_state = RunState.for_topology(topology)
    query_analyses, cache_analyses = pre_analyze(topology, config.requests_per_second)

    logger.info(
        "Starting simulation: %d nodes, %d edges, %d entry points, %ss at %s RPS (seed=%s)",
        len(topology.nodes),
        len(topology.edges),
        len(entry_points),
        config.duration_seconds,
        config.requests_per_second,
        config.seed,
    )

    requests_per_entry = math.ceil(config.requests_per_second / max(1, len(entry_points)))
    timeline = []
    total_requests = 0

    for second in range(config.duration_seconds):
        run_state.start_second()

        for entry_point in entry_points:
            entry_state = run_state.entry_points[entry_point.id]
            for _ in range(requests_per_entry):
                result = simulate_request_path(
                    entry_point, topology, run_state, rng, query_analyses, cache_analyses
                )
                total_requests += 1
                entry_state.record(result.total_latency_ms, result.success)

        run_state.end_second()
        timeline.append(_snapshot(second, run_state))

    node_metrics = {
        node_id: _node_metrics(state, run_state, config.duration_seconds)
        for node_id, state in run_state.nodes.items()
    }
    edge_metrics = {edge_id: _edge_metrics(state) for edge_id, state in run_state.edges.items()}
    entry_point_metrics = {
        node_id: _entry_point_metrics(state) for node_id, state in run_state.entry_points.items()
    }
    bottlenecks = detect_bottlenecks(run_state.nodes.values(), config.duration_seconds)

    logger.info(
        "Simulation finished: %d requests, %d bottlenecks detected", total_requests, len(bottlenecks)
    )

    return SimulationResult(
        config=config,
        total_requests=total_requests,
        node_metrics=node_metrics,
        edge_metrics=edge_metrics,
        entry_point_metrics=entry_point_metrics,
        bottlenecks=bottlenecks,
        timeline=timeline,
        query_analyses=query_analyses,
        cache_analyses=cache_analyses,
    )


def simulate(graph: Mapping[str, object], config: Union[SimulationConfig, Mapping[str, object]]) -> SimulationResult:
    """Parse a ``{"nodes": [...], "edges": [...]}`` payload and run it."""
    if not isinstance(config, SimulationConfig):
        config = SimulationConfig.from_dict(config)
    return run_topology(Topology.from_dict(graph), config)
