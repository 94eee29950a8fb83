import pytest

from loadsketch.core.graph.topology import Topology, build_topology
from loadsketch.core.graph.validator import validate_graph
from loadsketch.core.models import Edge, Node, NodeType
from loadsketch.core.results import SimulationConfig
from loadsketch.core.simulation_engine import run_simulation, simulate
from loadsketch.errors import ConfigurationError, TopologyError


def _node(node_id, node_type, **data):
    return {"id": node_id, "type": node_type, "position": {"x": 0, "y": 0}, "data": data}


def _edge(source, target, connection_type="http"):
    return {
        "id": f"{source}-{target}",
        "source": source,
        "target": target,
        "data": {"connectionType": connection_type},
    }


def _linear_graph():
    return {
        "nodes": [
            _node("user", "traffic-source"),
            _node("api", "api-server"),
            _node("db", "database"),
        ],
        "edges": [
            _edge("user", "api"),
            _edge("api", "db", "database"),
        ],
    }


def test_validate_graph_linear():
    result = validate_graph(_linear_graph())
    assert result["valid"] is True
    assert result["errors"] == []


def test_validate_graph_accepts_editor_type_names():
    graph = {
        "nodes": [
            _node("user", "user"),
            _node("lb", "loadBalancer"),
            _node("api", "apiServer"),
            _node("pg", "postgresql"),
            _node("redis", "redis"),
        ],
        "edges": [
            _edge("user", "lb"),
            _edge("lb", "api"),
            _edge("api", "pg", "database"),
            _edge("api", "redis", "cache"),
        ],
    }
    result = validate_graph(graph)
    assert result["valid"] is True
    assert result["warnings"] == []


def test_validate_graph_rejects_client_to_database():
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("db", "database")],
        "edges": [_edge("user", "db", "database")],
    }
    result = validate_graph(graph)
    assert result["valid"] is False
    assert "Clients cannot directly access storage or cache layers." in result["errors"]


def test_validate_graph_requires_traffic_source():
    graph = {"nodes": [_node("api", "api-server")], "edges": []}
    result = validate_graph(graph)
    assert "Graph must contain at least one traffic source." in result["errors"]


def test_validate_graph_reports_bad_edges_and_types():
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("thing", "mainframe")],
        "edges": [_edge("user", "ghost"), _edge("user", "user")],
    }
    result = validate_graph(graph)
    assert result["valid"] is False
    assert "Edges must reference valid node ids." in result["errors"]
    assert "Self-referential edges are not allowed." in result["errors"]
    assert any("unknown type" in error for error in result["errors"])


def test_validate_graph_cycle_is_a_warning():
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("a", "api-server"), _node("b", "api-server")],
        "edges": [_edge("user", "a"), _edge("a", "b"), _edge("b", "a")],
    }
    result = validate_graph(graph)
    assert result["valid"] is True
    assert "Graph contains a cycle; each request visits a node at most once." in result["warnings"]


def test_validate_graph_warns_on_mismatched_connection_type():
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("api", "api-server"), _node("db", "database")],
        "edges": [_edge("user", "api"), _edge("api", "db", "http")],
    }
    result = validate_graph(graph)
    assert result["valid"] is True
    assert any("expected database" in warning for warning in result["warnings"])


def test_build_topology_adjacency():
    topology = Topology.from_dict(_linear_graph())
    assert [edge.target for edge in topology.outgoing["user"]] == ["api"]
    assert [edge.source for edge in topology.incoming["db"]] == ["api"]
    assert topology.outgoing["db"] == []
    assert topology.incoming["user"] == []
    assert [node.id for node in topology.entry_points()] == ["user"]


def test_build_topology_ignores_dangling_edges():
    nodes = [Node(id="user", type=NodeType.TRAFFIC_SOURCE), Node(id="api", type=NodeType.API_SERVER)]
    edges = [Edge(id="e1", source="ghost", target="api"), Edge(id="e2", source="user", target="ghost")]
    topology = build_topology(nodes, edges)
    assert topology.incoming["api"] == [edges[0]]
    assert topology.outgoing["user"] == [edges[1]]
    assert "ghost" not in topology.outgoing


def test_only_traffic_sources_are_entry_points():
    graph = {"nodes": [_node("api", "api-server"), _node("user", "traffic-source")], "edges": []}
    topology = Topology.from_dict(graph)
    assert [node.id for node in topology.entry_points()] == ["user"]


def test_unknown_node_type_raises():
    with pytest.raises(TopologyError):
        Node.from_dict(_node("x", "mainframe"))


def test_fixed_scaling_requires_instances():
    with pytest.raises(TopologyError):
        Node.from_dict(_node("api", "api-server", scaling={"type": "fixed", "instances": 0}))


def test_config_rejects_bad_values():
    with pytest.raises(ConfigurationError):
        SimulationConfig(duration_seconds=0, requests_per_second=100)
    with pytest.raises(ConfigurationError):
        SimulationConfig(duration_seconds=10, requests_per_second=0)
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict({"durationSeconds": 1.5, "requestsPerSecond": 10})
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict({"durationSeconds": 5, "requestsPerSecond": 10, "seed": "abc"})
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict({"requestsPerSecond": 10})


def test_simulate_linear_scenario():
    result = simulate(_linear_graph(), {"durationSeconds": 10, "requestsPerSecond": 100, "seed": 1})

    assert result.total_requests == 1000
    api = result.node_metrics["api"]
    db = result.node_metrics["db"]
    assert api.requests_received == 1000
    assert db.requests_received == api.requests_received
    assert db.requests_queued == 0
    assert result.entry_point_metrics["user"].success_rate == 1.0
    assert result.entry_point_metrics["user"].failed_requests == 0
    assert not [b for b in result.bottlenecks if b.type in {"cpu_overload", "queue_buildup"}]
    assert len(result.timeline) == 10
    assert [snapshot.timestamp for snapshot in result.timeline] == list(range(10))
    assert result.edge_metrics["user-api"].request_count == 1000
    assert result.edge_metrics["user-api"].total_bytes_transferred == 1000 * 1024


def test_simulate_is_deterministic_for_a_seed():
    config = {"durationSeconds": 5, "requestsPerSecond": 250, "seed": 42}
    first = simulate(_linear_graph(), config)
    second = simulate(_linear_graph(), config)
    assert first.to_dict() == second.to_dict()


def test_different_seeds_change_latencies():
    first = simulate(_linear_graph(), {"durationSeconds": 2, "requestsPerSecond": 50, "seed": 1})
    second = simulate(_linear_graph(), {"durationSeconds": 2, "requestsPerSecond": 50, "seed": 2})
    assert first.node_metrics["api"].avg_latency_ms != second.node_metrics["api"].avg_latency_ms


def test_unseeded_run_completes():
    result = simulate(_linear_graph(), {"durationSeconds": 1, "requestsPerSecond": 10})
    assert result.total_requests == 10
    assert result.config.seed is None


def test_latency_stays_within_model_bounds_under_light_load():
    result = simulate(_linear_graph(), {"durationSeconds": 3, "requestsPerSecond": 20, "seed": 9})
    api = result.node_metrics["api"]
    # api-server: 20ms base + up to 40ms variance
    assert 20 <= api.avg_latency_ms <= 60
    assert api.p99_latency_ms >= api.avg_latency_ms
    assert result.node_metrics["user"].avg_latency_ms == 0


def test_overload_drops_requests_and_keeps_counters_consistent():
    graph = _linear_graph()
    result = simulate(graph, {"durationSeconds": 3, "requestsPerSecond": 3000, "seed": 7})

    api = result.node_metrics["api"]
    db = result.node_metrics["db"]
    assert api.errors > 0
    for metrics in result.node_metrics.values():
        assert metrics.requests_processed + metrics.errors == metrics.requests_received
        assert metrics.requests_queued >= 0
    # Dropped requests never reach the database.
    assert db.requests_received == api.requests_processed

    entry = result.entry_point_metrics["user"]
    assert entry.total_requests == 9000
    assert entry.failed_requests == api.errors
    assert 0 <= entry.success_rate < 1

    kinds = {(b.node_id, b.type, b.severity) for b in result.bottlenecks}
    assert ("api", "cpu_overload", "critical") in kinds
    assert ("api", "queue_buildup", "critical") in kinds


def _capacity_severity(rps):
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("api", "api-server")],
        "edges": [_edge("user", "api")],
    }
    result = simulate(graph, {"durationSeconds": 5, "requestsPerSecond": rps, "seed": 3})
    rank = {"warning": 1, "critical": 2}
    severities = [
        rank[b.severity]
        for b in result.bottlenecks
        if b.node_id == "api" and b.type in {"cpu_overload", "queue_buildup"}
    ]
    return max(severities, default=0)


def test_overload_severity_is_monotonic_in_rps():
    severities = [_capacity_severity(rps) for rps in (500, 900, 1200, 3000)]
    assert severities == sorted(severities)
    assert severities[0] == 0
    assert severities[1] == 1
    assert severities[-1] == 2


def test_fixed_instances_raise_capacity():
    graph = _linear_graph()
    graph["nodes"][1] = _node("api", "api-server", scaling={"type": "fixed", "instances": 4})
    result = simulate(graph, {"durationSeconds": 3, "requestsPerSecond": 3000, "seed": 7})
    api = result.node_metrics["api"]
    assert api.instances == 4
    assert api.errors == 0
    assert api.resources.cpu_cores == 8
    assert api.resources.memory_total_mb == 4096


def test_load_balancer_always_routes_to_first_target():
    graph = {
        "nodes": [
            _node("user", "traffic-source"),
            _node("lb", "load-balancer"),
            _node("api-1", "api-server"),
            _node("api-2", "api-server"),
        ],
        "edges": [_edge("user", "lb"), _edge("lb", "api-1"), _edge("lb", "api-2")],
    }
    result = simulate(graph, {"durationSeconds": 2, "requestsPerSecond": 100, "seed": 5})
    assert result.node_metrics["api-1"].requests_received == 200
    assert result.node_metrics["api-2"].requests_received == 0
    assert result.edge_metrics["lb-api-1"].request_count == 200
    assert result.edge_metrics["lb-api-2"].request_count == 0


def test_fan_out_visits_each_node_once():
    graph = {
        "nodes": [
            _node("user", "traffic-source"),
            _node("api", "api-server"),
            _node("worker", "api-server"),
            _node("db", "database"),
        ],
        "edges": [
            _edge("user", "api"),
            _edge("api", "db", "database"),
            _edge("api", "worker"),
            _edge("worker", "db", "database"),
        ],
    }
    result = simulate(graph, {"durationSeconds": 1, "requestsPerSecond": 50, "seed": 11})
    assert result.node_metrics["db"].requests_received == 50
    assert result.node_metrics["worker"].requests_received == 50
    # The second path to the database is still counted on its edge.
    assert result.edge_metrics["worker-db"].request_count == 50


def test_cycles_terminate():
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("a", "api-server"), _node("b", "api-server")],
        "edges": [_edge("user", "a"), _edge("a", "b"), _edge("b", "a")],
    }
    result = simulate(graph, {"durationSeconds": 1, "requestsPerSecond": 10, "seed": 1})
    assert result.node_metrics["a"].requests_received == 10
    assert result.node_metrics["b"].requests_received == 10


def test_annotations_and_dangling_edges_are_ignored():
    graph = _linear_graph()
    graph["nodes"].append(_node("note", "annotation", content="remember to shard"))
    graph["edges"].append({"id": "api-ghost", "source": "api", "target": "ghost"})
    result = simulate(graph, {"durationSeconds": 2, "requestsPerSecond": 10, "seed": 1})
    assert "note" not in result.node_metrics
    assert result.total_requests == 20
    assert result.node_metrics["db"].requests_received == 20


def test_requests_are_split_across_entry_points():
    graph = {
        "nodes": [
            _node("web", "traffic-source"),
            _node("mobile", "traffic-source"),
            _node("api", "api-server"),
        ],
        "edges": [_edge("web", "api"), _edge("mobile", "api")],
    }
    result = simulate(graph, {"durationSeconds": 2, "requestsPerSecond": 101, "seed": 1})
    # ceil(101 / 2) requests per entry point per second
    assert result.entry_point_metrics["web"].total_requests == 102
    assert result.entry_point_metrics["mobile"].total_requests == 102
    assert result.total_requests == 204


def test_query_cost_is_added_to_database_latency():
    graph = _linear_graph()
    graph["nodes"][1] = _node(
        "api",
        "api-server",
        endpoints=[
            {
                "id": "ep-1",
                "method": "GET",
                "path": "/users",
                "linkedQueries": [
                    {
                        "id": "q-1",
                        "targetNodeId": "db",
                        "targetTableId": "users",
                        "queryType": "SELECT",
                        "whereColumns": ["c-email"],
                    },
                    {"id": "q-2", "targetNodeId": "db", "targetTableId": "missing", "queryType": "SELECT"},
                ],
            }
        ],
    )
    graph["nodes"][2] = _node(
        "db",
        "database",
        tables=[
            {
                "id": "users",
                "name": "users",
                "columns": [{"id": "c-id", "name": "id"}, {"id": "c-email", "name": "email"}],
                "indexes": [],
                "estimatedRows": 200000,
            }
        ],
    )
    result = simulate(graph, {"durationSeconds": 1, "requestsPerSecond": 10, "seed": 1})

    analysis = result.query_analyses["db:users"]
    assert analysis.scan_type == "seq_scan"
    assert analysis.estimated_cost_ms == pytest.approx(2000)
    assert list(result.query_analyses) == ["db:users"]
    assert result.node_metrics["db"].avg_latency_ms >= 2010
    assert any(b.node_id == "db" and b.type == "high_latency" for b in result.bottlenecks)


def _users_graph(linked_queries, **table_fields):
    graph = _linear_graph()
    graph["nodes"][1] = _node(
        "api",
        "api-server",
        endpoints=[{"id": "ep-1", "method": "GET", "path": "/users", "linkedQueries": linked_queries}],
    )
    table = {
        "id": "users",
        "name": "users",
        "columns": [{"id": "c-id", "name": "id"}, {"id": "c-email", "name": "email"}],
        "indexes": [{"id": "idx_email", "columns": ["c-email"]}],
    }
    table.update(table_fields)
    return graph, table


def test_last_query_on_a_table_wins():
    queries = [
        {"id": "q1", "targetNodeId": "db", "targetTableId": "users", "whereColumns": ["c-email"]},
        {"id": "q2", "targetNodeId": "db", "targetTableId": "users", "whereColumns": ["c-id"]},
    ]
    graph, table = _users_graph(queries, estimatedRows=200000)
    graph["nodes"][2] = _node("db", "database", tables=[table])
    result = simulate(graph, {"durationSeconds": 1, "requestsPerSecond": 10, "seed": 1})

    analysis = result.query_analyses["db:users"]
    assert analysis.query_id == "q2"
    assert analysis.scan_type == "seq_scan"
    assert result.node_metrics["db"].avg_latency_ms >= 2010


def test_row_count_falls_back_to_database_estimates():
    queries = [{"id": "q1", "targetNodeId": "db", "targetTableId": "users", "whereColumns": ["c-id"]}]
    graph, table = _users_graph(queries)
    graph["nodes"][2] = _node("db", "database", tables=[table], estimatedRowCounts={"users": 200000})
    result = simulate(graph, {"durationSeconds": 1, "requestsPerSecond": 10, "seed": 1})

    analysis = result.query_analyses["db:users"]
    assert analysis.estimated_rows_scanned == 200000
    assert "seq_scan_large_table" in [warning.type for warning in analysis.warnings]


def test_cache_hits_are_recorded_without_changing_traffic():
    graph = {
        "nodes": [
            _node("user", "traffic-source"),
            _node("api", "api-server"),
            _node(
                "redis",
                "cache",
                keys=[{"id": "k-1", "pattern": "trending:puzzles", "valueType": "json", "ttl": 300}],
            ),
            _node("db", "database"),
        ],
        "edges": [
            _edge("user", "api"),
            _edge("api", "redis", "cache"),
            _edge("redis", "db", "database"),
        ],
    }
    result = simulate(graph, {"durationSeconds": 2, "requestsPerSecond": 100, "seed": 4})
    assert result.cache_analyses["redis:k-1"].estimated_hit_rate > 0.99
    assert result.node_metrics["redis"].cache_hits > 0
    # Hits do not short-circuit the path to the backing store.
    assert result.node_metrics["db"].requests_received == 200


def test_timeline_reports_cpu_and_rps():
    result = simulate(_linear_graph(), {"durationSeconds": 3, "requestsPerSecond": 500, "seed": 2})
    snapshot = result.timeline[-1].node_metrics["api"]
    assert snapshot.rps == 500
    assert snapshot.cpu_percent == pytest.approx(50.0)
    assert snapshot.error_rate == 0
    assert snapshot.memory_percent > 0
    assert result.timeline[-1].node_metrics["user"].cpu_percent == 0


def test_run_simulation_with_models_and_serialization():
    nodes = [Node(id="user", type=NodeType.TRAFFIC_SOURCE), Node(id="cdn", type=NodeType.CDN)]
    edges = [Edge(id="e", source="user", target="cdn")]
    result = run_simulation(nodes, edges, SimulationConfig(duration_seconds=2, requests_per_second=10, seed=8))
    payload = result.to_dict()
    assert payload["duration"] == 2
    assert payload["total_requests"] == 20
    assert payload["node_metrics"]["cdn"]["node_type"] == "cdn"
    assert payload["config"] == {"duration_seconds": 2, "requests_per_second": 10, "seed": 8}
    assert len(payload["entry_point_metrics"]["user"]["rtt_samples"]) == 20
    assert payload["node_metrics"]["user"]["resources"]["network"]["used_mbps"] > 0
