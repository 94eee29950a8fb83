import pytest

from loadsketch.app import create_app
from loadsketch.config import Config


@pytest.fixture
def client():
    app = create_app()
    app.config["TESTING"] = True
    return app.test_client()


def _node(node_id, node_type, **data):
    return {"id": node_id, "type": node_type, "data": data}


def _edge(source, target, connection_type="http"):
    return {"id": f"{source}-{target}", "source": source, "target": target, "data": {"connectionType": connection_type}}


def _graph():
    return {
        "nodes": [_node("user", "traffic-source"), _node("api", "api-server"), _node("db", "database")],
        "edges": [_edge("user", "api"), _edge("api", "db", "database")],
    }


def _users_table():
    return {
        "id": "t-users",
        "name": "users",
        "columns": [{"id": "c-id", "name": "id"}, {"id": "c-email", "name": "email"}],
        "indexes": [{"id": "idx_email", "columns": ["c-email"]}],
        "estimatedRows": 1000,
    }


def test_simulate_runs_valid_graph(client):
    response = client.post(
        "/simulate",
        json={"graph": _graph(), "config": {"durationSeconds": 10, "requestsPerSecond": 100, "seed": 42}},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["structural_errors"] == []
    assert body["result"]["total_requests"] == 1000
    assert body["result"]["node_metrics"]["db"]["requests_received"] == 1000
    assert body["result"]["timeline"] == []
    assert set(body["summary"]) == {"critical", "warning", "worst_node_id", "healthy"}


def test_simulate_returns_timeline_when_enabled(client, monkeypatch):
    monkeypatch.setattr(Config, "INCLUDE_TIMELINE", True)
    response = client.post(
        "/simulate",
        json={"graph": _graph(), "config": {"durationSeconds": 3, "requestsPerSecond": 10, "seed": 7}},
    )
    assert response.status_code == 200
    timeline = response.get_json()["result"]["timeline"]
    assert [snapshot["timestamp"] for snapshot in timeline] == [0, 1, 2]


def test_simulate_uses_default_config(client):
    response = client.post("/simulate", json={"graph": _graph()})
    assert response.status_code == 200
    assert response.get_json()["result"]["config"]["duration_seconds"] == 10


def test_simulate_rejects_invalid_graph(client):
    graph = {
        "nodes": [_node("user", "traffic-source"), _node("db", "database")],
        "edges": [_edge("user", "db", "database")],
    }
    response = client.post("/simulate", json={"graph": graph})
    assert response.status_code == 400
    body = response.get_json()
    assert body["result"] is None
    assert "Clients cannot directly access storage or cache layers." in body["structural_errors"]


def test_simulate_rejects_bad_config(client):
    response = client.post(
        "/simulate",
        json={"graph": _graph(), "config": {"duration_seconds": 0, "requests_per_second": 100}},
    )
    assert response.status_code == 400
    assert response.get_json()["structural_errors"]


def test_simulate_rejects_missing_body(client):
    response = client.post("/simulate", data="not json", content_type="text/plain")
    assert response.status_code == 400
    assert "Graph must contain at least one node." in response.get_json()["structural_errors"]


def test_validate_endpoint(client):
    response = client.post("/api/validate", json={"graph": _graph()})
    assert response.status_code == 200
    assert response.get_json()["valid"] is True

    response = client.post("/api/validate", json={"graph": {"nodes": [], "edges": []}})
    assert response.get_json()["valid"] is False


def test_query_cost_single_query(client):
    query = {"id": "q", "targetNodeId": "db", "targetTableId": "t-users", "whereColumns": ["c-email"]}
    response = client.post("/api/query-cost", json={"table": _users_table(), "query": query})
    assert response.status_code == 200
    body = response.get_json()
    assert body["scan_type"] == "index_scan"
    assert body["used_index"] == "idx_email"


def test_query_cost_query_list(client):
    queries = [
        {"id": "q1", "targetNodeId": "db", "targetTableId": "t-users", "whereColumns": ["c-id"]},
        {"id": "q2", "targetNodeId": "db", "targetTableId": "t-orders", "whereColumns": ["c-id"]},
    ]
    response = client.post("/api/query-cost", json={"table": _users_table(), "queries": queries})
    assert response.status_code == 200
    analyses = response.get_json()["analyses"]
    assert [analysis["scan_type"] for analysis in analyses] == ["seq_scan"]


def test_query_cost_requires_table(client):
    response = client.post("/api/query-cost", json={"query": {}})
    assert response.status_code == 400


def test_cache_analysis(client):
    key = {"id": "k", "pattern": "user:{user_id}:session", "ttl": 60}
    response = client.post("/api/cache-analysis", json={"key": key, "requestsPerSecond": 100})
    assert response.status_code == 200
    body = response.get_json()
    assert body["cardinality"] == 1000
    assert body["estimated_hit_rate"] == pytest.approx(5 / 6)
    assert body["effectiveness"] == "warm"


def test_cache_analysis_rejects_negative_rps(client):
    key = {"id": "k", "pattern": "user:{user_id}", "ttl": 60}
    response = client.post("/api/cache-analysis", json={"key": key, "requests_per_second": -1})
    assert response.status_code == 400


def test_node_types_lists_every_profile(client):
    response = client.get("/api/node-types")
    assert response.status_code == 200
    profiles = response.get_json()["node_types"]
    types = {profile["node_type"] for profile in profiles}
    assert {"traffic-source", "api-server", "database", "cache", "annotation"} <= types
    traffic_source = next(profile for profile in profiles if profile["node_type"] == "traffic-source")
    assert traffic_source["max_rps_per_instance"] is None


def test_simulate_rejects_non_integer_node_values(client):
    graph = _graph()
    graph["nodes"].append(_node("redis", "cache", keys=[{"id": "k", "pattern": "user:{id}", "ttl": "forever"}]))
    graph["edges"].append(_edge("api", "redis", "cache"))
    response = client.post("/simulate", json={"graph": graph})
    assert response.status_code == 400
    assert response.get_json()["structural_errors"] == ["Expected an integer, got 'forever'"]

    graph = _graph()
    graph["nodes"][1] = _node("api", "api-server", scaling={"type": "fixed", "instances": "two"})
    assert client.post("/simulate", json={"graph": graph}).status_code == 400


def test_query_cost_rejects_non_integer_row_count(client):
    table = dict(_users_table(), estimatedRows="many")
    query = {"id": "q", "targetNodeId": "db", "targetTableId": "t-users", "whereColumns": ["c-email"]}
    response = client.post("/api/query-cost", json={"table": table, "query": query})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Expected an integer, got 'many'"


@pytest.mark.parametrize("rps", ["nan", "inf", "-inf"])
def test_cache_analysis_rejects_non_finite_rps(client, rps):
    key = {"id": "k", "pattern": "user:{user_id}", "ttl": 60}
    response = client.post("/api/cache-analysis", json={"key": key, "requests_per_second": rps})
    assert response.status_code == 400
