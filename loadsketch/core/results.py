from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from ..errors import ConfigurationError
from .cache_model import CacheAnalysis
from .query_cost import QueryAnalysis


@dataclass(frozen=True)
class SimulationConfig:
    duration_seconds: int
    requests_per_second: float
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.duration_seconds, bool) or not isinstance(self.duration_seconds, int):
            raise ConfigurationError("duration_seconds must be a whole number of seconds.")
        if self.duration_seconds <= 0:
            raise ConfigurationError("duration_seconds must be positive.")
        if isinstance(self.requests_per_second, bool) or not isinstance(self.requests_per_second, (int, float)):
            raise ConfigurationError("requests_per_second must be a number.")
        if not math.isfinite(self.requests_per_second) or self.requests_per_second <= 0:
            raise ConfigurationError("requests_per_second must be a positive number.")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigurationError("seed must be an integer.")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "SimulationConfig":
        duration = data.get("duration_seconds", data.get("durationSeconds"))
        rps = data.get("requests_per_second", data.get("requestsPerSecond"))
        seed = data.get("seed")
        if duration is None or rps is None:
            raise ConfigurationError("Configuration requires duration_seconds and requests_per_second.")
        try:
            duration_value = float(duration)
            rps_value = float(rps)
            seed_value = int(seed) if seed is not None else None
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid configuration value: {exc}") from exc
        if not duration_value.is_integer():
            raise ConfigurationError("duration_seconds must be a whole number of seconds.")
        return cls(duration_seconds=int(duration_value), requests_per_second=rps_value, seed=seed_value)

    def to_dict(self) -> Dict[str, object]:
        return {
            "duration_seconds": self.duration_seconds,
            "requests_per_second": self.requests_per_second,
            "seed": self.seed,
        }


@dataclass(frozen=True)
class NodeResources:
    cpu_cores: int
    cpu_utilization_percent: float
    memory_total_mb: float
    memory_used_mb: float
    network_bandwidth_mbps: float
    network_used_mbps: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "cpu": {"cores": self.cpu_cores, "utilization_percent": self.cpu_utilization_percent},
            "memory": {"total_mb": self.memory_total_mb, "used_mb": self.memory_used_mb},
            "network": {"bandwidth_mbps": self.network_bandwidth_mbps, "used_mbps": self.network_used_mbps},
        }


@dataclass(frozen=True)
class NodeMetrics:
    node_id: str
    node_type: str
    instances: int
    requests_received: int
    requests_processed: int
    requests_queued: int
    avg_latency_ms: float
    p99_latency_ms: float
    peak_rps: int
    errors: int
    cache_hits: int
    resources: NodeResources

    def to_dict(self) -> Dict[str, object]:
        return {
            "node_id": self.node_id,
            "node_type": self.node_type,
            "instances": self.instances,
            "requests_received": self.requests_received,
            "requests_processed": self.requests_processed,
            "requests_queued": self.requests_queued,
            "avg_latency_ms": self.avg_latency_ms,
            "p99_latency_ms": self.p99_latency_ms,
            "peak_rps": self.peak_rps,
            "errors": self.errors,
            "cache_hits": self.cache_hits,
            "resources": self.resources.to_dict(),
        }


@dataclass(frozen=True)
class EdgeMetrics:
    edge_id: str
    request_count: int
    total_bytes_transferred: int
    avg_latency_ms: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "edge_id": self.edge_id,
            "request_count": self.request_count,
            "total_bytes_transferred": self.total_bytes_transferred,
            "avg_latency_ms": self.avg_latency_ms,
        }


@dataclass(frozen=True)
class EntryPointMetrics:
    node_id: str
    total_requests: int
    successful_responses: int
    failed_requests: int
    avg_round_trip_ms: float
    p99_round_trip_ms: float
    success_rate: float
    rtt_samples: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "node_id": self.node_id,
            "total_requests": self.total_requests,
            "successful_responses": self.successful_responses,
            "failed_requests": self.failed_requests,
            "avg_round_trip_ms": self.avg_round_trip_ms,
            "p99_round_trip_ms": self.p99_round_trip_ms,
            "success_rate": self.success_rate,
            "rtt_samples": list(self.rtt_samples),
        }


@dataclass(frozen=True)
class Bottleneck:
    node_id: str
    type: str
    severity: str
    message: str
    suggestion: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "node_id": self.node_id,
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class NodeSnapshot:
    rps: int
    latency_ms: float
    cpu_percent: float
    memory_percent: float
    error_rate: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "rps": self.rps,
            "latency_ms": self.latency_ms,
            "cpu_percent": self.cpu_percent,
            "memory_percent": self.memory_percent,
            "error_rate": self.error_rate,
        }


@dataclass(frozen=True)
class TimelineSnapshot:
    timestamp: int
    node_metrics: Dict[str, NodeSnapshot]

    def to_dict(self) -> Dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "node_metrics": {node_id: snapshot.to_dict() for node_id, snapshot in self.node_metrics.items()},
        }


@dataclass(frozen=True)
class SimulationResult:
    config: SimulationConfig
    total_requests: int
    node_metrics: Dict[str, NodeMetrics]
    edge_metrics: Dict[str, EdgeMetrics]
    entry_point_metrics: Dict[str, EntryPointMetrics]
    bottlenecks: List[Bottleneck]
    timeline: List[TimelineSnapshot]
    query_analyses: Dict[str, QueryAnalysis] = field(default_factory=dict)
    cache_analyses: Dict[str, CacheAnalysis] = field(default_factory=dict)

    @property
    def duration(self) -> int:
        return self.config.duration_seconds

    def to_dict(self) -> Dict[str, object]:
        return {
            "config": self.config.to_dict(),
            "duration": self.duration,
            "total_requests": self.total_requests,
            "node_metrics": {node_id: metrics.to_dict() for node_id, metrics in self.node_metrics.items()},
            "edge_metrics": {edge_id: metrics.to_dict() for edge_id, metrics in self.edge_metrics.items()},
            "entry_point_metrics": {
                node_id: metrics.to_dict() for node_id, metrics in self.entry_point_metrics.items()
            },
            "bottlenecks": [bottleneck.to_dict() for bottleneck in self.bottlenecks],
            "timeline": [snapshot.to_dict() for snapshot in self.timeline],
            "query_analyses": {key: analysis.to_dict() for key, analysis in self.query_analyses.items()},
            "cache_analyses": {key: analysis.to_dict() for key, analysis in self.cache_analyses.items()},
        }
