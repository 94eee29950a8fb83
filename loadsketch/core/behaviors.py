from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .models import NodeType, ScalingConfig, ScalingMode

Rng = Callable[[], float]

MEMORY_PER_INSTANCE_MB = 1024
# "auto" scaling does not react to load within a run.
AUTO_SCALING_BASELINE = 1


@dataclass(frozen=True)
class LatencyModel:
    base_ms: float
    variance_ms: float
    p99_multiplier: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "base_ms": self.base_ms,
            "variance_ms": self.variance_ms,
            "p99_multiplier": self.p99_multiplier,
        }


@dataclass(frozen=True)
class BehaviorProfile:
    node_type: NodeType
    latency: LatencyModel
    max_rps_per_instance: float
    cpu_per_request: float
    memory_per_request_mb: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "node_type": self.node_type.value,
            "latency": self.latency.to_dict(),
            "max_rps_per_instance": None if math.isinf(self.max_rps_per_instance) else self.max_rps_per_instance,
            "cpu_per_request": self.cpu_per_request,
            "memory_per_request_mb": self.memory_per_request_mb,
        }


BEHAVIOR_PROFILES: Dict[NodeType, BehaviorProfile] = {
    # Traffic sources originate requests and do no work themselves.
    NodeType.TRAFFIC_SOURCE: BehaviorProfile(
        NodeType.TRAFFIC_SOURCE, LatencyModel(0, 0, 1), math.inf, 0, 0
    ),
    NodeType.LOAD_BALANCER: BehaviorProfile(
        NodeType.LOAD_BALANCER, LatencyModel(1, 2, 3), 100000, 0.0001, 0.001
    ),
    NodeType.CDN: BehaviorProfile(NodeType.CDN, LatencyModel(5, 10, 4), 50000, 0.0001, 0.01),
    NodeType.API_SERVER: BehaviorProfile(
        NodeType.API_SERVER, LatencyModel(20, 40, 5), 1000, 0.01, 0.5
    ),
    NodeType.DATABASE: BehaviorProfile(NodeType.DATABASE, LatencyModel(10, 50, 10), 5000, 0.02, 1),
    NodeType.CACHE: BehaviorProfile(NodeType.CACHE, LatencyModel(1, 2, 3), 100000, 0.001, 0.01),
    # Per-prefix request limit.
    NodeType.OBJECT_STORE: BehaviorProfile(NodeType.OBJECT_STORE, LatencyModel(50, 100, 4), 5500, 0, 0),
    NodeType.QUEUE: BehaviorProfile(NodeType.QUEUE, LatencyModel(5, 10, 4), 10000, 0.001, 0.1),
    NodeType.ANNOTATION: BehaviorProfile(NodeType.ANNOTATION, LatencyModel(0, 0, 1), math.inf, 0, 0),
}

_missing = set(NodeType) - set(BEHAVIOR_PROFILES)
if _missing:
    raise RuntimeError(f"No behavior profile for: {', '.join(sorted(t.value for t in _missing))}")


def get_behavior(node_type: NodeType) -> BehaviorProfile:
    return BEHAVIOR_PROFILES[node_type]


def calculate_latency(model: LatencyModel, rng: Rng) -> float:
    return model.base_ms + model.variance_ms * rng()


def calculate_p99_latency(model: LatencyModel) -> float:
    return model.base_ms * model.p99_multiplier


def get_instance_count(scaling: Optional[ScalingConfig]) -> int:
    if scaling is None or scaling.mode == ScalingMode.SINGLE:
        return 1
    if scaling.mode == ScalingMode.FIXED:
        return scaling.instances
    return AUTO_SCALING_BASELINE


def memory_capacity_mb(instances: int) -> int:
    return instances * MEMORY_PER_INSTANCE_MB
