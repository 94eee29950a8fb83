from __future__ import annotations

import math
from collections import Counter
from typing import Dict, Iterable, List

from .results import Bottleneck
from .state import NodeState

CPU_OVERLOAD = "cpu_overload"
QUEUE_BUILDUP = "queue_buildup"
HIGH_LATENCY = "high_latency"

WARNING = "warning"
CRITICAL = "critical"


def _capacity_findings(state: NodeState, duration_seconds: int) -> List[Bottleneck]:
    findings: List[Bottleneck] = []
    max_rps = state.max_rps
    avg_rps = state.requests_received / duration_seconds if duration_seconds > 0 else 0.0
    load_percent = (avg_rps / max_rps) * 100 if max_rps > 0 else 0.0

    if load_percent > 100:
        needed = math.ceil(avg_rps / state.behavior.max_rps_per_instance)
        findings.append(
            Bottleneck(
                node_id=state.node_id,
                type=CPU_OVERLOAD,
                severity=CRITICAL,
                message=f"Load at {load_percent:.0f}% of capacity ({avg_rps:.0f} RPS vs {max_rps:.0f} max)",
                suggestion=f"Add more instances - current: {state.instances}, need ~{needed}",
            )
        )
    elif load_percent > 80:
        findings.append(
            Bottleneck(
                node_id=state.node_id,
                type=CPU_OVERLOAD,
                severity=WARNING,
                message=f"Load at {load_percent:.0f}% of capacity",
                suggestion="Consider scaling before load increases",
            )
        )

    if state.peak_rps > max_rps:
        findings.append(
            Bottleneck(
                node_id=state.node_id,
                type=QUEUE_BUILDUP,
                severity=CRITICAL,
                message=f"Peak RPS ({state.peak_rps}) exceeded capacity ({max_rps:.0f})",
                suggestion=f"Add more instances - current: {state.instances}",
            )
        )
    elif state.peak_rps > max_rps * 0.8:
        findings.append(
            Bottleneck(
                node_id=state.node_id,
                type=QUEUE_BUILDUP,
                severity=WARNING,
                message=f"Peak RPS ({state.peak_rps}) approaching capacity ({max_rps:.0f})",
                suggestion=f"Consider adding instances - current: {state.instances}",
            )
        )

    return findings


def _latency_findings(state: NodeState) -> List[Bottleneck]:
    avg_latency = state.avg_latency_ms
    expected = state.behavior.latency.base_ms
    if avg_latency <= expected * 3:
        return []
    return [
        Bottleneck(
            node_id=state.node_id,
            type=HIGH_LATENCY,
            severity=CRITICAL if avg_latency > expected * 5 else WARNING,
            message=f"Average latency {avg_latency:.0f}ms (expected ~{expected:.0f}ms)",
            suggestion="Check for resource contention or slow dependencies",
        )
    ]


def _error_findings(state: NodeState) -> List[Bottleneck]:
    error_rate = state.error_rate
    if error_rate <= 0.01:
        return []
    return [
        Bottleneck(
            node_id=state.node_id,
            type=QUEUE_BUILDUP,
            severity=CRITICAL if error_rate > 0.05 else WARNING,
            message=f"Error rate at {error_rate * 100:.1f}%",
            suggestion="Node is dropping requests due to overload - add capacity",
        )
    ]


def detect_bottlenecks(node_states: Iterable[NodeState], duration_seconds: int) -> List[Bottleneck]:
    bottlenecks: List[Bottleneck] = []
    for state in node_states:
        if state.requests_received == 0:
            continue
        bottlenecks.extend(_capacity_findings(state, duration_seconds))
        bottlenecks.extend(_latency_findings(state))
        bottlenecks.extend(_error_findings(state))
    return bottlenecks


def summarize_bottlenecks(bottlenecks: List[Bottleneck]) -> Dict[str, object]:
    severities = Counter(bottleneck.severity for bottleneck in bottlenecks)
    per_node = Counter(
        bottleneck.node_id for bottleneck in bottlenecks if bottleneck.severity == CRITICAL
    ) or Counter(bottleneck.node_id for bottleneck in bottlenecks)
    worst_node = per_node.most_common(1)[0][0] if per_node else None
    return {
        "critical": severities.get(CRITICAL, 0),
        "warning": severities.get(WARNING, 0),
        "worst_node_id": worst_node,
        "healthy": not bottlenecks,
    }
