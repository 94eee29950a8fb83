from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from .models import CacheKey

# Distinct values assumed behind each ``{placeholder}`` in a key pattern.
PLACEHOLDER_CARDINALITY = 1000

_PLACEHOLDER = re.compile(r"\{[^{}]*\}")


@dataclass(frozen=True)
class CacheAnalysis:
    key_pattern: str
    ttl_seconds: Optional[int]
    cardinality: int
    requests_per_second: float
    estimated_hit_rate: float
    effective_db_rps: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "key_pattern": self.key_pattern,
            "ttl_seconds": self.ttl_seconds,
            "cardinality": self.cardinality,
            "requests_per_second": self.requests_per_second,
            "estimated_hit_rate": self.estimated_hit_rate,
            "effective_db_rps": self.effective_db_rps,
        }


def estimate_cache_hit_rate(ttl_seconds: float, cardinality: float, rps: float) -> float:
    """Steady-state hit rate for a key space under uniform access.

    Each key is requested every ``cardinality / rps`` seconds on average. The
    first request inside a TTL window misses and the rest hit, so with ``n``
    requests per key per window the hit rate is ``(n - 1) / n``.
    """
    if ttl_seconds <= 0 or cardinality <= 0 or rps <= 0:
        return 0.0
    if math.isinf(ttl_seconds):
        return 1.0

    avg_time_between_requests = cardinality / rps
    if avg_time_between_requests >= ttl_seconds:
        return 0.0

    requests_per_key_per_ttl = ttl_seconds / avg_time_between_requests
    hit_rate = (requests_per_key_per_ttl - 1) / requests_per_key_per_ttl
    return max(0.0, min(1.0, hit_rate))


def estimate_cardinality(key: CacheKey) -> int:
    if key.estimated_cardinality is not None:
        return max(1, key.estimated_cardinality)
    placeholders = len(_PLACEHOLDER.findall(key.pattern))
    return PLACEHOLDER_CARDINALITY ** placeholders


def analyze_cache_key(key: CacheKey, rps: float) -> CacheAnalysis:
    cardinality = estimate_cardinality(key)
    # A key without a TTL never expires.
    ttl = math.inf if key.ttl is None else key.ttl
    hit_rate = estimate_cache_hit_rate(ttl, cardinality, rps)
    return CacheAnalysis(
        key_pattern=key.pattern,
        ttl_seconds=key.ttl,
        cardinality=cardinality,
        requests_per_second=rps,
        estimated_hit_rate=hit_rate,
        effective_db_rps=rps * (1 - hit_rate),
    )


def calculate_cache_through_latency(hit_rate: float, cache_latency_ms: float, db_latency_ms: float) -> float:
    miss_latency = cache_latency_ms + db_latency_ms
    return hit_rate * cache_latency_ms + (1 - hit_rate) * miss_latency


def get_cache_effectiveness(hit_rate: float) -> str:
    if hit_rate >= 0.95:
        return "hot"
    if hit_rate >= 0.50:
        return "warm"
    if hit_rate >= 0.10:
        return "cold"
    return "ineffective"


def get_cache_suggestions(analysis: CacheAnalysis) -> List[str]:
    suggestions: List[str] = []
    effectiveness = get_cache_effectiveness(analysis.estimated_hit_rate)
    hit_percent = analysis.estimated_hit_rate * 100

    if effectiveness == "ineffective":
        if analysis.ttl_seconds is not None and analysis.ttl_seconds < 60:
            suggestions.append(
                f"Consider increasing TTL from {analysis.ttl_seconds}s; it is too short for the request pattern"
            )
        if analysis.cardinality > 100000:
            suggestions.append(
                f"High cardinality ({analysis.cardinality:,} keys) with low RPS leads to poor cache efficiency"
            )
        suggestions.append(
            f"Cache is ineffective ({hit_percent:.1f}% hit rate); DB sees {analysis.effective_db_rps:.0f} RPS"
        )
    elif effectiveness == "cold":
        suggestions.append(
            f"Cache is cold ({hit_percent:.1f}% hit rate); consider increasing TTL or reducing cardinality"
        )

    return suggestions
