from __future__ import annotations

import logging
import math
from typing import Dict, List, Tuple

from ..core.behaviors import BEHAVIOR_PROFILES, calculate_p99_latency
from ..core.cache_model import analyze_cache_key, get_cache_effectiveness, get_cache_suggestions
from ..core.models import CacheKey, LinkedQuery, Table
from ..core.query_cost import analyze_queries_for_table, analyze_query
from ..errors import TopologyError

logger = logging.getLogger(__name__)


class AnalysisService:
    def analyze_query(self, payload: Dict[str, object]) -> Tuple[Dict[str, object], int]:
        table_raw = payload.get("table")
        if not isinstance(table_raw, dict):
            return {"error": "A table object is required."}, 400
        try:
            table = Table.from_dict(table_raw)
            if isinstance(payload.get("queries"), list):
                queries = [LinkedQuery.from_dict(query) for query in payload["queries"]]
                analyses = analyze_queries_for_table(queries, table)
                return {"analyses": [analysis.to_dict() for analysis in analyses]}, 200
            query_raw = payload.get("query")
            if not isinstance(query_raw, dict):
                return {"error": "A query object is required."}, 400
            query = LinkedQuery.from_dict(query_raw)
        except TopologyError as exc:
            logger.warning("Rejected query analysis: %s", exc)
            return {"error": str(exc)}, 400
        return analyze_query(query, table).to_dict(), 200

    def analyze_cache(self, payload: Dict[str, object]) -> Tuple[Dict[str, object], int]:
        key_raw = payload.get("key")
        if not isinstance(key_raw, dict):
            return {"error": "A key object is required."}, 400
        try:
            key = CacheKey.from_dict(key_raw)
            rps = float(payload.get("requests_per_second", payload.get("requestsPerSecond", 0)))
        except (TopologyError, TypeError, ValueError) as exc:
            logger.warning("Rejected cache analysis: %s", exc)
            return {"error": str(exc)}, 400
        if not math.isfinite(rps) or rps < 0:
            return {"error": "requests_per_second must be a finite, non-negative number."}, 400

        analysis = analyze_cache_key(key, rps)
        response = analysis.to_dict()
        response["effectiveness"] = get_cache_effectiveness(analysis.estimated_hit_rate)
        response["suggestions"] = get_cache_suggestions(analysis)
        return response, 200

    def list_node_types(self) -> List[Dict[str, object]]:
        profiles = []
        for profile in BEHAVIOR_PROFILES.values():
            entry = profile.to_dict()
            entry["expected_p99_ms"] = calculate_p99_latency(profile.latency)
            profiles.append(entry)
        return profiles
