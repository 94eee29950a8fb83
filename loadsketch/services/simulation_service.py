from __future__ import annotations

import logging
from typing import Dict, Tuple

from ..config import Config
from ..core.bottlenecks import summarize_bottlenecks
from ..core.graph.topology import Topology
from ..core.graph.validator import validate_graph
from ..core.results import SimulationConfig
from ..core.simulation_engine import run_topology
from ..errors import ConfigurationError, TopologyError

logger = logging.getLogger(__name__)


class SimulationService:
    def validate_graph(self, payload: Dict[str, object]) -> Dict[str, object]:
        graph = payload.get("graph", {}) if isinstance(payload, dict) else {}
        return validate_graph(graph or {})

    def build_config(self, raw: object) -> SimulationConfig:
        raw = dict(raw) if isinstance(raw, dict) else {}
        raw.setdefault("duration_seconds", raw.pop("durationSeconds", Config.DEFAULT_DURATION_SECONDS))
        raw.setdefault("requests_per_second", raw.pop("requestsPerSecond", Config.DEFAULT_REQUESTS_PER_SECOND))
        config = SimulationConfig.from_dict(raw)
        if config.duration_seconds > Config.MAX_DURATION_SECONDS:
            raise ConfigurationError(f"duration_seconds may not exceed {Config.MAX_DURATION_SECONDS}.")
        if config.requests_per_second > Config.MAX_REQUESTS_PER_SECOND:
            raise ConfigurationError(f"requests_per_second may not exceed {Config.MAX_REQUESTS_PER_SECOND:g}.")
        return config

    def run_simulation(self, payload: Dict[str, object]) -> Tuple[Dict[str, object], int]:
        if not isinstance(payload, dict):
            payload = {}
        graph = payload.get("graph", {}) or {}

        validation = validate_graph(graph)
        response: Dict[str, object] = {
            "structural_errors": validation["errors"],
            "warnings": validation["warnings"],
            "result": None,
            "summary": {},
        }
        if not validation["valid"]:
            logger.warning("Rejected simulation request: %s", "; ".join(validation["errors"]))
            return response, 400

        try:
            config = self.build_config(payload.get("config"))
            topology = Topology.from_dict(graph)
        except (ConfigurationError, TopologyError) as exc:
            logger.warning("Rejected simulation request: %s", exc)
            response["structural_errors"] = [str(exc)]
            return response, 400

        result = run_topology(topology, config)
        result_payload = result.to_dict()
        if not Config.INCLUDE_TIMELINE:
            result_payload["timeline"] = []

        response.update(
            {
                "result": result_payload,
                "summary": summarize_bottlenecks(result.bottlenecks),
            }
        )
        return response, 200
