from __future__ import annotations

from flask import Blueprint, jsonify, request

from ...services.analysis_service import AnalysisService

analysis_routes = Blueprint("analysis_routes", __name__)


@analysis_routes.route("/api/query-cost", methods=["POST"])
def query_cost_route():
    payload = request.get_json(silent=True) or {}
    result, status = AnalysisService().analyze_query(payload)
    return jsonify(result), status


@analysis_routes.route("/api/cache-analysis", methods=["POST"])
def cache_analysis_route():
    payload = request.get_json(silent=True) or {}
    result, status = AnalysisService().analyze_cache(payload)
    return jsonify(result), status


@analysis_routes.route("/api/node-types", methods=["GET"])
def node_types_route():
    return jsonify({"node_types": AnalysisService().list_node_types()})
