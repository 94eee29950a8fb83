from __future__ import annotations

from .routes.analysis_routes import analysis_routes
from .routes.simulation_routes import simulation_routes


def register_routes(app) -> None:
    app.register_blueprint(simulation_routes)
    app.register_blueprint(analysis_routes)
