from __future__ import annotations

from flask import Flask

from .api import register_routes
from .logging_config import configure_from_env


def create_app() -> Flask:
    configure_from_env()
    app = Flask(__name__)
    register_routes(app)
    return app


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
