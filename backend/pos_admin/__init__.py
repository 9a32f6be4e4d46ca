from __future__ import annotations

from flask import Flask
from flask_cors import CORS

from pos_admin.api.routes import api_bp
from pos_admin.config import Config
from pos_admin.domain.allocation import get_strategy
from pos_admin.logging_setup import configure_logging


def create_app() -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    CORS(app)  # the admin UI is served from another origin

    configure_logging(app.config["LOG_LEVEL"])
    get_strategy(app.config["ALLOCATION_STRATEGY"])  # reject a bad name at startup

    app.register_blueprint(api_bp)
    return app
