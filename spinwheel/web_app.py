"""
SPINWHEEL — Web App

Flask application factory serving the JSON API.

Run:
    flask --app spinwheel.web_app run
"""

import logging
from typing import Optional

from flask import Flask, jsonify

from spinwheel.config.settings import Settings, setup_logging
from spinwheel.service import build_context

logger = logging.getLogger("spinwheel")


def create_app(settings: Optional[Settings] = None, storage=None, rng=None) -> Flask:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)

    app = Flask(__name__)
    app.extensions["spinwheel"] = build_context(settings, storage=storage, rng=rng)

    from spinwheel.api import api_bp
    app.register_blueprint(api_bp)
    logger.info("Registered API blueprint at /api/")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    return app
