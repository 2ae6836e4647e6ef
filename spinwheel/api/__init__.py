"""
SPINWHEEL — JSON API

Flask blueprint: /api/*
Config, history, stats, spin and simulation endpoints for the wheel UI and
admin dashboard.
"""

from flask import Blueprint

api_bp = Blueprint("api", __name__, url_prefix="/api")

from spinwheel.api import routes  # noqa: E402, F401
