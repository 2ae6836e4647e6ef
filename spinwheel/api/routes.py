"""
SPINWHEEL — API Routes

Every handler goes through the stores/service wired into
`current_app.extensions["spinwheel"]` by create_app().
"""

import logging

from flask import current_app, jsonify, request

from spinwheel.api import api_bp
from spinwheel.config.outcomes import config_to_json
from spinwheel.errors import ConfigValidationError

logger = logging.getLogger("spinwheel.api")

MAX_SIM_ROUNDS = 1_000_000


def _ctx():
    return current_app.extensions["spinwheel"]


def _refresh():
    # Logs a foreign write (see build_context) before the fresh read below.
    _ctx().watcher.poll()


# ═══════════════════════════════════════════════════════════
# Config
# ═══════════════════════════════════════════════════════════

@api_bp.route("/config", methods=["GET"])
def get_config():
    _refresh()
    return jsonify(config_to_json(_ctx().config_store.load_config()))


@api_bp.route("/config", methods=["PUT"])
def put_config():
    body = request.get_json(silent=True)
    if body is None:
        return jsonify({"error": "invalid_json", "message": "Request body must be JSON"}), 400
    try:
        saved = _ctx().config_store.save_config(body)
    except ConfigValidationError as e:
        logger.warning(f"Rejected config save: {e}")
        return jsonify({"error": "invalid_config", "message": str(e)}), 400
    return jsonify(config_to_json(saved))


@api_bp.route("/config", methods=["DELETE"])
def delete_config():
    defaults = _ctx().config_store.reset_config()
    return jsonify(config_to_json(defaults))


# ═══════════════════════════════════════════════════════════
# History & stats
# ═══════════════════════════════════════════════════════════

@api_bp.route("/history", methods=["GET"])
def get_history():
    _refresh()
    return jsonify([r.to_json() for r in _ctx().history_store.get_history()])


@api_bp.route("/history", methods=["DELETE"])
def delete_history():
    _ctx().history_store.clear_history()
    return jsonify({"ok": True})


@api_bp.route("/stats", methods=["GET"])
def get_stats():
    _refresh()
    return jsonify(_ctx().service.stats())


# ═══════════════════════════════════════════════════════════
# Spin & simulation
# ═══════════════════════════════════════════════════════════

@api_bp.route("/spin", methods=["POST"])
def post_spin():
    result = _ctx().service.spin()
    if result.exhausted:
        return jsonify({"error": "limits_reached", "message": result.message}), 409
    if result.conflict:
        return jsonify({"error": "write_conflict", "message": result.message}), 409
    return jsonify(result.to_dict()), 201


@api_bp.route("/simulate", methods=["GET"])
def get_simulate():
    try:
        rounds = int(request.args.get("rounds", 10_000))
        seed = int(request.args.get("seed", 42))
    except ValueError:
        return jsonify({"error": "invalid_params", "message": "rounds and seed must be integers"}), 400
    if not 0 <= rounds <= MAX_SIM_ROUNDS:
        return jsonify({"error": "invalid_params",
                        "message": f"rounds must be between 0 and {MAX_SIM_ROUNDS:,}"}), 400
    return jsonify(_ctx().service.simulate(rounds=rounds, seed=seed).to_dict())
