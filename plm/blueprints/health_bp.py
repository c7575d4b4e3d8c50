"""
Health check blueprint.

Endpoints:
    GET /api/v1/health: liveness, 200 while the app is running
    GET /api/v1/health/live: database round-trip check
"""

import logging
import time

from flask import Blueprint, jsonify

from plm.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "PLM Gate Workflow"})


@health_bp.route("/live", methods=["GET"])
def live():
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        return jsonify({"status": "ok", "database": {"status": "ok", "latency_ms": round(db_ms, 1)}})
    except Exception as exc:
        logger.error("Health check: database failed: %s", exc)
        return jsonify({"status": "degraded", "database": {"status": "error", "detail": str(exc)}}), 503
