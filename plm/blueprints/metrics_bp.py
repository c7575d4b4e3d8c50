"""
Metrics blueprint.

Routes:
  GET    /metrics/dashboard        – headline numbers for the dashboard
  GET    /metrics/bottlenecks      – gate bottleneck ranking (?top=)
  GET    /metrics/compliance       – compliance scores (?project_id=)
  GET    /metrics/projects         – portfolio metrics (?category, ?country)
  GET    /metrics/users/<uid>      – per-user performance
"""

from flask import Blueprint, jsonify, request

from plm.auth import get_user
from plm.blueprints import register_error_handlers
from plm.core.exceptions import NotFoundError
from plm.services.metrics import TOP_BOTTLENECKS, MetricsService
from plm.services.project_service import ProjectService

metrics_bp = Blueprint("metrics_bp", __name__, url_prefix="/api/v1/metrics")
register_error_handlers(metrics_bp)


@metrics_bp.route("/dashboard", methods=["GET"])
def dashboard():
    return jsonify(MetricsService().dashboard())


@metrics_bp.route("/bottlenecks", methods=["GET"])
def bottlenecks():
    top = request.args.get("top", TOP_BOTTLENECKS, type=int)
    return jsonify(MetricsService().bottlenecks(top=top))


@metrics_bp.route("/compliance", methods=["GET"])
def compliance():
    project_id = request.args.get("project_id", type=int)
    if project_id:
        ProjectService().get_project(project_id)
    return jsonify(MetricsService().compliance(project_id))


@metrics_bp.route("/projects", methods=["GET"])
def portfolio():
    return jsonify(MetricsService().portfolio(
        category=request.args.get("category"),
        country=request.args.get("country"),
    ))


@metrics_bp.route("/users/<int:uid>", methods=["GET"])
def user_metrics(uid):
    if get_user(uid) is None:
        raise NotFoundError(resource="User", resource_id=uid)
    return jsonify(MetricsService().user_metrics(uid))
