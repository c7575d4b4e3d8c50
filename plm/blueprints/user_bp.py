"""
User directory blueprint.

Routes:
  GET    /users            – list users (optional ?role=)
  POST   /users            – create a user profile
  GET    /users/<uid>      – user profile
  GET    /me               – the calling user
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from plm.auth import current_user, get_user, require_roles, require_user
from plm.core.exceptions import ConflictError, NotFoundError, ValidationError
from plm.models import db
from plm.models.auth import MANAGEMENT_ROLES, USER_ROLES, User
from plm.blueprints import register_error_handlers

logger = logging.getLogger(__name__)

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")
register_error_handlers(user_bp)


@user_bp.route("/users", methods=["GET"])
def list_users():
    q = User.query.filter_by(is_active=True)
    role = request.args.get("role")
    if role:
        q = q.filter_by(role=role)
    return jsonify([u.to_dict() for u in q.order_by(User.full_name, User.id).all()])


@user_bp.route("/users", methods=["POST"])
@require_user
@require_roles(*MANAGEMENT_ROLES)
def create_user():
    """Body: { email, full_name, role, country?, branch? }"""
    data = request.get_json(silent=True) or {}
    errors = {}
    email = (data.get("email") or "").strip().lower()
    if not email or "@" not in email:
        errors["email"] = "valid email required"
    role = data.get("role")
    if role not in USER_ROLES:
        errors["role"] = f"must be one of {sorted(USER_ROLES)}"
    if errors:
        raise ValidationError("Invalid user data", details=errors)

    user = User(
        email=email,
        full_name=(data.get("full_name") or "").strip(),
        role=role,
        country=data.get("country"),
        branch=data.get("branch"),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User", "email", email)
    logger.info("User created with role %s", role, extra={"user_id": user.id})
    return jsonify(user.to_dict()), 201


@user_bp.route("/users/<int:uid>", methods=["GET"])
def get_user_profile(uid):
    user = get_user(uid)
    if user is None:
        raise NotFoundError(resource="User", resource_id=uid)
    return jsonify(user.to_dict())


@user_bp.route("/me", methods=["GET"])
@require_user
def me():
    return jsonify(current_user().to_dict())
