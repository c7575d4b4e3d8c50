"""
PLM Gate Workflow
Blueprint helpers shared by all API blueprints.
"""

import logging

from flask import request

from plm.core.exceptions import (
    ConflictError,
    DependencyError,
    FinalGateError,
    NotFoundError,
    PermissionDeniedError,
    RequirementsNotMetError,
    ValidationError,
)
from plm.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=50, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit: max items (default 50, capped at max_limit)
        offset: starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def register_error_handlers(bp):
    """Map the workflow exception hierarchy to JSON error responses on *bp*.

    Flask resolves handlers along the exception's MRO, so the
    ValidationError subclasses get their own status codes.
    """

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(PermissionDeniedError)
    def _handle_forbidden(error: PermissionDeniedError):
        return api_error(E.FORBIDDEN, str(error), details=error.details)

    @bp.errorhandler(RequirementsNotMetError)
    def _handle_requirements(error: RequirementsNotMetError):
        return api_error(E.REQUIREMENTS_NOT_MET, str(error), details=error.details)

    @bp.errorhandler(FinalGateError)
    def _handle_final_gate(error: FinalGateError):
        return api_error(E.FINAL_GATE, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error))

    @bp.errorhandler(DependencyError)
    def _handle_dependency(error: DependencyError):
        return api_error(E.DEPENDENCY, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
