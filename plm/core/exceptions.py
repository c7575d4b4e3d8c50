"""
Workflow-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from plm.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise RequirementsNotMetError("Gate 2 requirements not met", details={...})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "ProjectApproval").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class PermissionDeniedError(ValidationError):
    """The acting user's role does not allow the operation. Maps to HTTP 403."""

    def __init__(self, message: str = "You lack permission for this action", details: dict | None = None) -> None:
        super().__init__(message, details)


class RequirementsNotMetError(ValidationError):
    """Gate cannot advance yet; ``details`` lists the missing documents and approvals.

    Maps to HTTP 409.
    """

    def __init__(self, message: str = "Requirements not yet met", details: dict | None = None) -> None:
        super().__init__(message, details)


class FinalGateError(ValidationError):
    """Advancement attempted from the terminal gate. Maps to HTTP 409."""

    def __init__(self, message: str = "Final gate reached", details: dict | None = None) -> None:
        super().__init__(message, details)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class ConfigGapError(LookupError):
    """No approval matrix entry exists for a (category, gate) pair."""

    def __init__(self, category: str, gate_number: int) -> None:
        self.category = category
        self.gate_number = gate_number
        super().__init__(f"No approval matrix entry for {category} gate {gate_number}")


class DependencyError(Exception):
    """The data store failed mid-operation; the session has been rolled back.

    Maps to HTTP 503 ("system error, retry").
    """

    def __init__(self, message: str = "System error, please retry", cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)
