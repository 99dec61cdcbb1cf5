"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from onboarding.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ChecklistTemplate", resource_id=42)
    raise ValidationError("title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a template, item, assignment, progress item or user id does not resolve.

    Args:
        resource: Human-readable model/entity name (e.g. "ChecklistAssignment").
        resource_id: The PK that was looked up.
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
    """Raised when input fails validation in the service layer.

    Covers missing titles, unknown stage/phase tags, bad verification
    decisions and similar malformed values. Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state.

    Two flavours share this type:
      - a duplicate (open assignment for the same user/template, order index
        already taken), built with ``resource``/``field``/``value``;
      - an illegal state transition (verifying an item that is not
        completed), built with an explicit ``message``.

    Maps to HTTP 409.
    """

    def __init__(
        self,
        resource: str,
        field: str | None = None,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the actor lacks the role or reporting relationship for an action.

    Examples: an employee verifying their own item, a supervisor verifying
    someone outside their reporting chain, a non-HR user editing templates.

    Maps to HTTP 403.
    """

    def __init__(self, message: str, actor_id: int | None = None) -> None:
        self.actor_id = actor_id
        super().__init__(message)
