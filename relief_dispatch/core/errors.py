# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain error taxonomy.

Every error names the invariant it guards so callers can react without
re-reading state. The HTTP layer maps ``status_code`` / ``code`` onto the
JSON error envelope; services never build HTTP responses themselves.
"""

from typing import Any, Optional


class DispatchError(Exception):
    """Base class for every failure the core reports to its caller."""

    status_code: int = 400
    code: str = "dispatch_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, "context": self.context}


class NotFoundError(DispatchError):
    """Referenced incident, assignment or user does not exist."""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"{entity} '{entity_id}' not found",
            entity=entity,
            id=entity_id,
        )


class ConflictError(DispatchError):
    status_code = 409
    code = "conflict"


class InvalidTransitionError(DispatchError):
    """A transition was requested from the wrong source state."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, entity: str, current, required, action: str) -> None:
        if not isinstance(required, (set, frozenset, list, tuple)):
            required = [required]
        current = _status_value(current)
        required_list = sorted(_status_value(r) for r in required)
        expected = (
            " or ".join(f"'{r}'" for r in required_list)
            if required_list else "none (terminal state)"
        )
        super().__init__(
            f"Cannot {action} {entity}: status is '{current}', requires {expected}",
            entity=entity,
            action=action,
            current_status=current,
            required_status=required_list,
        )
        self.current = current
        self.required = required_list


def _status_value(status) -> str:
    return getattr(status, "value", status)


class UnauthorizedError(DispatchError):
    status_code = 403
    code = "unauthorized"


class InvalidInputError(DispatchError):
    status_code = 422
    code = "invalid_input"
