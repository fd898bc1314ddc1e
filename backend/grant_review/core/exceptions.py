"""
Review pipeline error taxonomy.

Services raise these; the API layer maps them to HTTP responses in main.py.
All of them are raised before anything is committed, so a caller that sees
one can refresh its view of the entity and retry.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for all review pipeline errors."""

    status_code = 400
    code = "pipeline_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        payload = {"detail": self.message, "error": self.code}
        payload.update({k: v for k, v in self.context.items() if v is not None})
        return payload


class ValidationError(PipelineError):
    """A required reason, message or score is missing or out of range."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class PreconditionFailed(PipelineError):
    """The stored status does not match what the caller expected or allows."""

    status_code = 409
    code = "precondition_failed"

    def __init__(self, message: str, current_status: Any = None, expected_status: Any = None, **context: Any):
        super().__init__(
            message,
            current_status=_status_value(current_status),
            expected_status=_status_value(expected_status),
            **context,
        )
        self.current_status = current_status
        self.expected_status = expected_status


class TerminalStateError(PipelineError):
    """The entity has already reached a terminal status."""

    status_code = 409
    code = "terminal_state"

    def __init__(self, message: str, current_status: Any = None, **context: Any):
        super().__init__(message, current_status=_status_value(current_status), **context)
        self.current_status = current_status


class NotFound(PipelineError):
    status_code = 404
    code = "not_found"


class PermissionDenied(PipelineError):
    status_code = 403
    code = "permission_denied"


def _status_value(status: Any) -> Any:
    if isinstance(status, (list, tuple, set, frozenset)):
        return [_status_value(s) for s in status]
    return getattr(status, "value", status)
