"""
Domain errors raised by the access-control services.

Each error carries the HTTP status it maps to; ``teamaccess.main`` renders
them with a single exception handler so services never import FastAPI.
"""
from typing import Any, Dict, Optional


class AccessControlError(Exception):
    """Base class for all service-level errors."""

    status_code: int = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.detail}


class ValidationError(AccessControlError):
    """Malformed input or a principal that is not part of the team."""

    status_code = 400


class NotFoundError(AccessControlError):
    """Missing resource, grant, principal or team owner."""

    status_code = 404


class PermissionDeniedError(AccessControlError):
    """Caller lacks manage-level permission."""

    status_code = 403


class ConflictError(AccessControlError):
    """Name collision or an ownership invariant that the write would break."""

    status_code = 409


class PartialFailureError(AccessControlError):
    """
    A member exit stopped part way through.

    ``step`` names the step that failed; ``completed`` holds the counts of the
    steps that did finish. Every step before the status flip is idempotent, so
    the whole exit can be invoked again when ``retry_safe`` is true.
    """

    status_code = 500

    def __init__(
        self,
        detail: str,
        step: str,
        retry_safe: bool = True,
        completed: Optional[Dict[str, int]] = None
    ):
        super().__init__(detail)
        self.step = step
        self.retry_safe = retry_safe
        self.completed = dict(completed or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.detail,
            "step": self.step,
            "retry_safe": self.retry_safe,
            "completed": self.completed,
        }
