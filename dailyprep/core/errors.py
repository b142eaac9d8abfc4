"""
Error taxonomy for the attempt lifecycle and analytics engine.

Every failure carries a stable ``kind`` (rendered as the ``type`` of the
error envelope) and the HTTP status it maps to.
"""
from typing import Any, Dict


class EngineError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "message": self.message,
            "type": self.kind,
            "status_code": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


class AuthError(EngineError):
    kind = "auth_error"
    status_code = 401


class NotFoundError(EngineError):
    kind = "not_found"
    status_code = 404


class StateConflictError(EngineError):
    kind = "state_conflict"
    status_code = 409


class ValidationError(EngineError):
    kind = "validation_error"
    status_code = 422


class DataIntegrityError(EngineError):
    """An upstream invariant was violated; not the caller's fault."""

    kind = "data_integrity"
    status_code = 500


class InsufficientCatalogError(EngineError):
    kind = "insufficient_catalog"
    status_code = 503


class NoHistoryError(EngineError):
    kind = "no_history"
    status_code = 404


class UpstreamError(EngineError):
    kind = "upstream_error"
    status_code = 502
