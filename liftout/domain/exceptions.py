"""Error kinds raised by the engine's services.

Every refusal a caller can observe is an ``EngineError`` subclass carrying a
stable ``kind`` string and the HTTP-style ``status`` the API boundary returns.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all caller-visible engine failures."""

    kind = "internal_error"
    status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class UnauthorizedError(EngineError):
    kind = "unauthorized"
    status = 401


class ForbiddenVerificationError(EngineError):
    """The actor's company is not verified for a gated team."""

    kind = "forbidden_verification"
    status = 403


class ForbiddenBlockedError(EngineError):
    """The team has blocked the actor's company."""

    kind = "forbidden_blocked"
    status = 403


class ForbiddenRoleError(EngineError):
    kind = "forbidden_role"
    status = 403


class ForbiddenParticipantError(EngineError):
    kind = "forbidden_participant"
    status = 403


class NdaRequiredError(EngineError):
    kind = "nda_required"
    status = 400


class DuplicatePendingError(EngineError):
    """A pending EOI already exists for (sender, target)."""

    kind = "duplicate_pending"
    status = 400


class DuplicateApplicationError(EngineError):
    kind = "duplicate_application"
    status = 400


class NotFoundError(EngineError):
    kind = "not_found"
    status = 404


class InvalidStateTransitionError(EngineError):
    kind = "invalid_state_transition"
    status = 400


class ValidationFailedError(EngineError):
    kind = "validation_error"
    status = 400


class InternalError(EngineError):
    kind = "internal_error"
    status = 500
