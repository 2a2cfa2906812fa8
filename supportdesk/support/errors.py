"""Error hierarchy shared by every support service."""

from __future__ import annotations


class SupportError(RuntimeError):
    """Base error for support operations.

    ``kind`` is the machine-readable category surfaced to API callers and
    ``status_code`` the HTTP status the API layer maps it to.
    """

    kind = "support_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SupportError):
    kind = "not_found"
    status_code = 404


class TicketNotFoundError(NotFoundError):
    """Raised when a ticket id or public code cannot be resolved."""


class TicketTypeNotFoundError(NotFoundError):
    """Raised when a ticket type is missing or soft-deleted."""


class InterventionNotFoundError(NotFoundError):
    """Raised when an intervention is missing or soft-deleted."""


class ActivityNotFoundError(NotFoundError):
    pass


class ReferenceNotFoundError(NotFoundError):
    """Raised when a catalogue record (client, user, equipment) is missing."""


class ConflictError(SupportError):
    kind = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    """Raised when the transition table forbids a status change."""

    kind = "invalid_transition"


class ValidationFailure(SupportError):
    kind = "validation_failure"
    status_code = 422


class ResourceExhaustedError(SupportError):
    kind = "resource_exhausted"
    status_code = 503


class CodeGenerationExhaustedError(ResourceExhaustedError):
    """Raised when every unique-code attempt collided with an existing code."""


class DependencyFailureError(SupportError):
    kind = "dependency_failure"
    status_code = 503
