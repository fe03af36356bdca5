"""
huddle.errors — Domain Exception Hierarchy
===========================================

Services raise these *before* mutating anything; the API layer maps each
class to an HTTP status (see ``huddle.api.main``).  Storage errors are never
wrapped — they propagate untouched so a failed transaction surfaces the
original cause.
"""

from __future__ import annotations


class HuddleError(Exception):
    """Base class for all business-rule failures."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "code": self.code}


class ValidationError(HuddleError):
    """Malformed or self-referential input (e.g. befriending yourself)."""

    status_code = 400
    code = "invalid"


class NotFoundError(HuddleError):
    """A referenced user, request, network or match does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(HuddleError):
    """The operation would duplicate existing state."""

    status_code = 409
    code = "conflict"


class AuthorizationError(HuddleError):
    """The actor is not allowed to perform the operation."""

    status_code = 403
    code = "forbidden"
