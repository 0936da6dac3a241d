"""
Error taxonomy shared by identity, authorization and provisioning code.

Why:
    Web adapters map these to HTTP responses with a single human-readable
    message. Each class also derives from the closest builtin so generic
    callers (tools, tests) can keep catching `ValueError`/`PermissionError`.

Security:
    `message` is what crosses the HTTP boundary. Never put tokens, passwords,
    stack traces or internal identifiers into it.
"""
from __future__ import annotations

from typing import Sequence


class ProvisioningError(Exception):
    """Base class; carries an HTTP status and a user-safe message."""

    status_code = 500
    default_message = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(ProvisioningError, ValueError):
    status_code = 400
    default_message = "invalid_argument"


class Unauthenticated(ProvisioningError, PermissionError):
    status_code = 401
    default_message = "Unauthorized"


class PermissionDenied(ProvisioningError, PermissionError):
    status_code = 403
    default_message = "Admin access required"


class Conflict(ProvisioningError, ValueError):
    status_code = 400
    default_message = "already_exists"


class NotFound(ProvisioningError, LookupError):
    status_code = 400
    default_message = "not_found"


class Unavailable(ProvisioningError, RuntimeError):
    status_code = 503
    default_message = "service_unavailable"


class PartialFailure(ProvisioningError, RuntimeError):
    """A compensating step failed after a primary step had already failed.

    Both sides are kept: `original` is the error that triggered compensation,
    `compensation_errors` lists every compensating action that failed.
    """

    status_code = 500

    def __init__(self, original: BaseException, compensation_errors: Sequence[BaseException]) -> None:
        self.original = original
        self.compensation_errors = list(compensation_errors)
        reason = getattr(original, "message", None) or original.__class__.__name__
        super().__init__(
            f"{reason}; cleanup incomplete ({len(self.compensation_errors)} rollback step(s) failed)"
        )


__all__ = [
    "ProvisioningError",
    "InvalidArgument",
    "Unauthenticated",
    "PermissionDenied",
    "Conflict",
    "NotFound",
    "Unavailable",
    "PartialFailure",
]
