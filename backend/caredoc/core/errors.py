# caredoc/core/errors.py
"""
Error taxonomy shared by services and routers.

- InputError: missing/malformed fields, surfaced as 400 with a field-level message
- AuthError: credential or session failure (InvalidCredentials, AlreadyExists)
- UpstreamError: payment or identity provider failure, surfaced as 502
- ReconciliationWarning: transient event-order inconsistency, logged by the
  webhook reconciler and never surfaced
- FatalError: configuration error detected at startup; the process must not serve
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, field: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.field = field

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.field:
            detail["field"] = self.field
        return detail


class InputError(AppError):
    status_code = 400
    code = "BAD_REQUEST"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class AuthError(AppError):
    status_code = 401
    code = "AUTH_ERROR"


class InvalidCredentials(AuthError):
    code = "InvalidCredentials"


class AlreadyExists(AuthError):
    status_code = 409
    code = "ALREADY_EXISTS"


class UpstreamError(AppError):
    status_code = 502
    code = "UPSTREAM_ERROR"


class UpstreamAuthError(UpstreamError):
    code = "UPSTREAM_AUTH_ERROR"


class UpstreamPaymentError(UpstreamError):
    code = "UPSTREAM_PAYMENT_ERROR"


class ReconciliationWarning(Exception):
    """Event arrived in an order (or shape) the ledger cannot apply yet."""


class FatalError(RuntimeError):
    """Misconfiguration that must prevent the service from starting."""
