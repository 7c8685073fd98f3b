"""
Error taxonomy for the panel.

Every error carries the HTTP status the API answers with; the message is the
user-facing text shown by the dashboard.
"""


class PainelError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDenied(PainelError):
    status_code = 403


class ValidationError(PainelError):
    status_code = 422


class NotFound(PainelError):
    status_code = 404


class StoreUnavailable(PainelError):
    status_code = 503


class DispatchFailure(PainelError):
    """Raised by email dispatchers. Callers log it and carry on."""

    status_code = 502


class AuthenticationFailed(PainelError):
    status_code = 401
