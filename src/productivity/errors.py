"""Error taxonomy shared by the sync engine, the record services and the API."""


class ProductivityError(Exception):
    """Base exception for errors surfaced to callers.

    ``status_code`` is the HTTP-equivalent status the API layer responds with.
    """

    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidToken(ProductivityError):
    """Raised when a Tecsup token is blank or rejected upstream."""

    status_code = 400


class IneligibleAccount(ProductivityError):
    """Raised when a non-student account attempts to sync."""

    status_code = 403


class NoStoredToken(ProductivityError):
    """Raised when a refresh is requested but no token is stored."""

    status_code = 400


class ProtectedRecordError(ProductivityError):
    """Raised when a local edit or delete targets an upstream-owned record."""

    status_code = 409

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        self.fields = fields or []
        super().__init__(message)


class RecordNotFound(ProductivityError):
    """Raised when a record lookup by id finds nothing."""

    status_code = 404


class NotOwner(ProductivityError):
    """Raised when a user touches a record owned by someone else."""

    status_code = 403


class ChatDisabled(ProductivityError):
    """Raised when the assistant is disabled for the user."""

    status_code = 400


class UpstreamUnavailable(ProductivityError):
    """Raised when the Tecsup feed cannot be read at all."""

    status_code = 502
