"""Error taxonomy shared by the domain, persistence and HTTP layers."""

from __future__ import annotations


class DocVaultError(Exception):
    """Base error carrying a stable machine code and the HTTP status it maps to."""

    code = "internal_error"
    http_status = 500
    server_fault = True

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)


class ClientFault(DocVaultError):
    server_fault = False


class Unauthenticated(ClientFault):
    code = "unauthenticated"
    http_status = 401


class InvalidSession(ClientFault):
    code = "invalid_session"
    http_status = 401


class Forbidden(ClientFault):
    code = "forbidden"
    http_status = 403


class ValidationError(ClientFault):
    code = "validation_error"
    http_status = 400


class NotFound(ClientFault):
    code = "not_found"
    http_status = 404


class Conflict(ClientFault):
    code = "conflict"
    http_status = 409


class UnsupportedMediaType(ClientFault):
    code = "unsupported_media_type"
    http_status = 415


class RateLimited(ClientFault):
    code = "rate_limited"
    http_status = 429


class TransactionError(DocVaultError):
    """Raised after an atomic unit has been rolled back; ``cause`` holds the original failure."""

    code = "transaction_error"
    http_status = 500

    def __init__(self, message: str | None = None, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class PersistenceError(DocVaultError):
    code = "persistence_error"
    http_status = 503
