# Overview: Domain error taxonomy shared by services, routes and the CLI.

"""
Every error raised by a core operation is a DomainError subclass carrying the
HTTP status the route layer should answer with.

- ValidationError: malformed input, raised before any transaction starts
- ForbiddenError: the permission collaborator denied the action
- NotFoundError: entity missing or outside the caller's tenant
- ConflictError: state precondition failed (stock, unit, signature, status)
- FatalError: unrecoverable infrastructure failure
"""


class DomainError(Exception):
    status_code = 400
    code = "domain_error"

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError, ValueError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class ForbiddenError(DomainError):
    status_code = 403
    code = "forbidden"


class NotFoundError(DomainError, LookupError):
    status_code = 404
    code = "not_found"


class ConflictError(DomainError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, already signed)."""
    status_code = 409
    code = "conflict"


class InsufficientStockError(ConflictError):
    code = "insufficient_stock"


class UnitUnavailableError(ConflictError):
    code = "unit_unavailable"


class AlreadySignedError(ConflictError):
    code = "already_signed"


class InvalidTransitionError(ConflictError):
    code = "invalid_transition"


class SignedRequestLockedError(ConflictError):
    """Structural edit attempted while a signature is recorded."""
    code = "signed_request_locked"


class FatalError(DomainError):
    status_code = 500
    code = "fatal"


class SequenceExhaustedError(FatalError):
    code = "sequence_exhausted"


class ImmutableRecordError(FatalError):
    """An append-only row was updated or deleted through the ORM."""
    code = "immutable_record"
