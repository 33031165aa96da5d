# dealdesk/domain/errors.py
from __future__ import annotations


class DomainError(Exception):
    """
    Base of the closed error set the core raises.

    Every variant carries the caller-facing message, a stable `code` and the
    status the boundary layer should answer with. Anything raised by the core
    that is NOT a DomainError is an unclassified fault (500).
    """

    status_code: int = 500
    code: str = "INTERNAL"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = int(status_code)

    def __str__(self) -> str:
        return self.message


class AuthenticationError(DomainError):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AccessError(DomainError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AccessError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ValidationError(DomainError):
    status_code = 400
    code = "VALIDATION"


class ConflictError(DomainError):
    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str = "Stale write: resource changed since it was read"):
        super().__init__(message)
