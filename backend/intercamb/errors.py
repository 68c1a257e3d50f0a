"""
Error types shared by the database, service and HTTP layers.

Domain errors are translated into JSON responses by
``middleware.error_handler``. Programming errors are not domain errors and
surface as 500s.
"""
from __future__ import annotations


class DomainError(Exception):
    """Base class for domain-level errors."""
    status_code: int = 400
    error_code: str = "domain_error"

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(DomainError):
    """An entity required by the caller does not exist."""
    status_code = 404
    error_code = "not_found"

    def __init__(self, code: str, message: str, entity: str | None = None):
        super().__init__(message)
        self.error_code = code
        self.entity = entity

    def __repr__(self) -> str:
        return f"NotFoundError(code={self.error_code!r}, message={self.message!r})"


class InvalidFilterError(DomainError):
    """Invalid filter parameter."""
    status_code = 422
    error_code = "invalid_filter"


class UnregisteredEntityTypeError(RuntimeError):
    """Raised when a query targets an entity type with no descriptor."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Entity type '{entity_type}' is not registered")
