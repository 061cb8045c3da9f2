"""Error taxonomy shared by the domain services."""

from __future__ import annotations


class DomainError(RuntimeError):
    """Base error for cultivation state changes."""


class NotFoundError(DomainError):
    """Raised when a referenced record or record group is absent."""


class AuthorizationError(DomainError):
    """Raised when the acting user may not mutate a record."""


class ValidationError(DomainError):
    """Raised when a request conflicts with the record's lifecycle."""


class PersistenceError(DomainError):
    """Raised when the backing store rejects a write."""
