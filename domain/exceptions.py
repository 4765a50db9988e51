"""Domain exceptions for business rule violations."""


class DomainError(Exception):
    """Base exception for domain layer."""


class ValidationError(DomainError):
    """Raised when input validation fails."""


class InvalidKeyError(ValidationError):
    """Raised when an object key is empty, traverses upward or escapes the storage root."""


class ObjectConflictError(DomainError):
    """Raised when a blob already exists under the requested key (write-once)."""


class ObjectNotFoundError(DomainError):
    """Raised when no blob exists under the requested key."""


class InfrastructureError(DomainError):
    """Raised when infrastructure operations fail (filesystem, network, etc.)."""


class StorageWriteError(InfrastructureError):
    """Raised when a blob cannot be staged, flushed or published."""


class StorageReadError(InfrastructureError):
    """Raised when a blob cannot be opened or read."""
