"""Domain layer exports."""

from domain.exceptions import (
    DomainError,
    InfrastructureError,
    InvalidKeyError,
    ObjectConflictError,
    ObjectNotFoundError,
    StorageReadError,
    StorageWriteError,
    ValidationError,
)
from domain.value_objects import StoredObject

__all__ = [
    "DomainError",
    "InfrastructureError",
    "InvalidKeyError",
    "ObjectConflictError",
    "ObjectNotFoundError",
    "StorageReadError",
    "StorageWriteError",
    "StoredObject",
    "ValidationError",
]
