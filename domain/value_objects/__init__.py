from .stored_object import StoredObject

__all__ = [
    "StoredObject",
]
