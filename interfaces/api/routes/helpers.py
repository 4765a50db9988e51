from fastapi import HTTPException, status

from application.dtos.errors import AppError
from domain.services.key_mapper import KEY_SEPARATOR, has_parent_segment

INVALID_KEY_DETAIL = "invalid object key"


def extract_object_key(raw_key: str) -> str:
    """Take the object key from the path captured after the route prefix.

    A single leading extra separator is stripped. Empty keys, keys that are
    still absolute after that and keys with a ``..`` segment are rejected
    here, before the request reaches the store.
    """
    key = raw_key[1:] if raw_key.startswith(KEY_SEPARATOR) else raw_key
    if not key or key.startswith(KEY_SEPARATOR) or has_parent_segment(key):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=INVALID_KEY_DETAIL,
        )
    return key


def _map_app_error_to_http_exception(error: AppError) -> HTTPException:
    """Map application layer errors to appropriate HTTP exceptions."""
    if error.category == "validation":
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error.message,
        )
    if error.category == "not_found":
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error.message,
        )
    if error.category == "conflict":
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error.message,
        )
    # Infrastructure and unknown categories: keep filesystem details out of the response
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="internal error",
    )
