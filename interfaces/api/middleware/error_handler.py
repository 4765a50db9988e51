"""Error handling for the object routes."""

import functools
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import structlog
from fastapi import HTTPException, status
from returns.result import Failure, Success
from starlette.requests import ClientDisconnect

from interfaces.api.routes.helpers import _map_app_error_to_http_exception

if TYPE_CHECKING:
    from typing import Any

logger = structlog.get_logger()

INTERNAL_ERROR_DETAIL = "internal error"

T_co = TypeVar("T_co")


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=INTERNAL_ERROR_DETAIL,
    )


def handle_use_case_errors(
    func: Callable[..., Awaitable[T_co]],
) -> Callable[..., Awaitable[T_co]]:
    """Turn the ``Result`` an object route returns into a response or an HTTP error.

    - ``Success`` is unwrapped and returned
    - ``Failure`` is raised as the matching ``HTTPException``
    - A request body cut off by the client ends the request with 400
    - Anything else is logged with the object key and reported as a bare 500,
      so filesystem paths never reach the client

    Args:
        func: An async object route that executes a use case

    Returns:
        Wrapped route with centralized error handling

    """

    @functools.wraps(func)
    async def wrapper(*args: "Any", **kwargs: "Any") -> T_co:  # noqa: ANN401
        key = kwargs.get("key")
        try:
            result = await func(*args, **kwargs)
        except HTTPException:
            raise
        except ClientDisconnect as exc:
            logger.info("client_disconnected", route=func.__name__, key=key)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="client disconnected",
            ) from exc
        except Exception as exc:
            logger.exception(
                "object_route_failed",
                route=func.__name__,
                key=key,
                error_type=type(exc).__name__,
            )
            raise _internal_error() from exc

        if isinstance(result, Success):
            return result.unwrap()
        if isinstance(result, Failure):
            raise _map_app_error_to_http_exception(result.failure()) from None

        logger.error("unexpected_result_type", route=func.__name__, result_type=type(result).__name__)
        raise _internal_error()

    return wrapper
