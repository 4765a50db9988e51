"""FastAPI dependency injection integration with Lagom."""

from typing import Annotated

from fastapi import Depends, Request
from lagom import Container


def get_container(request: Request) -> Container:
    """Return the container ``create_app`` built for the serving application.

    Each application owns one container, so two apps created with different
    storage roots never share a blob store.
    """
    return request.app.state.container


AppContainer = Annotated[Container, Depends(get_container)]
