from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator
    from pathlib import Path

    from domain.value_objects.stored_object import StoredObject


@dataclass(frozen=True)
class ObjectStream:
    """An opened blob, ready to be streamed to the caller."""

    path: Path
    size_bytes: int
    chunks: AsyncIterator[bytes]


class BlobStore(Protocol):
    """Write-once blob storage addressed by paths produced by the key mapper.

    Implementations raise domain exceptions:
    - ObjectConflictError: When a blob already exists at the target path
    - ObjectNotFoundError: When no blob exists at the target path
    - StorageWriteError / StorageReadError: When filesystem operations fail
    """

    async def put_stream(self, path: Path, chunks: AsyncIterable[bytes]) -> StoredObject:
        """Durably and atomically publish ``chunks`` at ``path`` if nothing is there yet."""
        ...

    async def open_stream(self, path: Path) -> ObjectStream:
        """Open the blob at ``path`` for bounded-memory streaming."""
        ...
