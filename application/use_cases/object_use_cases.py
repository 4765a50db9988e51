from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from returns.result import Failure, Result, Success

from application.dtos.errors import AppError
from application.dtos.object_dtos import PutObjectResponse
from domain.exceptions import (
    InfrastructureError,
    InvalidKeyError,
    ObjectConflictError,
    ObjectNotFoundError,
)
from domain.services.key_mapper import map_key_to_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterable
    from pathlib import Path

    from application.ports.blob_store import BlobStore, ObjectStream

logger = structlog.get_logger()


class PutObjectUseCase:
    """Store a blob under a key exactly once.

    The key is mapped and validated before the blob store is touched, so an
    invalid key never creates or checks anything under the storage root.
    """

    def __init__(self, blob_store: BlobStore, storage_root: Path) -> None:
        self.blob_store = blob_store
        self.storage_root = storage_root

    async def execute(
        self,
        key: str,
        chunks: AsyncIterable[bytes],
    ) -> Result[PutObjectResponse, AppError]:
        """Execute a write-once upload.

        Args:
            key: Object key as extracted from the request
            chunks: Request body as an async stream of byte chunks

        Returns:
            Result containing the stored object description or an error

        """
        try:
            path = map_key_to_path(self.storage_root, key)
        except InvalidKeyError as e:
            logger.info("object_key_rejected", key=key, reason=str(e))
            return Failure(AppError("validation", "invalid object key"))

        try:
            stored = await self.blob_store.put_stream(path, chunks)
        except ObjectConflictError:
            return Failure(AppError("conflict", "object already exists"))
        except InfrastructureError as e:
            logger.error("object_write_failed", key=key, path=str(path), error=str(e))
            return Failure(AppError("infrastructure", f"Failed to store object: {e!s}"))

        logger.info("object_created", key=key, size_bytes=stored.size_bytes)
        return Success(PutObjectResponse(key=key, size_bytes=stored.size_bytes))


class GetObjectUseCase:
    """Open a stored blob for streaming."""

    def __init__(self, blob_store: BlobStore, storage_root: Path) -> None:
        self.blob_store = blob_store
        self.storage_root = storage_root

    async def execute(self, key: str) -> Result[ObjectStream, AppError]:
        try:
            path = map_key_to_path(self.storage_root, key)
        except InvalidKeyError as e:
            logger.info("object_key_rejected", key=key, reason=str(e))
            return Failure(AppError("validation", "invalid object key"))

        try:
            stream = await self.blob_store.open_stream(path)
        except ObjectNotFoundError:
            return Failure(AppError("not_found", "object not found"))
        except InfrastructureError as e:
            logger.error("object_open_failed", key=key, path=str(path), error=str(e))
            return Failure(AppError("infrastructure", f"Failed to open object: {e!s}"))

        return Success(stream)
