from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import structlog

from application.ports.blob_store import BlobStore, ObjectStream
from domain.exceptions import (
    ObjectConflictError,
    ObjectNotFoundError,
    StorageReadError,
    StorageWriteError,
)
from domain.services.key_mapper import STAGING_PREFIX
from domain.value_objects.stored_object import StoredObject

logger = structlog.get_logger()

DEFAULT_COPY_BUFFER_SIZE = 1024 * 1024
DIRECTORY_MODE = 0o755


@dataclass
class StagingFile:
    """A uniquely named file next to its target, owned by one in-flight write."""

    path: Path
    handle: BinaryIO
    published: bool = False


class LocalBlobStore(BlobStore):
    """Write-once blob store on the local filesystem.

    A blob becomes visible only through an atomic rename of a fully written
    and fsynced staging file living in the target's own directory, so readers
    see either the whole blob or nothing.

    The existence check before writing is best effort: two writers racing for
    the same key can both pass it, and the last rename wins. With
    ``strict_create`` the publish step uses a hard link instead, which fails
    when the target already exists, so exactly one writer wins.
    """

    def __init__(
        self,
        *,
        copy_buffer_size: int = DEFAULT_COPY_BUFFER_SIZE,
        strict_create: bool = False,
    ) -> None:
        if copy_buffer_size <= 0:
            msg = "copy_buffer_size must be positive"
            raise ValueError(msg)
        self.copy_buffer_size = copy_buffer_size
        self.strict_create = strict_create

    async def put_stream(self, path: Path, chunks: AsyncIterable[bytes]) -> StoredObject:
        await asyncio.to_thread(self._ensure_absent, path)
        await asyncio.to_thread(self._prepare_parent, path)

        size = 0
        async with self._staged(path) as staging:
            async for chunk in chunks:
                if not chunk:
                    continue
                await asyncio.to_thread(self._write, staging, chunk)
                size += len(chunk)
            await asyncio.to_thread(self._flush, staging)
            await asyncio.to_thread(self._publish, staging, path)

        logger.debug("object_published", path=str(path), size_bytes=size)
        return StoredObject(path=path, size_bytes=size)

    async def open_stream(self, path: Path) -> ObjectStream:
        size = await asyncio.to_thread(self._object_size, path)
        return ObjectStream(path=path, size_bytes=size, chunks=self._iter_chunks(path, size))

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_absent(path: Path) -> None:
        try:
            os.stat(path)
        except FileNotFoundError:
            return
        except OSError as e:
            msg = f"cannot check {path}: {e}"
            raise StorageWriteError(msg) from e
        msg = f"object already exists at {path}"
        raise ObjectConflictError(msg)

    @staticmethod
    def _prepare_parent(path: Path) -> None:
        try:
            os.makedirs(path.parent, mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            msg = f"cannot create directory {path.parent}: {e}"
            raise StorageWriteError(msg) from e

    @asynccontextmanager
    async def _staged(self, path: Path) -> AsyncGenerator[StagingFile, None]:
        """Create a staging file beside ``path`` and discard it unless it was published.

        Creation and cleanup run in worker threads and are shielded from
        cancellation, so a request cancelled at any point leaves no staging
        file behind.
        """
        creating = asyncio.ensure_future(asyncio.to_thread(self._create_staging, path))
        try:
            staging = await asyncio.shield(creating)
        except asyncio.CancelledError:
            # The file may still be created after the request gave up on it.
            with suppress(StorageWriteError):
                abandoned = await creating
                await asyncio.to_thread(self._release, abandoned)
            raise

        try:
            yield staging
        finally:
            await asyncio.shield(asyncio.to_thread(self._release, staging))

    @staticmethod
    def _create_staging(path: Path) -> StagingFile:
        try:
            fd, name = tempfile.mkstemp(prefix=STAGING_PREFIX, dir=path.parent)
        except OSError as e:
            msg = f"cannot create staging file in {path.parent}: {e}"
            raise StorageWriteError(msg) from e
        return StagingFile(path=Path(name), handle=os.fdopen(fd, "wb"))

    @staticmethod
    def _release(staging: StagingFile) -> None:
        if not staging.handle.closed:
            try:
                staging.handle.close()
            except OSError:
                logger.warning("staging_close_failed", staging=str(staging.path))
        if staging.published:
            return
        try:
            staging.path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("staging_cleanup_failed", staging=str(staging.path), error=str(e))

    @staticmethod
    def _write(staging: StagingFile, chunk: bytes) -> None:
        try:
            staging.handle.write(chunk)
        except OSError as e:
            msg = f"cannot write staging file {staging.path}: {e}"
            raise StorageWriteError(msg) from e

    @staticmethod
    def _flush(staging: StagingFile) -> None:
        try:
            staging.handle.flush()
            os.fsync(staging.handle.fileno())
        except OSError as e:
            msg = f"cannot flush staging file {staging.path}: {e}"
            raise StorageWriteError(msg) from e

    def _publish(self, staging: StagingFile, path: Path) -> None:
        try:
            staging.handle.close()
        except OSError as e:
            msg = f"cannot close staging file {staging.path}: {e}"
            raise StorageWriteError(msg) from e

        if self.strict_create:
            # The link fails if the target exists; the staging name is discarded afterwards.
            try:
                os.link(staging.path, path)
            except FileExistsError as e:
                msg = f"object already exists at {path}"
                raise ObjectConflictError(msg) from e
            except OSError as e:
                msg = f"cannot publish {staging.path} to {path}: {e}"
                raise StorageWriteError(msg) from e
        else:
            try:
                os.replace(staging.path, path)
            except OSError as e:
                msg = f"cannot publish {staging.path} to {path}: {e}"
                raise StorageWriteError(msg) from e
            staging.published = True

        self._sync_directory(path.parent)

    @staticmethod
    def _sync_directory(directory: Path) -> None:
        """Persist the directory entry created by the publish step.

        The blob is already visible at this point, so a failure here is only
        logged: reporting it as a write error would contradict the stored state.
        """
        if os.name == "nt":
            return
        try:
            fd = os.open(directory, os.O_RDONLY)
        except OSError as e:
            logger.warning("directory_sync_failed", directory=str(directory), error=str(e))
            return
        try:
            os.fsync(fd)
        except OSError as e:
            logger.warning("directory_sync_failed", directory=str(directory), error=str(e))
        finally:
            os.close(fd)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    @staticmethod
    def _open(path: Path) -> BinaryIO:
        try:
            return open(path, "rb")  # noqa: SIM115
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError) as e:
            msg = f"no object at {path}"
            raise ObjectNotFoundError(msg) from e
        except OSError as e:
            msg = f"cannot open {path}: {e}"
            raise StorageReadError(msg) from e

    @classmethod
    def _object_size(cls, path: Path) -> int:
        handle = cls._open(path)
        try:
            return os.fstat(handle.fileno()).st_size
        except OSError as e:
            msg = f"cannot stat {path}: {e}"
            raise StorageReadError(msg) from e
        finally:
            handle.close()

    async def _iter_chunks(self, path: Path, size: int) -> AsyncIterator[bytes]:
        """Yield exactly ``size`` bytes of the blob in bounded chunks.

        The file is opened on the first pull, so a stream that is never
        consumed holds no handle. A failure here happens after the response
        has started; it is logged and re-raised so the transport aborts the
        truncated response.
        """
        handle = await asyncio.to_thread(self._open, path)
        try:
            remaining = size
            while remaining > 0:
                try:
                    chunk = await asyncio.to_thread(
                        handle.read,
                        min(self.copy_buffer_size, remaining),
                    )
                except OSError as e:
                    logger.exception("object_stream_failed", path=str(path), error=str(e))
                    msg = f"cannot read {path}: {e}"
                    raise StorageReadError(msg) from e
                if not chunk:
                    logger.error("object_stream_truncated", path=str(path), missing=remaining)
                    msg = f"{path} ended {remaining} bytes early"
                    raise StorageReadError(msg)
                remaining -= len(chunk)
                yield chunk
        finally:
            await asyncio.shield(asyncio.to_thread(handle.close))
