"""Tests for the local filesystem blob store."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import BinaryIO

import pytest

from domain.exceptions import (
    ObjectConflictError,
    ObjectNotFoundError,
    StorageReadError,
    StorageWriteError,
)
from domain.services.key_mapper import map_key_to_path
from infrastructure.blob_stores.local_blob_store import LocalBlobStore
from tests.mocks import chunks_of, staging_files


async def _read_all(store: LocalBlobStore, path: Path) -> bytes:
    stream = await store.open_stream(path)
    return b"".join([chunk async for chunk in stream.chunks])


async def _gated(payload: bytes, barrier: asyncio.Barrier) -> AsyncIterator[bytes]:
    """Hold the body back until every racing writer has passed its existence check."""
    await barrier.wait()
    async for chunk in chunks_of(payload, size=4096):
        yield chunk


async def _failing_body(payload: bytes) -> AsyncIterator[bytes]:
    yield payload
    msg = "connection reset"
    raise ConnectionError(msg)


class TestPutAndGet:
    """Test write-once publish followed by streaming read."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 1, 10 * 1024 * 1024])
    async def test_round_trip_preserves_bytes(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
        size: int,
    ) -> None:
        payload = os.urandom(size)
        path = map_key_to_path(storage_root, f"sizes/{size}")

        stored = await blob_store.put_stream(path, chunks_of(payload))

        assert stored.size_bytes == size
        assert stored.path == path
        assert await _read_all(blob_store, path) == payload
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_creates_parent_directories(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        path = map_key_to_path(storage_root, "a/b/c/d")

        await blob_store.put_stream(path, chunks_of(b"deep"))

        assert path.read_bytes() == b"deep"

    @pytest.mark.asyncio
    async def test_reports_size_for_streaming(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        path = map_key_to_path(storage_root, "sized")
        await blob_store.put_stream(path, chunks_of(b"12345"))

        stream = await blob_store.open_stream(path)

        assert stream.size_bytes == 5
        assert stream.path == path
        await stream.chunks.aclose()

    @pytest.mark.asyncio
    async def test_stream_chunks_are_bounded(self, storage_root: Path) -> None:
        store = LocalBlobStore(copy_buffer_size=4)
        path = map_key_to_path(storage_root, "bounded")
        payload = b"0123456789abcdef-"
        await store.put_stream(path, chunks_of(payload))

        stream = await store.open_stream(path)
        chunks = [chunk async for chunk in stream.chunks]

        assert all(len(chunk) <= 4 for chunk in chunks)
        assert b"".join(chunks) == payload

    @pytest.mark.asyncio
    async def test_empty_chunks_are_skipped(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        async def body() -> AsyncIterator[bytes]:
            yield b""
            yield b"ab"
            yield b""
            yield b"c"

        path = map_key_to_path(storage_root, "sparse")
        stored = await blob_store.put_stream(path, body())

        assert stored.size_bytes == 3
        assert path.read_bytes() == b"abc"


class TestWriteOnce:
    """Test conflict detection."""

    @pytest.mark.asyncio
    async def test_second_put_conflicts_and_keeps_original(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        path = map_key_to_path(storage_root, "foo/bar")
        await blob_store.put_stream(path, chunks_of(b"hello"))

        with pytest.raises(ObjectConflictError):
            await blob_store.put_stream(path, chunks_of(b"world"))

        assert path.read_bytes() == b"hello"
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_existing_directory_conflicts(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        await blob_store.put_stream(map_key_to_path(storage_root, "dir/child"), chunks_of(b"x"))

        with pytest.raises(ObjectConflictError):
            await blob_store.put_stream(map_key_to_path(storage_root, "dir"), chunks_of(b"y"))

    @pytest.mark.asyncio
    async def test_blob_in_place_of_parent_is_a_write_error(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        await blob_store.put_stream(map_key_to_path(storage_root, "file"), chunks_of(b"x"))

        with pytest.raises(StorageWriteError):
            await blob_store.put_stream(
                map_key_to_path(storage_root, "file/child"),
                chunks_of(b"y"),
            )


class TestFailureCleanup:
    """Test that failed writes leave neither a blob nor a staging file behind."""

    @pytest.mark.asyncio
    async def test_rename_failure_leaves_key_absent(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_replace(src: object, dst: object) -> None:
            msg = "simulated rename failure"
            raise OSError(msg)

        monkeypatch.setattr(os, "replace", broken_replace)
        path = map_key_to_path(storage_root, "interrupted")

        with pytest.raises(StorageWriteError):
            await blob_store.put_stream(path, chunks_of(b"partial"))

        assert not path.exists()
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_fsync_failure_leaves_key_absent(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken_fsync(fd: int) -> None:
            msg = "simulated fsync failure"
            raise OSError(msg)

        monkeypatch.setattr(os, "fsync", broken_fsync)
        path = map_key_to_path(storage_root, "unflushed")

        with pytest.raises(StorageWriteError):
            await blob_store.put_stream(path, chunks_of(b"data"))

        assert not path.exists()
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_body_failure_discards_staging_file(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        path = map_key_to_path(storage_root, "disconnected")

        with pytest.raises(ConnectionError):
            await blob_store.put_stream(path, _failing_body(b"half of it"))

        assert not path.exists()
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_cancelled_write_discards_staging_file(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        waiting = asyncio.Event()

        async def stalled_body() -> AsyncIterator[bytes]:
            yield b"first part"
            waiting.set()
            await asyncio.Event().wait()
            yield b"never"

        path = map_key_to_path(storage_root, "cancelled")
        task = asyncio.create_task(blob_store.put_stream(path, stalled_body()))
        await waiting.wait()
        assert len(staging_files(storage_root)) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not path.exists()
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        path = map_key_to_path(storage_root, "retry")
        with pytest.raises(ConnectionError):
            await blob_store.put_stream(path, _failing_body(b"first"))

        await blob_store.put_stream(path, chunks_of(b"second"))

        assert path.read_bytes() == b"second"


class TestConcurrentWrites:
    """Test concurrent writers."""

    @pytest.mark.asyncio
    async def test_different_keys_are_independent(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        first = os.urandom(256 * 1024)
        second = os.urandom(256 * 1024)
        first_path = map_key_to_path(storage_root, "shared/one")
        second_path = map_key_to_path(storage_root, "shared/two")

        await asyncio.gather(
            blob_store.put_stream(first_path, chunks_of(first, size=1024)),
            blob_store.put_stream(second_path, chunks_of(second, size=1024)),
        )

        assert first_path.read_bytes() == first
        assert second_path.read_bytes() == second

    @pytest.mark.asyncio
    async def test_same_key_race_publishes_one_whole_payload(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        """Both writers pass the existence check; the last rename wins, never a mix."""
        first = b"A" * 200_000
        second = b"B" * 200_000
        path = map_key_to_path(storage_root, "contended")
        barrier = asyncio.Barrier(2)

        results = await asyncio.gather(
            blob_store.put_stream(path, _gated(first, barrier)),
            blob_store.put_stream(path, _gated(second, barrier)),
        )

        assert [stored.size_bytes for stored in results] == [200_000, 200_000]
        assert path.read_bytes() in (first, second)
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_same_key_race_in_strict_mode_has_single_winner(
        self,
        storage_root: Path,
    ) -> None:
        store = LocalBlobStore(strict_create=True)
        first = b"A" * 200_000
        second = b"B" * 200_000
        path = map_key_to_path(storage_root, "contended")
        barrier = asyncio.Barrier(2)

        results = await asyncio.gather(
            store.put_stream(path, _gated(first, barrier)),
            store.put_stream(path, _gated(second, barrier)),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ObjectConflictError)]
        assert len(conflicts) == 1
        assert path.read_bytes() in (first, second)
        assert staging_files(storage_root) == []

    @pytest.mark.asyncio
    async def test_strict_mode_publishes_normally(self, storage_root: Path) -> None:
        store = LocalBlobStore(strict_create=True)
        path = map_key_to_path(storage_root, "strict/key")

        await store.put_stream(path, chunks_of(b"only once"))

        assert path.read_bytes() == b"only once"
        assert staging_files(storage_root) == []


class TestReadPath:
    """Test existence-checked reads."""

    @pytest.mark.asyncio
    async def test_missing_object_is_not_found(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        with pytest.raises(ObjectNotFoundError):
            await blob_store.open_stream(map_key_to_path(storage_root, "never/written"))

    @pytest.mark.asyncio
    async def test_directory_is_not_an_object(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
    ) -> None:
        await blob_store.put_stream(map_key_to_path(storage_root, "dir/child"), chunks_of(b"x"))

        with pytest.raises(ObjectNotFoundError):
            await blob_store.open_stream(map_key_to_path(storage_root, "dir"))

    @pytest.mark.asyncio
    async def test_mid_stream_failure_raises_and_releases_handle(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        class BrokenHandle:
            closed = False

            def read(self, size: int) -> bytes:
                msg = "simulated read failure"
                raise OSError(msg)

            def close(self) -> None:
                self.closed = True

        path = map_key_to_path(storage_root, "broken")
        await blob_store.put_stream(path, chunks_of(b"unreadable"))
        stream = await blob_store.open_stream(path)
        handle = BrokenHandle()
        monkeypatch.setattr(blob_store, "_open", lambda _path: handle)

        with pytest.raises(StorageReadError):
            await stream.chunks.__anext__()

        assert handle.closed is True

    @pytest.mark.asyncio
    async def test_unconsumed_stream_holds_no_handle(
        self,
        blob_store: LocalBlobStore,
        storage_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = map_key_to_path(storage_root, "dropped")
        await blob_store.put_stream(path, chunks_of(b"never sent"))
        opened: list[BinaryIO] = []
        real_open = LocalBlobStore._open  # noqa: SLF001

        def tracking_open(target: Path) -> BinaryIO:
            handle = real_open(target)
            opened.append(handle)
            return handle

        monkeypatch.setattr(LocalBlobStore, "_open", staticmethod(tracking_open))

        stream = await blob_store.open_stream(path)

        assert stream.size_bytes == len(b"never sent")
        assert len(opened) == 1
        assert all(handle.closed for handle in opened)

        assert b"".join([chunk async for chunk in stream.chunks]) == b"never sent"
        assert len(opened) == 2
        assert all(handle.closed for handle in opened)

    @pytest.mark.asyncio
    async def test_stream_stops_at_reported_size(self, storage_root: Path) -> None:
        store = LocalBlobStore(copy_buffer_size=4)
        path = map_key_to_path(storage_root, "shrunk")
        await store.put_stream(path, chunks_of(b"0123456789"))
        stream = await store.open_stream(path)
        path.write_bytes(b"0123")

        chunks = stream.chunks
        assert await chunks.__anext__() == b"0123"
        with pytest.raises(StorageReadError):
            await chunks.__anext__()


def test_copy_buffer_size_must_be_positive() -> None:
    with pytest.raises(ValueError, match="copy_buffer_size"):
        LocalBlobStore(copy_buffer_size=0)
