"""Shared test fixtures and configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from infrastructure.blob_stores.local_blob_store import LocalBlobStore
from infrastructure.config import Settings


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    """Return an absolute, not yet created storage root."""
    return tmp_path / "blobstore"


@pytest.fixture
def blob_store() -> LocalBlobStore:
    return LocalBlobStore(copy_buffer_size=8 * 1024)


@pytest.fixture
def settings(storage_root: Path, tmp_path: Path) -> Settings:
    return Settings(
        storage_root=storage_root,
        log_dir=tmp_path / "logs",
        copy_buffer_size=8 * 1024,
    )
