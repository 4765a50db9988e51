from __future__ import annotations

from lagom import Container

from application.ports.blob_store import BlobStore
from application.use_cases.object_use_cases import GetObjectUseCase, PutObjectUseCase
from infrastructure.blob_stores.local_blob_store import LocalBlobStore
from infrastructure.config import Settings, get_settings


def create_container(settings: Settings | None = None) -> Container:
    settings = settings or get_settings()
    container = Container()

    container[Settings] = settings

    # Blob storage (local filesystem, write-once)
    blob_store_instance = LocalBlobStore(
        copy_buffer_size=settings.copy_buffer_size,
        strict_create=settings.strict_create,
    )
    container[BlobStore] = blob_store_instance

    # Use cases
    container[PutObjectUseCase] = lambda c: PutObjectUseCase(
        blob_store=c[BlobStore],
        storage_root=c[Settings].storage_root,
    )
    container[GetObjectUseCase] = lambda c: GetObjectUseCase(
        blob_store=c[BlobStore],
        storage_root=c[Settings].storage_root,
    )

    return container
