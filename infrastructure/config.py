import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # make it absolute so reload/CWD doesn't break it
        env_file=Path(__file__).resolve().parents[1] / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="BlobStore", validation_alias="APP_NAME")
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias="APP_ENV",
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_dir: Path = Field(
        default=Path(__file__).resolve().parents[1] / "logs",
        validation_alias="LOG_DIR",
    )
    log_backup_count: int = Field(default=7, ge=0, validation_alias="LOG_BACKUP_COUNT")

    # API
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")  # noqa: S104
    api_port: int = Field(default=7070, validation_alias="API_PORT")

    # Blob Storage
    storage_root: Path = Field(
        default=Path("./data/blobstore"),
        validation_alias="STORAGE_ROOT",
        description="Directory all blobs live under. Resolved to an absolute path once.",
    )
    copy_buffer_size: int = Field(
        default=1024 * 1024,
        gt=0,
        validation_alias="COPY_BUFFER_SIZE",
        description="Bytes read per chunk when streaming a blob out.",
    )
    strict_create: bool = Field(
        default=False,
        validation_alias="STRICT_CREATE",
        description="Publish with an exclusive create so racing writers to one key cannot both win.",
    )

    @field_validator("storage_root")
    @classmethod
    def _absolute_storage_root(cls, value: Path) -> Path:
        return Path(os.path.abspath(value.expanduser()))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build the process-wide settings once, at startup."""
    return Settings()
