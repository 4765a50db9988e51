from pathlib import Path

from pydantic import BaseModel, ConfigDict


class StoredObject(BaseModel):
    """Value object describing a blob that was published under its final path."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int
