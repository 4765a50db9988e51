from pydantic import BaseModel, Field


class PutObjectResponse(BaseModel):
    """Response DTO returned once a blob has been published."""

    key: str = Field(..., description="Object key the blob was stored under")
    size_bytes: int = Field(..., description="Size of the stored blob in bytes")
