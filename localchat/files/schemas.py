"""Pydantic schemas for blob uploads.

- BlobMetadata: everything recorded in DuckDB about a stored blob
- StoredBlob: response of ``POST /upload``, also what clients copy into a
  ``file message``
"""
import time
from typing import Optional

from pydantic import BaseModel, Field

# Upload size limit: 50MB
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024

# Route prefix blobs are served from
FILES_URL_PREFIX = "/files"


class BlobMetadata(BaseModel):
    """Metadata for a stored blob.

    ``storage_id`` doubles as the filename on disk and the last segment of
    the download URL.
    """
    storage_id: str = Field(..., description="Unique, URL-safe blob id")
    original_name: str = Field(..., description="Filename as uploaded")
    mime_type: str = Field(default="application/octet-stream", description="MIME type")
    size_bytes: int = Field(..., description="Blob size in bytes")
    uploaded_at: float = Field(default_factory=time.time, description="Upload timestamp")


class StoredBlob(BaseModel):
    """Response after a successful upload."""
    filename: str = Field(..., description="Storage id")
    originalName: str = Field(..., description="Filename as uploaded")
    size: int = Field(..., description="Size in bytes")
    url: str = Field(..., description="Relative download URL")
    mimeType: Optional[str] = Field(None, description="MIME type reported by the client")


def blob_url(storage_id: str) -> str:
    return f"{FILES_URL_PREFIX}/{storage_id}"
