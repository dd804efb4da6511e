"""Blob upload and storage for shared files.

Files are written to a flat directory and tracked in DuckDB. Uploads are
limited to 50MB by default.
"""

from .schemas import BlobMetadata, StoredBlob
from .service import BlobStore, BlobTooLargeError, EmptyBlobError

__all__ = [
    "BlobMetadata",
    "BlobStore",
    "BlobTooLargeError",
    "EmptyBlobError",
    "StoredBlob",
]
