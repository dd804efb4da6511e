"""Blob storage service for shared files.

Blobs are written to a flat directory (``files.storage_dir``) under a
generated storage id, and their metadata is recorded in DuckDB. The chat
core never touches this module directly: clients upload first, then put the
returned URL into a ``file message``.
"""
import logging
import random
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import duckdb

from .schemas import MAX_FILE_SIZE_BYTES, BlobMetadata, StoredBlob, blob_url

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class EmptyBlobError(ValueError):
    """Raised when an upload carries no payload."""


class BlobTooLargeError(ValueError):
    """Raised when an upload exceeds the configured size limit."""


def sanitize_filename(name: str) -> str:
    """Reduce a client-supplied filename to a safe path segment."""
    base = Path(name.replace("\\", "/")).name
    safe = _UNSAFE_CHARS.sub("_", base).lstrip(".")
    return safe or "unnamed"


class BlobStore:
    """Service for storing and serving uploaded blobs."""

    _instance: Optional["BlobStore"] = None

    def __init__(
        self,
        storage_dir: str,
        db_path: str = ":memory:",
        max_size_bytes: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        """Initialize the blob store and create its directory and schema."""
        self._storage_dir = Path(storage_dir)
        self._db_path = db_path
        self.max_size_bytes = max_size_bytes

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._ensure_storage_dir()
        self._initialize_db()

    @classmethod
    def get_instance(
        cls,
        storage_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_size_bytes: Optional[int] = None,
    ) -> "BlobStore":
        """Get or create the singleton instance.

        Arguments are only used when the instance is first created; missing
        ones fall back to the application config.
        """
        if cls._instance is None:
            if storage_dir is None or db_path is None or max_size_bytes is None:
                from localchat.config import get_config
                files = get_config().files
                storage_dir = storage_dir or files.storage_dir
                db_path = db_path or files.metadata_db
                max_size_bytes = max_size_bytes or files.max_file_size_bytes
            cls._instance = cls(storage_dir, db_path, max_size_bytes)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _ensure_storage_dir(self) -> None:
        self._storage_dir.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS blob_metadata (
                storage_id VARCHAR PRIMARY KEY,
                original_name VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                size_bytes BIGINT NOT NULL,
                uploaded_at TIMESTAMP NOT NULL
            )
        """)

    def _new_storage_id(self, original_name: str) -> str:
        suffix = random.randint(0, 10**9)
        return f"{int(time.time() * 1000)}-{suffix}-{sanitize_filename(original_name)}"

    def store(
        self,
        content: Optional[bytes],
        original_name: str,
        mime_type: str = "application/octet-stream",
    ) -> StoredBlob:
        """Write a blob to disk and record its metadata.

        Args:
            content: Blob bytes.
            original_name: Filename as uploaded.
            mime_type: MIME type reported by the client.

        Returns:
            StoredBlob with the storage id and download URL.

        Raises:
            EmptyBlobError: If there is no content.
            BlobTooLargeError: If content exceeds the size limit.
        """
        if content is None:
            raise EmptyBlobError("No file uploaded")

        size_bytes = len(content)
        if size_bytes > self.max_size_bytes:
            raise BlobTooLargeError(
                f"File size ({size_bytes} bytes) exceeds limit "
                f"({self.max_size_bytes} bytes)"
            )

        storage_id = self._new_storage_id(original_name)
        file_path = self._storage_dir / storage_id
        file_path.write_bytes(content)
        logger.info(f"[Files] Saved blob: {file_path} ({size_bytes} bytes)")

        metadata = BlobMetadata(
            storage_id=storage_id,
            original_name=original_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
        )
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO blob_metadata
            (storage_id, original_name, mime_type, size_bytes, uploaded_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [
                metadata.storage_id,
                metadata.original_name,
                metadata.mime_type,
                metadata.size_bytes,
                datetime.fromtimestamp(metadata.uploaded_at),
            ]
        )

        return StoredBlob(
            filename=storage_id,
            originalName=original_name,
            size=size_bytes,
            url=blob_url(storage_id),
            mimeType=mime_type,
        )

    def get_blob(self, storage_id: str) -> Optional[BlobMetadata]:
        """Get blob metadata by storage id."""
        conn = self._get_connection()
        result = conn.execute(
            """
            SELECT storage_id, original_name, mime_type, size_bytes, uploaded_at
            FROM blob_metadata
            WHERE storage_id = ?
            """,
            [storage_id]
        ).fetchone()

        if not result:
            return None

        return BlobMetadata(
            storage_id=result[0],
            original_name=result[1],
            mime_type=result[2],
            size_bytes=result[3],
            uploaded_at=result[4].timestamp() if result[4] else 0,
        )

    def get_blob_path(self, storage_id: str) -> Optional[Path]:
        """Get the on-disk path of a stored blob, if it still exists."""
        if self.get_blob(storage_id) is None:
            return None
        file_path = self._storage_dir / storage_id
        if not file_path.is_file():
            return None
        return file_path

    def serve(self, storage_id: str) -> Optional[bytes]:
        """Read a stored blob's bytes."""
        file_path = self.get_blob_path(storage_id)
        if file_path is None:
            return None
        return file_path.read_bytes()
