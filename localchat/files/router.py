"""FastAPI router for blob upload and download."""
import logging
from typing import Optional

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from .schemas import FILES_URL_PREFIX, StoredBlob
from .service import BlobStore, BlobTooLargeError, EmptyBlobError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


@router.post("/upload", response_model=StoredBlob)
async def upload_file(file: Optional[UploadFile] = File(None)):
    """Store an uploaded file and return where it can be downloaded.

    The response body is what clients send along in a ``file message``.

    Returns:
        StoredBlob on success, ``400`` if no file was sent, ``413`` if it
        exceeds the size limit.
    """
    if file is None:
        return JSONResponse({"error": "No file uploaded"}, status_code=400)

    service = BlobStore.get_instance()
    try:
        content = await file.read()
        stored = service.store(
            content,
            original_name=file.filename or "unnamed",
            mime_type=file.content_type or "application/octet-stream",
        )
    except EmptyBlobError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except BlobTooLargeError as e:
        logger.warning(f"[Files] Rejected upload {file.filename}: {e}")
        return JSONResponse({"error": str(e)}, status_code=413)
    except OSError as e:
        logger.error(f"[Files] Upload failed: {e}")
        return JSONResponse({"error": f"Upload failed: {e}"}, status_code=500)
    finally:
        await file.close()

    logger.info(
        f"[Files] Uploaded {stored.originalName} ({stored.size} bytes) as {stored.filename}"
    )
    return stored


@router.get(FILES_URL_PREFIX + "/{storage_id}")
async def download_file(storage_id: str):
    """Serve a previously stored blob. No authentication."""
    service = BlobStore.get_instance()

    metadata = service.get_blob(storage_id)
    if not metadata:
        return JSONResponse({"error": "File not found"}, status_code=404)

    file_path = service.get_blob_path(storage_id)
    if not file_path:
        return JSONResponse({"error": "File not found on disk"}, status_code=404)

    return FileResponse(
        path=file_path,
        filename=metadata.original_name,
        media_type=metadata.mime_type,
    )
