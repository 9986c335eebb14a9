"""
Stored file endpoints.

Uploads give inputs their storage keys; the file route serves inputs and
produced artifacts by key, the URLs handed out in upload responses and
job results.
"""

import logging
import os

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from ..storage.files import FileStore, UnsafeStorageKeyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])

UPLOAD_CHUNK_BYTES = 1024 * 1024


@router.post("/upload")
async def upload_file(request: Request, file: UploadFile = File(...)):
    """
    Store one uploaded file under uploads/.

    Returns:
        {key, url}: the storage key to pass to /api/video/create and the
        URL it is served from

    Raises:
        400: No file part in the form (request validation)
        413: File larger than the configured upload limit
        500: File could not be written
    """
    files: FileStore = request.app.state.file_store
    max_bytes = request.app.state.settings.max_upload_bytes

    ext = os.path.splitext(file.filename or "")[1]
    key = files.new_upload_key(ext)
    path = files.resolve(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"[Storage] Receiving upload {file.filename!r} as {key}")

    total = 0
    try:
        with open(path, "wb") as dst:
            while True:
                chunk = await file.read(UPLOAD_CHUNK_BYTES)
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File too large (max {max_bytes} bytes)",
                    )
                dst.write(chunk)
    except HTTPException:
        path.unlink(missing_ok=True)
        raise
    except OSError as e:
        path.unlink(missing_ok=True)
        logger.error(f"[Storage] Failed to save upload {key}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save upload")
    finally:
        await file.close()

    logger.info(f"[Storage] Upload stored: {key} ({total} bytes)")
    return {"key": key, "url": files.url_for(key)}


@router.get("/files/{key:path}")
async def get_file(key: str, request: Request, download: bool = False):
    """
    Serve one stored file.

    Args:
        key: Storage key, e.g. output/video_<id>.mp4
        download: Send as attachment instead of inline

    Raises:
        403: Key escapes the data directory
        404: No such file
    """
    files: FileStore = request.app.state.file_store
    try:
        path = files.resolve(key)
    except UnsafeStorageKeyError:
        raise HTTPException(status_code=403, detail="Forbidden")

    if not path.is_file():
        logger.info(f"[Storage] File not found: {key}")
        raise HTTPException(status_code=404, detail="Not Found")

    if download:
        return FileResponse(path, filename=path.name)
    return FileResponse(path)
