# storage.py
"""
Object storage for uploaded previews and saved generations.

Objects live under MEDIA_DIR and are publicly readable at `MEDIA_URL/<key>`,
the same way a hosted bucket hands out public URLs.
"""

import logging
import os
import uuid
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, UploadFile
from fastapi.responses import FileResponse

from fabricai.errors import InvalidRequest, StorageError
from fabricai.settings import settings

log = logging.getLogger(__name__)

router = APIRouter(tags=["Media"])

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class LocalObjectStorage:
    def __init__(self, root: str, public_url: str = "/media"):
        self.root = os.path.abspath(root)
        self.public_url = public_url.rstrip("/")

    def put(self, prefix: str, data: bytes, content_type: Optional[str] = "image/jpeg") -> str:
        """Stores `data` under a fresh key inside `prefix` and returns the key."""
        if not data:
            raise StorageError("Cannot upload an empty file.")

        extension = CONTENT_TYPE_EXTENSIONS.get((content_type or "").lower(), ".bin")
        key = f"{prefix.strip('/')}/{uuid.uuid4().hex}{extension}"
        path = self.path_for(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            log.error(f"Storage write failed for {key}: {e}")
            raise StorageError(f"Upload failed: {e}")

        log.info(f"Stored object {key} ({len(data)} bytes)")
        return key

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{key}"

    def path_for(self, key: str) -> str:
        if ".." in key.split("/") or key.startswith("/"):
            raise StorageError("Invalid object key", status_code=400)
        return os.path.join(self.root, *key.split("/"))

    def delete(self, key: Optional[str]) -> None:
        if not key:
            return
        try:
            os.remove(self.path_for(key))
        except FileNotFoundError:
            log.warning(f"Object {key} already removed")


async def read_image_upload(file: UploadFile, max_bytes: Optional[int] = None) -> Tuple[bytes, str]:
    """Reads an uploaded image, rejecting non-images, empty and oversized files."""
    content_type = (file.content_type or "").lower()
    if content_type not in CONTENT_TYPE_EXTENSIONS:
        raise InvalidRequest("Only JPEG, PNG and WebP images are allowed.")

    try:
        contents = await file.read()
    finally:
        await file.close()

    limit = max_bytes or settings.MAX_UPLOAD_BYTES
    if not contents:
        raise InvalidRequest("The uploaded file is empty.")
    if len(contents) > limit:
        raise InvalidRequest(f"The uploaded file exceeds {limit // (1024 * 1024)} MB.")
    return contents, content_type


def get_storage() -> LocalObjectStorage:
    """FastAPI dependency returning the configured object store."""
    return LocalObjectStorage(settings.MEDIA_DIR, settings.MEDIA_URL)


@router.get("/media/{key:path}")
async def get_object(key: str, storage: LocalObjectStorage = Depends(get_storage)):
    """Serves a stored object by key."""
    if ".." in key.split("/"):
        raise HTTPException(status_code=400, detail="Invalid filename")

    file_path = storage.path_for(key)
    if not os.path.isfile(file_path):
        raise HTTPException(status_code=404, detail="Image not found")

    return FileResponse(file_path)
