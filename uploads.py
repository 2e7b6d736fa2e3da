"""
Storage for uploaded product and banner images.

Records keep an image *reference*: ``/uploads/<name>`` for files written to the
upload directory, a ``data:`` URI for inline storage, or any external URL an
admin pasted in. ``resolve`` turns a reference into something a browser can
fetch.
"""

import base64
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool

import config

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "/uploads/"
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


class ImageStore(ABC):
    def __init__(self, max_bytes: int = 5 * 1024 * 1024):
        self.max_bytes = max_bytes

    async def read_upload(self, upload: UploadFile) -> bytes:
        ext = os.path.splitext(upload.filename or "")[1].lower()
        if ext not in ALLOWED_EXTENSIONS or upload.content_type not in ALLOWED_CONTENT_TYPES:
            raise HTTPException(
                status_code=400,
                detail="Only image files (jpeg, jpg, png, gif, webp) are allowed",
            )
        data = await upload.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            raise HTTPException(status_code=400, detail="Image exceeds the upload size limit")
        return data

    @abstractmethod
    async def save(self, upload: UploadFile) -> str:
        """Store the upload and return the reference kept on the record."""

    def delete(self, ref: Optional[str]) -> bool:
        return False

    def resolve(self, ref: Optional[str]) -> Optional[str]:
        return ref or None


class DiskImageStore(ImageStore):
    """Writes uploads into a local directory served at ``/uploads``."""

    def __init__(self, upload_dir: str, public_base_url: str = "", max_bytes: int = 5 * 1024 * 1024):
        super().__init__(max_bytes=max_bytes)
        self.upload_dir = Path(upload_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def save(self, upload: UploadFile) -> str:
        data = await self.read_upload(upload)
        ext = os.path.splitext(upload.filename)[1].lower()
        name = f"{int(time.time() * 1000)}-{uuid4().hex[:9]}{ext}"
        await run_in_threadpool((self.upload_dir / name).write_bytes, data)
        logger.info("Stored upload %s (%d bytes)", name, len(data))
        return UPLOAD_PREFIX + name

    def path_for(self, ref: Optional[str]) -> Optional[Path]:
        if not ref or not ref.startswith(UPLOAD_PREFIX):
            return None
        return self.upload_dir / Path(ref).name

    def delete(self, ref: Optional[str]) -> bool:
        path = self.path_for(ref)
        if path is None or not path.exists():
            return False
        try:
            path.unlink()
        except OSError:
            logger.exception("Could not remove image file %s", path)
            return False
        logger.info("Removed image file %s", path.name)
        return True

    def resolve(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        if ref.startswith(UPLOAD_PREFIX):
            return f"{self.public_base_url}{ref}"
        return ref


class InlineImageStore(ImageStore):
    """Keeps uploads inside the record as ``data:`` URIs. Nothing touches disk."""

    async def save(self, upload: UploadFile) -> str:
        data = await self.read_upload(upload)
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{upload.content_type};base64,{encoded}"


def create_image_store(mode: Optional[str] = None) -> ImageStore:
    mode = (mode or config.IMAGE_STORAGE).lower()
    if mode == "inline":
        return InlineImageStore(max_bytes=config.MAX_UPLOAD_BYTES)
    if mode == "disk":
        return DiskImageStore(config.UPLOAD_DIR, config.PUBLIC_BASE_URL, config.MAX_UPLOAD_BYTES)
    raise ValueError(f"Unknown image storage: {mode}")
