"""
File storage for prescriptions and order attachments.
Files are kept on local disk under UPLOAD_DIR and served from MEDIA_URL_PREFIX.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from ..config import settings
from ..errors import ValidationFailed
from ..utils.helpers import generate_file_id, sanitize_filename

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class LocalFileStorage:
    name = "local"

    def __init__(self, base_dir: str, url_prefix: str):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def check_type(self, upload: UploadFile):
        if upload.content_type not in settings.upload_types_list:
            raise ValidationFailed(
                "Invalid file type. Only JPEG, PNG and PDF files are allowed.",
                errors=[{"field": "file", "message": f"Unsupported type {upload.content_type}"}]
            )

    async def read_limited(self, upload: UploadFile) -> bytes:
        """Read the upload in chunks, stopping as soon as it passes MAX_UPLOAD_SIZE"""
        limit = settings.MAX_UPLOAD_SIZE
        buffer = bytearray()
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > limit:
                max_mb = limit / (1024 * 1024)
                raise ValidationFailed(f"File too large. Maximum size is {max_mb:g}MB.")
        if not buffer:
            raise ValidationFailed("Uploaded file is empty")
        return bytes(buffer)

    async def store(self, upload: UploadFile, folder: str = "prescriptions") -> dict:
        """Write the upload to disk and return {url, public_id, storage, size, ...}"""
        self.check_type(upload)
        content = await self.read_limited(upload)

        original_name = sanitize_filename(upload.filename or "upload")
        file_name = f"{generate_file_id()}_{original_name}"
        public_id = f"{folder}/{file_name}"

        target_dir = self.base_dir / folder
        os.makedirs(target_dir, exist_ok=True)
        with open(target_dir / file_name, "wb") as f:
            f.write(content)

        logger.info(f"Stored upload {public_id} ({len(content)} bytes)")

        return {
            "url": f"{self.url_prefix}/{public_id}",
            "public_id": public_id,
            "storage": self.name,
            "file_name": file_name,
            "original_name": original_name,
            "content_type": upload.content_type,
            "size": len(content)
        }

    def delete(self, public_id: Optional[str]) -> bool:
        if not public_id:
            return False
        path = (self.base_dir / public_id).resolve()
        # Never delete outside the upload directory
        if self.base_dir.resolve() not in path.parents:
            raise ValidationFailed("Invalid file reference")
        if path.exists():
            path.unlink()
            return True
        return False

    def delete_quietly(self, public_id: Optional[str]):
        """Best-effort cleanup, failures are logged and ignored"""
        try:
            self.delete(public_id)
        except Exception as e:
            logger.warning(f"Failed to delete stored file {public_id}: {e}")


def get_file_storage() -> LocalFileStorage:
    return LocalFileStorage(settings.UPLOAD_DIR, settings.MEDIA_URL_PREFIX)
