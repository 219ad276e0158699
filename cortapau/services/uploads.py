"""Local-disk storage for base64 photo uploads (MVP media boundary)."""
import base64
import binascii
import logging
import os
import uuid
from typing import Optional
from cortapau import config
from cortapau.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads/"

_EXTENSIONS = {
    "image/png": ".png",
    "image/webp": ".webp",
}


def extension_for(mime: str) -> str:
    return _EXTENSIONS.get(mime, ".jpg")


class UploadStore:
    """Writes decoded uploads under a directory and serves them back by name."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = directory or config.UPLOADS_DIR

    def save_base64(self, image_base64: str, mime: str) -> str:
        """Store the image and return its URL path (`/uploads/<name>`)."""
        try:
            data = base64.b64decode(image_base64, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("imagemBase64 is not valid base64.")

        os.makedirs(self.directory, exist_ok=True)
        file_name = f"{uuid.uuid4()}{extension_for(mime)}"
        with open(os.path.join(self.directory, file_name), "wb") as f:
            f.write(data)

        logger.info("Stored upload %s (%d bytes)", file_name, len(data))
        return URL_PREFIX + file_name

    def path_for(self, file_name: str) -> str:
        """Absolute path of a stored upload; NotFoundError for unknown or unsafe names."""
        if not file_name or os.path.basename(file_name) != file_name or file_name.startswith("."):
            raise NotFoundError("File not found.")
        path = os.path.join(self.directory, file_name)
        if not os.path.isfile(path):
            raise NotFoundError("File not found.")
        return path

    def size_of(self, url: str) -> Optional[int]:
        """Byte size when `url` points at one of our uploads, else None."""
        if not url.startswith(URL_PREFIX):
            return None
        try:
            return os.path.getsize(self.path_for(url[len(URL_PREFIX):]))
        except NotFoundError:
            return None
