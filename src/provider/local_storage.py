import os
import tempfile
import logging as log
from typing import Optional

from dotenv import load_dotenv

from provider.minIO import DEFAULT_MAX_BYTES, ObjectTooLargeError

load_dotenv()

URL_PREFIX = "/uploads"


class LocalStorageService:
    """
    Disk-backed image store with the same surface as MinioService.
    Files are served by the app under /uploads.
    """

    def __init__(self, directory: Optional[str] = None):
        self.directory = (
            directory
            or os.getenv("LOCAL_STORAGE_DIR")
            or os.path.join(tempfile.gettempdir(), "ecoscan_images")
        )
        self.max_bytes = int(os.getenv("STORAGE_MAX_BYTES", DEFAULT_MAX_BYTES))
        os.makedirs(self.directory, exist_ok=True)
        log.info("Local image store at %s", self.directory)

    def _path(self, file_name: str) -> str:
        name = os.path.basename(file_name)
        if not name or name != file_name:
            raise ValueError(f"Invalid file name: {file_name!r}")
        return os.path.join(self.directory, name)

    def upload_image(self, file_name: str, data: bytes, content_type: str = "image/jpeg") -> str:
        if len(data) > self.max_bytes:
            raise ObjectTooLargeError(f"{file_name} is {len(data)} bytes, limit is {self.max_bytes}", self.max_bytes)
        with open(self._path(file_name), "wb") as fh:
            fh.write(data)
        return file_name

    def get_image(self, file_name: str) -> bytes:
        with open(self._path(file_name), "rb") as fh:
            return fh.read()

    def remove_image(self, file_name: str) -> None:
        os.remove(self._path(file_name))

    def get_url(self, file_key: Optional[str]) -> str:
        if not file_key:
            raise ValueError("File key is required")
        return f"{URL_PREFIX}/{file_key}"
