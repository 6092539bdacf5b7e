import os
from minio import Minio
from minio.error import S3Error
from dotenv import load_dotenv
from io import BytesIO
import logging as log
from typing import Optional
from datetime import timedelta
import time
import uuid

load_dotenv()

DEFAULT_MAX_BYTES = 50 * 1024 * 1024


class ObjectTooLargeError(ValueError):
    def __init__(self, message: str, limit: int = DEFAULT_MAX_BYTES):
        super().__init__(message)
        self.limit = limit


def generate_file_key(prefix: str = "annotated", ext: str = ".jpg") -> str:
    ts = int(time.time() * 1000)
    return f"{prefix}_{ts}_{uuid.uuid4().hex[:8]}{ext}"


class MinioService:
    def __init__(self, bucket_name: Optional[str] = None, client: Optional[Minio] = None):
        self.endpoint = os.getenv("MINIO_ENDPOINT", "localhost")
        self.port = int(os.getenv("MINIO_PORT", 9000))
        self.use_ssl = os.getenv("MINIO_USE_SSL", "false").lower() == "true"
        self.access_key = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
        self.secret_key = os.getenv("MINIO_SECRET_KEY", "minioadmin")
        self.bucket_name = bucket_name or os.getenv("MINIO_BUCKET", "annotated-images")
        self.max_bytes = int(os.getenv("STORAGE_MAX_BYTES", DEFAULT_MAX_BYTES))
        self._bucket_ready = False

        self.client = client or Minio(
            f"{self.endpoint}:{self.port}",
            access_key=self.access_key,
            secret_key=self.secret_key,
            secure=self.use_ssl
        )

        log.info("MinIO client for %s:%s, SSL: %s, bucket: %s", self.endpoint, self.port, self.use_ssl, self.bucket_name)

    def _ensure_bucket(self):
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket_name):
            log.info("Creating bucket %s", self.bucket_name)
            self.client.make_bucket(self.bucket_name)
        self._bucket_ready = True

    def upload_image(self, file_name: str, data: bytes, content_type: str = "image/jpeg") -> str:
        if len(data) > self.max_bytes:
            raise ObjectTooLargeError(f"{file_name} is {len(data)} bytes, limit is {self.max_bytes}", self.max_bytes)

        try:
            self._ensure_bucket()
            self.client.put_object(
                self.bucket_name,
                file_name,
                BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            log.error("upload_image error for %s: %s", file_name, e)
            if e.code == "EntityTooLarge":
                raise ObjectTooLargeError(str(e), self.max_bytes) from e
            raise
        return file_name

    def get_image(self, file_name: str) -> bytes:
        resp = None
        try:
            resp = self.client.get_object(self.bucket_name, file_name)
            return resp.read()
        except S3Error as e:
            log.error("get_image error for %s: %s", file_name, e)
            raise
        finally:
            if resp is not None:
                resp.close()
                resp.release_conn()

    def remove_image(self, file_name: str) -> None:
        try:
            self.client.remove_object(self.bucket_name, file_name)
        except S3Error as e:
            log.error("remove_image error for %s: %s", file_name, e)
            raise

    def get_url(
        self,
        file_key: Optional[str],
        expires_in: int = 60 * 60 * 24,
    ) -> str:
        if not file_key:
            raise ValueError("File key is required")

        try:
            return self.client.presigned_get_object(
                self.bucket_name,
                file_key,
                expires=timedelta(seconds=expires_in),
                response_headers={
                    "response-content-disposition": f'inline; filename="{file_key}"',
                    "response-content-type": "image/jpeg",
                },
            )
        except S3Error as e:
            log.error("get_url error: %s", e)
            raise
