import logging
import re
import uuid
from typing import Callable, Optional

import boto3
from botocore.config import Config

from app.config import Settings, settings

logger = logging.getLogger("uploads")

UPLOAD_PREFIX = "chat-uploads"

_unsafe = re.compile(r"[^A-Za-z0-9._-]+")


class StorageNotConfigured(RuntimeError):
    pass


def safe_filename(name: Optional[str]) -> str:
    name = (name or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _unsafe.sub("_", name).strip("._")
    return name[:120] or "file"


class MediaStorage:
    """S3-compatible object storage (AWS S3, Cloudflare R2, MinIO) for chat attachments."""

    def __init__(self, config: Settings, client_factory: Callable[[Settings], object] = None):
        self.config = config
        self.client_factory = client_factory or self._default_client
        self._client = None

    @staticmethod
    def _default_client(config: Settings):
        return boto3.client(
            "s3",
            endpoint_url=config.MEDIA_ENDPOINT_URL,
            aws_access_key_id=config.MEDIA_ACCESS_KEY_ID,
            aws_secret_access_key=config.media_secret_plain,
            config=Config(signature_version="s3v4"),
        )

    def is_configured(self) -> bool:
        c = self.config
        return bool(c.MEDIA_BUCKET and c.MEDIA_ACCESS_KEY_ID and c.MEDIA_SECRET_ACCESS_KEY)

    def _get_client(self):
        if self._client is None:
            self._client = self.client_factory(self.config)
        return self._client

    def public_url(self, key: str) -> str:
        base = self.config.MEDIA_PUBLIC_BASE_URL
        if base:
            return f"{base.rstrip('/')}/{key}"
        if self.config.MEDIA_ENDPOINT_URL:
            return f"{self.config.MEDIA_ENDPOINT_URL.rstrip('/')}/{self.config.MEDIA_BUCKET}/{key}"
        return f"https://{self.config.MEDIA_BUCKET}.s3.amazonaws.com/{key}"

    def upload(self, data: bytes, filename: Optional[str], content_type: Optional[str]) -> dict:
        if not self.is_configured():
            raise StorageNotConfigured("Media storage is not configured")

        key = f"{UPLOAD_PREFIX}/{uuid.uuid4()}-{safe_filename(filename)}"
        params = {
            "Bucket": self.config.MEDIA_BUCKET,
            "Key": key,
            "Body": data,
            "ContentType": content_type or "application/octet-stream",
        }
        self._get_client().put_object(**params)
        logger.info("[MediaStorage] Stored %s (%d bytes)", key, len(data))
        return {"url": self.public_url(key), "key": key, "content_type": content_type, "size": len(data)}


media_storage = MediaStorage(settings)


def get_media_storage() -> MediaStorage:
    return media_storage
