"""Object storage for member receipt images."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import boto3
from botocore.config import Config
from loguru import logger

from grc_api.core.settings import Settings, get_settings
from grc_api.domain.grc import ReceiptImage
from grc_api.services.errors import UpstreamError


@dataclass(slots=True)
class StoredReceiptImage:
    storage_key: str
    uploaded_at: datetime
    public_url: str | None


class ReceiptImageStorage:
    """Persist receipt images to S3-compatible storage."""

    def __init__(self, *, settings: Settings | None = None, client=None) -> None:
        self._settings = settings or get_settings()
        self._client = client if client is not None else self._build_storage_client()
        self._prefix = (self._settings.receipt_storage_prefix or "receipts").strip("/")
        base_url = (self._settings.receipt_storage_public_base_url or "").strip()
        self._public_base_url = base_url.rstrip("/") if base_url else ""

    @property
    def enabled(self) -> bool:
        return self._client is not None and bool(self._settings.receipt_storage_bucket)

    async def store(self, member_id: UUID, image: ReceiptImage, *, file_name: str | None = None) -> StoredReceiptImage | None:
        if not self.enabled:
            logger.warning("Receipt storage not configured; image not persisted", member_id=str(member_id))
            return None

        storage_key = self.build_storage_key(member_id, image, file_name)
        acl = (self._settings.receipt_storage_acl or "private").strip() or "private"
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._settings.receipt_storage_bucket,
                Key=storage_key,
                Body=image.payload,
                ContentType=image.content_type,
                ACL=acl,
            )
        except Exception as exc:
            logger.warning("Failed to upload receipt image", member_id=str(member_id), error=str(exc))
            raise UpstreamError("Failed to store receipt image") from exc

        return StoredReceiptImage(
            storage_key=storage_key,
            uploaded_at=datetime.now(timezone.utc),
            public_url=self.build_public_url(storage_key),
        )

    def build_storage_key(self, member_id: UUID, image: ReceiptImage, file_name: str | None) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        stem = (file_name or "receipt").rsplit(".", 1)[0]
        name = f"{self._sanitize(stem)}.{image.extension}"
        parts = [self._prefix, str(member_id), f"{timestamp}-{name}"]
        return "/".join(part.strip("/") for part in parts if part)

    def build_public_url(self, storage_key: str) -> str | None:
        if not self._public_base_url:
            return None
        return f"{self._public_base_url}/{storage_key.lstrip('/')}"

    def _build_storage_client(self):
        if not self._settings.receipt_storage_bucket:
            return None
        config = None
        if self._settings.receipt_storage_force_path_style:
            config = Config(s3={"addressing_style": "path"})
        return boto3.client(
            "s3",
            region_name=self._settings.receipt_storage_region,
            endpoint_url=self._settings.receipt_storage_endpoint or None,
            config=config,
        )

    @staticmethod
    def _sanitize(value: str) -> str:
        sanitized = re.sub(r"[^a-zA-Z0-9._-]+", "-", value.strip()).strip("-")
        return sanitized or "receipt"
