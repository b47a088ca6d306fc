from __future__ import annotations

import base64
import binascii
import hashlib
import math
import re
from dataclasses import dataclass

SUPPORTED_IMAGE_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
    "image/heif",
)

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
    "image/heif": "heif",
}

_DATA_URI = re.compile(r"^data:(image/\w+);base64,")


class ReceiptImageError(ValueError):
    """Raised for unsupported or undecodable receipt images."""


class ReceiptImageTooLarge(ReceiptImageError):
    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        super().__init__(
            f"Image too large: {size_bytes / 1024 / 1024:.1f}MB "
            f"(max {max_bytes / 1024 / 1024:.0f}MB)"
        )
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


@dataclass(frozen=True, slots=True)
class ReceiptImage:
    content_type: str
    base64_data: str
    payload: bytes

    @property
    def extension(self) -> str:
        return extension_for(self.content_type)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.payload).hexdigest()


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type, "jpg")


def estimate_size(raw_base64: str) -> int:
    return math.ceil(len(raw_base64) * 0.75)


def parse_receipt_image(data: str, *, max_bytes: int) -> ReceiptImage:
    """Validate a base64 image (optionally a data URI) and decode it.

    Input without a data URI prefix is treated as JPEG. Size is estimated from
    the base64 length before decoding so oversized uploads fail fast.
    """

    match = _DATA_URI.match(data)
    if match:
        content_type = match.group(1)
        if content_type not in SUPPORTED_IMAGE_TYPES:
            raise ReceiptImageError(f"Unsupported image type: {content_type}")
        raw = data[match.end():]
    else:
        content_type = "image/jpeg"
        raw = data

    size = estimate_size(raw)
    if size > max_bytes:
        raise ReceiptImageTooLarge(size, max_bytes)

    try:
        payload = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ReceiptImageError("Image data is not valid base64") from exc
    if not payload:
        raise ReceiptImageError("Image data is empty")
    return ReceiptImage(content_type=content_type, base64_data=raw, payload=payload)
