# Overview: Validation of product image references (remote URLs or inline data URIs).

import base64
import binascii
import re
from urllib.parse import urlparse


ALLOWED_IMAGE_TYPES = ("png", "jpeg", "jpg", "gif", "webp")

# Inline images are stored in the products row; keep them small
MAX_INLINE_IMAGE_BYTES = 2 * 1024 * 1024

DATA_URI_PATTERN = re.compile(r"^data:image/(?P<kind>[a-zA-Z0-9.+-]+);base64,(?P<data>.*)$", re.DOTALL)


class ImageValidationError(ValueError):
    pass


def is_data_uri(value: str) -> bool:
    return value.startswith("data:")


def validate_image_reference(value: str | None) -> str | None:
    """
    Accept an http(s) URL or a data:image/<png|jpeg|gif|webp>;base64 URI.

    Returns the normalized value (None/blank -> None).
    Raises ImageValidationError for anything else.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    if is_data_uri(value):
        match = DATA_URI_PATTERN.match(value)
        if not match:
            raise ImageValidationError("Image data URI must be data:image/<type>;base64,...")
        kind = match.group("kind").lower()
        if kind not in ALLOWED_IMAGE_TYPES:
            raise ImageValidationError(f"Unsupported image type: {kind}")
        try:
            raw = base64.b64decode(match.group("data"), validate=True)
        except (binascii.Error, ValueError):
            raise ImageValidationError("Image data is not valid base64")
        if not raw:
            raise ImageValidationError("Image data is empty")
        if len(raw) > MAX_INLINE_IMAGE_BYTES:
            raise ImageValidationError(
                f"Inline image exceeds {MAX_INLINE_IMAGE_BYTES // (1024 * 1024)} MB"
            )
        return value

    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ImageValidationError("image_url must be an http(s) URL or an image data URI")
    return value
