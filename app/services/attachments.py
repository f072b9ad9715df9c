from PIL import Image, UnidentifiedImageError
from io import BytesIO
from typing import Any, List
from urllib.parse import urlparse
import base64
import binascii
import re

from app.config import MAX_EMBEDDED_BYTES
from app.models.letter import AttachmentKind, UrlAttachment, EmbeddedAttachment

DATA_URL_PATTERN = re.compile(r"^data:(?P<media_type>[\w.+-]+/[\w.+-]+)(?P<params>(;[\w.+-]+=[\w.+-]+)*);base64,(?P<payload>.*)$", re.DOTALL)
ALLOWED_MEDIA_PREFIXES = ("image/", "video/")

# Attachment shapes written before the tagged variant existed
_LEGACY_KINDS = {
    "url": AttachmentKind.URL,
    "uploaded": AttachmentKind.EMBEDDED,
    "embedded": AttachmentKind.EMBEDDED,
}

class AttachmentError(ValueError):
    pass


def validate_url(data: str) -> str:
    parsed = urlparse(data)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise AttachmentError("Attachment URL must be an absolute http(s) URL")
    return data

def validate_embedded(data: str, max_bytes: int = MAX_EMBEDDED_BYTES) -> str:
    match = DATA_URL_PATTERN.match(data)
    if not match:
        raise AttachmentError("Embedded attachment must be a base64 data URL")

    media_type = match.group("media_type").lower()
    if not media_type.startswith(ALLOWED_MEDIA_PREFIXES):
        raise AttachmentError(f"Unsupported attachment type: {media_type}")

    payload = match.group("payload")
    # Reject oversize payloads before decoding them
    if len(payload) * 3 // 4 > max_bytes + 2:
        raise AttachmentError("Embedded attachment exceeds the size limit")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise AttachmentError("Embedded attachment is not valid base64")
    if len(raw) > max_bytes:
        raise AttachmentError("Embedded attachment exceeds the size limit")

    if media_type in _pillow_mime_types():
        try:
            Image.open(BytesIO(raw)).verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise AttachmentError(f"Embedded image could not be decoded: {e}")
    return data

def _pillow_mime_types() -> set:
    Image.init()
    return {mime.lower() for mime in Image.MIME.values()}


def resolve_attachment(raw: Any, validate: bool = True):
    """Resolve a stored or submitted attachment into its tagged variant.

    Accepts the tagged shape, the legacy ``{"type": "url"|"uploaded"}`` shape,
    and bare URL / data URL strings.
    """
    if isinstance(raw, (UrlAttachment, EmbeddedAttachment)):
        raw = raw.model_dump()

    filename = None
    if isinstance(raw, str):
        data = raw
        kind = AttachmentKind.EMBEDDED if raw.startswith("data:") else AttachmentKind.URL
    elif isinstance(raw, dict):
        data = raw.get("data")
        filename = raw.get("filename")
        tag = raw.get("kind", raw.get("type"))
        kind = _LEGACY_KINDS.get(tag)
        if kind is None:
            raise AttachmentError(f"Unknown attachment kind: {tag!r}")
    else:
        raise AttachmentError("Attachment must be an object or a string")

    if not isinstance(data, str) or not data:
        raise AttachmentError("Attachment data is required")

    if kind == AttachmentKind.URL:
        if validate:
            validate_url(data)
        return UrlAttachment(data=data)

    if validate:
        validate_embedded(data)
    return EmbeddedAttachment(data=data, filename=filename)

def resolve_attachments(items: List[Any], validate: bool = True) -> list:
    return [resolve_attachment(item, validate=validate) for item in items or []]
