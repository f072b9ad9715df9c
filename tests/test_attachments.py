"""Tests for attachment resolution and validation."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from app.models.letter import EmbeddedAttachment, UrlAttachment
from app.services.attachments import AttachmentError, resolve_attachment, resolve_attachments, validate_embedded


def png_data_url(size: int = 4) -> str:
    output = BytesIO()
    Image.new("RGB", (size, size), color=(200, 30, 30)).save(output, format="PNG")
    return "data:image/png;base64," + base64.b64encode(output.getvalue()).decode()


def test_tagged_url_attachment():
    attachment = resolve_attachment({"kind": "url", "data": "https://example.com/tree.jpg"})
    assert attachment == UrlAttachment(data="https://example.com/tree.jpg")


def test_legacy_uploaded_shape_becomes_embedded():
    data = png_data_url()
    attachment = resolve_attachment({"type": "uploaded", "data": data, "filename": "tree.png"})
    assert isinstance(attachment, EmbeddedAttachment)
    assert attachment.filename == "tree.png"


def test_legacy_bare_strings():
    assert isinstance(resolve_attachment("https://example.com/a.png"), UrlAttachment)
    assert isinstance(resolve_attachment(png_data_url()), EmbeddedAttachment)


def test_relative_url_rejected():
    with pytest.raises(AttachmentError):
        resolve_attachment({"kind": "url", "data": "/images/tree.jpg"})


def test_unknown_kind_rejected():
    with pytest.raises(AttachmentError):
        resolve_attachment({"kind": "audio", "data": "https://example.com/a.mp3"})


def test_embedded_must_be_image_or_video():
    with pytest.raises(AttachmentError):
        validate_embedded("data:text/plain;base64," + base64.b64encode(b"hello").decode())


def test_embedded_size_ceiling():
    payload = base64.b64encode(b"\0" * 2048).decode()
    with pytest.raises(AttachmentError):
        validate_embedded("data:video/mp4;base64," + payload, max_bytes=1024)
    assert validate_embedded("data:video/mp4;base64," + payload, max_bytes=4096)


def test_embedded_image_must_decode():
    garbage = base64.b64encode(b"definitely not a png").decode()
    with pytest.raises(AttachmentError):
        validate_embedded("data:image/png;base64," + garbage)


def test_embedded_image_over_pixel_limit_is_rejected(monkeypatch):
    data = png_data_url(size=16)
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 4)
    with pytest.raises(AttachmentError):
        validate_embedded(data)


def test_embedded_invalid_base64():
    with pytest.raises(AttachmentError):
        validate_embedded("data:image/png;base64,@@@@")


def test_resolve_without_validation_keeps_stored_shapes():
    stored = [{"type": "url", "data": "not a url"}, {"kind": "embedded", "data": "data:image/png;base64,AAAA"}]
    resolved = resolve_attachments(stored, validate=False)
    assert [a.kind for a in resolved] == ["url", "embedded"]
