"""MIME/charset helpers."""

from __future__ import annotations

import pytest

from WTTPGateway.ResourceFetch.content import (
    decode_content,
    decode_text,
    is_text_content_type,
    mime_type_from_code,
    normalize_code,
)


@pytest.mark.parametrize(
    ("mime", "expected"),
    [
        ("0x7468", True),
        ("0x7470", True),
        (b"th", True),
        ("0x6970", False),
        ("text/csv", True),
        ("application/json; charset=utf-8", True),
        ("application/octet-stream", False),
        (None, False),
    ],
)
def test_is_text_content_type(mime, expected):
    assert is_text_content_type(mime) is expected


def test_code_helpers():
    assert normalize_code(b"tp") == "0x7470"
    assert normalize_code(" 0X7468 ") == "0x7468"
    assert normalize_code("text/html") is None
    assert normalize_code(b"abc") is None
    assert mime_type_from_code("0x746d") == "text/markdown"
    assert mime_type_from_code("0xffff") is None


def test_decode_text_uses_declared_charset():
    assert decode_text("café".encode("latin-1"), "0x6c31") == "café"
    assert decode_text("café".encode("utf-8")) == "café"
    assert decode_text(b"\xff\xfe", "0x7538") == "\ufffd\ufffd"


def test_decode_content_leaves_binary_untouched():
    assert decode_content(b"<p>x</p>", "0x7468") == "<p>x</p>"
    assert decode_content(b"\x89PNG", "0x6970") == b"\x89PNG"
