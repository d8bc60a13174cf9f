"""MIME and charset helpers for reconstructed content.

Sites declare their content properties as two-byte codes (``"tp"`` for
text/plain, ``"th"`` for text/html, ...). These helpers translate the codes
and decode text payloads for collaborators such as markup rewriters. They are
stateless and are not part of the protocol client's correctness contract.
"""

from __future__ import annotations

from typing import Dict, Optional, Union

__all__ = [
    "MIME_CODES",
    "CHARSET_CODES",
    "normalize_code",
    "mime_type_from_code",
    "is_text_content_type",
    "decode_text",
    "decode_content",
]

MIME_CODES: Dict[str, str] = {
    "0x7470": "text/plain",
    "0x7468": "text/html",
    "0x7463": "text/css",
    "0x746d": "text/markdown",
    "0x616a": "application/javascript",
    "0x616f": "application/json",
    "0x6178": "application/xml",
    "0x6973": "image/svg+xml",
    "0x6970": "image/png",
    "0x696a": "image/jpeg",
    "0x6967": "image/gif",
    "0x6977": "image/webp",
    "0x6978": "image/x-icon",
    "0x6170": "application/pdf",
    "0x6177": "application/wasm",
}

CHARSET_CODES: Dict[str, str] = {
    "0x7538": "utf-8",
    "0x7536": "utf-16",
    "0x6173": "ascii",
    "0x6c31": "latin-1",
}

_TEXT_MIME_TYPES = frozenset(
    {
        "text/plain",
        "text/html",
        "text/css",
        "text/markdown",
        "application/javascript",
        "application/json",
        "application/xml",
        "image/svg+xml",
    }
)


def normalize_code(code: Union[str, bytes, None]) -> Optional[str]:
    """Return a two-byte property code as lowercase ``0x`` hex, or ``None``."""

    if code is None:
        return None
    if isinstance(code, (bytes, bytearray)):
        if len(code) != 2:
            return None
        return "0x" + bytes(code).hex()
    text = code.strip().lower()
    if text.startswith("0x") and len(text) == 6:
        return text
    return None


def mime_type_from_code(code: Union[str, bytes, None]) -> Optional[str]:
    normalized = normalize_code(code)
    if normalized is None:
        return None
    return MIME_CODES.get(normalized)


def is_text_content_type(mime: Union[str, bytes, None]) -> bool:
    """Return True when ``mime`` (a property code or a MIME string) is textual."""

    if mime is None:
        return False
    resolved = mime_type_from_code(mime)
    if resolved is None and isinstance(mime, str):
        resolved = mime.split(";", 1)[0].strip().lower()
    if resolved is None:
        return False
    return resolved in _TEXT_MIME_TYPES or resolved.startswith("text/")


def decode_text(data: bytes, charset: Union[str, bytes, None] = None) -> str:
    normalized = normalize_code(charset)
    encoding = CHARSET_CODES.get(normalized or "", "utf-8")
    return data.decode(encoding, errors="replace")


def decode_content(
    data: bytes,
    mime: Union[str, bytes, None],
    charset: Union[str, bytes, None] = None,
) -> Union[str, bytes]:
    """Decode ``data`` to ``str`` for text MIME types; return other payloads unchanged."""

    if is_text_content_type(mime):
        return decode_text(data, charset)
    return data
