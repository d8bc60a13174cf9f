"""ABI codec for the site, storage, and naming contract calls.

Each contract call is a 4-byte selector followed by the ABI-encoded
arguments. The site structures are nested tuples; the type strings below
spell them out once so encoders and decoders stay in sync:

    HEADRequest    (string path, uint256 ifModifiedSince, bytes32 ifNoneMatch)
    HEADResponse   (uint16 status, HeaderInfo, ResourceMetadata, bytes32 etag)
    LOCATERequest  (HEADRequest, Range(int256 start, int256 end))
    LOCATEResponse (HEADResponse, DataResource(bytes32[] dataPoints, uint256 totalChunks))

Encoding uses ``eth_abi``; selectors and hashing use ``eth_utils``.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from ..errors import BackendCallError
from ..models import (
    CacheControl,
    ChunkRange,
    CorsPolicy,
    HeaderInfo,
    Redirect,
    ResourceLocation,
    ResourceMetadata,
    ResourceProperties,
    ResponseHead,
)
from .base import HeadRequest

__all__ = [
    "HEAD_REQUEST",
    "HEAD_RESPONSE",
    "LOCATE_REQUEST",
    "LOCATE_RESPONSE",
    "SIGNATURES",
    "selector",
    "hex_to_bytes32",
    "bytes_to_hex",
    "encode_call",
    "encode_head_call",
    "encode_locate_call",
    "decode_head_response",
    "decode_locate_response",
    "decode_address",
    "decode_bytes",
    "encode_head_response",
    "encode_locate_response",
]

HEAD_REQUEST = "(string,uint256,bytes32)"
_CACHE_CONTROL = "(bool,uint8,string)"
_CORS_POLICY = "(uint16,string[],uint8,string)"
_REDIRECT = "(uint16,string)"
_HEADER_INFO = f"({_CACHE_CONTROL},{_CORS_POLICY},{_REDIRECT})"
_PROPERTIES = "(bytes2,bytes2,bytes2,bytes2)"
_METADATA = f"({_PROPERTIES},uint256,uint256,uint256,bytes32)"
HEAD_RESPONSE = f"(uint16,{_HEADER_INFO},{_METADATA},bytes32)"
_RANGE = "(int256,int256)"
LOCATE_REQUEST = f"({HEAD_REQUEST},{_RANGE})"
_DATA_RESOURCE = "(bytes32[],uint256)"
LOCATE_RESPONSE = f"({HEAD_RESPONSE},{_DATA_RESOURCE})"

SIGNATURES = {
    "HEAD": f"HEAD({HEAD_REQUEST})",
    "GET": f"GET({LOCATE_REQUEST})",
    "DPS": "DPS()",
    "readDataPoint": "readDataPoint(bytes32)",
    "resolver": "resolver(bytes32)",
    "owner": "owner(bytes32)",
    "addr": "addr(bytes32)",
}


def selector(name: str) -> bytes:
    return function_signature_to_4byte_selector(SIGNATURES[name])


def hex_to_bytes32(value: str) -> bytes:
    text = value[2:] if value.lower().startswith("0x") else value
    raw = bytes.fromhex(text)
    if len(raw) > 32:
        raise ValueError(f"value does not fit in bytes32: {value}")
    return raw.rjust(32, b"\x00")


def bytes_to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def encode_call(name: str, types: Sequence[str] = (), args: Sequence[Any] = ()) -> str:
    """Return the ``0x``-prefixed call data for ``name`` with ``args``."""

    payload = selector(name)
    if types:
        payload += encode(list(types), list(args))
    return bytes_to_hex(payload)


def _head_request_tuple(request: HeadRequest) -> Tuple[str, int, bytes]:
    return (request.path, request.if_modified_since, hex_to_bytes32(request.if_none_match))


def encode_head_call(request: HeadRequest) -> str:
    return encode_call("HEAD", [HEAD_REQUEST], [_head_request_tuple(request)])


def encode_locate_call(request: HeadRequest, chunk_range: ChunkRange) -> str:
    return encode_call(
        "GET",
        [LOCATE_REQUEST],
        [(_head_request_tuple(request), (chunk_range.start, chunk_range.end))],
    )


def _head_from_tuple(raw: Sequence[Any]) -> ResponseHead:
    status, header_info, metadata, etag = raw
    (cache_raw, cors_raw, redirect_raw) = header_info
    properties_raw, size, version, last_modified, header_hash = metadata
    return ResponseHead(
        status=int(status),
        header=HeaderInfo(
            cache=CacheControl(
                immutable=bool(cache_raw[0]), preset=int(cache_raw[1]), custom=cache_raw[2]
            ),
            cors=CorsPolicy(
                methods=int(cors_raw[0]),
                origins=tuple(cors_raw[1]),
                preset=int(cors_raw[2]),
                custom=cors_raw[3],
            ),
            redirect=Redirect(code=int(redirect_raw[0]), location=redirect_raw[1]),
        ),
        metadata=ResourceMetadata(
            properties=ResourceProperties(*(bytes_to_hex(code) for code in properties_raw)),
            size=int(size),
            version=int(version),
            last_modified=int(last_modified),
            header=bytes_to_hex(header_hash),
        ),
        etag=bytes_to_hex(etag),
    )


def _head_to_tuple(head: ResponseHead) -> Tuple[Any, ...]:
    cache = head.header.cache
    cors = head.header.cors
    redirect = head.header.redirect
    props = head.metadata.properties
    return (
        head.status,
        (
            (cache.immutable, cache.preset, cache.custom),
            (cors.methods, list(cors.origins), cors.preset, cors.custom),
            (redirect.code, redirect.location),
        ),
        (
            tuple(
                bytes.fromhex(code[2:])
                for code in (props.mime_type, props.charset, props.encoding, props.language)
            ),
            head.metadata.size,
            head.metadata.version,
            head.metadata.last_modified,
            hex_to_bytes32(head.metadata.header),
        ),
        hex_to_bytes32(head.etag),
    )


def _decode(method: str, types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    try:
        return decode(list(types), data)
    except Exception as exc:
        raise BackendCallError(method, f"cannot decode response: {exc}") from exc


def decode_head_response(data: bytes) -> ResponseHead:
    (raw,) = _decode("HEAD", [HEAD_RESPONSE], data)
    return _head_from_tuple(raw)


def decode_locate_response(data: bytes) -> ResourceLocation:
    (raw,) = _decode("GET", [LOCATE_RESPONSE], data)
    head_raw, (data_points, total_chunks) = raw
    return ResourceLocation(
        head=_head_from_tuple(head_raw),
        chunk_ids=tuple(bytes_to_hex(point) for point in data_points),
        total_chunks=int(total_chunks),
    )


def decode_address(method: str, data: bytes) -> str:
    (value,) = _decode(method, ["address"], data)
    return to_checksum_address(value)


def decode_bytes(method: str, data: bytes) -> bytes:
    (value,) = _decode(method, ["bytes"], data)
    return bytes(value)


def encode_head_response(head: ResponseHead) -> bytes:
    """Encode ``head`` the way a site contract returns it (used by test doubles)."""

    return encode([HEAD_RESPONSE], [_head_to_tuple(head)])


def encode_locate_response(location: ResourceLocation) -> bytes:
    return encode(
        [LOCATE_RESPONSE],
        [
            (
                _head_to_tuple(location.head),
                ([hex_to_bytes32(cid) for cid in location.chunk_ids], location.total_chunks),
            )
        ],
    )
