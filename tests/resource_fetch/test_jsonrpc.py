"""JSON-RPC backend: ABI round trips over a mocked HTTPX transport, plus retry behaviour."""

from __future__ import annotations

import json

import httpx
import pytest
from eth_abi import decode, encode
from eth_utils import to_checksum_address

from WTTPGateway.ResourceFetch.backend import abi
from WTTPGateway.ResourceFetch.backend.base import HeadRequest, SiteBackend
from WTTPGateway.ResourceFetch.backend.jsonrpc import JsonRpcBackend
from WTTPGateway.ResourceFetch.errors import BackendCallError, EndpointUnavailable
from WTTPGateway.ResourceFetch.models import (
    ZERO_HASH,
    ChunkRange,
    HeaderInfo,
    Redirect,
    ResourceLocation,
    ResourceMetadata,
    ResourceProperties,
    ResponseHead,
)
from WTTPGateway.ResourceFetch.protocol import ResourceProtocolClient
from WTTPGateway.ResourceFetch.settings import RetrySettings

SITE = "0x" + "11" * 20
STORAGE = "0x" + "22" * 20
ETAG = "0x" + "ab" * 32
URL = "https://rpc.test"


def _result(request: httpx.Request, value) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": value})


def _backend(handler, sleeps=None, **retry) -> JsonRpcBackend:
    sleeps = sleeps if sleeps is not None else []
    settings = RetrySettings(max_attempts=3, multiplier=0.01, max_wait=0.05, **retry)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return JsonRpcBackend(URL, retry_settings=settings, client=client, sleep=sleeps.append)


def _call_data(request: httpx.Request) -> bytes:
    body = json.loads(request.content)
    return bytes.fromhex(body["params"][0]["data"][2:])


def _sample_head(status: int = 200) -> ResponseHead:
    return ResponseHead(
        status=status,
        header=HeaderInfo(redirect=Redirect(0, "")),
        metadata=ResourceMetadata(
            properties=ResourceProperties(mime_type="0x7468", charset="0x7538"),
            size=42,
            version=3,
            last_modified=1_700_000_123,
        ),
        etag=ETAG,
    )


def test_backend_satisfies_protocol():
    backend = _backend(lambda request: _result(request, "0x1"))
    assert isinstance(backend, SiteBackend)


def test_head_round_trip():
    seen = {}
    head = _sample_head()

    def handler(request):
        data = _call_data(request)
        assert data[:4] == abi.selector("HEAD")
        (seen["request"],) = decode([abi.HEAD_REQUEST], data[4:])
        return _result(request, "0x" + abi.encode_head_response(head).hex())

    backend = _backend(handler)
    decoded = backend.head(SITE, HeadRequest("/index.html", 5, ZERO_HASH))

    assert decoded == head
    path, ims, inm = seen["request"]
    assert path == "/index.html"
    assert ims == 5
    assert inm == b"\x00" * 32


def test_locate_round_trip_with_range():
    seen = {}
    location = ResourceLocation(
        head=_sample_head(206), chunk_ids=("0x" + "01" * 32, "0x" + "02" * 32), total_chunks=4
    )

    def handler(request):
        data = _call_data(request)
        assert data[:4] == abi.selector("GET")
        (seen["request"],) = decode([abi.LOCATE_REQUEST], data[4:])
        return _result(request, "0x" + abi.encode_locate_response(location).hex())

    backend = _backend(handler)
    decoded = backend.locate(SITE, HeadRequest("/big.bin"), ChunkRange(1, 2))

    assert decoded == location
    (_, chunk_range) = seen["request"]
    assert chunk_range == (1, 2)


def test_storage_handle_and_chunk_read():
    def handler(request):
        data = _call_data(request)
        if data[:4] == abi.selector("DPS"):
            return _result(request, "0x" + encode(["address"], [STORAGE]).hex())
        assert data[:4] == abi.selector("readDataPoint")
        return _result(request, "0x" + encode(["bytes"], [b"chunk-bytes"]).hex())

    backend = _backend(handler)
    storage = backend.storage_handle(SITE)

    assert storage == to_checksum_address(STORAGE)
    assert backend.read_chunk(storage, "0x" + "03" * 32) == b"chunk-bytes"


def test_resolver_lookup_returns_checksum_address():
    resolver = "0x" + "ab" * 20

    def handler(request):
        assert _call_data(request)[:4] == abi.selector("resolver")
        return _result(request, "0x" + encode(["address"], [resolver]).hex())

    backend = _backend(handler)
    assert backend.resolver_lookup(SITE, b"\x01" * 32) == to_checksum_address(resolver)


def test_chain_id_and_code_queries():
    def handler(request):
        method = json.loads(request.content)["method"]
        if method == "eth_chainId":
            return _result(request, "0x89")
        return _result(request, "0x6080")

    backend = _backend(handler)
    assert backend.network_id() == 137
    assert backend.has_code(SITE) is True


def test_connect_errors_exhaust_retries():
    sleeps = []
    attempts = {"n": 0}

    def handler(request):
        attempts["n"] += 1
        raise httpx.ConnectError("refused", request=request)

    backend = _backend(handler, sleeps)
    with pytest.raises(EndpointUnavailable) as excinfo:
        backend.network_id()

    assert attempts["n"] == 3
    assert len(sleeps) == 2
    assert excinfo.value.attempts == 3
    assert excinfo.value.url == URL


def test_timeouts_are_transport_failures():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(EndpointUnavailable):
        _backend(handler).network_id()


def test_retryable_status_then_success():
    sleeps = []
    responses = iter([503, 200])

    def handler(request):
        status = next(responses)
        if status != 200:
            return httpx.Response(status)
        return _result(request, "0x1")

    backend = _backend(handler, sleeps)
    assert backend.network_id() == 1
    assert len(sleeps) == 1


def test_error_payload_is_not_retried():
    attempts = {"n": 0}

    def handler(request):
        attempts["n"] += 1
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": 3, "message": "execution reverted"},
            },
        )

    with pytest.raises(BackendCallError) as excinfo:
        _backend(handler).head(SITE, HeadRequest("/"))

    assert attempts["n"] == 1
    assert "execution reverted" in str(excinfo.value)


def test_undecodable_result_is_call_error():
    backend = _backend(lambda request: _result(request, "0x1234"))
    with pytest.raises(BackendCallError):
        backend.head(SITE, HeadRequest("/"))


@pytest.mark.parametrize("payload", ["0xabc", "0xzz"])
def test_malformed_hex_result_is_call_error(payload):
    backend = _backend(lambda request: _result(request, payload))
    with pytest.raises(BackendCallError):
        backend.head(SITE, HeadRequest("/x"))


def test_malformed_hex_result_folds_into_not_found():
    backend = _backend(lambda request: _result(request, "0xabc"))

    head = ResourceProtocolClient(backend).head(SITE, "/x")

    assert head.status == 404
