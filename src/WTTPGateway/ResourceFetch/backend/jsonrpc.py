# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.backend.jsonrpc",
#   "purpose": "JSON-RPC backend: eth_call over HTTPX with Tenacity retries.",
#   "sections": [
#     {"id": "build-http-client", "name": "build_http_client", "anchor": "function-build-http-client", "kind": "function"},
#     {"id": "build-rpc-retrying", "name": "build_rpc_retrying", "anchor": "function-build-rpc-retrying", "kind": "function"},
#     {"id": "jsonrpcbackend", "name": "JsonRpcBackend", "anchor": "class-jsonrpcbackend", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""JSON-RPC backend: contract calls over HTTPX with Tenacity retries.

Every backend operation is an ``eth_call`` against the endpoint (plus
``eth_chainId`` and ``eth_getCode``). Calls are posted through a shared
``httpx.Client`` configured from :class:`~WTTPGateway.ResourceFetch.settings.HttpSettings`.

Retry strategy:
- **Retryable**: ``httpx.TransportError`` (connect/read/write errors and all
  timeouts) and the configured HTTP statuses (429, 5xx by default)
- **Not retried**: JSON-RPC ``error`` payloads (reverts), which surface as
  :class:`~WTTPGateway.ResourceFetch.errors.BackendCallError`
- **Backoff**: full-jitter exponential, capped per sleep
- **Exhaustion**: :class:`~WTTPGateway.ResourceFetch.errors.EndpointUnavailable`

A timeout is therefore handled exactly like any other transport failure.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Dict, List, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception_type

from ..errors import BackendCallError, EndpointUnavailable
from ..models import ChunkRange, ResourceLocation, ResponseHead
from ..settings import HttpSettings, RetrySettings
from . import abi
from .base import HeadRequest

__all__ = ["RetryableStatus", "build_http_client", "build_rpc_retrying", "JsonRpcBackend"]

LOGGER = logging.getLogger(__name__)


class RetryableStatus(Exception):
    """Internal marker for HTTP statuses that should be retried."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


def build_http_client(settings: HttpSettings) -> httpx.Client:
    """Create the HTTPX client used for JSON-RPC posts."""

    return httpx.Client(
        timeout=httpx.Timeout(
            connect=settings.connect_timeout,
            read=settings.read_timeout,
            write=settings.write_timeout,
            pool=settings.pool_timeout,
        ),
        limits=httpx.Limits(
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
        ),
        headers={"User-Agent": settings.user_agent, "Content-Type": "application/json"},
        follow_redirects=False,
    )


def _log_before_sleep(retry_state: RetryCallState) -> None:
    next_action = retry_state.next_action
    wait_ms = int(next_action.sleep * 1000) if next_action is not None else 0
    exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
    LOGGER.warning(
        f"rpc retry attempt={retry_state.attempt_number} wait_ms={wait_ms} error={exc}",
        extra={"stage": "rpc"},
    )


def build_rpc_retrying(cfg: RetrySettings, sleep=time.sleep) -> tenacity.Retrying:
    """Build the Tenacity controller wrapped around each JSON-RPC post."""

    return tenacity.Retrying(
        retry=retry_if_exception_type((httpx.TransportError, RetryableStatus)),
        stop=tenacity.stop_after_attempt(cfg.max_attempts),
        wait=tenacity.wait_random_exponential(multiplier=cfg.multiplier, max=cfg.max_wait),
        sleep=sleep,
        before_sleep=_log_before_sleep,
        reraise=True,
    )


class JsonRpcBackend:
    """Site backend speaking Ethereum JSON-RPC to a single endpoint URL."""

    def __init__(
        self,
        url: str,
        *,
        http_settings: Optional[HttpSettings] = None,
        retry_settings: Optional[RetrySettings] = None,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ) -> None:
        self.url = url
        self._retry_settings = retry_settings or RetrySettings()
        self._client = client or build_http_client(http_settings or HttpSettings())
        self._owns_client = client is None
        self._sleep = sleep
        self._ids = itertools.count(1)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={self.url!r})"

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self._client.post(self.url, json=payload)
        if response.status_code in self._retry_settings.retry_statuses:
            raise RetryableStatus(response.status_code)
        response.raise_for_status()
        return response.json()

    def request(self, method: str, params: List[Any]) -> Any:
        """Send one JSON-RPC request and return its ``result``.

        Raises:
            EndpointUnavailable: Transport failures persisted through every attempt.
            BackendCallError: The endpoint answered with an error payload.
        """

        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        retrying = build_rpc_retrying(self._retry_settings, sleep=self._sleep)
        try:
            body = retrying(self._post, payload)
        except (httpx.TransportError, RetryableStatus) as exc:
            raise EndpointUnavailable(self.url, self._retry_settings.max_attempts, exc) from exc
        except httpx.HTTPStatusError as exc:
            raise BackendCallError(method, f"HTTP {exc.response.status_code}") from exc
        except ValueError as exc:
            raise BackendCallError(method, f"invalid JSON-RPC reply: {exc}") from exc

        if not isinstance(body, dict):
            raise BackendCallError(method, "unexpected JSON-RPC payload shape")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", "unknown error") if isinstance(error, dict) else error
            raise BackendCallError(method, str(message))
        return body.get("result")

    def _eth_call(self, method: str, to: str, data: str) -> bytes:
        result = self.request("eth_call", [{"to": to, "data": data}, "latest"])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise BackendCallError(method, f"unexpected eth_call result: {result!r}")
        try:
            return bytes.fromhex(result[2:])
        except ValueError as exc:
            raise BackendCallError(method, f"malformed eth_call result: {exc}") from exc

    # ------------------------------------------------------------------
    # SiteBackend protocol
    # ------------------------------------------------------------------

    def network_id(self) -> int:
        result = self.request("eth_chainId", [])
        try:
            return int(result, 16) if isinstance(result, str) else int(result)
        except (TypeError, ValueError) as exc:
            raise BackendCallError("eth_chainId", f"unexpected result {result!r}") from exc

    def head(self, site: str, request: HeadRequest) -> ResponseHead:
        data = self._eth_call("HEAD", site, abi.encode_head_call(request))
        return abi.decode_head_response(data)

    def locate(self, site: str, request: HeadRequest, chunk_range: ChunkRange) -> ResourceLocation:
        data = self._eth_call("GET", site, abi.encode_locate_call(request, chunk_range))
        return abi.decode_locate_response(data)

    def storage_handle(self, site: str) -> str:
        return abi.decode_address("DPS", self._eth_call("DPS", site, abi.encode_call("DPS")))

    def read_chunk(self, storage: str, chunk_id: str) -> bytes:
        data = self._eth_call(
            "readDataPoint",
            storage,
            abi.encode_call("readDataPoint", ["bytes32"], [abi.hex_to_bytes32(chunk_id)]),
        )
        return abi.decode_bytes("readDataPoint", data)

    def resolver_lookup(self, registry: str, node: bytes) -> str:
        data = self._eth_call("resolver", registry, abi.encode_call("resolver", ["bytes32"], [node]))
        return abi.decode_address("resolver", data)

    def address_lookup(self, resolver: str, node: bytes) -> str:
        data = self._eth_call("addr", resolver, abi.encode_call("addr", ["bytes32"], [node]))
        return abi.decode_address("addr", data)

    def owner_lookup(self, registry: str, node: bytes) -> str:
        data = self._eth_call("owner", registry, abi.encode_call("owner", ["bytes32"], [node]))
        return abi.decode_address("owner", data)

    def has_code(self, address: str) -> bool:
        result = self.request("eth_getCode", [address, "latest"])
        return isinstance(result, str) and result not in ("0x", "0x0", "")
