"""In-process site backend for tests and local development.

``InMemoryBackend`` stores sites, chunks, and naming records in plain dicts
and answers the same queries as a contract backend, including conditional
requests (304), redirects, ranged locates (206), and a 404 for missing
resources. It keeps per-method call counters and supports fault injection so
callers can exercise retry and fallback paths deterministically.

Example:
    >>> backend = InMemoryBackend(chain_id=137)
    >>> site = backend.create_site()
    >>> backend.publish(site, "/index.html", b"<h1>hi</h1>", mime_type="0x7468")
    >>> backend.head(site, HeadRequest("/index.html")).status
    200
"""

from __future__ import annotations

import itertools
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from eth_utils import keccak, to_checksum_address

from ..errors import BackendCallError
from ..models import (
    ZERO_ADDRESS,
    ZERO_HASH,
    ChunkRange,
    HeaderInfo,
    Redirect,
    ResourceLocation,
    ResourceMetadata,
    ResourceProperties,
    ResponseHead,
)
from .abi import bytes_to_hex
from .base import HeadRequest

__all__ = ["StoredResource", "InMemoryBackend"]

FaultHook = Callable[[str, Tuple[object, ...]], Optional[BaseException]]


@dataclass
class StoredResource:
    """A resource published on an in-memory site."""

    chunk_ids: List[str] = field(default_factory=list)
    properties: ResourceProperties = field(default_factory=ResourceProperties)
    size: int = 0
    version: int = 1
    last_modified: int = 0
    etag: str = ZERO_HASH
    status: int = 200
    redirect: Redirect = field(default_factory=Redirect)


@dataclass
class _Site:
    storage: str
    resources: Dict[str, StoredResource] = field(default_factory=dict)


class InMemoryBackend:
    """Dict-backed implementation of the site backend protocol."""

    def __init__(self, chain_id: int = 31337) -> None:
        self.chain_id = chain_id
        self.calls: Counter = Counter()
        self.call_log: List[Tuple[str, Tuple[object, ...]]] = []
        self.fault_hook: Optional[FaultHook] = None
        self.locate_chunk_limit: Optional[int] = None
        self.head_disabled = False
        self._sites: Dict[str, _Site] = {}
        self._chunks: Dict[str, Dict[str, bytes]] = {}
        self._resolvers: Dict[Tuple[str, bytes], str] = {}
        self._addresses: Dict[Tuple[str, bytes], str] = {}
        self._owners: Dict[Tuple[str, bytes], str] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()
        self._clock = itertools.count(1_700_000_000)

    # ------------------------------------------------------------------
    # Publishing helpers
    # ------------------------------------------------------------------

    def _new_address(self, label: str) -> str:
        seed = f"{label}-{self.chain_id}-{next(self._counter)}".encode("utf-8")
        return to_checksum_address(keccak(seed)[-20:])

    def create_site(self, address: Optional[str] = None) -> str:
        site = to_checksum_address(address) if address else self._new_address("site")
        storage = self._new_address("storage")
        self._sites[site] = _Site(storage=storage)
        self._chunks.setdefault(storage, {})
        return site

    def publish(
        self,
        site: str,
        path: str,
        content: bytes,
        *,
        chunk_size: int = 32,
        mime_type: str = "0x7470",
        charset: str = "0x7538",
        last_modified: Optional[int] = None,
    ) -> StoredResource:
        """Split ``content`` into chunks and publish it at ``path``."""

        record = self._sites[to_checksum_address(site)]
        store = self._chunks[record.storage]
        chunk_ids: List[str] = []
        for offset in range(0, len(content), chunk_size):
            chunk = content[offset : offset + chunk_size]
            chunk_id = bytes_to_hex(keccak(chunk + offset.to_bytes(8, "big")))
            store[chunk_id] = chunk
            chunk_ids.append(chunk_id)
        resource = StoredResource(
            chunk_ids=chunk_ids,
            properties=ResourceProperties(mime_type=mime_type, charset=charset),
            size=len(content),
            last_modified=last_modified if last_modified is not None else next(self._clock),
            etag=bytes_to_hex(keccak(content)),
        )
        record.resources[path] = resource
        return resource

    def redirect(self, site: str, path: str, location: str, *, code: int = 301) -> None:
        record = self._sites[to_checksum_address(site)]
        record.resources[path] = StoredResource(status=code, redirect=Redirect(code, location))

    def register_name(self, registry: str, node: bytes, address: Optional[str]) -> str:
        """Bind ``node`` to ``address`` through a fresh resolver; ``None`` leaves it unbound."""

        resolver = self._new_address("resolver")
        registry = to_checksum_address(registry)
        self._resolvers[(registry, node)] = resolver
        self._owners[(registry, node)] = self._new_address("owner")
        if address is not None:
            self._addresses[(resolver, node)] = to_checksum_address(address)
        return resolver

    def set_owner(self, registry: str, node: bytes, owner: str) -> None:
        self._owners[(to_checksum_address(registry), node)] = to_checksum_address(owner)

    def storage_for(self, site: str) -> str:
        return self._sites[to_checksum_address(site)].storage

    def drop_chunk(self, site: str, chunk_id: str) -> None:
        del self._chunks[self.storage_for(site)][chunk_id]

    # ------------------------------------------------------------------
    # Instrumentation
    # ------------------------------------------------------------------

    def _record(self, method: str, *args: object) -> None:
        with self._lock:
            self.calls[method] += 1
            self.call_log.append((method, args))
        if self.fault_hook is not None:
            error = self.fault_hook(method, args)
            if error is not None:
                raise error

    def _checksum(self, method: str, address: str) -> str:
        try:
            return to_checksum_address(address)
        except (TypeError, ValueError) as exc:
            raise BackendCallError(method, f"invalid address {address!r}") from exc

    def _site(self, method: str, site: str) -> _Site:
        record = self._sites.get(self._checksum(method, site))
        if record is None:
            raise BackendCallError(method, f"no site contract at {site}")
        return record

    # ------------------------------------------------------------------
    # SiteBackend protocol
    # ------------------------------------------------------------------

    def network_id(self) -> int:
        self._record("network_id")
        return self.chain_id

    def _build_head(self, resource: Optional[StoredResource], request: HeadRequest) -> ResponseHead:
        if resource is None:
            return ResponseHead.not_found()
        if resource.status != 200:
            return ResponseHead(
                status=resource.status, header=HeaderInfo(redirect=resource.redirect)
            )
        metadata = ResourceMetadata(
            properties=resource.properties,
            size=resource.size,
            version=resource.version,
            last_modified=resource.last_modified,
        )
        status = 200
        if request.if_none_match != ZERO_HASH and request.if_none_match == resource.etag:
            status = 304
        elif request.if_modified_since and request.if_modified_since >= resource.last_modified:
            status = 304
        return ResponseHead(status=status, metadata=metadata, etag=resource.etag)

    def head(self, site: str, request: HeadRequest) -> ResponseHead:
        self._record("head", site, request.path)
        if self.head_disabled:
            raise BackendCallError("HEAD", "metadata queries are restricted on this site")
        record = self._site("HEAD", site)
        return self._build_head(record.resources.get(request.path), request)

    def locate(self, site: str, request: HeadRequest, chunk_range: ChunkRange) -> ResourceLocation:
        self._record("locate", site, request.path, chunk_range)
        record = self._site("GET", site)
        resource = record.resources.get(request.path)
        head = self._build_head(resource, request)
        if resource is None or head.status != 200:
            return ResourceLocation(head=head)

        total = len(resource.chunk_ids)
        end = chunk_range.end if chunk_range.end >= 0 else total + chunk_range.end
        if total and (chunk_range.start < 0 or chunk_range.start > end or end >= total):
            raise BackendCallError("GET", f"range {chunk_range} out of bounds for {total} chunks")
        chunk_ids = resource.chunk_ids[chunk_range.start : end + 1] if total else []
        if self.locate_chunk_limit is not None:
            chunk_ids = chunk_ids[: self.locate_chunk_limit]
        if total and (chunk_range.start > 0 or end < total - 1):
            head = ResponseHead(
                status=206, header=head.header, metadata=head.metadata, etag=head.etag
            )
        return ResourceLocation(head=head, chunk_ids=tuple(chunk_ids), total_chunks=total)

    def storage_handle(self, site: str) -> str:
        self._record("storage_handle", site)
        return self._site("DPS", site).storage

    def read_chunk(self, storage: str, chunk_id: str) -> bytes:
        self._record("read_chunk", storage, chunk_id)
        chunk = self._chunks.get(self._checksum("readDataPoint", storage), {}).get(chunk_id)
        if chunk is None:
            raise BackendCallError("readDataPoint", f"unknown data point {chunk_id}")
        return chunk

    def resolver_lookup(self, registry: str, node: bytes) -> str:
        self._record("resolver_lookup", registry, node)
        return self._resolvers.get((to_checksum_address(registry), node), ZERO_ADDRESS)

    def address_lookup(self, resolver: str, node: bytes) -> str:
        self._record("address_lookup", resolver, node)
        return self._addresses.get((to_checksum_address(resolver), node), ZERO_ADDRESS)

    def owner_lookup(self, registry: str, node: bytes) -> str:
        self._record("owner_lookup", registry, node)
        return self._owners.get((to_checksum_address(registry), node), ZERO_ADDRESS)

    def has_code(self, address: str) -> bool:
        self._record("has_code", address)
        address = self._checksum("eth_getCode", address)
        return address in self._sites or address in self._chunks
