"""Capability interface consumed by the resource protocol client.

A backend is any object that can answer the handful of contract-style
queries the fetcher needs: the two site queries (metadata-only ``head`` and
full ``locate``), the storage handle lookup and chunk reads, and the naming
registry lookups. Concrete backends (JSON-RPC, in-memory) satisfy the
protocol structurally; no inheritance is required.

All methods raise :class:`~WTTPGateway.ResourceFetch.errors.BackendError`
subclasses on failure: ``BackendCallError`` for reverts and undecodable
replies, ``EndpointUnavailable`` once transport retries are exhausted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..models import ZERO_HASH, ChunkRange, ResourceLocation, ResponseHead

__all__ = ["HeadRequest", "SiteBackend"]


@dataclass(frozen=True)
class HeadRequest:
    """Path plus the conditional fields sent with every site query."""

    path: str
    if_modified_since: int = 0
    if_none_match: str = ZERO_HASH


@runtime_checkable
class SiteBackend(Protocol):
    """Structural interface implemented by every storage backend."""

    def network_id(self) -> int:
        """Return the numeric chain identifier served by this backend."""

    def head(self, site: str, request: HeadRequest) -> ResponseHead:
        """Run the metadata-only query against ``site``."""

    def locate(self, site: str, request: HeadRequest, chunk_range: ChunkRange) -> ResourceLocation:
        """Run the full query, returning the head and chunk identifiers in ``chunk_range``."""

    def storage_handle(self, site: str) -> str:
        """Return the address of the storage contract associated with ``site``."""

    def read_chunk(self, storage: str, chunk_id: str) -> bytes:
        """Read the raw bytes stored under ``chunk_id``."""

    def resolver_lookup(self, registry: str, node: bytes) -> str:
        """Return the resolver address registered for ``node`` (zero address if unset)."""

    def address_lookup(self, resolver: str, node: bytes) -> str:
        """Return the address bound to ``node`` by ``resolver`` (zero address if unset)."""

    def owner_lookup(self, registry: str, node: bytes) -> str:
        """Return the owner recorded for ``node`` (zero address if unowned)."""

    def has_code(self, address: str) -> bool:
        """Return True when contract code is deployed at ``address``."""
