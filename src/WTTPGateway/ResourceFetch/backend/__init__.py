"""Storage backends answering site, storage, and naming queries."""

from .base import HeadRequest, SiteBackend
from .jsonrpc import JsonRpcBackend
from .memory import InMemoryBackend, StoredResource

__all__ = [
    "HeadRequest",
    "SiteBackend",
    "JsonRpcBackend",
    "InMemoryBackend",
    "StoredResource",
]
