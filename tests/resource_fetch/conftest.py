# === NAVMAP v1 ===
# {
#   "module": "tests.resource_fetch.conftest",
#   "purpose": "Shared fixtures: in-memory backends per network, registry, resolver, fetcher.",
#   "sections": [
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"}
#   ]
# }
# === /NAVMAP ===

"""Shared fixtures for the resource fetch suite.

Every configured network is served by its own :class:`InMemoryBackend`, so
tests can publish content, register names, and inject faults per network
without any HTTP traffic.
"""

from __future__ import annotations

import logging
import os
from typing import Dict

import pytest

from WTTPGateway.ResourceFetch.api import ResourceFetcher
from WTTPGateway.ResourceFetch.backend.memory import InMemoryBackend
from WTTPGateway.ResourceFetch.caches import FetchCaches, reset_default_caches
from WTTPGateway.ResourceFetch.naming import NameResolver, namehash
from WTTPGateway.ResourceFetch.networks import EndpointRegistry
from WTTPGateway.ResourceFetch.protocol import ResourceProtocolClient
from WTTPGateway.ResourceFetch.settings import WTTPSettings, reset_settings

ROOT_REGISTRY = "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e"


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch):
    """Drop process-wide caches/settings and keep WTTP_* env vars out of tests."""

    for key in list(os.environ):
        if key.upper().startswith("WTTP_"):
            monkeypatch.delenv(key, raising=False)
    reset_default_caches()
    reset_settings()
    yield
    reset_default_caches()
    reset_settings()
    logger = logging.getLogger("WTTPGateway.ResourceFetch")
    for handler in list(logger.handlers):
        if getattr(handler, "_wttp_managed", False):
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def settings() -> WTTPSettings:
    return WTTPSettings()


@pytest.fixture
def backends(settings) -> Dict[str, InMemoryBackend]:
    return {
        name: InMemoryBackend(chain_id=entry.chain_id)
        for name, entry in settings.networks.items()
    }


@pytest.fixture
def caches() -> FetchCaches:
    return FetchCaches()


@pytest.fixture
def backend_factory(backends):
    built = []

    def factory(key, url, settings):
        built.append(key)
        return backends[key]

    factory.built = built
    return factory


@pytest.fixture
def registry(settings, caches, backend_factory) -> EndpointRegistry:
    return EndpointRegistry(settings, caches=caches, backend_factory=backend_factory)


@pytest.fixture
def resolver(registry, settings, caches) -> NameResolver:
    return NameResolver(registry, settings=settings, caches=caches)


@pytest.fixture
def fetcher(settings, caches, backend_factory) -> ResourceFetcher:
    return ResourceFetcher(settings, caches=caches, backend_factory=backend_factory)


@pytest.fixture
def polygon(backends) -> InMemoryBackend:
    return backends["polygon"]


@pytest.fixture
def ethereum(backends) -> InMemoryBackend:
    return backends["ethereum"]


@pytest.fixture
def site(polygon) -> str:
    return polygon.create_site()


@pytest.fixture
def client(polygon) -> ResourceProtocolClient:
    return ResourceProtocolClient(polygon)


@pytest.fixture
def register_name():
    """Bind ``name`` to ``address`` in ``backend``'s naming registry."""

    def _register(backend: InMemoryBackend, name: str, address, registry: str = ROOT_REGISTRY):
        return backend.register_name(registry, namehash(name), address)

    return _register


class ClosableBackend(InMemoryBackend):
    """In-memory backend that counts ``close`` calls."""

    def __init__(self, chain_id: int = 31337) -> None:
        super().__init__(chain_id=chain_id)
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def closing_factory(settings):
    """Backend factory building a fresh :class:`ClosableBackend` on every call."""

    built = []

    def factory(key, url, settings_):
        entry = settings.networks.get(key)
        backend = ClosableBackend(chain_id=entry.chain_id if entry else 31337)
        built.append(backend)
        return backend

    factory.built = built
    return factory
