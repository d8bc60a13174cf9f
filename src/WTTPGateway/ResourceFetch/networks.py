# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.networks",
#   "purpose": "Endpoint registry: network selector normalisation and cached backend construction.",
#   "sections": [
#     {"id": "endpoint", "name": "Endpoint", "anchor": "class-endpoint", "kind": "class"},
#     {"id": "normalize-network-selector", "name": "normalize_network_selector", "anchor": "function-normalize-network-selector", "kind": "function"},
#     {"id": "endpointregistry", "name": "EndpointRegistry", "anchor": "class-endpointregistry", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Endpoint registry: map network selectors to live backend endpoints.

A selector is a symbolic network name (``"polygon"``), a numeric chain id
(``137`` or ``"137"``), a literal JSON-RPC URL, or ``None`` for the
configured default. Selectors are normalised once to a canonical key; the
registry then returns the cached endpoint for that key or constructs one,
querying the backend's network identity exactly once.

Key design:
- **Lazy**: endpoints are built on first use per key, never at import time.
- **Insert-if-absent**: two threads racing on the same key may both build a
  backend; the first insert wins and the other is discarded.
- **Loud failures**: unknown selectors raise ``UnsupportedNetwork`` listing
  every supported name instead of silently defaulting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from .backend.base import SiteBackend
from .backend.jsonrpc import JsonRpcBackend
from .caches import FetchCaches, get_default_caches
from .errors import BackendError, UnsupportedNetwork
from .settings import WTTPSettings, get_settings

__all__ = [
    "NetworkSelector",
    "BackendFactory",
    "Endpoint",
    "is_endpoint_url",
    "normalize_network_selector",
    "EndpointRegistry",
]

LOGGER = logging.getLogger(__name__)

NetworkSelector = Union[str, int, None]
BackendFactory = Callable[[str, str, WTTPSettings], SiteBackend]


@dataclass(frozen=True)
class Endpoint:
    """A backend handle plus its cached identity; shared read-only across requests."""

    key: str
    name: Optional[str]
    url: str
    backend: SiteBackend
    chain_id: Optional[int]


def is_endpoint_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def _close_backend(backend: SiteBackend) -> None:
    close = getattr(backend, "close", None)
    if callable(close):
        close()


def normalize_network_selector(
    selector: NetworkSelector, settings: Optional[WTTPSettings] = None
) -> str:
    """Return the canonical registry key for ``selector``.

    Raises:
        UnsupportedNetwork: For unknown names or chain ids.
    """

    settings = settings or get_settings()
    supported = sorted(settings.networks)

    if selector is None:
        return settings.fetch.default_network
    if isinstance(selector, bool):
        raise UnsupportedNetwork(selector, supported)
    if isinstance(selector, int):
        chain_text = str(selector)
    else:
        text = str(selector).strip()
        if is_endpoint_url(text):
            return text
        if not text:
            return settings.fetch.default_network
        if not text.isdigit():
            key = text.lower()
            if key not in settings.networks:
                raise UnsupportedNetwork(selector, supported)
            return key
        chain_text = text

    name = settings.chain_id_table().get(int(chain_text))
    if name is None:
        raise UnsupportedNetwork(selector, supported)
    LOGGER.debug(
        f"resolved chain id {chain_text} to network {name}",
        extra={"stage": "endpoint", "network": name},
    )
    return name


def _default_backend_factory(key: str, url: str, settings: WTTPSettings) -> SiteBackend:
    return JsonRpcBackend(url, http_settings=settings.http, retry_settings=settings.retry)


class EndpointRegistry:
    """Builds and caches :class:`Endpoint` objects per normalised selector."""

    def __init__(
        self,
        settings: Optional[WTTPSettings] = None,
        *,
        caches: Optional[FetchCaches] = None,
        backend_factory: Optional[BackendFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.caches = caches or get_default_caches()
        self._backend_factory = backend_factory or _default_backend_factory

    def supported_networks(self) -> List[str]:
        return sorted(self.settings.networks)

    def normalize(self, selector: NetworkSelector) -> str:
        return normalize_network_selector(selector, self.settings)

    def get_endpoint(self, selector: NetworkSelector = None) -> Endpoint:
        """Return the cached endpoint for ``selector``, constructing it on first use."""

        key = self.normalize(selector)
        cached = self.caches.endpoints.get(key)
        if cached is not None:
            LOGGER.debug("using cached endpoint", extra={"stage": "endpoint", "network": key})
            return cached

        if is_endpoint_url(key):
            name, url, configured_chain = None, key, None
        else:
            config = self.settings.networks.get(key)
            if config is None:
                raise UnsupportedNetwork(selector, self.supported_networks())
            name, url, configured_chain = key, config.rpc_url, config.chain_id

        backend = self._backend_factory(key, url, self.settings)
        chain_id = self._network_identity(key, backend, configured_chain)
        endpoint = Endpoint(key=key, name=name, url=url, backend=backend, chain_id=chain_id)
        stored = self.caches.endpoints.set_if_absent(key, endpoint)
        if stored is endpoint:
            LOGGER.info(
                f"cached endpoint for network {key} (chain {chain_id})",
                extra={"stage": "endpoint", "network": key},
            )
        elif stored.backend is not backend:
            _close_backend(backend)
        return stored

    def _network_identity(
        self, key: str, backend: SiteBackend, configured: Optional[int]
    ) -> Optional[int]:
        cached = self.caches.network_ids.get(key)
        if cached is not None:
            return cached
        try:
            chain_id = backend.network_id()
        except BackendError as exc:
            LOGGER.warning(
                f"failed to query network identity for {key}: {exc}",
                extra={"stage": "endpoint", "network": key},
            )
            return configured
        if configured is not None and chain_id != configured:
            LOGGER.warning(
                f"endpoint for {key} reports chain {chain_id}, configured {configured}",
                extra={"stage": "endpoint", "network": key},
            )
        return self.caches.network_ids.set_if_absent(key, chain_id)

    def clear(self) -> None:
        """Empty the endpoint and network-identity caches, closing cached backends."""

        endpoints = self.caches.endpoints.drain()
        self.caches.network_ids.clear()
        for endpoint in endpoints:
            _close_backend(endpoint.backend)
