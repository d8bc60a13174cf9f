# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.api",
#   "purpose": "Public facade composing endpoints, naming, and the protocol client.",
#   "sections": [
#     {"id": "resourcefetcher", "name": "ResourceFetcher", "anchor": "class-resourcefetcher", "kind": "class"},
#     {"id": "fetch-resource", "name": "fetch_resource", "anchor": "function-fetch-resource", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public entry points for resource retrieval.

``ResourceFetcher`` wires the endpoint registry, the name resolver, and a
protocol client together so a caller can go from ``(site, path, network)``
to a :class:`FetchResult` in one call::

    fetcher = ResourceFetcher()
    result = fetcher.fetch("example.eth", "/docs/", network="polygon")
    if result.ok:
        print(result.text())

Site identifiers that end in a configured name suffix are resolved through
the naming registry (with root-network fallback); anything else is treated
as an address and passed through.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from eth_utils import is_address

from .caches import FetchCaches, get_default_caches
from .errors import InvalidArgument
from .models import FetchResult, RequestOptions, ResponseHead
from .naming import NameResolver, is_resolvable_name
from .networks import BackendFactory, Endpoint, EndpointRegistry, NetworkSelector
from .paths import normalize_path
from .protocol import ResourceProtocolClient
from .reassembly import ChunkReassembler
from .settings import WTTPSettings, get_settings

__all__ = ["ResourceFetcher", "fetch_resource"]

LOGGER = logging.getLogger(__name__)


class ResourceFetcher:
    """Resolve, locate, and reassemble resources across configured networks."""

    def __init__(
        self,
        settings: Optional[WTTPSettings] = None,
        *,
        caches: Optional[FetchCaches] = None,
        backend_factory: Optional[BackendFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.caches = caches or get_default_caches()
        self.registry = EndpointRegistry(
            self.settings, caches=self.caches, backend_factory=backend_factory
        )
        self.resolver = NameResolver(self.registry, settings=self.settings, caches=self.caches)
        self.reassembler = ChunkReassembler()

    def default_options(self, **overrides: Any) -> RequestOptions:
        values: Dict[str, Any] = {"max_redirects": self.settings.fetch.max_redirects}
        values.update(overrides)
        return RequestOptions(**values)

    def client_for(self, endpoint: Endpoint) -> ResourceProtocolClient:
        return ResourceProtocolClient(
            endpoint.backend,
            reassembler=self.reassembler,
            index_names=self.settings.fetch.index_candidates,
        )

    def resolve_name(
        self,
        name: str,
        network: NetworkSelector = None,
        *,
        fallback_to_root: bool = True,
        use_cache: bool = True,
    ) -> str:
        endpoint = self.registry.get_endpoint(network)
        return self.resolver.resolve(
            endpoint, name, fallback_to_root=fallback_to_root, use_cache=use_cache
        )

    def name_exists(self, name: str, network: NetworkSelector = None) -> bool:
        return self.resolver.exists(self.registry.get_endpoint(network), name)

    def _resolve_site(
        self, endpoint: Endpoint, site: str, fallback_to_root: bool, use_cache: bool
    ) -> str:
        if not is_resolvable_name(site, self.settings.fetch.name_suffixes):
            if not is_address(site):
                raise InvalidArgument(f"site must be an address or a resolvable name: {site!r}")
            return site
        return self.resolver.resolve(
            endpoint, site, fallback_to_root=fallback_to_root, use_cache=use_cache
        )

    def fetch(
        self,
        site: str,
        path: Optional[str] = "/",
        network: NetworkSelector = None,
        options: Optional[RequestOptions] = None,
        *,
        fallback_to_root: bool = True,
        use_name_cache: bool = True,
    ) -> FetchResult:
        """Fetch ``path`` from ``site`` on ``network``.

        Args:
            site: Site address or resolvable name.
            path: Request path; ``None`` or empty means ``/``.
            network: Network name, chain id, RPC URL, or ``None`` for the default.
            options: Request options; settings-derived defaults when omitted.
            fallback_to_root: Allow name resolution to fall back to the root network.
            use_name_cache: Read and populate the name cache.

        Returns:
            The :class:`FetchResult` for the final path.

        Raises:
            UnsupportedNetwork: Unknown network selector.
            InvalidArgument: ``site`` is neither an address nor a resolvable name.
            InvalidPath: Malformed path or redirect target.
            NameResolutionError: The site name could not be resolved.
            ChunkReadFailed: A located chunk could not be read.
        """

        normalized = normalize_path(path)
        endpoint = self.registry.get_endpoint(network)
        address = self._resolve_site(endpoint, site, fallback_to_root, use_name_cache)
        options = options or self.default_options()
        LOGGER.info(
            f"fetch {site}{normalized} on {endpoint.key}",
            extra={"stage": "fetch", "network": endpoint.key, "site": address, "path": normalized},
        )
        result = self.client_for(endpoint).fetch(address, normalized, options)
        LOGGER.info(
            f"fetch complete with status {result.status}",
            extra={
                "stage": "fetch",
                "network": endpoint.key,
                "site": address,
                "path": result.path,
                "status": result.status,
            },
        )
        return result

    def head(
        self,
        site: str,
        path: Optional[str] = "/",
        network: NetworkSelector = None,
        *,
        if_modified_since: int = 0,
        if_none_match: Optional[str] = None,
        fallback_to_root: bool = True,
        use_name_cache: bool = True,
    ) -> ResponseHead:
        """Run a metadata-only request; equivalent to ``fetch`` with ``head_only``."""

        overrides: Dict[str, Any] = {"head_only": True, "if_modified_since": if_modified_since}
        if if_none_match is not None:
            overrides["if_none_match"] = if_none_match
        result = self.fetch(
            site,
            path,
            network,
            self.default_options(**overrides),
            fallback_to_root=fallback_to_root,
            use_name_cache=use_name_cache,
        )
        return result.head


def fetch_resource(
    site: str,
    path: Optional[str] = "/",
    network: NetworkSelector = None,
    options: Optional[RequestOptions] = None,
    *,
    settings: Optional[WTTPSettings] = None,
    caches: Optional[FetchCaches] = None,
    backend_factory: Optional[BackendFactory] = None,
    fallback_to_root: bool = True,
    use_name_cache: bool = True,
) -> FetchResult:
    """Convenience wrapper over a :class:`ResourceFetcher`; process-wide caches by default."""

    fetcher = ResourceFetcher(settings, caches=caches, backend_factory=backend_factory)
    return fetcher.fetch(
        site,
        path,
        network,
        options,
        fallback_to_root=fallback_to_root,
        use_name_cache=use_name_cache,
    )
