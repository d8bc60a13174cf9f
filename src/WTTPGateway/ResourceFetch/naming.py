"""Name resolution through a hierarchical naming registry.

Human-readable site names (``example.eth``) are resolved in two hops: the
registry maps the name's namehash to a resolver contract, and the resolver
maps the same namehash to the site address. Successful resolutions are
cached by normalised name; failures never touch the cache.

When a name cannot be resolved on the requested network and fallback is
enabled, resolution is retried once against the configured root network
(Ethereum mainnet by default), where most names are registered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from eth_utils import is_address, keccak, to_checksum_address

from .caches import FetchCaches, get_default_caches
from .errors import (
    BackendError,
    InvalidArgument,
    NameNotRegistered,
    NameResolutionError,
    NameResolutionFailed,
    UnsupportedNetwork,
)
from .networks import Endpoint, EndpointRegistry
from .settings import WTTPSettings

__all__ = [
    "KNOWN_TEST_NAMES",
    "NameProbe",
    "namehash",
    "normalize_name",
    "is_zero_address",
    "is_resolvable_name",
    "NameResolver",
]

LOGGER = logging.getLogger(__name__)

KNOWN_TEST_NAMES: Sequence[str] = (
    "vitalik.eth",
    "ens.eth",
    "ethereum.eth",
    "nick.eth",
    "brantly.eth",
)


@dataclass(frozen=True)
class NameProbe:
    """Outcome of resolving one name during a probe run."""

    name: str
    address: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.address is not None


def normalize_name(name: object) -> str:
    if not isinstance(name, str):
        raise InvalidArgument("Name must be a string")
    return name.strip().lower()


def namehash(name: str) -> bytes:
    """Compute the recursive namehash of ``name`` (innermost label hashed last)."""

    node = b"\x00" * 32
    if not name:
        return node
    for label in reversed(name.split(".")):
        node = keccak(node + keccak(text=label))
    return node


def is_zero_address(address: Optional[str]) -> bool:
    return not address or int(address, 16) == 0


def is_resolvable_name(value: str, suffixes: Iterable[str] = (".eth",)) -> bool:
    if not isinstance(value, str):
        return False
    lowered = value.strip().lower()
    return any(lowered.endswith(suffix.lower()) for suffix in suffixes)


class NameResolver:
    """Resolves names to site addresses with caching and root-network fallback."""

    def __init__(
        self,
        registry: EndpointRegistry,
        *,
        settings: Optional[WTTPSettings] = None,
        caches: Optional[FetchCaches] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings or registry.settings
        self.caches = caches or registry.caches or get_default_caches()

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def lookup_cached(self, name: str) -> Optional[str]:
        return self.caches.names.get(normalize_name(name))

    def clear_cache(self) -> None:
        self.caches.names.clear()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _root_chain_id(self) -> Optional[int]:
        root = self.settings.networks.get(self.settings.fetch.root_network)
        return root.chain_id if root is not None else None

    def _resolve_on(self, endpoint: Endpoint, name: str) -> str:
        config = self.settings.naming.get(endpoint.chain_id) if endpoint.chain_id else None
        if config is None:
            raise NameNotRegistered(name, "Naming not supported", chain_id=endpoint.chain_id)

        node = namehash(name)
        LOGGER.debug(
            f"namehash for {name}: 0x{node.hex()}",
            extra={"stage": "naming", "network": endpoint.key},
        )
        resolver = endpoint.backend.resolver_lookup(config.registry_address, node)
        if is_zero_address(resolver):
            raise NameNotRegistered(name, "No resolver set", chain_id=endpoint.chain_id)

        address = endpoint.backend.address_lookup(resolver, node)
        if is_zero_address(address):
            raise NameNotRegistered(name, "No address set", chain_id=endpoint.chain_id)
        return to_checksum_address(address)

    def resolve(
        self,
        endpoint: Endpoint,
        name: str,
        *,
        fallback_to_root: bool = True,
        use_cache: bool = True,
    ) -> str:
        """Resolve ``name`` to a site address.

        Args:
            endpoint: Endpoint of the network the request targets.
            name: Human-readable name; normalised to lowercase and trimmed.
            fallback_to_root: Retry on the root network when resolution fails elsewhere.
            use_cache: Read from and write to the resolution cache.

        Returns:
            Checksummed site address.

        Raises:
            NameNotRegistered: No resolver or no bound address (fallback disabled
                or already on the root network).
            NameResolutionFailed: Backend failure, or both the requested and the
                root network failed.
        """

        normalized = normalize_name(name)
        if normalized != name:
            LOGGER.debug(f"normalized name {name!r} -> {normalized}", extra={"stage": "naming"})

        if use_cache:
            cached = self.caches.names.get(normalized)
            if cached is not None:
                LOGGER.debug(
                    f"using cached resolution {normalized} -> {cached}",
                    extra={"stage": "naming", "site": cached},
                )
                return cached

        LOGGER.info(
            f"resolving {normalized} on chain {endpoint.chain_id}",
            extra={"stage": "naming", "network": endpoint.key},
        )
        try:
            address = self._resolve_on(endpoint, normalized)
        except (NameResolutionError, BackendError) as primary:
            LOGGER.warning(
                f"failed to resolve {normalized} on chain {endpoint.chain_id}: {primary}",
                extra={"stage": "naming", "network": endpoint.key},
            )
            if not fallback_to_root or endpoint.chain_id == self._root_chain_id():
                if isinstance(primary, NameResolutionError):
                    raise
                raise NameResolutionFailed(normalized, primary) from primary
            address = self._resolve_on_root(normalized, primary)

        if use_cache:
            address = self.caches.names.set_if_absent(normalized, address)
        LOGGER.info(
            f"resolved {normalized} -> {address}",
            extra={"stage": "naming", "site": address, "network": endpoint.key},
        )
        return address

    def _resolve_on_root(self, name: str, primary: BaseException) -> str:
        LOGGER.info(
            f"attempting fallback to {self.settings.fetch.root_network} for {name}",
            extra={"stage": "naming"},
        )
        try:
            root_endpoint = self.registry.get_endpoint(self.settings.fetch.root_network)
            return self._resolve_on(root_endpoint, name)
        except (NameResolutionError, BackendError, UnsupportedNetwork) as fallback:
            LOGGER.warning(f"root network fallback also failed: {fallback}", extra={"stage": "naming"})
            raise NameResolutionFailed(name, primary, fallback) from fallback

    def exists(self, endpoint: Endpoint, name: str) -> bool:
        """Best-effort check that ``name`` has an owner record on ``endpoint``'s network."""

        try:
            normalized = normalize_name(name)
            config = self.settings.naming.get(endpoint.chain_id) if endpoint.chain_id else None
            if config is None:
                return False
            owner = endpoint.backend.owner_lookup(config.registry_address, namehash(normalized))
            return not is_zero_address(owner)
        except Exception as exc:
            LOGGER.warning(f"failed to check existence of {name}: {exc}", extra={"stage": "naming"})
            return False

    def resolve_site_identifier(
        self,
        value: str,
        endpoint: Optional[Endpoint] = None,
        *,
        fallback_to_root: bool = True,
        use_cache: bool = True,
    ) -> str:
        """Return an address for ``value``, touching the network only when required.

        Addresses (and anything that is not a name) pass through unchanged;
        cached names return without network calls; otherwise ``endpoint`` is
        used to resolve.
        """

        if not is_resolvable_name(value, self.settings.fetch.name_suffixes):
            return to_checksum_address(value) if is_address(value) else value
        cached = self.lookup_cached(value)
        if cached is not None:
            return cached
        if endpoint is None:
            raise NameResolutionFailed(
                normalize_name(value),
                message=(
                    f"Name {value} not in cache and no endpoint available for resolution"
                ),
            )
        return self.resolve(
            endpoint, value, fallback_to_root=fallback_to_root, use_cache=use_cache
        )

    def probe_names(
        self,
        endpoint: Endpoint,
        names: Iterable[str] = KNOWN_TEST_NAMES,
        *,
        fallback_to_root: bool = True,
        use_cache: bool = True,
    ) -> List[NameProbe]:
        """Resolve each of ``names`` and report per-name outcomes without raising."""

        results: List[NameProbe] = []
        for name in names:
            try:
                address = self.resolve(
                    endpoint, name, fallback_to_root=fallback_to_root, use_cache=use_cache
                )
            except (NameResolutionError, InvalidArgument) as exc:
                results.append(NameProbe(name=name, error=str(exc)))
            else:
                results.append(NameProbe(name=name, address=address))
        succeeded = sum(1 for probe in results if probe.success)
        LOGGER.info(
            f"name probe: {succeeded}/{len(results)} resolved",
            extra={"stage": "naming", "network": endpoint.key},
        )
        return results
