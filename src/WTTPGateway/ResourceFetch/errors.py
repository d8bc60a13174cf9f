# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.errors",
#   "purpose": "Define the exception hierarchy used across endpoint selection, naming, and retrieval",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "network", "name": "Network & Argument Errors", "anchor": "NET", "kind": "api"},
#     {"id": "naming", "name": "Name Resolution Errors", "anchor": "NAM", "kind": "api"},
#     {"id": "backend", "name": "Backend & Chunk Errors", "anchor": "BCK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across endpoint selection, naming, and retrieval.

Resource retrieval spans network selection, name resolution, JSON-RPC calls,
and chunk reassembly. Only a handful of failure modes are surfaced to callers
as exceptions: unsupported networks, malformed paths, name resolution
failures, exhausted RPC endpoints, and chunk read failures. Ordinary
not-found and redirect outcomes are represented in the response status and
never raised.
"""

from __future__ import annotations

from typing import Iterable, Optional

__all__ = [
    "WTTPFetchError",
    "UnsupportedNetwork",
    "InvalidPath",
    "InvalidArgument",
    "NameResolutionError",
    "NameNotRegistered",
    "NameResolutionFailed",
    "BackendError",
    "BackendCallError",
    "EndpointUnavailable",
    "ChunkReadFailed",
]


class WTTPFetchError(RuntimeError):
    """Base exception for resource resolution and retrieval failures."""


class UnsupportedNetwork(WTTPFetchError):
    """Raised when a network selector maps to no known endpoint."""

    def __init__(self, selector: object, supported: Iterable[str]) -> None:
        self.selector = selector
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported network: {selector}. "
            f"Supported networks: {', '.join(self.supported)}"
        )


class InvalidPath(WTTPFetchError):
    """Raised when a request path cannot be normalised."""


class InvalidArgument(WTTPFetchError, ValueError):
    """Raised when a caller supplies an unusable argument."""


class NameResolutionError(WTTPFetchError):
    """Base class for naming-system failures."""


class NameNotRegistered(NameResolutionError):
    """Raised when a name has no resolver or resolves to the zero address."""

    def __init__(self, name: str, reason: str, *, chain_id: Optional[int] = None) -> None:
        self.name = name
        self.reason = reason
        self.chain_id = chain_id
        super().__init__(f"{reason} for name {name} on chain {chain_id}")


class NameResolutionFailed(NameResolutionError):
    """Raised when resolution failed on the requested network and on the fallback."""

    def __init__(
        self,
        name: str,
        primary: Optional[BaseException] = None,
        fallback: Optional[BaseException] = None,
        *,
        message: Optional[str] = None,
    ) -> None:
        self.name = name
        self.primary = primary
        self.fallback = fallback
        if message is None:
            message = f"Name resolution failed for {name}: {primary}"
            if fallback is not None:
                message += f" (root network fallback: {fallback})"
            message += (
                ". This name may not be registered or configured on the requested network."
            )
        super().__init__(message)


class BackendError(WTTPFetchError):
    """Base class for failures raised by a storage backend."""


class BackendCallError(BackendError):
    """Raised when a contract call reverts or returns undecodable data."""

    def __init__(self, method: str, message: str) -> None:
        self.method = method
        super().__init__(f"{method} failed: {message}")


class EndpointUnavailable(BackendError):
    """Raised when an RPC endpoint stays unreachable after retries."""

    def __init__(self, url: str, attempts: int, cause: Optional[BaseException] = None) -> None:
        self.url = url
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"RPC endpoint {url} unreachable after {attempts} attempt(s): {cause}")


class ChunkReadFailed(WTTPFetchError):
    """Raised when any chunk of a resource cannot be read; no partial buffer is returned."""

    def __init__(self, index: int, total: int, cause: BaseException) -> None:
        self.index = index
        self.total = total
        self.cause = cause
        super().__init__(f"Failed to read chunk {index + 1}/{total}: {cause}")
