# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch",
#   "purpose": "Package initialization for WTTPGateway.ResourceFetch",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for resolving and retrieving resources from WTTP sites.

The facade exposes the fetcher, its request and result types, and the
exception hierarchy. Exports are imported lazily so lightweight helpers
(paths, content decoding) can be used without loading the HTTP stack.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any, Dict

__version__ = "0.1.0"

_EXPORTS: Dict[str, str] = {
    "ResourceFetcher": "api",
    "fetch_resource": "api",
    "RequestOptions": "models",
    "FetchResult": "models",
    "ResponseHead": "models",
    "ResourceLocation": "models",
    "ChunkRange": "models",
    "RedirectHop": "models",
    "EndpointRegistry": "networks",
    "Endpoint": "networks",
    "NameResolver": "naming",
    "ResourceProtocolClient": "protocol",
    "ChunkReassembler": "reassembly",
    "normalize_path": "paths",
    "is_text_content_type": "content",
    "decode_content": "content",
    "diagnose_site": "diagnostics",
    "WTTPSettings": "settings",
    "load_settings": "settings",
    "WTTPFetchError": "errors",
    "UnsupportedNetwork": "errors",
    "InvalidPath": "errors",
    "InvalidArgument": "errors",
    "NameResolutionError": "errors",
    "NameNotRegistered": "errors",
    "NameResolutionFailed": "errors",
    "BackendError": "errors",
    "EndpointUnavailable": "errors",
    "ChunkReadFailed": "errors",
}

__all__ = [*_EXPORTS, "__version__"]

if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .api import ResourceFetcher, fetch_resource
    from .errors import (
        BackendError,
        ChunkReadFailed,
        EndpointUnavailable,
        InvalidArgument,
        InvalidPath,
        NameNotRegistered,
        NameResolutionError,
        NameResolutionFailed,
        UnsupportedNetwork,
        WTTPFetchError,
    )
    from .models import (
        ChunkRange,
        FetchResult,
        RedirectHop,
        RequestOptions,
        ResourceLocation,
        ResponseHead,
    )


def __getattr__(name: str) -> Any:
    """Lazily import exports on first access."""

    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    value = getattr(import_module(f"{__name__}.{module_name}"), name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
