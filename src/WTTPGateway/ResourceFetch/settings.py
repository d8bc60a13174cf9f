# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.settings",
#   "purpose": "Pydantic v2 settings for networks, naming registries, HTTP, retries, and logging.",
#   "sections": [
#     {"id": "networkconfig", "name": "NetworkConfig", "anchor": "class-networkconfig", "kind": "class"},
#     {"id": "namingconfig", "name": "NamingConfig", "anchor": "class-namingconfig", "kind": "class"},
#     {"id": "httpsettings", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "retrysettings", "name": "RetrySettings", "anchor": "class-retrysettings", "kind": "class"},
#     {"id": "fetchdefaults", "name": "FetchDefaults", "anchor": "class-fetchdefaults", "kind": "class"},
#     {"id": "loggingsettings", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "wttpsettings", "name": "WTTPSettings", "anchor": "class-wttpsettings", "kind": "class"},
#     {"id": "load-settings", "name": "load_settings", "anchor": "function-load-settings", "kind": "function"},
#     {"id": "get-settings", "name": "get_settings", "anchor": "function-get-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 Settings for ResourceFetch

Provides typed configuration for every collaborator of the resource fetcher:
- Static network table (symbolic name -> chain id + default RPC URL)
- Naming registry addresses per chain id
- HTTP client timeouts and pool limits for JSON-RPC endpoints
- Retry and backoff policy for transport failures
- Fetch defaults (default/root network, redirect limit, index candidates)
- Logging configuration

Composition follows file < environment < explicit overrides. Environment
variables use the ``WTTP_`` prefix with double-underscore nesting:

  WTTP_HTTP__READ_TIMEOUT=30          ->  http.read_timeout=30
  WTTP_FETCH__DEFAULT_NETWORK=sepolia ->  fetch.default_network="sepolia"
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidArgument

__all__ = [
    "NetworkConfig",
    "NamingConfig",
    "HttpSettings",
    "RetrySettings",
    "FetchDefaults",
    "LoggingSettings",
    "WTTPSettings",
    "DEFAULT_NETWORKS",
    "DEFAULT_NAMING",
    "load_settings",
    "get_settings",
    "reset_settings",
]

_LOGGER = logging.getLogger(__name__)

# ============================================================================
# Static Tables
# ============================================================================

DEFAULT_NETWORKS: Dict[str, Dict[str, Any]] = {
    "polygon": {"chain_id": 137, "rpc_url": "https://polygon-bor-rpc.publicnode.com"},
    "ethereum": {"chain_id": 1, "rpc_url": "https://eth.llamarpc.com"},
    "sepolia": {
        "chain_id": 11155111,
        "rpc_url": "https://ethereum-sepolia-rpc.publicnode.com",
    },
    "localhost": {"chain_id": 31337, "rpc_url": "http://127.0.0.1:8545"},
}

DEFAULT_NAMING: Dict[int, Dict[str, str]] = {
    1: {
        "registry_address": "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e",
        "public_resolver_address": "0x231b0Ee14048e9dCcD1d247744d114a4EB5E8E63",
    },
    11155111: {
        "registry_address": "0x00000000000C2E074eC69A0dFb2997BA6C7d2e1e",
        "public_resolver_address": "0x8FADE66B79cC9f707aB26799354482EB93a5B7dD",
    },
}

# ============================================================================
# Section Models
# ============================================================================


class NetworkConfig(BaseModel):
    """A symbolic network entry: chain id plus the default RPC endpoint."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    chain_id: int = Field(description="Numeric chain identifier")
    rpc_url: str = Field(description="Default JSON-RPC endpoint URL")

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("rpc_url must be an http:// or https:// URL")
        return v


class NamingConfig(BaseModel):
    """Naming registry deployment on a single chain."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    registry_address: str = Field(description="Address of the naming registry contract")
    public_resolver_address: Optional[str] = Field(
        default=None, description="Well-known public resolver (informational)"
    )


class HttpSettings(BaseModel):
    """HTTP client settings used by JSON-RPC endpoints."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    connect_timeout: float = Field(default=5.0, gt=0.0, le=60.0)
    read_timeout: float = Field(default=20.0, gt=0.0, le=300.0)
    write_timeout: float = Field(default=10.0, gt=0.0, le=300.0)
    pool_timeout: float = Field(default=5.0, gt=0.0, le=60.0)
    max_connections: int = Field(default=16, ge=1, le=512)
    max_keepalive_connections: int = Field(default=8, ge=0, le=512)
    user_agent: str = Field(default="WTTPGateway-ResourceFetch/0.1")


class RetrySettings(BaseModel):
    """Retry policy for transport-level JSON-RPC failures."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, description="Maximum attempts per RPC call")
    multiplier: float = Field(default=0.5, description="Exponential backoff multiplier (s)")
    max_wait: float = Field(default=8.0, description="Upper bound for one backoff sleep (s)")
    retry_statuses: List[int] = Field(
        default=[429, 500, 502, 503, 504],
        description="HTTP status codes from the RPC endpoint that trigger retry",
    )

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("multiplier", "max_wait")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("wait values must be >= 0")
        return v


class FetchDefaults(BaseModel):
    """Defaults applied to every fetch unless the request overrides them."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    default_network: str = Field(default="polygon")
    root_network: str = Field(
        default="ethereum", description="Network used for naming fallback resolution"
    )
    max_redirects: int = Field(default=5, ge=0, le=50)
    index_candidates: List[str] = Field(
        default=["index.html", "index.htm", "index.md", "index.txt"],
        description="Directory index documents probed after a 404, in order",
    )
    name_suffixes: List[str] = Field(
        default=[".eth"], description="Suffixes marking a site identifier as a name"
    )

    @field_validator("index_candidates")
    @classmethod
    def validate_candidates(cls, v: List[str]) -> List[str]:
        if any("/" in candidate or not candidate for candidate in v):
            raise ValueError("index candidates must be bare, non-empty file names")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_output: bool = Field(default=False, description="Emit JSON lines on the console")
    log_dir: Optional[Path] = Field(default=None, description="Directory for rotated JSONL logs")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid logging level: {v}")
        return level


# ============================================================================
# Root Settings
# ============================================================================


class WTTPSettings(BaseSettings):
    """Root settings object; the single source of truth for a fetcher."""

    model_config = SettingsConfigDict(
        env_prefix="WTTP_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    networks: Dict[str, NetworkConfig] = Field(
        default_factory=lambda: {
            name: NetworkConfig(**entry) for name, entry in DEFAULT_NETWORKS.items()
        }
    )
    naming: Dict[int, NamingConfig] = Field(
        default_factory=lambda: {
            chain_id: NamingConfig(**entry) for chain_id, entry in DEFAULT_NAMING.items()
        }
    )
    http: HttpSettings = Field(default_factory=HttpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    fetch: FetchDefaults = Field(default_factory=FetchDefaults)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("networks")
    @classmethod
    def validate_networks(cls, v: Dict[str, NetworkConfig]) -> Dict[str, NetworkConfig]:
        if not v:
            raise ValueError("at least one network must be configured")
        return {name.strip().lower(): entry for name, entry in v.items()}

    def chain_id_table(self) -> Dict[int, str]:
        """Map chain ids back to their symbolic network names."""

        return {entry.chain_id: name for name, entry in self.networks.items()}

    def config_hash(self) -> str:
        """Compute a deterministic hash of the configuration for provenance tracking."""

        payload = json.dumps(self.model_dump(mode="json"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ============================================================================
# Loading
# ============================================================================


def _read_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON settings file."""

    if not path.exists():
        raise InvalidArgument(f"Config file not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
    elif path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        raise InvalidArgument(f"Unsupported config format: {path.suffix}")
    if not isinstance(data, dict):
        raise InvalidArgument(f"Config file {path} must contain a mapping")
    return data


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_settings(
    path: Optional[Path | str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> WTTPSettings:
    """Build settings from an optional file, the environment, and overrides.

    Args:
        path: Optional YAML/JSON file providing base values.
        overrides: Programmatic overrides (for example from CLI options).

    Returns:
        Validated :class:`WTTPSettings`.

    Raises:
        InvalidArgument: If the file is missing or malformed.
        pydantic.ValidationError: If the merged values fail validation.
    """

    data: dict[str, Any] = {}
    if path is not None:
        data = _read_file(Path(path))
        _LOGGER.debug("loaded settings file", extra={"stage": "config", "path": str(path)})

    env_values = WTTPSettings().model_dump(exclude_unset=True)
    data = _deep_merge(data, env_values)
    if overrides:
        data = _deep_merge(data, overrides)
    return WTTPSettings(**data)


_settings: Optional[WTTPSettings] = None
_settings_lock = threading.Lock()


def get_settings() -> WTTPSettings:
    """Return the process-wide settings, loading them from the environment on first use."""

    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = load_settings()
    return _settings


def reset_settings(settings: Optional[WTTPSettings] = None) -> None:
    """Replace (or drop) the process-wide settings; used by tests and the CLI."""

    global _settings
    with _settings_lock:
        _settings = settings
