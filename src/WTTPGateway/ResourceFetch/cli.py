# === NAVMAP v1 ===
# {
#   "module": "WTTPGateway.ResourceFetch.cli",
#   "purpose": "Typer CLI for fetching resources, resolving names, and inspecting configuration.",
#   "sections": [
#     {"id": "build-fetcher", "name": "build_fetcher", "anchor": "function-build-fetcher", "kind": "function"},
#     {"id": "fetch", "name": "fetch", "anchor": "function-fetch", "kind": "function"},
#     {"id": "resolve", "name": "resolve", "anchor": "function-resolve", "kind": "function"},
#     {"id": "exists", "name": "exists", "anchor": "function-exists", "kind": "function"},
#     {"id": "networks", "name": "networks", "anchor": "function-networks", "kind": "function"},
#     {"id": "diagnose", "name": "diagnose", "anchor": "function-diagnose", "kind": "function"},
#     {"id": "config-show", "name": "config_show", "anchor": "function-config-show", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command line interface for the resource fetcher.

Usage:
    wttp-fetch fetch example.eth /docs/ --network polygon
    wttp-fetch fetch 0xSite /index.html --head
    wttp-fetch resolve example.eth
    wttp-fetch networks
    wttp-fetch config show

Exit codes: 0 on success, 1 when a fetch ends with a non-2xx status, 2 on
hard errors (unsupported network, bad path, name resolution, chunk reads,
invalid configuration).
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from .api import ResourceFetcher
from .diagnostics import diagnose_site
from .errors import WTTPFetchError
from .logging_utils import setup_logging
from .models import ChunkRange, FetchResult, RequestOptions
from .settings import WTTPSettings, load_settings

LOGGER = logging.getLogger(__name__)

app = typer.Typer(
    name="wttp-fetch",
    help="Fetch resources from WTTP sites across supported networks.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration inspection", no_args_is_help=True)
app.add_typer(config_app, name="config")

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Config file path (YAML/JSON)")
LOG_LEVEL_OPTION = typer.Option(None, "--log-level", help="Override logging level")
NETWORK_OPTION = typer.Option(None, "--network", "-n", help="Network name, chain id, or RPC URL")


def build_fetcher(settings: WTTPSettings) -> ResourceFetcher:
    """Construct the fetcher used by commands."""

    return ResourceFetcher(settings)


def _prepare(config: Optional[Path], log_level: Optional[str]) -> WTTPSettings:
    settings = load_settings(config)
    setup_logging(
        level=log_level or settings.logging.level,
        json_output=settings.logging.json_output,
        log_dir=settings.logging.log_dir,
    )
    return settings


@contextmanager
def _hard_errors() -> Iterator[None]:
    try:
        yield
    except (WTTPFetchError, ValueError) as exc:
        typer.secho(f"Error: {exc}", fg="red", err=True)
        raise typer.Exit(2)


def _summary(result: FetchResult, include_chunks: bool) -> Dict[str, Any]:
    head = result.head
    payload: Dict[str, Any] = {
        "status": result.status,
        "path": result.path,
        "mime_type": head.metadata.properties.mime_type,
        "charset": head.metadata.properties.charset,
        "size": head.metadata.size,
        "version": head.metadata.version,
        "last_modified": head.metadata.last_modified,
        "etag": head.etag,
        "redirects": [
            {"from": hop.source, "to": hop.target, "status": hop.status}
            for hop in result.redirects
        ],
    }
    if head.is_redirect:
        payload["location"] = head.redirect_location
    if include_chunks:
        payload["total_chunks"] = result.location.total_chunks
        payload["chunk_ids"] = list(result.chunk_ids)
    return payload


@app.command()
def fetch(
    site: str = typer.Argument(..., help="Site address or name (e.g. example.eth)"),
    path: str = typer.Argument("/", help="Resource path"),
    network: Optional[str] = NETWORK_OPTION,
    head: bool = typer.Option(False, "--head", help="Only fetch response metadata"),
    chunk_ids: bool = typer.Option(False, "--chunk-ids", help="Locate chunks without downloading"),
    max_redirects: Optional[int] = typer.Option(None, "--max-redirects", min=0),
    chunk_range: Optional[str] = typer.Option(None, "--range", help="Chunk range START:END"),
    if_none_match: Optional[str] = typer.Option(None, "--if-none-match", help="32-byte hex etag"),
    if_modified_since: int = typer.Option(0, "--if-modified-since", min=0),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write content to file"),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
) -> None:
    """Fetch a resource and write its content to stdout or ``--output``."""

    with _hard_errors():
        settings = _prepare(config, log_level)
        fetcher = build_fetcher(settings)
        overrides: Dict[str, Any] = {
            "head_only": head,
            "chunk_ids_only": chunk_ids,
            "if_modified_since": if_modified_since,
        }
        if max_redirects is not None:
            overrides["max_redirects"] = max_redirects
        if chunk_range:
            overrides["chunk_range"] = ChunkRange.parse(chunk_range)
        if if_none_match:
            overrides["if_none_match"] = if_none_match
        options: RequestOptions = fetcher.default_options(**overrides)
        result = fetcher.fetch(site, path, network, options)

    if head or chunk_ids:
        typer.echo(json.dumps(_summary(result, include_chunks=chunk_ids), indent=2))
    elif result.content is not None:
        if output is not None:
            output.write_bytes(result.content)
            typer.echo(f"wrote {len(result.content)} bytes to {output}", err=True)
        else:
            typer.echo(result.content, nl=False)

    if not 200 <= result.status < 300:
        typer.secho(f"{result.path}: status {result.status}", fg="yellow", err=True)
        raise typer.Exit(1)


@app.command()
def resolve(
    name: str = typer.Argument(..., help="Name to resolve"),
    network: Optional[str] = NETWORK_OPTION,
    no_fallback: bool = typer.Option(False, "--no-fallback", help="Disable root fallback"),
    config: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
) -> None:
    """Resolve a name to its site address."""

    with _hard_errors():
        fetcher = build_fetcher(_prepare(config, log_level))
        address = fetcher.resolve_name(name, network, fallback_to_root=not no_fallback)
    typer.echo(address)


@app.command()
def exists(
    name: str = typer.Argument(..., help="Name to check"),
    network: Optional[str] = NETWORK_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
) -> None:
    """Report whether a name has an owner record; exits 1 when it does not."""

    with _hard_errors():
        fetcher = build_fetcher(_prepare(config, log_level))
        found = fetcher.name_exists(name, network)
    typer.echo("yes" if found else "no")
    if not found:
        raise typer.Exit(1)


@app.command()
def networks(
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """List configured networks."""

    with _hard_errors():
        settings = load_settings(config)
    table = Table(title="Networks")
    table.add_column("Name")
    table.add_column("Chain ID", justify="right")
    table.add_column("RPC URL")
    for name in sorted(settings.networks):
        entry = settings.networks[name]
        marker = " (default)" if name == settings.fetch.default_network else ""
        table.add_row(f"{name}{marker}", str(entry.chain_id), entry.rpc_url)
    Console().print(table)


@app.command()
def diagnose(
    site: str = typer.Argument(..., help="Site address or name"),
    network: Optional[str] = NETWORK_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    log_level: Optional[str] = LOG_LEVEL_OPTION,
) -> None:
    """Run connectivity checks against a site; exits 1 when any check fails."""

    with _hard_errors():
        fetcher = build_fetcher(_prepare(config, log_level))
        endpoint = fetcher.registry.get_endpoint(network)
        address = fetcher.resolver.resolve_site_identifier(site, endpoint)
        report = diagnose_site(endpoint, address)
    typer.echo(json.dumps(report.as_dict(), indent=2))
    if not report.healthy:
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Print the merged configuration and its hash."""

    with _hard_errors():
        settings = load_settings(config)
    payload = settings.model_dump(mode="json")
    payload["config_hash"] = settings.config_hash()
    typer.echo(json.dumps(payload, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
