# === NAVMAP v1 ===
# {
#   "module": "tests.resource_fetch.test_cli",
#   "purpose": "Exercise the wttp-fetch Typer commands against in-memory backends.",
#   "sections": [
#     {"id": "fetch", "name": "fetch command", "anchor": "FET", "kind": "tests"},
#     {"id": "naming", "name": "resolve/exists commands", "anchor": "NAM", "kind": "tests"},
#     {"id": "misc", "name": "networks/diagnose/config", "anchor": "MSC", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""CLI behaviour and exit codes."""

from __future__ import annotations

import json

import pytest
import yaml
from typer.testing import CliRunner

from WTTPGateway.ResourceFetch import cli as cli_module
from WTTPGateway.ResourceFetch.cli import app

runner = CliRunner()
QUIET = ["--log-level", "ERROR"]


@pytest.fixture(autouse=True)
def _use_fixture_fetcher(monkeypatch, fetcher):
    monkeypatch.setattr(cli_module, "build_fetcher", lambda settings: fetcher)


@pytest.fixture
def hosted(polygon, ethereum, register_name):
    address = ethereum.create_site()
    polygon.create_site(address)
    register_name(ethereum, "cli.eth", address)
    polygon.publish(address, "/hello.txt", b"hello from chain", chunk_size=5)
    return address


# --- fetch command -----------------------------------------------------------


def test_fetch_writes_content_to_stdout(hosted):
    result = runner.invoke(app, ["fetch", "cli.eth", "/hello.txt", *QUIET])

    assert result.exit_code == 0, result.output
    assert result.stdout == "hello from chain"


def test_fetch_writes_content_to_file(hosted, tmp_path):
    target = tmp_path / "out.txt"

    result = runner.invoke(app, ["fetch", "cli.eth", "/hello.txt", "-o", str(target), *QUIET])

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"hello from chain"


def test_fetch_head_prints_metadata(hosted):
    result = runner.invoke(app, ["fetch", hosted, "/hello.txt", "--head", *QUIET])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == 200
    assert payload["size"] == 16
    assert payload["mime_type"] == "0x7470"
    assert "chunk_ids" not in payload


def test_fetch_chunk_ids_with_range(hosted):
    result = runner.invoke(
        app, ["fetch", hosted, "/hello.txt", "--chunk-ids", "--range", "1:2", *QUIET]
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == 206
    assert payload["total_chunks"] == 4
    assert len(payload["chunk_ids"]) == 2


def test_fetch_missing_resource_exits_1(hosted):
    result = runner.invoke(app, ["fetch", hosted, "/missing.txt", *QUIET])

    assert result.exit_code == 1


def test_fetch_unknown_network_exits_2(hosted):
    result = runner.invoke(app, ["fetch", hosted, "/hello.txt", "--network", "foo", *QUIET])

    assert result.exit_code == 2


def test_fetch_bad_range_exits_2(hosted):
    result = runner.invoke(app, ["fetch", hosted, "/hello.txt", "--range", "nope", *QUIET])

    assert result.exit_code == 2


# --- resolve/exists commands -------------------------------------------------


def test_resolve_prints_address(hosted):
    result = runner.invoke(app, ["resolve", "cli.eth", *QUIET])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == hosted


def test_resolve_unknown_name_exits_2():
    result = runner.invoke(app, ["resolve", "ghost.eth", *QUIET])

    assert result.exit_code == 2


def test_exists(hosted):
    found = runner.invoke(app, ["exists", "cli.eth", "--network", "ethereum", *QUIET])
    missing = runner.invoke(app, ["exists", "nobody.eth", "--network", "ethereum", *QUIET])

    assert found.exit_code == 0
    assert found.stdout.strip() == "yes"
    assert missing.exit_code == 1
    assert missing.stdout.strip() == "no"


# --- networks/diagnose/config ------------------------------------------------


def test_networks_lists_configured_networks():
    result = runner.invoke(app, ["networks"], env={"COLUMNS": "200"})

    assert result.exit_code == 0, result.output
    for name in ("ethereum", "polygon", "sepolia", "localhost"):
        assert name in result.stdout
    assert "137" in result.stdout


def test_diagnose_reports_healthy_site(hosted):
    result = runner.invoke(app, ["diagnose", "cli.eth", "--network", "polygon", *QUIET])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["healthy"] is True
    assert payload["site"] == hosted


def test_config_show_merges_file(tmp_path):
    config = tmp_path / "wttp.yaml"
    config.write_text(yaml.safe_dump({"fetch": {"max_redirects": 2}}), encoding="utf-8")

    result = runner.invoke(app, ["config", "show", "--config", str(config)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["fetch"]["max_redirects"] == 2
    assert len(payload["config_hash"]) == 64
