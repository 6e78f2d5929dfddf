from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from schema_mirror import cli
from schema_mirror.tooling.cache import ArtifactCache
from schema_mirror.tooling.config import MirrorSettings

runner = CliRunner()
MANIFEST_URL = "https://registry.example.com/acme/registry.json"


@pytest.fixture
def settings(tmp_path, monkeypatch) -> MirrorSettings:
    settings = MirrorSettings(store_root=tmp_path / "store")
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    return settings


def test_import_registry_then_list_sources(settings, registry, monkeypatch) -> None:
    monkeypatch.setattr(cli, "RemoteFetcher", lambda **kwargs: registry.fetcher())
    registry.publish(MANIFEST_URL, {"name": "acme", "schemas": [{"namespace": "acme", "file": "a.json"}]})
    registry.publish("https://registry.example.com/acme/a.json", {"namespace": "acme", "routes": {}})

    imported = runner.invoke(cli.app, ["import-registry", MANIFEST_URL, "--json"])

    assert imported.exit_code == 0, imported.output
    payload = json.loads(imported.output)
    assert payload["status"] == "success"
    assert payload["source"] == "acme"
    assert payload["payload"]["downloaded"] == 1

    listed = runner.invoke(cli.app, ["sources", "--json"])
    assert json.loads(listed.output)["payload"]["sources"] == [
        {"name": "acme", "type": "registry", "originUrl": MANIFEST_URL, "schemaCount": 1}
    ]


def test_invalid_github_url_exits_with_fix(settings) -> None:
    result = runner.invoke(cli.app, ["import", "not-a-url", "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["status"] == "error"
    assert "github.com" in payload["fix"]


def test_import_registry_without_url_or_default(settings) -> None:
    result = runner.invoke(cli.app, ["import-registry"])

    assert result.exit_code == 2
    assert "Missing registry URL." in result.output


def test_search_on_empty_store_returns_hint(settings) -> None:
    result = runner.invoke(cli.app, ["search", "price", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.output)["payload"]
    assert payload["matchCount"] == 0
    assert payload["hint"].startswith("No matches.")


def test_cache_status_and_clear(settings) -> None:
    cache = ArtifactCache(directory=settings.store_root / "cache")
    cache.write("coingecko/getPrice.json", {"price": 1}, ttl_seconds=60)

    status = runner.invoke(cli.app, ["cache", "status", "--json"])
    entries = json.loads(status.output)["payload"]["entries"]
    assert [entry["key"] for entry in entries] == ["coingecko/getPrice.json"]

    cleared = runner.invoke(cli.app, ["cache", "clear", "--namespace", "coingecko"])
    assert cleared.exit_code == 0
    assert "Removed 1 cache entries" in cleared.output
    assert ArtifactCache(directory=settings.store_root / "cache").status().entries == []


def test_unparseable_registry_url_exits_with_fix(settings) -> None:
    result = runner.invoke(cli.app, ["import-registry", "https://exa\tmple.com/registry.json", "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["status"] == "error"
    assert payload["message"].startswith("Failed to fetch registry: Invalid URL")
    assert payload["fix"]
