from __future__ import annotations

import json

import pytest

from schema_mirror.tooling.cache import ArtifactCache
from schema_mirror.tooling.errors import StoreIOError


def test_build_key_is_independent_of_parameter_order() -> None:
    first = ArtifactCache.build_key("coingecko", "getPrice", {"b": 2, "a": 1})
    second = ArtifactCache.build_key("coingecko", "getPrice", {"a": 1, "b": 2})

    assert first == second
    namespace, route, file_name = first.split("/")
    assert (namespace, route) == ("coingecko", "getPrice")
    assert len(file_name) == len("0123456789ab.json")


def test_build_key_without_params_uses_route_file() -> None:
    assert ArtifactCache.build_key("coingecko", "ping", {}) == "coingecko/ping.json"
    assert ArtifactCache.build_key("coingecko", "ping", None) == "coingecko/ping.json"
    assert ArtifactCache.build_key("coingecko", "getPrice", {"id": "btc"}) != ArtifactCache.build_key(
        "coingecko", "getPrice", {"id": "eth"}
    )


def test_entry_expires_once_clock_passes_ttl(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    key = cache.build_key("coingecko", "getPrice", {"id": "btc"})

    meta = cache.write(key, {"price": 1}, ttl_seconds=1)

    assert meta.fetched_at == "2025-03-01T12:00:00.000Z"
    assert meta.expires_at == "2025-03-01T12:00:01.000Z"
    fresh = cache.read(key)
    assert fresh.hit and fresh.data == {"price": 1}
    assert fresh.is_expired is False

    clock.advance(1)
    assert cache.read(key).is_expired is True


def test_write_overwrites_previous_entry(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    cache.write("ns/route.json", [1], ttl_seconds=60)
    clock.advance(5)
    meta = cache.write("ns/route.json", [1, 2], ttl_seconds=30)

    entry = json.loads((store.cache_dir / "ns" / "route.json").read_text(encoding="utf-8"))
    assert entry["data"] == [1, 2]
    assert entry["meta"] == meta.to_dict()
    assert meta.size == len("[1, 2]")


def test_missing_and_corrupt_entries_read_as_miss(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    corrupt = store.cache_dir / "ns" / "broken.json"
    corrupt.parent.mkdir(parents=True)
    corrupt.write_text("{half", encoding="utf-8")

    assert cache.read("ns/absent.json").hit is False
    broken = cache.read("ns/broken.json")
    assert broken.hit is False
    assert broken.data is None


def test_unreadable_entry_reads_as_miss(store, clock, monkeypatch) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    store.cache_dir.mkdir(parents=True)
    (store.cache_dir / "ns").write_text("not a directory", encoding="utf-8")

    assert cache.read("ns/blocked.json").hit is False

    cache.write("other/entry.json", {"ok": True}, ttl_seconds=60)

    def denied(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(ArtifactCache, "_load_entry", staticmethod(denied))

    assert cache.read("other/entry.json").hit is False


def test_status_skips_unparsable_entries_and_sums_sizes(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    cache.write("a/one.json", "x", ttl_seconds=10)
    cache.write("b/two.json", {"k": "v"}, ttl_seconds=0)
    (store.cache_dir / "b" / "junk.json").write_text("not json", encoding="utf-8")

    status = cache.status()

    assert [entry.key for entry in status.entries] == ["a/one.json", "b/two.json"]
    assert [entry.expired for entry in status.entries] == [False, True]
    assert status.skipped == ["b/junk.json"]
    assert status.total_size == len('"x"') + len('{"k": "v"}')
    assert status.to_dict()["totalSize"] == status.total_size


def test_clear_removes_namespace_or_everything(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)
    cache.write("a/one.json", 1, ttl_seconds=10)
    cache.write("b/two.json", 2, ttl_seconds=10)

    assert cache.clear("a") == 1
    assert not (store.cache_dir / "a").exists()
    assert cache.read("b/two.json").hit

    assert cache.clear() == 1
    assert cache.clear() == 0
    assert cache.clear("never-written") == 0
    assert cache.status().entries == []


def test_keys_cannot_escape_the_cache_directory(store, clock) -> None:
    cache = ArtifactCache.for_store(store, clock=clock)

    with pytest.raises(StoreIOError):
        cache.write("../escape.json", 1, ttl_seconds=10)
