from __future__ import annotations

import json

import pytest

from schema_mirror.tooling.cache import ArtifactCache
from schema_mirror.tooling.errors import InvocationError, ToolNotFoundError
from schema_mirror.tooling.invocation import InvocationOutcome, ToolInvoker

SERVER_PARAMS = {"API_KEY": "secret"}


class RecordingEngine:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.ok = True

    def __call__(self, schema, route_name, user_params, server_params):
        self.calls.append((route_name, dict(user_params)))
        if not self.ok:
            return {"ok": False, "messages": ["upstream said no"], "data": None}
        return InvocationOutcome(ok=True, data={"route": route_name, "call": len(self.calls)})


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def invoker(store, clock, engine) -> ToolInvoker:
    source_dir = store.source_dir("acme")
    source_dir.mkdir(parents=True)
    (source_dir / "coingecko.json").write_text(
        json.dumps(
            {
                "namespace": "coingecko",
                "requiredServerParams": ["API_KEY"],
                "routes": {
                    "getPrice": {"description": "Coin price", "preload": {"enabled": True, "ttl": 60}},
                    "ping": {"description": "Health check"},
                },
            }
        ),
        encoding="utf-8",
    )
    return ToolInvoker(store=store, invoke=engine, cache=ArtifactCache.for_store(store, clock=clock))


def test_preload_route_is_served_from_cache_until_it_expires(invoker, engine, clock) -> None:
    first = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)
    second = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)

    assert first.cache.stored and not first.cache.hit
    assert second.cache.hit
    assert second.cache.expires_at == "2025-03-01T12:01:00.000Z"
    assert second.data == first.data
    assert len(engine.calls) == 1

    clock.advance(60)
    third = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)

    assert third.cache.stored
    assert len(engine.calls) == 2


def test_refresh_ignores_stored_entry_and_no_cache_skips_cache(invoker, engine) -> None:
    invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)

    refreshed = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS, refresh=True)
    uncached = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS, no_cache=True)

    assert refreshed.cache.stored and not refreshed.cache.hit
    assert uncached.cache is None
    assert len(engine.calls) == 3
    assert "cache" not in uncached.to_dict()


def test_routes_without_preload_bypass_the_cache(invoker, engine, store) -> None:
    result = invoker.call_tool("ping_coingecko", server_params=SERVER_PARAMS)

    assert result.ok
    assert result.cache is None
    assert not store.cache_dir.exists()


def test_failed_invocations_are_not_stored(invoker, engine) -> None:
    engine.ok = False

    failed = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)
    engine.ok = True
    retried = invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)

    assert not failed.ok
    assert failed.messages == ["upstream said no"]
    assert not failed.cache.stored
    assert retried.cache.stored
    assert len(engine.calls) == 2


def test_missing_server_params_fail_with_fix(invoker, engine) -> None:
    with pytest.raises(InvocationError) as excinfo:
        invoker.call_tool("get_price_coingecko", {"id": "btc"})

    assert "API_KEY" in excinfo.value.fix
    assert engine.calls == []


def test_unknown_tool_is_reported(invoker) -> None:
    with pytest.raises(ToolNotFoundError):
        invoker.call_tool("nope_nope", server_params=SERVER_PARAMS)


def test_invalid_schema_is_rejected_before_invoking(invoker, engine, store) -> None:
    (store.source_dir("acme") / "coingecko.json").write_text(
        json.dumps(
            {
                "namespace": "coingecko",
                "requiredServerParams": ["API_KEY", " "],
                "routes": {"getPrice": {"description": "Coin price"}},
            }
        ),
        encoding="utf-8",
    )

    with pytest.raises(InvocationError) as excinfo:
        invoker.call_tool("get_price_coingecko", {"id": "btc"}, server_params=SERVER_PARAMS)

    assert "is invalid" in excinfo.value.message
    assert "blank required server parameter name" in excinfo.value.fix
    assert engine.calls == []
