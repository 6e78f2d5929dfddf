"""
Cached tool invocation.

The execution engine that actually performs a route's HTTP call lives outside
this package; callers hand it in as an ``invoke`` callable. This module
resolves the tool against the catalog, checks required server parameters and
wraps the call with the artifact cache for routes that opt in through their
``preload`` block.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, MutableMapping, Sequence

from .cache import ArtifactCache, CacheMeta
from .config import DEFAULT_CACHE_TTL, MirrorStore
from .discovery import ToolCatalogEntry, build_catalog, resolve_tool
from .errors import InvocationError, ToolNotFoundError
from .schemas import JsonSchemaLoader, LoadedSchema, SchemaLoader
from .sources import list_sources

LOGGER = logging.getLogger(__name__)

__all__ = ["CacheInfo", "InvocationOutcome", "ToolCallResult", "ToolInvoker"]


@dataclass(slots=True)
class InvocationOutcome:
    ok: bool
    messages: list[str] = field(default_factory=list)
    data: Any = None

    @classmethod
    def coerce(cls, value: "InvocationOutcome | Mapping[str, Any]") -> "InvocationOutcome":
        if isinstance(value, InvocationOutcome):
            return value
        if isinstance(value, Mapping):
            return cls(
                ok=bool(value.get("ok", value.get("status", False))),
                messages=[str(message) for message in value.get("messages") or []],
                data=value.get("data"),
            )
        raise TypeError(f"Unsupported invocation result: {type(value).__name__}")


Invoker = Callable[[LoadedSchema, str, Mapping[str, Any], Mapping[str, str]], "InvocationOutcome | Mapping[str, Any]"]


@dataclass(slots=True, frozen=True)
class CacheInfo:
    key: str
    hit: bool = False
    stored: bool = False
    fetched_at: str | None = None
    expires_at: str | None = None

    @classmethod
    def from_meta(cls, key: str, meta: CacheMeta, *, hit: bool, stored: bool) -> "CacheInfo":
        return cls(key=key, hit=hit, stored=stored, fetched_at=meta.fetched_at, expires_at=meta.expires_at)

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {"key": self.key, "hit": self.hit, "stored": self.stored}
        if self.fetched_at:
            payload["fetchedAt"] = self.fetched_at
        if self.expires_at:
            payload["expiresAt"] = self.expires_at
        return payload


@dataclass(slots=True)
class ToolCallResult:
    tool_name: str
    tool_ref: str
    ok: bool
    data: Any = None
    messages: list[str] = field(default_factory=list)
    cache: CacheInfo | None = None

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "toolName": self.tool_name,
            "toolRef": self.tool_ref,
            "ok": self.ok,
            "data": self.data,
            "messages": list(self.messages),
        }
        if self.cache is not None:
            payload["cache"] = self.cache.to_dict()
        return payload


@dataclass(slots=True)
class ToolInvoker:
    """Resolve a tool by name and run it through ``invoke``, consulting the cache when allowed."""

    store: MirrorStore
    invoke: Invoker
    cache: ArtifactCache | None = None
    loader: SchemaLoader = field(default_factory=JsonSchemaLoader)
    default_ttl: int = DEFAULT_CACHE_TTL

    def __post_init__(self) -> None:
        if self.cache is None:
            self.cache = ArtifactCache.for_store(self.store)

    def call_tool(
        self,
        tool_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        server_params: Mapping[str, str] | None = None,
        no_cache: bool = False,
        refresh: bool = False,
        catalog: Sequence[ToolCatalogEntry] | None = None,
    ) -> ToolCallResult:
        params = dict(params or {})
        server_params = dict(server_params or {})
        if catalog is None:
            catalog = build_catalog(list_sources(self.store), self.loader)

        entry = resolve_tool(tool_name, catalog)
        if entry is None:
            raise ToolNotFoundError(
                f'Tool "{tool_name}" not found.',
                fix="Run `schema-mirror search <query>` to find available tool names.",
            )

        schema = self.loader.load(self.store.schemas_dir / entry.schema_ref)
        if schema is None or entry.route_name not in schema.routes:
            raise InvocationError(
                f"Cannot load route {entry.tool_ref}",
                fix="Run `schema-mirror update` to refresh the mirrored schema.",
            )
        validation = self.loader.validate(schema)
        if not validation.ok:
            raise InvocationError(
                f"Schema for {entry.tool_ref} is invalid",
                fix="; ".join(validation.messages),
            )
        missing = [name for name in schema.required_server_params if not server_params.get(name)]
        if missing:
            raise InvocationError(
                f"Missing required server parameters for {tool_name}: {', '.join(missing)}",
                fix=f"Provide values for: {', '.join(missing)}",
            )

        preload = schema.routes[entry.route_name].preload
        if no_cache or preload is None or not preload.enabled:
            outcome = self._invoke(entry, schema, params, server_params)
            return self._result(entry, outcome)

        cache = self.cache or ArtifactCache.for_store(self.store)
        key = cache.build_key(entry.namespace, entry.route_name, params)
        if not refresh:
            cached = cache.read(key)
            if cached.meta is not None and not cached.is_expired:
                LOGGER.debug("Cache hit for %s", key)
                return ToolCallResult(
                    tool_name=entry.tool_name,
                    tool_ref=entry.tool_ref,
                    ok=True,
                    data=cached.data,
                    cache=CacheInfo.from_meta(key, cached.meta, hit=True, stored=False),
                )

        outcome = self._invoke(entry, schema, params, server_params)
        if not outcome.ok:
            return self._result(entry, outcome, cache=CacheInfo(key=key))
        ttl = preload.ttl if preload.ttl is not None else self.default_ttl
        meta = cache.write(key, outcome.data, ttl)
        return self._result(entry, outcome, cache=CacheInfo.from_meta(key, meta, hit=False, stored=True))

    def _invoke(
        self,
        entry: ToolCatalogEntry,
        schema: LoadedSchema,
        params: Mapping[str, Any],
        server_params: Mapping[str, str],
    ) -> InvocationOutcome:
        LOGGER.debug("Invoking %s", entry.tool_ref)
        try:
            raw = self.invoke(schema, entry.route_name, params, server_params)
        except Exception as exc:  # pragma: no cover - engine-specific failures
            raise InvocationError(
                f"Tool execution failed: {exc}",
                fix="Check the tool parameters and server parameters.",
            ) from exc
        return InvocationOutcome.coerce(raw)

    @staticmethod
    def _result(entry: ToolCatalogEntry, outcome: InvocationOutcome, *, cache: CacheInfo | None = None) -> ToolCallResult:
        return ToolCallResult(
            tool_name=entry.tool_name,
            tool_ref=entry.tool_ref,
            ok=outcome.ok,
            data=outcome.data,
            messages=list(outcome.messages),
            cache=cache,
        )
