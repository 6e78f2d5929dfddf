"""
Tool discovery over the local mirror.

The catalog is rebuilt on every call from the source listings: each route of
each loadable schema becomes one :class:`ToolCatalogEntry`. Free-text queries
are scored token by token against namespace, route segments, tags, schema name
and description. Shared enumeration lists (countries, chains, currencies)
feed an alias index so that a query like ``germany`` still surfaces schemas
whose parameters are built from a list containing that value.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, MutableMapping, Sequence

from .config import MirrorStore
from .errors import SchemaError
from .schemas import JsonSchemaLoader, SchemaLoader, load_shared_records
from .sources import SourceListing, list_sources

LOGGER = logging.getLogger(__name__)

__all__ = [
    "AliasIndexEntry",
    "SearchHit",
    "SearchResult",
    "ToolCatalogEntry",
    "alias_matches",
    "build_alias_index",
    "build_catalog",
    "build_index",
    "build_tool_name",
    "resolve_tool",
    "score_tool",
    "search",
    "snake_case",
]

MAX_RESULTS = 10
MAX_TOOL_NAME_LENGTH = 63
NO_MATCH_HINT = "No matches. Try broader terms or single keywords."

NAMESPACE_POINTS = 20
ROUTE_SEGMENT_POINTS = 15
TAG_POINTS = 12
SCHEMA_NAME_POINTS = 8
DESCRIPTION_POINTS = 5
ALIAS_BONUS = 10

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[:\-/]")
_ALIAS_KEYS = ("alias", "code", "alpha2")


@dataclass(slots=True, frozen=True)
class ToolCatalogEntry:
    tool_ref: str
    tool_name: str
    schema_ref: str
    route_name: str
    namespace: str
    description: str = ""
    tags: tuple[str, ...] = ()
    schema_name: str = ""
    source: str = ""

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "toolRef": self.tool_ref,
            "toolName": self.tool_name,
            "schemaRef": self.schema_ref,
            "routeName": self.route_name,
            "namespace": self.namespace,
            "description": self.description,
            "tags": list(self.tags),
            "schemaName": self.schema_name,
        }


@dataclass(slots=True, frozen=True)
class AliasIndexEntry:
    """Search terms of one shared list and the schemas that depend on it."""

    shared_ref: str
    search_terms: tuple[str, ...]
    schema_refs: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class SearchHit:
    entry: ToolCatalogEntry
    score: int

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "name": self.entry.tool_name,
            "description": self.entry.description,
            "namespace": self.entry.namespace,
            "tags": list(self.entry.tags),
            "score": self.score,
        }


@dataclass(slots=True)
class SearchResult:
    query: str
    match_count: int
    hits: list[SearchHit] = field(default_factory=list)
    hint: str | None = None

    @property
    def showing(self) -> int:
        return len(self.hits)

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "query": self.query,
            "matchCount": self.match_count,
            "showing": self.showing,
            "tools": [hit.to_dict() for hit in self.hits],
        }
        if self.hint:
            payload["hint"] = self.hint
        return payload


def snake_case(value: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"\1_\2", value).lower()


def build_tool_name(route_name: str, namespace: str) -> str:
    """Derive the public tool name, e.g. ``getSimplePrice`` + ``coinGecko`` -> ``get_simple_price_coin_gecko``."""

    name = f"{snake_case(route_name)}_{snake_case(namespace)}"
    return _SEPARATORS.sub("_", name)[:MAX_TOOL_NAME_LENGTH]


def build_catalog(sources: Iterable[SourceListing], loader: SchemaLoader | None = None) -> list[ToolCatalogEntry]:
    """Return one entry per route of every loadable schema, in source then manifest order."""

    loader = loader or JsonSchemaLoader()
    catalog: list[ToolCatalogEntry] = []
    for listing in sources:
        for ref in listing.schemas:
            schema = loader.load(listing.directory / ref.file)
            if schema is None:
                continue
            namespace = schema.namespace or ref.namespace
            for route_name, route in schema.routes.items():
                catalog.append(
                    ToolCatalogEntry(
                        tool_ref=f"{ref.ref}::{route_name}",
                        tool_name=build_tool_name(route_name, namespace),
                        schema_ref=ref.ref,
                        route_name=route_name,
                        namespace=namespace,
                        description=route.description,
                        tags=tuple(schema.tags),
                        schema_name=schema.name,
                        source=listing.name,
                    )
                )
    return catalog


def build_alias_index(sources: Iterable[SourceListing]) -> dict[str, AliasIndexEntry]:
    """Map ``<source>/<shared file>`` to its lowercase search terms and dependent schemas."""

    index: dict[str, AliasIndexEntry] = {}
    for listing in sources:
        if listing.manifest is None:
            continue
        for shared_file in listing.manifest.shared_files():
            records = load_shared_records(listing.directory / shared_file)
            if not records:
                continue
            schema_refs = tuple(ref.ref for ref in listing.schemas if shared_file in ref.shared)
            shared_ref = f"{listing.name}/{shared_file}"
            index[shared_ref] = AliasIndexEntry(
                shared_ref=shared_ref,
                search_terms=_search_terms(records),
                schema_refs=schema_refs,
            )
    return index


def build_index(
    store: MirrorStore, loader: SchemaLoader | None = None
) -> tuple[list[ToolCatalogEntry], dict[str, AliasIndexEntry]]:
    listings = list_sources(store)
    return build_catalog(listings, loader), build_alias_index(listings)


def alias_matches(tokens: Sequence[str], alias_index: Mapping[str, AliasIndexEntry] | None) -> set[str]:
    """Return the schema refs whose shared lists contain a term matching any token."""

    refs: set[str] = set()
    for entry in (alias_index or {}).values():
        if any(token in term for token in tokens for term in entry.search_terms):
            refs.update(entry.schema_refs)
    return refs


def score_tool(entry: ToolCatalogEntry, tokens: Sequence[str], alias_refs: set[str] | frozenset[str] = frozenset()) -> int:
    total = 0
    all_tokens_match = True
    for token in tokens:
        points = _token_points(entry, token)
        total += points
        if points == 0:
            all_tokens_match = False

    alias_hit = entry.schema_ref in alias_refs
    if not all_tokens_match and not alias_hit:
        return 0
    if alias_hit:
        total += ALIAS_BONUS
    return total


def search(
    query: str,
    catalog: Sequence[ToolCatalogEntry],
    alias_index: Mapping[str, AliasIndexEntry] | None = None,
    *,
    limit: int = MAX_RESULTS,
) -> SearchResult:
    """Rank ``catalog`` against ``query`` and keep the top ``limit`` hits."""

    tokens = query.lower().split()
    if not tokens:
        raise SchemaError("Missing search query.", fix="Provide: schema-mirror search <query>")

    alias_refs = alias_matches(tokens, alias_index)
    scored = [SearchHit(entry=entry, score=score_tool(entry, tokens, alias_refs)) for entry in catalog]
    matches = sorted((hit for hit in scored if hit.score > 0), key=lambda hit: hit.score, reverse=True)

    hint = None
    if not matches:
        hint = NO_MATCH_HINT
    elif len(matches) > limit:
        hint = (
            f"{len(matches)} matches found, showing top {limit} by relevance. "
            'Refine with: schema-mirror search "more specific query"'
        )
    return SearchResult(query=query, match_count=len(matches), hits=matches[:limit], hint=hint)


def resolve_tool(tool_name: str, catalog: Iterable[ToolCatalogEntry]) -> ToolCatalogEntry | None:
    """Return the first catalog entry named ``tool_name``; later duplicates are shadowed."""

    found = [entry for entry in catalog if entry.tool_name == tool_name]
    if not found:
        return None
    if len(found) > 1:
        LOGGER.warning(
            "Tool name %s is declared by %d routes; using %s",
            tool_name,
            len(found),
            found[0].tool_ref,
        )
    return found[0]


def _token_points(entry: ToolCatalogEntry, token: str) -> int:
    if entry.namespace.lower() == token:
        return NAMESPACE_POINTS
    if token in _route_segments(entry.route_name):
        return ROUTE_SEGMENT_POINTS
    if token in (tag.lower() for tag in entry.tags):
        return TAG_POINTS
    boundary = re.compile(rf"\b{re.escape(token)}\b")
    if boundary.search(entry.schema_name.lower()):
        return SCHEMA_NAME_POINTS
    if boundary.search(entry.description.lower()):
        return DESCRIPTION_POINTS
    return 0


def _route_segments(route_name: str) -> list[str]:
    return [segment for segment in _SEPARATORS.sub("_", snake_case(route_name)).split("_") if segment]


def _search_terms(records: Iterable[Mapping[str, Any]]) -> tuple[str, ...]:
    terms: list[str] = []
    for record in records:
        alias = next((record[key] for key in _ALIAS_KEYS if isinstance(record.get(key), str) and record[key]), "")
        name = record.get("name")
        if alias:
            terms.append(alias.lower())
        if isinstance(name, str) and name:
            terms.append(name.lower())
    return tuple(terms)
