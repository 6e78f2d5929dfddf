"""
Building blocks of the schema mirror.

The package groups the store handle and settings, the mirror sync engine,
the artifact cache and the tool discovery index, plus the response envelope
the CLI prints.
"""

from .cache import ArtifactCache, CacheMeta, CacheRead, CacheStatus
from .config import MirrorSettings, MirrorStore, load_settings
from .discovery import SearchResult, ToolCatalogEntry, build_alias_index, build_catalog, build_index, search
from .errors import (
    FetchError,
    InvocationError,
    MirrorError,
    ParseError,
    SchemaError,
    SourceNotFoundError,
    StoreIOError,
    ToolNotFoundError,
)
from .fetcher import RemoteFetcher
from .invocation import ToolCallResult, ToolInvoker
from .responses import ResponsePayload, WorkspaceResponse
from .sources import Source, SourceType, list_sources, load_sources
from .sync import MirrorSyncEngine, SyncProgress, SyncReport, UpdateReport

__all__ = [
    "ArtifactCache",
    "CacheMeta",
    "CacheRead",
    "CacheStatus",
    "FetchError",
    "InvocationError",
    "MirrorError",
    "MirrorSettings",
    "MirrorStore",
    "MirrorSyncEngine",
    "ParseError",
    "RemoteFetcher",
    "ResponsePayload",
    "SchemaError",
    "SearchResult",
    "Source",
    "SourceNotFoundError",
    "SourceType",
    "StoreIOError",
    "SyncProgress",
    "SyncReport",
    "ToolCallResult",
    "ToolCatalogEntry",
    "ToolInvoker",
    "ToolNotFoundError",
    "UpdateReport",
    "WorkspaceResponse",
    "build_alias_index",
    "build_catalog",
    "build_index",
    "list_sources",
    "load_settings",
    "load_sources",
    "search",
]
