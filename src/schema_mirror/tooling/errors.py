"""Error taxonomy shared by the mirror, cache, and discovery modules."""

from __future__ import annotations

__all__ = [
    "CorruptCacheEntry",
    "FetchError",
    "InvocationError",
    "MirrorError",
    "ParseError",
    "SchemaError",
    "SourceNotFoundError",
    "StoreIOError",
    "ToolNotFoundError",
]


class MirrorError(RuntimeError):
    """Base class for failures that abort a whole operation.

    Every instance carries a human-readable message and, where one exists, an
    actionable ``fix`` string that the CLI surfaces next to the error.
    """

    def __init__(self, message: str, *, fix: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.fix = fix


class FetchError(MirrorError):
    """Raised when a remote resource cannot be retrieved (network, timeout, non-2xx)."""


class ParseError(MirrorError):
    """Raised when a remote manifest is not valid JSON."""


class SchemaError(MirrorError):
    """Raised when a manifest (or an import argument) lacks required fields."""


class StoreIOError(MirrorError):
    """Raised when the local store cannot be read or written."""


class SourceNotFoundError(MirrorError):
    """Raised when an operation names a source that is not in the store."""


class CorruptCacheEntry(Exception):
    """Raised internally when a cache file cannot be decoded; always handled as a miss."""


class ToolNotFoundError(MirrorError):
    """Raised when no catalog entry carries the requested tool name."""


class InvocationError(MirrorError):
    """Raised when a tool cannot be invoked (unloadable schema, missing server params, engine failure)."""
