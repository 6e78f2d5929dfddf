"""
Artifact cache for tool invocation results.

Entries live under ``<store>/cache`` as JSON documents keyed by
``<namespace>/<route>[/<param-hash>].json``. Reads never raise for missing or
corrupt files; those are reported as a miss. Whether an expired hit is still
usable is left to the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path, PurePosixPath
from typing import Any, Mapping, MutableMapping

from .clock import Clock, from_iso, to_iso, utcnow
from .config import MirrorStore
from .errors import CorruptCacheEntry, StoreIOError

LOGGER = logging.getLogger(__name__)

__all__ = ["ArtifactCache", "CacheMeta", "CacheRead", "CacheStatus", "CacheStatusEntry"]

PARAM_HASH_LENGTH = 12


@dataclass(slots=True, frozen=True)
class CacheMeta:
    fetched_at: str
    expires_at: str
    ttl: int
    size: int

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "fetchedAt": self.fetched_at,
            "expiresAt": self.expires_at,
            "ttl": self.ttl,
            "size": self.size,
        }

    @classmethod
    def from_mapping(cls, payload: Any) -> "CacheMeta":
        if not isinstance(payload, Mapping):
            raise CorruptCacheEntry("meta block missing")
        try:
            meta = cls(
                fetched_at=str(payload["fetchedAt"]),
                expires_at=str(payload["expiresAt"]),
                ttl=int(payload["ttl"]),
                size=int(payload.get("size") or 0),
            )
            from_iso(meta.expires_at)
        except (KeyError, TypeError, ValueError) as exc:
            raise CorruptCacheEntry(f"invalid meta block: {exc}") from exc
        return meta


@dataclass(slots=True, frozen=True)
class CacheRead:
    """Result of :meth:`ArtifactCache.read`; ``meta`` is ``None`` on a miss."""

    key: str
    data: Any = None
    meta: CacheMeta | None = None
    is_expired: bool = False

    @property
    def hit(self) -> bool:
        return self.meta is not None


@dataclass(slots=True, frozen=True)
class CacheStatusEntry:
    key: str
    ttl: int
    size: int
    fetched_at: str
    expires_at: str
    expired: bool

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "key": self.key,
            "ttl": self.ttl,
            "size": self.size,
            "fetchedAt": self.fetched_at,
            "expiresAt": self.expires_at,
            "expired": self.expired,
        }


@dataclass(slots=True)
class CacheStatus:
    entries: list[CacheStatusEntry] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self.entries)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "totalSize": self.total_size,
            "skipped": list(self.skipped),
        }


@dataclass(slots=True)
class ArtifactCache:
    """TTL-bounded result store rooted at ``directory``."""

    directory: Path
    clock: Clock = utcnow

    @classmethod
    def for_store(cls, store: MirrorStore, *, clock: Clock = utcnow) -> "ArtifactCache":
        return cls(directory=store.cache_dir, clock=clock)

    @staticmethod
    def build_key(namespace: str, route_name: str, params: Mapping[str, Any] | None = None) -> str:
        """Return the cache key for a call; parameter order does not affect the result."""

        if not params:
            return f"{namespace}/{route_name}.json"
        canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:PARAM_HASH_LENGTH]
        return f"{namespace}/{route_name}/{digest}.json"

    def read(self, key: str) -> CacheRead:
        path = self._path_for(key)
        try:
            meta, data = self._load_entry(path)
        except FileNotFoundError:
            return CacheRead(key=key)
        except CorruptCacheEntry as exc:
            LOGGER.warning("Treating corrupt cache entry %s as a miss: %s", key, exc)
            return CacheRead(key=key)
        except OSError as exc:
            LOGGER.warning("Cannot read cache entry %s, treating it as a miss: %s", key, exc)
            return CacheRead(key=key)
        return CacheRead(key=key, data=data, meta=meta, is_expired=self._is_expired(meta))

    def write(self, key: str, data: Any, ttl_seconds: int) -> CacheMeta:
        """Store ``data`` under ``key``, replacing any previous entry."""

        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative.")
        path = self._path_for(key)
        serialized = json.dumps(data, ensure_ascii=False, default=str)
        fetched = self.clock()
        meta = CacheMeta(
            fetched_at=to_iso(fetched),
            expires_at=to_iso(fetched + timedelta(seconds=ttl_seconds)),
            ttl=ttl_seconds,
            size=len(serialized.encode("utf-8")),
        )
        document = json.dumps({"meta": meta.to_dict(), "data": json.loads(serialized)}, indent=2, ensure_ascii=False)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(document, encoding="utf-8")
        except OSError as exc:
            raise StoreIOError(
                f"Failed to write cache entry {key}: {exc}",
                fix="Check permissions and free space under the store root.",
            ) from exc
        LOGGER.debug("Cached %s for %ss", key, ttl_seconds)
        return meta

    def clear(self, namespace: str | None = None) -> int:
        """Remove every entry (or one namespace) and return how many entries were deleted."""

        target = self._path_for(namespace) if namespace else self.directory
        if not target.exists():
            return 0
        removed = sum(1 for path in target.rglob("*.json") if path.is_file())
        try:
            shutil.rmtree(target)
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise StoreIOError(
                f"Failed to clear cache at {target}: {exc}",
                fix="Check permissions under the store root.",
            ) from exc
        LOGGER.info("Cleared %d cache entries from %s", removed, target)
        return removed

    def status(self) -> CacheStatus:
        result = CacheStatus()
        if not self.directory.is_dir():
            return result
        for path in sorted(self.directory.rglob("*.json")):
            key = path.relative_to(self.directory).as_posix()
            try:
                meta, _ = self._load_entry(path)
            except (OSError, CorruptCacheEntry):
                LOGGER.warning("Skipping unparsable cache entry %s", key)
                result.skipped.append(key)
                continue
            result.entries.append(
                CacheStatusEntry(
                    key=key,
                    ttl=meta.ttl,
                    size=meta.size,
                    fetched_at=meta.fetched_at,
                    expires_at=meta.expires_at,
                    expired=self._is_expired(meta),
                )
            )
        return result

    # ------------------------------------------------------------------ internals

    def _is_expired(self, meta: CacheMeta) -> bool:
        return self.clock() >= from_iso(meta.expires_at)

    def _path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if not key or relative.is_absolute() or ".." in relative.parts:
            raise StoreIOError(
                f"Cache key {key!r} points outside the cache directory",
                fix="Namespaces and route names must not contain '..' or absolute paths.",
            )
        return self.directory / relative

    @staticmethod
    def _load_entry(path: Path) -> tuple[CacheMeta, Any]:
        try:
            raw = path.read_text(encoding="utf-8")
        except IsADirectoryError as exc:
            raise CorruptCacheEntry(f"{path} is a directory") from exc
        except UnicodeDecodeError as exc:
            raise CorruptCacheEntry("entry is not UTF-8 text") from exc
        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise CorruptCacheEntry(f"invalid JSON: {exc}") from exc
        if not isinstance(document, Mapping) or "data" not in document:
            raise CorruptCacheEntry("entry must be an object with meta and data")
        return CacheMeta.from_mapping(document.get("meta")), document["data"]
