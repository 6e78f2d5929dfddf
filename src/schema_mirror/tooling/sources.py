"""
Source bookkeeping for the local mirror.

Each source is a directory under ``<store>/schemas``. Import metadata
(type, origin, counts, timestamps) is kept in the store-level ``config.json``
under the ``sources`` key. Sources are created on first import, updated on
every sync and never removed automatically.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, MutableMapping

from .config import MirrorStore
from .errors import StoreIOError
from .manifest import RegistryManifest, read_local_manifest

LOGGER = logging.getLogger(__name__)

__all__ = [
    "SchemaRef",
    "Source",
    "SourceListing",
    "SourceType",
    "list_sources",
    "load_sources",
    "save_source",
]

SCHEMA_SUFFIXES = (".json", ".mjs", ".js")


class SourceType(str, Enum):
    BUILTIN = "builtin"
    GITHUB = "github"
    REGISTRY = "registry"
    LOCAL = "local"

    @property
    def is_remote(self) -> bool:
        return self in {SourceType.GITHUB, SourceType.REGISTRY}


@dataclass(slots=True)
class Source:
    """Persisted record describing where a mirrored source came from."""

    name: str
    type: SourceType = SourceType.BUILTIN
    origin_url: str | None = None
    manifest_url: str | None = None
    schema_count: int = 0
    imported_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "type": self.type.value,
            "originUrl": self.origin_url,
            "manifestUrl": self.manifest_url,
            "schemaCount": self.schema_count,
            "importedAt": self.imported_at,
            "updatedAt": self.updated_at,
        }
        return {key: value for key, value in payload.items() if value is not None}

    @classmethod
    def from_mapping(cls, name: str, entry: Mapping[str, Any]) -> "Source":
        try:
            source_type = SourceType(str(entry.get("type") or SourceType.BUILTIN.value))
        except ValueError:
            LOGGER.warning("Unknown source type %r for %s; treating as builtin", entry.get("type"), name)
            source_type = SourceType.BUILTIN
        return cls(
            name=name,
            type=source_type,
            origin_url=entry.get("originUrl"),
            manifest_url=entry.get("manifestUrl"),
            schema_count=int(entry.get("schemaCount") or 0),
            imported_at=entry.get("importedAt"),
            updated_at=entry.get("updatedAt"),
        )


@dataclass(slots=True, frozen=True)
class SchemaRef:
    """A schema file known to a source, addressed as ``<source>/<file>``."""

    ref: str
    file: str
    namespace: str
    name: str
    required_server_params: tuple[str, ...] = ()
    shared: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class SourceListing:
    name: str
    type: SourceType
    origin_url: str | None
    directory: Path
    schemas: tuple[SchemaRef, ...]
    manifest: RegistryManifest | None = None

    @property
    def schema_count(self) -> int:
        return len(self.schemas)


def _read_store_config(store: MirrorStore) -> MutableMapping[str, Any]:
    try:
        data = json.loads(store.config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        LOGGER.warning("Ignoring unreadable store config %s", store.config_path)
        return {}
    return data if isinstance(data, dict) else {}


def load_sources(store: MirrorStore) -> dict[str, Source]:
    """Return the persisted source records keyed by name."""

    entries = _read_store_config(store).get("sources") or {}
    if not isinstance(entries, Mapping):
        return {}
    return {
        str(name): Source.from_mapping(str(name), entry)
        for name, entry in entries.items()
        if isinstance(entry, Mapping)
    }


def save_source(store: MirrorStore, source: Source) -> None:
    """Insert or replace ``source`` in the store config, keeping unrelated keys."""

    config = _read_store_config(store)
    sources = config.get("sources")
    if not isinstance(sources, dict):
        sources = {}
    sources[source.name] = source.to_dict()
    config["sources"] = sources
    try:
        store.root.mkdir(parents=True, exist_ok=True)
        store.config_path.write_text(json.dumps(config, indent=4), encoding="utf-8")
    except OSError as exc:
        raise StoreIOError(
            f"Failed to write store config {store.config_path}: {exc}",
            fix="Check permissions and free space under the store root.",
        ) from exc


def list_sources(store: MirrorStore) -> list[SourceListing]:
    """Enumerate source directories in name order together with their schemas."""

    try:
        directories = sorted(path for path in store.schemas_dir.iterdir() if path.is_dir())
    except FileNotFoundError:
        return []
    records = load_sources(store)
    listings: list[SourceListing] = []
    for directory in directories:
        name = directory.name
        record = records.get(name) or Source(name=name)
        manifest = read_local_manifest(directory / "_registry.json")
        if manifest is not None:
            schemas = tuple(
                SchemaRef(
                    ref=f"{name}/{entry.file}",
                    file=entry.file,
                    namespace=entry.namespace or name,
                    name=entry.name or entry.file,
                    required_server_params=tuple(entry.required_server_params),
                    shared=tuple(entry.shared),
                )
                for entry in manifest.schemas
            )
        else:
            schemas = tuple(
                SchemaRef(ref=f"{name}/{file}", file=file, namespace=name, name=file)
                for file in _walk_schema_files(directory)
            )
        listings.append(
            SourceListing(
                name=name,
                type=record.type,
                origin_url=record.origin_url,
                directory=directory,
                schemas=schemas,
                manifest=manifest,
            )
        )
    return listings


def _walk_schema_files(directory: Path) -> list[str]:
    files: list[str] = []
    for path in sorted(directory.rglob("*")):
        relative = path.relative_to(directory)
        if any(part.startswith("_") or part.startswith(".") for part in relative.parts):
            continue
        if path.is_file() and path.suffix in SCHEMA_SUFFIXES:
            files.append(relative.as_posix())
    return files
