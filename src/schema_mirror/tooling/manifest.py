"""
Pydantic models describing a source registry manifest.

The same shape is used for the remote manifest and for the local
``_registry.json`` copy; the local copy additionally carries ``localHashes``.
Keys the models do not know about are preserved so the local copy stays a
faithful mirror of what the registry published.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ParseError, SchemaError, StoreIOError

LOGGER = logging.getLogger(__name__)

__all__ = [
    "RegistryManifest",
    "SchemaEntry",
    "SharedEntry",
    "parse_manifest",
    "read_local_manifest",
    "write_manifest",
]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


class SharedEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    file: str = Field(..., min_length=1, description="Shared list path relative to the registry base.")


class SchemaEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    file: str = Field(..., min_length=1, description="Schema path relative to the registry base.")
    namespace: str | None = None
    name: str | None = None
    required_server_params: list[str] = Field(default_factory=list, alias="requiredServerParams")
    required_modules: list[Any] = Field(default_factory=list, alias="requiredModules")
    shared: list[str] = Field(default_factory=list, description="Shared list files this schema depends on.")

    @field_validator("required_server_params", "required_modules", "shared", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[Any]:
        return _as_list(value)


class RegistryManifest(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    schema_spec: str | None = Field(default=None, alias="schemaSpec")
    base_dir: str | None = Field(default=None, alias="baseDir")
    shared: list[SharedEntry] = Field(default_factory=list)
    schemas: list[SchemaEntry]
    local_hashes: dict[str, str] = Field(default_factory=dict, alias="localHashes")

    @field_validator("shared", mode="before")
    @classmethod
    def _coerce_shared(cls, value: Any) -> list[Any]:
        return [{"file": entry} if isinstance(entry, str) else entry for entry in _as_list(value)]

    @field_validator("local_hashes", mode="before")
    @classmethod
    def _coerce_hashes(cls, value: Any) -> dict[str, str]:
        return dict(value) if isinstance(value, dict) else {}

    def shared_files(self) -> list[str]:
        return [entry.file for entry in self.shared]

    def schema_files(self) -> list[str]:
        return [entry.file for entry in self.schemas]

    def file_list(self) -> list[str]:
        """Shared files first, then schema files, in manifest order without duplicates."""
        return list(dict.fromkeys([*self.shared_files(), *self.schema_files()]))

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_manifest(raw: str | bytes, *, origin: str = "registry") -> RegistryManifest:
    """Parse and validate a manifest document fetched from ``origin``."""

    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ParseError(
            f"Invalid JSON in {origin}",
            fix="The remote registry file contains invalid JSON. Check the repository.",
        ) from exc

    if not isinstance(data, dict) or not data.get("name") or not isinstance(data.get("schemas"), list):
        raise SchemaError(
            "Registry missing required fields: name, schemas",
            fix='The registry must contain "name" (string) and "schemas" (array).',
        )

    try:
        return RegistryManifest.model_validate(data)
    except ValidationError as exc:
        raise SchemaError(
            f"Registry {origin} failed validation: {exc.error_count()} error(s)",
            fix=_first_error(exc),
        ) from exc


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Check the registry structure."
    location = ".".join(str(part) for part in errors[0].get("loc", ()))
    return f"Fix field '{location}': {errors[0].get('msg', 'invalid value')}"


def read_local_manifest(path: Path) -> RegistryManifest | None:
    """Return the manifest stored at ``path`` or ``None`` when absent or unreadable."""

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError:
        LOGGER.warning("Cannot read manifest %s", path)
        return None
    try:
        return RegistryManifest.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        LOGGER.warning("Ignoring unreadable manifest %s", path)
        return None


def write_manifest(path: Path, manifest: RegistryManifest) -> None:
    """Overwrite ``path`` with ``manifest`` as a whole-file write."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(manifest.to_payload(), indent=4), encoding="utf-8")
    except OSError as exc:
        raise StoreIOError(
            f"Failed to write manifest {path}: {exc}",
            fix="Check permissions and free space under the store root.",
        ) from exc
