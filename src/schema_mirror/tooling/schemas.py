"""
Shallow schema loading for cataloging and invocation.

Schema files are opaque to the mirror. For discovery we only need the
``namespace``, ``tags`` and ``routes`` keys; this module defines the loader
protocol that the execution engine satisfies and ships a JSON loader so the
catalog works against mirrors whose schemas are stored as JSON documents.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

LOGGER = logging.getLogger(__name__)

__all__ = [
    "JsonSchemaLoader",
    "LoadedSchema",
    "PreloadSpec",
    "RouteSpec",
    "SchemaLoader",
    "ValidationOutcome",
    "load_shared_records",
]


class PreloadSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    ttl: int | None = Field(default=None, ge=0, description="Cache lifetime in seconds.")


class RouteSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: str = ""
    method: str | None = None
    path: str | None = None
    parameters: list[Any] = Field(default_factory=list)
    preload: PreloadSpec | None = None


class LoadedSchema(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    namespace: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    routes: dict[str, RouteSpec] = Field(default_factory=dict)
    required_server_params: list[str] = Field(default_factory=list, alias="requiredServerParams")

    @field_validator("tags", "required_server_params", mode="before")
    @classmethod
    def _coerce_strings(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item) for item in value if item is not None]

    @field_validator("routes", mode="before")
    @classmethod
    def _coerce_routes(cls, value: Any) -> dict[str, Any]:
        return dict(value) if isinstance(value, Mapping) else {}


@dataclass(slots=True)
class ValidationOutcome:
    ok: bool
    messages: list[str] = field(default_factory=list)


class SchemaLoader(Protocol):
    """Collaborator that turns a mirrored schema file into its catalog metadata."""

    def load(self, path: Path) -> LoadedSchema | None:
        ...

    def validate(self, schema: LoadedSchema) -> ValidationOutcome:
        ...


class JsonSchemaLoader:
    """Load schemas stored as JSON, either bare or wrapped in a ``main`` object."""

    def load(self, path: Path) -> LoadedSchema | None:
        if path.suffix != ".json":
            LOGGER.debug("No JSON loader for %s", path)
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Skipping unreadable schema %s", path)
            return None
        if isinstance(data, Mapping) and isinstance(data.get("main"), Mapping):
            data = data["main"]
        try:
            return LoadedSchema.model_validate(data)
        except ValidationError as exc:
            LOGGER.warning("Skipping malformed schema %s: %s error(s)", path, exc.error_count())
            return None

    def validate(self, schema: LoadedSchema) -> ValidationOutcome:
        messages: list[str] = []
        if not schema.routes:
            messages.append(f"{schema.namespace}: schema declares no routes")
        for route_name in schema.routes:
            if not route_name.strip():
                messages.append(f"{schema.namespace}: route with empty name")
        if any(not name.strip() for name in schema.required_server_params):
            messages.append(f"{schema.namespace}: blank required server parameter name")
        return ValidationOutcome(ok=not messages, messages=messages)


def load_shared_records(path: Path) -> list[Mapping[str, Any]]:
    """
    Return the records of a shared list.

    A shared list is either a JSON array or an object whose first array value
    holds the records. Missing or unreadable files yield an empty list.
    """

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except (OSError, ValueError):
        LOGGER.warning("Skipping unreadable shared list %s", path)
        return []
    if isinstance(data, Mapping):
        data = next((value for value in data.values() if isinstance(value, list)), [])
    if not isinstance(data, list):
        return []
    return [record for record in data if isinstance(record, Mapping)]
