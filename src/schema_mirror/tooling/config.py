"""
Workspace configuration loader.

Runtime settings (store location, fetch timeout, registry naming, cache TTL)
live outside of the Python modules so users can relocate the mirror without
touching code. Configuration is read from the ``tool.schema_mirror`` section
inside ``pyproject.toml``; environment variables override individual keys and
built-in defaults fill in whatever is missing.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

WORKSPACE_ROOT = Path(__file__).resolve().parents[3]
PYPROJECT_PATH = WORKSPACE_ROOT / "pyproject.toml"

HOME_ENV_VAR = "SCHEMA_MIRROR_HOME"
TIMEOUT_ENV_VAR = "SCHEMA_MIRROR_TIMEOUT"

__all__ = [
    "MirrorSettings",
    "MirrorStore",
    "load_settings",
]


@dataclass(slots=True, frozen=True)
class MirrorSettings:
    """Top-level workspace configuration."""

    store_root: Path
    fetch_timeout: float = 10.0
    registry_file_name: str = "schema-registry.json"
    default_registry_url: str | None = None
    user_agent: str | None = None
    default_cache_ttl: int = 300


@dataclass(slots=True, frozen=True)
class MirrorStore:
    """Handle on the on-disk store shared by the mirror and the artifact cache.

    The handle is built once (usually from :class:`MirrorSettings`) and passed
    into every operation, so tests can point the whole system at a temporary
    directory.
    """

    root: Path

    @classmethod
    def from_settings(cls, settings: MirrorSettings) -> "MirrorStore":
        return cls(root=settings.store_root)

    @property
    def schemas_dir(self) -> Path:
        return self.root / "schemas"

    @property
    def cache_dir(self) -> Path:
        return self.root / "cache"

    @property
    def config_path(self) -> Path:
        return self.root / "config.json"

    def source_dir(self, source_name: str) -> Path:
        return self.schemas_dir / source_name

    def manifest_path(self, source_name: str) -> Path:
        return self.source_dir(source_name) / "_registry.json"


def _project_data(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _get_mirror_section(data: Mapping[str, Any]) -> Mapping[str, Any]:
    tool_section = data.get("tool") or {}
    return tool_section.get("schema_mirror") or {}


def _parse_timeout(value: Any) -> float:
    timeout = float(value)
    if timeout <= 0:
        raise ValueError("fetch_timeout must be greater than zero.")
    return timeout


def _build_settings(section: Mapping[str, Any], environ: Mapping[str, str]) -> MirrorSettings:
    root_value = environ.get(HOME_ENV_VAR) or section.get("store_root") or DEFAULT_STORE_ROOT
    timeout_value = environ.get(TIMEOUT_ENV_VAR) or section.get("fetch_timeout") or DEFAULT_FETCH_TIMEOUT
    registry_file_name = str(section.get("registry_file_name") or DEFAULT_REGISTRY_FILE_NAME).strip()
    default_registry_url = section.get("default_registry_url")
    user_agent = section.get("user_agent")
    return MirrorSettings(
        store_root=Path(str(root_value)).expanduser(),
        fetch_timeout=_parse_timeout(timeout_value),
        registry_file_name=registry_file_name,
        default_registry_url=str(default_registry_url) if default_registry_url else None,
        user_agent=str(user_agent) if user_agent else None,
        default_cache_ttl=int(section.get("default_cache_ttl") or DEFAULT_CACHE_TTL),
    )


def load_settings(path: Path | None = None, *, environ: Mapping[str, str] | None = None) -> MirrorSettings:
    """Load settings from ``path`` (default: the workspace ``pyproject.toml``)."""

    if path is None and environ is None:
        return _load_default_settings()
    data = _project_data(path or PYPROJECT_PATH)
    return _build_settings(_get_mirror_section(data), os.environ if environ is None else environ)


@lru_cache(maxsize=1)
def _load_default_settings() -> MirrorSettings:
    data = _project_data(PYPROJECT_PATH)
    return _build_settings(_get_mirror_section(data), os.environ)


# --------------------------------------------------------------------------- defaults

DEFAULT_STORE_ROOT = "~/.schema-mirror"
DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_REGISTRY_FILE_NAME = "schema-registry.json"
DEFAULT_CACHE_TTL = 300
