"""
Mirror synchronisation for remote schema registries.

The engine pulls a registry manifest, walks its shared lists and schema files
strictly one at a time, and reconciles each file against the local mirror by
content hash. Content writes go through a temporary file that is renamed into
place, so readers never observe a partially written schema. Per-file failures
are collected into the report; only manifest-level failures abort a call.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, MutableMapping

from .clock import Clock, to_iso, utcnow
from .config import DEFAULT_REGISTRY_FILE_NAME, MirrorStore
from .errors import FetchError, MirrorError, SchemaError, SourceNotFoundError, StoreIOError
from .fetcher import RemoteFetcher
from .hashing import hash_bytes, hash_file
from .manifest import RegistryManifest, parse_manifest, read_local_manifest, write_manifest
from .sources import Source, SourceType, load_sources, save_source

LOGGER = logging.getLogger(__name__)

__all__ = [
    "FileOutcome",
    "MirrorSyncEngine",
    "SyncProgress",
    "SyncReport",
    "UpdateReport",
    "atomic_write_bytes",
    "parse_github_url",
    "resolve_file_url",
]

MANIFEST_FILE_NAME = "_registry.json"


class FileOutcome(str, Enum):
    DOWNLOADED = "downloaded"
    UPDATED = "updated"
    SKIPPED = "skipped"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class SyncProgress:
    """Progress event emitted before each file fetch."""

    phase: str
    index: int
    total: int
    file: str


ProgressCallback = Callable[[SyncProgress], None]


@dataclass(slots=True)
class SyncReport:
    """Outcome of one :meth:`MirrorSyncEngine.synchronize` call."""

    source: str
    downloaded: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    conflicts: list[str] = field(default_factory=list)
    removed_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    outcomes: dict[str, FileOutcome] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def record(self, file: str, outcome: FileOutcome, error: str | None = None) -> None:
        self.outcomes[file] = outcome
        if outcome is FileOutcome.DOWNLOADED:
            self.downloaded += 1
        elif outcome is FileOutcome.UPDATED:
            self.updated += 1
        elif outcome is FileOutcome.SKIPPED:
            self.skipped += 1
        elif outcome is FileOutcome.CONFLICT:
            self.conflicts.append(file)
        else:
            self.failed += 1
            self.errors.append(f"{file}: {error or 'unknown error'}")

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "source": self.source,
            "downloaded": self.downloaded,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "conflicts": list(self.conflicts),
            "removedFiles": list(self.removed_files),
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class UpdateReport:
    """Aggregated outcome of :meth:`MirrorSyncEngine.update` across sources."""

    reports: dict[str, SyncReport] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    skipped_sources: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and all(report.ok for report in self.reports.values())

    def totals(self) -> MutableMapping[str, int]:
        totals = {"downloaded": 0, "updated": 0, "skipped": 0, "failed": 0, "conflicts": 0}
        for report in self.reports.values():
            totals["downloaded"] += report.downloaded
            totals["updated"] += report.updated
            totals["skipped"] += report.skipped
            totals["failed"] += report.failed
            totals["conflicts"] += len(report.conflicts)
        return totals

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "sources": {name: report.to_dict() for name, report in self.reports.items()},
            "errors": dict(self.errors),
            "skippedSources": list(self.skipped_sources),
            "totals": self.totals(),
        }


@dataclass(slots=True)
class MirrorSyncEngine:
    """Pull remote registries into a :class:`MirrorStore`."""

    store: MirrorStore
    fetcher: RemoteFetcher = field(default_factory=RemoteFetcher)
    registry_file_name: str = DEFAULT_REGISTRY_FILE_NAME
    progress: ProgressCallback | None = None
    clock: Clock = utcnow

    # ------------------------------------------------------------------ imports

    def import_registry(self, manifest_url: str, *, allow_overwrite: bool = False) -> SyncReport:
        """Mirror a registry published at a direct manifest URL."""

        url = manifest_url.strip()
        if not url.startswith(("http://", "https://")):
            raise SchemaError(
                f"Invalid registry URL: {manifest_url!r}",
                fix="Provide: schema-mirror import-registry <https-url-to-registry.json>",
            )
        return self.synchronize(url, allow_overwrite=allow_overwrite, source_type=SourceType.REGISTRY)

    def import_github(self, repository_url: str, *, branch: str = "main", allow_overwrite: bool = False) -> SyncReport:
        """Mirror a registry stored at the root of a GitHub repository."""

        owner, repo = parse_github_url(repository_url)
        manifest_url = f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{self.registry_file_name}"
        return self.synchronize(
            manifest_url,
            allow_overwrite=allow_overwrite,
            source_type=SourceType.GITHUB,
            origin_url=repository_url.strip(),
        )

    # ------------------------------------------------------------------ sync

    def synchronize(
        self,
        manifest_url: str,
        *,
        allow_overwrite: bool = False,
        source_type: SourceType = SourceType.REGISTRY,
        origin_url: str | None = None,
        expected_name: str | None = None,
    ) -> SyncReport:
        """
        Reconcile the local mirror with the registry at ``manifest_url``.

        Raises :class:`FetchError`, :class:`ParseError` or :class:`SchemaError`
        for manifest-level failures. Individual file failures are reported in
        the returned :class:`SyncReport` instead.
        """

        remote = self._fetch_manifest(manifest_url)
        if expected_name is not None and remote.name != expected_name:
            raise SchemaError(
                f"Registry at {manifest_url} now declares name {remote.name!r}, expected {expected_name!r}",
                fix="Import the registry again under its new name.",
            )
        _check_source_name(remote.name)

        source_dir = self.store.source_dir(remote.name)
        manifest_path = source_dir / MANIFEST_FILE_NAME
        local = read_local_manifest(manifest_path)
        try:
            source_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError(
                f"Cannot create source directory {source_dir}: {exc}",
                fix="Check permissions on the store root.",
            ) from exc

        remote_files = remote.file_list()
        local_files = _known_local_files(local)
        remote_set = set(remote_files)
        report = SyncReport(
            source=remote.name,
            removed_files=[file for file in local_files if file not in remote_set],
        )
        for file in report.removed_files:
            LOGGER.info("%s: %s is no longer published upstream; keeping local copy", remote.name, file)

        hashes: dict[str, str] = dict(local.local_hashes) if local else {}
        shared_files = remote.shared_files()
        shared_set = set(shared_files)
        schema_files = [file for file in dict.fromkeys(remote.schema_files()) if file not in shared_set]

        for phase, files in (("shared", shared_files), ("schema", schema_files)):
            total = len(files)
            for index, file in enumerate(files, start=1):
                self._notify(SyncProgress(phase=phase, index=index, total=total, file=file))
                digest = self._sync_file(
                    report,
                    source_dir=source_dir,
                    manifest_url=manifest_url,
                    base_dir=remote.base_dir,
                    file=file,
                    allow_overwrite=allow_overwrite,
                )
                if digest is not None:
                    hashes[file] = digest
                else:
                    hashes.pop(file, None)

        hashes = _prune_hashes(source_dir, hashes)
        write_manifest(manifest_path, remote.model_copy(update={"local_hashes": hashes}))
        self._record_source(
            remote,
            source_dir=source_dir,
            source_type=source_type,
            origin_url=origin_url or manifest_url,
            manifest_url=manifest_url,
        )
        LOGGER.info(
            "Synchronized %s: %d downloaded, %d updated, %d skipped, %d failed, %d conflicts",
            remote.name,
            report.downloaded,
            report.updated,
            report.skipped,
            report.failed,
            len(report.conflicts),
        )
        return report

    def update(self, source_name: str | None = None) -> UpdateReport:
        """Re-synchronize every remote-backed source (or just ``source_name``) with overwrite enabled."""

        records = load_sources(self.store)
        if source_name is not None:
            if source_name not in records:
                available = ", ".join(sorted(records)) or "none"
                raise SourceNotFoundError(
                    f"Source '{source_name}' not found. Available: {available}",
                    fix="Run `schema-mirror sources` to list imported sources.",
                )
            targets = [records[source_name]]
        else:
            targets = [records[name] for name in sorted(records)]

        result = UpdateReport()
        for record in targets:
            if not record.type.is_remote or not record.manifest_url:
                LOGGER.debug("Skipping %s source %s", record.type.value, record.name)
                result.skipped_sources.append(record.name)
                continue
            try:
                result.reports[record.name] = self.synchronize(
                    record.manifest_url,
                    allow_overwrite=True,
                    source_type=record.type,
                    origin_url=record.origin_url,
                    expected_name=record.name,
                )
            except MirrorError as exc:
                if source_name is not None:
                    raise
                LOGGER.warning("Update of %s failed: %s", record.name, exc.message)
                result.errors[record.name] = exc.message
        return result

    # ------------------------------------------------------------------ internals

    def _fetch_manifest(self, manifest_url: str) -> RegistryManifest:
        try:
            raw = self.fetcher.fetch_bytes(manifest_url)
        except FetchError as exc:
            raise FetchError(
                f"Failed to fetch registry: {exc.message}",
                fix="Verify the URL points to a valid registry file and the host is reachable.",
            ) from exc
        return parse_manifest(raw, origin=manifest_url)

    def _sync_file(
        self,
        report: SyncReport,
        *,
        source_dir: Path,
        manifest_url: str,
        base_dir: str | None,
        file: str,
        allow_overwrite: bool,
    ) -> str | None:
        """Reconcile one file and return the hash now on disk (``None`` when absent)."""

        try:
            target = _resolve_target(source_dir, file)
        except ValueError as exc:
            report.record(file, FileOutcome.FAILED, str(exc))
            return None

        try:
            content = self.fetcher.fetch_bytes(resolve_file_url(manifest_url, base_dir, file))
        except FetchError as exc:
            report.record(file, FileOutcome.FAILED, exc.message)
            return _hash_on_disk(target)

        remote_hash = hash_bytes(content)
        try:
            local_hash = hash_file(target)
        except OSError as exc:
            report.record(file, FileOutcome.FAILED, f"cannot read local copy: {exc}")
            return None
        if local_hash == remote_hash:
            LOGGER.debug("%s unchanged", file)
            report.record(file, FileOutcome.SKIPPED)
            return local_hash
        if local_hash is not None and not allow_overwrite:
            LOGGER.warning("%s differs from upstream; leaving local copy in place", file)
            report.record(file, FileOutcome.CONFLICT)
            return local_hash

        try:
            atomic_write_bytes(target, content)
        except OSError as exc:
            report.record(file, FileOutcome.FAILED, f"write failed: {exc}")
            return _hash_on_disk(target)
        report.record(file, FileOutcome.DOWNLOADED if local_hash is None else FileOutcome.UPDATED)
        return remote_hash

    def _record_source(
        self,
        manifest: RegistryManifest,
        *,
        source_dir: Path,
        source_type: SourceType,
        origin_url: str,
        manifest_url: str,
    ) -> None:
        now = to_iso(self.clock())
        existing = load_sources(self.store).get(manifest.name)
        schema_count = sum(1 for file in dict.fromkeys(manifest.schema_files()) if (source_dir / file).is_file())
        save_source(
            self.store,
            Source(
                name=manifest.name,
                type=source_type,
                origin_url=origin_url,
                manifest_url=manifest_url,
                schema_count=schema_count,
                imported_at=existing.imported_at if existing and existing.imported_at else now,
                updated_at=now,
            ),
        )

    def _notify(self, event: SyncProgress) -> None:
        if self.progress is not None:
            self.progress(event)


def atomic_write_bytes(target: Path, content: bytes) -> None:
    """Write ``content`` to a sibling temp file and rename it over ``target``."""

    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.replace(tmp_name, target)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise


def resolve_file_url(manifest_url: str, base_dir: str | None, file: str) -> str:
    """Resolve ``file`` against the directory holding the manifest, honouring ``baseDir``."""

    base_url = manifest_url.rsplit("/", 1)[0] if "/" in manifest_url else manifest_url
    prefix = (base_dir or "").strip("/")
    if prefix and not base_url.endswith(prefix):
        return f"{base_url}/{prefix}/{file}"
    return f"{base_url}/{file}"


def parse_github_url(url: str) -> tuple[str, str]:
    """Return ``(owner, repo)`` from a GitHub repository URL."""

    cleaned = url.strip().rstrip("/")
    cleaned = cleaned[:-4] if cleaned.endswith(".git") else cleaned
    parts = cleaned.split("/")
    index = next((position for position, part in enumerate(parts) if "github.com" in part), None)
    if index is None or len(parts) < index + 3 or not parts[index + 1] or not parts[index + 2]:
        raise SchemaError(
            f"Invalid GitHub repository URL: {url!r}",
            fix="Provide: schema-mirror import https://github.com/<owner>/<repo>",
        )
    return parts[index + 1], parts[index + 2]


def _check_source_name(name: str) -> None:
    if name in {".", ".."} or "/" in name or "\\" in name:
        raise SchemaError(
            f"Registry name {name!r} cannot be used as a source directory",
            fix="Registry names must not contain path separators.",
        )


def _resolve_target(source_dir: Path, file: str) -> Path:
    relative = PurePosixPath(file)
    if relative.is_absolute() or ".." in relative.parts or relative.as_posix() == MANIFEST_FILE_NAME:
        raise ValueError(f"refusing to write outside the source directory: {file}")
    target = source_dir / relative
    if not target.resolve().is_relative_to(source_dir.resolve()):
        raise ValueError(f"refusing to write outside the source directory: {file}")
    return target


def _hash_on_disk(target: Path) -> str | None:
    try:
        return hash_file(target)
    except OSError:
        return None


def _known_local_files(local: RegistryManifest | None) -> list[str]:
    if local is None:
        return []
    return list(dict.fromkeys([*local.file_list(), *local.local_hashes]))


def _prune_hashes(source_dir: Path, hashes: dict[str, str]) -> dict[str, str]:
    kept: dict[str, str] = {}
    for file, digest in hashes.items():
        try:
            target = _resolve_target(source_dir, file)
        except ValueError:
            continue
        if target.is_file():
            kept[file] = digest
    return kept
