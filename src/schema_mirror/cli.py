"""
Command line interface for the schema mirror.

Every command prints a short human summary by default and a
:class:`WorkspaceResponse` envelope with ``--json``. Failures that abort an
operation exit non-zero and carry the error's fix hint.
"""

from __future__ import annotations

import logging
import sys
from typing import NoReturn, Optional

import typer

from . import __version__
from .tooling import (
    ArtifactCache,
    MirrorError,
    MirrorSettings,
    MirrorStore,
    MirrorSyncEngine,
    RemoteFetcher,
    SyncProgress,
    SyncReport,
    WorkspaceResponse,
    build_index,
    list_sources,
    load_settings,
    search,
)

app = typer.Typer(help="Schema Mirror CLI for mirroring, caching and discovering API-tool schemas.")
cache_app = typer.Typer(help="Inspect and clear the artifact cache.")
app.add_typer(cache_app, name="cache")


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging on stderr."),
) -> None:
    """Schema Mirror command group."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def info(
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Print the active settings and store layout."""

    settings = _settings()
    store = MirrorStore.from_settings(settings)
    payload = {
        "version": __version__,
        "python": sys.version.split()[0],
        "storeRoot": str(store.root),
        "schemasDir": str(store.schemas_dir),
        "cacheDir": str(store.cache_dir),
        "fetchTimeout": settings.fetch_timeout,
        "registryFileName": settings.registry_file_name,
        "defaultRegistryUrl": settings.default_registry_url,
    }
    if json_output:
        _emit_response(WorkspaceResponse.ok(payload=payload, message="Schema mirror settings."), json_output=True)
        return

    typer.echo(f"Schema Mirror v{__version__}")
    typer.echo("")
    typer.echo(f"Store root   : {store.root}")
    typer.echo(f"Schemas      : {store.schemas_dir}")
    typer.echo(f"Cache        : {store.cache_dir}")
    typer.echo(f"Fetch timeout: {settings.fetch_timeout:g}s")
    typer.echo(f"Registry file: {settings.registry_file_name}")


@app.command("sources")
def list_sources_command(
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """List mirrored sources and their schema counts."""

    listings = list_sources(_store())
    items = [
        {
            "name": listing.name,
            "type": listing.type.value,
            "originUrl": listing.origin_url,
            "schemaCount": listing.schema_count,
        }
        for listing in listings
    ]
    if json_output:
        _emit_response(WorkspaceResponse.ok(payload={"sources": items}, message="Mirrored sources."), json_output=True)
        return

    if not items:
        typer.echo("No sources mirrored yet. Run `schema-mirror import <github-url>` to add one.")
        return
    typer.echo("Mirrored sources:")
    for item in items:
        origin = f" <{item['originUrl']}>" if item["originUrl"] else ""
        typer.echo(f"- {item['name']} [{item['type']}] {item['schemaCount']} schemas{origin}")


@app.command("import")
def import_github(
    repository_url: str = typer.Argument(..., help="GitHub repository URL, e.g. https://github.com/<owner>/<repo>."),
    branch: str = typer.Option("main", "--branch", help="Branch holding the registry file."),
    force: bool = typer.Option(False, "--force", help="Overwrite local files that differ from upstream."),
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Mirror the schema registry published in a GitHub repository."""

    engine = _engine(json_output)
    try:
        report = engine.import_github(repository_url, branch=branch, allow_overwrite=force)
    except MirrorError as exc:
        _fail(exc, json_output)
    _emit_sync_report(report, json_output)


@app.command("import-registry")
def import_registry(
    manifest_url: Optional[str] = typer.Argument(None, help="Direct URL of a registry manifest."),
    force: bool = typer.Option(False, "--force", help="Overwrite local files that differ from upstream."),
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Mirror a registry from its manifest URL (defaults to the configured registry)."""

    url = manifest_url or _settings().default_registry_url
    if not url:
        response = WorkspaceResponse.error(
            "Missing registry URL.",
            fix="Provide: schema-mirror import-registry <url>, or set default_registry_url in [tool.schema_mirror].",
        )
        _emit_response(response, json_output)
        raise typer.Exit(code=2)

    engine = _engine(json_output)
    try:
        report = engine.import_registry(url, allow_overwrite=force)
    except MirrorError as exc:
        _fail(exc, json_output)
    _emit_sync_report(report, json_output)


@app.command()
def update(
    source_name: Optional[str] = typer.Argument(None, help="Only update this source."),
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Re-synchronise remote-backed sources, overwriting files that changed upstream."""

    engine = _engine(json_output)
    try:
        result = engine.update(source_name)
    except MirrorError as exc:
        _fail(exc, json_output)

    totals = result.totals()
    message = (
        f"Updated {len(result.reports)} source(s): {totals['downloaded']} downloaded, "
        f"{totals['updated']} updated, {totals['skipped']} unchanged, {totals['failed']} failed."
    )
    errors = [f"{name}: {error}" for name, error in result.errors.items()]
    for report in result.reports.values():
        errors.extend(f"{report.source}/{error}" for error in report.errors)
    if result.errors:
        response = WorkspaceResponse.error(message, errors=errors, payload=result.to_dict())
    else:
        response = WorkspaceResponse.ok(payload=result.to_dict(), message=message)
    _emit_response(response, json_output)
    if not json_output:
        for report in result.reports.values():
            for file in report.removed_files:
                typer.echo(f"  {report.source}: {file} removed upstream (kept locally)")
    if result.errors:
        raise typer.Exit(code=1)


@app.command("search")
def search_command(
    query: str = typer.Argument(..., help="Free-text query, e.g. 'token price'."),
    limit: int = typer.Option(10, "--limit", min=1, help="Maximum number of tools to show."),
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Rank mirrored tools against a free-text query."""

    catalog, alias_index = build_index(_store())
    try:
        result = search(query, catalog, alias_index, limit=limit)
    except MirrorError as exc:
        _fail(exc, json_output)

    if json_output:
        message = result.hint or f"{result.match_count} matches."
        _emit_response(WorkspaceResponse.ok(payload=result.to_dict(), message=message), json_output=True)
        return

    for hit in result.hits:
        typer.echo(f"{hit.score:>4}  {hit.entry.tool_name}  {hit.entry.description}")
    if result.hint:
        typer.echo(result.hint)


@cache_app.command("status")
def cache_status(
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Show cached entries, their expiry and the total size."""

    status = ArtifactCache.for_store(_store()).status()
    if json_output:
        message = f"{len(status.entries)} cache entries."
        _emit_response(WorkspaceResponse.ok(payload=status.to_dict(), message=message), json_output=True)
        return

    if not status.entries:
        typer.echo("Cache is empty.")
        return
    for entry in status.entries:
        state = "expired" if entry.expired else f"valid until {entry.expires_at}"
        typer.echo(f"- {entry.key} ({entry.size} bytes, ttl {entry.ttl}s, {state})")
    typer.echo(f"Total size: {status.total_size} bytes")


@cache_app.command("clear")
def cache_clear(
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Only clear entries of this namespace."),
    json_output: bool = typer.Option(False, "--json", help="Emit a machine-readable JSON response."),
) -> None:
    """Delete cached results."""

    try:
        removed = ArtifactCache.for_store(_store()).clear(namespace)
    except MirrorError as exc:
        _fail(exc, json_output)
    scope = f"namespace '{namespace}'" if namespace else "all namespaces"
    response = WorkspaceResponse.ok(
        payload={"removed": removed, "namespace": namespace},
        message=f"Removed {removed} cache entries from {scope}.",
    )
    _emit_response(response, json_output)


def _settings() -> MirrorSettings:
    return load_settings()


def _store() -> MirrorStore:
    return MirrorStore.from_settings(_settings())


def _engine(json_output: bool) -> MirrorSyncEngine:
    settings = _settings()
    fetcher = RemoteFetcher(timeout=settings.fetch_timeout, user_agent=settings.user_agent)
    return MirrorSyncEngine(
        store=MirrorStore.from_settings(settings),
        fetcher=fetcher,
        registry_file_name=settings.registry_file_name,
        progress=None if json_output else _echo_progress,
    )


def _echo_progress(event: SyncProgress) -> None:
    typer.echo(f"  [{event.phase} {event.index}/{event.total}] {event.file}", err=True)


def _emit_sync_report(report: SyncReport, json_output: bool) -> None:
    message = (
        f"Synchronized {report.source}: {report.downloaded} downloaded, {report.updated} updated, "
        f"{report.skipped} unchanged, {report.failed} failed, {len(report.conflicts)} conflicts."
    )
    response = WorkspaceResponse.ok(payload=report.to_dict(), message=message, source=report.source)
    _emit_response(response, json_output)
    if json_output:
        return
    for file in report.conflicts:
        typer.echo(f"  conflict: {file} differs from upstream (use --force to overwrite)")
    for file in report.removed_files:
        typer.echo(f"  removed upstream: {file} (kept locally)")
    for error in report.errors:
        typer.echo(f"  error: {error}")


def _fail(exc: MirrorError, json_output: bool) -> NoReturn:
    response = WorkspaceResponse.error(exc.message, errors=(exc.message,), fix=exc.fix)
    _emit_response(response, json_output)
    raise typer.Exit(code=1) from exc


def _emit_response(response: WorkspaceResponse, json_output: bool) -> None:
    if json_output:
        typer.echo(response.to_json())
        return

    typer.echo(response.message)
    if response.status != "success" and response.errors:
        typer.echo("")
        typer.echo("Errors:")
        for err in response.errors:
            typer.echo(f"- {err}")
    if response.status != "success" and response.fix:
        typer.echo(f"Fix: {response.fix}")


def main() -> None:
    """Entry point for python -m execution."""
    app()


if __name__ == "__main__":
    main()
