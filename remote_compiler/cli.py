"""Thin CLI wrapper for remote_compiler.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from remote_compiler import __version__
from remote_compiler.config import get_settings, print_settings_json

app = typer.Typer(
    name="rcompile",
    help="Remote Compiler - build apps from source on a hosted CI service",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"remote-compiler version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route log records through Rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Remote Compiler - build apps from source on a hosted CI service."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Remote API:[/bold]")
    console.print(f"  API base URL:        {settings.api_base_url}")
    console.print(f"  API version:         {settings.api_version}")
    console.print(f"  Branch:              {settings.branch}")
    console.print(f"  Workflow file:       {settings.workflow_file}")
    console.print(f"  Manifest path:       {settings.manifest_path}")
    console.print(f"  Source path:         {settings.source_path}")
    console.print()
    console.print("[bold]Polling:[/bold]")
    console.print(f"  Max attempts:        {settings.poll_max_attempts}")
    console.print(f"  Poll interval (s):   {settings.poll_interval}")
    console.print(f"  Settle delay (s):    {settings.settle_delay}")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Artifacts directory: {settings.artifacts_dir}")
    console.print(f"  Credentials file:    {settings.credentials_path}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Request timeout:     {settings.request_timeout}")
    console.print(f"  Download timeout:    {settings.download_timeout}")


credentials_app = typer.Typer(help="Manage stored credentials")
app.add_typer(credentials_app, name="credentials")


def _mask(value: str) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


@credentials_app.command("set")
def credentials_set(
    owner: Annotated[
        str | None, typer.Option("--owner", "-o", help="Repository owner")
    ] = None,
    repository: Annotated[
        str | None, typer.Option("--repo", "-r", help="Repository name")
    ] = None,
    token: Annotated[
        str | None, typer.Option("--token", "-t", help="Access token")
    ] = None,
) -> None:
    """Store owner, repository and/or token."""
    from remote_compiler.credentials import CredentialStore

    values = {"owner": owner, "repository": repository, "token": token}
    if not any(values.values()):
        console.print("[red]Provide at least one of --owner, --repo, --token[/red]")
        raise typer.Exit(code=1)

    store = CredentialStore.from_settings(get_settings())
    for key, value in values.items():
        if value is not None:
            store.set(key, value)
    console.print(f"[green]Credentials saved to {store.path}[/green]")


@credentials_app.command("show")
def credentials_show(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show stored credentials (token masked)."""
    from remote_compiler.credentials import CredentialStore

    store = CredentialStore.from_settings(get_settings())
    data = {
        "owner": store.get("owner"),
        "repository": store.get("repository"),
        "token": _mask(store.get("token")),
        "ready": store.is_ready(),
    }
    if json_output:
        typer.echo(json.dumps(data, indent=2))
        return

    console.print(f"  Owner:      {data['owner'] or '(not set)'}")
    console.print(f"  Repository: {data['repository'] or '(not set)'}")
    console.print(f"  Token:      {data['token']}")
    ready = "[green]yes[/green]" if data["ready"] else "[red]no[/red]"
    console.print(f"  Ready:      {ready}")


@credentials_app.command("clear")
def credentials_clear() -> None:
    """Remove all stored credentials."""
    from remote_compiler.credentials import CredentialStore

    store = CredentialStore.from_settings(get_settings())
    store.clear()
    console.print("[green]Credentials cleared[/green]")


@app.command("compile")
def compile_cmd(
    source_file: Annotated[
        Path,
        typer.Argument(help="Source file to build", exists=True, dir_okay=False),
    ],
    name: Annotated[
        str,
        typer.Option("--name", "-n", help="Application name"),
    ] = "App",
    manifest_options: Annotated[
        Path | None,
        typer.Option(
            "--manifest-options",
            "-m",
            help="YAML/JSON file with bundle, signing and build settings",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output final state as JSON"),
    ] = False,
) -> None:
    """Build SOURCE_FILE remotely and download the artifact."""
    from remote_compiler.builds.engine import BuildEngine
    from remote_compiler.builds.manifest import load_manifest_options
    from remote_compiler.builds.service import compile_and_record
    from remote_compiler.credentials import CredentialStore
    from remote_compiler.db import get_session, init_db
    from remote_compiler.types import BuildPhase, BuildRequest, BuildState

    settings = get_settings()
    store = CredentialStore.from_settings(settings)
    if not store.is_ready():
        console.print(
            "[red]Credentials incomplete. Run 'rcompile credentials set' first.[/red]"
        )
        raise typer.Exit(code=1)

    options = None
    if manifest_options is not None:
        try:
            options = load_manifest_options(manifest_options)
        except (ValueError, ValidationError) as e:
            console.print(f"[red]Invalid manifest options: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None

    engine = BuildEngine(settings=settings, manifest_options=options)

    def show_progress(state: BuildState) -> None:
        if not json_output:
            console.print(
                f"[dim]{state.progress:4.0%}[/dim] {state.status_message}"
            )

    engine.subscribe(show_progress)

    request = BuildRequest(
        app_name=name,
        source_code=source_file.read_text(encoding="utf-8"),
    )

    with get_session(init_db(settings.db_url)) as session:
        build, state = compile_and_record(
            session, engine, store.to_build_config(), request
        )
        build_id = build.id

    if json_output:
        typer.echo(json.dumps({"build_id": build_id, **state.to_dict()}, indent=2))
    elif state.phase is BuildPhase.SUCCEEDED:
        console.print(f"[green]Build #{build_id} succeeded[/green]")
        console.print(f"  Artifact: {state.artifact_path}")
    else:
        kind = state.error_kind.value if state.error_kind else "unknown"
        console.print(f"[red]Build #{build_id} {state.phase.value} ({kind})[/red]")
        console.print(f"  {escape(state.error_message or '')}")

    if state.phase is not BuildPhase.SUCCEEDED:
        raise typer.Exit(code=1)


builds_app = typer.Typer(help="Inspect build history")
app.add_typer(builds_app, name="builds")


@builds_app.command("list")
def builds_list(
    status: Annotated[
        str | None,
        typer.Option(
            "--status",
            "-s",
            help="Filter by status (pending/running/succeeded/failed/canceled)",
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build records."""
    from remote_compiler.builds.service import list_builds
    from remote_compiler.db import init_db
    from remote_compiler.types import BuildStatus

    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print("Valid values: pending, running, succeeded, failed, canceled")
            raise typer.Exit(code=1) from None

    session_factory = init_db()
    with session_factory() as session:
        builds = list_builds(session, status=status_filter, limit=limit)

        if not builds:
            if json_output:
                typer.echo("[]")
            else:
                console.print("[yellow]No build records found[/yellow]")
            return

        if json_output:
            typer.echo(json.dumps([b.to_dict() for b in builds], indent=2))
            return

        console.print(f"[bold]Found {len(builds)} build(s):[/bold]")
        console.print()
        for b in builds:
            status_color = {
                "succeeded": "green",
                "failed": "red",
                "canceled": "magenta",
                "running": "blue",
                "pending": "yellow",
            }.get(b.status, "white")
            console.print(f"  [{status_color}]Build #{b.id}[/{status_color}]")
            console.print(f"    App: {b.app_name}")
            console.print(f"    Repository: {b.owner}/{b.repository}")
            console.print(f"    Status: {b.status}")
            console.print(
                f"    Requested: {b.requested_at.isoformat() if b.requested_at else 'N/A'}"
            )
            if b.run_id:
                console.print(f"    Run: {b.run_id}")
            if b.artifact_path:
                console.print(f"    Artifact: {b.artifact_path}")
            if b.error_message:
                console.print(f"    Error: {escape(b.error_message)}")
            console.print()


@builds_app.command("show")
def builds_show(
    build_id: Annotated[int, typer.Argument(help="Build ID to show")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show details of a build record."""
    from remote_compiler.builds.service import BuildNotFoundError, get_build
    from remote_compiler.db import init_db

    session_factory = init_db()
    with session_factory() as session:
        try:
            build = get_build(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        data = build.to_dict()
        if json_output:
            typer.echo(json.dumps(data, indent=2))
            return

        console.print(f"[bold]Build #{build.id}[/bold]")
        for key, value in data.items():
            if key != "id" and value is not None:
                console.print(f"  {key}: {value}")


if __name__ == "__main__":
    app()
