"""CLI entry point using Typer."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from auditbot.config import AuditbotConfig, load_config, setup_langsmith
from auditbot.integrations import github
from auditbot.status import Status
from auditbot.store.state import StateStore

app = typer.Typer(
    name="auditbot",
    help="npm audit remediation for GitHub repositories",
)

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to auditbot-config.yml")


def _load(config_file: Optional[Path]) -> AuditbotConfig:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    setup_langsmith()
    try:
        return load_config(config_file=config_file)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _report(status: Status) -> None:
    if status.message:
        typer.echo(status.message)
    typer.echo(f"Outcome: {status.outcome}{'' if status.visible else ' (hidden)'}")
    if status.outcome == "failure":
        raise typer.Exit(1)


@app.command()
def push(
    repo: str = typer.Argument(..., help="Repository in owner/repo format"),
    branch: Optional[str] = typer.Option(None, "--branch", "-b", help="Branch (default branch if omitted)"),
    checkout: Optional[Path] = typer.Option(
        None, "--checkout", help="Work in this existing checkout instead of cloning"
    ),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Audit and remediate the head of a branch, as on a push."""
    from auditbot.triggers.push import run_on_push

    config = _load(config_file)
    handle = github.get_repository(repo)
    head = github.get_head_push(handle, branch)
    typer.echo(f"Auditing {handle.slug}@{head.branch} ({(head.sha or '')[:7]})...")
    _report(run_on_push(head, config, checkout=checkout))


@app.command()
def audit(
    owner: Optional[str] = typer.Option(None, "--owner", help="Only repositories of this owner"),
    repo: Optional[str] = typer.Option(None, "--repo", help="Only repositories with this name"),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Audit the fleet now, ignoring the idle window."""
    from auditbot.triggers.commands import run_audit_command

    config = _load(config_file)
    _report(asyncio.run(run_audit_command(config, owner=owner, repo=repo)))


@app.command()
def schedule(config_file: Optional[Path] = CONFIG_OPTION) -> None:
    """Scheduled fleet audit; skipped within the idle window."""
    from auditbot.triggers.schedule import audit_on_schedule

    config = _load(config_file)
    _report(asyncio.run(audit_on_schedule(config)))


@app.command()
def install(
    package: str = typer.Argument(..., help="npm package name"),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="Version or tag (default: latest)"),
    repo: Optional[str] = typer.Option(None, "--repo", help="Repository slug owner/name"),
    repos: Optional[str] = typer.Option(None, "--repos", help="Regular expression matching repository slugs"),
    save: Optional[str] = typer.Option(None, "--save", help="npm --save-<kind> flag, e.g. exact"),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Install a package version into repositories that depend on it."""
    from auditbot.triggers.commands import run_install_command

    config = _load(config_file)
    _report(run_install_command(config, package, version=version, repo=repo, repos=repos, save=save))


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    config_file: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Serve the registry webhook endpoint."""
    import uvicorn

    from auditbot.server import create_app

    config = _load(config_file)
    uvicorn.run(create_app(config), host=host, port=port)


@app.command("reset-state")
def reset_state(config_file: Optional[Path] = CONFIG_OPTION) -> None:
    """Forget processing times and exclusions of the fleet audit."""
    config = _load(config_file)
    StateStore(config.storage.home).reset(config.name)
    typer.echo(f"Reset audit state for '{config.name}'")


if __name__ == "__main__":
    app()
