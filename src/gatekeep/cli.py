from __future__ import annotations

from pathlib import Path

import anyio
import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .commands import build_entrypoints
from .config_store import (
    backup_config,
    find_config_root,
    get_config_path,
    write_raw_toml,
)
from .errors import ConfigError
from .logging import get_logger, setup_logging
from .runtime import build_registry, run_bot
from .settings import BotSettings, load_settings
from .store import MemoryStore

logger = get_logger(__name__)

console = Console()


def _print_version_and_exit() -> None:
    typer.echo(__version__)
    raise typer.Exit()


def _version_callback(value: bool) -> None:
    if value:
        _print_version_and_exit()


class _NoMembers:
    """Member gateway for offline inspection; never called."""

    async def add_group(self, subject_id: int, group_id: int) -> None:
        raise RuntimeError("offline")

    async def remove_group(self, subject_id: int, group_id: int) -> None:
        raise RuntimeError("offline")

    async def send_direct(self, subject_id: int, payload: object) -> None:
        raise RuntimeError("offline")


def _load_settings_or_exit() -> BotSettings:
    root = find_config_root()
    if root is None:
        typer.echo("error: no .gatekeep/bot.toml found", err=True)
        typer.echo("Run 'gatekeep init' to create one here.", err=True)
        raise typer.Exit(code=1)

    settings = load_settings(root)
    if settings is None:
        typer.echo(f"error: failed to load {get_config_path(root)}", err=True)
        raise typer.Exit(code=1)
    return settings


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Discord command router with permission gating and scheduled actions.",
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log permission decisions and raw dispatch outcomes.",
    ),
) -> None:
    """gatekeep CLI."""
    if ctx.invoked_subcommand is None:
        _run(debug=debug)
        raise typer.Exit()


def _run(*, debug: bool) -> None:
    setup_logging(debug=debug)
    settings = _load_settings_or_exit()

    logger.info("bot.starting", guild_id=settings.guild_id)
    try:
        anyio.run(run_bot, settings)
    except KeyboardInterrupt:
        logger.info("shutdown.interrupted")
        raise typer.Exit(code=130)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception("bot.failed", error=str(e))
        typer.echo(f"error: bot failed: {e}", err=True)
        raise typer.Exit(code=1)


@app.command("run", help="Connect to Discord and start the scheduler.")
def run_command(
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Verbose logging."),
) -> None:
    _run(debug=debug)


@app.command("init", help="Write .gatekeep/bot.toml in the current directory.")
def init_command(
    token: str = typer.Option(None, "--token", "-t", help="Discord bot token"),
    guild_id: int = typer.Option(None, "--guild-id", "-g", help="Guild (server) id"),
    staff_role: int = typer.Option(None, "--staff-role", "-s", help="Staff role id"),
    muted_role: int = typer.Option(None, "--muted-role", help="Muted role id"),
    member_role: int = typer.Option(None, "--member-role", help="Regular member role id"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config."),
) -> None:
    config_path = get_config_path(Path.cwd())
    if config_path.exists() and not force:
        typer.echo(f"error: config already exists at {config_path}", err=True)
        raise typer.Exit(code=1)

    if token is None:
        token = typer.prompt("Discord bot token", hide_input=True)
    if guild_id is None:
        guild_id = typer.prompt("Guild id", type=int)
    if staff_role is None:
        staff_role = typer.prompt("Staff role id", type=int)

    roles: dict[str, int] = {"staff": staff_role}
    if muted_role is not None:
        roles["muted"] = muted_role
    if member_role is not None:
        roles["member"] = member_role

    backup = backup_config(config_path)
    write_raw_toml(
        {
            "bot": {"token": token, "guild_id": guild_id},
            "roles": roles,
            "scheduler": {"enabled": True, "interval_s": 10.0},
        },
        config_path,
    )
    if backup is not None:
        typer.echo(f"✓ Previous config backed up to {backup}")
    typer.echo(f"✓ Config saved to {config_path}")


@app.command("commands", help="List registered commands and their permissions.")
def commands_command() -> None:
    settings = _load_settings_or_exit()
    try:
        registry = build_registry(build_entrypoints(settings, MemoryStore(), _NoMembers()))
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)

    table = Table(title="Commands", show_header=True)
    table.add_column("Command")
    table.add_column("Description")
    table.add_column("Listeners")
    table.add_column("Permissions")
    for entrypoint in registry.entrypoints():
        listeners = ", ".join(
            [*entrypoint.interaction_listeners, *entrypoint.reaction_listeners]
        )
        permissions = ", ".join(
            f"{subject_id}={'allow' if allowed else 'deny'}"
            for subject_id, allowed in entrypoint.get_permissions()
        )
        table.add_row(
            f"/{entrypoint.name}",
            entrypoint.description,
            listeners or "-",
            permissions or "(nobody)",
        )
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
