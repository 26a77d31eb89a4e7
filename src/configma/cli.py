"""Command-line interface for configma."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import CONFIG_FILENAME, ConfigError, ProfileDesc, load_config, render_default_config, write_profile
from .context import RunContext, default_config_dir
from .errors import ConfigmaError
from .models import StatusEntry, StatusState, SyncResult
from .paths import expand_user
from .privilege import UserIdentity, detect_identities
from .profile import Profile, changed
from .state import StateFile

app = typer.Typer(help="Keep configuration files in a repository of modules and symlink them into place")
console = Console()

DEFAULT_MODULE = "base"


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("configma")
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(handler, RichHandler) for handler in package_logger.handlers):
        package_logger.addHandler(RichHandler(console=console, show_time=False, show_path=False))


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print(f"[red]Permission denied: {exc}[/red]")
        console.print("[yellow]Paths owned by root need configma to be run through `sudo`.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message and CONFIG_FILENAME in message:
            console.print("[yellow]Use 'configma init --repo <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigmaError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, OSError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _identities(state: typer.Context) -> tuple[UserIdentity, UserIdentity | None, Path]:
    user, root_user = detect_identities()
    raw_dir = state.obj.get("config_dir") if state.obj else None
    if raw_dir is None:
        return user, root_user, default_config_dir(user)

    config_dir = expand_user(raw_dir, Path(user.home))
    if not config_dir.is_dir():
        raise ConfigError(f"Configuration directory '{config_dir}' does not exist")
    return user, root_user, config_dir.resolve()


def _load_context(state: typer.Context) -> RunContext:
    user, root_user, config_dir = _identities(state)
    config_dir.mkdir(parents=True, exist_ok=True)
    config = load_config(config_dir, home=Path(user.home))
    return RunContext.create(config, config_dir=config_dir, user=user, root_user=root_user)


def _load_profile(ctx: RunContext, *, switch_to: str | None = None) -> Profile:
    active = StateFile(ctx.state_file).load()
    if active is None:
        if switch_to is None:
            raise ConfigError("No active profile. Select one with 'configma switch-profile <name>'.")
        active = ProfileDesc(name=switch_to)

    required = ctx.config.profile(switch_to or active.name)
    default_module = ctx.config.default_module
    if default_module is not None and default_module not in required.modules:
        raise ConfigError(f"Profile '{required.name}' must contain the default module '{default_module}'")

    return Profile.load(ctx, active, required)


def _format_sync_results(results: Iterable[SyncResult]) -> None:
    results = changed(results)
    if not results:
        console.print("[green]Everything is already in place.[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Module")
    table.add_column("Path")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    for result in results:
        table.add_row(result.module, str(result.key), result.action.value, result.details or "")

    console.print(table)


def _format_status(entries: Iterable[StatusEntry]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Module")
    table.add_column("Path")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    status_styles = {
        StatusState.LINKED: "green",
        StatusState.MISSING: "yellow",
        StatusState.CONFLICT: "red",
        StatusState.SHADOWED: "dim",
    }

    for entry in entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(
            entry.module,
            str(entry.key),
            f"[{style}]{entry.state.value}[/{style}]",
            entry.details or "",
        )

    console.print(table)


@app.callback()
def main(
    state: typer.Context,
    config_dir: str | None = typer.Option(
        None,
        "--config-dir",
        "-c",
        help="Configuration directory (default: ~/.config/configma)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Manage configuration files as symlinks into a repository of modules."""

    _configure_logging(verbose)
    state.obj = {"config_dir": config_dir}


@app.command()
def init(
    state: typer.Context,
    repo: str = typer.Option(..., "--repo", "-r", help="Path of the repository holding the modules"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file"),
) -> None:
    """Create a starter configuration file and the repository directory."""

    try:
        user, _, config_dir = _identities(state)
        config_path = config_dir / CONFIG_FILENAME
        if config_path.exists() and not force:
            console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
            raise typer.Exit(code=1)

        repo_path = expand_user(repo, Path(user.home))
        if not repo_path.is_absolute():
            repo_path = Path.cwd() / repo_path

        config_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(render_default_config(str(repo_path), default_module=DEFAULT_MODULE))
        console.print(f"[green]Created '{config_path}'.[/green]")

        (repo_path / DEFAULT_MODULE).mkdir(parents=True, exist_ok=True)
        console.print(f"[green]Ensured repository '{repo_path}' with module '{DEFAULT_MODULE}'.[/green]")
    except typer.Exit:
        raise
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def add(
    state: typer.Context,
    paths: list[str] = typer.Argument(..., help="Paths to move into the repository"),
    module: str | None = typer.Option(None, "--module", "-m", help="Module to add to (default: default_module)"),
) -> None:
    """Move paths into a module and replace them with symlinks."""

    try:
        ctx = _load_context(state)
        name = module or ctx.config.default_module
        if name is None:
            raise ConfigError("No module specified. Set default_module in the configuration or use --module.")

        profile = _load_profile(ctx)
        for raw in paths:
            entry = profile.add(raw, ctx, name)
            if entry is None:
                console.print(f"[yellow]Nothing to do for '{raw}'.[/yellow]")
            else:
                console.print(f"[green]Added '{entry.src}' to module '{name}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def remove(
    state: typer.Context,
    paths: list[str] = typer.Argument(..., help="Paths to restore from the repository"),
    module: str | None = typer.Option(None, "--module", "-m", help="Remove from this module"),
    active: bool = typer.Option(
        False,
        "--active",
        "-a",
        help="Remove from the active module with the highest precedence",
    ),
    default: bool = typer.Option(False, "--default", "-d", help="Remove from the default module"),
) -> None:
    """Restore paths from the repository and stop managing them."""

    selectors = sum((module is not None, active, default))
    if selectors != 1:
        console.print("[red]Choose exactly one of --module, --active or --default.[/red]")
        raise typer.Exit(code=2)

    try:
        ctx = _load_context(state)
        profile = _load_profile(ctx)

        name = module
        if default:
            name = ctx.config.default_module
            if name is None:
                raise ConfigError("No default_module is set in the configuration.")

        for raw in paths:
            if name is None:
                entry = profile.remove_from_active(raw, ctx)
            else:
                entry = profile.remove(raw, ctx, name)
            console.print(f"[green]Restored '{entry.src}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("new-profile")
def new_profile(
    state: typer.Context,
    name: str = typer.Argument(..., help="Name of the new profile"),
    module: list[str] = typer.Option(None, "--module", "-m", help="Module to include, lowest precedence first"),
) -> None:
    """Add a profile to the configuration file."""

    try:
        ctx = _load_context(state)
        if any(profile.name == name for profile in ctx.config.profiles):
            raise ConfigError(f"Profile '{name}' already exists.")

        desc = ProfileDesc.from_raw({"name": name, "modules": list(module or [])})
        external = {module.name for module in ctx.config.modules if module.path is not None}
        for module_name in desc.modules:
            if module_name not in external:
                (ctx.canon_repo / module_name).mkdir(exist_ok=True)
        write_profile(ctx.config, desc)

        state_file = StateFile(ctx.state_file)
        if not state_file.exists():
            state_file.save(ProfileDesc(name=name))
            console.print(f"[green]Created profile '{name}' and made it active.[/green]")
        else:
            console.print(f"[green]Created profile '{name}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command("switch-profile")
def switch_profile(
    state: typer.Context,
    name: str = typer.Argument(..., help="Profile to switch to"),
    force: bool = typer.Option(False, "--force", "-f", help="Move conflicting files to the dump directory"),
) -> None:
    """Switch to a different profile."""

    try:
        ctx = _load_context(state)
        profile = _load_profile(ctx, switch_to=name)
        profile.validate()
        _format_sync_results(profile.sync(force, ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def sync(
    state: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Move conflicting files to the dump directory"),
) -> None:
    """Check and apply the configuration after it was edited."""

    try:
        ctx = _load_context(state)
        profile = _load_profile(ctx)
        profile.validate()
        _format_sync_results(profile.sync(force, ctx))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(state: typer.Context) -> None:
    """Show every entry of the active profile and whether it is linked."""

    try:
        ctx = _load_context(state)
        profile = _load_profile(ctx)
        report = profile.status(ctx)
        _format_status(report)
        if any(entry.state in (StatusState.MISSING, StatusState.CONFLICT) for entry in report):
            console.print("[yellow]Some entries are not linked. Run 'configma sync' to fix them.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
