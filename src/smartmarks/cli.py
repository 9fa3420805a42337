"""Command line interface for Smartmarks."""

from __future__ import annotations

import difflib
import getpass
import logging
import threading
from typing import Any, Iterable, NoReturn

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from smartmarks.collection import Bookmark, SmartmarksError, StoreError, ValidationError
from smartmarks.config import ConfigError, ConfigManager, SmartmarksConfig, resolve_with_precedence
from smartmarks.store import build_store
from smartmarks.sync import BookmarkSession

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output.
        click.ClickException: For non-JSON flows.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    raise click.ClickException(message) from original


def _error_code(exc: SmartmarksError) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, StoreError):
        return "store_error"
    if isinstance(exc, ConfigError):
        return "config_error"
    return "smartmarks_error"


def _configure_logging(config: SmartmarksConfig) -> None:
    """Route library logs through Rich on stderr at the configured level."""
    logging.basicConfig(
        level=config.logging.level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(json_output: bool = False) -> SmartmarksConfig:
    try:
        manager = ConfigManager()
        manager.ensure_exists()
        config = manager.load()
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    _configure_logging(config)
    return config


def _resolve_owner(ctx: click.Context, config: SmartmarksConfig) -> str:
    owner = (ctx.obj or {}).get("owner") or config.session.owner_id
    return owner or getpass.getuser()


def _build_session(ctx: click.Context, config: SmartmarksConfig) -> BookmarkSession:
    store = build_store(config.store.backend, config.store.resolved_path)
    return BookmarkSession(
        store,
        _resolve_owner(ctx, config),
        stop_timeout=config.subscription.stop_timeout_seconds,
    )


def _bookmark_table(bookmarks: Iterable[Bookmark], *, owner: str, date_format: str) -> Table:
    """Return a Rich table describing ``bookmarks`` newest first."""
    table = Table(title=f"Bookmarks for {owner}", show_lines=False)
    table.add_column("Title", style="bold")
    table.add_column("URL", style="cyan")
    table.add_column("Added")
    table.add_column("ID", style="dim")
    for bookmark in bookmarks:
        table.add_row(
            bookmark.title,
            bookmark.url,
            bookmark.created_at.strftime(date_format),
            bookmark.id,
        )
    return table


def _emit_bookmarks(
    bookmarks: tuple[Bookmark, ...],
    *,
    owner: str,
    config: SmartmarksConfig,
    json_output: bool,
) -> None:
    if json_output:
        console.print_json(
            data={
                "owner_id": owner,
                "bookmarks": [bookmark.model_dump(mode="json") for bookmark in bookmarks],
            }
        )
        return
    if not bookmarks:
        console.print(
            "[yellow]No bookmarks yet. Add your first one with `smartmarks add`.[/yellow]"
        )
        return
    console.print(_bookmark_table(bookmarks, owner=owner, date_format=config.cli.date_format))


def _quiet_enabled(ctx: click.Context, quiet: bool, config: SmartmarksConfig) -> bool:
    if ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE:
        return quiet
    return config.cli.quiet_default


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="smartmarks")
@click.option("--owner", type=str, help="Identity whose bookmarks are managed.")
@click.pass_context
def cli(ctx: click.Context, owner: str | None) -> None:
    """Smartmarks keeps a live, synchronized list of your bookmarks."""
    ctx.ensure_object(dict)
    ctx.obj["owner"] = owner


@cli.command("list")
@click.option("--json", "json_output", is_flag=True, help="Emit bookmarks as JSON.")
@click.pass_context
def list_bookmarks(ctx: click.Context, json_output: bool) -> None:
    """Show bookmarks, newest first."""
    config = _load_config(json_output)
    session = _build_session(ctx, config)
    try:
        with session:
            bookmarks = session.snapshot()
    except SmartmarksError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
    _emit_bookmarks(bookmarks, owner=session.owner_id, config=config, json_output=json_output)


@cli.command("add")
@click.argument("title")
@click.argument("url")
@click.option("--json", "json_output", is_flag=True, help="Emit the created bookmark as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def add_bookmark(ctx: click.Context, title: str, url: str, json_output: bool, quiet: bool) -> None:
    """Add a bookmark with TITLE pointing to URL."""
    config = _load_config(json_output)
    session = _build_session(ctx, config)
    try:
        with session:
            item = session.add_item(title, url)
            total = len(session.snapshot())
    except SmartmarksError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)

    if json_output:
        console.print_json(data={"bookmark": item.model_dump(mode="json"), "total": total})
        return
    if not _quiet_enabled(ctx, quiet, config):
        console.print(
            f"[green]Added {item.title} ({item.url}) as {item.id}; {total} bookmark(s).[/green]"
        )


@cli.command("delete")
@click.argument("item_id")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def delete_bookmark(ctx: click.Context, item_id: str, quiet: bool) -> None:
    """Delete the bookmark with ITEM_ID."""
    config = _load_config()
    session = _build_session(ctx, config)
    try:
        with session:
            known = item_id in session.state
            session.delete_item(item_id)
            total = len(session.snapshot())
    except SmartmarksError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)

    if _quiet_enabled(ctx, quiet, config):
        return
    if known:
        console.print(f"[green]Deleted {item_id}; {total} bookmark(s) remain.[/green]")
    else:
        console.print(f"[yellow]No bookmark {item_id} found; nothing deleted.[/yellow]")


@cli.command("watch")
@click.option("--json", "json_output", is_flag=True, help="Emit one JSON document per change.")
@click.option(
    "--duration",
    type=float,
    help="Stop watching after this many seconds instead of waiting for Ctrl+C.",
)
@click.pass_context
def watch(ctx: click.Context, json_output: bool, duration: float | None) -> None:
    """Show bookmarks and re-render whenever they change."""
    if duration is not None and duration <= 0:
        raise click.ClickException("--duration must be greater than zero.")

    config = _load_config(json_output)
    session = _build_session(ctx, config)
    owner = session.owner_id

    def _render(snapshot: tuple[Bookmark, ...]) -> None:
        _emit_bookmarks(snapshot, owner=owner, config=config, json_output=json_output)

    try:
        session.open()
    except SmartmarksError as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)

    stopped = threading.Event()
    try:
        session.add_listener(_render)
        _render(session.snapshot())
        if not json_output:
            console.print(f"[cyan]Watching bookmarks for {owner}. Press Ctrl+C to stop.[/cyan]")
        stopped.wait(duration)
    except KeyboardInterrupt:
        if not json_output:
            console.print("[yellow]Watch stopped by user request.[/yellow]")
    finally:
        session.close()


@cli.group()
def config() -> None:
    """Manage Smartmarks configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules."""
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="json"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY."""
    manager = ConfigManager()
    manager.ensure_exists()
    before = manager.read_text().splitlines()
    try:
        previous = manager.load_file_overrides()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        parsed: Any = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        written = manager.set_value(key, parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if written == previous:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    after = manager.read_text().splitlines()
    diff = difflib.unified_diff(
        before,
        after,
        fromfile="config.yaml (before)",
        tofile="config.yaml (after)",
        lineterm="",
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {key}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an editor and validate the result."""
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")
    if edited is None or edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc
    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=SmartmarksConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
