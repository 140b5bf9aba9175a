"""Command-line interface for Krems Publisher."""

import asyncio
import logging
import webbrowser
from pathlib import Path
from typing import List, Optional

import typer

from krems_publisher.core.models import KremsError, Notice, Secret
from krems_publisher.core.settings import validate_local_path, validate_port, validate_repository_url
from krems_publisher.plugin import KremsPlugin, create_plugin_from_config

BROWSER_DELAY_SECONDS = 1.5

app = typer.Typer(help="Clone, preview and publish a krems site from your vault.")
settings_app = typer.Typer(help="Show or change plugin settings.")
app.add_typer(settings_app, name="settings")

NOTICE_COLORS = {
    "success": typer.colors.GREEN,
    "error": typer.colors.RED,
}


def echo_notice(notice: Notice) -> None:
    typer.secho(notice.message, fg=NOTICE_COLORS.get(notice.level), err=notice.is_error)


def confirm(text: str) -> bool:
    return typer.confirm(text, default=False)


def _exit_on_error(notices: List[Notice]) -> None:
    if any(n.is_error for n in notices):
        raise typer.Exit(1)


@app.callback()
def main(
    ctx: typer.Context,
    root: Path = typer.Option(Path("."), "--root", "-r", help="Vault root directory."),
    settings_file: Optional[Path] = typer.Option(None, "--settings", help="Settings file to use."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every command."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        ctx.obj = create_plugin_from_config(root.resolve(), settings_path=settings_file)
    except KremsError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@settings_app.command("show")
def settings_show(ctx: typer.Context):
    """Print the current settings; the token is masked."""
    plugin: KremsPlugin = ctx.obj
    for key, value in plugin.settings.to_dict().items():
        if key == "token":
            value = str(plugin.settings.token) if plugin.settings.token else ""
        typer.echo(f"{key}: {value}")


@settings_app.command("set")
def settings_set(ctx: typer.Context, key: str, value: str):
    """Change one setting and save it."""
    plugin: KremsPlugin = ctx.obj
    key = key.replace("-", "_")
    value = value if key == "token" else value.strip()
    try:
        plugin.store.update(**{key: Secret(value) if key == "token" else value})
    except KremsError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    check = None
    if key == "repository_url":
        check = validate_repository_url(value)
    elif key == "port":
        check = validate_port(value)
    elif key == "local_path":
        check = validate_local_path(plugin.storage_root, value)
    if check is not None:
        valid, message = check
        typer.secho(message, fg=typer.colors.GREEN if valid else typer.colors.YELLOW)
    typer.echo(f"Saved {key}.")


@app.command()
def clone(
    ctx: typer.Context,
    fresh: bool = typer.Option(False, "--fresh", help="Delete the local directory and clone again."),
):
    """Clone your repository into the local site directory."""
    plugin: KremsPlugin = ctx.obj
    notices = asyncio.run(plugin.clone_repository(fresh=fresh, confirm=confirm, listener=echo_notice))
    _exit_on_error(notices)


@app.command()
def preview(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before downloading krems."),
    open_browser: bool = typer.Option(True, "--open/--no-open", help="Open the site in a browser."),
):
    """Serve the site locally until interrupted."""
    plugin: KremsPlugin = ctx.obj
    try:
        asyncio.run(_serve(plugin, None if yes else confirm, open_browser))
    except KeyboardInterrupt:
        pass
    finally:
        plugin.unload()


async def _serve(plugin: KremsPlugin, confirm_download, open_browser: bool) -> None:
    notices = await plugin.start_preview(
        confirm=confirm_download,
        on_output=lambda line, stream: typer.echo(f"[STDERR] {line}" if stream == "stderr" else line),
        listener=echo_notice,
    )
    if not plugin.preview.is_running:
        _exit_on_error(notices)
        return

    if open_browser:
        url = f"http://localhost:{plugin.settings.port_number}"
        asyncio.get_running_loop().call_later(BROWSER_DELAY_SECONDS, webbrowser.open, url)

    try:
        await plugin.preview.wait()
    except asyncio.CancelledError:
        await plugin.stop_preview(listener=echo_notice)
        raise


@app.command()
def clean(ctx: typer.Context):
    """Clean temporary preview files in the site directory."""
    plugin: KremsPlugin = ctx.obj
    asyncio.run(plugin.stop_preview(listener=echo_notice))


@app.command()
def publish(
    ctx: typer.Context,
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message."),
):
    """Add, commit and push the site to GitHub."""
    plugin: KremsPlugin = ctx.obj
    notices = asyncio.run(plugin.publish(message=message, listener=echo_notice))
    _exit_on_error(notices)


if __name__ == "__main__":
    app()
