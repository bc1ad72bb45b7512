"""Command-line interface for Timug.

This module defines the CLI commands using Click framework.
It provides commands for creating new projects, building the site, running
the development server and creating content.

Commands:
- init: Scaffold a new Timug project.
- deploy: Build the site into the deployment folder.
- start: Run development server with live reload.
- create: Create a new post or page with front matter.
- template: Theme maintenance (``template update``).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

import click
import questionary

from . import __version__
from .config import (
    ASSETS_PATH,
    CONFIG_FILE_NAME,
    DEFAULT_DEPLOYMENT_FOLDER,
    DEFAULT_LANGUAGE,
    DEFAULT_THEME,
    PAGES_PATH,
    POSTS_PATH,
    TEMPLATES_PATH,
    SiteConfig,
    dump_config,
    load_config,
)
from .errors import BuildError, ConfigError
from .utils import mirror_tree, slugify

logger = logging.getLogger("timug")

# Bundled project skeleton: the default theme and an example post.
_SKELETON_DIR = Path(__file__).parent / "skeleton"
_THEME_DIR = _SKELETON_DIR / "theme"
_EXAMPLE_POSTS_DIR = _SKELETON_DIR / "posts"

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = {
    "off": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


class _ClickFormatter(logging.Formatter):
    """``YYYY-mm-dd HH:MM:SS [LEVEL] message`` with a coloured level."""

    colors = {
        TRACE: "magenta",
        logging.DEBUG: "blue",
        logging.INFO: "green",
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "red",
    }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        level = click.style(
            f"[{record.levelname}]", fg=self.colors.get(record.levelno), bold=True
        )
        message = f"{timestamp} {level} {record.getMessage()}"
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class _ClickHandler(logging.Handler):
    """Writes records to the current stderr through click."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(level_name: str) -> None:
    """Install a single stderr handler on the ``timug`` logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = _ClickHandler()
    handler.setFormatter(_ClickFormatter())
    logger.addHandler(handler)
    logger.setLevel(LOG_LEVELS[level_name])


def _project_root(ctx: click.Context) -> Path:
    return ctx.obj["path"]


def _load_config(root: Path) -> SiteConfig:
    try:
        return load_config(root)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None


def _report_build_error(exc: BuildError, project_root: Path) -> None:
    """Display a build failure and exit with status 1."""
    try:
        rel_path = exc.source_path.resolve().relative_to(project_root)
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="timug")
@click.option(
    "-p",
    "--path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Path to the project folder",
)
@click.option(
    "-l",
    "--log",
    "log_level",
    type=click.Choice(list(LOG_LEVELS)),
    default="info",
    show_default=True,
    help="Set terminal log level",
)
@click.pass_context
def cli(ctx: click.Context, path: Path | None, log_level: str):
    """Timug static blog generator."""
    _configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["path"] = (path or Path.cwd()).resolve()
    ctx.obj["log"] = log_level


@cli.command()
@click.argument(
    "path",
    required=False,
    type=click.Path(file_okay=False, path_type=Path),
)
@click.pass_context
def init(ctx: click.Context, path: Path | None):
    """Create new timug project in the given (or current) folder."""
    root = path.resolve() if path else _project_root(ctx)
    config_path = root / CONFIG_FILE_NAME
    if config_path.exists():
        if ctx.obj["log"] == "off":
            raise click.ClickException(
                f"{config_path} already exists and cannot be overwritten without a prompt"
            )
        overwrite = questionary.confirm(
            f'"{config_path}" already created. Do you want to overwrite it?',
            default=False,
            style=_questionary_style(),
        ).ask()
        if not overwrite:
            raise click.ClickException("Canceled by the user")

    _scaffold(root)
    click.echo(f"New Timug site created at {root}")


@cli.command()
@click.option("-d", "--draft", is_flag=True, help="Deploy draft posts")
@click.option("--clean", is_flag=True, help="Empty the deployment folder first")
@click.pass_context
def deploy(ctx: click.Context, draft: bool, clean: bool):
    """Generate static pages."""
    project_root = _project_root(ctx)
    from .build import build_site

    try:
        result = build_site(project_root, show_drafts=draft, clean=clean)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None
    except BuildError as exc:
        _report_build_error(exc, project_root)
    click.echo(
        f"Built {len(result.posts)} posts and {len(result.pages)} pages into {result.output_dir}"
    )


@cli.command()
@click.argument("port", type=int, required=False)
@click.option("-d", "--draft", is_flag=True, help="Render draft posts")
@click.pass_context
def start(ctx: click.Context, port: int | None, draft: bool):
    """Start development server with live update."""
    project_root = _project_root(ctx)
    from .server import DevServer

    try:
        server = DevServer(project_root, http_port=port, show_drafts=draft)
        server.start()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from None
    except BuildError as exc:
        _report_build_error(exc, project_root)


@cli.command()
@click.argument("kind", type=click.Choice(["post", "page"]))
@click.argument("title")
@click.option("-d", "--draft", is_flag=True, help="Create as draft")
@click.pass_context
def create(ctx: click.Context, kind: str, title: str, draft: bool):
    """Create new static post or page."""
    config = _load_config(_project_root(ctx))
    folder = config.posts_path if kind == "post" else config.pages_path
    target = folder / f"{slugify(title)}.md"
    if target.exists():
        raise click.ClickException(f"File already exists: {target}")

    date = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    logger.debug("Creating new %s...", target)
    logger.debug("Title: %s", title)
    logger.debug("Date: %s", date)
    logger.debug("Draft: %s", draft)

    draft_line = "\ndraft: true" if draft else ""
    # A JSON string is a valid double-quoted YAML scalar.
    quoted_title = json.dumps(title, ensure_ascii=False)
    content = f"---\ntitle: {quoted_title}\ndate: {date}{draft_line}\ntags: \n---\n"
    folder.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    click.echo(f"Created {target}")


@cli.command()
@click.argument("command", type=click.Choice(["update"]))
@click.pass_context
def template(ctx: click.Context, command: str):
    """Template related commands."""
    config = _load_config(_project_root(ctx))
    theme_dir = config.blog_path / TEMPLATES_PATH / DEFAULT_THEME
    copied = mirror_tree(_THEME_DIR, theme_dir)
    logger.debug("Wrote %d theme files to %s", copied, theme_dir)
    logger.warning("Template updated.")


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()


def _scaffold(root: Path) -> None:
    """Create the directory structure and files for a new Timug project.

    Args:
        root: Root directory for the new project.
    """
    root.mkdir(parents=True, exist_ok=True)
    config = SiteConfig(
        title="My Blog",
        lang=DEFAULT_LANGUAGE,
        theme=DEFAULT_THEME,
        blog_path=root,
        deployment_folder=Path(DEFAULT_DEPLOYMENT_FOLDER),
    )
    (root / CONFIG_FILE_NAME).write_text(dump_config(config), encoding="utf-8")

    mirror_tree(_THEME_DIR, root / TEMPLATES_PATH / DEFAULT_THEME)
    mirror_tree(_EXAMPLE_POSTS_DIR, root / POSTS_PATH)
    for folder in (PAGES_PATH, ASSETS_PATH, DEFAULT_DEPLOYMENT_FOLDER):
        (root / folder).mkdir(parents=True, exist_ok=True)
