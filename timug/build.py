"""Site building functionality for Timug.

This module turns a loaded BuildContext into files in the deployment
folder. One build walks a fixed sequence of steps:

    pre-process hooks -> loading -> pages -> posts -> tag pages
    -> assets -> post-process hooks

Any failure stops the build at the step where it happened and propagates
as a BuildError naming the offending file; files written before the
failure are not reported as a result.

Key classes:
- SiteBuilder: Runs the pipeline over a BuildContext.
- BuildResult: What a successful build produced.

Key functions:
- build_site: Load a project and build it once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from jinja2 import TemplateNotFound, TemplateSyntaxError
from markupsafe import Markup

from .content import Page, Post, load_pages, load_posts
from .context import BuildContext
from .errors import BuildError, ExtensionError, FilesystemError, TemplateError
from .extensions import ExtensionRegistry, default_registry
from .hooks import run_hooks
from .renderers import MarkdownConverter
from .tags import TagIndex
from .templates import TemplateEngine, page_value, post_value, tag_value
from .utils import ensure_clean_dir, mirror_tree

logger = logging.getLogger(__name__)

POST_TEMPLATE = "post.html"
PAGE_TEMPLATE = "page.html"
TAG_TEMPLATE = "posts.html"
TAGS_FOLDER = "tags"
ASSETS_FOLDER = "assets"


class BuildState(Enum):
    """Step a SiteBuilder is currently in."""

    IDLE = "idle"
    LOADING = "loading"
    RENDERING_PAGES = "rendering pages"
    RENDERING_POSTS = "rendering posts"
    RENDERING_TAGS = "rendering tags"
    COPYING_ASSETS = "copying assets"
    RUNNING_HOOKS = "running hooks"
    FAILED = "failed"


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        posts: Posts that were rendered.
        pages: Pages that were written.
        tags: Tag names that got a listing page.
        output_dir: Directory where the site was built.
        files: Every file written, in write order.
        assets: Number of asset files copied.
    """

    posts: list[Post]
    pages: list[Page]
    tags: list[str]
    output_dir: Path
    files: list[Path] = field(default_factory=list)
    assets: int = 0


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


@contextmanager
def _reporting(source_path: Path) -> Iterator[None]:
    """Translate failures inside a build step into BuildErrors for source_path."""
    try:
        yield
    except ExtensionError as exc:
        if exc.source_path == Path(source_path):
            raise
        raise ExtensionError(
            source_path, f"{exc.source_path.stem}: {exc.message}", exc
        ) from exc
    except BuildError:
        raise
    except TemplateSyntaxError as exc:
        where = f" in {exc.name}" if exc.name else ""
        raise TemplateError(
            source_path,
            f"Template syntax error{where} on line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except TemplateNotFound as exc:
        raise TemplateError(source_path, f"Template not found: {exc.name}", exc) from exc
    except OSError as exc:
        raise FilesystemError(
            Path(exc.filename) if exc.filename else source_path,
            exc.strerror or str(exc),
            exc,
        ) from exc
    except Exception as exc:
        raise TemplateError(source_path, _format_error_message(exc), exc) from exc


class SiteBuilder:
    """Renders a BuildContext into its deployment folder.

    One builder is reused across rebuilds by the dev server; every run
    reloads posts and pages from disk and starts from a fresh template
    environment.

    Attributes:
        context: Shared build context.
        registry: Extensions installed into every build.
        state: Current BuildState.
    """

    def __init__(
        self,
        context: BuildContext,
        registry: ExtensionRegistry | None = None,
        converter: MarkdownConverter | None = None,
    ):
        self.context = context
        self.registry = registry if registry is not None else default_registry()
        self.converter = converter or MarkdownConverter()
        self.state = BuildState.IDLE
        self._files: list[Path] = []

    def _enter(self, state: BuildState) -> None:
        self.state = state
        logger.debug("Build step: %s", state.value)

    def run(self, clean: bool = False) -> BuildResult:
        """Build the whole site once.

        Args:
            clean: Wipe the deployment folder before writing.

        Returns:
            BuildResult describing what was written.

        Raises:
            BuildError: On the first failing step; state becomes FAILED.
        """
        self._files = []
        try:
            result = self._run(clean)
        except BuildError as exc:
            self.state = BuildState.FAILED
            logger.debug("Build failed in %s", exc.source_path)
            raise
        self.state = BuildState.IDLE
        logger.info(
            "Built %d posts, %d pages and %d tag pages into %s",
            len(result.posts),
            len(result.pages),
            len(result.tags),
            result.output_dir,
        )
        return result

    def _run(self, clean: bool) -> BuildResult:
        ctx = self.context
        theme_dir = ctx.template_path
        if not theme_dir.is_dir():
            raise TemplateError(theme_dir, "Theme directory not found")

        if ctx.theme.pre_process:
            self._enter(BuildState.RUNNING_HOOKS)
            run_hooks(ctx.theme.pre_process, cwd=theme_dir)

        self._enter(BuildState.LOADING)
        engine = self._load(clean)

        self._enter(BuildState.RENDERING_PAGES)
        pages = self._render_pages(engine)

        self._enter(BuildState.RENDERING_POSTS)
        posts = self._render_posts(engine)

        self._enter(BuildState.RENDERING_TAGS)
        tags = self._render_tags(engine)

        self._enter(BuildState.COPYING_ASSETS)
        assets = self._copy_assets()

        if ctx.theme.process:
            self._enter(BuildState.RUNNING_HOOKS)
            run_hooks(ctx.theme.process, cwd=theme_dir, publish_folder=ctx.deployment_path)

        return BuildResult(
            posts=posts,
            pages=pages,
            tags=tags,
            output_dir=ctx.deployment_path,
            files=list(self._files),
            assets=assets,
        )

    def _load(self, clean: bool) -> TemplateEngine:
        ctx = self.context
        config = ctx.config
        with ctx.write(), _reporting(config.blog_path):
            tags = TagIndex()
            posts = load_posts(config.posts_path, config, ctx.show_drafts, tags)
            pages = load_pages(ctx.template_path, config.pages_path, ctx.show_drafts)
            ctx.replace_content(posts, pages, tags)
        logger.debug(
            "Loaded %d posts, %d pages, %d tags", len(posts), len(pages), len(ctx.tags)
        )

        with _reporting(ctx.deployment_path):
            if clean:
                ensure_clean_dir(ctx.deployment_path)
            else:
                ctx.deployment_path.mkdir(parents=True, exist_ok=True)

        engine = TemplateEngine(ctx, self.converter)
        self.registry.install(engine, ctx)
        with ctx.read():
            engine.register_pages(ctx.pages)
        engine.refresh()
        return engine

    def _write(self, target: Path, html: str) -> None:
        with _reporting(target):
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(html, encoding="utf-8")
        self._files.append(target)
        logger.debug("Generated %s", target)

    def _render_pages(self, engine: TemplateEngine) -> list[Page]:
        ctx = self.context
        written: list[Page] = []
        with ctx.read():
            pages = [page for page in ctx.pages if page.render]
            for index, page in enumerate(pages):
                with _reporting(page.path):
                    html = self._render_page(engine, page, index)
                self._write(ctx.deployment_path / page.output_name, html)
                written.append(page)
        return written

    def _render_page(self, engine: TemplateEngine, page: Page, index: int) -> str:
        values: dict[str, Any] = {
            "page": page_value(page),
            "title": page.title,
            "data": page.extra,
            "index": index,
        }
        if not page.is_markdown:
            return engine.render_template(page.template_name, engine.create_context(**values))
        content = engine.render_markdown(page.body, engine.create_context(**values))
        return engine.render_template(
            PAGE_TEMPLATE, engine.create_context(content=Markup(content), **values)
        )

    def _render_posts(self, engine: TemplateEngine) -> list[Post]:
        ctx = self.context
        seen: dict[Path, Post] = {}
        with ctx.read():
            posts = list(ctx.posts)
            for index, post in enumerate(posts):
                target = ctx.deployment_path.joinpath(*post.output_parts)
                if target in seen:
                    logger.warning(
                        "%s overwrites %s: both render to %s",
                        post.path.name,
                        seen[target].path.name,
                        target,
                    )
                seen[target] = post
                with _reporting(post.path):
                    html = self._render_post(engine, post, index)
                self._write(target, html)
        return posts

    def _render_post(self, engine: TemplateEngine, post: Post, index: int) -> str:
        values: dict[str, Any] = {
            "post": post_value(post),
            "title": post.title,
            "data": post.extra,
            "index": index,
        }
        content = engine.render_markdown(post.body, engine.create_context(**values))
        return engine.render_template(
            POST_TEMPLATE, engine.create_context(content=Markup(content), **values)
        )

    def _render_tags(self, engine: TemplateEngine) -> list[str]:
        ctx = self.context
        names: list[str] = []
        with ctx.read():
            tags = list(ctx.tags)
            folder = ctx.deployment_path / TAGS_FOLDER
            for index, tag in enumerate(tags):
                value = tag_value(tag)
                with _reporting(ctx.template_path / TAG_TEMPLATE):
                    html = engine.render_template(
                        TAG_TEMPLATE,
                        engine.create_context(
                            tag=value, title=tag.name, posts=value["posts"], index=index
                        ),
                    )
                self._write(folder / tag.file_name, html)
                names.append(tag.name)
        return names

    def _copy_assets(self) -> int:
        ctx = self.context
        target = ctx.deployment_path / ASSETS_FOLDER
        copied = 0
        for source in (ctx.template_path / ASSETS_FOLDER, ctx.config.assets_path):
            with _reporting(source):
                count = mirror_tree(source, target)
            logger.debug("Copied %d files from %s", count, source)
            copied += count
        return copied


def build_site(
    project_root: Path,
    show_drafts: bool = False,
    clean: bool = False,
    registry: ExtensionRegistry | None = None,
) -> BuildResult:
    """Load a project and build it once.

    Args:
        project_root: Directory containing timug.yaml.
        show_drafts: Include draft posts and pages.
        clean: Wipe the deployment folder first.
        registry: Extensions to install; the built-ins when None.

    Returns:
        BuildResult of the build.

    Raises:
        ConfigError: If timug.yaml cannot be loaded.
        BuildError: If any build step fails.
    """
    context = BuildContext.from_project(Path(project_root), show_drafts=show_drafts)
    return SiteBuilder(context, registry).run(clean=clean)
