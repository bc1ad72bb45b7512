"""Template rendering engine for Timug.

This module uses Jinja2 to render theme templates, pages and posts.
Every loaded page body is registered as a named template, so themes can
``{% include "header.html" %}`` a page that is never written to disk, and
the theme directory itself is the fallback search path.

Typed content (Post, Page, Tag) is converted to plain dictionaries only
here, at the template boundary.

Key class:
- TemplateEngine: Jinja environment, shared render context and the
  two-phase markdown render.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    TemplateRuntimeError,
    select_autoescape,
)
from markupsafe import Markup

from .content import Page, Post
from .context import BuildContext
from .html_utils import join_root_url
from .renderers import MarkdownConverter, pygments_css
from .tags import Tag, normalize_tag_name

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_DISPLAY_FORMAT = "%B %d, %Y"


def post_value(post: Post) -> dict[str, Any]:
    """Convert a Post to the mapping templates see."""
    value: dict[str, Any] = dict(post.extra)
    value.update(
        {
            "title": post.title,
            "slug": post.slug,
            "date": post.date,
            "tags": list(post.tags),
            "draft": post.draft,
            "lang": post.lang,
            "author_name": post.author_name,
            "author_email": post.author_email,
            "url": post.url,
            "file_name": post.file_name,
            "path": str(post.path),
            "body": post.body,
        }
    )
    return value


def page_value(page: Page) -> dict[str, Any]:
    """Convert a Page to the mapping templates see.

    Extra front matter fields are exposed next to the standard ones.
    """
    value: dict[str, Any] = dict(page.extra)
    value.update(
        {
            "title": page.title,
            "slug": page.slug,
            "draft": page.draft,
            "render": page.render,
            "order": page.order,
            "file_name": page.file_name,
            "url": f"/{page.output_name}",
            "path": page.template_name,
        }
    )
    return value


def tag_value(tag: Tag) -> dict[str, Any]:
    """Convert a Tag to the mapping templates see."""
    return {
        "name": tag.name,
        "file_name": tag.file_name,
        "url": f"/tags/{tag.file_name}",
        "posts": [post_value(post) for post in tag.posts],
    }


def tag_url(name: str) -> str:
    """Jinja filter: URL of the listing page of a tag name."""
    return f"/tags/{normalize_tag_name(str(name))}.html"


def format_datetime(value: Any, fmt: str | None = None) -> str:
    """Jinja filter: format a post date.

    Accepts datetimes, dates and ``%Y-%m-%d %H:%M:%S`` strings; anything
    else renders as ``N/A``.

    Examples:
        {{ post.date | formatdatetime }}          -> January 02, 2024
        {{ post.date | formatdatetime("%Y") }}    -> 2024
    """
    fmt = fmt or DEFAULT_DISPLAY_FORMAT
    if isinstance(value, (datetime, date)):
        return value.strftime(fmt)
    if isinstance(value, str):
        try:
            return datetime.strptime(value, DATETIME_FORMAT).strftime(fmt)
        except ValueError:
            raise TemplateRuntimeError(
                f"{value} could not be converted into datetime"
            ) from None
    return "N/A"


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        context: Build context the engine reads from.
        converter: Markdown converter for the second render phase.
        env: Jinja2 environment.
    """

    def __init__(
        self,
        context: BuildContext,
        converter: MarkdownConverter | None = None,
    ):
        self.context = context
        self.converter = converter or MarkdownConverter()
        self._page_templates: dict[str, str] = {}
        self.env = Environment(
            loader=ChoiceLoader(
                [
                    DictLoader(self._page_templates),
                    FileSystemLoader(str(context.template_path)),
                ]
            ),
            autoescape=select_autoescape(["html", "htm", "xml"]),
        )
        self._shared: dict[str, Any] = {}
        self._install_globals()

    def _install_globals(self) -> None:
        """Install site globals, functions and filters in the environment."""
        config = self.context.config
        self.env.globals["blog_name"] = config.title
        self.env.globals["description"] = config.description
        self.env.globals["author_name"] = config.author_name
        self.env.globals["author_email"] = config.author_email
        self.env.globals["site_url"] = config.site_url
        self.env.globals["lang"] = config.lang
        self.env.globals["current_year"] = self._current_year
        self.env.globals["post_url"] = self._post_url
        self.env.globals["pygments_css"] = pygments_css
        self.env.filters["formatdatetime"] = format_datetime
        self.env.filters["tag_url"] = tag_url
        self.env.filters["markdown"] = self.markdown

    @staticmethod
    def _current_year() -> int:
        return datetime.now().year

    def _post_url(self, slug: str, lang: str | None = None, absolute: bool = False) -> Markup:
        """Return the URL of a post by slug (and language, when given).

        Raises:
            TemplateRuntimeError: If no loaded post matches.
        """
        with self.context.read():
            for post in self.context.posts:
                if post.slug == slug and (lang is None or post.lang == lang):
                    url = post.url
                    if absolute:
                        url = join_root_url(self.context.config.site_url, url)
                    return Markup(url)
        raise TemplateRuntimeError(f"Post (lang: '{lang}', slug: '{slug}') could not be found")

    def markdown(self, text: str) -> Markup:
        """Jinja filter and helper: convert markdown to safe HTML."""
        return Markup(self.converter.convert(str(text)))

    def register_pages(self, pages: Iterable[Page]) -> None:
        """Register every page body as a named template."""
        self._page_templates.clear()
        for page in pages:
            self._page_templates[page.template_name] = page.body

    def refresh(self) -> None:
        """Snapshot the collections into template values.

        Called once per build after content is loaded and extensions have
        contributed their fragments.
        """
        with self.context.read():
            ctx = self.context
            self._shared = {
                "config": ctx.config.as_dict(),
                "navs": ctx.config.navs,
                "posts": [post_value(post) for post in ctx.posts],
                "pages": [page_value(page) for page in ctx.pages],
                "tags": [tag_value(tag) for tag in ctx.tags],
                "headers": [Markup(fragment) for fragment in ctx.headers],
                "footers": [Markup(fragment) for fragment in ctx.footers],
                "show_drafts": ctx.show_drafts,
            }

    def create_context(self, **values: Any) -> dict[str, Any]:
        """Build the evaluation context for one render call.

        Item-specific values override the shared collections (a tag page
        passes its own ``posts``).
        """
        context = dict(self._shared)
        context.update(values)
        return context

    def render_template(self, name: str, context: dict[str, Any]) -> str:
        """Render a named template (a registered page or a theme file)."""
        return self.env.get_template(name).render(context)

    def render_string(self, source: str, context: dict[str, Any]) -> str:
        """Render a template string."""
        return self.env.from_string(source).render(context)

    def render_markdown(self, source: str, context: dict[str, Any]) -> str:
        """Two-phase render of a markdown body.

        Phase one expands template directives (only when the body contains
        a ``{%`` tag), phase two converts the result to HTML. Both return
        new strings; the source is never modified.

        Args:
            source: Markdown body.
            context: Evaluation context for phase one.

        Returns:
            HTML fragment.
        """
        resolved = self.render_string(source, context) if "{%" in source else source
        return self.converter.convert(resolved)
