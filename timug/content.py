"""Content loading for Timug.

This module reads posts and pages from disk. Each file is split into its
front matter and body, defaults are filled in, drafts are dropped unless
requested, and the collections are sorted.

Key classes:
- Post: A dated, tagged blog post.
- Page: A theme template or a custom standalone page.

Key functions:
- load_posts: Load the post collection and fold tags into a TagIndex.
- load_pages: Load base (theme) pages and custom pages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from .config import SiteConfig
from .errors import ContentError
from .frontmatter import coerce_datetime, coerce_tags, parse_file
from .tags import TagIndex
from .utils import file_stem, iter_files

logger = logging.getLogger(__name__)

POST_EXTENSIONS = (".md",)
BASE_PAGE_EXTENSIONS = (".html",)
CUSTOM_PAGE_EXTENSIONS = (".html", ".htm", ".md")

_POST_FIELDS = {
    "title",
    "date",
    "slug",
    "tags",
    "draft",
    "lang",
    "author_name",
    "author_email",
}
_PAGE_FIELDS = {"title", "slug", "draft", "render", "order"}


@dataclass
class Post:
    """A blog post.

    Attributes:
        title: Post title (file name when the front matter has none).
        body: Raw markdown body, front matter removed.
        date: Publication date-time (naive).
        slug: URL-safe identifier, unique within the collection.
        tags: Tag names in front matter order.
        draft: Whether the post is a draft.
        lang: Language code.
        author_name: Author name.
        author_email: Author email.
        path: Source file.
        extra: Remaining front matter fields.
    """

    title: str
    body: str
    date: datetime
    slug: str
    tags: list[str]
    draft: bool
    lang: str
    author_name: str
    author_email: str
    path: Path
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return self.path.name.lower()

    @property
    def output_parts(self) -> tuple[str, str, str, str]:
        """Relative output location: year, month, day, file name."""
        return (
            str(self.date.year),
            str(self.date.month),
            str(self.date.day),
            f"{self.slug}.html",
        )

    @property
    def url(self) -> str:
        return "/" + "/".join(self.output_parts)


@dataclass
class Page:
    """A page: either a theme template or a custom page.

    Attributes:
        title: Page title (file name when the front matter has none).
        slug: URL-safe identifier.
        body: Page body, front matter removed.
        render: Whether the page is written to the deployment folder.
        order: Listing order hint.
        draft: Whether the page is a draft.
        page_type: "html" or "markdown".
        template_name: Name the body is registered under in the template
            environment.
        path: Source file.
        extra: Remaining front matter fields, visible to templates.
    """

    title: str
    slug: str
    body: str
    render: bool
    order: int
    draft: bool
    page_type: str  # "html" | "markdown"
    template_name: str
    path: Path
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        return self.path.name.lower()

    @property
    def output_name(self) -> str:
        """File name in the deployment folder, extension normalized to .html."""
        return f"{Path(self.file_name).stem}.html"

    @property
    def is_markdown(self) -> bool:
        return self.page_type == "markdown"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "on", "1"}
    return bool(value)


def _as_int(value: Any, path: Path) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ContentError(path, f"Page order must be a number, got {value!r}") from None


def build_post(path: Path, config: SiteConfig) -> Post:
    """Build a Post from a source file.

    Args:
        path: Markdown file.
        config: Site configuration providing author and language defaults.

    Returns:
        Post object.

    Raises:
        ContentError: If the file cannot be read or its front matter decoded.
    """
    meta, body = parse_file(path)
    date = coerce_datetime(meta.get("date"), path)
    if date is None:
        date = datetime.fromtimestamp(path.stat().st_mtime)
    slug = str(meta.get("slug") or "") or file_stem(path)
    if "/" in slug or "\\" in slug or slug in (".", ".."):
        raise ContentError(path, f"Slug must be a plain file name, got {slug!r}")
    return Post(
        title=str(meta.get("title") or "") or path.name.lower(),
        body=body,
        date=date,
        slug=slug,
        tags=coerce_tags(meta.get("tags"), path),
        draft=_as_bool(meta.get("draft", False)),
        lang=str(meta.get("lang") or "") or config.lang,
        author_name=str(meta.get("author_name") or "") or config.author_name,
        author_email=str(meta.get("author_email") or "") or config.author_email,
        path=path,
        extra={k: v for k, v in meta.items() if k not in _POST_FIELDS},
    )


def build_page(path: Path, template_name: str, render: bool | None = None) -> Page:
    """Build a Page from a source file.

    Args:
        path: HTML or markdown file.
        template_name: Name to register the body under.
        render: Force the render flag (custom pages); None keeps the front
            matter value.

    Returns:
        Page object.
    """
    meta, body = parse_file(path)
    suffix = path.suffix.lower()
    page_type = "html" if suffix in (".html", ".htm") else "markdown"
    return Page(
        title=str(meta.get("title") or "") or path.name.lower(),
        slug=str(meta.get("slug") or "") or file_stem(path),
        body=body,
        render=_as_bool(meta.get("render", False)) if render is None else render,
        order=_as_int(meta.get("order"), path),
        draft=_as_bool(meta.get("draft", False)),
        page_type=page_type,
        template_name=template_name,
        path=path,
        extra={k: v for k, v in meta.items() if k not in _PAGE_FIELDS},
    )


def load_posts(
    posts_dir: Path,
    config: SiteConfig,
    show_drafts: bool,
    tags: TagIndex,
) -> list[Post]:
    """Load every post in a directory.

    Drafts are skipped unless show_drafts is set. Tags of every surviving
    post are folded into ``tags`` in the same pass.

    Args:
        posts_dir: Directory containing ``*.md`` posts.
        config: Site configuration.
        show_drafts: Whether to keep draft posts.
        tags: Tag index to fill.

    Returns:
        Posts sorted by date, most recent first.

    Raises:
        ContentError: On the first file that cannot be loaded.
    """
    posts: list[Post] = []
    for path in iter_files(posts_dir, POST_EXTENSIONS):
        post = build_post(path, config)
        if post.draft and not show_drafts:
            logger.debug("Skipping draft post %s", path.name)
            continue
        for name in post.tags:
            tags.add(name, post)
        posts.append(post)
        logger.debug("Parsed %s", path.name)

    posts.sort(key=lambda post: post.date, reverse=True)
    tags.sort_posts()
    return posts


def load_pages(template_dir: Path, pages_dir: Path, show_drafts: bool) -> list[Page]:
    """Load base pages from the theme and custom pages from the project.

    Base pages are the theme's ``*.html`` files; they are only written when
    their front matter says ``render: true``. Custom pages (``*.html``,
    ``*.htm`` and ``*.md`` in the pages directory) are always written.

    Args:
        template_dir: Active theme directory.
        pages_dir: Project pages directory.
        show_drafts: Whether to keep draft pages.

    Returns:
        Pages sorted by ``(order, title)``.
    """
    pages: list[Page] = []
    for path in iter_files(template_dir, BASE_PAGE_EXTENSIONS):
        pages.append(build_page(path, template_name=path.name))
    for path in iter_files(pages_dir, CUSTOM_PAGE_EXTENSIONS):
        pages.append(build_page(path, template_name=f"pages/{path.name}", render=True))

    if not show_drafts:
        pages = [page for page in pages if not page.draft]
    pages.sort(key=lambda page: (page.order, page.title))
    return pages


def find_page(pages: list[Page], file_name: str) -> Page | None:
    """Find a page by file name (``post.html``, ``codeblock.html``...).

    Theme pages win over custom pages with the same file name.
    """
    wanted = file_name.lower()
    for page in pages:
        if page.template_name.lower() == wanted:
            return page
    for page in pages:
        if page.file_name == wanted:
            return page
    return None
