"""Build context for Timug.

The BuildContext is the one snapshot every render step reads: resolved
configuration, the loaded posts and pages, the tag index and the header/
footer fragments contributed by extensions. It is owned by the build
orchestrator and handed to whatever needs it; nothing reaches it through a
global.

Access goes through a reader/writer lock. Loading content and registering
extensions take the writer side; rendering and extension calls take the
reader side. Readers never block other readers, so an extension may read
the context while the page that called it is being rendered.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .config import SiteConfig, ThemeConfig, load_config, load_theme_config
from .content import Page, Post, find_page
from .tags import TagIndex


class ReadWriteLock:
    """Reader-preferring reader/writer lock.

    Any number of readers may hold the lock at once; a writer waits until
    there are no readers and no other writer.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class BuildContext:
    """Shared state of one build.

    Attributes:
        config: Resolved site configuration.
        theme: Hook configuration of the active theme.
        show_drafts: Whether draft posts and pages are included.
        posts: Loaded posts, most recent first.
        pages: Loaded pages, sorted by (order, title).
        tags: Tag index of the loaded posts.
        headers: HTML fragments for the page head.
        footers: HTML fragments for the end of the body.
    """

    def __init__(
        self,
        config: SiteConfig,
        theme: ThemeConfig | None = None,
        show_drafts: bool = False,
    ):
        self.config = config
        self.theme = theme or ThemeConfig()
        self.show_drafts = show_drafts
        self.posts: list[Post] = []
        self.pages: list[Page] = []
        self.tags = TagIndex()
        self.headers: list[str] = []
        self.footers: list[str] = []
        self._lock = ReadWriteLock()

    @classmethod
    def from_project(cls, project_root: Path, show_drafts: bool = False) -> BuildContext:
        """Load timug.yaml and the active theme's template.yaml.

        Raises:
            ConfigError: If either file cannot be read.
        """
        config = load_config(project_root)
        theme = load_theme_config(config.templates_path)
        return cls(config, theme, show_drafts=show_drafts)

    @property
    def template_path(self) -> Path:
        return self.config.templates_path

    @property
    def deployment_path(self) -> Path:
        return self.config.deployment_folder

    def read(self):
        """Context manager holding the reader side of the lock."""
        return self._lock.read()

    def write(self):
        """Context manager holding the writer side of the lock."""
        return self._lock.write()

    # The mutators below expect the caller to hold the writer lock.

    def replace_content(self, posts: list[Post], pages: list[Page], tags: TagIndex) -> None:
        """Swap in a complete load; nothing changes if loading failed earlier."""
        self.posts = list(posts)
        self.pages = list(pages)
        self.tags = tags

    def reset_fragments(self) -> None:
        self.headers = []
        self.footers = []

    def add_fragments(self, header: str = "", footer: str = "") -> None:
        if header:
            self.headers.append(header)
        if footer:
            self.footers.append(footer)

    # Readers.

    def get_page(self, file_name: str) -> Page | None:
        return find_page(self.pages, file_name)

    def extension_config(self, name: str) -> Any:
        return self.config.extension_config(name)
