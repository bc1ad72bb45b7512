"""Tag index for Timug.

Posts are grouped by the exact tag names written in their front matter.
Tag equality does not fold case or accents: ``Rust`` and ``rust`` are two
tags, even though both end up in ``tags/rust.html`` on disk.

Key classes:
- Tag: A tag name and the posts that carry it.
- TagIndex: Sorted collection of tags built while loading posts.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .utils import transliterate

if TYPE_CHECKING:
    from .content import Post

_UNSAFE_RE = re.compile(r"[\s\x00-\x1f\x7f/\\]")


def normalize_tag_name(name: str) -> str:
    """Turn a tag name into the file name stem of its tag page.

    Args:
        name: Tag name as written in front matter.

    Returns:
        ASCII, lower-cased name with whitespace, control characters and
        path separators replaced by ``-``. Leading dots are stripped so the
        page always lands inside ``tags/``.

    Examples:
        >>> normalize_tag_name("Machine Learning")
        'machine-learning'

        >>> normalize_tag_name("Türkçe")
        'turkce'

        >>> normalize_tag_name("../../etc")
        '-..-etc'
    """
    stem = _UNSAFE_RE.sub("-", transliterate(name)).lstrip(".").lower()
    return stem or "untitled"


@dataclass
class Tag:
    """A tag and the posts that carry it, in the order they were added.

    Attributes:
        name: Tag name as written in front matter.
        posts: Posts carrying this tag.
    """

    name: str
    posts: list[Post] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return f"{normalize_tag_name(self.name)}.html"

    def __len__(self) -> int:
        return len(self.posts)


class TagIndex:
    """Tags sorted by name, each listing the posts carrying it."""

    def __init__(self):
        self._tags: list[Tag] = []

    def add(self, name: str, post: Post) -> Tag:
        """Append a post to a tag, creating the tag on first sight.

        A new tag triggers a full re-sort of the tag list by name.

        Args:
            name: Tag name.
            post: Post carrying the tag.

        Returns:
            The tag the post was added to.
        """
        tag = self.find(name)
        if tag is None:
            tag = Tag(name=name)
            self._tags.append(tag)
            self._tags.sort(key=lambda item: item.name)
        tag.posts.append(post)
        return tag

    def find(self, name: str) -> Tag | None:
        """Look up a tag by exact name."""
        for tag in self._tags:
            if tag.name == name:
                return tag
        return None

    def clear(self) -> None:
        self._tags.clear()

    def names(self) -> list[str]:
        return [tag.name for tag in self._tags]

    def sort_posts(self) -> None:
        """Order each tag's posts by date, most recent first."""
        for tag in self._tags:
            tag.posts.sort(key=lambda post: post.date, reverse=True)

    def __iter__(self) -> Iterator[Tag]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __contains__(self, name: object) -> bool:
        return any(tag.name == name for tag in self._tags)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagIndex({len(self._tags)} tags)"
