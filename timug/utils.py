"""Utility functions for Timug.

This module contains small helpers shared by the loader, the build
orchestrator and the CLI: file discovery, slug generation and directory
mirroring.

Key functions:
    slugify: Convert a title to a URL slug.
    iter_files: Non-recursive directory scan by extension.
    ensure_clean_dir: Ensure a directory exists and is empty.
    mirror_tree: Recursively copy a directory into another.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

from unidecode import unidecode


def transliterate(text: str) -> str:
    """Transliterate text to ASCII (``Café`` -> ``Cafe``, ``Мир`` -> ``Mir``)."""
    return unidecode(text)


def slugify(title: str) -> str:
    """Convert a title to a lower-case, hyphenated, ASCII slug.

    Args:
        title: Human-readable title.

    Returns:
        URL-friendly slug.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'

        >>> slugify("Çalışma Notları")
        'calisma-notlari'
    """
    cleaned = transliterate(title)
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "untitled"


def file_stem(path: Path) -> str:
    """Lower-cased file name with its extension stripped."""
    return path.stem.lower()


def iter_files(directory: Path, extensions: tuple[str, ...]) -> list[Path]:
    """List files in a directory (not its subdirectories) by extension.

    Extensions are compared case-insensitively. The result is sorted by file
    name so that every build sees the same enumeration order.

    Args:
        directory: Directory to scan.
        extensions: Accepted suffixes, e.g. ``(".md",)``.

    Returns:
        Paths of matching files; empty if the directory does not exist.
    """
    if not directory.is_dir():
        return []
    wanted = {ext.lower() for ext in extensions}
    return sorted(
        (
            path
            for path in directory.iterdir()
            if path.is_file() and path.suffix.lower() in wanted
        ),
        key=lambda p: p.name,
    )


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def mirror_tree(source: Path, target: Path) -> int:
    """Recursively copy every file under source into target.

    Existing files in target are overwritten; files not present in source
    are left alone.

    Args:
        source: Directory to copy from. Missing directories copy nothing.
        target: Destination directory, created as needed.

    Returns:
        Number of files copied.
    """
    if not source.is_dir():
        return 0
    copied = 0
    target.mkdir(parents=True, exist_ok=True)
    for item in sorted(source.rglob("*")):
        if item.is_dir():
            continue
        dest = target / item.relative_to(source)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, dest)
        copied += 1
    return copied


def is_within(path: Path, parent: Path) -> bool:
    """Check whether path lies inside parent (or is parent itself)."""
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True
