"""Front matter handling for Timug.

A content file may start with a YAML block delimited by two lines that
contain exactly ``---``. Everything after the closing line is the body.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .errors import ContentError

DELIMITER = "---"
DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


def split_frontmatter(text: str) -> tuple[str | None, str]:
    """Split raw file content into front matter block and body.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (front matter text or None when absent, body).
    """
    text = text.lstrip("\ufeff")
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != DELIMITER:
        return None, text
    for index in range(1, len(lines)):
        if lines[index].rstrip("\r\n") == DELIMITER:
            return "".join(lines[1:index]), "".join(lines[index + 1 :])
    # Unterminated block: the file has no front matter.
    return None, text


def decode_frontmatter(block: str | None, path: Path) -> dict[str, Any]:
    """Decode a front matter block into a mapping.

    Args:
        block: Text between the delimiters, or None.
        path: Source file, used for error reporting.

    Returns:
        Decoded mapping (empty when there is no block).

    Raises:
        ContentError: If the block is not valid YAML or not a mapping.
    """
    if block is None:
        return {}
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise ContentError(path, f"Invalid front matter: {exc}", exc) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ContentError(path, "Front matter must be a mapping of fields")
    return data


def parse_file(path: Path) -> tuple[dict[str, Any], str]:
    """Read a content file and return its decoded front matter and body.

    Raises:
        ContentError: If the file cannot be read or decoded.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ContentError(path, f"Could not read file: {exc}", exc) from exc
    block, body = split_frontmatter(text)
    return decode_frontmatter(block, path), body


def coerce_datetime(value: Any, path: Path) -> datetime | None:
    """Turn a front matter ``date`` value into a naive datetime.

    YAML already decodes timestamps; strings are accepted in the
    ``%Y-%m-%d %H:%M:%S`` family of formats. Aware values are converted to
    UTC so that every post date compares with every other.

    Raises:
        ContentError: If the value cannot be interpreted as a date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        result = None
        for fmt in DATE_FORMATS:
            try:
                result = datetime.strptime(value.strip(), fmt)
                break
            except ValueError:
                continue
        if result is None:
            raise ContentError(path, f"Unrecognized date: {value!r}")
    else:
        raise ContentError(path, f"Unrecognized date: {value!r}")
    if result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


def coerce_tags(value: Any, path: Path) -> list[str]:
    """Normalize a front matter ``tags`` value into a list of names.

    Accepts a YAML list or a comma-separated string.

    Raises:
        ContentError: If the value is neither.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list):
        items = value
    else:
        raise ContentError(path, f"Tags must be a list, got {type(value).__name__}")
    tags: list[str] = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, (dict, list)):
            raise ContentError(path, f"Invalid tag: {item!r}")
        name = str(item).strip()
        if name and name not in tags:
            tags.append(name)
    return tags
