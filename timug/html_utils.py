"""HTML string helpers for Timug.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join the site URL with a root-relative path.
"""

from __future__ import annotations


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Examples:
        >>> escape_html('<b>"Tom" & Jerry</b>')
        '&lt;b&gt;&quot;Tom&quot; &amp; Jerry&lt;/b&gt;'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL, or the path alone when there is no root URL.

    Examples:
        >>> join_root_url('https://example.com/', '2024/1/2/hello.html')
        'https://example.com/2024/1/2/hello.html'
    """
    suffix = path if path.startswith("/") else f"/{path}"
    if not root_url:
        return suffix
    return f"{root_url.rstrip('/')}{suffix}"
