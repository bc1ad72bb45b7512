import textwrap
from pathlib import Path

import pytest

THEME = {
    "header.html": "<html><head>{% for h in headers %}{{ h }}{% endfor %}</head><body>",
    "footer.html": "{% for f in footers %}{{ f }}{% endfor %}</body></html>",
    "post.html": (
        '{% include "header.html" %}'
        '<article data-index="{{ index }}"><h1 class="title">{{ post.title }}</h1>'
        "{{ content }}</article>"
        '{% include "footer.html" %}'
    ),
    "posts.html": (
        "<h1>{{ tag.name }}</h1>"
        "<ul>{% for post in posts %}<li>{{ post.title }}</li>{% endfor %}</ul>"
    ),
    "page.html": "<main><h1>{{ title }}</h1>{{ content }}</main>",
    "index.html": (
        "---\nrender: true\n---\n"
        "<ul>{% for post in posts %}<li>{{ post.title }}</li>{% endfor %}</ul>"
    ),
}


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


@pytest.fixture
def write():
    """Write a (dedented) text file, creating parent folders."""
    return _write


@pytest.fixture
def project(tmp_path):
    """A minimal blog project with a small theme and no content."""
    root = tmp_path / "blog"
    _write(
        root / "timug.yaml",
        """\
        title: Test Blog
        author_name: Jane
        site_url: https://example.com
        """,
    )
    for name, body in THEME.items():
        _write(root / "templates" / "default" / name, body)
    (root / "posts").mkdir()
    (root / "pages").mkdir()
    return root


@pytest.fixture
def add_post(write):
    """Write ``posts/<name>`` with the given front matter fields."""

    def _add(root: Path, name: str, body: str = "", **fields) -> Path:
        lines = ["---"]
        for key, value in fields.items():
            lines.append(f"{key}: {value}")
        lines.append("---")
        return write(root / "posts" / name, "\n".join(lines) + "\n" + body)

    return _add
