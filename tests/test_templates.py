from datetime import datetime

import pytest
from jinja2 import TemplateRuntimeError
from markupsafe import Markup

from timug.content import load_pages, load_posts
from timug.context import BuildContext
from timug.renderers import MarkdownConverter, generate_heading_id
from timug.tags import TagIndex
from timug.templates import TemplateEngine, format_datetime, tag_url


def loaded_engine(root, show_drafts=False):
    ctx = BuildContext.from_project(root, show_drafts=show_drafts)
    with ctx.write():
        tags = TagIndex()
        posts = load_posts(ctx.config.posts_path, ctx.config, show_drafts, tags)
        pages = load_pages(ctx.template_path, ctx.config.pages_path, show_drafts)
        ctx.replace_content(posts, pages, tags)
    engine = TemplateEngine(ctx)
    engine.register_pages(ctx.pages)
    engine.refresh()
    return engine


def test_format_datetime():
    value = datetime(2024, 1, 2, 10, 0)
    assert format_datetime(value) == "January 02, 2024"
    assert format_datetime(value, "%Y/%m") == "2024/01"
    assert format_datetime("2024-01-02 10:00:00", "%d") == "02"
    assert format_datetime(42) == "N/A"
    with pytest.raises(TemplateRuntimeError):
        format_datetime("not a date")


def test_tag_url():
    assert tag_url("Machine Learning") == "/tags/machine-learning.html"


def test_globals_and_collections(project, add_post):
    add_post(project, "hello.md", "Hi", title="Hello", date="2024-01-02 10:00:00", tags="web")
    engine = loaded_engine(project)
    html = engine.render_string(
        "{{ blog_name }}|{{ author_name }}|{{ posts[0].title }}|{{ tags[0].url }}|{{ current_year() }}",
        engine.create_context(),
    )
    assert html == f"Test Blog|Jane|Hello|/tags/web.html|{datetime.now().year}"


def test_post_url_lookup(project, add_post):
    add_post(project, "hello.md", title="Hello", date="2024-01-02 10:00:00")
    engine = loaded_engine(project)
    ctx = engine.create_context()
    assert engine.render_string("{{ post_url('hello') }}", ctx) == "/2024/1/2/hello.html"
    assert (
        engine.render_string("{{ post_url('hello', absolute=true) }}", ctx)
        == "https://example.com/2024/1/2/hello.html"
    )
    with pytest.raises(TemplateRuntimeError):
        engine.render_string("{{ post_url('missing') }}", ctx)


def test_registered_pages_are_includable(project, write):
    write(project / "templates" / "default" / "nav.html", "---\ntitle: Nav\n---\n<nav>{{ blog_name }}</nav>")
    engine = loaded_engine(project)
    html = engine.render_string('{% include "nav.html" %}', engine.create_context())
    assert html == "<nav>Test Blog</nav>"


def test_render_markdown_two_phases(project):
    engine = loaded_engine(project)
    ctx = engine.create_context(title="T")
    html = engine.render_markdown("# Title\n\n{% if true %}**bold**{% endif %}", ctx)
    assert '<h1 id="title">Title</h1>' in html
    assert "<strong>bold</strong>" in html


def test_render_markdown_skips_template_phase_without_tags(project):
    engine = loaded_engine(project)
    # ``{{`` alone does not trigger template expansion.
    html = engine.render_markdown("Use {{ name }} in templates", engine.create_context())
    assert "{{ name }}" in html


def test_markdown_filter_returns_markup(project):
    engine = loaded_engine(project)
    assert isinstance(engine.markdown("*a*"), Markup)


def test_heading_ids_are_unique_per_document():
    converter = MarkdownConverter()
    html = converter("# Intro\n\n# Intro\n")
    assert 'id="intro"' in html and 'id="intro-1"' in html
    # A new document starts counting again.
    assert 'id="intro-1"' not in converter("# Intro\n")
    assert generate_heading_id("Hello <em>World</em>!") == "hello-world"


def test_code_blocks_are_highlighted_or_escaped():
    converter = MarkdownConverter()
    assert 'class="highlight"' in converter("```python\nprint(1)\n```\n")
    plain = converter("```nosuchlang\n<b>\n```\n")
    assert 'class="language-nosuchlang"' in plain
    assert "&lt;b&gt;" in plain
