import logging

import pytest

from timug.build import BuildState, SiteBuilder, build_site
from timug.context import BuildContext
from timug.errors import (
    ConfigError,
    ContentError,
    ExtensionError,
    HookError,
    TemplateError,
)


def public(root):
    return root.resolve() / "public"


def test_post_is_written_to_dated_path(project, add_post):
    add_post(project, "hello.md", "# Hi\n", title="Hello", date="2024-01-02 10:00:00")
    result = build_site(project)

    output = public(project) / "2024" / "1" / "2" / "hello.html"
    assert output.exists()
    html = output.read_text(encoding="utf-8")
    assert '<h1 id="hi">Hi</h1>' in html
    assert '<h1 class="title">Hello</h1>' in html
    assert output in result.files
    assert [post.title for post in result.posts] == ["Hello"]


def test_tag_page_lists_newest_first(project, add_post):
    add_post(project, "jan.md", title="January", date="2024-01-01", tags="rust")
    add_post(project, "feb.md", title="February", date="2024-02-01", tags="rust")
    result = build_site(project)

    html = (public(project) / "tags" / "rust.html").read_text(encoding="utf-8")
    assert "<h1>rust</h1>" in html
    assert html.index("February") < html.index("January")
    assert result.tags == ["rust"]


def test_drafts_are_skipped_everywhere(project, add_post):
    add_post(project, "live.md", title="Live", date="2024-01-01", tags="news")
    add_post(project, "wip.md", title="Secret", date="2024-01-05", tags="news, wip", draft="true")
    build_site(project)

    out = public(project)
    assert not (out / "2024" / "1" / "5" / "wip.html").exists()
    assert not (out / "tags" / "wip.html").exists()
    assert "Secret" not in (out / "tags" / "news.html").read_text(encoding="utf-8")
    assert "Secret" not in (out / "index.html").read_text(encoding="utf-8")

    build_site(project, show_drafts=True)
    assert (out / "2024" / "1" / "5" / "wip.html").exists()
    assert (out / "tags" / "wip.html").exists()


def test_malformed_front_matter_aborts_build(project, add_post, write):
    add_post(project, "good.md", title="Good", date="2024-01-01")
    bad = write(project / "posts" / "bad.md", "---\ntitle: [oops\n---\nbody")
    builder = SiteBuilder(BuildContext.from_project(project))

    with pytest.raises(ContentError) as exc:
        builder.run()
    assert exc.value.source_path.name == bad.name
    assert builder.state is BuildState.FAILED


def test_build_is_idempotent(project, add_post):
    add_post(project, "a.md", "text", title="A", date="2024-01-01", tags="x")
    add_post(project, "b.md", "text", title="B", date="2024-01-02", tags="x")
    first = build_site(project)
    snapshot = {path: path.read_bytes() for path in first.files}
    second = build_site(project)
    assert second.files == first.files
    assert {path: path.read_bytes() for path in second.files} == snapshot


def test_builder_returns_to_idle_and_can_rerun(project, add_post):
    add_post(project, "a.md", title="A", date="2024-01-01")
    builder = SiteBuilder(BuildContext.from_project(project))
    builder.run()
    assert builder.state is BuildState.IDLE

    add_post(project, "b.md", title="B", date="2024-01-02")
    result = builder.run()
    assert [post.title for post in result.posts] == ["B", "A"]
    assert [post.title for post in builder.context.posts] == ["B", "A"]


def test_slug_collision_overwrites_and_warns(project, add_post, caplog):
    caplog.set_level(logging.WARNING, logger="timug")
    add_post(project, "one.md", "first", title="One", slug="same", date="2024-01-01 08:00:00")
    add_post(project, "two.md", "second", title="Two", slug="same", date="2024-01-01 09:00:00")
    build_site(project)

    html = (public(project) / "2024" / "1" / "1" / "same.html").read_text(encoding="utf-8")
    # Posts render newest first, so the older one is written last.
    assert "One" in html
    assert "overwrites" in caplog.text


def test_post_index_is_passed_to_template(project, add_post):
    add_post(project, "a.md", title="A", date="2024-01-01")
    add_post(project, "b.md", title="B", date="2024-01-02")
    build_site(project)
    out = public(project)
    assert 'data-index="0"' in (out / "2024" / "1" / "2" / "b.html").read_text(encoding="utf-8")
    assert 'data-index="1"' in (out / "2024" / "1" / "1" / "a.html").read_text(encoding="utf-8")


def test_pages_are_rendered(project, write):
    write(project / "pages" / "about.md", "---\ntitle: About\n---\n# Me\n\n{% if true %}hello{% endif %}")
    write(project / "pages" / "raw.htm", "---\ntitle: Raw\n---\n<p>{{ blog_name }}</p>")
    result = build_site(project)

    out = public(project)
    about = (out / "about.html").read_text(encoding="utf-8")
    assert about.startswith("<main><h1>About</h1>")
    assert '<h1 id="me">Me</h1>' in about and "<p>hello</p>" in about
    assert (out / "raw.html").read_text(encoding="utf-8") == "<p>Test Blog</p>"
    assert (out / "index.html").exists()
    # Theme partials are never written.
    assert not (out / "post.html").exists()
    assert {page.output_name for page in result.pages} == {"about.html", "raw.html", "index.html"}


def test_extension_fragments_reach_templates(project, add_post):
    add_post(project, "a.md", "{% call codeblock('sh') %}ls{% endcall %}", title="A", date="2024-01-01")
    build_site(project)
    html = (public(project) / "2024" / "1" / "1" / "a.html").read_text(encoding="utf-8")
    assert '<code class="language-sh">ls</code>' in html
    assert "highlight.min.js" in html
    assert "hljs.highlightElement" in html


def test_extension_failure_names_the_post(project, add_post):
    path = add_post(project, "a.md", "{{ quote() }}\n{% if true %}{% endif %}", title="A", date="2024-01-01")
    with pytest.raises(ExtensionError) as exc:
        build_site(project)
    assert exc.value.source_path == path.resolve()
    assert "quote" in exc.value.message


def test_template_errors_name_the_source(project, add_post, write):
    path = add_post(project, "a.md", "x", title="A", date="2024-01-01")
    write(project / "templates" / "default" / "post.html", "{{ post.nope.deeper }}")
    with pytest.raises(TemplateError) as exc:
        build_site(project)
    assert exc.value.source_path == path.resolve()
    assert exc.value.message.startswith("Undefined variable")

    write(project / "templates" / "default" / "post.html", "{% if %}")
    with pytest.raises(TemplateError) as exc:
        build_site(project)
    assert "syntax error" in exc.value.message


def test_missing_tag_template_only_matters_with_tags(project, add_post):
    (project / "templates" / "default" / "posts.html").unlink()
    add_post(project, "a.md", title="A", date="2024-01-01")
    build_site(project)

    add_post(project, "b.md", title="B", date="2024-01-02", tags="x")
    with pytest.raises(TemplateError) as exc:
        build_site(project)
    assert "posts.html" in exc.value.message


def test_assets_are_mirrored_project_last(project, write):
    write(project / "templates" / "default" / "assets" / "style.css", "theme")
    write(project / "templates" / "default" / "assets" / "img" / "logo.svg", "<svg/>")
    write(project / "assets" / "style.css", "project")
    result = build_site(project)

    assets = public(project) / "assets"
    assert (assets / "style.css").read_text(encoding="utf-8") == "project"
    assert (assets / "img" / "logo.svg").exists()
    assert result.assets == 3


def test_clean_removes_stale_output(project):
    stale = public(project) / "old.html"
    stale.parent.mkdir(parents=True)
    stale.write_text("old", encoding="utf-8")
    build_site(project)
    assert stale.exists()
    build_site(project, clean=True)
    assert not stale.exists()


def test_hooks_run_around_the_build(project, write):
    write(
        project / "templates" / "default" / "template.yaml",
        """\
        pre_process:
          - echo pre > pre.txt
        process:
          - echo post > "{publish-folder}/post.txt"
        """,
    )
    build_site(project)
    assert (project / "templates" / "default" / "pre.txt").exists()
    assert (public(project) / "post.txt").read_text().strip() == "post"


def test_failing_hook_stops_the_build(project, write):
    write(project / "templates" / "default" / "template.yaml", "pre_process:\n  - exit 3\n")
    builder = SiteBuilder(BuildContext.from_project(project))
    with pytest.raises(HookError) as exc:
        builder.run()
    assert exc.value.returncode == 3
    assert builder.state is BuildState.FAILED
    assert not public(project).exists()


def test_missing_theme_and_config(project, tmp_path, write):
    write(project / "timug.yaml", "theme: nowhere\n")
    with pytest.raises(TemplateError):
        build_site(project)
    with pytest.raises(ConfigError):
        build_site(tmp_path / "empty")


def test_non_latin_tags_get_their_own_pages(project, add_post):
    add_post(project, "a.md", title="A", date="2024-01-01", tags="Привет")
    add_post(project, "b.md", title="B", date="2024-01-02", tags="Мир")
    result = build_site(project)

    assert result.tags == ["Мир", "Привет"]
    tag_dir = public(project) / "tags"
    assert sorted(path.name for path in tag_dir.iterdir()) == ["mir.html", "privet.html"]
    assert "<h1>Привет</h1>" in (tag_dir / "privet.html").read_text(encoding="utf-8")


def test_tag_pages_stay_inside_the_tags_folder(project, add_post):
    add_post(project, "a.md", title="A", date="2024-01-01", tags="../../escaped, x/y")
    build_site(project)

    assert not (project / "escaped.html").exists()
    assert not (public(project) / "escaped.html").exists()
    tag_dir = public(project) / "tags"
    assert sorted(path.name for path in tag_dir.iterdir()) == ["-..-escaped.html", "x-y.html"]


def test_failed_reload_keeps_previous_content(project, add_post, write):
    add_post(project, "a.md", title="A", date="2024-01-01", tags="old")
    builder = SiteBuilder(BuildContext.from_project(project))
    builder.run()

    add_post(project, "a.md", title="A", date="2024-01-01", tags="new")
    write(project / "posts" / "z.md", "---\ntitle: [oops\n---\nbody")
    with pytest.raises(ContentError):
        builder.run()

    ctx = builder.context
    assert [(post.title, post.tags) for post in ctx.posts] == [("A", ["old"])]
    assert ctx.tags.names() == ["old"]
    assert [post.title for post in ctx.tags.find("old").posts] == ["A"]
