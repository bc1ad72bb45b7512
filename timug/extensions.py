"""Template extensions (shortcodes) for Timug.

An extension is a named callable placed in the Jinja globals. Templates
call it directly or with a call block:

    {{ gist("user/abc123", "main.py") }}

    {% call alertbox("warning", "Heads up") %}
    Markdown **inside** the block.
    {% endcall %}

Markdown bodies only go through the template phase when they contain
``{%``, so a post using extensions needs at least one block tag.

The text of a call block reaches the extension as a string. Each extension
may contribute one header fragment and one footer fragment when it is
installed, once per build.

A theme can replace the markup of any extension by shipping a page named
``<extension name>.html``; its body is rendered with the same values the
built-in markup receives.

Key classes:
- Extension: Base class of all extensions.
- ExtensionRegistry: Ordered, name-unique collection installed into a
  TemplateEngine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import quote as url_quote

from markupsafe import Markup

from .errors import ExtensionError
from .html_utils import escape_html, join_root_url

if TYPE_CHECKING:
    from .context import BuildContext
    from .templates import TemplateEngine

logger = logging.getLogger(__name__)


@dataclass
class ExtensionCall:
    """Arguments of one extension invocation.

    Attributes:
        args: Positional arguments.
        kwargs: Keyword arguments (``caller`` removed).
        block: Rendered call block text, or None without a block.
    """

    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    block: str | None = None

    def arg(self, index: int, name: str, default: Any = None) -> Any:
        """Fetch an argument by position, falling back to its keyword."""
        if index < len(self.args):
            return self.args[index]
        return self.kwargs.get(name, default)


class Extension:
    """Base class for template extensions.

    Attributes:
        name: Global name in templates; must be unique.
        header: Fragment contributed to the page head.
        footer: Fragment contributed to the end of the body.
        template: Built-in Jinja markup used when the theme has no
            ``<name>.html`` override.
        requires_block: Whether a call block is mandatory.
    """

    name = ""
    header = ""
    footer = ""
    template = ""
    requires_block = False

    def contribute(self, context: BuildContext) -> tuple[str, str]:
        """Return the (header, footer) fragments for this build."""
        return self.header, self.footer

    def render(self, call: ExtensionCall, context: BuildContext, engine: TemplateEngine) -> str:
        raise NotImplementedError

    def render_markup(self, context: BuildContext, engine: TemplateEngine, **values: Any) -> str:
        """Render the theme override when present, else the built-in markup."""
        page = context.get_page(f"{self.name}.html")
        source = page.body if page is not None else self.template
        return engine.render_string(source, engine.create_context(**values))


class _InstalledExtension:
    """Callable placed in the Jinja globals for one extension."""

    def __init__(self, extension: Extension, context: BuildContext, engine: TemplateEngine):
        self.extension = extension
        self.context = context
        self.engine = engine

    def _error(self, message: str, exc: Exception | None = None) -> ExtensionError:
        return ExtensionError(Path(f"{self.extension.name}.html"), message, exc)

    def __call__(self, *args: Any, **kwargs: Any) -> Markup:
        name = self.extension.name
        caller = kwargs.pop("caller", None)
        block = None
        if caller is not None:
            try:
                block = caller()
            except Exception as exc:
                raise self._error(f"Call block of '{name}' failed: {exc}", exc) from exc
            if not isinstance(block, str):
                raise self._error(f"Call block of '{name}' did not return a string")
        elif self.extension.requires_block:
            raise self._error(f"'{name}' must be used with a call block")

        call = ExtensionCall(args=args, kwargs=kwargs, block=block)
        with self.context.read():
            try:
                result = self.extension.render(call, self.context, self.engine)
            except ExtensionError:
                raise
            except Exception as exc:
                raise self._error(f"'{name}' failed: {exc}", exc) from exc
        return Markup(result or "")


class ExtensionRegistry:
    """Extensions in a fixed, explicit order."""

    def __init__(self):
        self._extensions: list[Extension] = []

    def add(self, extension: Extension) -> ExtensionRegistry:
        """Register an extension; returns the registry for chaining.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        if not extension.name:
            raise ValueError(f"{type(extension).__name__} has no name")
        if extension.name in self.names():
            raise ValueError(f"Extension '{extension.name}' is already registered")
        self._extensions.append(extension)
        return self

    def names(self) -> list[str]:
        return [extension.name for extension in self._extensions]

    def get(self, name: str) -> Extension | None:
        for extension in self._extensions:
            if extension.name == name:
                return extension
        return None

    def __iter__(self):
        return iter(self._extensions)

    def __len__(self) -> int:
        return len(self._extensions)

    def install(self, engine: TemplateEngine, context: BuildContext) -> None:
        """Expose every extension to templates and collect its fragments.

        Fragments are reset first, so each build contributes exactly once.
        """
        with context.write():
            context.reset_fragments()
            for extension in self._extensions:
                header, footer = extension.contribute(context)
                context.add_fragments(header, footer)
        for extension in self._extensions:
            engine.env.globals[extension.name] = _InstalledExtension(extension, context, engine)
        logger.debug("Installed extensions: %s", ", ".join(self.names()))


class Codeblock(Extension):
    name = "codeblock"
    requires_block = True
    template = '<pre><code class="language-{{ lang }}">{{ content }}</code></pre>'
    header = (
        '<link rel="stylesheet" href="https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/styles/default.min.css">\n'
        '<script src="https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0/highlight.min.js"></script>\n'
        '<link rel="stylesheet" href="https://unpkg.com/@highlightjs/cdn-assets@11.9.0/styles/atom-one-dark.min.css" />'
    )
    footer = """<script>
document.addEventListener('DOMContentLoaded', () => {
    document.querySelectorAll('pre code').forEach((block) => {
        hljs.highlightElement(block);
    });
});
</script>"""

    def render(self, call, context, engine):
        lang = call.arg(0, "lang", "")
        # Code is shown literally, so the block text is escaped here.
        content = Markup(escape_html(str(call.block).strip()))
        return self.render_markup(context, engine, lang=lang, content=content)


class Quote(Extension):
    name = "quote"
    requires_block = True
    template = '<blockquote class="quote quote-{{ position }}">{{ content }}</blockquote>'
    positions = {1: "left", 2: "center", 3: "right"}

    def render(self, call, context, engine):
        position = self.positions.get(call.arg(0, "position"), "center")
        content = Markup(call.block)
        return self.render_markup(context, engine, content=content, position=position)


class Gist(Extension):
    name = "gist"
    template = '<script src="https://gist.github.com/{{ gist }}.js?file={{ filename }}"></script>'

    def render(self, call, context, engine):
        return self.render_markup(
            context,
            engine,
            gist=call.arg(0, "gist", ""),
            filename=call.arg(1, "filename", ""),
        )


class AlertBox(Extension):
    name = "alertbox"
    requires_block = True
    template = (
        '<div class="alert alert-{{ style }}" role="alert">'
        "{% if title %}<strong>{{ title }}</strong>{% endif %}{{ content }}</div>"
    )

    def render(self, call, context, engine):
        content = engine.markdown(call.block)
        return self.render_markup(
            context,
            engine,
            style=call.arg(0, "style", "info"),
            title=call.arg(1, "title", ""),
            content=content,
        )


class FontAwesome(Extension):
    name = "fontawesome"
    template = '<i class="{{ style }} fa-{{ icon }}"></i>'

    def render(self, call, context, engine):
        return self.render_markup(
            context,
            engine,
            style=call.arg(0, "style", "fa-solid"),
            icon=call.arg(1, "icon", ""),
        )


class Info(Extension):
    name = "info"
    requires_block = True
    template = (
        '<div class="info">{% if title %}<strong>{{ title }}</strong>{% endif %}'
        "{{ content }}</div>"
    )

    def render(self, call, context, engine):
        content = engine.markdown(call.block)
        return self.render_markup(
            context, engine, title=call.arg(0, "title", ""), content=content
        )


class SocialMediaShare(Extension):
    name = "social_media_share"
    template = """<div class="social-media-share">
  <a href="https://twitter.com/intent/tweet?url={{ url | urlencode }}&text={{ title | urlencode }}" target="_blank" rel="noopener">Twitter</a>
  <a href="https://www.linkedin.com/sharing/share-offsite/?url={{ url | urlencode }}" target="_blank" rel="noopener">LinkedIn</a>
  <a href="https://www.facebook.com/sharer/sharer.php?u={{ url | urlencode }}" target="_blank" rel="noopener">Facebook</a>
</div>"""

    def render(self, call, context, engine):
        data = call.arg(0, "data") or {}
        path = data.get("url", "") if isinstance(data, dict) else str(data)
        return self.render_markup(
            context,
            engine,
            data=data,
            title=data.get("title", "") if isinstance(data, dict) else "",
            url=join_root_url(context.config.site_url, path) if path else context.config.site_url,
        )


class Reading(Extension):
    name = "reading"
    template = """<div class="reading">
  {% if image %}<img src="{{ image }}" alt="{{ name }}">{% endif %}
  <a href="{{ link }}">{{ name }}</a>{% if series_name %} <span>({{ series_name }})</span>{% endif %}
  <span class="author">{{ author }}</span>
</div>"""

    def render(self, call, context, engine):
        config = context.extension_config(self.name)
        if not isinstance(config, dict):
            return ""
        return self.render_markup(
            context,
            engine,
            image=config.get("image"),
            name=config.get("name", ""),
            series_name=config.get("series_name"),
            author=config.get("author", ""),
            link=config.get("link", ""),
        )


class Projects(Extension):
    name = "projects"
    template = """<ul class="projects">
{% for project in projects %}  <li><a href="{{ project.link }}">{{ project.name }}</a>{% if project.description %} - {{ project.description }}{% endif %}</li>
{% endfor %}</ul>"""

    def render(self, call, context, engine):
        projects = context.extension_config(self.name)
        if not projects:
            return ""
        return self.render_markup(context, engine, projects=projects)


class Contacts(Extension):
    name = "contacts"
    template = """<ul class="contacts">
{% for contact in contacts %}  <li><a href="{{ contact.link }}" title="{{ contact.description or '' }}"><i class="{{ contact.icon }}"></i></a></li>
{% endfor %}</ul>"""

    def render(self, call, context, engine):
        contacts = context.config.contacts
        if not contacts:
            return ""
        return self.render_markup(context, engine, contacts=contacts)


class Stats(Extension):
    name = "stats"
    template = """<div class="stats">
  <span id="post-views"></span> <span id="post-likes"></span>
  <button id="likes-button" onclick="like()">Like</button>
</div>
{{ scripts }}"""
    scripts = """<script>
    function showStats(data) {
        document.getElementById("post-views").innerHTML = data.value.views + " views";
        document.getElementById("post-likes").innerHTML = data.value.likes + " likes";
    }
    fetch('[url]').then((response) => response.json()).then((data) => {
        if (data.status) {
            showStats(data);
            const likes = JSON.parse(localStorage.getItem('likes') || '[]');
            if (likes.includes("[slug]")) {
                document.getElementById("likes-button").setAttribute("disabled", "");
            }
        }
    }).catch((err) => console.warn('Something went wrong.', err));

    function like() {
        fetch('[url]', { method: "POST" }).then((response) => response.json()).then((data) => {
            if (data.status) {
                showStats(data);
                const likes = JSON.parse(localStorage.getItem('likes') || '[]');
                likes.push("[slug]");
                localStorage.setItem('likes', JSON.stringify(likes));
                document.getElementById("likes-button").setAttribute("disabled", "");
            }
        }).catch((err) => console.warn('Something went wrong.', err));
    }
</script>"""

    def render(self, call, context, engine):
        config = context.extension_config(self.name)
        if not isinstance(config, dict) or not config.get("link"):
            return ""
        slug = str(call.arg(0, "slug", ""))
        link = str(config["link"])
        url = f"{link.rstrip('/')}/{url_quote(slug)}.html"
        scripts = Markup(
            self.scripts.replace("[url]", url).replace("[slug]", escape_html(slug))
        )
        return self.render_markup(context, engine, scripts=scripts, slug=slug)


class Analytics(Extension):
    name = "analytics"
    google_template = """<!-- Google tag (gtag.js) -->
<script async src="https://www.googletagmanager.com/gtag/js?id={id}"></script>
<script>
  window.dataLayer = window.dataLayer || [];
  function gtag(){{dataLayer.push(arguments);}}
  gtag('js', new Date());

  gtag('config', '{id}');
</script>"""
    clarity_template = """<script type="text/javascript">
    (function(c,l,a,r,i,t,y){{
        c[a]=c[a]||function(){{(c[a].q=c[a].q||[]).push(arguments)}};
        t=l.createElement(r);t.async=1;t.src="https://www.clarity.ms/tag/"+i;
        y=l.getElementsByTagName(r)[0];y.parentNode.insertBefore(t,y);
    }})(window, document, "clarity", "script", "{id}");
</script>"""

    def contribute(self, context):
        config = context.extension_config(self.name)
        if not isinstance(config, dict):
            return "", ""
        parts = []
        google = config.get("google-analytics")
        if google:
            parts.append(self.google_template.format(id=escape_html(str(google))))
        clarity = config.get("microsoft-clarity")
        if clarity:
            parts.append(self.clarity_template.format(id=escape_html(str(clarity))))
        return "", "\n".join(parts)

    def render(self, call, context, engine):
        raise ExtensionError(Path(f"{self.name}.html"), "analytics is not callable")


def default_registry() -> ExtensionRegistry:
    """Registry with every built-in extension, in registration order."""
    return (
        ExtensionRegistry()
        .add(Codeblock())
        .add(Quote())
        .add(Gist())
        .add(AlertBox())
        .add(FontAwesome())
        .add(Info())
        .add(SocialMediaShare())
        .add(Reading())
        .add(Projects())
        .add(Contacts())
        .add(Stats())
        .add(Analytics())
    )
