"""Timug static blog generator.

This package turns a folder of dated, tagged Markdown posts and pages into a
deployable tree of HTML files using Jinja2 themes.

The main entry point is the CLI module, which provides commands for scaffolding
new projects, deploying the site and running the live-reload development server.

Build pipeline:
- content: loads posts and pages (front matter + body).
- tags: aggregates posts by tag.
- context: the shared, lock-protected build snapshot.
- build: renders pages, posts and tag pages, copies assets, runs theme hooks.
- extensions: shortcodes callable from templates.
- server: static file server, file watcher and live reload.
"""

__all__ = ["__version__"]
__version__ = "0.4.0"
