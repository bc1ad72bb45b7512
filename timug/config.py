"""Configuration loading for Timug.

Two YAML documents drive a build:
- timug.yaml at the project root: site title, author, language, theme,
  deployment folder, navigation, contacts and free-form extension sections.
- template.yaml inside the active theme: ordered pre-process and process
  shell commands.

Key functions:
- load_config: Loads and resolves the site configuration.
- load_theme_config: Loads the hook lists of a theme.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILE_NAME = "timug.yaml"
THEME_CONFIG_FILE_NAME = "template.yaml"

DEFAULT_DEPLOYMENT_FOLDER = "public"
DEFAULT_LANGUAGE = "en"
DEFAULT_THEME = "default"
DEFAULT_PORT = 8080

TEMPLATES_PATH = "templates"
POSTS_PATH = "posts"
PAGES_PATH = "pages"
ASSETS_PATH = "assets"

_KNOWN_KEYS = {
    "title",
    "name",
    "description",
    "author_name",
    "author_email",
    "lang",
    "site_url",
    "theme",
    "deployment_folder",
    "blog_path",
    "navs",
    "contacts",
}


@dataclass
class SiteConfig:
    """Resolved site configuration.

    Attributes:
        title: Blog name.
        description: Short site description.
        author_name: Default author for posts.
        author_email: Default author email for posts.
        lang: Default language for posts.
        site_url: Public URL of the site.
        theme: Name of the active theme under templates/.
        blog_path: Absolute path of the project content root.
        deployment_folder: Absolute path of the output directory.
        navs: Navigation items for templates.
        contacts: Contact entries for the contacts extension.
        extensions: Any other top-level section, keyed by extension name.
    """

    title: str = ""
    description: str = ""
    author_name: str = ""
    author_email: str = ""
    lang: str = DEFAULT_LANGUAGE
    site_url: str = ""
    theme: str = DEFAULT_THEME
    blog_path: Path = field(default_factory=Path.cwd)
    deployment_folder: Path = field(
        default_factory=lambda: Path.cwd() / DEFAULT_DEPLOYMENT_FOLDER
    )
    navs: list[Any] = field(default_factory=list)
    contacts: list[Any] = field(default_factory=list)
    extensions: dict[str, Any] = field(default_factory=dict)

    @property
    def templates_path(self) -> Path:
        return self.blog_path / TEMPLATES_PATH / self.theme

    @property
    def posts_path(self) -> Path:
        return self.blog_path / POSTS_PATH

    @property
    def pages_path(self) -> Path:
        return self.blog_path / PAGES_PATH

    @property
    def assets_path(self) -> Path:
        return self.blog_path / ASSETS_PATH

    def extension_config(self, name: str) -> Any:
        """Return the free-form configuration section for an extension, or None."""
        return self.extensions.get(name)

    def as_dict(self) -> dict[str, Any]:
        """Plain mapping handed to templates as ``config``."""
        data: dict[str, Any] = dict(self.extensions)
        data.update(
            {
                "title": self.title,
                "description": self.description,
                "author_name": self.author_name,
                "author_email": self.author_email,
                "lang": self.lang,
                "site_url": self.site_url,
                "theme": self.theme,
                "navs": self.navs,
                "contacts": self.contacts,
            }
        )
        return data


@dataclass
class ThemeConfig:
    """Hook commands declared by a theme.

    Attributes:
        pre_process: Commands run before content generation.
        process: Commands run after generation; ``{publish-folder}`` is
            replaced with the deployment path.
    """

    pre_process: list[str] = field(default_factory=list)
    process: list[str] = field(default_factory=list)


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigError(path, "Configuration file not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(path, f"Invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(path, f"Could not read file: {exc}") from exc


def _resolve(project_root: Path, value: Any, default: Path) -> Path:
    if value in (None, ""):
        return default
    path = Path(str(value)).expanduser()
    if not path.is_absolute():
        path = project_root / path
    return path.resolve()


def load_config(project_root: Path) -> SiteConfig:
    """Load site configuration from timug.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        SiteConfig with defaults applied and paths made absolute.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    project_root = Path(project_root).resolve()
    config_path = project_root / CONFIG_FILE_NAME
    loaded = _read_yaml(config_path) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(config_path, "Expected a mapping at the top level")

    blog_path = _resolve(project_root, loaded.get("blog_path"), project_root)
    deployment_folder = _resolve(
        project_root,
        loaded.get("deployment_folder"),
        blog_path / DEFAULT_DEPLOYMENT_FOLDER,
    )
    extensions = {
        key: value for key, value in loaded.items() if key not in _KNOWN_KEYS
    }
    return SiteConfig(
        title=str(loaded.get("title") or loaded.get("name") or ""),
        description=str(loaded.get("description") or ""),
        author_name=str(loaded.get("author_name") or ""),
        author_email=str(loaded.get("author_email") or ""),
        lang=str(loaded.get("lang") or DEFAULT_LANGUAGE),
        site_url=str(loaded.get("site_url") or ""),
        theme=str(loaded.get("theme") or DEFAULT_THEME),
        blog_path=blog_path,
        deployment_folder=deployment_folder,
        navs=list(loaded.get("navs") or []),
        contacts=list(loaded.get("contacts") or []),
        extensions=extensions,
    )


def load_theme_config(theme_dir: Path) -> ThemeConfig:
    """Load the hook lists of a theme from template.yaml.

    A theme without template.yaml simply has no hooks.

    Args:
        theme_dir: Directory of the active theme.

    Returns:
        ThemeConfig with both command lists.
    """
    path = theme_dir / THEME_CONFIG_FILE_NAME
    if not path.exists():
        return ThemeConfig()
    loaded = _read_yaml(path) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(path, "Expected a mapping at the top level")
    return ThemeConfig(
        pre_process=[str(cmd) for cmd in loaded.get("pre_process") or []],
        process=[str(cmd) for cmd in loaded.get("process") or []],
    )


def dump_config(config: SiteConfig) -> str:
    """Serialize a SiteConfig back to timug.yaml form (used by ``init``)."""
    payload: dict[str, Any] = {
        "title": config.title,
        "description": config.description,
        "author_name": config.author_name,
        "author_email": config.author_email,
        "lang": config.lang,
        "site_url": config.site_url,
        "theme": config.theme,
        "deployment_folder": str(config.deployment_folder),
        "navs": config.navs,
        "contacts": config.contacts,
    }
    payload.update(config.extensions)
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
