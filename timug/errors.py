"""Error types for Timug.

Every failure that stops a build is a BuildError carrying the path of the
file (or template, or directory) that caused it, so the CLI and the dev server
can report it without digging through tracebacks.

Taxonomy:
- ConfigError: timug.yaml missing or unreadable. Fatal to the whole process.
- ContentError: a post or page could not be read or its front matter decoded.
- TemplateError: missing template, syntax error or evaluation failure.
- ExtensionError: a shortcode call failed (a TemplateError).
- FilesystemError: directory creation, copy or write failure.
- HookError: a theme pre/post-process command failed.
"""

from __future__ import annotations

from pathlib import Path


class TimugError(Exception):
    """Base class for all Timug errors."""


class ConfigError(TimugError):
    """Site configuration could not be loaded.

    Attributes:
        path: Path to the configuration file.
        message: Human-readable error message.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class BuildError(TimugError):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = Path(source_path)
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class ContentError(BuildError):
    """A content file could not be read or decoded."""


class TemplateError(BuildError):
    """A template could not be found, parsed or evaluated."""


class ExtensionError(TemplateError):
    """A shortcode invocation failed."""


class FilesystemError(BuildError):
    """Reading or writing the deployment tree failed."""


class HookError(BuildError):
    """A theme hook command could not be spawned or exited non-zero.

    Attributes:
        command: The shell command that failed.
        returncode: Exit status, or None when the command could not start.
        output: Combined stdout/stderr captured from the command.
    """

    def __init__(
        self,
        source_path: Path,
        command: str,
        returncode: int | None,
        output: str = "",
        original_error: Exception | None = None,
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        if returncode is None:
            message = f"Hook could not be started: {command}"
        else:
            message = f"Hook exited with status {returncode}: {command}"
        super().__init__(source_path, message, original_error)
