"""Theme hook commands.

A theme's template.yaml may list shell commands to run before content is
loaded (``pre_process``) and after the site is written (``process``), for
example a CSS compiler. Commands run one at a time, in order, through the
shell, with the theme directory as working directory. There is no timeout.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path

from .errors import HookError

logger = logging.getLogger(__name__)

PUBLISH_FOLDER_PLACEHOLDER = "{publish-folder}"


def expand_command(command: str, publish_folder: Path | None = None) -> str:
    """Substitute the ``{publish-folder}`` placeholder in a command."""
    if publish_folder is None:
        return command
    return command.replace(PUBLISH_FOLDER_PLACEHOLDER, str(publish_folder))


def run_hooks(
    commands: Iterable[str],
    cwd: Path,
    publish_folder: Path | None = None,
) -> int:
    """Run hook commands sequentially, stopping at the first failure.

    Args:
        commands: Shell commands in execution order.
        cwd: Working directory (the theme directory).
        publish_folder: Deployment folder substituted for
            ``{publish-folder}``; None leaves commands untouched.

    Returns:
        Number of commands run.

    Raises:
        HookError: If a command cannot be spawned or exits non-zero.
    """
    count = 0
    for raw in commands:
        command = expand_command(raw, publish_folder)
        logger.info("Executing: %s", command)
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            raise HookError(cwd, command, None, original_error=exc) from exc

        output = (completed.stdout or "") + (completed.stderr or "")
        if output.strip():
            logger.debug("%s", output.rstrip())
        if completed.returncode != 0:
            raise HookError(cwd, command, completed.returncode, output=output)
        count += 1
    return count
