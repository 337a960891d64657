"""External command execution.

Every process the CI server spawns goes through run_command so that the
exit status and the combined output are captured the same way everywhere.
"""

import logging
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path

from ci_server.schemas.builds import CommandResult

logger = logging.getLogger(__name__)


class CommandExecutionError(Exception):
    """Raised when a command cannot be started or waited on."""

    def __init__(self, message: str, command: str = ""):
        super().__init__(message)
        self.command = command


def format_command(argv: Sequence[str]) -> str:
    """Render an argument vector as a shell-style command line."""
    return shlex.join(str(arg) for arg in argv)


def run_command(argv: Sequence[str], cwd: Path | None = None) -> CommandResult:
    """
    Run a command to completion.

    Standard output and standard error are merged into one stream, so the
    output keeps the order in which the process wrote it.

    Args:
        argv: Executable followed by its arguments
        cwd: Working directory (inherits the caller's when omitted)

    Returns:
        CommandResult; success is True iff the exit status is zero

    Raises:
        CommandExecutionError: If the process cannot be started at all
    """
    if not argv:
        raise CommandExecutionError("Empty command")

    command = format_command(argv)
    logger.debug("Running command", extra={"command": command, "cwd": str(cwd) if cwd else None})

    try:
        completed = subprocess.run(
            [str(arg) for arg in argv],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("Failed to start command", extra={"command": command, "error": str(e)})
        raise CommandExecutionError(f"Failed to run '{command}': {e}", command=command) from e

    output = completed.stdout.decode("utf-8", errors="replace")
    if output and not output.endswith("\n"):
        output += "\n"

    success = completed.returncode == 0
    logger.info(
        "Command finished",
        extra={"command": command, "exit_code": completed.returncode, "success": success},
    )
    return CommandResult(success=success, output=output, command=command)
