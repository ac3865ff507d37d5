from __future__ import annotations

import logging
import subprocess
from typing import Sequence

logger = logging.getLogger(__name__)

POWERSHELL_ARGS: tuple[str, ...] = ("powershell", "-NoLogo", "-NoProfile", "-NonInteractive", "-Command")


class CommandError(RuntimeError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        super().__init__(f"{command[0]} exited with {returncode}: {output.strip() or 'no output'}")


def run_command(command: Sequence[str], *, error_cls: type[CommandError] = CommandError) -> str:
    """Run a command, returning stdout; raise ``error_cls`` on failure."""
    logger.debug("Running %s", " ".join(command))
    result = subprocess.run(list(command), capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise error_cls(command, result.returncode, result.stderr or result.stdout)
    return result.stdout


def run_powershell(script: str, *, error_cls: type[CommandError] = CommandError) -> str:
    return run_command([*POWERSHELL_ARGS, script], error_cls=error_cls)


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell literal."""
    return "'" + str(value).replace("'", "''") + "'"
