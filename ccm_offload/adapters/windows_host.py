from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from ccm_offload.adapters.powershell import CommandError, ps_quote, run_command, run_powershell

logger = logging.getLogger(__name__)


class HostCommandError(CommandError):
    """Raised when a service, ownership or junction command fails."""


class HostOperations(Protocol):
    def stop_services(self, names: Sequence[str], *, force: bool = True) -> None: ...

    def start_services(self, names: Sequence[str]) -> None: ...

    def take_ownership(self, path: Path) -> None: ...

    def create_junction(self, link: Path, target: Path) -> None: ...

    def remove_junction(self, link: Path) -> None: ...


def _service_list(names: Sequence[str]) -> str:
    return ",".join(ps_quote(name) for name in names)


class WindowsHost:
    """OS primitives for service control, ownership and junctions."""

    def stop_services(self, names: Sequence[str], *, force: bool = True) -> None:
        script = f"Stop-Service -Name {_service_list(names)} -ErrorAction Stop"
        if force:
            script += " -Force"
        logger.info("Stopping services: %s", ", ".join(names))
        run_powershell(script, error_cls=HostCommandError)

    def start_services(self, names: Sequence[str]) -> None:
        logger.info("Starting services: %s", ", ".join(names))
        run_powershell(
            f"Start-Service -Name {_service_list(names)} -ErrorAction Stop",
            error_cls=HostCommandError,
        )

    def take_ownership(self, path: Path) -> None:
        logger.info("Taking ownership of %s", path)
        # Ownership goes to the current user; /D Y answers the prompt for
        # folders the current token cannot list.
        run_command(
            ["takeown", "/F", str(path), "/R", "/D", "Y"],
            error_cls=HostCommandError,
        )

    def create_junction(self, link: Path, target: Path) -> None:
        link_arg = str(link).rstrip("\\")
        target_arg = str(target).rstrip("\\")
        logger.info("Creating junction %s -> %s", link_arg, target_arg)
        run_command(["cmd", "/c", "mklink", "/J", link_arg, target_arg], error_cls=HostCommandError)
        if not link.exists():
            raise HostCommandError(["mklink", link_arg, target_arg], 0, "junction not present after mklink")

    def remove_junction(self, link: Path) -> None:
        # rmdir on a junction drops the reparse point and leaves the target intact.
        logger.info("Removing junction %s", link)
        run_command(["cmd", "/c", "rmdir", str(link)], error_cls=HostCommandError)
