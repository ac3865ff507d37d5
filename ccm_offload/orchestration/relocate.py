"""Move a managed folder to another volume and leave a junction behind."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from ccm_offload.adapters.windows_host import HostOperations
from ccm_offload.domain.models import FolderState, ManagedFolder
from ccm_offload.orchestration.services import ServiceController
from ccm_offload.utils.folders import probe_folder, remove_path

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".staging"


class RelocationError(RuntimeError):
    """Raised when a folder cannot be relocated."""


class FolderRelocator:
    def __init__(self, host: HostOperations, services: ServiceController) -> None:
        self.host = host
        self.services = services

    def _move_via_staging(self, source: Path, destination: Path) -> None:
        staging = destination.with_name(destination.name + STAGING_SUFFIX)
        if os.path.lexists(staging):
            logger.info("Removing leftover staging folder %s", staging)
            remove_path(staging)
        staging.parent.mkdir(parents=True, exist_ok=True)

        try:
            shutil.copytree(source, staging, symlinks=True)
        except Exception:
            logger.error("Copy of %s to %s failed; source left in place", source, staging)
            remove_path(staging)
            raise

        os.replace(staging, destination)
        # Past this point the destination is complete; a failed source
        # removal is not rolled back.
        remove_path(source)

    def relocate(self, folder: ManagedFolder) -> None:
        """Relocate ``folder.source`` to ``folder.destination``.

        Steps run strictly in order and any failure aborts the relocation:
        stop services, take ownership (cache folder only), clear the
        destination, move the tree, create the junction.
        """
        state = probe_folder(folder.source)
        if state is FolderState.JUNCTION:
            raise RelocationError(f"{folder.source} is already a junction")
        if state is FolderState.MISSING:
            if os.path.lexists(folder.source):
                raise RelocationError(f"{folder.source} is not a directory")
            raise RelocationError(f"{folder.source} does not exist")

        self.services.stop_if_running()

        if folder.is_cache_folder:
            self.host.take_ownership(folder.source)

        if os.path.lexists(folder.destination):
            logger.info("Removing existing destination %s", folder.destination)
            remove_path(folder.destination)

        logger.info("Moving %s to %s", folder.source, folder.destination)
        self._move_via_staging(folder.source, folder.destination)

        self.host.create_junction(folder.source, folder.destination)
        logger.info("Relocated %s to %s", folder.source, folder.destination)
