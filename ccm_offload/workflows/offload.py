"""Cache purge and folder relocation workflow with dry-run support and run reports."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ccm_offload.adapters.cache_agent import CacheAgent
from ccm_offload.adapters.windows_host import HostOperations
from ccm_offload.domain.models import (
    MANAGED_FOLDER_NAMES,
    SOFTWARE_DISTRIBUTION_FOLDER_NAME,
    CleanupResult,
    FolderOutcome,
    FolderState,
    ManagedFolder,
    RunConfig,
    RunReport,
)
from ccm_offload.jobs.cache_age import CacheAgeCleaner
from ccm_offload.jobs.cache_orphans import CacheOrphanCleaner
from ccm_offload.orchestration.relocate import FolderRelocator
from ccm_offload.orchestration.services import ServiceController
from ccm_offload.reporting.summary import compute_summary
from ccm_offload.reporting.triage import write_run_report
from ccm_offload.utils.folders import probe_folder, remove_path
from ccm_offload.utils.logging import get_structured_logger, log_workflow_event

RECOVERY_ARTIFACT_NAME = SOFTWARE_DISTRIBUTION_FOLDER_NAME + "Old"

Clock = Callable[[], datetime]


def _build_run_id(mode: str, now: datetime) -> str:
    stamp = now.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
    return f"{stamp}_{mode}"


def _log_cleanup(logger: logging.Logger, result: CleanupResult, dry_run: bool) -> None:
    if result.failed:
        log_workflow_event(
            logger,
            workflow_step=result.step,
            status="failed",
            count=result.cleaned,
            error_code="CACHE_CLEANUP_FAILED",
            error_message=result.error,
            message="Cache cleanup failed",
        )
        return
    log_workflow_event(
        logger,
        workflow_step=result.step,
        status="dry_run" if dry_run else "cleaned",
        count=result.candidates if dry_run else result.cleaned,
        message="Would clean cache items" if dry_run else "Cleaned cache items",
    )


def clear_recovery_artifact(
    config: RunConfig,
    *,
    host: HostOperations,
    services: ServiceController,
) -> bool:
    """Undo the rename left behind by the Windows Update troubleshooter.

    When ``SoftwareDistributionOld`` is a junction, the live folder was
    recreated under the OS root and the relocated copy is stale. Both the
    junction and the relocated copy are removed so the fresh folder can be
    relocated again. Returns ``True`` when the artifact was present.
    """
    artifact = config.os_root / RECOVERY_ARTIFACT_NAME
    if probe_folder(artifact) is not FolderState.JUNCTION:
        return False
    if config.dry_run:
        return True

    services.stop_if_running()
    host.remove_junction(artifact)
    stale = config.destination_root / SOFTWARE_DISTRIBUTION_FOLDER_NAME
    if probe_folder(stale) is not FolderState.MISSING:
        remove_path(stale)
    return True


def _process_folder(
    folder: ManagedFolder,
    *,
    relocator: FolderRelocator,
    dry_run: bool,
    logger: logging.Logger,
) -> FolderOutcome:
    state = probe_folder(folder.source)
    error_code = None

    if state is FolderState.DIRECTORY:
        if dry_run:
            status, message = "would_relocate", "Would relocate folder"
        else:
            relocator.relocate(folder)
            status, message = "relocated", "Folder relocated and linked"
    elif state is FolderState.JUNCTION:
        status, message = "already_junction", "Folder is already a junction point"
    elif probe_folder(folder.destination) is not FolderState.MISSING:
        status, message = "already_relocated", "Folder already relocated"
    else:
        status, message = "missing", "Folder missing from source and destination"
        error_code = "FOLDER_MISSING"

    log_workflow_event(
        logger,
        workflow_step="relocate",
        target=folder.name,
        status=status,
        error_code=error_code,
        error_message=f"{folder.source} and {folder.destination} do not exist" if error_code else None,
        message=message,
    )
    return FolderOutcome(
        folder=folder.name,
        status=status,
        source=str(folder.source),
        destination=str(folder.destination),
    )


def run_offload(
    config: RunConfig,
    *,
    agent: CacheAgent,
    host: HostOperations,
    services: ServiceController | None = None,
    clock: Clock | None = None,
) -> RunReport:
    """Purge the cache, then relocate the managed folders unless cache-only."""
    logger = get_structured_logger()
    clock = clock or (lambda: datetime.now(tz=timezone.utc))
    services = services or ServiceController(host, settle_seconds=config.settle_seconds)
    now = clock()
    report = RunReport(run_id=_build_run_id(config.mode, now), mode=config.mode)

    age_result = CacheAgeCleaner(agent, clock=clock).run(config.min_age_days, dry_run=config.dry_run)
    _log_cleanup(logger, age_result, config.dry_run)
    report.cleanups.append(age_result)

    orphan_result = CacheOrphanCleaner(agent).run(dry_run=config.dry_run)
    _log_cleanup(logger, orphan_result, config.dry_run)
    report.cleanups.append(orphan_result)

    if not config.cache_only:
        report.recovered_artifact = clear_recovery_artifact(config, host=host, services=services)
        if report.recovered_artifact:
            log_workflow_event(
                logger,
                workflow_step="recovery_artifact",
                target=RECOVERY_ARTIFACT_NAME,
                status="dry_run" if config.dry_run else "removed",
                message="Found troubleshooter rename artifact",
            )

        relocator = FolderRelocator(host, services)
        for name in MANAGED_FOLDER_NAMES:
            folder = ManagedFolder.build(name, os_root=config.os_root, destination_root=config.destination_root)
            report.folders.append(
                _process_folder(folder, relocator=relocator, dry_run=config.dry_run, logger=logger)
            )

        services.start_if_stopped()
    report.services_stopped = services.stopped

    json_path, md_path = write_run_report(
        artifacts_dir=config.artifacts_dir,
        report=report,
        summary=compute_summary(report),
        report_date=now.date(),
    )
    report.artifacts = {"json": str(json_path), "markdown": str(md_path)}
    return report
