"""Run configuration and task functions shared by the CLI and the scheduler."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ccm_offload.adapters.cache_agent import CacheAgent, PowerShellCacheAgent
from ccm_offload.adapters.windows_host import HostOperations, WindowsHost
from ccm_offload.domain.models import RunConfig, RunReport
from ccm_offload.orchestration.services import DEFAULT_SETTLE_SECONDS
from ccm_offload.workflows.offload import run_offload

logger = logging.getLogger(__name__)

DEFAULT_DRIVE_LETTER = "D"
DESTINATION_SUBDIR = "CCM"
DEFAULT_ARTIFACT_ROOT = "artifacts/runs"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def default_os_root() -> Path:
    return Path(os.getenv("CCM_OFFLOAD_OS_ROOT") or os.getenv("SystemRoot") or r"C:\Windows")


def destination_root_for(drive_letter: str) -> Path:
    override = os.getenv("CCM_OFFLOAD_DESTINATION_ROOT", "").strip()
    if override:
        return Path(override)
    return Path(f"{drive_letter.upper()}:\\") / DESTINATION_SUBDIR


def resolve_config(
    *,
    drive_letter: str = DEFAULT_DRIVE_LETTER,
    cache_only: bool = False,
    min_age_days: int | None = None,
    dry_run: bool = False,
    artifacts_dir: Path | str | None = None,
) -> RunConfig:
    if len(drive_letter) != 1 or not drive_letter.isascii() or not drive_letter.isalpha():
        raise ValueError(f"Drive letter must be a single letter, got {drive_letter!r}")
    if min_age_days is None:
        min_age_days = _env_int("CCM_OFFLOAD_MIN_AGE_DAYS", 0)
    if min_age_days < 0:
        raise ValueError("Minimum age in days must be zero or greater")

    config = RunConfig(
        drive_letter=drive_letter.upper(),
        cache_only=cache_only,
        min_age_days=min_age_days,
        dry_run=dry_run,
        os_root=default_os_root(),
        destination_root=destination_root_for(drive_letter),
        artifacts_dir=Path(artifacts_dir or os.getenv("CCM_OFFLOAD_ARTIFACT_ROOT", DEFAULT_ARTIFACT_ROOT)),
        settle_seconds=_env_float("CCM_OFFLOAD_SETTLE_SECONDS", DEFAULT_SETTLE_SECONDS),
    )
    logger.info(
        "Resolved run config (os_root=%s, destination_root=%s, cache_only=%s, min_age_days=%s, dry_run=%s)",
        config.os_root,
        config.destination_root,
        config.cache_only,
        config.min_age_days,
        config.dry_run,
    )
    return config


def run_with_defaults(
    config: RunConfig,
    *,
    agent: CacheAgent | None = None,
    host: HostOperations | None = None,
) -> RunReport:
    """Run the offload workflow against the local agent and host."""
    return run_offload(
        config,
        agent=agent or PowerShellCacheAgent(),
        host=host or WindowsHost(),
    )


def cache_maintenance(
    *,
    agent: CacheAgent | None = None,
    host: HostOperations | None = None,
) -> RunReport:
    """Recurring cache-only purge; never touches services or folders."""
    config = resolve_config(cache_only=True)
    report = run_with_defaults(config, agent=agent, host=host)
    logger.info(
        "Cache maintenance completed: %s",
        ", ".join(f"{item.step}={item.cleaned}" for item in report.cleanups),
    )
    return report
