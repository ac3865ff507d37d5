from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


CACHE_FOLDER_NAME = "ccmcache"
SOFTWARE_DISTRIBUTION_FOLDER_NAME = "SoftwareDistribution"
MANAGED_FOLDER_NAMES: tuple[str, ...] = (CACHE_FOLDER_NAME, SOFTWARE_DISTRIBUTION_FOLDER_NAME)


class FolderState(str, Enum):
    DIRECTORY = "directory"
    JUNCTION = "junction"
    MISSING = "missing"


@dataclass(slots=True)
class CacheElement:
    element_id: str
    content_id: str
    content_version: int
    location: Path
    last_referenced: datetime
    persist_in_cache: bool = False
    peer_caching: bool = False

    @property
    def pinned(self) -> bool:
        return self.persist_in_cache and self.peer_caching


@dataclass(slots=True)
class ManagedFolder:
    name: str
    source: Path
    destination: Path

    @classmethod
    def build(cls, name: str, *, os_root: Path, destination_root: Path) -> "ManagedFolder":
        return cls(name=name, source=os_root / name, destination=destination_root / name)

    @property
    def is_cache_folder(self) -> bool:
        return self.name.lower() == CACHE_FOLDER_NAME


@dataclass(slots=True)
class CleanupResult:
    step: str
    cleaned: int = 0
    candidates: int = 0
    failed: bool = False
    error: str | None = None


@dataclass(slots=True)
class FolderOutcome:
    folder: str
    status: str
    source: str
    destination: str


@dataclass(slots=True)
class RunReport:
    run_id: str
    mode: str
    cleanups: list[CleanupResult] = field(default_factory=list)
    folders: list[FolderOutcome] = field(default_factory=list)
    services_stopped: bool = False
    recovered_artifact: bool = False
    artifacts: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class RunConfig:
    drive_letter: str
    cache_only: bool
    min_age_days: int
    dry_run: bool
    os_root: Path
    destination_root: Path
    artifacts_dir: Path
    settle_seconds: float

    @property
    def mode(self) -> str:
        scope = "cache-only" if self.cache_only else "full"
        return f"{scope}-dry-run" if self.dry_run else scope
