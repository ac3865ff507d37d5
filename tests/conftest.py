from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Sequence

import pytest

from ccm_offload.domain.models import CacheElement, RunConfig
from ccm_offload.orchestration.services import ServiceController


NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


def set_age(path: Path, days: float) -> None:
    stamp = (NOW - timedelta(days=days)).timestamp()
    os.utime(path, (stamp, stamp))


class FakeCacheAgent:
    def __init__(self, cache_root: Path, entries: Sequence[CacheElement] = ()) -> None:
        self.cache_root = cache_root
        self.entries: dict[str, CacheElement] = {entry.element_id: entry for entry in entries}
        self.deleted: list[str] = []
        self.removed_records: list[str] = []
        self.fail_on_list = False
        self.fail_on_remove: set[str] = set()

    def list_entries(self) -> list[CacheElement]:
        if self.fail_on_list:
            raise RuntimeError("WMI query failed")
        return list(self.entries.values())

    def delete_entry(self, element_id: str) -> None:
        entry = self.entries.pop(element_id)
        shutil.rmtree(entry.location, ignore_errors=True)
        self.deleted.append(element_id)

    def remove_record(self, element_id: str) -> None:
        if element_id in self.fail_on_remove:
            raise RuntimeError(f"cannot remove {element_id}")
        self.entries.pop(element_id)
        self.removed_records.append(element_id)

    def get_cache_root_path(self) -> Path:
        return self.cache_root


class FakeHost:
    """Host double that models junctions as directory symlinks."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    def stop_services(self, names: Sequence[str], *, force: bool = True) -> None:
        self.calls.append(("stop", *names))

    def start_services(self, names: Sequence[str]) -> None:
        self.calls.append(("start", *names))

    def take_ownership(self, path: Path) -> None:
        self.calls.append(("takeown", str(path)))

    def create_junction(self, link: Path, target: Path) -> None:
        self.calls.append(("junction", str(link), str(target)))
        link.symlink_to(target, target_is_directory=True)

    def remove_junction(self, link: Path) -> None:
        self.calls.append(("unjunction", str(link)))
        link.unlink()

    def count(self, action: str) -> int:
        return sum(1 for call in self.calls if call[0] == action)


def make_entry(
    cache_root: Path,
    element_id: str,
    *,
    content_id: str = "Content_1",
    version: int = 1,
    referenced_days_ago: float = 30,
    written_days_ago: float | None = None,
    persist_in_cache: bool = False,
    peer_caching: bool = False,
    create: bool = True,
) -> CacheElement:
    location = cache_root / element_id
    if create:
        location.mkdir(parents=True, exist_ok=True)
        (location / "payload.bin").write_bytes(b"x" * 16)
        set_age(location, referenced_days_ago if written_days_ago is None else written_days_ago)
    return CacheElement(
        element_id=element_id,
        content_id=content_id,
        content_version=version,
        location=location,
        last_referenced=NOW - timedelta(days=referenced_days_ago),
        persist_in_cache=persist_in_cache,
        peer_caching=peer_caching,
    )


@pytest.fixture
def layout(tmp_path: Path) -> dict[str, Path]:
    os_root = tmp_path / "Windows"
    os_root.mkdir()
    return {
        "os_root": os_root,
        "cache_root": os_root / "ccmcache",
        "destination_root": tmp_path / "D" / "CCM",
        "artifacts": tmp_path / "artifacts",
    }


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def services(fake_host: FakeHost) -> ServiceController:
    return ServiceController(fake_host, sleep=lambda _seconds: None)


@pytest.fixture
def make_config(layout: dict[str, Path]):
    def _make(*, cache_only: bool = False, dry_run: bool = False, min_age_days: int = 0) -> RunConfig:
        return RunConfig(
            drive_letter="D",
            cache_only=cache_only,
            min_age_days=min_age_days,
            dry_run=dry_run,
            os_root=layout["os_root"],
            destination_root=layout["destination_root"],
            artifacts_dir=layout["artifacts"],
            settle_seconds=0,
        )

    return _make
