from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeHost
from ccm_offload.domain.models import FolderState, ManagedFolder
from ccm_offload.orchestration.relocate import FolderRelocator, RelocationError
from ccm_offload.orchestration.services import MANAGED_SERVICES, ServiceController
from ccm_offload.utils.folders import probe_folder, remove_path


def _tree(root: Path) -> dict[str, bytes]:
    return {
        str(path.relative_to(root)): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def _seed(folder: Path) -> None:
    (folder / "sub").mkdir(parents=True)
    (folder / "a.txt").write_text("alpha", encoding="utf-8")
    (folder / "sub" / "b.bin").write_bytes(b"\x00\x01")


def test_services_stop_once_and_wait_for_settle() -> None:
    host = FakeHost()
    waits: list[float] = []
    controller = ServiceController(host, settle_seconds=5, sleep=waits.append)

    controller.stop_if_running()
    controller.stop_if_running()

    assert host.calls == [("stop", *MANAGED_SERVICES)]
    assert waits == [5]
    assert controller.stopped is True


def test_services_restart_only_when_stopped_by_this_run() -> None:
    host = FakeHost()
    controller = ServiceController(host, sleep=lambda _s: None)

    controller.start_if_stopped()
    assert host.calls == []

    controller.stop_if_running()
    controller.start_if_stopped()
    controller.start_if_stopped()

    assert host.count("start") == 1
    assert controller.restarted is True


def test_relocate_moves_contents_and_links_source(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController
) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)
    before = _tree(folder.source)

    FolderRelocator(fake_host, services).relocate(folder)

    assert probe_folder(folder.source) is FolderState.JUNCTION
    assert folder.source.resolve() == folder.destination.resolve()
    assert _tree(folder.destination) == before
    assert not folder.destination.with_name("ccmcache.staging").exists()
    assert ("takeown", str(folder.source)) in fake_host.calls
    assert fake_host.count("stop") == 1


def test_relocate_skips_ownership_for_software_distribution(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController
) -> None:
    folder = ManagedFolder.build(
        "SoftwareDistribution", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM"
    )
    _seed(folder.source)

    FolderRelocator(fake_host, services).relocate(folder)

    assert fake_host.count("takeown") == 0
    assert probe_folder(folder.source) is FolderState.JUNCTION


def test_relocate_clobbers_existing_destination(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController
) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)
    folder.destination.mkdir(parents=True)
    (folder.destination / "stale.txt").write_text("old", encoding="utf-8")

    FolderRelocator(fake_host, services).relocate(folder)

    assert not (folder.destination / "stale.txt").exists()
    assert (folder.destination / "a.txt").read_text(encoding="utf-8") == "alpha"


def test_relocate_rejects_junction_and_missing_sources(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController
) -> None:
    relocator = FolderRelocator(fake_host, services)
    missing = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D")
    with pytest.raises(RelocationError, match="does not exist"):
        relocator.relocate(missing)

    target = tmp_path / "elsewhere"
    target.mkdir()
    (tmp_path / "Windows").mkdir()
    missing.source.symlink_to(target, target_is_directory=True)
    with pytest.raises(RelocationError, match="already a junction"):
        relocator.relocate(missing)

    assert fake_host.calls == []


def test_failed_copy_leaves_source_and_removes_staging(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController, monkeypatch: pytest.MonkeyPatch
) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)

    def broken_copytree(src, dst, **_kwargs):
        Path(dst).mkdir(parents=True)
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("ccm_offload.orchestration.relocate.shutil.copytree", broken_copytree)

    with pytest.raises(OSError):
        FolderRelocator(fake_host, services).relocate(folder)

    assert probe_folder(folder.source) is FolderState.DIRECTORY
    assert (folder.source / "a.txt").exists()
    assert not folder.destination.exists()
    assert not folder.destination.with_name("ccmcache.staging").exists()
    assert fake_host.count("junction") == 0


def test_failed_source_removal_keeps_complete_destination(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController, monkeypatch: pytest.MonkeyPatch
) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)
    before = _tree(folder.source)

    def locked_source(path) -> None:
        if Path(path) == folder.source:
            raise PermissionError(13, "Access is denied", str(path))
        remove_path(path)

    monkeypatch.setattr("ccm_offload.orchestration.relocate.remove_path", locked_source)

    with pytest.raises(PermissionError):
        FolderRelocator(fake_host, services).relocate(folder)

    assert _tree(folder.destination) == before
    assert probe_folder(folder.source) is FolderState.DIRECTORY
    assert not folder.destination.with_name("ccmcache.staging").exists()
    assert fake_host.count("junction") == 0


def test_leftover_staging_folder_is_replaced(
    tmp_path: Path, fake_host: FakeHost, services: ServiceController
) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)
    staging = folder.destination.with_name("ccmcache.staging")
    staging.mkdir(parents=True)
    (staging / "half_copied.bin").write_bytes(b"partial")

    FolderRelocator(fake_host, services).relocate(folder)

    assert not staging.exists()
    assert not (folder.destination / "half_copied.bin").exists()
    assert (folder.destination / "a.txt").read_text(encoding="utf-8") == "alpha"


def test_file_at_destination_is_replaced(tmp_path: Path, fake_host: FakeHost, services: ServiceController) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    _seed(folder.source)
    folder.destination.parent.mkdir(parents=True)
    folder.destination.write_text("stale file", encoding="utf-8")

    FolderRelocator(fake_host, services).relocate(folder)

    assert folder.destination.is_dir()
    assert probe_folder(folder.source) is FolderState.JUNCTION


def test_file_at_source_is_rejected(tmp_path: Path, fake_host: FakeHost, services: ServiceController) -> None:
    folder = ManagedFolder.build("ccmcache", os_root=tmp_path / "Windows", destination_root=tmp_path / "D" / "CCM")
    folder.source.parent.mkdir(parents=True)
    folder.source.write_text("not a folder", encoding="utf-8")

    with pytest.raises(RelocationError, match="not a directory"):
        FolderRelocator(fake_host, services).relocate(folder)
    assert fake_host.calls == []
