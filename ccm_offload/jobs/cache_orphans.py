"""Removal of orphaned, superseded and untracked cache content."""

from __future__ import annotations

import logging
from collections import defaultdict

from ccm_offload.adapters.cache_agent import CacheAgent
from ccm_offload.domain.models import CACHE_FOLDER_NAME, CacheElement, CleanupResult, FolderState
from ccm_offload.utils.folders import normalize_location, probe_folder, remove_path

logger = logging.getLogger(__name__)


class CacheOrphanCleaner:
    """Three passes over the cache index.

    1. drop index records whose folder is gone;
    2. keep only the highest version of each content id;
    3. delete folders under the cache root that no record points at.
    """

    step = "cache_orphans"

    def __init__(self, agent: CacheAgent, *, cache_folder_name: str = CACHE_FOLDER_NAME) -> None:
        self.agent = agent
        self.cache_folder_name = cache_folder_name

    def _drop_missing(self, entries: list[CacheElement], result: CleanupResult, dry_run: bool) -> list[CacheElement]:
        survivors: list[CacheElement] = []
        for element in entries:
            if element.location.parts and element.location.is_dir():
                survivors.append(element)
                continue
            result.candidates += 1
            if not dry_run:
                self.agent.remove_record(element.element_id)
                result.cleaned += 1
            logger.info("Index record %s points at missing folder %s", element.element_id, element.location)
        return survivors

    def _drop_superseded(
        self, entries: list[CacheElement], result: CleanupResult, dry_run: bool
    ) -> list[CacheElement]:
        groups: dict[str, list[CacheElement]] = defaultdict(list)
        for element in entries:
            groups[element.content_id].append(element)

        survivors: list[CacheElement] = []
        for content_id, group in groups.items():
            latest = max(element.content_version for element in group)
            for element in group:
                if element.content_version == latest:
                    survivors.append(element)
                    continue
                result.candidates += 1
                logger.info(
                    "Content %s version %s superseded by %s at %s",
                    content_id,
                    element.content_version,
                    latest,
                    element.location,
                )
                if dry_run:
                    # still on disk, so it must not show up as untracked
                    survivors.append(element)
                    continue
                remove_path(element.location)
                self.agent.remove_record(element.element_id)
                result.cleaned += 1
        return survivors

    def _drop_untracked(self, entries: list[CacheElement], result: CleanupResult, dry_run: bool) -> None:
        root = self.agent.get_cache_root_path()
        if root.name.lower() != self.cache_folder_name.lower():
            logger.warning("Cache root %s is not a %s folder; skipping untracked scan", root, self.cache_folder_name)
            return
        if not root.is_dir():
            return

        referenced = {normalize_location(element.location) for element in entries}
        for child in sorted(root.iterdir()):
            state = probe_folder(child)
            if state is FolderState.MISSING or normalize_location(child) in referenced:
                continue
            result.candidates += 1
            logger.info("Untracked cache %s %s", state.value, child)
            if dry_run:
                continue
            # a junction child is unlinked, its target is left alone
            remove_path(child)
            result.cleaned += 1

    def run(self, *, dry_run: bool = False) -> CleanupResult:
        result = CleanupResult(step=self.step)
        try:
            entries = self.agent.list_entries()
            entries = self._drop_missing(entries, result, dry_run)
            entries = self._drop_superseded(entries, result, dry_run)
            self._drop_untracked(entries, result, dry_run)
        except Exception as exc:  # single boundary: report and keep completed work
            result.failed = True
            result.error = f"{type(exc).__name__}: {exc}"
            logger.error("Cache orphan cleanup failed after %s items: %s", result.cleaned, result.error)
        return result
