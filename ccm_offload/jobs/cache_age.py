"""Age-based purge of the client content cache."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ccm_offload.adapters.cache_agent import CacheAgent
from ccm_offload.domain.models import CacheElement, CleanupResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _folder_last_write(element: CacheElement) -> datetime | None:
    if not element.location.parts:
        return None
    try:
        mtime = element.location.stat().st_mtime
    except FileNotFoundError:
        return None
    return datetime.fromtimestamp(mtime, tz=timezone.utc)


class CacheAgeCleaner:
    """Delete unpinned cache entries not referenced for ``min_age_days``.

    Deletion always goes through the agent so its index stays consistent.
    """

    step = "cache_age"

    def __init__(self, agent: CacheAgent, *, clock: Clock | None = None) -> None:
        self.agent = agent
        self.clock = clock or _utc_now

    def select(self, entries: list[CacheElement], cutoff: datetime) -> list[CacheElement]:
        selected: list[CacheElement] = []
        for element in entries:
            if element.pinned or element.last_referenced >= cutoff:
                continue
            last_write = _folder_last_write(element)
            if last_write is None:
                logger.debug("Skipping %s: backing folder %s is missing", element.element_id, element.location)
                continue
            if last_write >= cutoff:
                continue
            selected.append(element)
        return selected

    def run(self, min_age_days: int = 0, *, dry_run: bool = False) -> CleanupResult:
        if min_age_days < 0:
            raise ValueError("min_age_days must be zero or greater")

        cutoff = self.clock() - timedelta(days=min_age_days)
        entries = self.agent.list_entries()
        selected = self.select(entries, cutoff)
        result = CleanupResult(step=self.step, candidates=len(selected))
        logger.info(
            "%s of %s cache entries last referenced before %s",
            len(selected),
            len(entries),
            cutoff.isoformat(),
        )

        if dry_run:
            return result

        for element in selected:
            self.agent.delete_entry(element.element_id)
            result.cleaned += 1
            logger.info("Deleted cache element %s (%s)", element.element_id, element.location)
        return result
