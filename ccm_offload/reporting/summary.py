"""Summary generation for run reports."""

from __future__ import annotations

from collections import Counter
from typing import Any

from ccm_offload.domain.models import RunReport


def compute_summary(report: RunReport) -> dict[str, Any]:
    """Compute aggregate stats from a finished (or dry) run."""
    folder_statuses = Counter(outcome.status for outcome in report.folders)
    failed_steps = [item.step for item in report.cleanups if item.failed]

    return {
        "mode": report.mode,
        "cache": {
            "cleaned": sum(item.cleaned for item in report.cleanups),
            "candidates": sum(item.candidates for item in report.cleanups),
            "by_step": {item.step: item.cleaned for item in report.cleanups},
            "failed_steps": failed_steps,
        },
        "folders": {
            "total": len(report.folders),
            "statuses": dict(folder_statuses),
            "missing": folder_statuses.get("missing", 0),
        },
        "services_stopped": report.services_stopped,
        "recovered_artifact": report.recovered_artifact,
    }
