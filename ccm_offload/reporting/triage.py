"""Utilities for writing run report artifacts in JSON and Markdown."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Any

from ccm_offload.domain.models import RunReport


def write_run_report(
    *,
    artifacts_dir: str | Path,
    report: RunReport,
    summary: dict[str, Any],
    report_date: date | None = None,
) -> tuple[Path, Path]:
    """Write JSON and Markdown report files for the provided date and mode."""
    report_date = report_date or date.today()
    out_dir = Path(artifacts_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    slug = f"{report_date.isoformat()}_{report.mode.replace('-', '_')}"
    json_path = out_dir / f"run_{slug}.json"
    md_path = out_dir / f"run_{slug}.md"

    payload = {
        "run_id": report.run_id,
        "date": report_date.isoformat(),
        "summary": summary,
        "cleanups": [asdict(item) for item in report.cleanups],
        "folders": [asdict(item) for item in report.folders],
    }
    json_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    failed_steps = summary["cache"]["failed_steps"]
    disposition = "REVIEW_REQUIRED" if failed_steps or summary["folders"]["missing"] else "SUCCESS"
    md_lines = [
        f"# Run Report ({report_date.isoformat()})",
        "",
        f"- **Run ID:** `{report.run_id}`",
        f"- **Mode:** `{report.mode}`",
        f"- **Disposition:** `{disposition}`",
        f"- **Services stopped:** {'yes' if report.services_stopped else 'no'}",
        "",
        "## Cache",
    ]
    for item in report.cleanups:
        line = f"- {item.step}: cleaned {item.cleaned} of {item.candidates}"
        if item.failed:
            line += f" (failed: {item.error})"
        md_lines.append(line)

    md_lines.extend(["", "## Folders"])
    if report.recovered_artifact:
        if report.mode.endswith("dry-run"):
            md_lines.append("- recovery artifact found (left in place by dry run)")
        else:
            md_lines.append("- recovery artifact removed before relocation")
    if report.folders:
        for outcome in report.folders:
            md_lines.append(f"- {outcome.folder}: {outcome.status} ({outcome.source} -> {outcome.destination})")
    else:
        md_lines.append("- none (cache only)")

    md_path.write_text("\n".join(md_lines) + "\n", encoding="utf-8")
    return json_path, md_path
