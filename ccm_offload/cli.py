"""Top-level ccm-offload command line interface."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from ccm_offload.domain.models import MANAGED_FOLDER_NAMES, FolderState, ManagedFolder
from ccm_offload.jobs.tasks import (
    DEFAULT_DRIVE_LETTER,
    default_os_root,
    destination_root_for,
    resolve_config,
    run_with_defaults,
)
from ccm_offload.reporting.summary import compute_summary
from ccm_offload.utils.folders import probe_folder


def _drive_letter(value: str) -> str:
    if len(value) != 1 or not value.isascii() or not value.isalpha():
        raise argparse.ArgumentTypeError("--drive-letter must be a single letter (example: D)")
    return value.upper()


def _non_negative_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--min-age-days must be an integer") from exc
    if parsed < 0:
        raise argparse.ArgumentTypeError("--min-age-days must be zero or greater")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ccm-offload",
        description="Purge the ConfigMgr client cache and move its folders to another volume",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Purge the cache and relocate managed folders")
    target_group = run_parser.add_mutually_exclusive_group()
    target_group.add_argument(
        "--drive-letter",
        type=_drive_letter,
        default=DEFAULT_DRIVE_LETTER,
        help="Destination volume for relocated folders (default: D)",
    )
    target_group.add_argument(
        "--cache-only",
        action="store_true",
        help="Only purge the cache; never stop services or move folders",
    )
    run_parser.add_argument(
        "--min-age-days",
        type=_non_negative_int,
        help=(
            "Only purge entries not referenced for this many days; "
            "0 purges every unpinned entry (default: CCM_OFFLOAD_MIN_AGE_DAYS or 0)"
        ),
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be purged or moved without changing anything",
    )
    run_parser.add_argument("--report-dir", type=Path, help="Directory for run report artifacts")
    run_parser.set_defaults(handler=_handle_run)

    status_parser = subparsers.add_parser("status", help="Show the state of the managed folders")
    status_parser.add_argument(
        "--drive-letter",
        type=_drive_letter,
        default=DEFAULT_DRIVE_LETTER,
        help="Destination volume to inspect (default: D)",
    )
    status_parser.set_defaults(handler=_handle_status)

    return parser


def _handle_run(args: argparse.Namespace) -> int:
    config = resolve_config(
        drive_letter=args.drive_letter,
        cache_only=args.cache_only,
        min_age_days=args.min_age_days,
        dry_run=args.dry_run,
        artifacts_dir=args.report_dir,
    )
    report = run_with_defaults(config)

    summary = compute_summary(report)
    for item in report.cleanups:
        if item.failed:
            print(f"{item.step}: failed ({item.error})")
        elif config.dry_run:
            print(f"{item.step}: would clean {item.candidates} item(s)")
        else:
            print(f"{item.step}: cleaned {item.cleaned} item(s)")
    if config.cache_only:
        print("Cache-only mode: folders left in place")
    for outcome in report.folders:
        print(f"{outcome.folder}: {outcome.status.replace('_', ' ')}")
    print(
        f"Run {report.run_id} complete. cleaned={summary['cache']['cleaned']} "
        f"report={report.artifacts.get('markdown', 'none')}"
    )
    return 0


def _handle_status(args: argparse.Namespace) -> int:
    os_root = default_os_root()
    destination_root = destination_root_for(args.drive_letter)
    for name in MANAGED_FOLDER_NAMES:
        folder = ManagedFolder.build(name, os_root=os_root, destination_root=destination_root)
        state = probe_folder(folder.source)
        relocated = probe_folder(folder.destination) is not FolderState.MISSING
        print(
            f"{folder.name}: source={state.value} ({folder.source}) "
            f"destination={'present' if relocated else 'absent'} ({folder.destination})"
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
