"""Command-line entry point for tm2bd."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import structlog

from tm2bd.beads_client import BeadsCli, BeadsGateway
from tm2bd.config import Settings
from tm2bd.graph import GraphValidationError
from tm2bd.id_mapper import IdMapper
from tm2bd.models import Tm2bdError
from tm2bd.schema import parse_tasks_json
from tm2bd.sync import SyncEngine, count_subtasks, plan_operations
from tm2bd.yaml_config import DEFAULT_PROFILE, load_profile

logger = structlog.get_logger()


class ExistingMappingError(Tm2bdError):
    """Raised when a mapping file exists and neither --force nor --resume was given."""


class BeadsNotInitializedError(Tm2bdError):
    """Raised when the project has no .beads directory."""


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.stdlib.NAME_TO_LEVEL.get(level.lower(), 20)
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tm2bd", description="Sync task-master-ai tasks to the Beads issue tracker"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Sync task-master tasks to Beads")
    sync.add_argument("--tasks", default=None, help="Path to tasks.json")
    sync.add_argument("--project", default=None, help="Path to project root with .beads/")
    sync.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    sync.add_argument("--force", action="store_true", help="Overwrite existing import (skip idempotency check)")
    sync.add_argument("--resume", action="store_true", help="Resume from partial mapping file")
    sync.add_argument("--map-file", default=None, help="Path for ID mapping output")
    sync.add_argument(
        "--save-partial",
        action="store_true",
        default=None,
        help="Write the mapping file even when the sync fails",
    )
    sync.add_argument("--config", default=None, help=f"YAML profile (default: <project>/{DEFAULT_PROFILE})")
    sync.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def _progress(phase: str, current: int, total: int) -> None:
    print(f"  {current}/{total} {phase}", end="\r", flush=True)


def run_sync(args: argparse.Namespace, settings: Settings, beads: BeadsGateway | None = None) -> int:
    """Run the sync subcommand. Raises Tm2bdError on any fatal condition."""
    project = args.project or settings.project_path
    profile = load_profile(args.config or Path(project) / DEFAULT_PROFILE)
    tasks_path = args.tasks or profile.tasks or settings.tasks_path
    map_file = args.map_file or profile.map_file or settings.map_file
    save_partial = next(
        v for v in (args.save_partial, profile.save_partial, settings.save_partial) if v is not None
    )

    print("tm2bd: Task-Master to Beads Sync\n")

    if beads is None:
        beads = BeadsCli(settings, project_path=project, verbose=args.verbose)
    if not beads.check_init():
        raise BeadsNotInitializedError("Beads not initialized. Run `bd init` first.")

    map_exists = IdMapper.exists(map_file)
    if map_exists and not args.force and not args.resume:
        raise ExistingMappingError(
            f"Mapping file {map_file} already exists.\n"
            "Use --force to overwrite or --resume to continue from it."
        )

    if args.resume and map_exists:
        print("Resuming from existing mapping file...")
        mapper = IdMapper.load(map_file)
    else:
        mapper = IdMapper()

    print("Parsing tasks.json...")
    project_doc = parse_tasks_json(tasks_path)
    tasks = project_doc.tasks
    print(f"  Loaded {len(tasks)} tasks")

    engine = SyncEngine(
        beads, mapper, map_file=map_file, save_partial=save_partial, on_progress=_progress
    )

    print("Validating and sorting by dependencies...")
    sorted_tasks = engine.prepare(tasks)
    print(f"  Sorted into {engine.summary.tiers} dependency tier(s)")

    if args.dry_run:
        print("\n[DRY RUN] Commands that would be executed:\n")
        for line in plan_operations(sorted_tasks, tasks, mapper):
            print(f"  {line}")
        print("\nNo changes made.")
        return 0

    print(f"Creating {len(tasks)} epics and {count_subtasks(tasks)} child tasks...")
    summary = engine.run(tasks, sorted_tasks)
    print(" " * 40, end="\r")
    print(f"  Mapping saved to {map_file}")

    stats = mapper.get_stats()
    print("\nSync complete!")
    print(f"  Epics: {stats.epic_count} ({summary.epics_reused} reused)")
    print(f"  Children: {stats.child_count} ({summary.children_reused} reused)")
    print(
        f"  Dependencies: {summary.dependencies.total} "
        f"({summary.dependencies.epic_deps} epic, {summary.dependencies.subtask_deps} subtask)"
    )
    print(f"  Statuses: {summary.closed} closed, {summary.status_updates} updated")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the tm2bd command."""
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level)

    try:
        return run_sync(args, settings)
    except GraphValidationError as e:
        print("Dependency validation failed:", file=sys.stderr)
        for error in e.errors:
            print(f"  {error}", file=sys.stderr)
        return 1
    except Tm2bdError as e:
        logger.error("sync_aborted", error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
