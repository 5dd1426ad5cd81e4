"""
Command-line entry point for bulk asset imports.

Usage:
    asset-import resources --root ../myroom-system/public/models
    asset-import animations --dir ./animations --admin 3f2a...
    asset-import avatars --dir ./avatars
    asset-import resources --config jobs/furniture.yaml --storage memory
    asset-import create-admin --name "Ops" --email ops@example.com

Exit codes:
    0    run completed (individual items may have been skipped or failed)
    1    fatal error: configuration, unreadable source, no operator
    130  interrupted before the run started
"""

import argparse
import json
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from asset_import.db.session import (
    create_admin,
    create_engine_from_url,
    init_db,
    make_session_factory,
    session_scope,
)
from asset_import.errors import FatalImportError
from asset_import.importer.orchestrator import ImportOrchestrator
from asset_import.importer.summary import CATEGORY_KINDS, ImportSummary
from asset_import.storage import create_content_store
from asset_import.utils.config import (
    VALID_CONFLICT_POLICIES,
    VALID_STORAGE_BACKENDS,
    ImportConfig,
)
from asset_import.utils.config_loader import apply_job, load_config, validate_config
from asset_import.utils.logging import get_logger, setup_logging
from asset_import.utils.metrics import get_metrics, start_metrics_server

logger = get_logger(__name__)

WORKFLOW_BY_COMMAND = {
    "resources": "resource_import",
    "animations": "animation_import",
    "avatars": "avatar_import",
}


def _add_run_arguments(parser: argparse.ArgumentParser, source_flag: str) -> None:
    parser.add_argument(
        source_flag,
        dest="source",
        help="Source directory (required unless the job file sets 'source')",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="YAML import job file; explicit flags override its values",
    )
    parser.add_argument(
        "-a",
        "--admin",
        help="Admin id recorded as uploader (default: first admin created)",
    )
    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        help="Parallel uploads per directory (default: IMPORT_MAX_WORKERS or 1)",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        help="Overall run deadline in seconds; no new file starts after it",
    )
    parser.add_argument(
        "--storage",
        choices=VALID_STORAGE_BACKENDS,
        help="Storage backend (memory uploads nothing; useful as a dry run)",
    )
    parser.add_argument(
        "--on-conflict",
        choices=VALID_CONFLICT_POLICIES,
        help="Behaviour when a destination key already exists",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy database URL (default: DATABASE_URL)",
    )
    parser.add_argument(
        "--summary-json",
        help="Write the run summary as JSON to this path",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Expose Prometheus metrics on this port while the run lasts",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    """Build the argument parser with one sub-command per workflow."""
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Bulk import 3D assets into the asset catalogue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Mirror a model tree as categories and import every asset
  %(prog)s resources --root ../myroom-system/public/models

  # Dry run against a scratch database
  %(prog)s resources --root ./models --storage memory --database-url sqlite:///dry.db

  # Import animations, four uploads at a time
  %(prog)s animations --dir ./animations --workers 4

  # Import avatar parts (male/hair/*.glb, female/tops/*.glb, ...)
  %(prog)s avatars --dir ./avatars
        """,
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    resources = subparsers.add_parser(
        "resources",
        help="Import a directory tree of generic resources",
        description="Import a directory tree of generic resources",
    )
    _add_run_arguments(resources, "--root")
    resources.add_argument(
        "-p",
        "--project",
        help="Owning project tag attached to every imported resource",
    )

    animations = subparsers.add_parser(
        "animations",
        help="Import a flat directory of animations",
        description="Import a flat directory of animations",
    )
    _add_run_arguments(animations, "--dir")

    avatars = subparsers.add_parser(
        "avatars",
        help="Import an avatar parts tree (gender/part type/file)",
        description="Import an avatar parts tree laid out as {gender}/{part type}/{file}.glb",
    )
    _add_run_arguments(avatars, "--dir")

    admin = subparsers.add_parser(
        "create-admin",
        help="Create (or look up) an admin to import as",
        description="Create (or look up) an admin to import as",
    )
    admin.add_argument("--name", required=True, help="Display name")
    admin.add_argument("--email", required=True, help="Unique email address")
    admin.add_argument("--database-url", help="SQLAlchemy database URL")
    admin.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return parser


def build_config(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Merge environment, job file and flags into the run settings.

    Returns:
        Dict with "config" (validated ImportConfig), "source" and "admin"

    Raises:
        ValueError: Invalid job file or configuration
        FileNotFoundError: Job file does not exist
    """
    config = ImportConfig.from_env(validate=False)
    job: Dict[str, Any] = {}

    if args.config:
        job = load_config(args.config)
        job.setdefault("workflow", WORKFLOW_BY_COMMAND[args.command])
        errors = validate_config(job)
        if errors:
            raise ValueError(
                "Invalid job file:\n" + "\n".join(f"  - {error}" for error in errors)
            )
        if job["workflow"] != WORKFLOW_BY_COMMAND[args.command]:
            raise ValueError(
                f"Job workflow {job['workflow']!r} does not match command {args.command!r}"
            )
        apply_job(job, config)

    if getattr(args, "project", None):
        config.owner_project_id = args.project
    if args.workers is not None:
        config.max_workers = args.workers
    if args.timeout is not None:
        config.run_timeout_seconds = args.timeout
    if args.storage:
        config.storage_backend = args.storage
    if args.on_conflict:
        config.on_conflict = args.on_conflict
    if args.database_url:
        config.database_url = args.database_url

    config.validate()

    return {
        "config": config,
        "source": args.source or job.get("source"),
        "admin": args.admin or job.get("admin"),
    }


def write_summary(summary: ImportSummary, path: str) -> None:
    """Write the run summary as JSON."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(summary.as_dict(), f, indent=2)
    logger.info(f"Summary written to {output}")


def print_summary(summary: ImportSummary) -> None:
    print(f"\n📊 Import Summary ({summary.kind}):")
    print(f"  Total: {summary.total}")
    print(f"  ✅ Created: {summary.created}")
    print(f"  ♻️  Existing: {summary.existing}")
    print(f"  ⏭️  Skipped: {summary.skipped}")
    print(f"  ❌ Failed: {summary.failed}")
    if summary.kind in CATEGORY_KINDS:
        print(
            f"  📁 Categories: {summary.categories_created} created, "
            f"{summary.categories_existing} existing"
        )
    print(f"  📦 Uploaded: {summary.bytes_uploaded:,} bytes")

    if summary.failures:
        print("\n❌ Failed items:")
        for failure in summary.failures:
            print(f"  • {failure.path}: {failure.error}")
    if summary.orphans:
        print("\n⚠️  Uploaded but not registered:")
        for orphan in summary.orphans:
            print(f"  • {orphan.storage_key} ({orphan.path})")
    if summary.stopped_early:
        print("\n⚠️  Run stopped early; remaining files were skipped")


def _install_stop_handlers(orchestrator: ImportOrchestrator) -> Dict[int, Any]:
    stopping = {"requested": False}

    def handle(signum: int, frame: Any) -> None:
        if stopping["requested"]:
            raise KeyboardInterrupt
        stopping["requested"] = True
        print("\n⚠️  Stopping after in-flight uploads (press Ctrl+C again to abort)")
        orchestrator.request_stop()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle)
    return previous


def _restore_handlers(previous: Dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def run_import(args: argparse.Namespace) -> int:
    """Run one import command. Returns the process exit code."""
    try:
        settings = build_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ Configuration error: {e}")
        return 1

    config: ImportConfig = settings["config"]
    source = settings["source"]
    if not source:
        flag = "--root" if args.command == "resources" else "--dir"
        print(f"❌ {flag} is required (or set 'source' in the job file)")
        return 1

    if args.metrics_port:
        start_metrics_server(port=args.metrics_port)

    metrics = get_metrics()

    try:
        engine = create_engine_from_url(config.database_url)
        init_db(engine)
        store = create_content_store(config, metrics=metrics)
    except (ValueError, SQLAlchemyError) as e:
        logger.error(f"Setup failed: {e}", exc_info=args.verbose)
        print(f"❌ Setup failed: {e}")
        return 1

    orchestrator = ImportOrchestrator(
        store, make_session_factory(engine), config=config, metrics=metrics
    )

    print(f"📥 Importing {args.command} from {source}")
    print(f"   Storage: {config.storage_backend}")
    print(f"   Database: {engine.url.render_as_string(hide_password=True)}")
    if config.max_workers > 1:
        print(f"   Workers: {config.max_workers}")

    previous = _install_stop_handlers(orchestrator)
    try:
        import_run = {
            "resources": orchestrator.import_tree,
            "animations": orchestrator.import_animations,
            "avatars": orchestrator.import_avatars,
        }[args.command]
        summary = import_run(source, admin_id=settings["admin"])
    except FatalImportError as e:
        logger.error(f"Import aborted: {e}")
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⚠️  Import cancelled by user")
        return 130
    finally:
        _restore_handlers(previous)
        engine.dispose()

    print_summary(summary)
    if args.summary_json:
        write_summary(summary, args.summary_json)

    return 0


def run_create_admin(args: argparse.Namespace) -> int:
    config = ImportConfig.from_env(validate=False)
    database_url = args.database_url or config.database_url

    try:
        engine = create_engine_from_url(database_url)
        init_db(engine)
        with session_scope(make_session_factory(engine)) as session:
            admin = create_admin(session, args.name, args.email)
            admin_id = admin.id
        engine.dispose()
    except SQLAlchemyError as e:
        logger.error(f"Could not create admin: {e}")
        print(f"❌ Could not create admin: {e}")
        return 1

    print(admin_id)
    return 0


def main(argv: Optional[List[str]] = None, prog: Optional[str] = None) -> int:
    """Main entry point for the asset-import CLI."""
    args = build_parser(prog).parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    try:
        if args.command == "create-admin":
            return run_create_admin(args)
        return run_import(args)
    except KeyboardInterrupt:
        print("\n⚠️  Cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
