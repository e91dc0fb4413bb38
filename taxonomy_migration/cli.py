"""Command line interface for the taxonomy migration."""

import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict, Optional

from .api.main import create_app, create_controller
from .controller import MigrationController
from .exceptions import ConfigurationError
from .models.config import MigrationConfig
from .models.migration import CancellationToken

logger = logging.getLogger(__name__)


def load_config(args) -> MigrationConfig:
    """Load configuration from --config, falling back to the environment."""
    if args.config:
        config = MigrationConfig.from_json_file(args.config)
    else:
        config = MigrationConfig.from_env()

    if getattr(args, "batch_size", None):
        config.batch_size = args.batch_size
    if getattr(args, "dry_run", False):
        config.dry_run = True
    config.validate()
    return config


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Taxonomy Migration - Migrate relationship connections to taxonomy terms"
    )
    parser.add_argument("--config", help="Path to migration config file (JSON)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run migration
    run_parser = subparsers.add_parser("run", help="Run (or resume) the migration")
    run_parser.add_argument("--batch-size", type=int, help="Connections per batch (1-1000)")
    run_parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")
    run_parser.add_argument(
        "--pause-on-interrupt",
        action="store_true",
        help="Ctrl-C pauses instead of cancelling; run again to resume",
    )

    subparsers.add_parser("stats", help="Show connection statistics")
    subparsers.add_parser("mappings", help="Preview the relationship to taxonomy mapping")
    subparsers.add_parser("status", help="Show the persisted run status")
    subparsers.add_parser("reset", help="Reset the run to not_started")
    subparsers.add_parser("rollback", help="Remove migrated terms from all source posts")

    log_parser = subparsers.add_parser("log", help="Show the most recent log entries")
    log_parser.add_argument("--limit", type=int, default=None, help="Number of entries")

    serve_parser = subparsers.add_parser("serve", help="Serve the control API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 2

    if args.command == "serve":
        return run_server(config, args)

    controller = create_controller(config)

    commands = {
        "run": run_migration,
        "stats": show_statistics,
        "mappings": show_mappings,
        "status": show_status,
        "reset": reset_migration,
        "rollback": rollback_migration,
        "log": show_log,
    }
    return commands[args.command](controller, args)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _report(response: Dict[str, Any]) -> int:
    if response["success"]:
        _print_json(response["data"])
        return 0
    print(f"Error: {response['data']['message']}", file=sys.stderr)
    return 1


def run_migration(controller: MigrationController, args) -> int:
    """Drive batches until the run completes, pauses or is cancelled."""
    token = CancellationToken()

    def handle_interrupt(signum, frame):
        if args.pause_on_interrupt:
            print("\nPausing after the current batch...")
            token.request_pause()
        else:
            print("\nCancelling after the current batch...")
            token.request_cancel()

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    try:
        response = controller.run(token=token, dry_run=controller.config.dry_run or None)
    finally:
        signal.signal(signal.SIGINT, previous)

    status = controller.status()["data"]
    progress = status["progress"]

    print("\n" + "=" * 60)
    print("MIGRATION " + status["status"].upper().replace("_", " "))
    print("=" * 60)
    print(f"Processed: {progress['processed']} / {progress['total']} ({progress['percentage']}%)")
    print(f"Migrated: {progress['migrated']}")
    print(f"Failed: {progress['failed']}")
    if status["dry_run"]:
        print("Dry run: no changes were written")

    if not response["success"]:
        print(f"Error: {response['data']['message']}", file=sys.stderr)
        return 1
    return 0


def show_statistics(controller: MigrationController, args) -> int:
    return _report(controller.statistics())


def show_mappings(controller: MigrationController, args) -> int:
    return _report(controller.get_mappings())


def show_status(controller: MigrationController, args) -> int:
    return _report(controller.status())


def reset_migration(controller: MigrationController, args) -> int:
    return _report(controller.reset())


def rollback_migration(controller: MigrationController, args) -> int:
    response = controller.rollback()
    if response["success"]:
        data = response["data"]
        print(f"Cleared term assignments from {data['posts_cleared']} posts")
        if data["posts_failed"]:
            print(f"Could not clear {data['posts_failed']} posts (see log)")
        return 0
    return _report(response)


def show_log(controller: MigrationController, args) -> int:
    for entry in controller.get_log(args.limit):
        print(f"[{entry['timestamp']}] {entry['type'].upper():8} {entry['message']}")
    return 0


def run_server(config: MigrationConfig, args) -> int:
    """Serve the control API with uvicorn."""
    import uvicorn

    app = create_app(config)
    logger.info(f"Starting control API on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
