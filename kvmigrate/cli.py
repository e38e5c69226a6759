"""Command line interface for the local store migration."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .errors import MigrationError
from .models.migration import MigrationConfig, MigrationStatus
from .orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="kvmigrate",
        description="Migrate local key/value data into a remote relational store",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run the migration")
    run_parser.add_argument("--config", "-c", required=True, help="Config JSON file")
    run_parser.add_argument("--dry-run", action="store_true", help="Simulate without changing any store")
    run_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    status_parser = subparsers.add_parser("status", help="Show migration status for the identity")
    status_parser.add_argument("--config", "-c", required=True, help="Config JSON file")

    keys_parser = subparsers.add_parser("keys", help="List local keys and where they migrate to")
    keys_parser.add_argument("--config", "-c", required=True, help="Config JSON file")

    preview_parser = subparsers.add_parser("preview", help="Preview the rows produced for one key")
    preview_parser.add_argument("--config", "-c", required=True, help="Config JSON file")
    preview_parser.add_argument("--key", "-k", required=True, help="Local key to preview")

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

    commands = {
        "run": run_migration,
        "status": show_status,
        "keys": list_keys,
        "preview": run_preview,
    }

    try:
        return commands[args.command](args)
    except (MigrationError, OSError, ValueError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 2


def load_config(args) -> MigrationConfig:
    """Load the config file and apply KVMIGRATE_* environment overrides."""
    config = MigrationConfig.from_json_file(args.config).apply_env()
    if getattr(args, "dry_run", False):
        config.dry_run = True
    return config


def run_migration(args) -> int:
    """Run the migration and print a summary."""
    config = load_config(args)
    orchestrator = MigrationOrchestrator.from_config(config)
    result = orchestrator.run_migration()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.success else 1

    print("\n" + "=" * 60)
    print("MIGRATION DRY RUN" if config.dry_run else "MIGRATION FINISHED")
    print("=" * 60)
    print(f"Status: {result.status.value}")
    print(f"Migrated: {result.migrated}")
    print(f"Skipped: {len(result.skipped)}")
    print(f"Errors: {len(result.errors)}")
    for error in result.errors:
        print(f"  - {error}")
    if result.status == MigrationStatus.COMPLETED and not result.flag_marked:
        print("Warning: completion flag could not be written; it will be retried on the next run")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")

    return 0 if result.success else 1


def show_status(args) -> int:
    """Print whether the identity still needs migrating."""
    orchestrator = MigrationOrchestrator.from_config(load_config(args))
    report = orchestrator.get_migration_status()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.error is None else 1


def list_keys(args) -> int:
    """Print every local key with the table it maps to."""
    orchestrator = MigrationOrchestrator.from_config(load_config(args))
    store = orchestrator.reader.store

    for key in sorted(store.list_keys()):
        entry = orchestrator.registry.entry_for(key)
        target = f"{entry.table} ({entry.label})" if entry else "unmapped"
        print(f"{key:40} -> {target}")

    return 0


def run_preview(args) -> int:
    """Print the rows a key would produce, without writing anything."""
    config = load_config(args)
    config.dry_run = True
    orchestrator = MigrationOrchestrator.from_config(config)
    identity = orchestrator.identity_provider.get_current_identity()

    rows = orchestrator.preview_key(args.key, identity.id if identity else "preview")
    if not rows:
        print(f"{args.key}: no data")
        return 0

    for row in rows:
        print(json.dumps({"table": row.table, "on_conflict": list(row.conflict_target), "row": row.to_row()}, indent=2, default=str))
        print("-" * 40)

    return 0


if __name__ == "__main__":
    sys.exit(main())
