"""CLI entry point for bakesync."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import GitHubConfig, load_config
from .errors import SyncError
from .store import ConfigStore
from .sync import SyncClient

logger = logging.getLogger("bakesync")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _open_client(args: argparse.Namespace) -> tuple[SyncClient, ConfigStore]:
    """Build a client from the config file, env and persisted settings.

    A token from the config file or environment wins; otherwise the settings
    saved by `bakesync configure` are used.
    """
    config = load_config(args.config)
    store = ConfigStore(config.storage.db_path)
    store.connect()
    github = config.github if config.github.token else None
    try:
        return SyncClient(github, store=store), store
    except SyncError:
        store.close()
        raise


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def _run(args: argparse.Namespace, action) -> int:
    """Run action(client) and map library errors to exit status 1."""
    try:
        client, store = _open_client(args)
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        async with client:
            return await action(client)
    except SyncError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()


def cmd_configure(args: argparse.Namespace) -> int:
    """Persist GitHub settings for later commands."""
    config = load_config(args.config)
    store = ConfigStore(config.storage.db_path)
    store.connect()
    try:
        client = SyncClient(store=store)
        current = client.config
        client.set_config(
            GitHubConfig(
                owner=args.owner or current.owner,
                repo=args.repo or current.repo,
                token=args.token or current.token,
                api_url=current.api_url,
                branch=args.branch or current.branch,
                timeout_seconds=current.timeout_seconds,
                conflict_retries=current.conflict_retries,
            )
        )
        print(f"Saved settings for {client.config.owner}/{client.config.repo}")
    except SyncError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check that the configured repository is reachable."""

    async def action(client: SyncClient) -> int:
        result = await client.test_connection()
        status_data = {
            "timestamp": datetime.now().isoformat(),
            "repository": f"{client.config.owner}/{client.config.repo}",
            "connection": result,
        }
        if result["success"]:
            status_data["info"] = await client.get_repo_info()

        if args.as_json:
            _print_json(status_data)
        else:
            print(f"Repository: {status_data['repository']}")
            state = "connected" if result["success"] else "unreachable"
            print(f"Status: {state} ({result['message']})")
            if info := status_data.get("info"):
                print(f"Default branch: {info['defaultBranch']}")
                print(f"URL: {info['url']}")
        return 0 if result["success"] else 1

    return await _run(args, action)


async def cmd_init(args: argparse.Namespace) -> int:
    """Write the built-in documents if the data is missing."""

    async def action(client: SyncClient) -> int:
        if await client.initialize_data():
            print("Data files initialized")
        else:
            print("Data already initialized")
        return 0

    return await _run(args, action)


async def cmd_products(args: argparse.Namespace) -> int:
    """List products."""

    async def action(client: SyncClient) -> int:
        products = await client.get_products()
        if args.as_json:
            _print_json(products)
            return 0
        for p in products:
            discount = f" (-{p['discount']}%)" if p.get("discount") else ""
            print(
                f"{p['id']:>14}  {p.get('name', ''):<24} "
                f"{p.get('price', 0):>8}{discount}  stock {p.get('stock', 0)}"
            )
        return 0

    return await _run(args, action)


async def cmd_export(args: argparse.Namespace) -> int:
    """Export all documents as one snapshot."""

    async def action(client: SyncClient) -> int:
        snapshot = await client.export_all()
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
            print(f"Exported data to {args.output}")
        else:
            _print_json(snapshot)
        return 0

    return await _run(args, action)


async def cmd_import(args: argparse.Namespace) -> int:
    """Import a snapshot file, overwriting the live documents."""
    try:
        with open(args.file, encoding="utf-8") as f:
            snapshot = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    async def action(client: SyncClient) -> int:
        result = await client.import_all(snapshot)
        print(result["message"])
        return 0

    return await _run(args, action)


async def cmd_backup(args: argparse.Namespace) -> int:
    """Store a backup snapshot in the repository."""

    async def action(client: SyncClient) -> int:
        result = await client.backup()
        print(f"Backup created: {result['path']}")
        return 0

    return await _run(args, action)


async def cmd_backups(args: argparse.Namespace) -> int:
    """List stored backups."""

    async def action(client: SyncClient) -> int:
        backups = await client.list_backups()
        if args.as_json:
            _print_json(backups)
        elif not backups:
            print("No backups found")
        else:
            for b in backups:
                print(f"{b['path']}  {b['size']} bytes")
        return 0

    return await _run(args, action)


async def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the live documents from a backup."""

    async def action(client: SyncClient) -> int:
        result = await client.restore(args.path)
        print(f"Restored backup from {result['timestamp']}")
        return 0

    return await _run(args, action)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="bakesync",
        description="Keep the bakery website's data in a GitHub repository",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    configure_parser = subparsers.add_parser("configure", help="Save GitHub settings")
    configure_parser.add_argument("--owner", help="Repository owner")
    configure_parser.add_argument("--repo", help="Repository name")
    configure_parser.add_argument("--token", help="GitHub access token")
    configure_parser.add_argument("--branch", help="Branch to read and write")
    configure_parser.set_defaults(func=cmd_configure)

    status_parser = subparsers.add_parser("status", help="Check repository connectivity")
    status_parser.add_argument(
        "--as-json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    init_parser = subparsers.add_parser("init", help="Create default data files if missing")
    init_parser.set_defaults(func=cmd_init)

    products_parser = subparsers.add_parser("products", help="List products")
    products_parser.add_argument("--as-json", action="store_true", help="Output as JSON")
    products_parser.set_defaults(func=cmd_products)

    export_parser = subparsers.add_parser("export", help="Export all data as JSON")
    export_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Write to file instead of stdout",
    )
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", help="Import data from a JSON export")
    import_parser.add_argument("file", type=Path, help="Export file to import")
    import_parser.set_defaults(func=cmd_import)

    backup_parser = subparsers.add_parser("backup", help="Create a backup in the repository")
    backup_parser.set_defaults(func=cmd_backup)

    backups_parser = subparsers.add_parser("backups", help="List backups")
    backups_parser.add_argument("--as-json", action="store_true", help="Output as JSON")
    backups_parser.set_defaults(func=cmd_backups)

    restore_parser = subparsers.add_parser("restore", help="Restore data from a backup")
    restore_parser.add_argument("path", help="Backup path, e.g. backups/backup-1700000000000.json")
    restore_parser.set_defaults(func=cmd_restore)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    if inspect.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
