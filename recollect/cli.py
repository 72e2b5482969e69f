"""Command line interface for common Recollect workflows."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from recollect.config.manager import ConfigManager
from recollect.config.settings import RecollectSettings
from recollect.utils.exceptions import ConfigurationError, RecollectError


def _load_settings(args: argparse.Namespace) -> RecollectSettings:
    manager = ConfigManager.get_instance()
    if getattr(args, "config", None):
        manager.load_from_file(args.config)
    else:
        manager.auto_load()
    if getattr(args, "verbose", False):
        manager.update_setting("debug", True)
    manager.setup_logging()
    return manager.get_settings()


def _services(args: argparse.Namespace):
    from recollect.core.services import build_services

    return build_services(_load_settings(args))


def _emit(rows: Iterable[dict[str, Any]], columns: Sequence[str], fmt: str) -> None:
    rows = list(rows)
    if fmt == "json":
        print(json.dumps(rows, indent=2, default=str))
        return
    if not rows:
        print("(none)")
        return
    cells = [
        ["" if row.get(column) is None else str(row[column]) for column in columns]
        for row in rows
    ]
    widths = [
        max(len(column), *(len(cell[index]) for cell in cells))
        for index, column in enumerate(columns)
    ]
    print("  ".join(column.ljust(width) for column, width in zip(columns, widths)))
    for cell in cells:
        print("  ".join(value.ljust(width) for value, width in zip(cell, widths)))


def _handle_runserver(args: argparse.Namespace) -> int:
    """Start the Flask development server."""

    from recollect_server.api import create_app

    app = create_app(settings=_load_settings(args))
    app.run(
        host=args.host,
        port=args.port,
        debug=args.reload,
        use_reloader=args.reload,
    )
    return 0


def _handle_init_db(args: argparse.Namespace) -> int:
    services = _services(args)
    info = services.db_manager.get_database_info()
    services.close()
    print(f"Database initialised successfully ({info['database_url']}).")
    return 0


def _handle_threads(args: argparse.Namespace) -> int:
    services = _services(args)
    try:
        threads = services.thread_registry.list_threads(args.user)
    finally:
        services.close()
    _emit(
        (thread.to_dict() for thread in threads),
        ("id", "title", "last_active_at"),
        args.format,
    )
    return 0


def _handle_memories(args: argparse.Namespace) -> int:
    services = _services(args)
    try:
        memories = services.memory_store.list(
            args.user, scope=args.scope, thread_id=args.thread
        )
    finally:
        services.close()
    _emit(
        (memory.to_dict() for memory in memories),
        ("id", "scope", "memory_type", "verified", "short_summary"),
        args.format,
    )
    return 0


def _handle_conflicts(args: argparse.Namespace) -> int:
    services = _services(args)
    try:
        conflicts = services.conflict_ledger.list_unresolved(args.user)
    finally:
        services.close()
    _emit(
        (conflict.to_dict() for conflict in conflicts),
        ("id", "memory_a_id", "memory_b_id", "conflict_type"),
        args.format,
    )
    return 0


def _handle_config(args: argparse.Namespace) -> int:
    """Print the effective configuration, optionally saving it to a file."""

    settings = _load_settings(args)
    if args.write:
        destination = Path(args.write)
        format_hint = destination.suffix.lstrip(".").lower()
        if format_hint not in {"json", "yml", "yaml"}:
            format_hint = "json"
        settings.to_file(destination, format=format_hint)
        print(f"Configuration written to {destination}")
        return 0
    print(json.dumps(settings.export(include_sensitive=args.show_secrets), indent=2))
    return 0


def _add_listing_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", required=True, help="Owner identity to list for.")
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format (default: table).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recollect",
        description="Utilities for running and inspecting a Recollect deployment.",
    )
    parser.add_argument(
        "--config", help="Configuration file (JSON or YAML) to load instead of auto-discovery."
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging."
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    runserver = subparsers.add_parser(
        "runserver", help="Start the Flask development server."
    )
    runserver.add_argument("--host", default="127.0.0.1", help="Hostname to bind.")
    runserver.add_argument("--port", type=int, default=8080, help="Port to listen on.")
    runserver.add_argument(
        "--reload",
        action="store_true",
        help="Enable Flask's debug reloader (development only).",
    )
    runserver.set_defaults(func=_handle_runserver)

    init_db = subparsers.add_parser(
        "init-db", help="Create the configured Recollect database tables."
    )
    init_db.set_defaults(func=_handle_init_db)

    config = subparsers.add_parser(
        "config", help="Show the effective configuration or write it to a file."
    )
    config.add_argument("--write", help="Save the configuration here (JSON or YAML).")
    config.add_argument(
        "--show-secrets",
        action="store_true",
        help="Print the OpenAI API key instead of masking it.",
    )
    config.set_defaults(func=_handle_config)

    threads = subparsers.add_parser("threads", help="List a user's threads.")
    _add_listing_options(threads)
    threads.set_defaults(func=_handle_threads)

    memories = subparsers.add_parser("memories", help="List a user's memories.")
    _add_listing_options(memories)
    memories.add_argument("--scope", choices=("global", "thread"))
    memories.add_argument("--thread", help="Only memories from this thread.")
    memories.set_defaults(func=_handle_memories)

    conflicts = subparsers.add_parser(
        "conflicts", help="List a user's unresolved conflicts."
    )
    _add_listing_options(conflicts)
    conflicts.set_defaults(func=_handle_conflicts)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return int(handler(args) or 0)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except RecollectError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - invoked manually
    sys.exit(main())
