"""Diagnostics CLI for the on-disk cache state.

Usage::

    python -m tiercache.cli stats
    python -m tiercache.cli clear --category heroes --yes
    python -m tiercache.cli prune
    python -m tiercache.cli activate

Only the durable state is visible from here: the persistent tier's SQLite
file and the network strategy's response stores.  The memory and session
tiers live inside a running application process.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from tiercache.config.settings import Settings
from tiercache.main import build_cache_manager, build_network_strategy
from tiercache.utils.logging import configure_logging


async def _handle_stats(app_settings: Settings) -> int:
    """Print persistent-tier and response-store statistics."""
    manager = build_cache_manager(app_settings)
    await manager.initialize()
    try:
        stats = await manager.get_stats()
    finally:
        await manager.close()

    print("Persistent Tier")
    print("=" * 40)
    if not stats.persistent.available:
        print("  Unavailable")
    else:
        print(f"  Entries:  {stats.persistent.count}")
        print(f"  Bytes:    {stats.persistent.size}")
    print(f"  Database: {app_settings.cache_db_path}")

    strategy = build_network_strategy(app_settings)
    await strategy.initialize()
    try:
        store_stats = await strategy.store.stats()
    finally:
        await strategy.close()

    print("\nResponse Stores")
    print("=" * 40)
    if not store_stats:
        print("  (empty)")
    for store in store_stats:
        print(f"  {store.name:<28} {store.count:>5} entries  {store.size:>10} bytes")
    return 0


async def _handle_clear(args: argparse.Namespace, app_settings: Settings) -> int:
    """Delete every persistent-tier entry tagged with ``--category``.

    Requires confirmation unless ``--yes`` is passed.
    """
    category = args.category
    if not args.yes:
        confirm = input(f"Delete all cached '{category}' entries? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("Aborted.")
            return 0

    manager = build_cache_manager(app_settings)
    await manager.initialize()
    try:
        removed = await manager.clear_category(category)
    finally:
        await manager.close()

    print(f"Deleted {removed} entries in category '{category}'.")
    return 0


async def _handle_prune(app_settings: Settings) -> int:
    """Cap every response store at its configured maximum."""
    strategy = build_network_strategy(app_settings)
    await strategy.initialize()
    try:
        removed = await strategy.prune_stores()
    finally:
        await strategy.close()

    for name, count in removed.items():
        print(f"  {name:<28} removed {count}")
    return 0


async def _handle_activate(app_settings: Settings) -> int:
    """Drop response stores the current deployment does not recognise."""
    strategy = build_network_strategy(app_settings)
    await strategy.initialize()
    try:
        removed = await strategy.activate()
    finally:
        await strategy.close()

    if not removed:
        print("No outdated stores.")
    for name in removed:
        print(f"  Deleted store {name}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the cache admin CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m tiercache.cli",
        description="Inspect and maintain tiercache's on-disk state.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Cache commands")

    subparsers.add_parser("stats", help="Show persistent tier and response store statistics")

    clear_parser = subparsers.add_parser(
        "clear", help="Delete all persistent entries in a category"
    )
    clear_parser.add_argument("--category", required=True, help="Category to clear (e.g. heroes)")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    subparsers.add_parser("prune", help="Cap response stores at their maximum size")
    subparsers.add_parser("activate", help="Delete unrecognised response stores")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse the subcommand and dispatch to its handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    if args.command == "stats":
        exit_code = asyncio.run(_handle_stats(app_settings))
    elif args.command == "clear":
        exit_code = asyncio.run(_handle_clear(args, app_settings))
    elif args.command == "prune":
        exit_code = asyncio.run(_handle_prune(app_settings))
    elif args.command == "activate":
        exit_code = asyncio.run(_handle_activate(app_settings))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
