"""
Command-line interface for the pool migration.

Commands:
    add-pool   Create a pool in the current registry and rebalance the
               legacy master slot to match.
    resume     Finish a migration whose finalization failed.
    pending    List migrations waiting for ``resume``.

Exit codes: 0 on success, 1 when the migration (or its setup) fails,
2 for argument errors.

Example:
    $ poolmigrate --network polygon add-pool --alloc-point 250 \\
        --lp-token 0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed --sleep 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import create_async_engine

from poolmigrate.config import NETWORKS, Settings, load_settings
from poolmigrate.coordinator import PoolMigrationCoordinator
from poolmigrate.exceptions import PendingFinalizeNotFoundError, PoolMigrationError
from poolmigrate.models import MigrationConfig
from poolmigrate.registries import (
    InMemoryCurrentRegistry,
    InMemoryLegacyRegistry,
    connect_registries,
)
from poolmigrate.repositories import (
    InMemoryMigrationJournal,
    MigrationJournal,
    SQLAlchemyMigrationJournal,
)

logger = logging.getLogger("poolmigrate.cli")

DEFAULT_JOURNAL_URL = "sqlite+aiosqlite:///poolmigrate-journal.db"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive number of seconds: {value!r}")
    return seconds


def _pool_index(value: str) -> int:
    try:
        index = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if index < 0:
        raise argparse.ArgumentTypeError(f"pool index must be non-negative: {value!r}")
    return index


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="poolmigrate",
        description="Add a pool to the current registry and rebalance the legacy registry.",
    )
    parser.add_argument(
        "--network",
        choices=sorted(NETWORKS),
        default="polygon",
        help="Network preset (default: polygon)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path of the .env file (default: search from the working directory)",
    )
    parser.add_argument(
        "--journal-url",
        default=DEFAULT_JOURNAL_URL,
        help=f"SQLAlchemy async URL of the migration journal (default: {DEFAULT_JOURNAL_URL})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    add_pool = subparsers.add_parser("add-pool", help="Run the full migration")
    add_pool.add_argument(
        "--alloc-point",
        required=True,
        help="Allocation points for the new pool (non-negative integer)",
    )
    add_pool.add_argument(
        "--lp-token",
        required=True,
        help="Address of the asset staked in the new pool",
    )
    add_pool.add_argument(
        "--update",
        action="store_true",
        help="Mass-update all pools on every mutation",
    )
    add_pool.add_argument(
        "--sleep",
        required=True,
        help="Seconds to wait after creating the pool (non-negative integer)",
    )
    add_pool.add_argument(
        "--rewarder",
        action="append",
        default=[],
        dest="rewarders",
        help="Auxiliary reward distributor for the new pool (repeatable)",
    )
    add_pool.add_argument(
        "--no-verify-settlement",
        action="store_true",
        help="Trust the fixed delay instead of polling until writes are visible",
    )
    add_pool.add_argument(
        "--settlement-timeout",
        type=_positive_seconds,
        default=60.0,
        help="Seconds to poll for each write to become visible (default: 60)",
    )
    add_pool.add_argument(
        "--dry-run",
        action="store_true",
        help="Run against empty in-memory registries; nothing is submitted",
    )

    resume = subparsers.add_parser("resume", help="Finish a migration with a pending finalization")
    resume.add_argument("migration_id", type=UUID, help="Migration identifier")
    resume.add_argument(
        "--pool-index",
        type=_pool_index,
        default=None,
        help="Pool to finalize (default: recorded or inferred index)",
    )

    subparsers.add_parser("pending", help="List migrations waiting for resume")

    return parser


@asynccontextmanager
async def open_journal(url: str) -> AsyncIterator[MigrationJournal]:
    """Open the SQLAlchemy journal at ``url``, creating its tables if needed."""
    engine = create_async_engine(url)
    try:
        journal = SQLAlchemyMigrationJournal(engine)
        await journal.create_tables()
        yield journal
    finally:
        await engine.dispose()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _migration_config(settings: Settings, args: argparse.Namespace) -> MigrationConfig:
    return MigrationConfig(
        master_slot=settings.deployment.master_slot,
        verify_settlement=not getattr(args, "no_verify_settlement", False),
        settlement_timeout_seconds=getattr(args, "settlement_timeout", 60.0),
    )


async def _add_pool(args: argparse.Namespace) -> int:
    settings = load_settings(args.network, env_file=args.env_file, require_signer=not args.dry_run)
    config = _migration_config(settings, args)

    if args.dry_run:
        logger.info("Dry run: using in-memory registries, nothing is submitted")
        coordinator = PoolMigrationCoordinator(
            InMemoryCurrentRegistry(),
            InMemoryLegacyRegistry({config.master_slot: 0}),
            config,
            journal=InMemoryMigrationJournal(),
        )
        result = await coordinator.run(
            args.alloc_point,
            args.lp_token,
            args.update,
            args.sleep,
            auxiliary_distributors=args.rewarders,
        )
        _print_json(result.to_dict())
        return 0

    current, legacy = connect_registries(settings)
    async with open_journal(args.journal_url) as journal:
        coordinator = PoolMigrationCoordinator(current, legacy, config, journal=journal)
        result = await coordinator.run(
            args.alloc_point,
            args.lp_token,
            args.update,
            args.sleep,
            auxiliary_distributors=args.rewarders,
        )
    _print_json(result.to_dict())
    return 0


async def _resume(args: argparse.Namespace) -> int:
    async with open_journal(args.journal_url) as journal:
        marker = await journal.get_pending(args.migration_id)
        if marker is None:
            raise PendingFinalizeNotFoundError(args.migration_id)

        settings = load_settings(args.network, env_file=args.env_file)
        if marker.master_slot != settings.deployment.master_slot:
            logger.warning(
                "Migration %s rebalanced master slot %d; configured slot is %d",
                args.migration_id,
                marker.master_slot,
                settings.deployment.master_slot,
            )
        current, legacy = connect_registries(settings)
        coordinator = PoolMigrationCoordinator(
            current, legacy, _migration_config(settings, args), journal=journal
        )
        result = await coordinator.resume_finalize(args.migration_id, pool_index=args.pool_index)
    _print_json(result.to_dict())
    return 0


async def _pending(args: argparse.Namespace) -> int:
    async with open_journal(args.journal_url) as journal:
        markers = await journal.list_pending()
    _print_json([marker.model_dump(mode="json") for marker in markers])
    if markers:
        logger.info("%d migration(s) waiting for resume", len(markers))
    return 0


async def run_command(args: argparse.Namespace) -> int:
    """Dispatch a parsed command."""
    if args.command == "add-pool":
        return await _add_pool(args)
    if args.command == "resume":
        return await _resume(args)
    return await _pending(args)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    try:
        return asyncio.run(run_command(args))
    except PoolMigrationError as e:
        logger.error("%s failed [%s]: %s", args.command, e.error_code, e.message)
        logger.error("Suggested action: %s", e.suggested_action)
        return 1
    except Exception:
        logger.exception("%s failed with an unexpected error", args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
