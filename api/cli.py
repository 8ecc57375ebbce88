"""
Command-line entry points.

    lnnodes export       print every stored node as pretty JSON and exit
    lnnodes sync-once    run a single sync cycle and exit
    lnnodes run          export once, then keep syncing in the foreground
    lnnodes serve        run the HTTP API (GET /nodes) with uvicorn

Configuration comes from the environment / `.env` (see core/settings.py).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable

import asyncpg
import uvicorn

from core import db, mempool
from core.log import setup_logging
from core.settings import ConfigError, Settings, load_settings
from ingestion import service as sync_service
from nodes import repository as node_repository
from nodes import service as node_service

logger = logging.getLogger("lnnodes")

# Bad config, no database, or a store error mid-command.
_STORE_ERRORS = (ConfigError, OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


async def _with_pool(settings: Settings, work: Callable[[], Awaitable[None]]) -> None:
    await db.init_pool(settings.database_url)
    try:
        await node_repository.ensure_table()
        await work()
    finally:
        await db.close_pool()


async def _export(settings: Settings) -> None:
    async def work() -> None:
        await node_service.print_export()

    await _with_pool(settings, work)


async def _sync_once(settings: Settings) -> None:
    async def work() -> None:
        stats = await sync_service.sync_once(
            url=settings.nodes_api_url,
            timeout_s=settings.fetch_timeout_s,
            policy=settings.write_policy,
        )
        logger.info(
            "sync_cycle_complete fetched=%s inserted=%s updated=%s skipped=%s invalid=%s duration_s=%s",
            stats.fetched,
            stats.inserted,
            stats.updated,
            stats.skipped,
            stats.invalid,
            stats.duration_s,
        )

    await _with_pool(settings, work)


async def _run(settings: Settings) -> None:
    async def work() -> None:
        task = sync_service.start_background_sync(settings)
        try:
            # The export may race the first cycle; a partial view is fine.
            await node_service.print_export()
            await task
        finally:
            await sync_service.stop_background_sync(task)

    await _with_pool(settings, work)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lnnodes",
        description="Sync the mempool.space Lightning node ranking into Postgres and export it.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("export", help="Print all stored nodes as pretty JSON and exit.")
    sub.add_parser("sync-once", help="Run a single sync cycle and exit.")
    sub.add_parser("run", help="Export once, then sync forever (no HTTP server).")

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)

    if args.command == "serve":
        uvicorn.run("main:app", host=args.host, port=args.port)
        return 0

    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging()
        logger.error("startup_failed error=%s", exc)
        return 1
    setup_logging(settings.log_level)

    commands = {
        "export": _export,
        "sync-once": _sync_once,
        "run": _run,
    }

    try:
        asyncio.run(commands[args.command](settings))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130
    except _STORE_ERRORS as exc:
        logger.error("command_failed command=%s error=%s", args.command, exc)
        return 1
    except node_service.NodeStoreError as exc:
        logger.error("export_failed error=%s", exc)
        return 1
    except mempool.MempoolError as exc:
        logger.error("sync_fetch_failed error=%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
