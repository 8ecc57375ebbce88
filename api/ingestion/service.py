"""
Node sync loop.

Flow per cycle:
1) Fetch the node ranking from mempool.space
2) Normalize capacity / firstSeen
3) Write each node (insert-if-absent by default)

The loop runs as one long-lived asyncio task next to the HTTP handlers. It
never raises to its caller: each failed cycle is logged and retried on a
later tick with exponential backoff. `supervise_sync_loop` restarts the loop
itself if it ever stops.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from core import mempool
from core.settings import WRITE_POLICY_INSERT_ONLY, Settings

from . import normalize, repository

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    WAITING = "waiting"
    SYNCING = "syncing"


@dataclass(frozen=True)
class SyncStats:
    fetched: int
    inserted: int
    updated: int
    skipped: int
    invalid: int
    duration_s: float


@dataclass
class SyncStatus:
    state: SyncState = SyncState.WAITING
    cycles: int = 0
    consecutive_failures: int = 0
    restarts: int = 0
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    last_error: str | None = None
    last_stats: SyncStats | None = field(default=None)

    def as_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "cycles": self.cycles,
            "consecutive_failures": self.consecutive_failures,
            "restarts": self.restarts,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
            "last_stats": asdict(self.last_stats) if self.last_stats else None,
        }


# Process-wide status, read by GET /health.
status = SyncStatus()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_delay(interval_s: float, max_backoff_s: float, failures: int) -> float:
    """
    Wait before the next cycle: the plain interval after a success or the
    first failure, doubling per further consecutive failure, capped.
    """
    if failures <= 1:
        return interval_s
    return min(interval_s * (2 ** (failures - 1)), max(max_backoff_s, interval_s))


async def sync_once(
    *,
    url: str,
    timeout_s: float,
    policy: str = WRITE_POLICY_INSERT_ONLY,
    client: httpx.AsyncClient | None = None,
) -> SyncStats:
    """
    Run one fetch -> normalize -> write cycle.

    MempoolError propagates before anything is written. A store error aborts
    the rest of the cycle; rows written earlier in the cycle are kept.
    """
    started = time.monotonic()
    raw_nodes = await mempool.fetch_nodes(url=url, timeout_s=timeout_s, client=client)

    inserted = 0
    updated = 0
    skipped = 0
    invalid = 0
    for raw in raw_nodes:
        try:
            node = normalize.normalize_node(raw)
        except normalize.ConversionError as exc:
            # One bad record shouldn't take down the cycle.
            invalid += 1
            logger.warning("sync_node_skipped public_key=%s reason=%s", raw.public_key, exc)
            continue

        try:
            outcome = await repository.write_node(node, policy=policy)
        except Exception:
            logger.error(
                "sync_write_failed public_key=%s written_before_failure=%s",
                node.public_key,
                inserted + updated,
            )
            raise

        if outcome is repository.WriteOutcome.INSERTED:
            inserted += 1
        elif outcome is repository.WriteOutcome.UPDATED:
            updated += 1
        else:
            skipped += 1

    return SyncStats(
        fetched=len(raw_nodes),
        inserted=inserted,
        updated=updated,
        skipped=skipped,
        invalid=invalid,
        duration_s=round(time.monotonic() - started, 3),
    )


async def run_sync_loop(
    settings: Settings,
    *,
    sync_status: SyncStatus | None = None,
    client: httpx.AsyncClient | None = None,
    max_cycles: int | None = None,
) -> None:
    """
    Run sync cycles forever (or `max_cycles` times). The first cycle starts
    immediately so a fresh table is populated without waiting a full period.
    """
    st = sync_status or status
    cycles = 0

    while max_cycles is None or cycles < max_cycles:
        st.state = SyncState.SYNCING
        st.last_started_at = _utcnow()
        try:
            stats = await sync_once(
                url=settings.nodes_api_url,
                timeout_s=settings.fetch_timeout_s,
                policy=settings.write_policy,
                client=client,
            )
        except mempool.MempoolError as exc:
            st.consecutive_failures += 1
            st.last_error = str(exc)
            logger.warning(
                "sync_fetch_failed failures=%s error=%s",
                st.consecutive_failures,
                exc,
            )
        except Exception as exc:
            st.consecutive_failures += 1
            st.last_error = f"{exc.__class__.__name__}: {exc}"
            logger.exception("sync_cycle_failed failures=%s", st.consecutive_failures)
        else:
            st.consecutive_failures = 0
            st.last_error = None
            st.last_stats = stats
            logger.info(
                "sync_cycle_complete fetched=%s inserted=%s updated=%s skipped=%s invalid=%s duration_s=%s",
                stats.fetched,
                stats.inserted,
                stats.updated,
                stats.skipped,
                stats.invalid,
                stats.duration_s,
            )
        finally:
            st.state = SyncState.WAITING
            st.last_finished_at = _utcnow()
            st.cycles += 1

        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break

        delay = next_delay(settings.sync_interval_s, settings.sync_max_backoff_s, st.consecutive_failures)
        logger.debug("sync_waiting delay_s=%s", delay)
        await asyncio.sleep(delay)


async def supervise_sync_loop(settings: Settings, *, sync_status: SyncStatus | None = None) -> None:
    """
    Background-task entrypoint.

    Keeps the sync loop alive: if it ever returns or crashes, log it loudly
    and start it again after a backoff delay. Only cancellation stops it.
    """
    st = sync_status or status
    logger.info(
        "sync_loop_started url=%s interval_s=%s policy=%s",
        settings.nodes_api_url,
        settings.sync_interval_s,
        settings.write_policy,
    )

    while True:
        try:
            await run_sync_loop(settings, sync_status=st)
            logger.error("sync_loop_exited_unexpectedly restarts=%s", st.restarts)
        except asyncio.CancelledError:
            logger.info("sync_loop_cancelled cycles=%s", st.cycles)
            raise
        except Exception:
            logger.exception("sync_loop_crashed restarts=%s", st.restarts)

        st.restarts += 1
        st.state = SyncState.WAITING
        delay = next_delay(settings.sync_interval_s, settings.sync_max_backoff_s, st.restarts)
        await asyncio.sleep(delay)


def start_background_sync(settings: Settings) -> asyncio.Task[None]:
    task = asyncio.create_task(supervise_sync_loop(settings), name="node-sync")
    task.add_done_callback(_log_task_exit)
    return task


def _log_task_exit(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("sync_task_died error=%r", exc)


async def stop_background_sync(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return None
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
