"""
SnapshotController: TTL cache with single-flight rebuilds
==========================================================
Owns the current Snapshot reference and the one in-flight build.

States::

    EMPTY ──build──▶ BUILDING ──ok──▶ READY ──ttl expired / refresh──▶ BUILDING ──▶ READY
                         │                                                │
                         └──failed──▶ EMPTY                   failed ──▶ READY (previous snapshot kept)

Rules:
  - At most one build runs at a time; concurrent callers share its task.
  - With no snapshot, callers wait for the build.
  - With a snapshot, callers either get it immediately while a rebuild runs
    in the background (serve-stale) or wait for the rebuild (attach).
  - A failed build never discards the last good snapshot. Readers do not
    retry it until one TTL has passed; the timer and force_refresh still do.
  - Waiting callers are shielded: a caller timing out does not cancel the build.

Usage::

    controller = SnapshotController(builder=lambda: ingest(...), ttl_seconds=300)
    snapshot = await controller.get_snapshot()
    controller.start()      # background TTL refresh (apscheduler)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from marketlens.errors import IngestionError
from marketlens.index import Snapshot

logger = logging.getLogger("SnapshotController")

Builder = Callable[[], Awaitable[Snapshot]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ControllerState(str, Enum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"


@dataclass(frozen=True)
class ControllerStatus:
    state: ControllerState
    has_snapshot: bool
    refreshing: bool
    is_stale: bool
    built_at: Optional[datetime] = None
    item_count: int = 0
    keyword_count: int = 0
    partial: bool = False
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    build_count: int = 0


class SnapshotController:
    def __init__(
        self,
        builder: Builder,
        ttl_seconds: float = 300,
        serve_stale: bool = True,
        clock: Optional[Clock] = None,
    ):
        self._builder = builder
        self.ttl_seconds = ttl_seconds
        self.serve_stale = serve_stale
        self._clock = clock or utc_now
        self._lock = asyncio.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._build_task: Optional[asyncio.Task] = None
        self._scheduler: Optional[AsyncIOScheduler] = None
        self.last_error: Optional[BaseException] = None
        self.last_error_at: Optional[datetime] = None
        self.build_count = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    @property
    def refreshing(self) -> bool:
        return self._build_task is not None and not self._build_task.done()

    @property
    def state(self) -> ControllerState:
        if self.refreshing:
            return ControllerState.BUILDING
        if self._snapshot is not None:
            return ControllerState.READY
        return ControllerState.EMPTY

    def is_stale(self) -> bool:
        if self._snapshot is None:
            return True
        age = (self._clock() - self._snapshot.built_at).total_seconds()
        return age >= self.ttl_seconds

    def in_failure_backoff(self) -> bool:
        """True while the last build failure is younger than one TTL period."""
        if self.last_error is None or self.last_error_at is None:
            return False
        return (self._clock() - self.last_error_at).total_seconds() < self.ttl_seconds

    def status(self) -> ControllerStatus:
        snapshot = self._snapshot
        return ControllerStatus(
            state=self.state,
            has_snapshot=snapshot is not None,
            refreshing=self.refreshing,
            is_stale=self.is_stale(),
            built_at=snapshot.built_at if snapshot else None,
            item_count=len(snapshot.items) if snapshot else 0,
            keyword_count=snapshot.keyword_count if snapshot else 0,
            partial=snapshot.partial if snapshot else False,
            last_error=str(self.last_error) if self.last_error else None,
            last_error_at=self.last_error_at,
            build_count=self.build_count,
        )

    def install(self, snapshot: Snapshot) -> None:
        """Serve a snapshot obtained elsewhere (e.g. a precomputed index file)."""
        self._snapshot = snapshot
        logger.info(f"Installed snapshot with {len(snapshot.items)} markets built at {snapshot.built_at.isoformat()}")

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    async def _run_build(self) -> Snapshot:
        self.build_count += 1
        logger.info(f"Building snapshot (build #{self.build_count})...")
        try:
            snapshot = await self._builder()
        except Exception as e:
            self.last_error = e
            self.last_error_at = self._clock()
            if self._snapshot is not None:
                logger.error(f"Snapshot build failed, keeping snapshot from {self._snapshot.built_at.isoformat()}: {e}")
            else:
                logger.error(f"Snapshot build failed with no previous snapshot: {e}")
            raise
        self._snapshot = snapshot
        self.last_error = None
        logger.info(f"Snapshot ready: {len(snapshot.items)} markets, {snapshot.keyword_count} keywords")
        return snapshot

    @staticmethod
    def _on_build_done(task: asyncio.Task) -> None:
        # Mark the exception as retrieved; failures are already recorded and logged
        if not task.cancelled():
            task.exception()

    async def _ensure_build(self) -> asyncio.Task:
        """Start a build unless one is already in flight; return the shared task."""
        async with self._lock:
            if self._build_task is None or self._build_task.done():
                self._build_task = asyncio.create_task(self._run_build())
                self._build_task.add_done_callback(self._on_build_done)
            return self._build_task

    async def _wait(self, task: asyncio.Task, timeout: Optional[float]) -> Snapshot:
        try:
            if timeout is None:
                return await asyncio.shield(task)
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except IngestionError:
            raise
        except asyncio.TimeoutError:
            raise
        except Exception as e:
            raise IngestionError(f"Snapshot build failed: {e}", cause=e) from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_snapshot(self, allow_stale: Optional[bool] = None, timeout: Optional[float] = None) -> Snapshot:
        """
        Return a snapshot, building one if needed.

        Raises IngestionError only when there is no snapshot at all and the
        build fails; asyncio.TimeoutError if *timeout* elapses first.
        """
        allow_stale = self.serve_stale if allow_stale is None else allow_stale
        current = self._snapshot

        if current is None:
            task = await self._ensure_build()
            return await self._wait(task, timeout)

        if not self.is_stale() and not self.refreshing:
            return current

        if not self.refreshing and self.in_failure_backoff():
            # Retry is left to the next timer tick or force_refresh
            return current

        task = await self._ensure_build()
        if allow_stale:
            return current
        try:
            return await self._wait(task, timeout)
        except IngestionError:
            # Refresh failed: the previous snapshot is still the best data we have
            return self._snapshot or current

    async def trigger(self) -> asyncio.Task:
        """Start (or join) a build without waiting for it."""
        return await self._ensure_build()

    async def force_refresh(self, timeout: Optional[float] = None) -> Snapshot:
        task = await self._ensure_build()
        return await self._wait(task, timeout)

    async def refresh_if_stale(self) -> None:
        """Scheduler tick: rebuild when the TTL has expired. Failures are recorded, not raised."""
        if not self.is_stale():
            return
        try:
            await self.force_refresh()
        except IngestionError as e:
            logger.warning(f"Scheduled refresh failed, will retry next tick: {e}")

    # ------------------------------------------------------------------
    # Background timer
    # ------------------------------------------------------------------

    def start(self, interval_seconds: Optional[float] = None) -> None:
        if self._scheduler is not None:
            return
        interval = interval_seconds or self.ttl_seconds
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.refresh_if_stale,
            "interval",
            seconds=interval,
            id="snapshot_refresh",
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Snapshot refresh scheduled every {interval} seconds.")

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
