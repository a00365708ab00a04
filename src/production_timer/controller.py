"""Drives the timer engine against storage and the wake lock."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .categories import CategoryNotFoundError, CategoryService
from .storage import StorageService
from .timer import (
    DEFAULT_BLACK_SCREEN_DELAY_MS,
    DEFAULT_PERSIST_INTERVAL_MS,
    TimerEngine,
    TimerEvent,
    TimerState,
)
from .wake_lock import WakeLockService

logger = logging.getLogger("production_timer.controller")

# Lifecycle states that mean the user left the app
BACKGROUND_STATES = frozenset({"inactive", "paused", "detached", "hidden"})
FOREGROUND_STATES = frozenset({"resumed"})


def _mono_ms() -> int:
    return int(time.monotonic() * 1000)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class TimerController:
    """Serializes timer operations; the tick job and API calls share one loop."""

    def __init__(
        self,
        storage: StorageService,
        categories: CategoryService,
        wake_lock: WakeLockService,
        clock: Callable[[], int] = _mono_ms,
        wall_clock: Callable[[], datetime] = _local_now,
        persist_interval_ms: int = DEFAULT_PERSIST_INTERVAL_MS,
        black_screen_delay_ms: int = DEFAULT_BLACK_SCREEN_DELAY_MS,
    ):
        self.storage = storage
        self.categories = categories
        self.wake_lock = wake_lock
        self._clock = clock
        self._wall_clock = wall_clock
        self.engine = TimerEngine(
            now_mono_ms=clock(),
            persist_interval_ms=persist_interval_ms,
            black_screen_delay_ms=black_screen_delay_ms,
        )
        self._lock = asyncio.Lock()
        self._selected_category_id: Optional[str] = None

    @property
    def state(self) -> TimerState:
        return self.engine.state

    def now(self) -> datetime:
        return self._wall_clock()

    @property
    def selected_category_id(self) -> Optional[str]:
        """Explicit selection if it still exists, otherwise the first category."""
        if self._selected_category_id and self.categories.get(self._selected_category_id):
            return self._selected_category_id
        return self.categories.first_id()

    def _require_category(self, category_id: str) -> None:
        if self.categories.get(category_id) is None:
            raise CategoryNotFoundError(category_id)

    # ---- Startup ----

    async def restore(self) -> TimerState:
        """Pick up a session that was still open when the process last exited."""
        async with self._lock:
            open_records = await self.storage.get_open_records()
            record = open_records[0] if open_records else None
            # an interrupted switch can leave older records open; end them at their saved length
            for stale in open_records[1:]:
                await self.storage.complete_session(
                    stale.id, stale.duration_seconds, stale.started_at + stale.duration
                )
                logger.warning(f"Closed stale open record {stale.id[:8]} ({stale.duration_seconds}s)")
            if record is not None:
                self.engine.restore(record)
                if record.category_id:
                    self._selected_category_id = record.category_id
                logger.info(
                    f"Restored dangling session {record.id[:8]} ({record.duration_seconds}s)"
                )
            return self.engine.state

    # ---- Operations ----

    async def start(self, category_id: Optional[str] = None) -> TimerState:
        async with self._lock:
            if category_id is not None:
                self._require_category(category_id)
                self._selected_category_id = category_id
            self.engine.register_interaction(self._clock())

            if self.engine.is_running:
                if category_id is not None and category_id != self.engine.category_id:
                    await self._switch_locked(category_id)
                return self.engine.state

            record = None
            if self.engine.active_record_id is not None:
                record = await self.storage.get_record_by_id(self.engine.active_record_id)
                if record is not None and not record.is_active:
                    record = None
                elif record is not None:
                    # a failed stop leaves time in the engine that storage never got
                    held = self.engine.state.record_elapsed_seconds
                    if held > record.duration_seconds:
                        await self.storage.update_running_session(record.id, held)
                        record = record.copy_with(duration_seconds=held)
            if record is None:
                record = await self.storage.get_active_record()
            if record is None:
                record = await self.storage.start_new_session(
                    self._wall_clock(), self.selected_category_id
                )

            self.engine.start(record, self._clock())
            self.wake_lock.enable()
            logger.info(f"Timer started on record {record.id[:8]} (category={record.category_id})")

            # resumed record belongs to another category: continue in the requested one
            if category_id is not None and record.category_id != category_id:
                await self._switch_locked(category_id)
            return self.engine.state

    async def stop(self) -> TimerState:
        async with self._lock:
            return await self._stop_locked()

    async def _stop_locked(self) -> TimerState:
        result = self.engine.pause(self._clock())
        if result is None:
            return self.engine.state

        try:
            await self.storage.complete_session(
                result.record_id, result.duration_seconds, self._wall_clock()
            )
        finally:
            self.wake_lock.disable()
        self.engine.stop(self._clock())
        logger.info(f"Timer stopped: record {result.record_id[:8]} = {result.duration_seconds}s")
        return self.engine.state

    async def reset(self) -> TimerState:
        async with self._lock:
            record_id = self.engine.reset()
            if record_id is not None:
                await self.storage.delete_record(record_id)
                logger.info(f"Timer reset: discarded record {record_id[:8]}")
            self.wake_lock.disable()
            return self.engine.state

    async def switch_category(self, category_id: str) -> TimerState:
        """Select a category; a running session continues in a new record."""
        async with self._lock:
            self._require_category(category_id)
            self._selected_category_id = category_id
            self.engine.register_interaction(self._clock())

            if not self.engine.is_running or self.engine.category_id == category_id:
                return self.engine.state

            await self._switch_locked(category_id)
            return self.engine.state

    async def _switch_locked(self, category_id: str) -> None:
        now = self._wall_clock()
        new_record = await self.storage.start_new_session(now, category_id)
        closed = self.engine.switch_category(new_record, self._clock())
        if closed is not None:
            await self.storage.complete_session(closed.record_id, closed.duration_seconds, now)
            logger.info(
                f"Category switched to {category_id}: closed {closed.record_id[:8]} "
                f"at {closed.duration_seconds}s"
            )

    async def tick(self) -> TimerState:
        """Periodic callback: advance the engine and persist progress when due."""
        async with self._lock:
            result = self.engine.tick(self._clock())

            if result.persist is not None:
                request = result.persist
                try:
                    found = await self.storage.update_running_session(
                        request.record_id, request.duration_seconds
                    )
                except Exception as e:
                    logger.error(f"Failed to persist record {request.record_id[:8]}: {e}")
                else:
                    if found:
                        self.engine.mark_persisted(request.record_id, request.duration_seconds)
                    else:
                        logger.warning(f"Running record {request.record_id[:8]} vanished from storage")

            if TimerEvent.BLACK_SCREEN_ENTERED in result.events:
                logger.info("Black screen entered after inactivity")

            return self.engine.state

    async def handle_lifecycle(self, state: str) -> TimerState:
        """React to an app lifecycle signal; leaving the app stops the timer."""
        normalized = state.strip().lower()
        if normalized in BACKGROUND_STATES:
            async with self._lock:
                if self.engine.is_running:
                    logger.info(f"Lifecycle '{normalized}': auto-stopping timer")
                    return await self._stop_locked()
                return self.engine.state
        if normalized in FOREGROUND_STATES:
            self.register_interaction()
            return self.engine.state
        raise ValueError(f"Unknown lifecycle state: {state}")

    def exit_black_screen(self) -> TimerState:
        if self.engine.exit_black_screen(self._clock()):
            logger.info("Black screen dismissed")
        return self.engine.state

    def register_interaction(self) -> TimerState:
        self.engine.register_interaction(self._clock())
        return self.engine.state

    async def shutdown(self) -> None:
        try:
            await self.handle_lifecycle("detached")
        except Exception as e:
            logger.error(f"Failed to save running session on shutdown: {e}")
        self.wake_lock.disable()
