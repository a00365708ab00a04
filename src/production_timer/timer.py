"""Timer engine: pure logic, no I/O.

All elapsed values are integer milliseconds. The monotonic time source is
injected via now_mono_ms parameters for deterministic testing; records are
created and stored by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .models import TimerRecord


class TimerEvent(Enum):
    PERSIST_DUE = "persist_due"
    BLACK_SCREEN_ENTERED = "black_screen_entered"


@dataclass(frozen=True)
class PersistRequest:
    record_id: str
    duration_seconds: int


@dataclass
class TickResult:
    events: list[TimerEvent] = field(default_factory=list)
    persist: PersistRequest | None = None


@dataclass(frozen=True)
class StopResult:
    """Final duration of a record that just stopped being active."""

    record_id: str
    duration_seconds: int


MAX_TICK_GAP_MS = 10 * 60 * 1000  # longer gaps mean the process was suspended
DEFAULT_PERSIST_INTERVAL_MS = 30 * 1000
DEFAULT_BLACK_SCREEN_DELAY_MS = 30 * 1000


def format_hms(seconds: int) -> str:
    """Format seconds as 'HH:MM:SS'."""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass(frozen=True)
class TimerState:
    """Snapshot of the engine, safe to hand to readers."""

    is_running: bool = False
    session_elapsed_ms: int = 0
    record_elapsed_ms: int = 0
    persisted_seconds: int = 0
    started_at: Optional[datetime] = None
    active_record_id: Optional[str] = None
    category_id: Optional[str] = None
    is_black_screen_active: bool = False

    @property
    def has_active_record(self) -> bool:
        return self.active_record_id is not None

    @property
    def session_elapsed_seconds(self) -> int:
        return self.session_elapsed_ms // 1000

    @property
    def record_elapsed_seconds(self) -> int:
        return self.record_elapsed_ms // 1000

    @property
    def unsaved_seconds(self) -> int:
        """Seconds of the running record not yet written to storage."""
        if not self.is_running or not self.has_active_record:
            return 0
        return max(0, self.record_elapsed_seconds - self.persisted_seconds)

    def to_dict(self) -> dict:
        return {
            "is_running": self.is_running,
            "session_elapsed_seconds": self.session_elapsed_seconds,
            "record_elapsed_seconds": self.record_elapsed_seconds,
            "persisted_seconds": self.persisted_seconds,
            "unsaved_seconds": self.unsaved_seconds,
            "session_display": format_hms(self.session_elapsed_seconds),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "active_record_id": self.active_record_id,
            "has_active_record": self.has_active_record,
            "category_id": self.category_id,
            "is_black_screen_active": self.is_black_screen_active,
        }


class TimerEngine:
    """Session timer state machine.

    One active record at a time. While running, elapsed time accrues to both the
    session and the active record; a category switch closes the record and opens
    a new one without restarting the session clock.
    """

    def __init__(
        self,
        now_mono_ms: int,
        persist_interval_ms: int = DEFAULT_PERSIST_INTERVAL_MS,
        black_screen_delay_ms: int = DEFAULT_BLACK_SCREEN_DELAY_MS,
    ):
        self._persist_interval_ms = persist_interval_ms
        self._black_screen_delay_ms = black_screen_delay_ms
        self._last_tick_ms: int = now_mono_ms
        self._last_interaction_ms: int = now_mono_ms
        self._clear()

    # ---- Read-only properties ----

    @property
    def state(self) -> TimerState:
        return TimerState(
            is_running=self._is_running,
            session_elapsed_ms=self._session_elapsed_ms,
            record_elapsed_ms=self._record_elapsed_ms,
            persisted_seconds=self._persisted_seconds,
            started_at=self._started_at,
            active_record_id=self._active_record_id,
            category_id=self._category_id,
            is_black_screen_active=self._black_screen_active,
        )

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def active_record_id(self) -> str | None:
        return self._active_record_id

    @property
    def category_id(self) -> str | None:
        return self._category_id

    @property
    def persist_interval_ms(self) -> int:
        return self._persist_interval_ms

    @property
    def black_screen_delay_ms(self) -> int:
        return self._black_screen_delay_ms

    # ---- Core methods ----

    def restore(self, record: TimerRecord) -> None:
        """Attach a dangling active record found at startup, without running it."""
        if self._is_running:
            return
        self._attach(record)
        self._session_elapsed_ms = self._record_elapsed_ms

    def start(self, record: TimerRecord, now_mono_ms: int) -> bool:
        """Start running on ``record``. Returns False if already running."""
        if self._is_running:
            return False
        if not record.is_active:
            raise ValueError(f"Record {record.id} has already ended")

        self._attach(record)
        self._session_elapsed_ms = self._record_elapsed_ms
        self._is_running = True
        self._black_screen_active = False
        self._last_tick_ms = now_mono_ms
        self._last_interaction_ms = now_mono_ms
        return True

    def stop(self, now_mono_ms: int) -> StopResult | None:
        """Finalize the active record and return to the initial state."""
        if self._active_record_id is None:
            return None
        if self._is_running:
            self._advance(now_mono_ms)

        result = StopResult(self._active_record_id, self._record_elapsed_ms // 1000)
        self._clear()
        return result

    def pause(self, now_mono_ms: int) -> StopResult | None:
        """Stop counting but keep the record attached.

        The caller writes the returned duration and then calls ``stop`` to
        clear; if the write fails the elapsed time is still held here.
        """
        if self._active_record_id is None:
            return None
        if self._is_running:
            self._advance(now_mono_ms)
            self._is_running = False
            self._black_screen_active = False
        return StopResult(self._active_record_id, self._record_elapsed_ms // 1000)

    def reset(self) -> str | None:
        """Drop the active record. Returns its id so the caller can delete it."""
        record_id = self._active_record_id
        self._clear()
        return record_id

    def switch_category(self, record: TimerRecord, now_mono_ms: int) -> StopResult | None:
        """Close the running record and continue the session on ``record``.

        Returns the closed record's final duration, or None when not running
        (nothing is attached in that case).
        """
        if not self._is_running:
            return None

        self._advance(now_mono_ms)
        closed = StopResult(self._active_record_id, self._record_elapsed_ms // 1000)

        session_elapsed = self._session_elapsed_ms
        self._attach(record)
        self._session_elapsed_ms = session_elapsed + self._record_elapsed_ms
        return closed

    def tick(self, now_mono_ms: int) -> TickResult:
        """Advance counters and report persistence / black screen events."""
        result = TickResult()
        if not self._is_running:
            self._last_tick_ms = now_mono_ms
            return result

        self._advance(now_mono_ms)

        record_seconds = self._record_elapsed_ms // 1000
        if (record_seconds - self._persisted_seconds) * 1000 >= self._persist_interval_ms:
            result.events.append(TimerEvent.PERSIST_DUE)
            result.persist = PersistRequest(self._active_record_id, record_seconds)

        if (
            not self._black_screen_active
            and now_mono_ms - self._last_interaction_ms >= self._black_screen_delay_ms
        ):
            self._black_screen_active = True
            result.events.append(TimerEvent.BLACK_SCREEN_ENTERED)

        return result

    def mark_persisted(self, record_id: str, duration_seconds: int) -> None:
        """Record that storage now holds ``duration_seconds`` for ``record_id``."""
        if record_id != self._active_record_id:
            return
        record_seconds = self._record_elapsed_ms // 1000
        self._persisted_seconds = max(self._persisted_seconds, min(duration_seconds, record_seconds))

    def register_interaction(self, now_mono_ms: int) -> None:
        self._last_interaction_ms = now_mono_ms

    def exit_black_screen(self, now_mono_ms: int) -> bool:
        """Dismiss the overlay. Returns True if it was showing."""
        was_active = self._black_screen_active
        self._black_screen_active = False
        self._last_interaction_ms = now_mono_ms
        return was_active

    # ---- Internal ----

    def _attach(self, record: TimerRecord) -> None:
        self._active_record_id = record.id
        self._started_at = record.started_at
        self._category_id = record.category_id
        self._record_elapsed_ms = record.duration_seconds * 1000
        self._persisted_seconds = record.duration_seconds

    def _advance(self, now_mono_ms: int) -> None:
        elapsed_ms = now_mono_ms - self._last_tick_ms
        self._last_tick_ms = now_mono_ms

        if elapsed_ms > MAX_TICK_GAP_MS or elapsed_ms <= 0:
            return

        self._session_elapsed_ms += elapsed_ms
        self._record_elapsed_ms += elapsed_ms

    def _clear(self) -> None:
        self._is_running = False
        self._session_elapsed_ms = 0
        self._record_elapsed_ms = 0
        self._persisted_seconds = 0
        self._started_at: datetime | None = None
        self._active_record_id: str | None = None
        self._category_id: str | None = None
        self._black_screen_active = False
